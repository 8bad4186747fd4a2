import argparse

from mbml.common.outputter import Outputter


def build_parser(description):
    parser = argparse.ArgumentParser(description=description)
    parser.add_argument("output_dir", nargs="?", default=None, help="folder to save outputs into")
    parser.add_argument("--data-dir", default=None, help="folder holding the chapter's data files")
    parser.add_argument("--seed", type=int, default=None, help="random seed")
    return parser


def run_program(body, args, name="Outputs"):
    """
    Input
    -------
    body: function taking (args, outputter) that runs the chapter
    args: parsed command line arguments

    Output
    --------
    Exit status, 0 on success and 1 after an unhandled exception. Collected
    outputs are saved whenever an output folder was given, even after a failure.
    """
    outputter = Outputter(name)
    status = 0
    try:
        body(args, outputter)
    except Exception as e:
        print("\nAn unhandled exception was thrown:\n%s" % e)
        status = 1
    finally:
        if args.output_dir:
            outputter.save(args.output_dir)
    return status
