import os
import sys
import tempfile

from mbml.config import CROWD_CONFIG, DATA_DIR
from mbml.common.program import build_parser, run_program
from mbml.chapter_07.data import CrowdSynthesizer, load_crowd_data, LABELS_FILE
from mbml.chapter_07.experiment import CrowdExperiment
from mbml.chapter_07.runners import plot_confusion_matrix


def load_or_synthesize(data_dir, output_dir, seed):
    folder = os.path.join(data_dir, "crowd")
    if os.path.exists(os.path.join(folder, LABELS_FILE)):
        print("Loading crowd data from '%s'" % folder)
        return load_crowd_data(folder)
    print("No crowd data in '%s', synthesizing it" % folder)
    target = os.path.join(output_dir, "Data") if output_dir else tempfile.mkdtemp(prefix="mbml_crowd_")
    return CrowdSynthesizer(seed=seed).synthesize(target)


def output_runners(outputter, size_name, runners):
    for name, (training, validation) in runners.items():
        outputter.out(validation.confusion_matrix(), size_name, name, "Confusion matrix")
        outputter.out(plot_confusion_matrix(validation), size_name, name, "Confusion matrix plot")
        errors = validation.errors()
        if len(errors):
            outputter.out(errors, size_name, name, "Errors")
        if name == "Honest":
            outputter.out(training.worker_abilities().to_frame(), size_name, name, "Worker abilities")
            outputter.out(training.ability_histogram().to_frame(), size_name, name, "Ability histogram")
        elif name == "Biased":
            # The busiest workers only
            busiest = training.mapping.data.judgments_per_worker().most_common(5)
            cpts = training.worker_cpts()
            for worker_id, _ in busiest:
                outputter.out(cpts[worker_id], size_name, name, "Worker CPTs", worker_id)
        elif name.startswith("Community"):
            for community, cpt in training.community_cpts().items():
                outputter.out(cpt, size_name, name, "Community CPTs", community)
            outputter.out(training.community_sizes().to_frame("Workers"), size_name, name, "Community sizes")
            if name == "CommunityWords":
                outputter.out(training.most_informative_words(), size_name, name, "Most informative words")


def run(args, outputter):
    seed = CROWD_CONFIG.SEED if args.seed is None else args.seed
    data = load_or_synthesize(args.data_dir or str(DATA_DIR), args.output_dir, seed)
    print("Crowd data %s" % data)
    outputter.out(data.workers(), "Data", "Workers")

    experiment = CrowdExperiment(data, seed=seed)
    results = experiment.run()
    print(experiment.metric_table())
    outputter.out(results, "Results", "All")
    for metric in ["Accuracy", "AverageRecall", "AverageLogProb"]:
        outputter.out(experiment.metric_table(metric), "Results", metric)
        outputter.out(experiment.plot_strip(metric), "Results", "%s strip chart" % metric)
    outputter.out(experiment.plot_learning_curves(), "Results", "Accuracy learning curves")
    largest = list(experiment.runners)[-1]
    output_runners(outputter, largest, experiment.runners[largest])


def main(argv=None):
    args = build_parser("Harnessing the crowd").parse_args(argv)
    return run_program(run, args, name="Harnessing The Crowd")


if __name__ == "__main__":
    sys.exit(main())
