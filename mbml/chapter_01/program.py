import sys

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import seaborn as sns

from mbml.chapter_01.murder import MurderMystery, WEAPONS
from mbml.common.program import build_parser, run_program
from mbml.common.timer import CodeTimer


def plot_progression(progression):
    sns.set_style("darkgrid")
    fig, ax = plt.subplots(figsize=(8, 5))
    progression.T.plot.bar(stacked=True, ax=ax)
    ax.set_ylabel("Probability")
    ax.set_title("Who did it?")
    return fig


def run(args, outputter):
    mystery = MurderMystery()

    with CodeTimer("Computing joint tables"):
        outputter.out(mystery.joint_murderer_weapon(), "Joint", "Murderer and weapon")
        outputter.out(mystery.conditional_weapon(), "Conditional", "Weapon given murderer")
        outputter.out(mystery.joint_murderer_hair(weapon=0), "Joint", "Murderer and hair after weapon")

    with CodeTimer("Inferring the murderer"):
        progression = mystery.progression(weapon=0, hair=True)

    print("\nPosterior over suspects (weapon = %s, hair found):\n%s" % (WEAPONS[0], progression))
    outputter.out(progression, "Posteriors", "Progression")
    outputter.out(plot_progression(progression), "Posteriors", "Progression chart")


def main(argv=None):
    args = build_parser("The murder mystery").parse_args(argv)
    return run_program(run, args, name="Murder Mystery")


if __name__ == "__main__":
    sys.exit(main())
