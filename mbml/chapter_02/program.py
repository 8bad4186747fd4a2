import os
import sys

import numpy as np
import pandas as pd
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
from scipy import stats

from mbml.config import SKILLS_CONFIG, DATA_DIR
from mbml.common.gaussian import Gaussian
from mbml.common.program import build_parser, run_program
from mbml.common.realrange import RealRange
from mbml.chapter_02.data import load_inputs, synthesize_quiz, sample_inputs, toy_three_questions, toy_loopy
from mbml.chapter_02.experiment import Experiment, ExperimentComparison
from mbml.chapter_02.models import (NoisyAndModel, LearnedNoisyAndModel, RandomModel, PerfectModel,
                                    UnrolledModel)


def toy_with_three_questions(outputter):
    experiment = Experiment("ThreeQuestions", toy_three_questions(), UnrolledModel(name="ThreeQuestions"))
    experiment.run()
    table = experiment.inputs.responses_table(include_skills=False)
    table["P(csharp)"] = experiment.results.skills_posteriors[:, 0]
    table["P(sql)"] = experiment.results.skills_posteriors[:, 1]
    print(table)
    outputter.out(table, "Testing out the model", "ThreeQuestionsResults")


def loopy_example(outputter):
    inputs = toy_loopy()
    loopy = Experiment("Loopy", inputs, UnrolledModel(name="Loopy"))
    exact = Experiment("LoopyExact", inputs, UnrolledModel(name="LoopyExact", exact_inference=True))
    loopy.run()
    exact.run()
    comparison = pd.DataFrame({"Loopy": loopy.results.skills_posteriors[0],
                               "Exact": exact.results.skills_posteriors[0]},
                              index=inputs.quiz.skill_names)
    print(comparison)
    histories = pd.DataFrame(dict(loopy.model.message_histories))
    histories.index = np.arange(1, len(histories) + 1)
    histories.index.name = "Iteration"
    outputter.out(histories, "Loopiness", "Loop Messages")
    outputter.out(comparison, "Loopiness", "Comparison")


def probability_density_demo(outputter):
    height = Gaussian(1.84, 0.0001)
    grid = RealRange(1.8, 1.9, 11)
    half = grid.step_size / 2
    masses = [height.cdf(x + half) - height.cdf(x - half) for x in grid.values]
    print("The sum of the probabilities in the stepped plot is %s" % sum(masses))
    print("Area of shaded region in the continuous plot: %s" % (height.cdf(1.845) - height.cdf(1.835)))

    fig, ax = plt.subplots(figsize=(8, 5))
    ax.bar(grid.values, masses, width=grid.step_size, alpha=0.4, label="Discrete")
    fine = RealRange(1.8, 1.9, 1000).values
    ax.plot(fine, height.pdf(fine) * grid.step_size, label="Continuous (scaled)")
    ax.set_xlabel("Height (m)")
    ax.legend()
    outputter.out(fig, "Learning the guess probabilities", "PDF Demo")

    fig, ax = plt.subplots(figsize=(8, 5))
    x = RealRange(0, 1, 500).values
    for a, b in [(1, 1), (2, 2), (2, 5), (4, 10), (8, 20)]:
        ax.plot(x, stats.beta.pdf(x, a, b), label="Beta(%s, %s)" % (a, b))
    ax.legend()
    outputter.out(fig, "Learning the guess probabilities", "Betas")


def load_or_synthesize(data_dir, seed):
    folder = os.path.join(data_dir, "skills")
    if os.path.exists(os.path.join(folder, "responses.tsv")):
        print("Loading quiz data from '%s'" % folder)
        return load_inputs(folder)
    print("No quiz data in '%s', synthesizing responses" % folder)
    quiz = synthesize_quiz(seed=seed)
    rng = np.random.RandomState(seed)
    # Harder questions have higher guess probabilities, which the learned model can recover
    prob_guess = rng.beta(2.5, 7.5, size=quiz.number_of_questions)
    return sample_inputs(quiz, 22, prob_guess=prob_guess, seed=seed)


def real_data_inference(outputter, data_dir, seed):
    inputs = load_or_synthesize(data_dir, seed)
    outputter.out(inputs.responses_table(), "Moving to real data", "Inputs")

    original = NoisyAndModel(name="Original")
    experiments = [
        Experiment("Random", inputs, RandomModel()),
        Experiment("Original", inputs, original),
        Experiment("SampleSkillsObserved", original.sample_inputs(inputs, skills=inputs.stated_skills, seed=seed + 1),
                   NoisyAndModel(name="SampleSkillsObserved")),
        Experiment("SampleSkillsSampled", original.sample_inputs(inputs, seed=seed + 2),
                   NoisyAndModel(name="SampleSkillsSampled")),
        Experiment("Learned", inputs, LearnedNoisyAndModel(seed=seed)),
        Experiment("Perfect", inputs, PerfectModel()),
    ]
    comparison = ExperimentComparison(experiments)
    comparison.announce_and_run_all()

    table = comparison.metrics_table()
    print(table)
    outputter.out(table, "Learning the guess probabilities", "Comparison")
    outputter.out(comparison.log_prob_per_skill_table(), "Learning the guess probabilities", "LogProbPerSkill")
    outputter.out(comparison.plot_roc(), "Learning the guess probabilities", "ROC")
    outputter.out(comparison.plot_calibration(), "Learning the guess probabilities", "Calibration")
    for experiment in experiments:
        outputter.out(experiment.posteriors_table(), "Posteriors", experiment.name)
    outputter.out(experiments[1].plot_posteriors(), "Posteriors", "Original heat map")

    guesses = experiments[4].guess_table()
    outputter.out(guesses.iloc[::5], "Learning the guess probabilities", "SelectedGuessPosteriors")


def run(args, outputter):
    seed = SKILLS_CONFIG.SEED if args.seed is None else args.seed
    data_dir = args.data_dir or str(DATA_DIR)
    toy_with_three_questions(outputter)
    loopy_example(outputter)
    probability_density_demo(outputter)
    real_data_inference(outputter, data_dir, seed)


def main(argv=None):
    args = build_parser("Assessing people's skills").parse_args(argv)
    return run_program(run, args, name="Assessing People's Skills")


if __name__ == "__main__":
    sys.exit(main())
