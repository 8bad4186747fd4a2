import numpy as np
import pandas as pd
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import seaborn as sns
import plotly.express as px

from mbml.config import SKILLS_CONFIG
from mbml.common import metrics
from mbml.common.numerics import bin_values, mean_squared_error
from mbml.common.timer import CodeTimer


class Experiment(object):
    """
    Runs one model on one set of inputs and scores the skill posteriors
    against the stated skills when they are known.
    """

    def __init__(self, name, inputs, model, print_logs=True):
        self.name = name
        self.inputs = inputs
        self.model = model
        self.print_logs = print_logs
        self.results = None

    def run(self):
        with CodeTimer("Running %s" % self.name, print_logs=self.print_logs):
            self.results = self.model.infer(self.inputs)
        return self.results

    @property
    def has_ground_truth(self):
        return self.inputs.stated_skills is not None

    def _flat(self):
        if self.results is None:
            raise ValueError("Experiment '%s' has not been run" % self.name)
        if not self.has_ground_truth:
            raise ValueError("Experiment '%s' has no stated skills to score against" % self.name)
        return self.results.skills_posteriors.ravel(), self.inputs.stated_skills.ravel()

    @property
    def log_prob_of_truth(self):
        predicted, truth = self._flat()
        return metrics.log_prob_of_truth(predicted, truth)

    @property
    def log_prob_of_truth_per_skill(self):
        posteriors = self.results.skills_posteriors
        truth = self.inputs.stated_skills
        return [metrics.log_prob_of_truth(posteriors[:, s], truth[:, s]) for s in range(truth.shape[1])]

    @property
    def mean_squared_error(self):
        predicted, truth = self._flat()
        return mean_squared_error(predicted, truth.astype(float))

    @property
    def fraction_correct(self):
        predicted, truth = self._flat()
        return metrics.fraction_correct(predicted, truth)

    @property
    def roc_curve(self):
        predicted, truth = self._flat()
        return metrics.roc_curve(predicted, truth)

    @property
    def area_under_curve(self):
        predicted, truth = self._flat()
        return metrics.area_under_roc_curve(predicted, truth)

    @property
    def calibration_curve(self):
        predicted, truth = self._flat()
        return metrics.calibration_curve(predicted, truth, bins=SKILLS_CONFIG.CALIBRATION_BINS)

    def histogram(self, bins=10):
        return bin_values(self.results.skills_posteriors.ravel(), bins)

    def posteriors_table(self):
        quiz = self.inputs.quiz
        return pd.DataFrame(self.results.skills_posteriors,
                            index=["P%s" % (p + 1) for p in range(self.inputs.number_of_people)],
                            columns=quiz.skill_short_names)

    def guess_table(self):
        if self.results.guess_posteriors is None:
            return None
        return pd.DataFrame({
            "Question": ["Q%s" % (q + 1) for q in range(len(self.results.guess_posteriors))],
            "Mean": [g.mean for g in self.results.guess_posteriors],
            "Alpha": [g.alpha for g in self.results.guess_posteriors],
            "Beta": [g.beta for g in self.results.guess_posteriors],
        }).set_index("Question")

    def plot_posteriors(self):
        """Interactive heat map of people by skills."""
        fig = px.imshow(self.posteriors_table().values, aspect="auto", zmin=0, zmax=1,
                        labels=dict(x="Skill", y="Person", color="P(skill)"),
                        x=self.inputs.quiz.skill_short_names)
        fig.update_layout(title="Skill posteriors for '%s'" % self.name)
        return fig


class ExperimentComparison(object):

    def __init__(self, experiments):
        self.experiments = list(experiments)

    def announce_and_run_all(self):
        for experiment in self.experiments:
            print("Running %s" % experiment.name)
            experiment.run()

    def metrics_table(self):
        rows = []
        for experiment in self.experiments:
            if not experiment.has_ground_truth:
                continue
            rows.append({
                "Model": experiment.name,
                "LogProbOfTruth": experiment.log_prob_of_truth,
                "MeanSquaredError": experiment.mean_squared_error,
                "FractionCorrect": experiment.fraction_correct,
                "AUC": experiment.area_under_curve,
            })
        return pd.DataFrame(rows).set_index("Model")

    def roc_labels(self):
        return ["%s (AUC=%.1f%%)" % (e.name, 100 * e.area_under_curve) for e in self.experiments if e.has_ground_truth]

    def plot_roc(self):
        sns.set_style("darkgrid")
        fig, ax = plt.subplots(figsize=(7, 7))
        scored = [e for e in self.experiments if e.has_ground_truth]
        for experiment, label in zip(scored, self.roc_labels()):
            x, y = zip(*experiment.roc_curve)
            ax.plot(x, y, label=label)
        ax.plot([0, 1], [0, 1], "k--", linewidth=0.5)
        ax.set_xlabel("False positive rate")
        ax.set_ylabel("True positive rate")
        ax.legend()
        return fig

    def plot_calibration(self):
        sns.set_style("darkgrid")
        fig, ax = plt.subplots(figsize=(7, 7))
        for experiment in self.experiments:
            if not experiment.has_ground_truth:
                continue
            points = experiment.calibration_curve
            if points:
                x, y = zip(*points)
                ax.plot(x, y, marker="o", label=experiment.name)
        ax.plot([0, 1], [0, 1], "k--", linewidth=0.5)
        ax.set_xlabel("Predicted probability")
        ax.set_ylabel("Empirical probability")
        ax.legend()
        return fig

    def log_prob_per_skill_table(self):
        columns = {}
        for experiment in self.experiments:
            if experiment.has_ground_truth:
                columns[experiment.name] = experiment.log_prob_of_truth_per_skill
        skill_names = self.experiments[0].inputs.quiz.skill_short_names
        return pd.DataFrame(columns, index=skill_names)
