from collections import OrderedDict

import pandas as pd
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import seaborn as sns

from mbml.config import CROWD_CONFIG
from mbml.common.timer import CodeTimer
from mbml.chapter_07.models import HonestWorkerModel, BiasedWorkerModel, BiasedCommunityModel, \
    BiasedCommunityWordsModel
from mbml.chapter_07.runners import MajorityVoteRunner, ModelRunner
from mbml.chapter_07.vocabulary import CrowdDataWithTextMapping


def build_models(model_types=CROWD_CONFIG.MODEL_TYPES, community_counts=CROWD_CONFIG.COMMUNITY_COUNTS,
                 seed=CROWD_CONFIG.SEED, print_logs=True):
    """
    Output
    --------
    OrderedDict of run name to model, None for the majority vote. There is
    one community model per community count, and the words model uses the
    largest count.
    """
    models = OrderedDict()
    for model_type in model_types:
        if model_type == "MajorityVote":
            models[model_type] = None
        elif model_type == "Honest":
            models[model_type] = HonestWorkerModel(seed=seed, print_logs=print_logs)
        elif model_type == "Biased":
            models[model_type] = BiasedWorkerModel(seed=seed, print_logs=print_logs)
        elif model_type == "Community":
            for count in community_counts:
                models["Community%s" % count] = BiasedCommunityModel(count, seed=seed, print_logs=print_logs)
        elif model_type == "CommunityWords":
            models[model_type] = BiasedCommunityWordsModel(max(community_counts), seed=seed, print_logs=print_logs)
        else:
            raise KeyError("Unknown crowd model type '%s'" % model_type)
    return models


class CrowdExperiment(object):
    """
    Trains every model on growing subsets of the training judgments and
    scores each one on the held out gold tweets.
    """

    def __init__(self, data, model_types=CROWD_CONFIG.MODEL_TYPES, community_counts=CROWD_CONFIG.COMMUNITY_COUNTS,
                 fraction_gold_for_training=CROWD_CONFIG.FRACTION_GOLD_FOR_TRAINING,
                 num_data_sizes=CROWD_CONFIG.NUM_DATA_SIZES, threshold=CROWD_CONFIG.VOCABULARY_THRESHOLD,
                 seed=CROWD_CONFIG.SEED, print_logs=True):
        if num_data_sizes < 1:
            raise ValueError("Need at least one training size, got %s" % num_data_sizes)
        self.data = data
        self.model_types = model_types
        self.community_counts = community_counts
        self.num_data_sizes = num_data_sizes
        self.threshold = threshold
        self.seed = seed
        self.print_logs = print_logs
        self.training, self.validation = data.split_data(fraction_gold_for_training, seed)
        self.rows = []
        self.runners = OrderedDict()

    def training_sizes(self):
        """OrderedDict of size name to judgment count, in equal steps up to every training judgment."""
        total = self.training.number_of_judgments
        return OrderedDict(("TrainingPercent_%d" % (100 * (i + 1) // self.num_data_sizes),
                            int(round(total * (i + 1) / float(self.num_data_sizes))))
                           for i in range(self.num_data_sizes))

    def run_size(self, size_name, judgment_count):
        subset = self.training.limit_data(max_judgments=judgment_count, seed=self.seed)
        print("%s: %s" % (size_name, subset))
        training_mapping = CrowdDataWithTextMapping(subset, threshold=self.threshold)
        validation_mapping = CrowdDataWithTextMapping(self.validation, training_mapping.label_values,
                                                      corpus=training_mapping.corpus)
        runners = OrderedDict()
        for name, model in build_models(self.model_types, self.community_counts, self.seed, self.print_logs).items():
            with CodeTimer("Running %s on %s" % (name, size_name), print_logs=self.print_logs):
                if model is None:
                    training_runner = MajorityVoteRunner(training_mapping).run()
                    validation_runner = MajorityVoteRunner(validation_mapping).run()
                else:
                    training_runner = ModelRunner(training_mapping, model, seed=self.seed).run()
                    validation_runner = ModelRunner(validation_mapping, model, training_runner, seed=self.seed).run()
            runners[name] = (training_runner, validation_runner)
            for split, runner in [("Training", training_runner), ("Validation", validation_runner)]:
                row = OrderedDict([("Size", size_name), ("Judgments", subset.number_of_judgments),
                                   ("Model", name), ("Split", split)])
                row.update(runner.results())
                self.rows.append(row)
        self.runners[size_name] = runners
        return runners

    def run(self):
        print("Training data %s, validation data %s" % (self.training, self.validation))
        for size_name, judgment_count in self.training_sizes().items():
            self.run_size(size_name, judgment_count)
        return self.results_table()

    def results_table(self):
        return pd.DataFrame(self.rows)

    def metric_table(self, metric="Accuracy", split="Validation"):
        """DataFrame [size, model] of one metric."""
        table = self.results_table()
        table = table[table["Split"] == split]
        return table.pivot(index="Size", columns="Model", values=metric).reindex(
            index=list(self.runners), columns=list(self.runners[next(iter(self.runners))]))

    def plot_strip(self, metric="Accuracy", split="Validation"):
        """Strip chart of a metric per model, one point per training size."""
        sns.set_style("darkgrid")
        table = self.results_table()
        table = table[table["Split"] == split]
        fig, ax = plt.subplots(figsize=(8, 4))
        sns.stripplot(data=table, x="Model", y=metric, hue="Size", ax=ax, jitter=False, size=6)
        ax.set_title("%s %s by model" % (split, metric.lower()))
        ax.legend(loc="center left", bbox_to_anchor=(1.0, 0.5), fontsize="small")
        fig.tight_layout()
        return fig

    def plot_learning_curves(self, metric="Accuracy", split="Validation"):
        table = self.metric_table(metric, split)
        fig, ax = plt.subplots(figsize=(8, 4))
        judgments = list(self.training_sizes().values())
        for model in table.columns:
            ax.plot(judgments, table[model].values, marker="o", label=model)
        ax.set_xlabel("Training judgments")
        ax.set_ylabel(metric)
        ax.legend(loc="best")
        return fig
