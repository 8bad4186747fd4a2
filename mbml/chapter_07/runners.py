from collections import OrderedDict

import numpy as np
import pandas as pd
import plotly.express as px

from mbml.config import CROWD_CONFIG
from mbml.common import metrics
from mbml.common.numerics import arg_max
from mbml.chapter_07.vocabulary import CrowdDataWithTextMapping


class RunnerBase(object):
    """Predicts the label of each tweet of a data mapping and scores the predictions against its gold labels."""

    name = "Base"

    def __init__(self, mapping, seed=CROWD_CONFIG.SEED):
        self.mapping = mapping
        self.seed = seed
        self.predictions = OrderedDict()
        self.true_label = None

    @property
    def gold_labels(self):
        return self.mapping.data.gold_labels

    def run(self):
        raise NotImplementedError

    def graded(self):
        """(gold, predicted) label lists over the gold tweets that have a prediction."""
        tweets = [t for t in self.gold_labels if t in self.predictions]
        return [self.gold_labels[t] for t in tweets], [self.predictions[t] for t in tweets]

    def confusion_matrix(self):
        gold, predicted = self.graded()
        matrix = metrics.confusion_matrix(gold, predicted, self.mapping.label_values)
        names = self.mapping.label_names()
        matrix.index = ["%s (True)" % n for n in names]
        matrix.columns = ["%s (Inferred)" % n for n in names]
        return matrix

    @property
    def accuracy(self):
        return metrics.accuracy(*self.graded())

    @property
    def average_recall(self):
        gold, predicted = self.graded()
        return metrics.average_recall(metrics.confusion_matrix(gold, predicted, self.mapping.label_values))

    @property
    def average_log_prob(self):
        """Mean over gold tweets of log P(gold label), each floored at log LOG_PROB_FLOOR."""
        if self.true_label is None:
            return float("nan")
        index = self.mapping.tweet_id_to_index
        values = []
        for tweet_id, label in self.gold_labels.items():
            if tweet_id in index:
                p = self.true_label[index[tweet_id], self.mapping.label_value_to_index[label]]
                values.append(np.log(max(p, CROWD_CONFIG.LOG_PROB_FLOOR)))
        return float(np.mean(values)) if values else float("nan")

    def results(self):
        return OrderedDict([("Accuracy", self.accuracy), ("AverageRecall", self.average_recall),
                            ("AverageLogProb", self.average_log_prob)])

    def errors(self):
        """Gold tweets whose predicted label is wrong, with their text where it is known."""
        texts = getattr(self.mapping.data, "texts", {})
        rows = []
        for tweet_id, gold in self.gold_labels.items():
            predicted = self.predictions.get(tweet_id)
            if predicted is not None and predicted != gold:
                rows.append({"Tweet": tweet_id, "Gold": CROWD_CONFIG.LABELS.get(gold, gold),
                             "Inferred": CROWD_CONFIG.LABELS.get(predicted, predicted),
                             "Text": texts.get(tweet_id, "")})
        return pd.DataFrame(rows, columns=["Tweet", "Gold", "Inferred", "Text"])


class MajorityVoteRunner(RunnerBase):
    name = "MajorityVote"

    def run(self):
        self.predictions = self.mapping.data.majority_vote_labels()
        return self


class RandomRunner(RunnerBase):
    """Uniform label probabilities; the predicted label is chosen at random among the tied labels."""

    name = "Random"

    def run(self):
        self.true_label = np.full((self.mapping.tweet_count, self.mapping.label_count), 1.0 / self.mapping.label_count)
        self.predictions = self._predict()
        return self

    def _predict(self):
        rng = np.random.RandomState(self.seed)
        return OrderedDict((t, self.mapping.label_values[arg_max(self.true_label[i], rng)])
                           for i, t in enumerate(self.mapping.tweet_ids))


class ModelRunner(RandomRunner):
    """
    Trains a crowd model on a training mapping, or, given the runner that
    trained it, infers each tweet of a validation mapping separately with
    the trained posteriors as priors.
    """

    def __init__(self, mapping, model, training_runner=None, validation_iterations=5, seed=CROWD_CONFIG.SEED):
        super(ModelRunner, self).__init__(mapping, seed)
        self.model = model
        self.training_runner = training_runner
        self.validation_iterations = validation_iterations
        self.posteriors = None

    @property
    def name(self):
        return self.model.name

    def run(self):
        if self.training_runner is None:
            self.posteriors = self.model.infer(self.mapping.inputs(use_gold=True))
            self.true_label = self.posteriors.true_label
        else:
            self.true_label = self._validate()
        self.predictions = self._predict()
        return self

    def _validate(self):
        trained = self.training_runner.posteriors
        if trained is None:
            raise ValueError("The training runner of %s has not been run" % self.name)
        training_workers = self.training_runner.mapping.worker_id_to_index
        result = np.zeros((self.mapping.tweet_count, self.mapping.label_count))
        for i, tweet_id in enumerate(self.mapping.tweet_ids):
            single = self.mapping.restrict_to_single_tweet(tweet_id)
            inputs = single.inputs(use_gold=False)
            worker_map = [training_workers.get(w, -1) for w in single.worker_ids]
            priors = self.model.priors_from_posteriors(trained, inputs, worker_map)
            posteriors = self.model.infer(inputs, priors, max_iterations=self.validation_iterations, print_logs=False)
            result[i] = posteriors.true_label[0]
        return result

    def worker_abilities(self):
        """Mean ability of each worker, for the honest worker model."""
        ability = self.posteriors["ability"]
        return pd.Series(ability[:, 0] / ability.sum(axis=1), index=self.mapping.worker_ids, name="Ability")

    def ability_histogram(self, bins=50):
        counts, edges = np.histogram(self.worker_abilities().values, bins=bins, range=(0.0, 1.0))
        return pd.Series(counts, index=np.round(0.5 * (edges[:-1] + edges[1:]), 4), name="Workers")

    def _cpt_frame(self, counts):
        names = self.mapping.label_names()
        means = counts / counts.sum(axis=1, keepdims=True)
        return pd.DataFrame(means, index=["%s (True)" % n for n in names], columns=["%s (Worker)" % n for n in names])

    def worker_cpts(self):
        """OrderedDict of worker id to the mean of their confusion matrix, for the biased worker model."""
        cpts = self.posteriors["worker_cpt"]
        return OrderedDict((w, self._cpt_frame(cpts[i])) for i, w in enumerate(self.mapping.worker_ids))

    def community_cpts(self):
        cpts = self.posteriors["community_cpt"]
        return OrderedDict(("Community %s" % c, self._cpt_frame(cpts[c])) for c in range(len(cpts)))

    def communities(self):
        """DataFrame [worker, community] of P(worker in community)."""
        s = self.posteriors["community"]
        return pd.DataFrame(s, index=self.mapping.worker_ids,
                            columns=["Community %s" % c for c in range(s.shape[1])])

    def community_sizes(self):
        return self.communities().idxmax(axis=1).value_counts().sort_index()

    def most_informative_words(self, count=30):
        """
        Output
        --------
        DataFrame with, per label, the words whose log probability most exceeds
        the average over the labels
        """
        if not isinstance(self.mapping, CrowdDataWithTextMapping):
            raise ValueError("%s was not trained on tweet texts" % self.name)
        words = self.posteriors["words"]
        log_prob = np.log(words / words.sum(axis=1, keepdims=True))
        relative = log_prob - log_prob.mean(axis=0, keepdims=True)
        vocabulary = np.array(self.mapping.vocabulary)
        columns = OrderedDict()
        for k, name in enumerate(self.mapping.label_names()):
            order = np.argsort(-relative[k], kind="stable")[:count]
            columns[name] = list(vocabulary[order])
        size = min(count, len(vocabulary))
        return pd.DataFrame(columns, index=range(1, size + 1))


def plot_confusion_matrix(runner, title=None):
    """Interactive heat map of a runner's confusion matrix, rows normalized to percentages."""
    matrix = runner.confusion_matrix()
    totals = matrix.sum(axis=1).replace(0, 1)
    percentages = 100.0 * matrix.div(totals, axis=0)
    fig = px.imshow(percentages.values, zmin=0, zmax=100, x=list(matrix.columns), y=list(matrix.index),
                    labels=dict(x="Inferred", y="True", color="%"), text_auto=".1f")
    fig.update_layout(title=title or "Confusion matrix of %s" % runner.name)
    return fig
