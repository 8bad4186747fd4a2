import numpy as np
import pandas as pd
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import seaborn as sns

from mbml.config import INBOX_CONFIG
from mbml.common import metrics
from mbml.common.timer import CodeTimer


class UserResults(object):
    """Predicted reply probabilities for one user's messages, with the metrics the chapter reports."""

    def __init__(self, user, messages, probabilities):
        self.user = user
        self.messages = messages
        self.probabilities = np.asarray(probabilities, dtype=float)
        self.labels = np.array([m.is_replied for m in messages], dtype=bool)

    @property
    def has_both_classes(self):
        return 0 < self.labels.sum() < len(self.labels)

    @property
    def reply_count(self):
        return int(self.labels.sum())

    @property
    def reply_fraction(self):
        return float(self.labels.mean()) if len(self.labels) else 0.0

    @property
    def roc_curve(self):
        return metrics.roc_curve(self.probabilities, self.labels)

    @property
    def area_under_curve(self):
        return metrics.area_under_roc_curve(self.probabilities, self.labels) if self.has_both_classes else float("nan")

    @property
    def precision_recall_curve(self):
        return metrics.precision_recall_curve(self.probabilities, self.labels)

    @property
    def average_precision(self):
        if not self.has_both_classes:
            return float("nan")
        lower, upper = INBOX_CONFIG.RECALL_WINDOW
        return metrics.average_precision(self.precision_recall_curve, lower, upper)

    @property
    def calibration_curve(self):
        return metrics.calibration_curve(self.probabilities, self.labels, bins=INBOX_CONFIG.CALIBRATION_BINS,
                                         min_count=INBOX_CONFIG.MIN_BIN_COUNT)

    @property
    def calibration_error(self):
        points = self.calibration_curve
        return metrics.calibration_error(points) if points else float("nan")

    def summary(self):
        return {"User": self.user.name, "Messages": len(self.messages), "Replies": self.reply_count,
                "ReplyFraction": self.reply_fraction, "AUC": self.area_under_curve,
                "AveragePrecision": self.average_precision, "CalibrationError": self.calibration_error}


def _summary_table(results):
    table = pd.DataFrame([r.summary() for r in results]).set_index("User")
    table.loc["Average"] = table.mean(numeric_only=True)
    return table


class Experiment(object):
    """
    Trains a personal model per user on their training messages and
    predicts their validation and test messages. A community model, when
    given, is trained on every user first and provides each personal prior;
    its own predictions, made before any personal training, are kept in
    `community_results`.
    """

    def __init__(self, name, users, model, community=None, print_logs=True):
        self.name = name
        self.users = users
        self.model = model
        self.community = community
        self.print_logs = print_logs
        self.posteriors = {}
        self.results = []
        self.validation_results = []
        self.community_results = []

    def run(self):
        if self.community is not None:
            with CodeTimer("Training community for %s" % self.name, print_logs=self.print_logs):
                self.community.train(self.users)
        self.results, self.validation_results, self.community_results = [], [], []
        for user in self.users:
            with CodeTimer("Training %s for %s" % (self.name, user.name), print_logs=self.print_logs):
                prior = self.community.personal_prior(user) if self.community is not None else None
                posterior = self.model.train(user, user.train, prior)
            self.posteriors[user.name] = posterior
            self.validation_results.append(
                UserResults(user, user.validation, self.model.predict(user, user.validation, posterior)))
            self.results.append(UserResults(user, user.test, self.model.predict(user, user.test, posterior)))
            if self.community is not None:
                self.community_results.append(UserResults(user, user.test, self.community.predict(user, user.test)))
        return self.results

    def summary_table(self, validation=False):
        """Per-user metrics on the test messages, or on the validation messages."""
        return _summary_table(self.validation_results if validation else self.results)

    def community_table(self):
        if not self.community_results:
            raise ValueError("Experiment %s has no community model results" % self.name)
        return _summary_table(self.community_results)

    def weights_table(self, user):
        posterior = self.posteriors[user.name]
        return pd.DataFrame({"Mean": [w.mean for w in posterior.weights] + [posterior.threshold.mean],
                             "StdDev": [w.sd for w in posterior.weights] + [posterior.threshold.sd]},
                            index=list(posterior.bucket_names) + ["Threshold"])

    def plot_curves(self):
        """ROC, precision-recall and calibration curves for every user."""
        sns.set_style("darkgrid")
        fig, axes = plt.subplots(1, 3, figsize=(18, 6))
        for result in self.results:
            if not result.has_both_classes:
                continue
            x, y = zip(*result.roc_curve)
            axes[0].plot(x, y, label="%s (AUC=%.1f%%)" % (result.user.name, 100 * result.area_under_curve))
            x, y = zip(*result.precision_recall_curve)
            axes[1].plot(x, y, label="%s (AP=%.1f%%)" % (result.user.name, 100 * result.average_precision))
            points = result.calibration_curve
            if points:
                x, y = zip(*points)
                axes[2].plot(x, y, marker="o", label=result.user.name)
        axes[0].set_title("ROC")
        axes[1].set_title("Precision-recall")
        axes[2].set_title("Calibration")
        for ax in (axes[0], axes[2]):
            ax.plot([0, 1], [0, 1], "k--", linewidth=0.5)
        for ax in axes:
            ax.legend(fontsize="small")
        return fig


class OnlineExperiment(object):
    """
    Trains each user's model on batches of their training messages, starting
    each batch from the previous posterior, and scores the validation messages
    after every batch. Users are cut to the smallest training set so every
    batch index averages over all of them.
    """

    def __init__(self, users, model, batch_sizes=None, print_logs=True):
        self.users = users
        self.model = model
        self.batch_sizes = list(INBOX_CONFIG.ONLINE_BATCH_SIZES if batch_sizes is None else batch_sizes)
        if not self.batch_sizes or min(self.batch_sizes) < 1:
            raise ValueError("Batch sizes must be positive, got %s" % self.batch_sizes)
        self.print_logs = print_logs
        self.average_precision = None
        self.area_under_curve = None

    def run_user(self, user, batch_size, limit):
        """List of (messages seen, validation results) after each batch."""
        posterior = None
        points = []
        for start in range(0, limit, batch_size):
            seen = min(start + batch_size, limit)
            posterior = self.model.train(user, user.train[start:seen], posterior)
            points.append((seen, UserResults(user, user.validation,
                                             self.model.predict(user, user.validation, posterior))))
        return points

    def run(self):
        limit = min(len(u.train) for u in self.users)
        if limit == 0:
            raise ValueError("Every user needs training messages for the online experiment")
        ap, auc = {}, {}
        for batch_size in self.batch_sizes:
            with CodeTimer("Online training in batches of %d" % batch_size, print_logs=self.print_logs):
                per_user = [self.run_user(u, batch_size, limit) for u in self.users]
            seen = [n for n, _ in per_user[0]]
            ap[batch_size] = pd.Series([np.nanmean([points[i][1].average_precision for points in per_user])
                                        for i in range(len(seen))], index=seen)
            auc[batch_size] = pd.Series([np.nanmean([points[i][1].area_under_curve for points in per_user])
                                         for i in range(len(seen))], index=seen)
        self.average_precision = pd.DataFrame(ap)
        self.average_precision.index.name = "Messages"
        self.area_under_curve = pd.DataFrame(auc)
        self.area_under_curve.index.name = "Messages"
        return self.average_precision

    def plot(self):
        sns.set_style("darkgrid")
        fig, axes = plt.subplots(1, 2, figsize=(14, 5))
        for batch_size in self.batch_sizes:
            axes[0].plot(self.average_precision.index, self.average_precision[batch_size],
                         marker=".", label="Batch %d" % batch_size)
            axes[1].plot(self.area_under_curve.index, self.area_under_curve[batch_size],
                         marker=".", label="Batch %d" % batch_size)
        axes[0].set_title("Validation average precision")
        axes[1].set_title("Validation AUC")
        for ax in axes:
            ax.set_xlabel("Training messages")
            ax.legend(fontsize="small")
        return fig


def comparison_table(experiments, validation=False):
    """Average metrics of each experiment side by side."""
    return pd.DataFrame({e.name: e.summary_table(validation).loc["Average"] for e in experiments}).T
