import numpy as np
import pandas as pd
from sklearn import metrics as skmetrics

from mbml.common.numerics import integrate_points


def log_prob_of_truth(probabilities, truth, floor=None):
    """
    Input
    -------
    probabilities: predicted probability that each binary truth value is True
    truth: array of booleans
    floor: optional lower bound on the probability assigned to the truth

    Output
    --------
    Average log probability assigned to the true values.
    """
    probabilities = np.asarray(probabilities, dtype=float)
    truth = np.asarray(truth, dtype=bool)
    p = np.where(truth, probabilities, 1 - probabilities)
    if floor is not None:
        p = np.maximum(p, floor)
    with np.errstate(divide="ignore"):
        return float(np.mean(np.log(p)))


def fraction_correct(probabilities, truth, threshold=0.5):
    probabilities = np.asarray(probabilities, dtype=float)
    truth = np.asarray(truth, dtype=bool)
    return float(np.mean((probabilities > threshold) == truth))


def roc_curve(scores, labels):
    """
    Output
    --------
    List of (false positive rate, true positive rate) points, starting at (0, 0),
    with tied scores moved together.
    """
    scores, labels = _check_both_classes(scores, labels, "ROC curve")
    fpr, tpr, _ = skmetrics.roc_curve(labels.astype(int), scores, drop_intermediate=False)
    return [(float(x), float(y)) for x, y in zip(fpr, tpr)]


def area_under_roc_curve(scores, labels):
    scores, labels = _check_both_classes(scores, labels, "Area under the ROC curve")
    return float(skmetrics.roc_auc_score(labels.astype(int), scores))


def precision_recall_curve(scores, labels):
    """List of (recall, precision) points in order of decreasing score threshold."""
    scores = np.asarray(scores, dtype=float)
    labels = np.asarray(labels, dtype=bool)
    if labels.sum() == 0:
        raise ValueError("Precision/recall curve needs at least one positive instance")
    precision, recall, _ = skmetrics.precision_recall_curve(labels.astype(int), scores)
    # the last point is the (recall 0, precision 1) end added by sklearn
    return [(float(r), float(p)) for r, p in zip(recall[-2::-1], precision[-2::-1])]


def _check_both_classes(scores, labels, name):
    scores = np.asarray(scores, dtype=float)
    labels = np.asarray(labels, dtype=bool)
    positives = labels.sum()
    if positives == 0 or positives == len(labels):
        raise ValueError("%s needs both positive and negative instances" % name)
    return scores, labels


def average_precision(curve, lower=0.0, upper=1.0):
    """
    Input
    -------
    curve: (recall, precision) points
    lower, upper: recall window, swapped if given in the wrong order

    Output
    --------
    Area under the precision/recall curve strictly inside the window, divided
    by the width of the recall range covered.
    """
    if not 0.0 <= lower <= 1.0:
        raise ValueError("lower should be in the range [0,1]")
    if not 0.0 <= upper <= 1.0:
        raise ValueError("upper should be in the range [0,1]")
    if lower > upper:
        lower, upper = upper, lower
    in_range = [p for p in curve if lower < p[0] < upper]
    if len(in_range) < 2:
        return float(np.mean([p[1] for p in in_range])) if in_range else float("nan")
    x1, x2 = in_range[0][0], in_range[-1][0]
    if x2 == x1:
        return float(np.mean([p[1] for p in in_range]))
    return integrate_points(in_range) / (x2 - x1)


def calibration_curve(probabilities, labels, bins=10, min_count=1):
    """
    Output
    --------
    List of (mean predicted probability, empirical positive fraction) for each
    bin holding at least `min_count` instances.
    """
    probabilities = np.asarray(probabilities, dtype=float)
    labels = np.asarray(labels, dtype=bool)
    index = np.minimum((probabilities * bins).astype(int), bins - 1)
    points = []
    for b in range(bins):
        mask = index == b
        if mask.sum() >= max(min_count, 1):
            points.append((float(probabilities[mask].mean()), float(labels[mask].mean())))
    return points


def calibration_error(points):
    if not points:
        return float("nan")
    return float(np.sqrt(np.mean([(x - y) ** 2 for x, y in points])))


def ndcg(predicted_order_gains, ideal_gains, rank=5):
    """
    Input
    -------
    predicted_order_gains: gains of the items in the order the model ranked them
    ideal_gains: the same gains, in any order
    rank: number of leading positions scored

    Output
    --------
    Normalised discounted cumulative gain at `rank`.
    """
    def dcg(gains):
        gains = np.asarray(gains, dtype=float)[:rank]
        return float(np.sum(gains / np.log2(np.arange(2, len(gains) + 2))))

    ideal = dcg(sorted(ideal_gains, reverse=True))
    if ideal == 0:
        return 0.0
    return dcg(predicted_order_gains) / ideal


def mean_absolute_error(predicted, actual):
    predicted = np.asarray(predicted, dtype=float)
    actual = np.asarray(actual, dtype=float)
    if len(actual) == 0:
        return float("nan")
    return float(np.mean(np.abs(predicted - actual)))


def confusion_matrix(actual, predicted, labels):
    """Counts with actual labels as rows and predicted labels as columns."""
    labels = list(labels)
    actual = list(actual)
    if not actual:
        return pd.DataFrame(0, index=labels, columns=labels)
    counts = skmetrics.confusion_matrix(actual, list(predicted), labels=labels)
    return pd.DataFrame(counts, index=labels, columns=labels)


def accuracy(actual, predicted):
    actual = list(actual)
    if not actual:
        return float("nan")
    return sum(a == p for a, p in zip(actual, predicted)) / len(actual)


def average_recall(confusion):
    """Mean over classes with at least one instance of the per-class recall."""
    recalls = []
    for label in confusion.index:
        total = confusion.loc[label].sum()
        if total > 0:
            recalls.append(confusion.loc[label, label] / total)
    return float(np.mean(recalls)) if recalls else float("nan")
