from collections import OrderedDict

import numpy as np
import pandas as pd
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import seaborn as sns

from mbml.common.gaussian import BetaSummary
from mbml.chapter_06.data import TESTS, YEARS

# Series of the sensitization plots, by expected count of sensitizations [low, high)
SENSITIZATION_SERIES = [("<1 sensitization", 0, 1), ("1-2 sensitizations", 1, 2), (">2 sensitizations", 2, np.inf)]


def plus_minus_string(beta):
    """
    Interquartile range of a Beta as `"mid%±delta%"`, e.g. `"64.7%±0.53%"`.
    The delta keeps as few decimals as it can without rounding to zero.
    """
    lower = max(beta.quantile(0.25), 0.0)
    upper = min(beta.quantile(0.75), 1.0)
    middle = 0.5 * (lower + upper)
    delta = upper - middle
    rounded = delta
    for digits in range(3, 10):
        rounded = round(delta, digits)
        if rounded > 0.0:
            break
    delta_text = ("%.4f" % (100 * rounded)).rstrip("0").rstrip(".")
    return "%.1f%%±%s%%" % (100 * middle, delta_text)


def class_keys(counts):
    """Names of classes by their sizes, with a `_k` suffix for repeated sizes."""
    keys = []
    for count in counts:
        key = str(count)
        k = 1
        while key in keys:
            key = "%s_%s" % (count, k)
            k += 1
        keys.append(key)
    return keys


def sorted_classes(beliefs):
    """
    Output
    --------
    OrderedDict of class key to (class index, child indices), largest class first
    """
    modes = beliefs.vulnerability_class
    counts = np.array([(modes == c).sum() for c in range(beliefs.number_of_classes)])
    order = np.argsort(-counts, kind="stable")
    keys = class_keys(counts[order])
    return OrderedDict((key, (int(c), np.where(modes == c)[0])) for key, c in zip(keys, order))


def sensitization_per_allergen_per_class(beliefs, use_percentages=False):
    """Children of each class per series, by allergen, from the expected sensitizations summed over years."""
    result = OrderedDict()
    for key, (c, children) in sorted_classes(beliefs).items():
        expected = beliefs.sensitization[:, children, :].sum(axis=0)
        scale = 100.0 / len(children) if use_percentages and len(children) else 1.0
        result[key] = pd.DataFrame(
            dict((name, [scale * ((expected[:, a] >= low) & (expected[:, a] < high)).sum()
                         for a in range(len(beliefs.allergens))]) for name, low, high in SENSITIZATION_SERIES),
            index=beliefs.allergens)
    return result


def sensitization_per_year_per_class(beliefs, use_percentages=False):
    """Children of each class per series, by year, from the expected sensitizations summed over allergens."""
    result = OrderedDict()
    for key, (c, children) in sorted_classes(beliefs).items():
        expected = beliefs.sensitization[:, children, :].sum(axis=2)
        scale = 100.0 / len(children) if use_percentages and len(children) else 1.0
        result[key] = pd.DataFrame(
            dict((name, [scale * ((expected[y] >= low) & (expected[y] < high)).sum() for y in range(len(YEARS))])
                 for name, low, high in SENSITIZATION_SERIES),
            index=YEARS)
    return result


def children_with_inferred_sensitization(beliefs, use_percentages=False):
    """Per class, a table [age, allergen] of children more likely sensitized than not."""
    result = OrderedDict()
    for key, (c, children) in sorted_classes(beliefs).items():
        scale = 100.0 / len(children) if use_percentages and len(children) else 1.0
        counts = scale * (beliefs.sensitization[:, children, :] > 0.5).sum(axis=1)
        result[key] = pd.DataFrame(counts, index=["Age %s" % y for y in YEARS], columns=beliefs.allergens)
    return result


def transition_probabilities(beliefs, retain=False):
    """
    Output
    --------
    OrderedDict of class key to a DataFrame per allergen of the year, mean,
    25% and 75% quantiles of P(sensitized at year one) then P(gain) or
    P(retain). Retain series start at the second year.
    """
    result = OrderedDict()
    for key, (c, _) in sorted_classes(beliefs).items():
        per_allergen = OrderedDict()
        for a, allergen in enumerate(beliefs.allergens):
            rows = []
            for y in range(1 if retain else 0, len(YEARS)):
                beta = beliefs.transition(y, a, c, retain)
                rows.append({"Year": int(YEARS[y]), "Mean": beta.mean,
                             "Lower": beta.quantile(0.25), "Upper": beta.quantile(0.75)})
            per_allergen[allergen] = pd.DataFrame(rows)
        result[key] = per_allergen
    return result


def _outcome_counts(beliefs, data, outcome_indices):
    result = OrderedDict()
    for cx, (key, (c, children)) in enumerate(sorted_classes(beliefs).items()):
        if len(children) == 0:
            continue
        counts = OrderedDict()
        for o in outcome_indices:
            values = data.outcomes[o, children]
            counts[data.outcome_names[o]] = ((values == 1).sum(), (values == 0).sum(), np.isnan(values).sum())
        result["Class %s" % cx] = counts
    return result


def percentage_children_with_outcome(beliefs, data, outcome_indices=None):
    if outcome_indices is None:
        outcome_indices = range(len(data.outcome_names))
    table = OrderedDict()
    for name, counts in _outcome_counts(beliefs, data, outcome_indices).items():
        table[name] = dict((o, 100.0 * p / (p + n) if p + n > 0 else 0.0) for o, (p, n, _) in counts.items())
    return pd.DataFrame(table).T


def plus_minus_children_with_outcome(beliefs, data, outcome_indices=None):
    """Outcome rates per class as interquartile strings of Beta(positives + 1, negatives + 1)."""
    if outcome_indices is None:
        outcome_indices = range(len(data.outcome_names))
    table = OrderedDict()
    for name, counts in _outcome_counts(beliefs, data, outcome_indices).items():
        table[name] = dict((o, plus_minus_string(BetaSummary(p + 1, n + 1))) for o, (p, n, _) in counts.items())
    return pd.DataFrame(table).T


def positive_test_probabilities_table(beliefs, as_strings=True):
    """P(positive test) if sensitized and if not, for each test."""
    shown = plus_minus_string if as_strings else (lambda beta: beta.mean)
    rows = OrderedDict()
    for test in TESTS:
        prefix = "prob_%s" % test.lower()
        rows["Prob. of Pos. %s Test" % test] = {
            "If Sensitized": shown(beliefs.tests[prefix + "_if_sens"]),
            "If Not Sensitized": shown(beliefs.tests[prefix + "_if_not_sens"])}
    return pd.DataFrame(rows).T


def plot_transition_probabilities(beliefs, retain=False):
    sns.set_style("darkgrid")
    transitions = transition_probabilities(beliefs, retain)
    fig, axes = plt.subplots(1, len(transitions), figsize=(5 * len(transitions), 4), squeeze=False)
    for ax, (key, per_allergen) in zip(axes[0], transitions.items()):
        for allergen, frame in per_allergen.items():
            ax.plot(frame["Year"], frame["Mean"], marker="o", label=allergen)
            ax.fill_between(frame["Year"], frame["Lower"], frame["Upper"], alpha=0.2)
        ax.set_ylim(0, 1)
        ax.set_xlabel("Age")
        ax.set_title("Class of %s children" % key.split("_")[0])
    axes[0][0].set_ylabel("P(retain)" if retain else "P(gain)")
    axes[0][-1].legend(loc="best")
    return fig


def plot_sensitization(tables, title):
    """Stacked bars of one of the per class sensitization tables."""
    fig, axes = plt.subplots(1, len(tables), figsize=(5 * len(tables), 4), squeeze=False)
    for ax, (key, frame) in zip(axes[0], tables.items()):
        frame.plot.bar(stacked=True, ax=ax, legend=False)
        ax.set_title("%s: class of %s" % (title, key.split("_")[0]))
    axes[0][-1].legend(loc="best")
    return fig
