import re
import numpy as np


def integrate(f, lower, upper, intervals=1000):
    """
    Input
    -------
    f: function of one real variable
    lower, upper: integration bounds
    intervals: number of Simpson intervals, rounded up to an even count

    Output
    --------
    Simpson's rule estimate of the integral of f over [lower, upper].
    """
    if intervals % 2:
        intervals += 1
    h = (upper - lower) / intervals
    total = f(lower) + f(upper)
    for i in range(1, intervals):
        total += (4 if i % 2 else 2) * f(lower + i * h)
    return total * h / 3


def integrate_points(points):
    """Trapezoid rule over a list of (x, y) points sorted by x."""
    total = 0.0
    for (x1, y1), (x2, y2) in zip(points[:-1], points[1:]):
        total += 0.5 * (x2 - x1) * (y1 + y2)
    return total


def bin_values(values, bins, lower=0.0, upper=1.0):
    """
    Histogram counts over `bins` equal bins of [lower, upper].

    Values falling exactly on a bin position of 0 or `bins` are not counted.
    """
    counts = np.zeros(bins, dtype=int)
    for value in values:
        position = (value - lower) / (upper - lower) * bins
        if 0 < position < bins:
            counts[int(position)] += 1
    return counts


def transpose(rows):
    return [list(column) for column in zip(*rows)]


def mean_squared_error(predicted, actual):
    predicted = np.asarray(predicted, dtype=float)
    actual = np.asarray(actual, dtype=float)
    return float(np.mean((predicted - actual) ** 2))


def cumulative_sum(values):
    return np.cumsum(np.asarray(values, dtype=float)).tolist()


def cumulative_average(values):
    values = np.asarray(values, dtype=float)
    if len(values) == 0:
        return []
    return (np.cumsum(values) / np.arange(1, len(values) + 1)).tolist()


def split_camel_case(name):
    return re.sub(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])", " ", name)


def arg_max(values, rng=None):
    """Index of the largest value. Ties are broken at random when `rng` is given."""
    values = np.asarray(values)
    if rng is None:
        return int(np.argmax(values))
    best = np.flatnonzero(values == values.max())
    return int(rng.choice(best))
