import math
import numpy as np
from scipy import stats
from scipy import special


ERF_COEFFICIENTS = [-1.26551223, 1.00002368, 0.37409196, 0.09678418, -0.18628806,
                    0.27886807, -1.13520398, 1.48851587, -0.82215223, 0.17087277]


def erf(x):
    """
    Input
    -------
    x: real value

    Output
    --------
    Error function of x, from the Chebyshev fit of the complementary error function
    (fractional error below 1.2e-7 everywhere).
    """
    t = 1.0 / (1.0 + 0.5 * abs(x))
    poly = 0.0
    for coefficient in reversed(ERF_COEFFICIENTS[1:]):
        poly = t * (coefficient + poly)
    poly += ERF_COEFFICIENTS[0]
    ans = 1 - t * math.exp(-x * x + poly)
    return ans if x >= 0 else -ans


def gaussian_cdf(x, mean=0.0, sd=1.0):
    return 0.5 * (1.0 + erf((x - mean) / (sd * math.sqrt(2.0))))


def gaussian_inv_cdf(y, mean=0.0, sd=1.0, steps=1001):
    """
    Input
    -------
    y: probability in [0, 1]
    mean, sd: parameters of the Gaussian
    steps: number of grid points over mean +/- 4 sd

    Output
    --------
    The grid point whose CDF is closest to y.
    """
    if y < 0 or y > 1:
        raise ValueError("y must be in the range [0, 1], got %s" % y)
    grid = np.linspace(mean - 4 * sd, mean + 4 * sd, steps)
    cdfs = np.array([gaussian_cdf(x, mean, sd) for x in grid])
    return float(grid[np.argmin(np.abs(cdfs - y))])


# Truncated Gaussian corrections used by every moment matching update.
# v and w are the additive and multiplicative corrections for a Gaussian
# variable t ~ N(., 1) conditioned on t > eps (exceeds) or |t| <= eps (within).

def v_exceeds(t, eps=0.0):
    x = t - eps
    denom = stats.norm.cdf(x)
    if denom < 1e-300:
        return -x
    return stats.norm.pdf(x) / denom


def w_exceeds(t, eps=0.0):
    v = v_exceeds(t, eps)
    return v * (v + t - eps)


def v_within(t, eps):
    abs_t = abs(t)
    denom = stats.norm.cdf(eps - abs_t) - stats.norm.cdf(-eps - abs_t)
    if denom < 1e-300:
        return (eps - abs_t) * (-1 if t < 0 else 1)
    numer = stats.norm.pdf(-eps - abs_t) - stats.norm.pdf(eps - abs_t)
    return numer / denom if t >= 0 else -numer / denom


def w_within(t, eps):
    abs_t = abs(t)
    denom = stats.norm.cdf(eps - abs_t) - stats.norm.cdf(-eps - abs_t)
    if denom < 1e-300:
        return 1.0
    v = v_within(abs_t, eps)
    return v * v + ((eps - abs_t) * stats.norm.pdf(eps - abs_t) + (eps + abs_t) * stats.norm.pdf(eps + abs_t)) / denom


class Gaussian(object):
    """A univariate Gaussian in moment form, with the algebra needed for message passing."""

    def __init__(self, mean=0.0, variance=1.0):
        if variance < 0:
            raise ValueError("Variance must be non-negative, got %s" % variance)
        self.mean = float(mean)
        self.variance = float(variance)

    @staticmethod
    def point_mass(value):
        return Gaussian(value, 0.0)

    @staticmethod
    def from_natural(precision_mean, precision):
        if precision <= 0:
            return Gaussian(0.0, np.inf)
        return Gaussian(precision_mean / precision, 1.0 / precision)

    @staticmethod
    def uniform():
        return Gaussian(0.0, np.inf)

    @property
    def sd(self):
        return math.sqrt(self.variance)

    @property
    def precision(self):
        if self.variance == 0:
            return np.inf
        return 1.0 / self.variance

    @property
    def precision_mean(self):
        return self.mean * self.precision

    def is_point_mass(self):
        return self.variance == 0

    def __mul__(self, other):
        if self.is_point_mass():
            return Gaussian.point_mass(self.mean)
        if other.is_point_mass():
            return Gaussian.point_mass(other.mean)
        return Gaussian.from_natural(self.precision_mean + other.precision_mean, self.precision + other.precision)

    def __truediv__(self, other):
        if np.isinf(other.variance):
            return Gaussian(self.mean, self.variance)
        return Gaussian.from_natural(self.precision_mean - other.precision_mean, self.precision - other.precision)

    def __add__(self, other):
        return Gaussian(self.mean + other.mean, self.variance + other.variance)

    def __sub__(self, other):
        return Gaussian(self.mean - other.mean, self.variance + other.variance)

    def __eq__(self, other):
        return isinstance(other, Gaussian) and self.mean == other.mean and self.variance == other.variance

    def __repr__(self):
        return "Gaussian(%.4g, %.4g)" % (self.mean, self.variance)

    def pdf(self, x):
        return stats.norm.pdf(x, self.mean, self.sd)

    def cdf(self, x):
        return stats.norm.cdf(x, self.mean, self.sd)

    def log_prob(self, x):
        return stats.norm.logpdf(x, self.mean, self.sd)

    def sample(self, size=None, random_state=None):
        return stats.norm.rvs(self.mean, self.sd, size=size, random_state=random_state)

    def conservative(self, k=3.0):
        return self.mean - k * self.sd


class BetaSummary(object):
    """Mean, variance and quantiles of a Beta posterior."""

    def __init__(self, alpha, beta):
        self.alpha = float(alpha)
        self.beta = float(beta)

    @property
    def mean(self):
        return self.alpha / (self.alpha + self.beta)

    @property
    def variance(self):
        total = self.alpha + self.beta
        return self.alpha * self.beta / (total * total * (total + 1))

    def quantile(self, q, steps=100000):
        """Numeric inverse CDF on a grid of `steps` points."""
        grid = np.linspace(0, 1, steps)
        cdf = special.betainc(self.alpha, self.beta, grid)
        return float(grid[np.searchsorted(cdf, q).clip(0, steps - 1)])

    @staticmethod
    def from_mean_and_variance(mean, variance):
        if variance <= 0 or variance >= mean * (1 - mean):
            raise ValueError("Variance %s not attainable for mean %s" % (variance, mean))
        total = mean * (1 - mean) / variance - 1
        return BetaSummary(mean * total, (1 - mean) * total)

    def __repr__(self):
        return "Beta(%.4g, %.4g)[mean=%.4g]" % (self.alpha, self.beta, self.mean)


def dirichlet_log_expectation(counts):
    """E[log p] under Dirichlet(counts), along the last axis."""
    counts = np.asarray(counts, dtype=float)
    return special.digamma(counts) - special.digamma(counts.sum(axis=-1, keepdims=True))
