"""
Figures for the worked examples: skill and performance curves, the draw
region, and sampled performances checked against the exact win probability.
"""
import numpy as np
import pandas as pd
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import seaborn as sns
import torch
import pyro
import pyro.distributions as dist

from mbml.common.gaussian import Gaussian
from mbml.common.realrange import RealRange
from mbml.chapter_03.models import region_probability, EXCEEDS, BELOW


def performance_model(skill1, skill2, beta, number_of_samples):
    with pyro.plate("samples", number_of_samples):
        perf1 = pyro.sample("perf1", dist.Normal(skill1, beta))
        perf2 = pyro.sample("perf2", dist.Normal(skill2, beta))
    return perf1, perf2


def sampled_win_probability(skill1, skill2, beta, number_of_samples=2000, seed=0):
    """
    Input
    -------
    skill1, skill2: the two players' (known) skills
    beta: performance standard deviation

    Output
    --------
    Fraction of sampled games won by player 1, and the sampled performances.
    """
    pyro.set_rng_seed(seed)
    with torch.no_grad():
        perf1, perf2 = performance_model(torch.tensor(float(skill1)), torch.tensor(float(skill2)),
                                         float(beta), number_of_samples)
    wins = (perf1 > perf2).float().mean().item()
    return wins, perf1.numpy(), perf2.numpy()


def exact_win_probability(skill1, skill2, beta):
    difference = Gaussian(skill1 - skill2, 2 * beta ** 2)
    return region_probability(difference, EXCEEDS)


def sampling_table(skill1, skill2, beta, sample_counts=(10, 100, 1000, 10000), seed=0):
    rows = []
    for i, count in enumerate(sample_counts):
        sampled, _, _ = sampled_win_probability(skill1, skill2, beta, count, seed + i)
        rows.append({"Samples": count, "Sampled": sampled, "Exact": exact_win_probability(skill1, skill2, beta)})
    return pd.DataFrame(rows).set_index("Samples")


def plot_sampled_performances(skill1, skill2, beta, number_of_samples=1000, seed=0):
    _, perf1, perf2 = sampled_win_probability(skill1, skill2, beta, number_of_samples, seed)
    sns.set_style("darkgrid")
    fig, ax = plt.subplots(figsize=(7, 7))
    wins = perf1 > perf2
    ax.scatter(perf1[wins], perf2[wins], s=6, label="Player 1 wins")
    ax.scatter(perf1[~wins], perf2[~wins], s=6, label="Player 2 wins")
    low = min(perf1.min(), perf2.min())
    high = max(perf1.max(), perf2.max())
    ax.plot([low, high], [low, high], "k--", linewidth=0.5)
    ax.set_xlabel("Player 1 performance")
    ax.set_ylabel("Player 2 performance")
    ax.legend()
    return fig


def plot_gaussians(named_gaussians, title=""):
    sns.set_style("darkgrid")
    fig, ax = plt.subplots(figsize=(9, 5))
    lows = [g.mean - 4 * g.sd for g in named_gaussians.values()]
    highs = [g.mean + 4 * g.sd for g in named_gaussians.values()]
    x = RealRange(min(lows), max(highs), 500).values
    for name, g in named_gaussians.items():
        ax.plot(x, g.pdf(x), label="%s N(%.1f, %.1f^2)" % (name, g.mean, g.sd))
    ax.set_title(title)
    ax.legend()
    return fig


def plot_draw_region(difference, margin):
    """Shades the part of a performance difference that counts as a draw."""
    sns.set_style("darkgrid")
    fig, ax = plt.subplots(figsize=(9, 5))
    x = RealRange(difference.mean - 4 * difference.sd, difference.mean + 4 * difference.sd, 500).values
    ax.plot(x, difference.pdf(x), "k")
    inside = np.abs(x) <= margin
    ax.fill_between(x, 0, difference.pdf(x), where=inside, alpha=0.4, label="Draw")
    ax.fill_between(x, 0, difference.pdf(x), where=x > margin, alpha=0.4, label="Player 1 wins")
    ax.fill_between(x, 0, difference.pdf(x), where=x < -margin, alpha=0.4, label="Player 2 wins")
    ax.set_title("P(draw) = %.3f" % (1 - region_probability(difference, EXCEEDS, margin)
                                     - region_probability(difference, BELOW, margin)))
    ax.legend()
    return fig


def dynamics_table(prior, dynamics_variance, games=(0, 1, 10, 100, 1000)):
    """Standard deviation of a skill left untouched for a number of games."""
    return pd.DataFrame({"Games": list(games),
                         "StdDev": [np.sqrt(prior.variance + n * dynamics_variance) for n in games]}).set_index("Games")
