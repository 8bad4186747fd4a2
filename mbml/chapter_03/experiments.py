import math
from collections import OrderedDict

import numpy as np
import pandas as pd
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import seaborn as sns
import plotly.graph_objects as go

from mbml.config import TRUESKILL_CONFIG
from mbml.common.numerics import cumulative_sum
from mbml.common.timer import CodeTimer


def gaussian_table(beliefs):
    """DataFrame of mean and standard deviation, one row per named Gaussian."""
    return pd.DataFrame({"Mean": [g.mean for g in beliefs.values()],
                         "StdDev": [g.sd for g in beliefs.values()]},
                        index=list(beliefs))


class ToyExperiment(object):
    """Trains on a handful of games and compares skills before and after."""

    def __init__(self, name, inputs, model):
        self.name = name
        self.inputs = inputs
        self.model = model
        self.priors = inputs.priors()
        self.posteriors = None

    def run(self):
        self.posteriors = OrderedDict(self.priors)
        for game in self.inputs.games:
            self.posteriors.update(self.model.train(game, self.posteriors))
        return self.posteriors

    def table(self):
        rows = []
        for player in self.inputs.players:
            prior, posterior = self.priors[player], self.posteriors[player]
            rows.append({"Player": player, "Prior mean": prior.mean, "Prior sd": prior.sd,
                         "Posterior mean": posterior.mean, "Posterior sd": posterior.sd})
        return pd.DataFrame(rows).set_index("Player")

    def messages_table(self):
        game = self.inputs.games[0]
        return gaussian_table(self.model.messages(game, self.priors))


class OnlineExperiment(object):
    """
    Plays through the games in order: each game is first predicted from the
    current skills and then used to train them.
    """

    def __init__(self, name, inputs, model, print_logs=True, top_players=TRUESKILL_CONFIG.TOP_PLAYERS):
        self.name = name
        self.inputs = inputs
        self.model = model
        self.print_logs = print_logs
        self.top_players = top_players
        self.predictions = []
        self.posteriors = None
        self.skill_history = None

    def run(self):
        posteriors = self.inputs.priors()
        history = OrderedDict((p, []) for p in posteriors)
        predictions = []
        with CodeTimer("Running %s on %s games" % (self.name, self.inputs.number_of_games), print_logs=self.print_logs):
            for g, game in enumerate(self.inputs.games):
                prediction = self.model.predict(game, posteriors)
                if prediction is not None:
                    predictions.append(prediction)
                posteriors.update(self.model.train(game, posteriors))
                for player in game.players:
                    history[player].append((g, posteriors[player]))
        self.predictions = predictions
        self.posteriors = posteriors
        self.skill_history = history
        return posteriors

    def _scored(self):
        if self.model.include_draws:
            return self.predictions
        return [p for p in self.predictions if int(p.actual) != 1]

    @property
    def errors(self):
        return [0 if p.correct else 1 for p in self._scored()]

    @property
    def cumulative_errors(self):
        return cumulative_sum(self.errors)

    @property
    def error_rate(self):
        errors = self.errors
        return float(np.mean(errors)) if errors else float("nan")

    @property
    def cumulative_negative_log_prob(self):
        """Running total of -log p(actual outcome); None once a prediction gave the truth no probability."""
        total = 0.0
        results = []
        for prediction in self._scored():
            if total is not None:
                if math.isfinite(prediction.log_prob_of_truth):
                    total -= prediction.log_prob_of_truth
                else:
                    total = None
            results.append(total)
        return results

    @property
    def negative_log_prob(self):
        values = [p.log_prob_of_truth for p in self._scored() if not math.isnan(p.log_prob_of_truth)]
        return -float(np.mean(values)) if values else float("nan")

    def leaderboard(self):
        rows = [{"Player": player, "Mean": skill.mean, "StdDev": skill.sd,
                 "Conservative": skill.conservative(), "Games": self.inputs.game_counts[player]}
                for player, skill in self.posteriors.items()]
        return pd.DataFrame(rows).sort_values("Conservative", ascending=False).set_index("Player")

    def top(self):
        return list(self.leaderboard().index[:self.top_players])

    def plot_trajectories(self):
        """Interactive skill means of the top players against game number, with 1 sd bands."""
        fig = go.Figure()
        for player in self.top():
            games = [g for g, _ in self.skill_history[player]]
            means = np.array([s.mean for _, s in self.skill_history[player]])
            sds = np.array([s.sd for _, s in self.skill_history[player]])
            fig.add_trace(go.Scatter(x=games, y=means, mode="lines", name=player))
            fig.add_trace(go.Scatter(x=games + games[::-1], y=list(means + sds) + list((means - sds)[::-1]),
                                     fill="toself", opacity=0.2, line=dict(width=0), showlegend=False,
                                     hoverinfo="skip"))
        fig.update_layout(title="Skill trajectories (%s)" % self.name, xaxis_title="Game", yaxis_title="Skill")
        return fig


class OnlineExperimentComparison(object):

    def __init__(self, experiments):
        self.experiments = list(experiments)

    def run_all(self):
        for experiment in self.experiments:
            experiment.run()

    def metrics_table(self):
        rows = []
        for e in self.experiments:
            cumulative = e.cumulative_negative_log_prob
            rows.append({"Model": e.name, "ErrorRate": e.error_rate, "Errors": int(sum(e.errors)),
                         "NegativeLogProb": e.negative_log_prob,
                         "CumulativeNegativeLogProb": cumulative[-1] if cumulative else None})
        return pd.DataFrame(rows).set_index("Model")

    def plot_cumulative_errors(self):
        sns.set_style("darkgrid")
        fig, ax = plt.subplots(figsize=(9, 5))
        for e in self.experiments:
            ax.plot(e.cumulative_errors, label="%s (%.1f%%)" % (e.name, 100 * e.error_rate))
        ax.set_xlabel("Game")
        ax.set_ylabel("Cumulative errors")
        ax.legend()
        return fig

    def plot_cumulative_negative_log_prob(self, exclude=("Random", "Elo")):
        sns.set_style("darkgrid")
        fig, ax = plt.subplots(figsize=(9, 5))
        for e in self.experiments:
            if e.name in exclude:
                continue
            values = [np.nan if v is None else v for v in e.cumulative_negative_log_prob]
            ax.plot(values, label=e.name)
        ax.set_xlabel("Game")
        ax.set_ylabel("Cumulative negative log probability")
        ax.legend()
        return fig
