import itertools
from collections import OrderedDict

import numpy as np
import pandas as pd

from mbml.config import TRUESKILL_CONFIG
from mbml.common.gaussian import Gaussian
from mbml.common.names import RandomNameGenerator
from mbml.chapter_03.games import TwoPlayerGame, MultiPlayerGame, Team, TeamGame, MatchOutcome

VARIANTS = ["CTF", "Slayer", "Assault"]


class Inputs(object):
    """
    Games plus the parameters of the skill prior.

    mu, sigma: mean and standard deviation of every player's prior skill
    beta: standard deviation of performance around skill
    gamma: standard deviation of the skill drift between games
    """

    def __init__(self, games, mu=TRUESKILL_CONFIG.MU, sigma=TRUESKILL_CONFIG.SIGMA,
                 beta=TRUESKILL_CONFIG.BETA, gamma=TRUESKILL_CONFIG.GAMMA):
        if sigma <= 0 or beta <= 0 or gamma < 0:
            raise ValueError("Sigma and Beta must be positive and Gamma non-negative")
        self.games = list(games)
        self.mu = mu
        self.sigma = sigma
        self.beta = beta
        self.gamma = gamma

    @property
    def skill_prior(self):
        return Gaussian(self.mu, self.sigma ** 2)

    @property
    def performance_variance(self):
        return self.beta ** 2

    @property
    def dynamics_variance(self):
        return self.gamma ** 2

    @property
    def players(self):
        seen = OrderedDict()
        for game in self.games:
            for player in game.players:
                seen[player] = True
        return list(seen)

    @property
    def number_of_players(self):
        return len(self.players)

    @property
    def number_of_games(self):
        return len(self.games)

    @property
    def game_counts(self):
        counts = OrderedDict((p, 0) for p in self.players)
        for game in self.games:
            for player in game.players:
                counts[player] += 1
        return counts

    @property
    def game_matrix(self):
        """Number of games each pair of players took part in together."""
        players = self.players
        matrix = pd.DataFrame(0, index=players, columns=players)
        for game in self.games:
            for a, b in itertools.permutations(game.players, 2):
                matrix.loc[a, b] += 1
        return matrix

    @property
    def draw_proportion(self):
        if not self.games:
            return 0.0
        return float(np.mean([game.draw_proportion for game in self.games]))

    def games_of_variant(self, variant):
        return Inputs([g for g in self.games if g.variant == variant], self.mu, self.sigma, self.beta, self.gamma)

    def priors(self):
        """Fresh skill prior for every player."""
        return OrderedDict((p, self.skill_prior) for p in self.players)


def toy_inputs(outcome=MatchOutcome.Player1Win):
    """Jill against Fred, the worked example."""
    game = TwoPlayerGame.create_game("1", "Jill", "Fred", outcome)
    return Inputs([game], TRUESKILL_CONFIG.TOY_MU, TRUESKILL_CONFIG.TOY_SIGMA,
                  TRUESKILL_CONFIG.TOY_BETA, TRUESKILL_CONFIG.TOY_GAMMA)


def toy_three_players():
    """Jill beats Fred, then Fred beats Steve: skill evidence travels through Fred."""
    games = [TwoPlayerGame.create_game("1", "Jill", "Fred", MatchOutcome.Player1Win),
             TwoPlayerGame.create_game("2", "Fred", "Steve", MatchOutcome.Player1Win)]
    return Inputs(games, TRUESKILL_CONFIG.TOY_MU, TRUESKILL_CONFIG.TOY_SIGMA,
                  TRUESKILL_CONFIG.TOY_BETA, TRUESKILL_CONFIG.TOY_GAMMA)


class HaloSynthesizer(object):
    """
    Synthesizes an online gaming league: players with hidden skills who play
    head to head, free-for-all and two team games across several variants.
    Scores come from sampling performances around the true skills.
    """

    def __init__(self, number_of_players=40, mu=TRUESKILL_CONFIG.MU, sigma=TRUESKILL_CONFIG.SIGMA,
                 beta=TRUESKILL_CONFIG.BETA, draw_probability=TRUESKILL_CONFIG.DRAW_PROBABILITY, seed=0):
        self.rng = np.random.RandomState(seed)
        self.mu = mu
        self.sigma = sigma
        self.beta = beta
        self.draw_probability = draw_probability
        names = RandomNameGenerator(seed).names(number_of_players)
        self.true_skills = OrderedDict((name, float(self.rng.normal(mu, sigma))) for name in names)

    @property
    def players(self):
        return list(self.true_skills)

    def _performance(self, player):
        return self.rng.normal(self.true_skills[player], self.beta)

    def _variant(self):
        return VARIANTS[self.rng.randint(len(VARIANTS))]

    def head_to_head(self, number_of_games):
        games = []
        for g in range(number_of_games):
            p1, p2 = [str(p) for p in self.rng.choice(self.players, 2, replace=False)]
            diff = self._performance(p1) - self._performance(p2)
            # Close performances end as draws, at roughly the requested rate
            if self.rng.rand() < self.draw_probability and abs(diff) < 2 * self.beta:
                outcome = MatchOutcome.Draw
            else:
                outcome = MatchOutcome.Player1Win if diff > 0 else MatchOutcome.Player2Win
            games.append(TwoPlayerGame.create_game(str(g + 1), p1, p2, outcome, self._variant()))
        return Inputs(games, self.mu, self.sigma, self.beta)

    def free_for_all(self, number_of_games, players_per_game=8):
        games = []
        for g in range(number_of_games):
            chosen = self.rng.choice(self.players, min(players_per_game, len(self.players)), replace=False)
            scores = [(str(p), int(round(self._performance(p)))) for p in chosen]
            games.append(MultiPlayerGame(str(g + 1), scores, self._variant()))
        return Inputs(games, self.mu, self.sigma, self.beta)

    def two_teams(self, number_of_games, team_size=4):
        games = []
        for g in range(number_of_games):
            chosen = [str(p) for p in self.rng.choice(self.players, min(2 * team_size, len(self.players)), replace=False)]
            half = len(chosen) // 2
            teams = []
            for t, members in enumerate([chosen[:half], chosen[half:]]):
                # Team scores are sums of player scores, so individual scores carry the team result
                teams.append(Team("Team %s" % (t + 1), [(p, max(0, int(round(self._performance(p) / 5)))) for p in members]))
            games.append(TeamGame(str(g + 1), teams, self._variant()))
        return Inputs(games, self.mu, self.sigma, self.beta)
