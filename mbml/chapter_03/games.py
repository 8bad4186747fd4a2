import itertools
import math
from enum import IntEnum

import numpy as np


class MatchOutcome(IntEnum):
    Player1Win = 0
    Draw = 1
    Player2Win = 2


class TeamMatchOutcome(IntEnum):
    Team1Win = 0
    Draw = 1
    Team2Win = 2


class Game(object):
    """A game between players, each with a score. Higher scores are better."""

    def __init__(self, game_id, player_scores, variant=None):
        self.id = str(game_id)
        self.player_scores = dict(player_scores)
        self.variant = variant

    @property
    def players(self):
        return list(self.player_scores)

    @property
    def scores(self):
        return list(self.player_scores.values())

    @property
    def draw_proportion(self):
        raise NotImplementedError()

    def __repr__(self):
        return "%s(%s: %s)" % (type(self).__name__, self.id, self.player_scores)


class TwoPlayerGame(Game):

    def __init__(self, game_id, player1, player2, player1_score, player2_score, variant=None):
        if player1 == player2:
            raise ValueError("A two player game needs two different players, got '%s' twice" % player1)
        super(TwoPlayerGame, self).__init__(game_id, [(player1, player1_score), (player2, player2_score)], variant)

    @staticmethod
    def create_game(game_id, player1, player2, outcome, variant=None):
        """Scores are 2, 1, 0 for a win, draw or loss, so they reproduce the outcome."""
        outcome = MatchOutcome(outcome)
        return TwoPlayerGame(game_id, player1, player2, 2 - int(outcome), int(outcome), variant)

    @property
    def player1(self):
        return self.players[0]

    @property
    def player2(self):
        return self.players[1]

    @property
    def outcome(self):
        s1, s2 = self.scores
        if s1 == s2:
            return MatchOutcome.Draw
        return MatchOutcome.Player1Win if s1 > s2 else MatchOutcome.Player2Win

    @property
    def draw_proportion(self):
        return 1.0 if self.outcome == MatchOutcome.Draw else 0.0


class MultiPlayerGame(Game):

    @property
    def players_in_descending_score_order(self):
        return [p for p, _ in sorted(self.player_scores.items(), key=lambda ps: -ps[1])]

    @property
    def outcomes(self):
        """Matrix of pairwise outcomes, row player against column player."""
        players = self.players
        n = len(players)
        matrix = np.full((n, n), int(MatchOutcome.Draw))
        for i, j in itertools.permutations(range(n), 2):
            si, sj = self.player_scores[players[i]], self.player_scores[players[j]]
            if si > sj:
                matrix[i, j] = int(MatchOutcome.Player1Win)
            elif si < sj:
                matrix[i, j] = int(MatchOutcome.Player2Win)
        return matrix

    @property
    def draw_proportion(self):
        n = len(self.players)
        if n < 2:
            return 0.0
        ties = sum(1 for a, b in itertools.combinations(self.scores, 2) if a == b)
        return ties / (n * (n - 1) / 2)


class Team(object):

    def __init__(self, team_id, player_scores):
        self.id = str(team_id)
        self.player_scores = dict(player_scores)

    @property
    def score(self):
        return sum(self.player_scores.values())

    def __str__(self):
        return "%s: %s" % (self.id, self.score)


class TeamGame(Game):

    def __init__(self, game_id, teams, variant=None):
        self.teams = list(teams)
        player_scores = {}
        for team in self.teams:
            for player, score in team.player_scores.items():
                if player in player_scores:
                    raise ValueError("Player '%s' appears in more than one team" % player)
                player_scores[player] = score
        super(TeamGame, self).__init__(game_id, player_scores, variant)

    @property
    def team_scores(self):
        return [team.score for team in self.teams]

    @property
    def team_counts(self):
        return [len(team.player_scores) for team in self.teams]

    def player_team_index(self, player):
        for i, team in enumerate(self.teams):
            if player in team.player_scores:
                return i
        return -1

    @property
    def player_team_indices(self):
        return [self.player_team_index(p) for p in self.players]

    @property
    def outcome(self):
        if len(self.teams) != 2:
            raise ValueError("Outcome is only defined for games between two teams")
        s1, s2 = self.team_scores
        if s1 == s2:
            return TeamMatchOutcome.Draw
        return TeamMatchOutcome.Team1Win if s1 > s2 else TeamMatchOutcome.Team2Win

    @property
    def draw_proportion(self):
        return 1.0 if len(self.teams) == 2 and self.outcome == TeamMatchOutcome.Draw else 0.0


class Prediction(object):
    """Predicted and actual outcome of a game, with the log probability the model gave the actual outcome."""

    def __init__(self, actual, predicted, log_prob_of_truth=float("nan"), include_draws=False):
        self.actual = actual
        self.predicted = predicted
        self.log_prob_of_truth = log_prob_of_truth
        self.include_draws = include_draws

    @property
    def correct(self):
        if self.include_draws:
            return int(self.actual) == int(self.predicted)
        return (int(self.actual) == 0) == (int(self.predicted) == 0)

    @property
    def prob_of_truth(self):
        return math.exp(self.log_prob_of_truth) if not math.isnan(self.log_prob_of_truth) else float("nan")

    def __repr__(self):
        return "Prediction(actual=%s, predicted=%s, log p=%.4f)" % (self.actual.name if hasattr(self.actual, "name") else self.actual,
                                                                      self.predicted.name if hasattr(self.predicted, "name") else self.predicted,
                                                                      self.log_prob_of_truth)
