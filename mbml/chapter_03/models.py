import math
from collections import OrderedDict

import numpy as np
from scipy import stats

from mbml.config import TRUESKILL_CONFIG
from mbml.common.gaussian import Gaussian, v_exceeds, w_exceeds, v_within, w_within
from mbml.chapter_03.games import MatchOutcome, Prediction, TwoPlayerGame, MultiPlayerGame, TeamGame

# Region of the performance difference an outcome constrains it to
EXCEEDS = "exceeds"
WITHIN = "within"
BELOW = "below"


def outcome_region(outcome):
    return {0: EXCEEDS, 1: WITHIN, 2: BELOW}[int(outcome)]


def draw_margin_from_proportion(draw_proportion, beta, number_of_players=2):
    """Margin that makes two equally skilled players draw with the given probability."""
    if draw_proportion <= 0:
        return 0.0
    if draw_proportion >= 1:
        raise ValueError("Draw proportion must be below 1, got %s" % draw_proportion)
    return float(stats.norm.ppf((draw_proportion + 1) / 2.0) * math.sqrt(number_of_players) * beta)


def region_probability(difference, region, margin=0.0):
    """P(difference lies in the region), for a Gaussian difference."""
    sd = difference.sd
    if region == EXCEEDS:
        return float(stats.norm.cdf((difference.mean - margin) / sd))
    if region == BELOW:
        return float(stats.norm.cdf((-difference.mean - margin) / sd))
    return float(stats.norm.cdf((margin - difference.mean) / sd) - stats.norm.cdf((-margin - difference.mean) / sd))


def truncate(difference, region, margin=0.0):
    """
    Input
    -------
    difference: Gaussian belief about a performance difference
    region: EXCEEDS (d > margin), WITHIN (|d| <= margin) or BELOW (d < -margin)
    margin: non-negative draw margin

    Output
    --------
    The Gaussian with the same mean and variance as the difference
    restricted to the region.
    """
    sd = difference.sd
    t = difference.mean / sd
    eps = margin / sd
    if region == EXCEEDS:
        return Gaussian(difference.mean + sd * v_exceeds(t, eps), difference.variance * (1 - w_exceeds(t, eps)))
    if region == BELOW:
        return Gaussian(difference.mean - sd * v_exceeds(-t, eps), difference.variance * (1 - w_exceeds(-t, eps)))
    if region == WITHIN:
        return Gaussian(difference.mean + sd * v_within(t, eps), difference.variance * (1 - w_within(t, eps)))
    raise ValueError("Unknown region '%s'" % region)


def condition_on_difference(components, difference, posterior):
    """
    Moves each Gaussian component of a weighted sum towards a new belief about
    the sum. components: list of (Gaussian, sign) with difference = sum(sign * x)
    plus independent noise.
    """
    gain = posterior.mean - difference.mean
    shrink = difference.variance - posterior.variance
    updated = []
    for component, sign in components:
        ratio = component.variance / difference.variance
        updated.append(Gaussian(component.mean + sign * ratio * gain,
                                max(component.variance - ratio * ratio * shrink, 1e-12)))
    return updated


class TrueSkillParameters(object):

    def __init__(self, performance_variance, dynamics_variance=0.0, draw_margin=0.0):
        self.performance_variance = performance_variance
        self.dynamics_variance = dynamics_variance
        self.draw_margin = draw_margin

    @staticmethod
    def from_inputs(inputs, dynamics=True):
        return TrueSkillParameters(inputs.performance_variance, inputs.dynamics_variance if dynamics else 0.0,
                                   draw_margin_from_proportion(inputs.draw_proportion, inputs.beta))

    def __repr__(self):
        return "TrueSkillParameters(performance=%.4g, dynamics=%.4g, margin=%.4g)" % (
            self.performance_variance, self.dynamics_variance, self.draw_margin)


class TwoPlayerModel(object):
    """
    Each player's performance is their skill plus Gaussian noise and the
    player with the higher performance wins. Draws are not modelled, so
    drawn games are skipped in training and carry no log probability.
    """

    name = "TwoPlayer"
    include_draws = False
    uses_dynamics = False

    def __init__(self, parameters, name=None, seed=TRUESKILL_CONFIG.SEED):
        self.parameters = parameters
        if name is not None:
            self.name = name
        self.rng = np.random.RandomState(seed)
        self.last_log_evidence = 0.0

    def _check_game(self, game):
        if not isinstance(game, TwoPlayerGame):
            raise ValueError("%s only handles two player games, got %s" % (self.name, type(game).__name__))

    def skill_priors(self, game, priors):
        """Priors for the players in the game, after a game's worth of skill drift."""
        result = []
        for player in game.players:
            prior = priors[player]
            if self.uses_dynamics and self.parameters.dynamics_variance > 0:
                prior = prior + Gaussian(0.0, self.parameters.dynamics_variance)
            result.append(prior)
        return result

    def _margin(self, game):
        return self.parameters.draw_margin if self.include_draws else 0.0

    def difference(self, game, priors):
        skill1, skill2 = self.skill_priors(game, priors)
        noise = Gaussian(0.0, 2 * self.parameters.performance_variance)
        return skill1 - skill2 + noise

    def outcome_probabilities(self, game, priors):
        """Probabilities of Player1Win, Draw, Player2Win."""
        self._check_game(game)
        difference = self.difference(game, priors)
        margin = self._margin(game)
        p1 = region_probability(difference, EXCEEDS, margin)
        p2 = region_probability(difference, BELOW, margin)
        if not self.include_draws:
            return np.array([p1, 0.0, 1 - p1])
        return np.array([p1, max(0.0, 1 - p1 - p2), p2])

    def train(self, game, priors):
        """
        Input
        -------
        game: the game whose result is observed
        priors: dict of player to Gaussian skill belief

        Output
        --------
        dict of the game's players to their posterior skills
        """
        self._check_game(game)
        skill_priors = self.skill_priors(game, priors)
        outcome = game.outcome
        if outcome == MatchOutcome.Draw and not self.include_draws:
            self.last_log_evidence = float("nan")
            return OrderedDict(zip(game.players, skill_priors))
        difference = self.difference(game, priors)
        region = outcome_region(outcome)
        margin = self._margin(game)
        self.last_log_evidence = math.log(max(region_probability(difference, region, margin), 1e-300))
        posterior = truncate(difference, region, margin)
        updated = condition_on_difference(list(zip(skill_priors, [1, -1])), difference, posterior)
        return OrderedDict(zip(game.players, updated))

    def predict(self, game, priors):
        probabilities = self.outcome_probabilities(game, priors)
        actual = game.outcome
        if self.include_draws:
            predicted = int(np.argmax(probabilities))
            if predicted == MatchOutcome.Player1Win and probabilities[0] == probabilities[2]:
                predicted = int(self.rng.choice([MatchOutcome.Player1Win, MatchOutcome.Player2Win]))
        else:
            predicted = MatchOutcome.Player1Win if probabilities[0] > 0.5 else MatchOutcome.Player2Win
        prob = probabilities[int(actual)]
        if actual == MatchOutcome.Draw and not self.include_draws:
            log_prob = float("nan")
        else:
            log_prob = math.log(prob) if prob > 0 else float("-inf")
        return Prediction(actual, MatchOutcome(predicted), log_prob, self.include_draws)

    def messages(self, game, priors):
        """Named beliefs along the factor graph of one game, for inspecting the update."""
        self._check_game(game)
        p1, p2 = game.players
        skill1, skill2 = self.skill_priors(game, priors)
        noise = Gaussian(0.0, self.parameters.performance_variance)
        perf1 = skill1 + noise
        perf2 = skill2 + noise
        difference = perf1 - perf2
        region = outcome_region(game.outcome)
        posterior_difference = truncate(difference, region, self._margin(game))
        # Message up from the constraint to the difference, then split to each performance
        up = posterior_difference / difference
        to_perf1 = up + perf2
        to_perf2 = Gaussian(perf1.mean - up.mean, up.variance + perf1.variance)
        to_skill1 = to_perf1 + noise
        to_skill2 = to_perf2 + noise
        posteriors = self.train(game, priors)
        return OrderedDict([
            ("%s skill prior" % p1, skill1),
            ("%s skill prior" % p2, skill2),
            ("%s performance" % p1, perf1),
            ("%s performance" % p2, perf2),
            ("Difference", difference),
            ("Difference posterior", posterior_difference),
            ("Message to %s performance" % p1, to_perf1),
            ("Message to %s performance" % p2, to_perf2),
            ("Message to %s skill" % p1, to_skill1),
            ("Message to %s skill" % p2, to_skill2),
            ("%s skill posterior" % p1, posteriors[p1]),
            ("%s skill posterior" % p2, posteriors[p2]),
        ])


class TwoPlayerWithDrawsModel(TwoPlayerModel):
    """Two player model in which performances within the draw margin of each other draw."""

    name = "TwoPlayerWithDraws"
    include_draws = True


class TwoPlayerVaryingSkillsModel(TwoPlayerWithDrawsModel):
    """Draws plus skill drift: the dynamics variance is added to every prior before a game."""

    name = "TwoPlayerVaryingSkills"
    uses_dynamics = True


class EloModel(TwoPlayerWithDrawsModel):
    """
    Elo style ratings: the mean moves by the same surprise-weighted step as
    TrueSkill, but the rating uncertainty never shrinks.
    """

    name = "Elo"

    def train(self, game, priors):
        updated = super(EloModel, self).train(game, priors)
        return OrderedDict((player, Gaussian(posterior.mean, priors[player].variance))
                           for player, posterior in updated.items())


class TwoTeamModel(TwoPlayerModel):
    """
    Team performance is the sum of its players' performances; the outcome
    constrains the difference of the two team performances.
    """

    name = "TwoTeam"
    include_draws = True
    uses_dynamics = True

    def _check_game(self, game):
        if not isinstance(game, TeamGame) or len(game.teams) != 2:
            raise ValueError("%s only handles games between two teams" % self.name)

    def _margin(self, game):
        # The margin was fitted for two players; it widens with the number of performances summed
        return self.parameters.draw_margin * math.sqrt(len(game.players) / 2.0)

    def _signs(self, game):
        return [1 if i == 0 else -1 for i in game.player_team_indices]

    def difference(self, game, priors):
        difference = Gaussian(0.0, len(game.players) * self.parameters.performance_variance)
        for prior, sign in zip(self.skill_priors(game, priors), self._signs(game)):
            difference = difference + prior if sign > 0 else difference - prior
        return difference

    def train(self, game, priors):
        self._check_game(game)
        skill_priors = self.skill_priors(game, priors)
        difference = self.difference(game, priors)
        region = outcome_region(game.outcome)
        margin = self._margin(game)
        self.last_log_evidence = math.log(max(region_probability(difference, region, margin), 1e-300))
        posterior = truncate(difference, region, margin)
        updated = condition_on_difference(list(zip(skill_priors, self._signs(game))), difference, posterior)
        return OrderedDict(zip(game.players, updated))

    def messages(self, game, priors):
        raise NotImplementedError("Message inspection is only available for two player games")


class MultiPlayerModel(TwoPlayerModel):
    """
    Free-for-all games: players ranked by score, with a constraint between
    each adjacent pair (a draw when their scores tie). The chain of
    constraints is solved by expectation propagation on the performances.
    """

    name = "MultiPlayer"
    include_draws = True
    uses_dynamics = True

    def __init__(self, parameters, name=None, seed=TRUESKILL_CONFIG.SEED,
                 iterations=TRUESKILL_CONFIG.EP_ITERATIONS):
        super(MultiPlayerModel, self).__init__(parameters, name=name, seed=seed)
        self.iterations = iterations

    def _check_game(self, game):
        if not isinstance(game, (MultiPlayerGame, TwoPlayerGame)):
            raise ValueError("%s handles free-for-all games, got %s" % (self.name, type(game).__name__))

    def train(self, game, priors):
        self._check_game(game)
        order = sorted(game.players, key=lambda p: -game.player_scores[p])
        skill_by_player = dict(zip(game.players, self.skill_priors(game, priors)))
        skills = [skill_by_player[p] for p in order]
        beta2 = self.parameters.performance_variance
        margin = self.parameters.draw_margin
        n = len(order)

        # Natural parameters of the performance priors, marginals and factor messages
        prior_pi = np.array([1.0 / (s.variance + beta2) for s in skills])
        prior_tau = np.array([s.mean for s in skills]) * prior_pi
        pi, tau = prior_pi.copy(), prior_tau.copy()
        up_pi, up_tau = np.zeros(n - 1), np.zeros(n - 1)
        down_pi, down_tau = np.zeros(n - 1), np.zeros(n - 1)

        log_evidence = 0.0
        for iteration in range(self.iterations):
            log_evidence = 0.0
            for k in range(n - 1):
                cav_a = Gaussian.from_natural(tau[k] - up_tau[k], pi[k] - up_pi[k])
                cav_b = Gaussian.from_natural(tau[k + 1] - down_tau[k], pi[k + 1] - down_pi[k])
                difference = cav_a - cav_b
                tie = game.player_scores[order[k]] == game.player_scores[order[k + 1]]
                region = WITHIN if tie else EXCEEDS
                log_evidence += math.log(max(region_probability(difference, region, margin), 1e-300))
                posterior = truncate(difference, region, margin)
                new_a, new_b = condition_on_difference([(cav_a, 1), (cav_b, -1)], difference, posterior)
                up_pi[k], up_tau[k] = new_a.precision - cav_a.precision, new_a.precision_mean - cav_a.precision_mean
                down_pi[k], down_tau[k] = new_b.precision - cav_b.precision, new_b.precision_mean - cav_b.precision_mean
                pi[k], tau[k] = new_a.precision, new_a.precision_mean
                pi[k + 1], tau[k + 1] = new_b.precision, new_b.precision_mean
        self.last_log_evidence = log_evidence

        posteriors = OrderedDict()
        for player, skill, p, t, p0, t0 in zip(order, skills, pi, tau, prior_pi, prior_tau):
            message_pi, message_tau = p - p0, t - t0
            if message_pi <= 1e-12:
                posteriors[player] = skill
                continue
            # Pass the performance message back through the performance noise
            scale = message_pi / (1 + message_pi * beta2)
            message_mean = message_tau / message_pi
            posteriors[player] = Gaussian.from_natural(skill.precision_mean + scale * message_mean,
                                                       skill.precision + scale)
        return OrderedDict((p, posteriors[p]) for p in game.players)

    def predict(self, game, priors):
        """Outcomes of free-for-all games are not predicted."""
        return None

    def messages(self, game, priors):
        raise NotImplementedError("Message inspection is only available for two player games")


class RandomModel(TwoPlayerModel):
    """Baseline: outcomes drawn from fixed probabilities, skills never change."""

    name = "Random"
    include_draws = True

    def __init__(self, parameters, draw_probability=TRUESKILL_CONFIG.DRAW_PROBABILITY, name=None,
                 seed=TRUESKILL_CONFIG.SEED, include_draws=True):
        super(RandomModel, self).__init__(parameters, name=name, seed=seed)
        self.draw_probability = draw_probability
        self.include_draws = include_draws

    def outcome_probabilities(self, game, priors):
        p = self.draw_probability if self.include_draws else 0.0
        weights = np.array([1 - p, p, 1 - p])
        return weights / weights.sum()

    def train(self, game, priors):
        self.last_log_evidence = 0.0
        return OrderedDict((p, priors[p]) for p in game.players)

    def predict(self, game, priors):
        probabilities = self.outcome_probabilities(game, priors)
        actual = game.outcome
        if self.include_draws:
            predicted = MatchOutcome(int(self.rng.choice(3, p=probabilities)))
        else:
            predicted = MatchOutcome.Player1Win if self.rng.rand() < 0.5 else MatchOutcome.Player2Win
        prob = probabilities[int(actual)]
        log_prob = math.log(prob) if prob > 0 else float("nan")
        return Prediction(actual, predicted, log_prob, self.include_draws)


def train_all(model, inputs, priors=None):
    """Chains the posteriors of each game into the priors of the next, in game order."""
    priors = inputs.priors() if priors is None else OrderedDict(priors)
    for game in inputs.games:
        priors.update(model.train(game, priors))
    return priors
