import numpy as np
import pytest

from mbml.common.gaussian import Gaussian
from mbml.chapter_03.games import TwoPlayerGame, MultiPlayerGame, Team, TeamGame, MatchOutcome
from mbml.chapter_03.inputs import Inputs, toy_inputs, toy_three_players, HaloSynthesizer
from mbml.chapter_03.models import TrueSkillParameters, TwoPlayerModel, TwoPlayerWithDrawsModel, EloModel, \
    TwoTeamModel, MultiPlayerModel, RandomModel, draw_margin_from_proportion, train_all


@pytest.fixture
def parameters():
    return TrueSkillParameters(performance_variance=25.0, dynamics_variance=0.0, draw_margin=2.0)


def priors_for(game, mean=120.0, variance=1600.0):
    return dict((p, Gaussian(mean, variance)) for p in game.players)


class TestGames():

    def test_create_game_reproduces_outcome(self):
        for outcome in MatchOutcome:
            assert TwoPlayerGame.create_game("1", "a", "b", outcome).outcome == outcome

    def test_players_must_differ(self):
        with pytest.raises(ValueError):
            TwoPlayerGame("1", "a", "a", 1, 0)

    def test_player_in_one_team(self):
        with pytest.raises(ValueError):
            TeamGame("1", [Team("A", [("x", 1)]), Team("B", [("x", 2)])])

    def test_draw_margin(self):
        assert draw_margin_from_proportion(0.0, 5.0) == 0.0
        assert draw_margin_from_proportion(0.1, 5.0) > 0.0
        with pytest.raises(ValueError):
            draw_margin_from_proportion(1.0, 5.0)


class TestTwoPlayer():

    def test_winner_rises_loser_falls(self, parameters):
        game = toy_inputs().games[0]
        priors = priors_for(game)
        posteriors = TwoPlayerModel(parameters).train(game, priors)
        assert posteriors["Jill"].mean > 120.0
        assert posteriors["Fred"].mean < 120.0
        assert posteriors["Jill"].variance < 1600.0
        assert posteriors["Fred"].variance < 1600.0
        assert np.isclose(posteriors["Jill"].mean - 120.0, 120.0 - posteriors["Fred"].mean)

    def test_draw_keeps_equal_means(self, parameters):
        game = toy_inputs(MatchOutcome.Draw).games[0]
        posteriors = TwoPlayerWithDrawsModel(parameters).train(game, priors_for(game))
        assert np.isclose(posteriors["Jill"].mean, 120.0)
        assert np.isclose(posteriors["Fred"].mean, 120.0)
        assert posteriors["Jill"].variance < 1600.0

    def test_draw_ignored_without_draws(self, parameters):
        game = toy_inputs(MatchOutcome.Draw).games[0]
        model = TwoPlayerModel(parameters)
        posteriors = model.train(game, priors_for(game))
        assert posteriors["Jill"] == Gaussian(120.0, 1600.0)
        assert np.isnan(model.last_log_evidence)

    def test_probabilities_sum_to_one(self, parameters):
        game = toy_inputs().games[0]
        priors = {"Jill": Gaussian(130.0, 100.0), "Fred": Gaussian(110.0, 400.0)}
        for model in [TwoPlayerModel(parameters), TwoPlayerWithDrawsModel(parameters), RandomModel(parameters)]:
            probabilities = model.outcome_probabilities(game, priors)
            assert np.isclose(probabilities.sum(), 1.0)
            assert (probabilities >= 0).all()

    def test_stronger_player_predicted(self, parameters):
        game = toy_inputs().games[0]
        priors = {"Jill": Gaussian(150.0, 100.0), "Fred": Gaussian(100.0, 100.0)}
        prediction = TwoPlayerWithDrawsModel(parameters).predict(game, priors)
        assert prediction.predicted == MatchOutcome.Player1Win
        assert prediction.correct
        assert prediction.prob_of_truth > 0.5

    def test_elo_keeps_variance(self, parameters):
        game = toy_inputs().games[0]
        posteriors = EloModel(parameters).train(game, priors_for(game))
        assert posteriors["Jill"].variance == 1600.0
        assert posteriors["Jill"].mean > 120.0

    def test_evidence_flows_through_shared_player(self):
        inputs = toy_three_players()
        skills = train_all(TwoPlayerModel(TrueSkillParameters.from_inputs(inputs, dynamics=False)), inputs)
        assert skills["Jill"].mean > skills["Fred"].mean > skills["Steve"].mean

    def test_rejects_team_games(self, parameters):
        game = TeamGame("1", [Team("A", [("x", 1)]), Team("B", [("y", 0)])])
        with pytest.raises(ValueError):
            TwoPlayerModel(parameters).train(game, priors_for(game))


class TestMultiPlayer():

    def test_two_players_match_two_player_model(self, parameters):
        game = toy_inputs().games[0]
        priors = {"Jill": Gaussian(125.0, 900.0), "Fred": Gaussian(118.0, 1600.0)}
        multi = MultiPlayerModel(parameters).train(game, priors)
        two = TwoPlayerWithDrawsModel(parameters).train(game, priors)
        for player in game.players:
            assert np.isclose(multi[player].mean, two[player].mean, atol=1e-6)
            assert np.isclose(multi[player].variance, two[player].variance, atol=1e-6)

    def test_ranking_orders_means(self, parameters):
        game = MultiPlayerGame("1", [("a", 30), ("b", 20), ("c", 10)])
        posteriors = MultiPlayerModel(parameters).train(game, priors_for(game, 25.0, 70.0))
        assert posteriors["a"].mean > posteriors["b"].mean > posteriors["c"].mean
        assert MultiPlayerModel(parameters).predict(game, priors_for(game)) is None


class TestTwoTeam():

    def test_winning_team_rises(self, parameters):
        game = TeamGame("1", [Team("A", [("a1", 5), ("a2", 3)]), Team("B", [("b1", 1), ("b2", 2)])])
        posteriors = TwoTeamModel(parameters).train(game, priors_for(game, 25.0, 70.0))
        assert posteriors["a1"].mean > 25.0 and posteriors["a2"].mean > 25.0
        assert posteriors["b1"].mean < 25.0 and posteriors["b2"].mean < 25.0


class TestSynthesizer():

    def test_head_to_head(self):
        inputs = HaloSynthesizer(number_of_players=6, seed=3).head_to_head(20)
        assert inputs.number_of_games == 20
        assert set(inputs.players) <= set(HaloSynthesizer(number_of_players=6, seed=3).players)
        assert isinstance(inputs, Inputs)
