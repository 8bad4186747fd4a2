import sys
from collections import OrderedDict

from mbml.config import TRUESKILL_CONFIG
from mbml.common.gaussian import Gaussian
from mbml.common.program import build_parser, run_program
from mbml.chapter_03 import demos
from mbml.chapter_03.experiments import ToyExperiment, OnlineExperiment, OnlineExperimentComparison
from mbml.chapter_03.inputs import toy_inputs, toy_three_players, HaloSynthesizer
from mbml.chapter_03.models import (TrueSkillParameters, TwoPlayerModel, TwoPlayerWithDrawsModel,
                                    TwoPlayerVaryingSkillsModel, EloModel, TwoTeamModel, MultiPlayerModel,
                                    RandomModel, draw_margin_from_proportion)


def toy_examples(outputter):
    inputs = toy_inputs()
    parameters = TrueSkillParameters.from_inputs(inputs, dynamics=False)
    experiment = ToyExperiment("JillFred", inputs, TwoPlayerModel(parameters))
    experiment.run()
    print(experiment.table())
    outputter.out(experiment.table(), "Toy", "Jill and Fred")
    outputter.out(experiment.messages_table(), "Toy", "Messages")

    three = ToyExperiment("ThreePlayers", toy_three_players(), TwoPlayerModel(parameters))
    three.run()
    outputter.out(three.table(), "Toy", "Three players")

    jill, fred = inputs.skill_prior, inputs.skill_prior
    outputter.out(demos.plot_gaussians(OrderedDict([("Skill", jill),
                                                    ("Performance", jill + Gaussian(0, inputs.performance_variance))]),
                                       "Skill and performance"), "Toy", "Skill and performance")
    outputter.out(demos.sampling_table(120, 100, inputs.beta), "Toy", "Sampled win probability")
    outputter.out(demos.plot_sampled_performances(120, 100, inputs.beta), "Toy", "Sampled performances")

    difference = jill - fred + Gaussian(0, 2 * inputs.performance_variance)
    margin = draw_margin_from_proportion(TRUESKILL_CONFIG.DRAW_PROBABILITY, inputs.beta)
    outputter.out(demos.plot_draw_region(difference, margin), "Toy", "Draw region")
    outputter.out(demos.dynamics_table(inputs.skill_prior, inputs.dynamics_variance), "Toy", "Dynamics")


def online_experiments(outputter, seed):
    synthesizer = HaloSynthesizer(seed=seed)
    head_to_head = synthesizer.head_to_head(1000)
    print("Synthesized %s head to head games between %s players (draw proportion %.3f)"
          % (head_to_head.number_of_games, head_to_head.number_of_players, head_to_head.draw_proportion))
    outputter.out(head_to_head.game_matrix, "Head to head", "Game matrix")

    parameters = TrueSkillParameters.from_inputs(head_to_head)
    experiments = [
        OnlineExperiment("Random", head_to_head, RandomModel(parameters, draw_probability=head_to_head.draw_proportion,
                                                              seed=seed)),
        OnlineExperiment("Elo", head_to_head, EloModel(parameters, seed=seed)),
        OnlineExperiment("TwoPlayer", head_to_head, TwoPlayerModel(parameters, seed=seed)),
        OnlineExperiment("TwoPlayerWithDraws", head_to_head, TwoPlayerWithDrawsModel(parameters, seed=seed)),
        OnlineExperiment("TwoPlayerVaryingSkills", head_to_head, TwoPlayerVaryingSkillsModel(parameters, seed=seed)),
    ]
    comparison = OnlineExperimentComparison(experiments)
    comparison.run_all()
    table = comparison.metrics_table()
    print(table)
    outputter.out(table, "Head to head", "Comparison")
    outputter.out(comparison.plot_cumulative_errors(), "Head to head", "Cumulative errors")
    outputter.out(comparison.plot_cumulative_negative_log_prob(), "Head to head", "Cumulative negative log prob")
    best = experiments[-1]
    outputter.out(best.leaderboard(), "Head to head", "Leaderboard")
    outputter.out(best.plot_trajectories(), "Head to head", "Trajectories")

    for variant in ["CTF", "Slayer", "Assault"]:
        subset = head_to_head.games_of_variant(variant)
        experiment = OnlineExperiment(variant, subset, TwoPlayerVaryingSkillsModel(parameters, seed=seed))
        experiment.run()
        outputter.out(experiment.leaderboard(), "Variants", variant)

    free_for_all = synthesizer.free_for_all(200)
    multi = OnlineExperiment("MultiPlayer", free_for_all,
                             MultiPlayerModel(TrueSkillParameters.from_inputs(free_for_all), seed=seed))
    multi.run()
    outputter.out(multi.leaderboard(), "Free for all", "Leaderboard")
    outputter.out(multi.plot_trajectories(), "Free for all", "Trajectories")

    teams = synthesizer.two_teams(300)
    team = OnlineExperiment("TwoTeam", teams, TwoTeamModel(TrueSkillParameters.from_inputs(teams), seed=seed))
    team.run()
    print("Team games error rate: %.3f" % team.error_rate)
    outputter.out(team.leaderboard(), "Teams", "Leaderboard")
    outputter.out({"ErrorRate": team.error_rate, "NegativeLogProb": team.negative_log_prob}, "Teams", "Metrics")


def run(args, outputter):
    seed = TRUESKILL_CONFIG.SEED if args.seed is None else args.seed
    toy_examples(outputter)
    online_experiments(outputter, seed)


def main(argv=None):
    args = build_parser("Meeting your match").parse_args(argv)
    return run_program(run, args, name="Meeting Your Match")


if __name__ == "__main__":
    sys.exit(main())
