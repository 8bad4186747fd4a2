import sys

import pandas as pd

from mbml.config import INBOX_CONFIG
from mbml.common.program import build_parser, run_program
from mbml.chapter_04.data import InboxSynthesizer
from mbml.chapter_04.experiment import Experiment, OnlineExperiment, comparison_table
from mbml.chapter_04.features import FeatureSet, TO_CC_POSITIONS, to_cc_position
from mbml.chapter_04.models import ReplyToModel, OneFeatureNoNoiseModel, CommunityModel


def data_summary(users):
    rows = []
    for user in users:
        rows.append({"User": user.name, "Train": len(user.train), "Validation": len(user.validation),
                     "Test": len(user.test), "Replies": user.reply_count(),
                     "ReplyFraction": user.reply_fraction()})
    return pd.DataFrame(rows).set_index("User")


def position_table(users):
    """Reply fraction of the training messages by the user's position in the recipients."""
    counts = {p: [0, 0] for p in TO_CC_POSITIONS}
    for user in users:
        for message in user.train:
            position = to_cc_position(user.name, message)
            counts[position][0] += 1
            counts[position][1] += int(message.is_replied)
    return pd.DataFrame({"Messages": [counts[p][0] for p in TO_CC_POSITIONS],
                         "ReplyFraction": [counts[p][1] / float(max(counts[p][0], 1)) for p in TO_CC_POSITIONS]},
                        index=TO_CC_POSITIONS)


def run(args, outputter):
    seed = INBOX_CONFIG.SEED if args.seed is None else args.seed
    users = InboxSynthesizer(seed=seed).users()
    summary = data_summary(users)
    print(summary)
    outputter.out(summary, "Data", "Users")
    outputter.out(position_table(users), "Data", "ToCcPosition")

    experiments = [
        Experiment("OneFeatureNoNoise", users, OneFeatureNoNoiseModel(FeatureSet.create("Single"))),
        Experiment("Initial", users, ReplyToModel(FeatureSet.create("Initial"))),
        Experiment("WithSubjectPrefix", users, ReplyToModel(FeatureSet.create("WithSubjectPrefix"))),
        Experiment("Full", users, ReplyToModel(FeatureSet.create("Full"))),
    ]
    full_set = FeatureSet.create("Full")
    experiments.append(Experiment("Community", users, ReplyToModel(full_set),
                                  community=CommunityModel(full_set, seed=seed)))
    for experiment in experiments:
        print("Running %s" % experiment.name)
        experiment.run()
        outputter.out(experiment.summary_table(), "Results", experiment.name)
        outputter.out(experiment.summary_table(validation=True), "Validation", experiment.name)
        outputter.out(experiment.plot_curves(), "Curves", experiment.name)

    table = comparison_table(experiments)
    print(table)
    outputter.out(table, "Results", "Comparison")
    outputter.out(comparison_table(experiments, validation=True), "Validation", "Comparison")
    outputter.out(experiments[-1].community_table(), "Results", "CommunityOnly")
    outputter.out(experiments[3].weights_table(users[0]), "Weights", users[0].name)
    community = experiments[-1].community.posterior
    outputter.out(pd.DataFrame({"Mean": community.weight_means, "Precision": community.weight_precisions},
                               index=community.bucket_names), "Weights", "Community")

    online = OnlineExperiment(users, ReplyToModel(full_set))
    online.run()
    print("Online validation average precision:\n%s" % online.average_precision.tail())
    outputter.out(online.average_precision, "Online", "AveragePrecision")
    outputter.out(online.area_under_curve, "Online", "AreaUnderCurve")
    outputter.out(online.plot(), "Online", "Plot")


def main(argv=None):
    args = build_parser("Uncluttering your inbox").parse_args(argv)
    return run_program(run, args, name="Uncluttering Your Inbox")


if __name__ == "__main__":
    sys.exit(main())
