from collections import OrderedDict, defaultdict

import numpy as np
import pandas as pd
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import seaborn as sns

from mbml.config import RECOMMENDER_CONFIG
from mbml.common import metrics
from mbml.common.timer import CodeTimer
from mbml.chapter_05.data import binarize, MAX_STARS
from mbml.chapter_05.recommender import MatchboxRecommender, RecommenderSettings


def average_ndcg(test, scores, rank=RECOMMENDER_CONFIG.NDCG_RANK):
    """
    Mean NDCG over users with at least `rank` test ratings: each user's test
    movies are ordered by score and gain their 10 star rating.
    """
    by_user = defaultdict(list)
    for t, score in zip(test, scores):
        by_user[t.user].append((score, t.rating))
    values = []
    for user, rated in by_user.items():
        if len(rated) < rank:
            continue
        ordered = sorted(rated, key=lambda sr: -sr[0])
        values.append(metrics.ndcg([r for _, r in ordered], [r for _, r in rated], rank))
    return float(np.mean(values)) if values else float("nan")


def popularity_bucket_names(buckets=RECOMMENDER_CONFIG.POPULARITY_BUCKETS):
    names = []
    for first, last in buckets:
        if first == last:
            names.append("%s rating%s" % (first, "" if first == 1 else "s"))
        elif last >= 2 ** 31 - 1:
            names.append("%s or more ratings" % first)
        else:
            names.append("%s - %s ratings" % (first, last))
    return names


class RecommenderExperiment(object):
    """
    Trains one recommender per trait count and scores it on the test ratings,
    which always keep their original 10 star values for NDCG and MAE.
    """

    def __init__(self, name, train, test, movies, trait_counts, binary=False, use_item_features=False,
                 iterations=RECOMMENDER_CONFIG.ITERATIONS_FULL, print_logs=True):
        self.name = name
        self.train = train
        self.test = test
        self.movies = movies
        self.trait_counts = list(trait_counts)
        self.binary = binary
        self.use_item_features = use_item_features
        self.iterations = iterations
        self.print_logs = print_logs
        self.recommenders = OrderedDict()
        self.metrics = OrderedDict()

    def _settings(self, trait_count):
        return RecommenderSettings(trait_count, rating_levels=2 if self.binary else MAX_STARS,
                                   use_item_features=self.use_item_features, iterations=self.iterations)

    def run(self):
        train = binarize(self.train) if self.binary else self.train
        binary_test = binarize(self.test)
        actual_like = np.array([t.rating == 2 for t in binary_test])
        for trait_count in self.trait_counts:
            print("Running metrics calculation for %s and a model with %s traits." % (self.name, trait_count))
            recommender = MatchboxRecommender(self._settings(trait_count), print_logs=self.print_logs)
            with CodeTimer("Training with %s traits" % trait_count, print_logs=self.print_logs):
                recommender.train(train, list(self.movies.values()))
            like = recommender.like_probabilities(self.test)
            result = {"CorrectFraction": float(np.mean((like > 0.5) == actual_like))}
            if self.binary:
                result["NDCG"] = average_ndcg(self.test, like)
            else:
                result["NDCG"] = average_ndcg(self.test, recommender.expected_ratings(self.test))
                # Half of the 10 point error, as stars out of five
                result["MAE"] = metrics.mean_absolute_error(recommender.predict(self.test),
                                                            [t.rating for t in self.test]) / 2.0
            self.recommenders[trait_count] = recommender
            self.metrics[trait_count] = result
        return self.metrics

    def metrics_table(self):
        table = pd.DataFrame(self.metrics).T
        table.index.name = "Traits"
        return table

    def like_probabilities(self, trait_count):
        return self.recommenders[trait_count].like_probabilities(self.test)

    def threshold_table(self, trait_count):
        posteriors = self.recommenders[trait_count].threshold_posteriors()
        return pd.DataFrame({"Mean": [g.mean for g in posteriors.values()],
                             "StdDev": [g.sd for g in posteriors.values()]}, index=list(posteriors))

    def plot_metrics(self):
        sns.set_style("darkgrid")
        table = self.metrics_table()
        fig, axes = plt.subplots(1, len(table.columns), figsize=(6 * len(table.columns), 5))
        for ax, column in zip(np.atleast_1d(axes), table.columns):
            ax.bar([str(i) for i in table.index], table[column])
            ax.set_xlabel("Traits")
            ax.set_title(column)
        return fig


def mae_by_popularity(recommender, train, test, buckets=RECOMMENDER_CONFIG.POPULARITY_BUCKETS):
    """
    Output
    --------
    DataFrame of star MAE for test ratings grouped by how many training
    ratings their movie had.
    """
    counts = defaultdict(int)
    for t in train:
        counts[t.movie.id] += 1
    errors = np.abs(recommender.predict(test) - np.array([t.rating for t in test])) / 2.0
    rows = []
    for (first, last), name in zip(buckets, popularity_bucket_names(buckets)):
        mask = np.array([first <= counts[t.movie.id] <= last for t in test])
        rows.append({"Bucket": "%s (%s)" % (name, int(mask.sum())),
                     "MAE": float(errors[mask].mean()) if mask.any() else float("nan")})
    return pd.DataFrame(rows).set_index("Bucket")
