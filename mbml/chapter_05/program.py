import os
import sys

import pandas as pd

from mbml.config import RECOMMENDER_CONFIG, DATA_DIR
from mbml.common.program import build_parser, run_program
from mbml.chapter_05.data import load_movies, load_ratings, MovieLensSynthesizer, train_test_split
from mbml.chapter_05.experiments import RecommenderExperiment, mae_by_popularity
from mbml.chapter_05.features import FeatureProcessor


def load_or_synthesize(data_dir, seed):
    folder = os.path.join(data_dir, "recommender")
    movies_path = os.path.join(folder, "movies.csv")
    ratings_path = os.path.join(folder, "ratings.csv")
    if os.path.exists(movies_path) and os.path.exists(ratings_path):
        print("Loading movies and ratings from '%s'" % folder)
        movies = load_movies(movies_path)
        return movies, load_ratings(ratings_path, movies)
    print("No ratings in '%s', synthesizing them" % folder)
    synthesizer = MovieLensSynthesizer(seed=seed)
    movies = synthesizer.movies()
    return movies, synthesizer.ratings(movies)


def run(args, outputter):
    seed = RECOMMENDER_CONFIG.SEED if args.seed is None else args.seed
    movies, triples = load_or_synthesize(args.data_dir or str(DATA_DIR), seed)
    train, test = train_test_split(triples, seed=seed)
    print("%s movies, %s training and %s test ratings" % (len(movies), len(train), len(test)))
    outputter.out(pd.DataFrame(FeatureProcessor.matrix(list(movies.values())[:20]),
                               columns=FeatureProcessor.feature_names(),
                               index=[str(m) for m in list(movies.values())[:20]]), "Data", "Features")

    trait_counts = RECOMMENDER_CONFIG.TRAIT_COUNTS["fast"]
    iterations = RECOMMENDER_CONFIG.ITERATIONS_FULL
    binary = RecommenderExperiment("binary data", train, test, movies, trait_counts, binary=True, iterations=iterations)
    binary.run()
    outputter.out(binary.metrics_table(), "Binary", "Metrics")
    outputter.out(binary.plot_metrics(), "Binary", "Metrics plot")

    star = RecommenderExperiment("10-star data", train, test, movies, trait_counts, iterations=iterations)
    star.run()
    print(star.metrics_table())
    outputter.out(star.metrics_table(), "Stars", "Metrics")
    outputter.out(star.plot_metrics(), "Stars", "Metrics plot")
    outputter.out(star.threshold_table(trait_counts[-1]), "Stars", "Thresholds")

    featured = RecommenderExperiment("data with features", train, test, movies, trait_counts,
                                     use_item_features=True, iterations=iterations)
    featured.run()
    outputter.out(featured.metrics_table(), "Features", "Metrics")

    popularity = mae_by_popularity(star.recommenders[trait_counts[-1]], train, test)
    print(popularity)
    outputter.out(popularity, "Stars", "MAE by popularity")


def main(argv=None):
    args = build_parser("Making recommendations").parse_args(argv)
    return run_program(run, args, name="Making Recommendations")


if __name__ == "__main__":
    sys.exit(main())
