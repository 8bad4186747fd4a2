import numpy as np
import pytest

from mbml.chapter_05.data import Movie, RatingTriple, parse_movie, load_movies, load_ratings, save_data, binarize, \
    stars, train_test_split, MovieLensSynthesizer
from mbml.chapter_05.features import FeatureProcessor, MOVIE_YEARS
from mbml.chapter_05.recommender import RecommenderSettings, MatchboxRecommender
from mbml.chapter_05.experiments import average_ndcg, popularity_bucket_names


def close_enough(x, y, r=6):
    return round(x, r) == round(y, r)


@pytest.fixture
def movie():
    return Movie(7, "Heat", 1995, ["Action", "Crime"])


class TestData():

    def test_parse_movie(self):
        movie = parse_movie("12;The Third Man (1949);Film-Noir|Mystery|Thriller\n")
        assert (movie.id, movie.name, movie.year) == (12, "The Third Man", 1949)
        assert movie.genres == ["Film-Noir", "Mystery", "Thriller"]

    def test_parse_movie_errors(self):
        with pytest.raises(ValueError):
            parse_movie("12;The Third Man;Drama")
        with pytest.raises(ValueError):
            parse_movie("12;The Third Man (1949)")

    def test_movies_equal_by_id(self, movie):
        assert movie == Movie(7, "Other", 2001, ["Drama"])
        assert len(set([movie, Movie(7, "Other", 2001, ["Drama"])])) == 1

    def test_binarize(self, movie):
        triples = [RatingTriple("u", movie, r) for r in [1, 5, 6, 10]]
        assert [t.rating for t in binarize(triples)] == [1, 1, 2, 2]
        with pytest.raises(ValueError):
            binarize(triples, max_rating=5)
        assert stars(7) == 3.5

    def test_split_per_user(self, movie):
        triples = [RatingTriple(u, movie, 5) for u in ["a", "b"] for _ in range(10)]
        train, test = train_test_split(triples, train_fraction=0.7, seed=1)
        assert len(train) == 14 and len(test) == 6
        assert sum(1 for t in test if t.user == "a") == 3

    def test_save_and_load(self, tmp_path, movie):
        movies = {movie.id: movie}
        save_data(movies, [RatingTriple("u1", movie, 8)], str(tmp_path))
        loaded = load_movies(str(tmp_path / "movies.csv"))
        assert loaded[7].genres == ["Action", "Crime"]
        ratings = load_ratings(str(tmp_path / "ratings.csv"), loaded)
        assert [(t.user, t.movie.id, t.rating) for t in ratings] == [("u1", 7, 8)]

    def test_missing_files(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_movies(str(tmp_path / "none.csv"))


class TestFeatures():

    def test_year_interpolation(self):
        features = FeatureProcessor.year_features(1902)
        assert close_enough(features[0], 0.8) and close_enough(features[1], 0.2)
        assert close_enough(features.sum(), 1.0)

    def test_bucket_year(self):
        features = FeatureProcessor.year_features(1985)
        assert features[MOVIE_YEARS.index(1985)] == 1.0
        assert features.sum() == 1.0

    def test_year_out_of_range(self):
        with pytest.raises(ValueError):
            FeatureProcessor.year_features(1899)

    def test_genres(self, movie):
        features = FeatureProcessor.genre_features(movie.genres)
        assert close_enough(features.sum(), 1.0)
        with pytest.raises(ValueError):
            FeatureProcessor.genre_features([])
        with pytest.raises(KeyError):
            FeatureProcessor.genre_features(["Opera"])

    def test_feature_vector(self, movie):
        vector = FeatureProcessor.features(movie)
        assert len(vector) == len(FeatureProcessor.feature_names())
        assert vector[0] == 1.0


class TestRecommender():

    def test_settings_guards(self):
        with pytest.raises(ValueError):
            RecommenderSettings(-1)
        with pytest.raises(ValueError):
            RecommenderSettings(2, rating_levels=1)

    def test_untrained(self, movie):
        with pytest.raises(ValueError):
            MatchboxRecommender(RecommenderSettings(2)).predict([RatingTriple("u", movie, 1)])

    def test_binary_training(self):
        synthesizer = MovieLensSynthesizer(number_of_users=10, number_of_movies=20, ratings_per_user=8, seed=1)
        movies = synthesizer.movies()
        triples = binarize(synthesizer.ratings(movies))
        recommender = MatchboxRecommender(RecommenderSettings(2, iterations=20), print_logs=False)
        recommender.train(triples, movies.values())
        probabilities = recommender.predict_distribution(triples[:5])
        assert probabilities.shape == (5, 2)
        assert np.allclose(probabilities.sum(axis=1), 1.0)
        assert set(recommender.predict(triples[:5])) <= {1, 2}
        assert list(recommender.threshold_posteriors()) == ["Like"]
        with pytest.raises(KeyError):
            recommender.predict([RatingTriple("nobody", triples[0].movie, 1)])

    def test_thresholds_follow_each_user(self):
        movies = [Movie(i, "Movie %d" % i, 1990, ["Drama"]) for i in range(10)]
        triples = [RatingTriple("harsh", m, 1) for m in movies] + [RatingTriple("generous", m, 3) for m in movies]
        recommender = MatchboxRecommender(RecommenderSettings(0, rating_levels=3, iterations=100), print_logs=False)
        recommender.train(triples, movies)
        harsh = recommender.user_thresholds("harsh")
        generous = recommender.user_thresholds("generous")
        assert harsh.shape == (2,) and generous.shape == (2,)
        assert harsh[0] < harsh[1] and generous[0] < generous[1]
        assert generous[0] < harsh[0]
        assert list(recommender.threshold_posteriors()) == ["1 star", "1.5 stars"]
        with pytest.raises(KeyError):
            recommender.user_thresholds("nobody")

    def test_rejects_ratings_out_of_range(self, movie):
        recommender = MatchboxRecommender(RecommenderSettings(1, iterations=2), print_logs=False)
        with pytest.raises(ValueError):
            recommender.train([RatingTriple("u", movie, 9)], [movie])


class TestExperiments():

    def test_popularity_bucket_names(self):
        assert popularity_bucket_names() == ["0 ratings", "1 rating", "2 - 7 ratings", "8 or more ratings"]

    def test_average_ndcg(self, movie):
        test = [RatingTriple("a", movie, r) for r in [2, 9, 5]]
        assert close_enough(average_ndcg(test, [2.0, 9.0, 5.0], rank=3), 1.0)
        assert average_ndcg(test, [9.0, 2.0, 5.0], rank=3) < 1.0
        assert np.isnan(average_ndcg(test, [1.0, 2.0, 3.0], rank=5))
