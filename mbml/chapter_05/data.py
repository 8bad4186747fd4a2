import os
import re
from collections import OrderedDict, defaultdict

import numpy as np
import pandas as pd

from mbml.config import RECOMMENDER_CONFIG

GENRE_NAMES = ["Action", "Adventure", "Animation", "Children", "Comedy", "Crime", "Documentary", "Drama",
               "Fantasy", "Film-Noir", "Horror", "IMAX", "Musical", "Mystery", "Romance", "Sci-Fi",
               "Thriller", "War", "Western"]

MIN_STARS = 1
MAX_STARS = 10


class Movie(object):
    """A movie; two movies are the same movie when their ids match."""

    def __init__(self, movie_id, name, year, genres):
        self.id = int(movie_id)
        self.name = name
        self.year = int(year)
        self.genres = list(genres)

    def __eq__(self, other):
        return isinstance(other, Movie) and self.id == other.id

    def __hash__(self):
        return hash(self.id)

    def __str__(self):
        return "%s (%s)" % (self.name, self.year)

    def __repr__(self):
        return "Movie(%s, %s)" % (self.id, self)


class RatingTriple(object):

    def __init__(self, user, movie, rating):
        self.user = str(user)
        self.movie = movie
        self.rating = int(rating)

    def __repr__(self):
        return "RatingTriple(%s, %s, %s)" % (self.user, self.movie.id, self.rating)


MOVIE_LINE = re.compile(r"^\s*(.*?)\s*\((\d{4})\)\s*$")


def parse_movie(line):
    """Parses `id;name (year);genre|genre`."""
    parts = line.rstrip("\n").split(";")
    if len(parts) != 3:
        raise ValueError("Expected 'id;name (year);genres', got '%s'" % line.strip())
    match = MOVIE_LINE.match(parts[1])
    if match is None:
        raise ValueError("Movie name has no year: '%s'" % parts[1])
    genres = [g.strip() for g in parts[2].split("|") if g.strip()]
    return Movie(int(parts[0]), match.group(1), int(match.group(2)), genres)


def load_movies(path):
    if not os.path.exists(path):
        raise FileNotFoundError("Movies file '%s' not found" % path)
    with open(path) as handle:
        movies = [parse_movie(line) for line in handle if line.strip()]
    return OrderedDict((m.id, m) for m in movies)


def load_ratings(path, movies):
    """
    Input
    -------
    path: CSV of `user,movieId,rating` rows, ratings on a 10 star scale
    movies: dict of movie id to Movie

    Output
    --------
    list of RatingTriple
    """
    if not os.path.exists(path):
        raise FileNotFoundError("Ratings file '%s' not found" % path)
    frame = pd.read_csv(path, header=None, names=["user", "movie", "rating"])
    triples = []
    for user, movie_id, rating in frame.itertuples(index=False):
        if movie_id not in movies:
            raise KeyError("Rating refers to unknown movie %s" % movie_id)
        triples.append(RatingTriple(user, movies[movie_id], int(round(rating))))
    return triples


def save_data(movies, triples, folder):
    os.makedirs(folder, exist_ok=True)
    with open(os.path.join(folder, "movies.csv"), "w") as handle:
        for movie in movies.values():
            handle.write("%s;%s (%s);%s\n" % (movie.id, movie.name, movie.year, "|".join(movie.genres)))
    pd.DataFrame([(t.user, t.movie.id, t.rating) for t in triples]).to_csv(
        os.path.join(folder, "ratings.csv"), header=False, index=False)


def binarize(triples, min_rating=MIN_STARS, max_rating=MAX_STARS):
    """Ratings below 6 of 10 become 1 (dislike), the rest 2 (like)."""
    if min_rating != MIN_STARS or max_rating != MAX_STARS:
        raise ValueError("Only 10-star ratings are supported.")
    return [RatingTriple(t.user, t.movie, 1 if t.rating < 6 else 2) for t in triples]


def stars(rating):
    """10 point rating as stars out of five."""
    return rating / 2.0


def train_test_split(triples, train_fraction=RECOMMENDER_CONFIG.TRAIN_FRACTION, seed=RECOMMENDER_CONFIG.SEED):
    """Every user keeps `train_fraction` of their ratings for training, the rest for testing."""
    rng = np.random.RandomState(seed)
    by_user = defaultdict(list)
    for t in triples:
        by_user[t.user].append(t)
    train, test = [], []
    for user in sorted(by_user):
        ratings = by_user[user]
        order = rng.permutation(len(ratings))
        n_train = int(round(train_fraction * len(ratings)))
        train.extend(ratings[i] for i in order[:n_train])
        test.extend(ratings[i] for i in order[n_train:])
    return train, test


class MovieLensSynthesizer(object):
    """
    Synthesizes movies and 10 star ratings from a hidden trait model: users
    and movies have a few traits, and each genre pulls its movies' traits
    in its own direction.
    """

    def __init__(self, number_of_users=120, number_of_movies=150, ratings_per_user=30, trait_count=3,
                 seed=RECOMMENDER_CONFIG.SEED):
        self.rng = np.random.RandomState(seed)
        self.number_of_users = number_of_users
        self.number_of_movies = number_of_movies
        self.ratings_per_user = ratings_per_user
        self.trait_count = trait_count

    def movies(self):
        rng = self.rng
        movies = OrderedDict()
        for m in range(self.number_of_movies):
            genres = list(rng.choice(GENRE_NAMES, rng.randint(1, 4), replace=False))
            year = int(np.clip(rng.normal(1995, 15), 1900, 2020))
            movies[m + 1] = Movie(m + 1, "Movie %s" % (m + 1), year, [str(g) for g in genres])
        return movies

    def ratings(self, movies):
        rng = self.rng
        genre_traits = {g: rng.normal(0, 1, self.trait_count) for g in GENRE_NAMES}
        movie_list = list(movies.values())
        movie_traits = np.array([np.mean([genre_traits[g] for g in m.genres], axis=0) + rng.normal(0, 0.5, self.trait_count)
                                 for m in movie_list])
        movie_bias = rng.normal(0, 0.7, len(movie_list))
        # Some movies are far more popular than others
        popularity = rng.zipf(1.6, len(movie_list)).astype(float)
        popularity /= popularity.sum()
        triples = []
        for u in range(self.number_of_users):
            user_traits = rng.normal(0, 1, self.trait_count)
            user_bias = rng.normal(0, 0.7)
            count = min(self.ratings_per_user, len(movie_list))
            chosen = rng.choice(len(movie_list), count, replace=False, p=popularity)
            for i in chosen:
                affinity = user_traits @ movie_traits[i] + user_bias + movie_bias[i] + rng.normal(0, 1)
                rating = int(np.clip(round(5.5 + 1.5 * affinity), MIN_STARS, MAX_STARS))
                triples.append(RatingTriple("U%s" % (u + 1), movie_list[i], rating))
        return triples
