import numpy as np

from mbml.chapter_05.data import GENRE_NAMES

# 1900, 1910, ... 1970, then every five years to 2020
MOVIE_YEARS = list(range(1900, 1980, 10)) + list(range(1980, 2021, 5))
GENRE_INDEX = dict((name, i) for i, name in enumerate(GENRE_NAMES))


class FeatureProcessor(object):
    """Item feature vectors: a constant term, interpolated year buckets and genre indicators."""

    year_bucket_count = len(MOVIE_YEARS)
    genre_bucket_count = len(GENRE_NAMES)

    @staticmethod
    def year_features(year):
        """
        A year between two bucket years is split between them in proportion
        to its distance from each; a bucket year lights one bucket.
        """
        if year < MOVIE_YEARS[0] or year > MOVIE_YEARS[-1]:
            raise ValueError("The movie release year should be between %s and %s." % (MOVIE_YEARS[0], MOVIE_YEARS[-1]))
        bucket = 0
        while year > MOVIE_YEARS[bucket]:
            bucket += 1
        result = np.zeros(len(MOVIE_YEARS))
        if bucket > 0 and MOVIE_YEARS[bucket] != year:
            span = float(MOVIE_YEARS[bucket] - MOVIE_YEARS[bucket - 1])
            right = (year - MOVIE_YEARS[bucket - 1]) / span
            result[bucket - 1] = 1 - right
            result[bucket] = right
        else:
            result[bucket] = 1.0
        return result

    @staticmethod
    def genre_features(genres):
        if len(genres) < 1:
            raise ValueError("Movies should have at least one genre; given %s." % len(genres))
        result = np.zeros(len(GENRE_NAMES))
        for genre in genres:
            if genre.strip() not in GENRE_INDEX:
                raise KeyError("Unknown genre '%s'" % genre)
            result[GENRE_INDEX[genre.strip()]] = 1.0 / len(genres)
        return result

    @staticmethod
    def features(movie):
        return np.concatenate([[1.0], FeatureProcessor.year_features(movie.year),
                               FeatureProcessor.genre_features(movie.genres)])

    @staticmethod
    def feature_names():
        return ["Constant"] + ["Year %s" % y for y in MOVIE_YEARS] + GENRE_NAMES

    @staticmethod
    def matrix(movies):
        return np.array([FeatureProcessor.features(m) for m in movies])
