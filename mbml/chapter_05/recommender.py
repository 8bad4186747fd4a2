import math

import numpy as np
import torch
import pyro
import pyro.distributions as dist
from pyro.infer.autoguide import AutoNormal

from mbml.config import RECOMMENDER_CONFIG
from mbml.common.gaussian import Gaussian
from mbml.common.inference import run_svi, set_seed
from mbml.chapter_05.features import FeatureProcessor


def cumulative_thresholds(start, log_gaps):
    """
    Input
    -------
    start: first threshold, shape [...]
    log_gaps: log of the distances between consecutive thresholds, shape [..., levels - 2]

    Output
    --------
    Increasing thresholds, shape [..., levels - 1].
    """
    start = start.unsqueeze(-1)
    return torch.cat([start, start + torch.cumsum(torch.exp(log_gaps), -1)], -1)


class RecommenderSettings(object):

    def __init__(self, trait_count, rating_levels=2, use_item_features=False,
                 iterations=RECOMMENDER_CONFIG.ITERATIONS_FULL,
                 affinity_noise_variance=RECOMMENDER_CONFIG.AFFINITY_NOISE_VARIANCE,
                 bias_variance=RECOMMENDER_CONFIG.BIAS_VARIANCE,
                 threshold_prior_variance=RECOMMENDER_CONFIG.THRESHOLD_PRIOR_VARIANCE,
                 user_threshold_variance=RECOMMENDER_CONFIG.USER_THRESHOLD_VARIANCE,
                 lr=RECOMMENDER_CONFIG.LEARNING_RATE, seed=RECOMMENDER_CONFIG.SEED):
        if trait_count < 0:
            raise ValueError("Trait count must be non-negative, got %s" % trait_count)
        if rating_levels < 2:
            raise ValueError("Need at least two rating levels, got %s" % rating_levels)
        self.trait_count = trait_count
        self.rating_levels = rating_levels
        self.use_item_features = use_item_features
        self.iterations = iterations
        self.affinity_noise_variance = affinity_noise_variance
        # Keeps the prior variance of the summed trait products at one
        self.trait_variance = 1.0 / math.sqrt(trait_count) if trait_count > 0 else 1.0
        self.bias_variance = bias_variance
        self.threshold_prior_variance = threshold_prior_variance
        self.user_threshold_variance = user_threshold_variance
        self.lr = lr
        self.seed = seed

    @property
    def is_binary(self):
        return self.rating_levels == 2


class MatchboxRecommender(object):
    """
    Matchbox style recommender.

        affinity = user_traits . item_traits + user_bias + item_bias + N(0, noise)
        rating   = r  when  threshold[r - 1] < affinity <= threshold[r]

    Every user has their own cumulative thresholds: a first threshold and
    positive gaps, each the shared threshold mean plus a per-user offset, so
    the thresholds stay ordered. A binary recommender fixes its one threshold
    at zero. With item features, item traits and biases have prior means that
    are linear in the features.
    """

    def __init__(self, settings, print_logs=True):
        self.settings = settings
        self.print_logs = print_logs
        self.guide = None
        self.users = []
        self.items = []

    def model(self, user_index, item_index, rating, number_of_users, number_of_items, item_features=None):
        s = self.settings
        k = s.trait_count
        trait_sd = math.sqrt(s.trait_variance)
        bias_sd = math.sqrt(s.bias_variance)

        item_trait_mean = torch.zeros(number_of_items, k)
        item_bias_mean = torch.zeros(number_of_items)
        if s.use_item_features:
            n_features = item_features.shape[1]
            with pyro.plate("features", n_features):
                feature_bias_weights = pyro.sample("feature_bias_weights", dist.Normal(0.0, bias_sd))
                if k > 0:
                    feature_trait_weights = pyro.sample("feature_trait_weights",
                                                        dist.Normal(torch.zeros(k), trait_sd).to_event(1))
            item_bias_mean = item_features @ feature_bias_weights
            if k > 0:
                item_trait_mean = item_features @ feature_trait_weights

        with pyro.plate("users", number_of_users):
            user_bias = pyro.sample("user_bias", dist.Normal(0.0, bias_sd))
            if k > 0:
                user_traits = pyro.sample("user_traits", dist.Normal(torch.zeros(k), trait_sd).to_event(1))
        with pyro.plate("items", number_of_items):
            item_bias = pyro.sample("item_bias", dist.Normal(item_bias_mean, bias_sd))
            if k > 0:
                item_traits = pyro.sample("item_traits", dist.Normal(item_trait_mean, trait_sd).to_event(1))

        thresholds = self.thresholds_model(number_of_users)
        affinity = user_bias[user_index] + item_bias[item_index]
        if k > 0:
            affinity = affinity + (user_traits[user_index] * item_traits[item_index]).sum(-1)
        if not s.is_binary:
            thresholds = thresholds[user_index]
        probs = self.rating_probabilities(affinity, thresholds)
        with pyro.plate("ratings", len(user_index)):
            pyro.sample("rating", dist.Categorical(probs=probs), obs=rating)

    def thresholds_model(self, number_of_users):
        """Tensor [users, levels - 1] of ordered user thresholds, or the fixed zero of a binary recommender."""
        s = self.settings
        if s.is_binary:
            return torch.zeros(1)
        count = s.rating_levels - 1
        # Prior means sit one apart, centred on zero
        start = pyro.sample("threshold_start", dist.Normal(-(count - 1) / 2.0, math.sqrt(s.threshold_prior_variance)))
        log_gaps = pyro.sample("threshold_log_gaps", dist.Normal(torch.zeros(count - 1), 1.0).to_event(1))
        with pyro.plate("users", number_of_users):
            offsets = pyro.sample("user_threshold_offsets",
                                  dist.Normal(torch.zeros(count), math.sqrt(s.user_threshold_variance)).to_event(1))
        return cumulative_thresholds(start + offsets[..., 0], log_gaps + offsets[..., 1:])

    def rating_probabilities(self, affinity, thresholds):
        """P(rating level) for every affinity: differences of probit terms between adjacent thresholds."""
        scale = math.sqrt(self.settings.affinity_noise_variance)
        above = dist.Normal(0.0, 1.0).cdf((affinity.unsqueeze(-1) - thresholds) / scale)
        ones = torch.ones(affinity.shape + (1,))
        zeros = torch.zeros(affinity.shape + (1,))
        cumulative = torch.cat([ones, above, zeros], dim=-1)
        probs = (cumulative[..., :-1] - cumulative[..., 1:]).clamp(min=1e-8)
        return probs / probs.sum(-1, keepdim=True)

    def _index(self, triples):
        users = torch.tensor([self.user_index[t.user] for t in triples], dtype=torch.long)
        items = torch.tensor([self.item_index[t.movie.id] for t in triples], dtype=torch.long)
        return users, items

    def train(self, triples, movies):
        """
        Input
        -------
        triples: training RatingTriples, ratings in 1..rating_levels
        movies: every movie that may later be predicted
        """
        s = self.settings
        for t in triples:
            if t.rating < 1 or t.rating > s.rating_levels:
                raise ValueError("Rating %s outside 1..%s" % (t.rating, s.rating_levels))
        set_seed(s.seed)
        self.users = sorted(set(t.user for t in triples))
        self.items = list(movies)
        self.user_index = dict((u, i) for i, u in enumerate(self.users))
        self.item_index = dict((m.id, i) for i, m in enumerate(self.items))
        self.item_features = torch.tensor(FeatureProcessor.matrix(self.items), dtype=torch.float) \
            if s.use_item_features else None
        users, items = self._index(triples)
        ratings = torch.tensor([t.rating - 1 for t in triples], dtype=torch.long)
        self.args = (users, items, ratings, len(self.users), len(self.items), self.item_features)
        self.guide = AutoNormal(self.model)
        self.losses = run_svi(self.model, self.guide, *self.args, steps=s.iterations, lr=s.lr,
                              print_logs=self.print_logs)
        self.posterior = dict((name, value.detach()) for name, value in self.guide.median(*self.args).items())
        return self

    def predict_distribution(self, triples):
        """Array [instances, levels] of rating probabilities under the posterior medians."""
        if self.guide is None:
            raise ValueError("The recommender has not been trained")
        for t in triples:
            if t.user not in self.user_index:
                raise KeyError("User '%s' has no training ratings" % t.user)
        users, items = self._index(triples)
        p = self.posterior
        affinity = p["user_bias"][users] + p["item_bias"][items]
        if self.settings.trait_count > 0:
            affinity = affinity + (p["user_traits"][users] * p["item_traits"][items]).sum(-1)
        thresholds = torch.zeros(1) if self.settings.is_binary else self._user_thresholds(p)[users]
        with torch.no_grad():
            return self.rating_probabilities(affinity, thresholds).numpy()

    def predict(self, triples):
        """Most probable rating of each instance."""
        return np.argmax(self.predict_distribution(triples), axis=1) + 1

    def expected_ratings(self, triples):
        probs = self.predict_distribution(triples)
        return probs @ np.arange(1, probs.shape[1] + 1)

    def like_probabilities(self, triples):
        """P(like): the top level of a binary recommender, ratings of 6 or more for ten levels."""
        probs = self.predict_distribution(triples)
        if self.settings.is_binary:
            return probs[:, 1]
        return probs[:, 5:].sum(axis=1)

    @staticmethod
    def _user_thresholds(values):
        offsets = values["user_threshold_offsets"]
        return cumulative_thresholds(values["threshold_start"] + offsets[..., 0],
                                     values["threshold_log_gaps"] + offsets[..., 1:])

    def user_thresholds(self, user):
        """Posterior median thresholds of one user, increasing."""
        if self.guide is None:
            raise ValueError("The recommender has not been trained")
        if user not in self.user_index:
            raise KeyError("User '%s' has no training ratings" % user)
        if self.settings.is_binary:
            return np.zeros(1)
        return self._user_thresholds(self.posterior)[self.user_index[user]].numpy()

    def threshold_posteriors(self):
        """Shared threshold beliefs named by the star rating they start, in half stars."""
        if self.settings.is_binary:
            return {"Like": Gaussian.point_mass(0.0)}
        samples = []
        for _ in range(200):
            values = self.guide(*self.args)
            samples.append(cumulative_thresholds(values["threshold_start"], values["threshold_log_gaps"]).detach())
        samples = torch.stack(samples)
        means, variances = samples.mean(0).numpy(), samples.var(0).numpy()
        names = []
        for i in range(len(means)):
            star = (i + 2) / 2.0
            names.append("%g star%s" % (star, "" if star == 1 else "s"))
        return dict((name, Gaussian(m, v)) for name, m, v in zip(names, means, variances))
