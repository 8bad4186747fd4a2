import numpy as np
from scipy import stats
import torch
import pyro
import pyro.distributions as dist
from pyro.infer.autoguide import AutoNormal

from mbml.config import INBOX_CONFIG
from mbml.common.gaussian import Gaussian, v_exceeds, w_exceeds
from mbml.common.inference import run_svi, set_seed


class WeightPosterior(object):
    """Gaussian belief over bucket weights and the threshold, with full covariance."""

    def __init__(self, mean, covariance, bucket_names=None):
        self.mean = np.asarray(mean, dtype=float)
        self.covariance = np.asarray(covariance, dtype=float)
        self.bucket_names = bucket_names

    @staticmethod
    def prior(number_of_buckets, weight_mean=INBOX_CONFIG.WEIGHT_PRIOR_MEAN,
              weight_variance=INBOX_CONFIG.WEIGHT_PRIOR_VARIANCE,
              threshold_mean=INBOX_CONFIG.THRESHOLD_PRIOR_MEAN,
              threshold_variance=INBOX_CONFIG.THRESHOLD_PRIOR_VARIANCE, bucket_names=None):
        """Independent weights; weight_mean and weight_variance may be per bucket arrays."""
        means = np.append(np.broadcast_to(weight_mean, (number_of_buckets,)), threshold_mean)
        variances = np.append(np.broadcast_to(weight_variance, (number_of_buckets,)), threshold_variance)
        return WeightPosterior(means, np.diag(variances), bucket_names)

    @property
    def number_of_buckets(self):
        return len(self.mean) - 1

    @property
    def weights(self):
        return [Gaussian(m, self.covariance[i, i]) for i, m in enumerate(self.mean[:-1])]

    @property
    def threshold(self):
        return Gaussian(self.mean[-1], self.covariance[-1, -1])


class ReplyToModel(object):
    """
    Probit regression on sparse bucket features:

        replied = (sum of active weights) + N(0, noise_variance) > threshold

    trained by assumed-density filtering, one message at a time.
    """

    name = "ReplyTo"

    def __init__(self, feature_set, noise_variance=INBOX_CONFIG.NOISE_VARIANCE, name=None):
        self.feature_set = feature_set
        self.noise_variance = noise_variance
        if name is not None:
            self.name = name

    def _augmented(self, user, message):
        # Threshold enters the score with weight -1 so replied means score > 0
        z = np.zeros(self.feature_set.number_of_buckets(user) + 1)
        indices, values = self.feature_set.sparse_vector(user, message)
        z[indices] = values
        z[-1] = -1.0
        return z

    def score(self, posterior, z):
        return Gaussian(float(posterior.mean @ z), float(z @ posterior.covariance @ z) + self.noise_variance)

    def train(self, user, messages, prior=None):
        """
        Input
        -------
        user: owner of the messages
        messages: training messages, in order
        prior: WeightPosterior to start from, default the independent prior

        Output
        --------
        WeightPosterior after absorbing every message
        """
        names = self.feature_set.bucket_names(user)
        posterior = prior if prior is not None else WeightPosterior.prior(len(names), bucket_names=names)
        mean, covariance = posterior.mean.copy(), posterior.covariance.copy()
        for message in messages:
            z = self._augmented(user, message)
            s = z @ covariance
            score = Gaussian(float(mean @ z), max(float(s @ z) + self.noise_variance, 1e-12))
            sign = 1.0 if message.is_replied else -1.0
            t = sign * score.mean / score.sd
            v, w = v_exceeds(t), w_exceeds(t)
            # Moment matched update of the score, pushed back to the weights
            mean = mean + sign * s * (v / score.sd)
            covariance = covariance - np.outer(s, s) * (w / score.variance)
        return WeightPosterior(mean, covariance, names)

    def predict(self, user, messages, posterior):
        """Probability that each message is replied to."""
        probabilities = []
        for message in messages:
            score = self.score(posterior, self._augmented(user, message))
            probabilities.append(float(stats.norm.cdf(score.mean / score.sd)))
        return np.array(probabilities)


class OneFeatureNoNoiseModel(ReplyToModel):
    """The first model: one feature, no score noise, so the threshold is a hard cut."""

    name = "OneFeatureNoNoise"

    def __init__(self, feature_set, name=None):
        super(OneFeatureNoNoiseModel, self).__init__(feature_set, noise_variance=0.0, name=name)

    def predict(self, user, messages, posterior):
        probabilities = []
        for message in messages:
            score = self.score(posterior, self._augmented(user, message))
            if score.variance <= 0:
                probabilities.append(1.0 if score.mean > 0 else 0.0)
            else:
                probabilities.append(float(stats.norm.cdf(score.mean / score.sd)))
        return np.array(probabilities)


class CommunityPosterior(object):
    """Posterior of the community weight distribution over the shared buckets."""

    def __init__(self, weight_means, weight_mean_variances, weight_precisions, bucket_names,
                 threshold=None):
        self.weight_means = np.asarray(weight_means, dtype=float)
        self.weight_mean_variances = np.asarray(weight_mean_variances, dtype=float)
        self.weight_precisions = np.asarray(weight_precisions, dtype=float)
        self.bucket_names = bucket_names
        # Spread of the users' fitted thresholds
        self.threshold = threshold if threshold is not None else \
            Gaussian(INBOX_CONFIG.THRESHOLD_PRIOR_MEAN, INBOX_CONFIG.THRESHOLD_PRIOR_VARIANCE)

    @property
    def predictive_variances(self):
        """Variance of a new user's weight: spread of the community plus uncertainty in its mean."""
        return 1.0 / self.weight_precisions + self.weight_mean_variances


class CommunityModel(object):
    """
    Users share a community distribution over each shared bucket weight,

        weight_mean[b] ~ N(0, v), weight_precision[b] ~ Gamma(a, r),
        weight[u, b] ~ N(weight_mean[b], 1 / weight_precision[b])

    fitted with Pyro SVI on the users' training messages. The community
    posterior then acts as the prior of each user's personal model.
    """

    name = "Community"

    def __init__(self, feature_set, noise_variance=INBOX_CONFIG.NOISE_VARIANCE, steps=INBOX_CONFIG.SVI_STEPS,
                 lr=INBOX_CONFIG.LEARNING_RATE, seed=INBOX_CONFIG.SEED, print_logs=True):
        self.feature_set = feature_set
        self.noise_variance = noise_variance
        self.steps = steps
        self.lr = lr
        self.seed = seed
        self.print_logs = print_logs
        self.guide = None

    def model(self, features, replied, user_index, number_of_users):
        """
        Input
        -------
        features: float tensor [messages, buckets] over the shared buckets
        replied: float tensor [messages]
        user_index: long tensor [messages], the owner of each message
        number_of_users: count of users
        """
        number_of_buckets = features.shape[1]
        with pyro.plate("buckets", number_of_buckets):
            weight_mean = pyro.sample("weight_mean", dist.Normal(0.0, INBOX_CONFIG.WEIGHT_MEAN_PRIOR_VARIANCE ** 0.5))
            weight_precision = pyro.sample("weight_precision", dist.Gamma(INBOX_CONFIG.WEIGHT_PRECISION_SHAPE,
                                                                          INBOX_CONFIG.WEIGHT_PRECISION_RATE))
        with pyro.plate("users", number_of_users):
            threshold = pyro.sample("threshold", dist.Normal(INBOX_CONFIG.THRESHOLD_PRIOR_MEAN,
                                                             INBOX_CONFIG.THRESHOLD_PRIOR_VARIANCE ** 0.5))
            weights = pyro.sample("weights", dist.Normal(weight_mean, weight_precision.rsqrt()).to_event(1))
        score = (features * weights[user_index]).sum(-1) - threshold[user_index]
        prob = dist.Normal(0.0, 1.0).cdf(score / self.noise_variance ** 0.5).clamp(1e-6, 1 - 1e-6)
        with pyro.plate("messages", features.shape[0]):
            pyro.sample("replied", dist.Bernoulli(prob), obs=replied)

    def _tensors(self, users):
        rows, labels, owners = [], [], []
        for u, user in enumerate(users):
            rows.append(self.feature_set.dense_matrix(user, user.train, shared_only=True))
            labels.extend(1.0 if m.is_replied else 0.0 for m in user.train)
            owners.extend([u] * len(user.train))
        return (torch.tensor(np.vstack(rows), dtype=torch.float), torch.tensor(labels, dtype=torch.float),
                torch.tensor(owners, dtype=torch.long))

    def train(self, users):
        set_seed(self.seed)
        features, replied, owners = self._tensors(users)
        self.guide = AutoNormal(self.model)
        self.losses = run_svi(self.model, self.guide, features, replied, owners, len(users),
                              steps=self.steps, lr=self.lr, print_logs=self.print_logs)
        with torch.no_grad():
            samples = [self.guide(features, replied, owners, len(users)) for _ in range(200)]
        weight_means = torch.stack([s["weight_mean"] for s in samples])
        precisions = torch.stack([s["weight_precision"] for s in samples])
        names = self.feature_set.bucket_names(users[0], shared_only=True)
        thresholds = self.guide.median(features, replied, owners, len(users))["threshold"].detach().numpy()
        threshold = Gaussian(float(thresholds.mean()), float(thresholds.var()) if len(users) > 1 else
                             INBOX_CONFIG.THRESHOLD_PRIOR_VARIANCE)
        self.posterior = CommunityPosterior(weight_means.mean(0).numpy(), weight_means.var(0).numpy(),
                                            precisions.mean(0).numpy(), names, threshold)
        return self.posterior

    def predict(self, user, messages):
        """
        Reply probabilities for a user from the community beliefs alone,
        as for a new user with no training messages: each shared weight is
        drawn from the community and the threshold from the spread of the
        fitted users' thresholds.
        """
        if self.guide is None:
            raise ValueError("The community model has not been trained")
        posterior = self.posterior
        features = self.feature_set.dense_matrix(user, messages, shared_only=True)
        mean = features @ posterior.weight_means - posterior.threshold.mean
        variance = (features ** 2) @ posterior.predictive_variances + posterior.threshold.variance + \
            self.noise_variance
        return stats.norm.cdf(mean / np.sqrt(variance))

    def personal_prior(self, user, community=None):
        """Prior over a user's bucket space: community beliefs for shared buckets, defaults elsewhere."""
        community = self.posterior if community is None else community
        names = self.feature_set.bucket_names(user)
        number_shared = len(community.weight_means)
        means = np.full(len(names), INBOX_CONFIG.WEIGHT_PRIOR_MEAN)
        variances = np.full(len(names), INBOX_CONFIG.WEIGHT_PRIOR_VARIANCE)
        means[:number_shared] = community.weight_means
        variances[:number_shared] = community.predictive_variances
        return WeightPosterior.prior(len(names), means, variances, bucket_names=names)
