import numpy as np
from scipy import special

from mbml.config import CROWD_CONFIG
from mbml.common.gaussian import dirichlet_log_expectation

# P(label != true label) for a worker who answers correctly
CORRECT_NOISE = 1e-4


def normalize_log(log_p):
    """Exponentiates and normalizes along the last axis."""
    log_p = log_p - log_p.max(axis=-1, keepdims=True)
    p = np.exp(log_p)
    return p / p.sum(axis=-1, keepdims=True)


def dirichlet_kl(q, p):
    """KL(Dirichlet(q) || Dirichlet(p)) along the last axis, summed over the others."""
    q = np.asarray(q, dtype=float)
    p = np.asarray(p, dtype=float)
    if q.shape[-1] == 0:
        return 0.0
    q0 = q.sum(axis=-1)
    kl = special.gammaln(q0) - special.gammaln(q).sum(axis=-1) \
        - special.gammaln(p.sum(axis=-1)) + special.gammaln(p).sum(axis=-1) \
        + ((q - p) * dirichlet_log_expectation(q)).sum(axis=-1)
    return float(np.sum(kl))


def entropy(probabilities):
    p = np.asarray(probabilities, dtype=float)
    return float(-np.sum(special.xlogy(p, p)))


def has_converged(values, count=CROWD_CONFIG.CONVERGENCE_CHECK, tolerance=CROWD_CONFIG.CONVERGENCE_TOLERANCE):
    """True when the last `count` values lie within `tolerance` of each other."""
    if len(values) < count:
        return False
    last = values[-count:]
    return max(last) - min(last) < tolerance


def cpt_prior(label_count, diagonal=CROWD_CONFIG.CPT_DIAGONAL_PRIOR, off_diagonal=CROWD_CONFIG.CPT_OFF_DIAGONAL_PRIOR):
    """Dirichlet counts [true label, given label] favouring the correct label."""
    return np.full((label_count, label_count), off_diagonal) + (diagonal - off_diagonal) * np.eye(label_count)


class CrowdPosteriors(object):
    """
    Result of a crowd model run.

    true_label: array [tweet, label] of P(true label)
    parameters: dict of name to the Dirichlet counts of each global variable
    evidence: lower bound on the log evidence after the last iteration
    """

    def __init__(self, true_label, parameters, evidence_history):
        self.true_label = true_label
        self.parameters = parameters
        self.evidence_history = evidence_history

    @property
    def evidence(self):
        return self.evidence_history[-1] if self.evidence_history else float("nan")

    @property
    def iterations(self):
        return len(self.evidence_history)

    def __getitem__(self, name):
        return self.parameters[name]


class ModelBase(object):
    """
    Mean-field variational inference of the true label of each tweet from
    the labels a crowd of workers gave. Subclasses add the worker model.

    Every tweet's true label is drawn from a label distribution `background`
    with a uniform Dirichlet prior. Tweets with gold labels have their true
    label observed.
    """

    name = "Base"
    global_names = ("background",)
    local_names = ()

    def __init__(self, max_iterations=CROWD_CONFIG.MAX_ITERATIONS, seed=CROWD_CONFIG.SEED, print_logs=True):
        self.max_iterations = max_iterations
        self.seed = seed
        self.print_logs = print_logs

    def default_priors(self, inputs):
        return {"background": np.ones(inputs.label_count)}

    def priors_from_posteriors(self, posteriors, inputs, worker_map, word_map=None):
        """
        Priors for a new data set from the posteriors of a previous run.

        Input
        -------
        worker_map: per worker index of `inputs`, the worker's index in the
        previous run, -1 for workers it did not see
        """
        priors = self.default_priors(inputs)
        priors["background"] = posteriors["background"].copy()
        return priors

    def initial_state(self, inputs, priors, rng):
        return dict((name, priors[name].copy()) for name in self.global_names)

    def judgment_log_likelihood(self, inputs, state):
        """Array [judgment, label] of the expected log probability of each judgment for each true label."""
        raise NotImplementedError

    def tweet_log_likelihood(self, inputs, state):
        log_r = np.zeros((inputs.tweet_count, inputs.label_count))
        np.add.at(log_r, inputs.tweet, self.judgment_log_likelihood(inputs, state))
        return log_r

    def update_true_label(self, inputs, state):
        log_r = dirichlet_log_expectation(state["background"]) + self.tweet_log_likelihood(inputs, state)
        r = normalize_log(log_r)
        observed = inputs.gold >= 0
        r[observed] = np.eye(inputs.label_count)[inputs.gold[observed]]
        state["true_label"] = r

    def update_workers(self, inputs, priors, state):
        raise NotImplementedError

    def worker_evidence(self, inputs, priors, state):
        raise NotImplementedError

    def evidence(self, inputs, priors, state):
        r = state["true_label"]
        value = np.sum(r * dirichlet_log_expectation(state["background"])) + entropy(r)
        value -= dirichlet_kl(state["background"], priors["background"])
        return float(value + self.worker_evidence(inputs, priors, state))

    def infer(self, inputs, priors=None, max_iterations=None, print_logs=None):
        """
        Input
        -------
        inputs: ModelInputs
        priors: dict of global variable name to Dirichlet counts, default_priors when None

        Output
        --------
        CrowdPosteriors
        """
        if inputs.label_count < 2:
            raise ValueError("Need at least two labels, got %s" % inputs.label_count)
        priors = self.default_priors(inputs) if priors is None else priors
        max_iterations = self.max_iterations if max_iterations is None else max_iterations
        print_logs = self.print_logs if print_logs is None else print_logs
        rng = np.random.RandomState(self.seed)
        state = self.initial_state(inputs, priors, rng)
        history = []
        for iteration in range(max_iterations):
            self.update_true_label(inputs, state)
            self.update_workers(inputs, priors, state)
            state["background"] = priors["background"] + state["true_label"].sum(axis=0)
            history.append(self.evidence(inputs, priors, state))
            if print_logs:
                print("Iteration %d log evidence:\t%.2f" % (iteration + 1, history[-1]))
            if has_converged(history):
                break
        parameters = dict((name, state[name]) for name in self.global_names + self.local_names)
        return CrowdPosteriors(state["true_label"], parameters, history)


class HonestWorkerModel(ModelBase):
    """
    Each worker has an ability, the probability they label a tweet correctly.
    Otherwise they pick a label from a random guess distribution shared by
    all workers.
    """

    name = "Honest"
    global_names = ("background", "ability", "random_guess")
    local_names = ("is_correct",)

    def default_priors(self, inputs):
        priors = super(HonestWorkerModel, self).default_priors(inputs)
        priors["ability"] = np.tile(np.asarray(CROWD_CONFIG.ABILITY_PRIOR, dtype=float), (inputs.worker_count, 1))
        priors["random_guess"] = np.ones(inputs.label_count)
        return priors

    def priors_from_posteriors(self, posteriors, inputs, worker_map, word_map=None):
        priors = super(HonestWorkerModel, self).priors_from_posteriors(posteriors, inputs, worker_map)
        for w, previous in enumerate(worker_map):
            if previous >= 0:
                priors["ability"][w] = posteriors["ability"][previous]
        priors["random_guess"] = posteriors["random_guess"].copy()
        return priors

    @staticmethod
    def correct_log_probability(label_count):
        """Array [given label, true label] of log P(given | true) for a correct answer."""
        off = CORRECT_NOISE / (label_count - 1)
        return np.log(np.where(np.eye(label_count, dtype=bool), 1.0 - CORRECT_NOISE, off))

    def initial_state(self, inputs, priors, rng):
        state = super(HonestWorkerModel, self).initial_state(inputs, priors, rng)
        ability = state["ability"]
        state["is_correct"] = (ability[:, 0] / ability.sum(axis=1))[inputs.worker]
        return state

    def judgment_log_likelihood(self, inputs, state):
        # Only the correct branch depends on the true label
        correct = self.correct_log_probability(inputs.label_count)[inputs.label]
        return state["is_correct"][:, None] * correct

    def update_workers(self, inputs, priors, state):
        r = state["true_label"]
        log_ability = dirichlet_log_expectation(state["ability"])[inputs.worker]
        log_guess = dirichlet_log_expectation(state["random_guess"])[inputs.label]
        correct = np.sum(r[inputs.tweet] * self.correct_log_probability(inputs.label_count)[inputs.label], axis=1)
        gamma = special.expit(log_ability[:, 0] + correct - log_ability[:, 1] - log_guess)
        state["is_correct"] = gamma
        ability = priors["ability"].copy()
        np.add.at(ability, inputs.worker, np.stack([gamma, 1.0 - gamma], axis=1))
        state["ability"] = ability
        state["random_guess"] = priors["random_guess"] + np.bincount(
            inputs.label, weights=1.0 - gamma, minlength=inputs.label_count)

    def worker_evidence(self, inputs, priors, state):
        r = state["true_label"]
        gamma = state["is_correct"]
        log_ability = dirichlet_log_expectation(state["ability"])[inputs.worker]
        log_guess = dirichlet_log_expectation(state["random_guess"])[inputs.label]
        correct = np.sum(r[inputs.tweet] * self.correct_log_probability(inputs.label_count)[inputs.label], axis=1)
        value = np.sum(gamma * (log_ability[:, 0] + correct) + (1.0 - gamma) * (log_ability[:, 1] + log_guess))
        value += entropy(gamma) + entropy(1.0 - gamma)
        value -= dirichlet_kl(state["ability"], priors["ability"])
        value -= dirichlet_kl(state["random_guess"], priors["random_guess"])
        return value


class BiasedWorkerModel(ModelBase):
    """Each worker has their own confusion matrix, a Dirichlet row of given labels per true label."""

    name = "Biased"
    global_names = ("background", "worker_cpt")

    def default_priors(self, inputs):
        priors = super(BiasedWorkerModel, self).default_priors(inputs)
        priors["worker_cpt"] = np.tile(cpt_prior(inputs.label_count), (inputs.worker_count, 1, 1))
        return priors

    def priors_from_posteriors(self, posteriors, inputs, worker_map, word_map=None):
        priors = super(BiasedWorkerModel, self).priors_from_posteriors(posteriors, inputs, worker_map)
        for w, previous in enumerate(worker_map):
            if previous >= 0:
                priors["worker_cpt"][w] = posteriors["worker_cpt"][previous]
        return priors

    def judgment_log_likelihood(self, inputs, state):
        log_cpt = dirichlet_log_expectation(state["worker_cpt"])
        return log_cpt[inputs.worker, :, inputs.label]

    def update_workers(self, inputs, priors, state):
        r = state["true_label"]
        # Accumulated as [worker, given label, true label]
        counts = np.zeros((inputs.worker_count, inputs.label_count, inputs.label_count))
        np.add.at(counts, (inputs.worker, inputs.label), r[inputs.tweet])
        state["worker_cpt"] = priors["worker_cpt"] + counts.transpose(0, 2, 1)

    def worker_evidence(self, inputs, priors, state):
        r = state["true_label"]
        value = np.sum(r[inputs.tweet] * self.judgment_log_likelihood(inputs, state))
        return value - dirichlet_kl(state["worker_cpt"], priors["worker_cpt"])


class BiasedCommunityModel(ModelBase):
    """
    Workers belong to one of `community_count` communities, and share
    the confusion matrix of their community.
    """

    name = "Community"
    global_names = ("background", "community_cpt")
    local_names = ("community",)

    def __init__(self, community_count=2, **kwargs):
        if community_count < 1:
            raise ValueError("Need at least one community, got %s" % community_count)
        super(BiasedCommunityModel, self).__init__(**kwargs)
        self.community_count = community_count

    def default_priors(self, inputs):
        priors = super(BiasedCommunityModel, self).default_priors(inputs)
        priors["community_cpt"] = np.tile(cpt_prior(inputs.label_count), (self.community_count, 1, 1))
        priors["community"] = np.full((inputs.worker_count, self.community_count), 1.0 / self.community_count)
        return priors

    def priors_from_posteriors(self, posteriors, inputs, worker_map, word_map=None):
        priors = super(BiasedCommunityModel, self).priors_from_posteriors(posteriors, inputs, worker_map)
        priors["community_cpt"] = posteriors["community_cpt"].copy()
        for w, previous in enumerate(worker_map):
            if previous >= 0:
                priors["community"][w] = posteriors["community"][previous]
        return priors

    def initial_state(self, inputs, priors, rng):
        state = super(BiasedCommunityModel, self).initial_state(inputs, priors, rng)
        # A random community per worker separates the communities
        picks = rng.randint(self.community_count, size=inputs.worker_count)
        state["community"] = np.eye(self.community_count)[picks]
        return state

    def _judgment_log_cpt(self, state, inputs):
        """Array [judgment, community, true label] of E[log P(given label | true label)]."""
        log_cpt = dirichlet_log_expectation(state["community_cpt"])
        return log_cpt[:, :, inputs.label].transpose(2, 0, 1)

    def judgment_log_likelihood(self, inputs, state):
        return np.einsum("jc,jck->jk", state["community"][inputs.worker], self._judgment_log_cpt(state, inputs))

    def update_workers(self, inputs, priors, state):
        r = state["true_label"]
        per_judgment = np.einsum("jk,jck->jc", r[inputs.tweet], self._judgment_log_cpt(state, inputs))
        log_s = np.log(np.maximum(priors["community"], 1e-300))
        np.add.at(log_s, inputs.worker, per_judgment)
        s = normalize_log(log_s)
        state["community"] = s
        # Accumulated as [given label, community, true label]
        counts = np.zeros((inputs.label_count, self.community_count, inputs.label_count))
        np.add.at(counts, inputs.label, s[inputs.worker][:, :, None] * r[inputs.tweet][:, None, :])
        state["community_cpt"] = priors["community_cpt"] + counts.transpose(1, 2, 0)

    def worker_evidence(self, inputs, priors, state):
        r = state["true_label"]
        s = state["community"]
        value = np.sum(r[inputs.tweet] * self.judgment_log_likelihood(inputs, state))
        value += np.sum(special.xlogy(s, np.maximum(priors["community"], 1e-300))) + entropy(s)
        return value - dirichlet_kl(state["community_cpt"], priors["community_cpt"])


class BiasedCommunityWordsModel(BiasedCommunityModel):
    """BiasedCommunityModel where the words of each tweet are also drawn from a distribution per true label."""

    name = "CommunityWords"
    global_names = ("background", "community_cpt", "words")

    def default_priors(self, inputs):
        priors = super(BiasedCommunityWordsModel, self).default_priors(inputs)
        if inputs.words is None:
            raise ValueError("The %s model needs the words of each tweet" % self.name)
        priors["words"] = np.full((inputs.label_count, inputs.vocabulary_size), CROWD_CONFIG.WORD_PRIOR)
        return priors

    def priors_from_posteriors(self, posteriors, inputs, worker_map, word_map=None):
        priors = super(BiasedCommunityWordsModel, self).priors_from_posteriors(posteriors, inputs, worker_map)
        if word_map is None:
            priors["words"] = posteriors["words"].copy()
        else:
            for v, previous in enumerate(word_map):
                if previous >= 0:
                    priors["words"][:, v] = posteriors["words"][:, previous]
        return priors

    def initial_state(self, inputs, priors, rng):
        state = super(BiasedCommunityWordsModel, self).initial_state(inputs, priors, rng)
        state["word_counts"] = inputs.word_counts()
        return state

    def tweet_log_likelihood(self, inputs, state):
        log_r = super(BiasedCommunityWordsModel, self).tweet_log_likelihood(inputs, state)
        return log_r + state["word_counts"].dot(dirichlet_log_expectation(state["words"]).T)

    def update_workers(self, inputs, priors, state):
        super(BiasedCommunityWordsModel, self).update_workers(inputs, priors, state)
        state["words"] = priors["words"] + state["true_label"].T.dot(state["word_counts"])

    def worker_evidence(self, inputs, priors, state):
        value = super(BiasedCommunityWordsModel, self).worker_evidence(inputs, priors, state)
        log_words = state["word_counts"].dot(dirichlet_log_expectation(state["words"]).T)
        value += np.sum(state["true_label"] * log_words)
        return value - dirichlet_kl(state["words"], priors["words"])


MODELS = {"Honest": HonestWorkerModel, "Biased": BiasedWorkerModel, "Community": BiasedCommunityModel,
          "CommunityWords": BiasedCommunityWordsModel}
