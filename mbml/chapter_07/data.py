import os
from collections import OrderedDict, Counter

import numpy as np
import pandas as pd

from mbml.config import CROWD_CONFIG

LABELS_FILE = "HarnessingTheCrowdLabels.tsv"
GOLD_FILE = "HarnessingTheCrowdGoldLabels.tsv"
TEXTS_FILE = "HarnessingTheCrowdTexts.tsv"


class CrowdDatum(object):
    """One judgment: the label a worker gave a tweet."""

    def __init__(self, worker_id, tweet_id, label, body_text=None):
        self.worker_id = worker_id
        self.tweet_id = tweet_id
        self.label = label
        self.body_text = body_text

    def __repr__(self):
        return "CrowdDatum(%s, %s, %s)" % (self.worker_id, self.tweet_id, self.label)


def _distinct(values):
    return list(OrderedDict.fromkeys(values))


class CrowdData(object):
    """
    Judgments of a crowd of workers, plus gold labels for some tweets.

    data: list of CrowdDatum
    gold_labels: dict of tweet id to its true label
    """

    def __init__(self, data, gold_labels=None):
        self.data = list(data)
        self.gold_labels = OrderedDict(gold_labels or {})

    @property
    def tweet_ids(self):
        """Gold tweets first, then every labelled tweet, each once."""
        return _distinct(list(self.gold_labels) + [d.tweet_id for d in self.data])

    @property
    def worker_ids(self):
        return _distinct(d.worker_id for d in self.data)

    @property
    def number_of_tweets(self):
        return len(self.tweet_ids)

    @property
    def number_of_workers(self):
        return len(self.worker_ids)

    @property
    def number_of_judgments(self):
        return len(self.data)

    def judgments_per_tweet(self):
        return Counter(d.tweet_id for d in self.data)

    def judgments_per_worker(self):
        return Counter(d.worker_id for d in self.data)

    def majority_vote_labels(self):
        """
        Output
        --------
        OrderedDict of tweet id to its most common label. Ties go to the label
        that was given first.
        """
        votes = OrderedDict()
        for d in self.data:
            votes.setdefault(d.tweet_id, OrderedDict())
            votes[d.tweet_id][d.label] = votes[d.tweet_id].get(d.label, 0) + 1
        result = OrderedDict()
        for tweet_id, counts in votes.items():
            best = max(counts.values())
            result[tweet_id] = next(label for label, count in counts.items() if count == best)
        return result

    def _copy(self, data, gold_labels):
        return CrowdData(data, gold_labels)

    def split_data(self, fraction_gold_for_training, seed=CROWD_CONFIG.SEED):
        """
        Input
        -------
        fraction_gold_for_training: share of the gold tweets whose labels the training set keeps

        Output
        --------
        (training, validation): validation holds the judgments of the remaining
        gold tweets, training holds every other judgment.
        """
        if not 0.0 <= fraction_gold_for_training <= 1.0:
            raise ValueError("Fraction of gold labels must lie in [0, 1], got %s" % fraction_gold_for_training)
        rng = np.random.RandomState(seed)
        gold_ids = list(self.gold_labels)
        permuted = [gold_ids[i] for i in rng.permutation(len(gold_ids))]
        training_count = int(fraction_gold_for_training * len(permuted))
        training_gold = OrderedDict((t, self.gold_labels[t]) for t in permuted[:training_count])
        validation_gold = OrderedDict((t, self.gold_labels[t]) for t in permuted[training_count:])
        training = [d for d in self.data if d.tweet_id not in validation_gold]
        validation = [d for d in self.data if d.tweet_id in validation_gold]
        return self._copy(training, training_gold), self._copy(validation, validation_gold)

    def limit_data(self, max_judgments=None, max_tweets=None, max_workers=None, max_per_worker=None,
                   max_per_tweet=None, seed=CROWD_CONFIG.SEED):
        """
        Random subset of the judgments. Gold tweets are kept before the others,
        and the workers with the most judgments before the rest. The per worker,
        per tweet and total caps are applied in that order.
        """
        rng = np.random.RandomState(seed)
        gold = [t for t in self.gold_labels]
        gold = [gold[i] for i in rng.permutation(len(gold))]
        others = [t for t in self.tweet_ids if t not in self.gold_labels]
        others = [others[i] for i in rng.permutation(len(others))]
        tweets = (gold + others)[:max_tweets] if max_tweets is not None else gold + others
        tweets = set(tweets)
        data = [d for d in self.data if d.tweet_id in tweets]

        if max_workers is not None:
            counts = Counter(d.worker_id for d in data)
            busiest = sorted(counts, key=lambda w: -counts[w])[:max_workers]
            busiest = set(busiest)
            data = [d for d in data if d.worker_id in busiest]

        def cap(items, key, limit):
            if limit is None:
                return items
            groups = OrderedDict()
            for d in items:
                groups.setdefault(key(d), []).append(d)
            kept = set()
            for group in groups.values():
                for i in rng.permutation(len(group))[:limit]:
                    kept.add(id(group[i]))
            return [d for d in items if id(d) in kept]

        data = cap(data, lambda d: d.worker_id, max_per_worker)
        data = cap(data, lambda d: d.tweet_id, max_per_tweet)
        if max_judgments is not None and len(data) > max_judgments:
            chosen = set(rng.permutation(len(data))[:max_judgments])
            data = [d for i, d in enumerate(data) if i in chosen]
        remaining = set(d.tweet_id for d in data)
        gold_labels = OrderedDict((t, l) for t, l in self.gold_labels.items() if t in tweets and t in remaining)
        return self._copy(data, gold_labels)

    def restrict_to_single_tweet(self, tweet_id):
        if tweet_id not in self.tweet_ids:
            raise KeyError("Unknown tweet '%s'" % tweet_id)
        gold = OrderedDict((tweet_id, self.gold_labels[tweet_id])) if tweet_id in self.gold_labels else None
        return self._copy([d for d in self.data if d.tweet_id == tweet_id], gold)

    def __str__(self):
        return "#T:%s, #G:%s, #W: %s, #L:%s" % (self.number_of_tweets, len(self.gold_labels),
                                               self.number_of_workers, self.number_of_judgments)


class CrowdDataWithText(CrowdData):
    """CrowdData with the body text of each tweet."""

    def __init__(self, data, gold_labels=None, texts=None):
        super(CrowdDataWithText, self).__init__(data, gold_labels)
        self.texts = OrderedDict(texts or {})
        for d in self.data:
            if d.body_text is None and d.tweet_id in self.texts:
                d.body_text = self.texts[d.tweet_id]

    def _copy(self, data, gold_labels):
        tweets = set(gold_labels or {}) | set(d.tweet_id for d in data)
        return CrowdDataWithText(data, gold_labels, OrderedDict((t, x) for t, x in self.texts.items() if t in tweets))

    def tweets(self):
        """
        Output
        --------
        DataFrame indexed by tweet id with its text, gold label (NaN when
        unknown) and the label each worker gave it first.
        """
        rows = OrderedDict()
        for tweet_id in self.tweet_ids:
            rows[tweet_id] = {"Text": self.texts.get(tweet_id, ""), "Gold": self.gold_labels.get(tweet_id, np.nan)}
        for d in self.data:
            rows[d.tweet_id].setdefault(d.worker_id, d.label)
        return pd.DataFrame.from_dict(rows, orient="index")

    def workers(self):
        """Judgment count and agreement with the gold labels of each worker."""
        rows = []
        for worker_id in self.worker_ids:
            judgments = [d for d in self.data if d.worker_id == worker_id]
            graded = [d for d in judgments if d.tweet_id in self.gold_labels]
            correct = sum(self.gold_labels[d.tweet_id] == d.label for d in graded)
            rows.append({"Worker": worker_id, "Judgments": len(judgments), "Gold": len(graded),
                         "Accuracy": correct / float(len(graded)) if graded else np.nan})
        return pd.DataFrame(rows, columns=["Worker", "Judgments", "Gold", "Accuracy"]).set_index("Worker")


def _read_tsv(path, names):
    if not os.path.exists(path):
        raise FileNotFoundError("Crowd data file '%s' does not exist" % path)
    return pd.read_csv(path, sep="\t", header=None, names=names, dtype=str, keep_default_na=False, quoting=3)


def _parse_label(text, allowed):
    try:
        label = int(text)
    except ValueError:
        return None
    return label if label in allowed else None


def load_crowd_data(folder, allowed_labels=None, with_text=True):
    """
    Input
    -------
    folder: directory with the labels, gold labels and (optionally) texts files
    allowed_labels: labels kept from the gold file, all of CROWD_CONFIG.LABELS by default

    Output
    --------
    CrowdDataWithText, or CrowdData when `with_text` is False
    """
    allowed = set(allowed_labels if allowed_labels is not None else CROWD_CONFIG.LABELS)
    labels = _read_tsv(os.path.join(folder, LABELS_FILE), ["tweet_id", "worker_id", "label"])
    data = []
    for row in labels.itertuples(index=False):
        label = _parse_label(row.label, allowed)
        if label is None:
            raise ValueError("Unexpected label '%s' for tweet %s" % (row.label, row.tweet_id))
        data.append(CrowdDatum(row.worker_id, row.tweet_id, label))
    gold = OrderedDict()
    for row in _read_tsv(os.path.join(folder, GOLD_FILE), ["tweet_id", "label"]).itertuples(index=False):
        label = _parse_label(row.label, allowed)
        # Gold labels outside the label set are dropped
        if label is not None:
            gold[row.tweet_id] = label
    if not with_text:
        return CrowdData(data, gold)
    texts = _read_tsv(os.path.join(folder, TEXTS_FILE), ["tweet_id", "text"])
    return CrowdDataWithText(data, gold, OrderedDict(zip(texts.tweet_id, texts.text)))


# Words used by the synthesizer, per label, plus words shared by every label
LABEL_WORDS = {
    0: ["rain", "cold", "miserable", "awful", "flooded", "gloomy", "hate", "stuck", "freezing", "worst"],
    1: ["forecast", "today", "tomorrow", "report", "expected", "temperature", "update", "morning", "week", "news"],
    2: ["sunny", "lovely", "beautiful", "warm", "perfect", "love", "great", "gorgeous", "bright", "happy"],
    3: ["game", "phone", "music", "movie", "dinner", "traffic", "election", "coffee", "school", "party"],
}
COMMON_WORDS = ["the", "weather", "is", "so", "in", "and", "a", "it", "this", "out", "day", "here"]


class WorkerType(object):
    """
    Label behaviour of a kind of worker: a conditional probability table
    [true label, given label] and the share of the crowd of this kind.
    """

    def __init__(self, name, cpt, share):
        cpt = np.asarray(cpt, dtype=float)
        if cpt.ndim != 2 or cpt.shape[0] != cpt.shape[1]:
            raise ValueError("Worker type '%s' needs a square table, got shape %s" % (name, cpt.shape))
        self.name = name
        self.cpt = cpt / cpt.sum(axis=1, keepdims=True)
        self.share = share


def default_worker_types(label_count=None):
    """Honest, biased towards the neutral label, and spammers who answer at random."""
    k = label_count or len(CROWD_CONFIG.LABELS)
    honest = 0.85 * np.eye(k) + 0.15 / k
    biased = 0.55 * np.eye(k) + 0.05
    biased[:, 1 % k] += 0.35
    spammer = np.ones((k, k))
    return [WorkerType("Honest", honest, 0.5), WorkerType("Biased", biased, 0.3), WorkerType("Spammer", spammer, 0.2)]


class CrowdSynthesizer(object):
    """
    Samples a crowd labelling task: true labels, workers of the given types
    and tweets built from label specific and common words.
    """

    def __init__(self, number_of_tweets=400, number_of_workers=30, judgments_per_tweet=5, gold_fraction=0.5,
                 label_probabilities=(0.25, 0.35, 0.2, 0.2), worker_types=None, seed=CROWD_CONFIG.SEED):
        if judgments_per_tweet > number_of_workers:
            raise ValueError("Cannot have %s judgments per tweet with %s workers"
                             % (judgments_per_tweet, number_of_workers))
        self.number_of_tweets = number_of_tweets
        self.number_of_workers = number_of_workers
        self.judgments_per_tweet = judgments_per_tweet
        self.gold_fraction = gold_fraction
        self.label_probabilities = np.asarray(label_probabilities, dtype=float)
        self.label_probabilities /= self.label_probabilities.sum()
        self.worker_types = worker_types if worker_types is not None else default_worker_types(
            len(self.label_probabilities))
        self.seed = seed
        self.worker_kinds = OrderedDict()
        self.true_labels = OrderedDict()

    def _text(self, rng, label):
        length = rng.randint(6, 13)
        words = []
        for _ in range(length):
            source = LABEL_WORDS[label] if rng.rand() < 0.4 else COMMON_WORDS
            words.append(source[rng.randint(len(source))])
        if rng.rand() < 0.2:
            words.append("@user%d" % rng.randint(100))
        if rng.rand() < 0.1:
            words.append("http://t.co/%d" % rng.randint(10000))
        return " ".join(words)

    def crowd_data(self):
        rng = np.random.RandomState(self.seed)
        labels = list(range(len(self.label_probabilities)))
        shares = np.array([t.share for t in self.worker_types], dtype=float)
        kinds = rng.choice(len(self.worker_types), size=self.number_of_workers, p=shares / shares.sum())
        workers = ["W%03d" % w for w in range(self.number_of_workers)]
        self.worker_kinds = OrderedDict((w, self.worker_types[k].name) for w, k in zip(workers, kinds))
        # Busier workers label more tweets
        activity = rng.gamma(2.0, 1.0, size=self.number_of_workers)
        activity /= activity.sum()

        data, gold, texts = [], OrderedDict(), OrderedDict()
        self.true_labels = OrderedDict()
        for t in range(self.number_of_tweets):
            tweet_id = "T%05d" % t
            label = int(rng.choice(labels, p=self.label_probabilities))
            self.true_labels[tweet_id] = label
            texts[tweet_id] = self._text(rng, label)
            if rng.rand() < self.gold_fraction:
                gold[tweet_id] = label
            for w in rng.choice(self.number_of_workers, size=self.judgments_per_tweet, replace=False, p=activity):
                cpt = self.worker_types[kinds[w]].cpt
                given = int(rng.choice(labels, p=cpt[label]))
                data.append(CrowdDatum(workers[w], tweet_id, given, texts[tweet_id]))
        return CrowdDataWithText(data, gold, texts)

    def synthesize(self, folder):
        """Writes the labels, gold labels and texts files into `folder` and returns the data."""
        crowd = self.crowd_data()
        os.makedirs(folder, exist_ok=True)
        with open(os.path.join(folder, LABELS_FILE), "w") as handle:
            for d in crowd.data:
                handle.write("%s\t%s\t%s\n" % (d.tweet_id, d.worker_id, d.label))
        with open(os.path.join(folder, GOLD_FILE), "w") as handle:
            for tweet_id, label in crowd.gold_labels.items():
                handle.write("%s\t%s\n" % (tweet_id, label))
        with open(os.path.join(folder, TEXTS_FILE), "w") as handle:
            for tweet_id, text in crowd.texts.items():
                handle.write("%s\t%s\n" % (tweet_id, text))
        print("Wrote %s judgments of %s tweets to '%s'" % (crowd.number_of_judgments, crowd.number_of_tweets, folder))
        return crowd
