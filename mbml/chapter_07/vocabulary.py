import re
from collections import OrderedDict

import numpy as np

from mbml.config import CROWD_CONFIG

PUNCTUATION = " ^@$/#.-:&*+=[]?!(){},''\">_<;%\\"

# Markers that survive the punctuation split, turned into braces afterwards
LEFT, RIGHT = "⋘", "⋙"

PLACEHOLDERS = [
    (re.compile(r"[0-9]+"), "number"),
    (re.compile(r"(http|https)://\S*"), "httpaddr"),
    (re.compile(r"\S+@\S+"), "emailaddr"),
    (re.compile(r"[$]+"), "dollar"),
    (re.compile(r"@\S+"), "username"),
]

_SPLITTER = re.compile("[%s]" % re.escape(PUNCTUATION))


def tokenize(text, placeholders=True):
    """
    Lower cased tokens of a tweet. Numbers, web and email addresses, money
    signs and user names become the tokens `{number}`, `{httpaddr}`,
    `{emailaddr}`, `{dollar}` and `{username}`.
    """
    text = text.lower()
    if placeholders:
        for pattern, name in PLACEHOLDERS:
            text = pattern.sub(LEFT + name + RIGHT, text)
    tokens = [t.replace(LEFT, "{").replace(RIGHT, "}") for t in _SPLITTER.split(text)]
    return [t for t in tokens if t.strip()]


def tokenize_preprocessed(text):
    """Tokens of text that was already tokenized and joined with spaces."""
    return [t for t in text.lower().split(" ") if t.strip()]


class CorpusInformation(object):
    """
    Vocabulary and document frequencies of a set of documents.

    Input
    -------
    documents: list of texts
    threshold: least number of documents a word must appear in to be kept
    """

    def __init__(self, documents, threshold=CROWD_CONFIG.VOCABULARY_THRESHOLD, preprocessed=False):
        self.threshold = threshold
        split = tokenize_preprocessed if preprocessed else tokenize
        self.documents = [split(d) for d in documents]
        self.document_frequency = OrderedDict()
        for tokens in self.documents:
            for word in OrderedDict.fromkeys(tokens):
                self.document_frequency[word] = self.document_frequency.get(word, 0) + 1
        self.vocabulary = list(self.document_frequency)
        self.word_index = dict((w, i) for i, w in enumerate(self.vocabulary))
        self.thresholded_vocabulary = [w for w in self.vocabulary if self.document_frequency[w] >= threshold]
        self.thresholded_index = dict((w, i) for i, w in enumerate(self.thresholded_vocabulary))
        self.preprocessed = preprocessed

    @property
    def number_of_documents(self):
        return len(self.documents)

    def inverse_document_frequency(self, word):
        return np.log(self.number_of_documents / (1.0 + self.document_frequency.get(word, 0)))

    @property
    def idf(self):
        return OrderedDict((w, self.inverse_document_frequency(w)) for w in self.vocabulary)

    def document_indices(self):
        """Each document as indices into the full vocabulary."""
        return [[self.word_index[w] for w in tokens] for tokens in self.documents]

    def get_word_indices(self, text):
        """Indices into the thresholded vocabulary of the words of `text`, unknown words dropped."""
        split = tokenize_preprocessed if self.preprocessed else tokenize
        return [self.thresholded_index[w] for w in split(text) if w in self.thresholded_index]


class ModelInputs(object):
    """
    Index arrays of a crowd data set, the form the crowd models consume.

    worker, tweet, label: int arrays, one entry per judgment
    gold: int array per tweet of the gold label index, -1 where unknown
    words: list per tweet of word index arrays, or None
    """

    def __init__(self, worker, tweet, label, tweet_count, worker_count, label_count, gold=None, words=None,
                 vocabulary_size=0):
        self.worker = np.asarray(worker, dtype=int)
        self.tweet = np.asarray(tweet, dtype=int)
        self.label = np.asarray(label, dtype=int)
        assert len(self.worker) == len(self.tweet) == len(self.label), "One worker, tweet and label per judgment"
        self.tweet_count = tweet_count
        self.worker_count = worker_count
        self.label_count = label_count
        self.gold = np.full(tweet_count, -1, dtype=int) if gold is None else np.asarray(gold, dtype=int)
        self.words = words
        self.vocabulary_size = vocabulary_size

    @property
    def judgment_count(self):
        return len(self.label)

    def word_counts(self):
        """Array [tweet, word] of word counts."""
        counts = np.zeros((self.tweet_count, self.vocabulary_size))
        for t, indices in enumerate(self.words or []):
            np.add.at(counts[t], np.asarray(indices, dtype=int), 1.0)
        return counts


class CrowdDataMapping(object):
    """
    Maps the ids and labels of a CrowdData to consecutive indices.
    Label indices follow the sorted label values.
    """

    def __init__(self, data, label_values=None):
        if label_values is None:
            label_values = list(CROWD_CONFIG.LABELS)
        self.label_values = sorted(label_values)
        self.label_value_to_index = dict((v, i) for i, v in enumerate(self.label_values))
        unexpected = sorted(set(d.label for d in data.data) - set(self.label_values))
        if unexpected:
            raise ValueError("Unexpected labels found: %s" % unexpected)
        self.data = data
        self.worker_ids = data.worker_ids
        self.tweet_ids = data.tweet_ids
        self.worker_id_to_index = dict((w, i) for i, w in enumerate(self.worker_ids))
        self.tweet_id_to_index = dict((t, i) for i, t in enumerate(self.tweet_ids))

    @property
    def label_count(self):
        return len(self.label_values)

    @property
    def worker_count(self):
        return len(self.worker_ids)

    @property
    def tweet_count(self):
        return len(self.tweet_ids)

    def label_names(self):
        return [CROWD_CONFIG.LABELS.get(v, str(v)) for v in self.label_values]

    def gold_label_indices(self):
        gold = np.full(self.tweet_count, -1, dtype=int)
        for tweet_id, label in self.data.gold_labels.items():
            if label in self.label_value_to_index:
                gold[self.tweet_id_to_index[tweet_id]] = self.label_value_to_index[label]
        return gold

    def judgment_indices(self):
        """(worker, tweet, label) index arrays, one entry per judgment."""
        worker = np.array([self.worker_id_to_index[d.worker_id] for d in self.data.data], dtype=int)
        tweet = np.array([self.tweet_id_to_index[d.tweet_id] for d in self.data.data], dtype=int)
        label = np.array([self.label_value_to_index[d.label] for d in self.data.data], dtype=int)
        return worker, tweet, label

    def inputs(self, use_gold=True):
        worker, tweet, label = self.judgment_indices()
        gold = self.gold_label_indices() if use_gold else None
        return ModelInputs(worker, tweet, label, self.tweet_count, self.worker_count, self.label_count, gold)

    def labels_per_worker(self):
        """Per worker index, the array of label indices they gave."""
        worker, _, label = self.judgment_indices()
        return [label[worker == w] for w in range(self.worker_count)]

    def tweet_indices_per_worker(self):
        worker, tweet, _ = self.judgment_indices()
        return [tweet[worker == w] for w in range(self.worker_count)]

    def average_worker_label_accuracy(self):
        """Mean over workers with graded judgments of their agreement with the gold labels."""
        accuracies = []
        for worker_id in self.worker_ids:
            graded = [d for d in self.data.data
                      if d.worker_id == worker_id and d.tweet_id in self.data.gold_labels]
            if graded:
                accuracies.append(np.mean([d.label == self.data.gold_labels[d.tweet_id] for d in graded]))
        return float(np.mean(accuracies)) if accuracies else float("nan")

    def restrict_to_single_tweet(self, tweet_id):
        return CrowdDataMapping(self.data.restrict_to_single_tweet(tweet_id), self.label_values)


class CrowdDataWithTextMapping(CrowdDataMapping):
    """CrowdDataMapping that also maps each tweet's text to word indices of a corpus."""

    def __init__(self, data, label_values=None, corpus=None, threshold=CROWD_CONFIG.VOCABULARY_THRESHOLD):
        super(CrowdDataWithTextMapping, self).__init__(data, label_values)
        if corpus is None:
            corpus = CorpusInformation([data.texts.get(t, "") for t in self.tweet_ids], threshold)
        self.corpus = corpus

    @property
    def vocabulary(self):
        return self.corpus.thresholded_vocabulary

    def word_indices_per_tweet(self):
        return [np.array(self.corpus.get_word_indices(self.data.texts.get(t, "")), dtype=int)
                for t in self.tweet_ids]

    def inputs(self, use_gold=True):
        inputs = super(CrowdDataWithTextMapping, self).inputs(use_gold)
        inputs.words = self.word_indices_per_tweet()
        inputs.vocabulary_size = len(self.vocabulary)
        return inputs

    def restrict_to_single_tweet(self, tweet_id):
        return CrowdDataWithTextMapping(self.data.restrict_to_single_tweet(tweet_id), self.label_values, self.corpus)
