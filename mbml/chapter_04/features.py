"""
Message features. Every feature owns a list of named buckets and maps a
message to the (bucket, value) pairs that are on for it.
"""
import numpy as np

from mbml.config import INBOX_CONFIG

UNKNOWN_SENDER = "Unknown"


class Feature(object):
    name = "Feature"
    description = ""
    # Shared features have the same buckets for every user
    is_shared = True

    def bucket_names(self, user):
        raise NotImplementedError()

    def compute(self, user, message):
        """List of (bucket index, value) pairs."""
        raise NotImplementedError()

    def __repr__(self):
        return self.name


class Bias(Feature):
    name = "Bias"
    description = "Always on"

    def bucket_names(self, user):
        return ["Bias"]

    def compute(self, user, message):
        return [(0, 1.0)]


class FromMe(Feature):
    name = "FromMe"
    description = "Whether the message was sent by the user"

    def bucket_names(self, user):
        return ["Not from me", "From me"]

    def compute(self, user, message):
        return [(1 if message.sender == user.name else 0, 1.0)]


class HasAttachments(Feature):
    name = "HasAttachments"
    description = "Whether the message has attachments"

    def bucket_names(self, user):
        return ["No attachments", "Attachments"]

    def compute(self, user, message):
        return [(1 if message.has_attachments else 0, 1.0)]


class ToLine(Feature):
    name = "ToLine"
    description = "Whether the user is on the To line"

    def bucket_names(self, user):
        return ["Not on To line", "On To line"]

    def compute(self, user, message):
        return [(1 if user.name in message.to else 0, 1.0)]


TO_CC_POSITIONS = ["PartOfList", "FirstInToLine", "SecondInToLine", "ThirdOrMoreInToLine",
                   "FirstInCcLine", "NotFirstInCcLine"]


def to_cc_position(user_name, message):
    """Where the user appears in the recipients; a cc entry wins over a to entry."""
    position = "PartOfList"
    if user_name in message.to:
        position = TO_CC_POSITIONS[1 + min(message.to.index(user_name), 2)]
    if user_name in message.cc:
        position = "FirstInCcLine" if message.cc.index(user_name) == 0 else "NotFirstInCcLine"
    return position


class ToCcPosition(Feature):
    name = "ToCcPosition"
    description = "The user's position in the To or Cc line"

    def bucket_names(self, user):
        return list(TO_CC_POSITIONS)

    def compute(self, user, message):
        return [(TO_CC_POSITIONS.index(to_cc_position(user.name, message)), 1.0)]


class SubjectPrefix(Feature):
    """No prefix, one bucket per configured group of prefixes, then any other prefix."""
    name = "SubjectPrefix"
    description = "The prefix of the subject line"

    def __init__(self, prefixes=None):
        self.prefixes = INBOX_CONFIG.SUBJECT_PREFIXES if prefixes is None else prefixes

    def bucket_names(self, user):
        return ["No prefix"] + ["/".join(group) for group in self.prefixes] + ["Other"]

    def compute(self, user, message):
        prefix = message.subject_prefix
        if not prefix:
            return [(0, 1.0)]
        for i, group in enumerate(self.prefixes):
            if prefix in group:
                return [(i + 1, 1.0)]
        return [(len(self.prefixes) + 1, 1.0)]


def length_bucket_names(bins):
    names = []
    for i, upper in enumerate(bins):
        if i == 0:
            names.append(str(upper))
        elif upper - bins[i - 1] == 1:
            names.append(str(upper))
        elif upper < 2 ** 31 - 1:
            names.append("%s-%s" % (bins[i - 1] + 1, upper))
        else:
            names.append(">%s" % bins[i - 1])
    return names


def length_bucket(length, bins):
    for i, upper in enumerate(bins):
        if length <= upper:
            return i
    return len(bins) - 1


class NumericFeature(Feature):

    def __init__(self, bins):
        self.bins = list(bins)

    def length(self, message):
        raise NotImplementedError()

    def bucket_names(self, user):
        return length_bucket_names(self.bins)

    def compute(self, user, message):
        return [(length_bucket(self.length(message), self.bins), 1.0)]


class BodyLength(NumericFeature):
    name = "BodyLength"
    description = "Length of the body in characters"

    def __init__(self, bins=None):
        super(BodyLength, self).__init__(INBOX_CONFIG.BODY_LENGTH_BINS if bins is None else bins)

    def length(self, message):
        return len(message.body or "")


class SubjectLength(NumericFeature):
    name = "SubjectLength"
    description = "Length of the subject without its prefix"

    def __init__(self, bins=None):
        super(SubjectLength, self).__init__(INBOX_CONFIG.SUBJECT_LENGTH_BINS if bins is None else bins)

    def length(self, message):
        return len(message.subject_without_prefix)


class Sender(Feature):
    """One bucket per training contact of the user, plus the user and unknown senders."""
    name = "Sender"
    description = "Who the message is from"
    is_shared = False

    def bucket_names(self, user):
        return [UNKNOWN_SENDER, user.name] + user.train_contacts

    def compute(self, user, message):
        names = self.bucket_names(user)
        if message.sender in names:
            return [(names.index(message.sender), 1.0)]
        return [(0, 1.0)]


FEATURE_SETS = {
    "Single": [ToLine],
    "Initial": [FromMe, ToCcPosition, HasAttachments, BodyLength, SubjectLength, Sender],
    "WithSubjectPrefix": [FromMe, ToCcPosition, HasAttachments, BodyLength, SubjectLength, SubjectPrefix, Sender],
    "Full": [FromMe, ToCcPosition, HasAttachments, BodyLength, SubjectLength, SubjectPrefix, Sender, Bias],
}


class FeatureSet(object):
    """
    An ordered list of features. A user's bucket space is the concatenation of
    every feature's buckets; shared buckets come first, so the shared part of
    the space is identical across users.
    """

    def __init__(self, name, features):
        self.name = name
        self.features = sorted(features, key=lambda f: not f.is_shared)

    @staticmethod
    def create(name):
        if name not in FEATURE_SETS:
            raise KeyError("Unknown feature set '%s', expected one of %s" % (name, sorted(FEATURE_SETS)))
        return FeatureSet(name, [cls() for cls in FEATURE_SETS[name]])

    @property
    def shared_features(self):
        return [f for f in self.features if f.is_shared]

    def bucket_names(self, user, shared_only=False):
        names = []
        for feature in self.features:
            if shared_only and not feature.is_shared:
                continue
            names.extend("%s: %s" % (feature.name, b) for b in feature.bucket_names(user))
        return names

    def number_of_buckets(self, user, shared_only=False):
        return len(self.bucket_names(user, shared_only))

    def sparse_vector(self, user, message, shared_only=False):
        """
        Output
        --------
        (indices, values) of the active buckets in the user's bucket space.
        """
        indices, values = [], []
        offset = 0
        for feature in self.features:
            if shared_only and not feature.is_shared:
                continue
            for bucket, value in feature.compute(user, message):
                indices.append(offset + bucket)
                values.append(value)
            offset += len(feature.bucket_names(user))
        return indices, values

    def dense_matrix(self, user, messages, shared_only=False):
        matrix = np.zeros((len(messages), self.number_of_buckets(user, shared_only)))
        for row, message in enumerate(messages):
            indices, values = self.sparse_vector(user, message, shared_only)
            matrix[row, indices] = values
        return matrix

    def __repr__(self):
        return "FeatureSet(%s: %s)" % (self.name, ", ".join(f.name for f in self.features))
