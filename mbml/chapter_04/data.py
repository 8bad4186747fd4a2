import numpy as np

from mbml.config import INBOX_CONFIG
from mbml.common.names import RandomNameGenerator


class Message(object):
    """
    An email received by a user. `to` and `cc` are lists of person names;
    `is_replied` is the label the models predict.
    """

    def __init__(self, message_id, sender, to, cc, subject, body, is_replied=False, has_attachments=False):
        self.id = str(message_id)
        self.sender = sender
        self.to = list(to)
        self.cc = list(cc)
        self.subject = subject
        self.body = body
        self.is_replied = bool(is_replied)
        self.has_attachments = bool(has_attachments)

    @property
    def subject_prefix(self):
        """Lower cased text before the first colon, when the colon is within the first five characters."""
        if not self.subject:
            return None
        s = self.subject.strip().lower()
        k = s.find(":")
        if k < 0 or k > 5:
            return None
        return s[:k].strip()

    @property
    def subject_without_prefix(self):
        if not self.subject:
            return ""
        s = self.subject.strip()
        while True:
            k = s.find(":")
            if k < 0 or k > 5:
                return s
            s = s[k + 1:].strip()

    def __repr__(self):
        return "Message(%s from %s: '%s')" % (self.id, self.sender, self.subject)


class User(object):
    """
    A mailbox owner and the messages they received, in arrival order. The
    messages are split into train, validation and test sets by position.
    """

    def __init__(self, name, messages, split_fractions=INBOX_CONFIG.SPLIT_FRACTIONS):
        if abs(sum(split_fractions) - 1.0) > 1e-9:
            raise ValueError("Split fractions must sum to 1, got %s" % (split_fractions,))
        self.name = name
        self.messages = list(messages)
        n = len(self.messages)
        n_train = int(round(split_fractions[0] * n))
        n_validation = int(round(split_fractions[1] * n))
        self.train = self.messages[:n_train]
        self.validation = self.messages[n_train:n_train + n_validation]
        self.test = self.messages[n_train + n_validation:]

    @property
    def train_contacts(self):
        """Senders seen in the training messages, in order of first appearance."""
        contacts = []
        for message in self.train:
            if message.sender != self.name and message.sender not in contacts:
                contacts.append(message.sender)
        return contacts

    def reply_count(self, messages=None):
        messages = self.messages if messages is None else messages
        return sum(1 for m in messages if m.is_replied)

    def reply_fraction(self, messages=None):
        messages = self.messages if messages is None else messages
        return self.reply_count(messages) / float(len(messages)) if messages else 0.0

    def __repr__(self):
        return "User(%s, %s messages)" % (self.name, len(self.messages))


SUBJECT_WORDS = ["meeting", "report", "lunch", "budget", "review", "update", "question", "plan", "draft",
                 "notes", "release", "newsletter", "offer", "reminder", "schedule", "invoice"]
BODY_WORDS = ["please", "thanks", "see", "attached", "could", "you", "the", "we", "will", "send", "check",
              "today", "tomorrow", "let", "me", "know", "project", "team", "update", "soon"]


class InboxSynthesizer(object):
    """
    Synthesizes mailboxes. Each user has contacts with their own reply
    propensity, and replies depend on where the user sits in the to/cc lines,
    the subject prefix and the message length through a hidden probit model.
    """

    def __init__(self, number_of_users=5, messages_per_user=400, contacts_per_user=25, seed=INBOX_CONFIG.SEED):
        self.rng = np.random.RandomState(seed)
        self.names = RandomNameGenerator(seed)
        self.number_of_users = number_of_users
        self.messages_per_user = messages_per_user
        self.contacts_per_user = contacts_per_user

    def _text(self, words, length):
        return " ".join(self.rng.choice(words, length))

    def _message(self, user, contacts, affinity, index):
        rng = self.rng
        if rng.rand() < 0.05:
            sender = user
        else:
            sender = contacts[rng.randint(len(contacts))]
        others = [c for c in contacts if c != sender]
        list_size = rng.randint(0, 6)
        position = rng.choice(["to", "cc", "none"], p=[0.6, 0.25, 0.15])
        to = [str(c) for c in rng.choice(others, min(list_size, len(others)), replace=False)]
        cc = [str(c) for c in rng.choice(others, rng.randint(0, 3), replace=False)]
        if position == "to":
            to.insert(rng.randint(0, len(to) + 1), user)
        elif position == "cc":
            cc.insert(rng.randint(0, len(cc) + 1), user)
        else:
            # Sent to a mailing list the user belongs to
            to.append("list-%s" % rng.randint(5))
        prefix = rng.choice(["", "RE: ", "FW: ", "Re: Re: ", "Fwd: ", "[News]: "], p=[0.45, 0.25, 0.1, 0.08, 0.07, 0.05])
        subject = prefix + self._text(SUBJECT_WORDS, rng.randint(1, 6))
        body = self._text(BODY_WORDS, int(rng.lognormal(3.0, 1.2)))

        score = affinity.get(sender, -1.0)
        if sender == user:
            score -= 4.0
        if position == "to":
            score += 1.2 - 0.4 * min(to.index(user), 2)
        elif position == "cc":
            score += 0.2
        else:
            score -= 1.5
        if prefix.lower().startswith("re"):
            score += 0.8
        if prefix.lower().startswith("fw") or prefix.startswith("["):
            score -= 0.8
        score += 0.3 if 16 < len(body) < 512 else -0.3
        is_replied = score + rng.normal(0, 1.0) > 1.0
        return Message("%s-%s" % (user, index), sender, to, cc, subject, body, is_replied, rng.rand() < 0.1)

    def user(self):
        name = self.names.next()
        contacts = self.names.names(self.contacts_per_user)
        affinity = dict((c, float(self.rng.normal(0.0, 1.0))) for c in contacts)
        messages = [self._message(name, contacts, affinity, i) for i in range(self.messages_per_user)]
        return User(name, messages)

    def users(self):
        return [self.user() for _ in range(self.number_of_users)]
