import numpy as np


FIRST_NAMES = ["Alice", "Bob", "Carol", "Dave", "Eve", "Fred", "Grace", "Heidi", "Ivan", "Jill",
               "Karl", "Laura", "Mallory", "Niaj", "Olivia", "Peggy", "Quentin", "Rupert",
               "Sybil", "Trent", "Ursula", "Victor", "Walter", "Xavier", "Yvonne", "Zoe"]

LAST_NAMES = ["Adams", "Baker", "Clark", "Davies", "Evans", "Frost", "Green", "Hughes", "Irwin",
              "Jones", "King", "Lewis", "Moore", "Nash", "Owen", "Price", "Quinn", "Reed",
              "Smith", "Turner", "Underwood", "Vaughan", "Walker", "Young"]


class RandomNameGenerator(object):
    """Generates unique readable names, adding a number when the combinations run out."""

    def __init__(self, seed=0):
        self.rng = np.random.RandomState(seed)
        self.used = set()

    def next(self):
        for _ in range(100):
            name = "%s %s" % (self.rng.choice(FIRST_NAMES), self.rng.choice(LAST_NAMES))
            if name not in self.used:
                self.used.add(name)
                return name
        name = "%s %s" % (name, len(self.used))
        self.used.add(name)
        return name

    def names(self, count):
        return [self.next() for _ in range(count)]
