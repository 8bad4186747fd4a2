import os

import numpy as np

from mbml.config import ASTHMA_CONFIG
from mbml.chapter_06.data import TESTS, ALLERGENS, YEARS


class SensitizationClass(object):
    """
    Sensitization probabilities of one class of children.

    prob_sens: dict of allergen to P(sensitized at the first year)
    gain, retain: dict of allergen to a list of len(YEARS) - 1 transition probabilities
    outcome_probabilities: dict of outcome name to P(outcome)
    """

    def __init__(self, name, population, prob_sens, gain, retain, outcome_probabilities):
        for allergen in ALLERGENS:
            if len(gain[allergen]) != len(YEARS) - 1 or len(retain[allergen]) != len(YEARS) - 1:
                raise ValueError("Class '%s' needs %s gain and retain probabilities for %s"
                                 % (name, len(YEARS) - 1, allergen))
        self.name = name
        self.population = population
        self.prob_sens = prob_sens
        self.gain = gain
        self.retain = retain
        self.outcome_probabilities = outcome_probabilities


def _series(first, gain, retain, allergens):
    prob_sens, gains, retains = {}, {}, {}
    for allergen in ALLERGENS:
        on = allergen in allergens
        prob_sens[allergen] = first if on else 0.01
        gains[allergen] = list(gain) if on else [0.01, 0.01, 0.01]
        retains[allergen] = list(retain) if on else [0.3, 0.3, 0.3]
    return prob_sens, gains, retains


def default_sensitization_classes():
    """Four classes: rarely sensitized, early food, late mite and pollen, pets."""
    classes = []
    for name, population, first, gain, retain, allergens, asthma in [
            ("No sensitization", 400, 0.01, [0.01, 0.01, 0.01], [0.3, 0.3, 0.3], [], 0.08),
            ("Early multiple", 40, 0.35, [0.3, 0.25, 0.2], [0.9, 0.9, 0.9], ["Mite", "Cat", "Dog", "Milk", "Egg", "Peanut"], 0.5),
            ("Late mite and pollen", 80, 0.02, [0.15, 0.3, 0.3], [0.8, 0.85, 0.9], ["Mite", "Pollen"], 0.25),
            ("Pets", 60, 0.05, [0.2, 0.2, 0.1], [0.85, 0.9, 0.9], ["Cat", "Dog"], 0.2)]:
        prob_sens, gains, retains = _series(first, gain, retain, allergens)
        # Milk sensitization mostly disappears with age
        if "Milk" in allergens:
            retains["Milk"] = [0.4, 0.3, 0.2]
        classes.append(SensitizationClass(name, population, prob_sens, gains, retains, {"Asthma": asthma}))
    return classes


DEFAULT_TESTS = {"Skin": ASTHMA_CONFIG.SKIN_TEST_PROBABILITIES, "IgE": ASTHMA_CONFIG.IGE_TEST_PROBABILITIES}


class MissingProbabilities(object):
    """
    P(a test result is missing), given what has been missed so far for the
    current child. `history` maps (test, year, allergen) to whether that
    result was missing.
    """

    general = 0.2
    # (test, year) -> allergens never tested at that age
    never_tested = {("Skin", "1"): ["Mould", "Peanut"], ("Skin", "3"): ["Peanut"], ("Skin", "5"): ["Peanut"],
                    ("IgE", "1"): ["Mould", "Peanut", "Pollen"], ("IgE", "3"): ["Mould", "Peanut", "Pollen"],
                    ("IgE", "5"): ["Mould"], ("IgE", "8"): ["Mould"]}

    def missing_probability(self, test, year, allergen, history):
        if allergen in self.never_tested.get((test, year), []):
            return 1.0
        if test == "Skin":
            return 0.62 if year == "1" else self.general
        skin_missing = history.get(("Skin", year, allergen), False)
        if skin_missing:
            return 1.0
        return {"1": 0.5, "3": 0.78}.get(year, 0.375)


class ChildBasedMissingProbabilities(MissingProbabilities):
    """A child who misses the first test of a visit misses the whole visit, and one who attends takes every test."""

    def missing_probability(self, test, year, allergen, history):
        started = [missed for (t, y, a), missed in history.items() if t == test and y == year]
        if allergen in self.never_tested.get((test, year), []):
            return 1.0
        if started:
            return 1.0 if started[0] else 0.0
        return super(ChildBasedMissingProbabilities, self).missing_probability(test, year, allergen, history)


class MCARMissingProbabilities(MissingProbabilities):
    """Missing completely at random: IgE results ignore whether the skin test was done."""

    def missing_probability(self, test, year, allergen, history):
        if allergen in self.never_tested.get((test, year), []):
            return 1.0
        if test == "Skin":
            return 0.62 if year == "1" else self.general
        return {"1": 0.81, "3": 0.82}.get(year, 0.5)


MISSING_POLICIES = {"default": MissingProbabilities, "child": ChildBasedMissingProbabilities,
                    "mcar": MCARMissingProbabilities}


class DatasetSynthesizer(object):
    """
    Writes a tab separated allergen data file sampled from sensitization
    classes. Missing results are written as `miss`.
    """

    def __init__(self, classes=None, tests=None, missing="child", seed=ASTHMA_CONFIG.SYNTHESIS_SEED):
        if missing not in MISSING_POLICIES:
            raise KeyError("Unknown missing data policy '%s', expected one of %s" % (missing, sorted(MISSING_POLICIES)))
        self.classes = classes if classes is not None else default_sensitization_classes()
        self.tests = tests if tests is not None else DEFAULT_TESTS
        self.missing = MISSING_POLICIES[missing]()
        self.seed = seed
        self.true_classes = []

    @property
    def outcome_names(self):
        return list(self.classes[0].outcome_probabilities)

    def header(self):
        columns = list(self.outcome_names)
        for allergen in ALLERGENS:
            for year in YEARS:
                for test in TESTS:
                    columns.append("%s_%s_%s" % (test, allergen, year))
        return columns

    def _child(self, rng, sensitization_class):
        values = ["1" if rng.rand() < sensitization_class.outcome_probabilities[o] else "0"
                  for o in self.outcome_names]
        history = {}
        for allergen in ALLERGENS:
            sensitized = False
            for y, year in enumerate(YEARS):
                if y == 0:
                    p = sensitization_class.prob_sens[allergen]
                elif sensitized:
                    p = sensitization_class.retain[allergen][y - 1]
                else:
                    p = sensitization_class.gain[allergen][y - 1]
                sensitized = rng.rand() < p
                for test in TESTS:
                    if rng.rand() < self.missing.missing_probability(test, year, allergen, history):
                        values.append("miss")
                        history[(test, year, allergen)] = True
                    else:
                        if_sensitized, if_not = self.tests[test]
                        values.append("1" if rng.rand() < (if_sensitized if sensitized else if_not) else "0")
                        history[(test, year, allergen)] = False
        return values

    def rows(self):
        rng = np.random.RandomState(self.seed)
        remaining = [c.population for c in self.classes]
        self.true_classes = []
        rows = []
        while sum(remaining) > 0:
            # Draw the class of the next child without replacement
            subject = rng.randint(sum(remaining))
            class_index = 0
            while subject >= remaining[class_index]:
                subject -= remaining[class_index]
                class_index += 1
            remaining[class_index] -= 1
            self.true_classes.append(class_index)
            rows.append(self._child(rng, self.classes[class_index]))
        return rows

    def synthesize(self, path):
        folder = os.path.dirname(path)
        if folder:
            os.makedirs(folder, exist_ok=True)
        rows = self.rows()
        with open(path, "w") as handle:
            handle.write("\t".join(self.header()) + "\n")
            for row in rows:
                handle.write("\t".join(row) + "\n")
        print("Wrote %s children to '%s'" % (len(rows), path))
        return path
