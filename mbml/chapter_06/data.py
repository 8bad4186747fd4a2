import os

import numpy as np
import pandas as pd

from mbml.config import ASTHMA_CONFIG

TESTS = list(ASTHMA_CONFIG.TESTS)
ALLERGENS = list(ASTHMA_CONFIG.ALLERGENS)
YEARS = list(ASTHMA_CONFIG.YEARS)


def parse_value(text):
    """A test or outcome cell: 1 for a positive integer, 0 otherwise, NaN when it is not a number."""
    try:
        return 1.0 if int(text) > 0 else 0.0
    except (TypeError, ValueError):
        return np.nan


class AllergenData(object):
    """
    Skin prick and IgE test results of a cohort of children.

    tests: array [test, year, child, allergen] of 0, 1 or NaN for a missing result
    outcomes: array [outcome, child] of 0, 1 or NaN
    """

    def __init__(self, tests, outcomes, allergens, outcome_names):
        self.tests = np.asarray(tests, dtype=float)
        self.outcomes = np.asarray(outcomes, dtype=float).reshape(len(outcome_names), self.tests.shape[2])
        self.allergens = list(allergens)
        self.outcome_names = list(outcome_names)
        if self.tests.shape[0] != len(TESTS) or self.tests.shape[1] != len(YEARS):
            raise ValueError("Tests need shape [%s, %s, children, allergens], got %s"
                             % (len(TESTS), len(YEARS), self.tests.shape))
        if self.tests.shape[3] != len(self.allergens):
            raise ValueError("Got %s allergen columns for %s allergens" % (self.tests.shape[3], len(self.allergens)))
        self._compute_statistics()

    @staticmethod
    def load(path):
        """
        Input
        -------
        path: tab separated file whose header holds outcome names (no
        underscore) and `Test_Allergen_Year` columns

        Output
        --------
        AllergenData with one child per row
        """
        if not os.path.exists(path):
            raise FileNotFoundError("Allergen data file '%s' not found" % path)
        frame = pd.read_csv(path, sep="\t", dtype=str, keep_default_na=False)
        outcome_names = []
        test_columns = {}
        for column in frame.columns:
            parts = column.split("_")
            if len(parts) == 1:
                outcome_names.append(column)
            elif len(parts) == 3 and parts[0] in TESTS and parts[1] in ALLERGENS and parts[2] in YEARS:
                test_columns[tuple(parts)] = column
            else:
                raise ValueError("Header not as expected: '%s'" % column)
        allergens = [a for a in ALLERGENS if any(key[1] == a for key in test_columns)]
        number_of_children = len(frame)
        tests = np.full((len(TESTS), len(YEARS), number_of_children, len(allergens)), np.nan)
        for (test, allergen, year), column in test_columns.items():
            tests[TESTS.index(test), YEARS.index(year), :, allergens.index(allergen)] = \
                [parse_value(v) for v in frame[column]]
        outcomes = np.array([[parse_value(v) for v in frame[name]] for name in outcome_names])
        return AllergenData(tests, outcomes, allergens, outcome_names)

    def _compute_statistics(self):
        observed = ~np.isnan(self.tests)
        positive = self.tests == 1
        # [allergen, test, year]
        self.data_count_allergen_test_year = observed.sum(axis=2).transpose(2, 0, 1)
        self.data_count_allergen_year = observed.sum(axis=(0, 2)).T
        self.data_count_allergen_test = observed.sum(axis=(1, 2)).T
        self.data_count_child = observed.sum(axis=(0, 1, 3))
        self.positive_count_allergen_year = positive.sum(axis=(0, 2)).T
        self.positive_count_allergen_test = positive.sum(axis=(1, 2)).T
        self.positive_count_child = positive.sum(axis=(0, 1, 3))
        self.outcome_count = (~np.isnan(self.outcomes)).sum(axis=1)
        self.positive_outcome_count = (self.outcomes == 1).sum(axis=1)

    @property
    def skin(self):
        """[year, child, allergen]"""
        return self.tests[TESTS.index("Skin")]

    @property
    def ige(self):
        return self.tests[TESTS.index("IgE")]

    @property
    def number_of_children(self):
        return self.tests.shape[2]

    @property
    def number_of_allergens(self):
        return len(self.allergens)

    @property
    def total_data_count(self):
        return int(self.data_count_child.sum())

    def subset(self, indices):
        """The same data restricted to the children at `indices`."""
        indices = np.asarray(indices, dtype=int)
        return AllergenData(self.tests[:, :, indices, :], self.outcomes[:, indices], self.allergens, self.outcome_names)

    def remove_allergens(self, allergens_to_remove):
        for allergen in allergens_to_remove:
            if allergen not in self.allergens:
                raise KeyError("Allergen '%s' is not in the data" % allergen)
        kept = [i for i, a in enumerate(self.allergens) if a not in allergens_to_remove]
        return AllergenData(self.tests[:, :, :, kept], self.outcomes, [self.allergens[i] for i in kept],
                            self.outcome_names)

    def data_counts(self):
        """Non missing results per allergen and test/year, e.g. column `Skin1`."""
        table = {}
        for t, test in enumerate(TESTS):
            for y, year in enumerate(YEARS):
                table[test + year] = self.data_count_allergen_test_year[:, t, y]
        return pd.DataFrame(table, index=self.allergens)

    def summary(self):
        print("%s children, %s allergens, %s test results" % (self.number_of_children, self.number_of_allergens,
                                                               self.total_data_count))
        for name, count, positive in zip(self.outcome_names, self.outcome_count, self.positive_outcome_count):
            print("Outcome '%s': %s of %s positive" % (name, positive, count))
