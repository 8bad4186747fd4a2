import re

import numpy as np
import pytest

from mbml.common.gaussian import BetaSummary
from mbml.chapter_06.data import AllergenData, parse_value, ALLERGENS, YEARS, TESTS
from mbml.chapter_06.synthesizer import DatasetSynthesizer, default_sensitization_classes
from mbml.chapter_06.clinical_trial import ClinicalTrialModel, generate_trial_data
from mbml.chapter_06.models import AsthmaModel
from mbml.chapter_06.plots import plus_minus_string
from mbml.chapter_06.program import load_or_synthesize


@pytest.fixture
def data_file(tmp_path):
    classes = default_sensitization_classes()
    for c in classes:
        c.population = 5
    synthesizer = DatasetSynthesizer(classes=classes, seed=3)
    return synthesizer.synthesize(str(tmp_path / "allergens.tsv"))


class TestAllergenData():

    def test_parse_value(self):
        assert parse_value("1") == 1.0
        assert parse_value("3") == 1.0
        assert parse_value("0") == 0.0
        assert np.isnan(parse_value("miss"))
        assert np.isnan(parse_value(None))

    def test_load(self, data_file):
        data = AllergenData.load(data_file)
        assert data.number_of_children == 20
        assert data.allergens == ALLERGENS
        assert data.outcome_names == ["Asthma"]
        assert data.tests.shape == (len(TESTS), len(YEARS), 20, len(ALLERGENS))
        assert data.total_data_count == int((~np.isnan(data.tests)).sum())
        assert data.data_counts().shape == (len(ALLERGENS), len(TESTS) * len(YEARS))

    def test_bad_header(self, tmp_path):
        path = tmp_path / "bad.tsv"
        path.write_text("Asthma\tSkin_Mite\n1\t0\n")
        with pytest.raises(ValueError):
            AllergenData.load(str(path))

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            AllergenData.load(str(tmp_path / "none.tsv"))

    def test_remove_allergens(self, data_file):
        data = AllergenData.load(data_file)
        reduced = data.remove_allergens(["Mould", "Peanut"])
        assert reduced.number_of_allergens == len(ALLERGENS) - 2
        assert "Mould" not in reduced.allergens
        with pytest.raises(KeyError):
            reduced.remove_allergens(["Mould"])

    def test_subset(self, data_file):
        data = AllergenData.load(data_file)
        subset = data.subset([0, 2, 4])
        assert subset.number_of_children == 3
        assert subset.outcomes.shape == (1, 3)


class TestSynthesizer():

    def test_true_classes(self, data_file):
        classes = default_sensitization_classes()
        for c in classes:
            c.population = 5
        synthesizer = DatasetSynthesizer(classes=classes, seed=3)
        rows = synthesizer.rows()
        assert len(rows) == 20
        assert sorted(np.bincount(synthesizer.true_classes)) == [5, 5, 5, 5]
        assert all(len(row) == len(synthesizer.header()) for row in rows)

    def test_unknown_missing_policy(self):
        with pytest.raises(KeyError):
            DatasetSynthesizer(missing="sometimes")

    def test_program_synthesizes_into_data_folder(self, tmp_path):
        data = load_or_synthesize(str(tmp_path / "data"), str(tmp_path / "out"), seed=1)
        assert (tmp_path / "out" / "Data" / "SyntheticAllergenData.tsv").exists()
        assert data.number_of_children == sum(c.population for c in default_sensitization_classes())


class TestClinicalTrial():

    def test_strong_effect(self):
        control = [True] * 10 + [False] * 30
        treated = [True] * 35 + [False] * 5
        posteriors = ClinicalTrialModel().run(control, treated)
        assert posteriors.treatment_has_effect > 0.99
        assert posteriors.prob_if_treated.mean > posteriors.prob_if_control.mean

    def test_no_effect(self):
        group = [True] * 20 + [False] * 20
        posteriors = ClinicalTrialModel().run(group, group)
        assert posteriors.treatment_has_effect < 0.5
        assert posteriors.prob_recovery.mean == 0.5

    def test_empty_group(self):
        with pytest.raises(ValueError):
            ClinicalTrialModel().run([], [True])

    def test_generate_trial_data(self):
        recovered = generate_trial_data(20, 0.25, np.random.RandomState(0))
        assert recovered.sum() == 5
        assert len(recovered) == 20


class TestAsthmaModel():

    def test_needs_a_class(self, data_file):
        with pytest.raises(ValueError):
            AsthmaModel(print_logs=False).run(AllergenData.load(data_file), 0)

    def test_beliefs_shapes(self, data_file):
        data = AllergenData.load(data_file)
        beliefs = AsthmaModel(steps=5, print_logs=False).run(data, 2)
        assert beliefs.sensitization.shape == (len(YEARS), 20, len(ALLERGENS))
        assert beliefs.class_membership.shape == (20, 2)
        assert np.allclose(beliefs.class_membership.sum(axis=1), 1.0)
        assert beliefs.transition(0, 0, 1) is beliefs.prob_sens_age_one[0][1]
        assert isinstance(beliefs.transition(1, 0, 1, retain=True), BetaSummary)


class TestPlots():

    def test_plus_minus_string(self):
        text = plus_minus_string(BetaSummary(50, 50))
        assert re.match(r"^\d+\.\d%±[\d.]+%$", text)
        assert text.startswith("50.0%")
