import numpy as np
import pytest

from mbml.chapter_02.data import Quiz, Inputs, toy_three_questions, toy_loopy, synthesize_quiz, sample_inputs, \
    shorten_skill_name
from mbml.chapter_02.models import NoisyAndModel, UnrolledModel, RandomModel, PerfectModel, exact_skill_posteriors


class TestQuiz():

    def test_invalid_skill_index(self):
        with pytest.raises(ValueError):
            Quiz(["a", "b"], [[0], [2]])

    def test_question_needs_a_skill(self):
        with pytest.raises(ValueError):
            Quiz(["a"], [[]])

    def test_rows_must_match_questions(self):
        quiz = Quiz(["a", "b"], [[0], [1]])
        with pytest.raises(ValueError):
            Inputs(quiz, np.ones((3, 3), dtype=bool))

    def test_short_names(self):
        assert shorten_skill_name("6: Databases & SQL") == "SQL"
        assert shorten_skill_name("1: Core programming skills (C#)") == "Core"

    def test_has_skills(self):
        inputs = sample_inputs(synthesize_quiz(seed=1), 5, seed=1)
        for p in range(inputs.number_of_people):
            for q in range(inputs.quiz.number_of_questions):
                assert inputs.has_skills[p, q] == inputs.has_all_skills(p, q)


class TestInference():

    def test_enumeration_matches_brute_force(self):
        inputs = toy_three_questions()
        results = NoisyAndModel().infer(inputs)
        assert np.allclose(results.skills_posteriors, exact_skill_posteriors(inputs), atol=1e-5)

    def test_unrolled_matches_brute_force_on_a_tree(self):
        inputs = toy_three_questions()
        results = UnrolledModel(iterations=5).infer(inputs)
        assert np.allclose(results.skills_posteriors, exact_skill_posteriors(inputs), atol=1e-6)

    def test_unrolled_exact_option(self):
        inputs = toy_loopy()
        results = UnrolledModel(exact_inference=True).infer(inputs)
        assert np.allclose(results.skills_posteriors, NoisyAndModel().infer(inputs).skills_posteriors, atol=1e-5)

    def test_all_correct_raises_both_skills(self):
        inputs = toy_three_questions()
        posteriors = NoisyAndModel().infer(inputs).skills_posteriors
        # Last pattern answers every question correctly
        assert (posteriors[-1] > 0.9).all()
        assert (posteriors[0] < 0.2).all()

    def test_unrolled_needs_at_most_two_skills(self):
        quiz = Quiz(["a", "b", "c"], [[0, 1, 2]])
        with pytest.raises(NotImplementedError):
            UnrolledModel().infer(Inputs(quiz, np.array([[True]])))

    def test_baselines(self):
        inputs = sample_inputs(synthesize_quiz(seed=2), 4, seed=2)
        assert (RandomModel().infer(inputs).skills_posteriors == 0.5).all()
        assert (PerfectModel().infer(inputs).skills_posteriors == inputs.stated_skills).all()
        with pytest.raises(ValueError):
            PerfectModel().infer(toy_three_questions())
