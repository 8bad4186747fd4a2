import itertools
from collections import defaultdict

import numpy as np
import torch
import pyro
import pyro.distributions as dist
from pyro.infer import TraceEnum_ELBO, config_enumerate
from torch.distributions import constraints

from mbml.config import SKILLS_CONFIG
from mbml.common.gaussian import BetaSummary
from mbml.common.inference import enumerated_marginals, run_svi, set_seed


class Results(object):
    """Skill posteriors [people, skills] and, for learned models, guess posteriors per question."""

    def __init__(self, skills_posteriors, guess_posteriors=None):
        self.skills_posteriors = np.asarray(skills_posteriors, dtype=float)
        self.guess_posteriors = guess_posteriors

    @property
    def skills_posterior_means(self):
        return self.skills_posteriors


class NoisyAndModel(object):
    """
    Each person has each skill with probability `prob_skill_true`. A question is
    answered correctly with probability `prob_not_mistake` by someone with all
    the skills it needs, and `prob_guess` otherwise.
    """

    def __init__(self, name="Original", prob_guess=SKILLS_CONFIG.PROB_GUESS,
                 prob_not_mistake=SKILLS_CONFIG.PROB_NOT_MISTAKE, prob_skill_true=SKILLS_CONFIG.SKILL_PRIOR):
        self.name = name
        self.prob_guess = prob_guess
        self.prob_not_mistake = prob_not_mistake
        self.prob_skill_true = prob_skill_true

    def model(self, is_correct, skills_for_question, number_of_skills, prob_guess=None):
        """
        Input
        -------
        is_correct: float tensor [people, questions]
        skills_for_question: list of skill index lists
        number_of_skills: count of skills
        prob_guess: tensor of per-question guess probabilities, default the model's constant
        """
        if prob_guess is None:
            prob_guess = torch.full((len(skills_for_question),), float(self.prob_guess))
        with pyro.plate("people", is_correct.shape[0], dim=-1):
            skills = [pyro.sample("skill_%d" % s, dist.Bernoulli(self.prob_skill_true))
                      for s in range(number_of_skills)]
            for q, needed in enumerate(skills_for_question):
                has_skills = skills[needed[0]]
                for s in needed[1:]:
                    has_skills = has_skills * skills[s]
                prob = prob_guess[q] + (self.prob_not_mistake - prob_guess[q]) * has_skills
                pyro.sample("is_correct_%d" % q, dist.Bernoulli(prob), obs=is_correct[:, q])

    def infer(self, inputs, prob_guess=None):
        """
        Output
        --------
        Results holding exact skill marginals, from enumerating every skill.
        """
        is_correct = torch.tensor(inputs.is_correct, dtype=torch.float)
        marginals = enumerated_marginals(self.model, is_correct, inputs.quiz.skills_for_question,
                                         inputs.quiz.number_of_skills, prob_guess=prob_guess,
                                         max_plate_nesting=1)
        posteriors = np.stack([marginals["skill_%d" % s].probs.detach().numpy()
                               for s in range(inputs.quiz.number_of_skills)], axis=1)
        return Results(posteriors)

    def sample_inputs(self, inputs, skills=None, seed=0):
        """Inputs for the same quiz and people, resampled from the model (optionally with given skills)."""
        from mbml.chapter_02.data import sample_inputs
        return sample_inputs(inputs.quiz, inputs.number_of_people, self.prob_skill_true, self.prob_guess,
                             self.prob_not_mistake, skills=skills, seed=seed)


class LearnedNoisyAndModel(NoisyAndModel):
    """
    Noisy-AND model in which each question's guess probability is learned,
    with a Beta prior. Skills are summed out exactly while the guess
    probabilities are fitted by stochastic variational inference.
    """

    def __init__(self, name="Learned", guess_prior=SKILLS_CONFIG.GUESS_PRIOR, steps=SKILLS_CONFIG.SVI_STEPS,
                 lr=SKILLS_CONFIG.LEARNING_RATE, seed=SKILLS_CONFIG.SEED, print_logs=True, **kwargs):
        super(LearnedNoisyAndModel, self).__init__(name=name, **kwargs)
        self.guess_prior = guess_prior
        self.steps = steps
        self.lr = lr
        self.seed = seed
        self.print_logs = print_logs

    def learning_model(self, is_correct, skills_for_question, number_of_skills):
        a, b = self.guess_prior
        prob_guess = pyro.sample("prob_guess", dist.Beta(torch.full((len(skills_for_question),), float(a)),
                                                         torch.full((len(skills_for_question),), float(b))).to_event(1))
        self.model(is_correct, skills_for_question, number_of_skills, prob_guess=prob_guess)

    def guide(self, is_correct, skills_for_question, number_of_skills):
        a, b = self.guess_prior
        alpha = pyro.param("guess_alpha", torch.full((len(skills_for_question),), float(a)),
                           constraint=constraints.positive)
        beta = pyro.param("guess_beta", torch.full((len(skills_for_question),), float(b)),
                          constraint=constraints.positive)
        pyro.sample("prob_guess", dist.Beta(alpha, beta).to_event(1))

    def infer(self, inputs, prob_guess=None):
        set_seed(self.seed)
        is_correct = torch.tensor(inputs.is_correct, dtype=torch.float)
        args = (is_correct, inputs.quiz.skills_for_question, inputs.quiz.number_of_skills)
        self.losses = run_svi(config_enumerate(self.learning_model, default="parallel"), self.guide, *args,
                              steps=self.steps, lr=self.lr, loss=TraceEnum_ELBO(max_plate_nesting=1),
                              print_logs=self.print_logs)
        alpha = pyro.param("guess_alpha").detach().numpy()
        beta = pyro.param("guess_beta").detach().numpy()
        guess_posteriors = [BetaSummary(a, b) for a, b in zip(alpha, beta)]
        guess_means = torch.tensor([g.mean for g in guess_posteriors], dtype=torch.float)
        results = super(LearnedNoisyAndModel, self).infer(inputs, prob_guess=guess_means)
        results.guess_posteriors = guess_posteriors
        return results


class RandomModel(NoisyAndModel):
    """Ignores the answers: every skill posterior stays at one half."""

    def __init__(self, name="Random"):
        super(RandomModel, self).__init__(name=name, prob_guess=0.5, prob_not_mistake=0.5, prob_skill_true=0.5)

    def infer(self, inputs, prob_guess=None):
        return Results(np.full((inputs.number_of_people, inputs.quiz.number_of_skills), 0.5))


class PerfectModel(NoisyAndModel):
    """Reports the stated skills themselves, the best any model could do."""

    def __init__(self, name="Perfect"):
        super(PerfectModel, self).__init__(name=name)

    def infer(self, inputs, prob_guess=None):
        if inputs.stated_skills is None:
            raise ValueError("The perfect model needs the stated skills")
        return Results(inputs.stated_skills.astype(float))


def exact_skill_posteriors(inputs, prob_guess=0.2, prob_not_mistake=0.9, prob_skill_true=0.5):
    """Brute force skill marginals, summing over every combination of a person's skills."""
    quiz = inputs.quiz
    combos = np.array(list(itertools.product([0, 1], repeat=quiz.number_of_skills)), dtype=bool)
    mask = quiz.skills_questions_mask
    has = ~((~combos[:, :, None]) & mask[None, :, :]).any(axis=1)
    p_correct = np.where(has, prob_not_mistake, prob_guess)
    log_prior = (combos * np.log(prob_skill_true) + (~combos) * np.log(1 - prob_skill_true)).sum(axis=1)
    posteriors = np.zeros((inputs.number_of_people, quiz.number_of_skills))
    for p in range(inputs.number_of_people):
        obs = inputs.is_correct[p]
        log_lik = np.where(obs[None, :], np.log(p_correct), np.log(1 - p_correct)).sum(axis=1)
        log_joint = log_prior + log_lik
        weights = np.exp(log_joint - log_joint.max())
        weights /= weights.sum()
        posteriors[p] = weights @ combos
    return posteriors


class UnrolledModel(NoisyAndModel):
    """
    The noisy-AND model unrolled into an explicit factor graph per person, for
    questions needing one or two skills, solved by loopy belief propagation.
    Messages are recorded each iteration so loops can be inspected.
    """

    def __init__(self, name="Unrolled", iterations=5, exact_inference=False, **kwargs):
        super(UnrolledModel, self).__init__(name=name, **kwargs)
        self.iterations = iterations
        self.exact_inference = exact_inference
        self.message_histories = defaultdict(list)

    def _question_factor(self, correct, two_skills):
        p_has = self.prob_not_mistake if correct else 1 - self.prob_not_mistake
        p_not = self.prob_guess if correct else 1 - self.prob_guess
        if not two_skills:
            return np.array([p_not, p_has])
        return np.array([[p_not, p_not], [p_not, p_has]])

    def infer(self, inputs, prob_guess=None):
        for q, needed in enumerate(inputs.quiz.skills_for_question):
            if len(needed) > 2:
                raise NotImplementedError("Unrolling not implemented if more than two skills needed for question %s" % (q + 1))
        if self.exact_inference:
            return Results(exact_skill_posteriors(inputs, self.prob_guess, self.prob_not_mistake, self.prob_skill_true))
        self.message_histories = defaultdict(list)
        posteriors = np.array([self._loopy_person(inputs, p) for p in range(inputs.number_of_people)])
        return Results(posteriors)

    def _loopy_person(self, inputs, person):
        quiz = inputs.quiz
        names = quiz.skill_names
        prior = np.array([1 - self.prob_skill_true, self.prob_skill_true])
        # factor -> variable messages, keyed (question, skill)
        to_skill = {(q, s): np.ones(2) for q, needed in enumerate(quiz.skills_for_question) for s in needed}
        for iteration in range(self.iterations):
            to_factor = {}
            for (q, s) in to_skill:
                message = prior.copy()
                for (q2, s2), m in to_skill.items():
                    if s2 == s and q2 != q:
                        message = message * m
                to_factor[(q, s)] = message / message.sum()
            updated = {}
            for q, needed in enumerate(quiz.skills_for_question):
                factor = self._question_factor(inputs.is_correct[person, q], len(needed) == 2)
                if len(needed) == 1:
                    updated[(q, needed[0])] = factor / factor.sum()
                else:
                    a, b = needed
                    m_a = factor @ to_factor[(q, b)]
                    m_b = factor.T @ to_factor[(q, a)]
                    updated[(q, a)] = m_a / m_a.sum()
                    updated[(q, b)] = m_b / m_b.sum()
            to_skill = updated
            for (q, s), m in to_skill.items():
                self.message_histories["%s_uses_Q%s" % (names[s], q + 1)].append(float(m[1]))
        beliefs = []
        for s in range(quiz.number_of_skills):
            belief = prior.copy()
            for (q, s2), m in to_skill.items():
                if s2 == s:
                    belief = belief * m
            beliefs.append(belief[1] / belief.sum())
        return beliefs
