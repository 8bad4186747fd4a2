import os

import numpy as np
import pandas as pd


SKILL_NAMES = [
    "1: Core programming skills (C#)",
    "2: Object Oriented Programming",
    "3: Application Life Cycle Management",
    "4: Web Application development",
    "5: Microsoft Windows desktop application development",
    "6: Databases & SQL",
    "7: C#",
]

SHORT_NAME_REPLACEMENTS = [
    ("Core programming skills", "Core"),
    ("Object Oriented Programming", "OOP"),
    ("Application Life Cycle Management", "Life Cycle"),
    ("Application", "App"),
    ("application", "app"),
    ("Microsoft Windows desktop", "Desktop"),
    ("Databases & SQL", "SQL"),
]


def shorten_skill_name(name):
    parts = name.split(":")
    name = parts[1].strip() if len(parts) > 1 else parts[0].strip()
    name = name.split("(")[0]
    for old, new in SHORT_NAME_REPLACEMENTS:
        name = name.replace(old, new)
    return name.strip()


class Quiz(object):
    """
    A quiz: skill names and, for every question, the indices of the skills
    needed to answer it.
    """

    def __init__(self, skill_names, skills_for_question, correct_answers=None):
        self.skill_names = list(skill_names)
        self.skills_for_question = [list(skills) for skills in skills_for_question]
        self.correct_answers = None if correct_answers is None else list(correct_answers)
        for q, skills in enumerate(self.skills_for_question):
            if not skills:
                raise ValueError("Question %s needs at least one skill" % (q + 1))
            for s in skills:
                if s < 0 or s >= self.number_of_skills:
                    raise ValueError("Question %s uses invalid skill index %s" % (q + 1, s))
        if self.correct_answers is not None and len(self.correct_answers) != self.number_of_questions:
            raise ValueError("Expected %s correct answers, got %s" % (self.number_of_questions, len(self.correct_answers)))

    @property
    def number_of_skills(self):
        return len(self.skill_names)

    @property
    def number_of_questions(self):
        return len(self.skills_for_question)

    @property
    def skill_short_names(self):
        return [shorten_skill_name(name) for name in self.skill_names]

    @property
    def number_skills_for_question(self):
        return [len(skills) for skills in self.skills_for_question]

    @property
    def skills_questions_mask(self):
        """Boolean array [skills, questions], True where the question needs the skill."""
        mask = np.zeros((self.number_of_skills, self.number_of_questions), dtype=bool)
        for q, skills in enumerate(self.skills_for_question):
            mask[skills, q] = True
        return mask

    @property
    def skills_questions_mask_transposed(self):
        return self.skills_questions_mask.T

    def questions_for_skill(self, skill):
        return [q for q, skills in enumerate(self.skills_for_question) if skill in skills]


class Inputs(object):
    """
    Quiz responses of a group of people.

    is_correct: bool array [people, questions]
    stated_skills: optional bool array [people, skills], the ground truth skills
    raw_responses: optional int array [people, questions] of chosen answers
    """

    def __init__(self, quiz, is_correct, stated_skills=None, raw_responses=None):
        self.quiz = quiz
        self.is_correct = np.asarray(is_correct, dtype=bool)
        if self.is_correct.ndim != 2 or self.is_correct.shape[1] != quiz.number_of_questions:
            raise ValueError("IsCorrect must have one column per question (%s), got shape %s"
                             % (quiz.number_of_questions, self.is_correct.shape))
        self.stated_skills = None if stated_skills is None else np.asarray(stated_skills, dtype=bool)
        if self.stated_skills is not None and self.stated_skills.shape != (self.number_of_people, quiz.number_of_skills):
            raise ValueError("Stated skills must have shape %s, got %s"
                             % ((self.number_of_people, quiz.number_of_skills), self.stated_skills.shape))
        self.raw_responses = None if raw_responses is None else np.asarray(raw_responses, dtype=int)

    @property
    def number_of_people(self):
        return self.is_correct.shape[0]

    def has_all_skills(self, person, question):
        needed = self.quiz.skills_for_question[question]
        return bool(self.stated_skills[person, needed].all())

    @property
    def has_skills(self):
        """Bool array [people, questions]: the person states every skill the question needs."""
        if self.stated_skills is None:
            return None
        mask = self.quiz.skills_questions_mask
        return ~((~self.stated_skills[:, :, None]) & mask[None, :, :]).any(axis=1)

    def responses_table(self, include_skills=True):
        """People as rows, stated skills (S1..) then correctness (Q1..) as columns."""
        table = pd.DataFrame(self.is_correct.astype(int),
                             index=["P%s" % (p + 1) for p in range(self.number_of_people)],
                             columns=["Q%s" % (q + 1) for q in range(self.quiz.number_of_questions)])
        if include_skills and self.stated_skills is not None:
            skills = pd.DataFrame(self.stated_skills.astype(int), index=table.index,
                                  columns=["S%s" % (s + 1) for s in range(self.quiz.number_of_skills)])
            table = pd.concat([skills, table], axis=1)
        return table


def toy_three_questions():
    """Two skills (C#, SQL), three questions, every pattern of answers."""
    quiz = Quiz(["csharp", "sql"], [[0], [1], [0, 1]])
    patterns = np.array([[(i >> k) & 1 for k in range(3)] for i in range(8)], dtype=bool)
    return Inputs(quiz, patterns)


def toy_loopy():
    """Two skills shared by two questions, which closes a loop in the factor graph."""
    quiz = Quiz(["csharp", "sql"], [[0], [1], [0, 1], [0, 1]])
    return Inputs(quiz, np.array([[True, False, True, False]]))


def synthesize_quiz(number_of_skills=7, number_of_questions=48, seed=0):
    """Questions needing one skill, or two skills for roughly a third of them."""
    rng = np.random.RandomState(seed)
    skills_for_question = []
    for q in range(number_of_questions):
        first = q % number_of_skills
        if rng.rand() < 0.35:
            second = rng.choice([s for s in range(number_of_skills) if s != first])
            skills_for_question.append(sorted([first, int(second)]))
        else:
            skills_for_question.append([first])
    names = SKILL_NAMES[:number_of_skills] if number_of_skills <= len(SKILL_NAMES) else \
        ["%s: Skill %s" % (s + 1, s + 1) for s in range(number_of_skills)]
    answers = rng.randint(1, 5, size=number_of_questions).tolist()
    return Quiz(names, skills_for_question, answers)


def sample_inputs(quiz, number_of_people, prob_skill_true=0.5, prob_guess=0.2, prob_not_mistake=0.9,
                  skills=None, seed=0):
    """
    Input
    -------
    quiz: Quiz to answer
    number_of_people: count of people to sample
    prob_skill_true: prior probability of every skill
    prob_guess: probability of a correct answer without the skills, scalar or per question
    prob_not_mistake: probability of a correct answer with the skills
    skills: optional bool array [people, skills] to use instead of sampling skills

    Output
    --------
    Inputs sampled from the noisy-AND model, with the skills as stated skills.
    """
    rng = np.random.RandomState(seed)
    if skills is None:
        skills = rng.rand(number_of_people, quiz.number_of_skills) < prob_skill_true
    skills = np.asarray(skills, dtype=bool)
    has = ~((~skills[:, :, None]) & quiz.skills_questions_mask[None, :, :]).any(axis=1)
    prob_guess = np.broadcast_to(np.asarray(prob_guess, dtype=float), (quiz.number_of_questions,))
    probs = np.where(has, prob_not_mistake, prob_guess[None, :])
    is_correct = rng.rand(*probs.shape) < probs
    return Inputs(quiz, is_correct, stated_skills=skills)


def save_inputs(inputs, folder):
    """Writes skills.tsv and responses.tsv in the format `load_inputs` reads."""
    os.makedirs(folder, exist_ok=True)
    quiz = inputs.quiz
    pd.DataFrame({
        "question": ["Q%s" % (q + 1) for q in range(quiz.number_of_questions)],
        "skills": [",".join(str(s) for s in skills) for skills in quiz.skills_for_question],
    }).to_csv(os.path.join(folder, "skills.tsv"), sep="\t", index=False)
    with open(os.path.join(folder, "skill_names.txt"), "w") as handle:
        handle.write("\n".join(quiz.skill_names) + "\n")
    inputs.responses_table().to_csv(os.path.join(folder, "responses.tsv"), sep="\t")


def load_inputs(folder):
    """
    Input
    -------
    folder: holds skill_names.txt, skills.tsv (question, comma separated skill
            indices) and responses.tsv (person rows, S1.. stated skills then
            Q1.. correct flags)

    Output
    --------
    Inputs
    """
    for name in ["skill_names.txt", "skills.tsv", "responses.tsv"]:
        if not os.path.exists(os.path.join(folder, name)):
            raise FileNotFoundError("Missing quiz data file '%s' in '%s'" % (name, folder))
    with open(os.path.join(folder, "skill_names.txt")) as handle:
        skill_names = [line.strip() for line in handle if line.strip()]
    skills = pd.read_csv(os.path.join(folder, "skills.tsv"), sep="\t", dtype=str)
    skills_for_question = [[int(s) for s in row.split(",")] for row in skills["skills"]]
    quiz = Quiz(skill_names, skills_for_question)

    responses = pd.read_csv(os.path.join(folder, "responses.tsv"), sep="\t", index_col=0)
    skill_columns = [c for c in responses.columns if c.startswith("S")]
    question_columns = [c for c in responses.columns if c.startswith("Q")]
    stated = responses[skill_columns].values.astype(bool) if skill_columns else None
    return Inputs(quiz, responses[question_columns].values.astype(bool), stated_skills=stated)
