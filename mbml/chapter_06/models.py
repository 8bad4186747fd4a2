import numpy as np
import torch
import pyro
import pyro.distributions as dist
from pyro import poutine
from pyro.infer import TraceEnum_ELBO, config_enumerate
from pyro.ops.indexing import Vindex
from torch.distributions import constraints

from mbml.config import ASTHMA_CONFIG
from mbml.common.gaussian import BetaSummary
from mbml.common.inference import enumerated_marginals, run_svi, set_seed

# (prior alpha, prior beta) of each test's P(positive) when sensitized / not sensitized
TEST_PRIORS = {"prob_skin_if_sens": (2.0, 1.0), "prob_skin_if_not_sens": (1.0, 2.0),
               "prob_ige_if_sens": (2.0, 1.0), "prob_ige_if_not_sens": (1.0, 2.0)}


class AsthmaBeliefs(object):
    """
    Posteriors of an AsthmaModel run.

    sensitization: array [year, child, allergen] of P(sensitized)
    class_membership: array [child, class] of P(child in class)
    prob_sens_age_one: [allergen][class] BetaSummary
    prob_gain, prob_retain: [year][allergen][class] BetaSummary, None at the first year
    tests: dict of test probability name to BetaSummary
    """

    def __init__(self, sensitization, class_membership, prob_sens_age_one, prob_gain, prob_retain, tests, allergens):
        self.sensitization = sensitization
        self.class_membership = class_membership
        self.prob_sens_age_one = prob_sens_age_one
        self.prob_gain = prob_gain
        self.prob_retain = prob_retain
        self.tests = tests
        self.allergens = allergens

    @property
    def number_of_classes(self):
        return self.class_membership.shape[1]

    @property
    def number_of_children(self):
        return self.class_membership.shape[0]

    @property
    def vulnerability_class(self):
        """Most probable class of each child."""
        return np.argmax(self.class_membership, axis=1)

    @property
    def prob_vulnerability_class(self):
        return self.class_membership.mean(axis=0)

    def transition(self, year, allergen_index, class_index, retain=False):
        """Beta belief of P(sensitized) at `year`: the year one belief, or gain / retain after it."""
        if year == 0:
            return self.prob_sens_age_one[allergen_index][class_index]
        table = self.prob_retain if retain else self.prob_gain
        return table[year][allergen_index][class_index]


class AsthmaModel(object):
    """
    Every child belongs to one of `number_of_classes` sensitization classes.
    For each allergen, a child is sensitized at the first year with a class
    specific probability, after which sensitization is gained or retained
    with class and year specific probabilities. Skin and IgE tests detect
    sensitization imperfectly and may be missing.

    Classes and sensitization states are summed out exactly; the Beta
    posteriors of the probabilities are fitted by stochastic variational
    inference.
    """

    def __init__(self, name="Asthma", steps=ASTHMA_CONFIG.SVI_STEPS, lr=ASTHMA_CONFIG.LEARNING_RATE,
                 seed=ASTHMA_CONFIG.INFERENCE_SEED, print_logs=True):
        self.name = name
        self.steps = steps
        self.lr = lr
        self.seed = seed
        self.print_logs = print_logs
        self.initial = {}

    @staticmethod
    def tensors(data):
        """Observed skin and IgE results with missing entries zeroed, and their masks, each [year, child, allergen]."""
        result = []
        for values in (data.skin, data.ige):
            mask = ~np.isnan(values)
            result.append(torch.tensor(np.where(mask, values, 0.0), dtype=torch.float))
            result.append(torch.tensor(mask, dtype=torch.bool))
        return tuple(result)

    def model(self, skin, skin_mask, ige, ige_mask, number_of_classes):
        number_of_years, number_of_children, number_of_allergens = skin.shape
        shape = (number_of_allergens, number_of_classes)
        transitions = (number_of_years - 1,) + shape
        prob_sens1 = pyro.sample("prob_sens1", dist.Beta(torch.ones(shape), torch.ones(shape)).to_event(2))
        prob_gain = pyro.sample("prob_gain", dist.Beta(torch.ones(transitions), torch.ones(transitions)).to_event(3))
        prob_retain = pyro.sample("prob_retain", dist.Beta(torch.ones(transitions), torch.ones(transitions)).to_event(3))
        tests = {}
        for name, (a, b) in TEST_PRIORS.items():
            tests[name] = pyro.sample(name, dist.Beta(torch.tensor(a), torch.tensor(b)))

        allergens = torch.arange(number_of_allergens)
        class_probs = torch.ones(number_of_classes) / number_of_classes
        with pyro.plate("children", number_of_children, dim=-2):
            sens_class = pyro.sample("class", dist.Categorical(class_probs))
            with pyro.plate("allergens", number_of_allergens, dim=-1):
                sensitized = None
                for y in range(number_of_years):
                    if y == 0:
                        p = Vindex(prob_sens1)[allergens, sens_class]
                    else:
                        gain = Vindex(prob_gain[y - 1])[allergens, sens_class]
                        retain = Vindex(prob_retain[y - 1])[allergens, sens_class]
                        p = torch.where(sensitized.bool(), retain, gain)
                    sensitized = pyro.sample("sensitized_%d" % y, dist.Bernoulli(p))
                    p_skin = tests["prob_skin_if_not_sens"] + \
                        (tests["prob_skin_if_sens"] - tests["prob_skin_if_not_sens"]) * sensitized
                    p_ige = tests["prob_ige_if_not_sens"] + \
                        (tests["prob_ige_if_sens"] - tests["prob_ige_if_not_sens"]) * sensitized
                    pyro.sample("skin_%d" % y, dist.Bernoulli(p_skin).mask(skin_mask[y]), obs=skin[y])
                    pyro.sample("ige_%d" % y, dist.Bernoulli(p_ige).mask(ige_mask[y]), obs=ige[y])

    def _beta_params(self, name, shape, a=1.0, b=1.0, randomize=True):
        if name not in self.initial:
            # Random starting points keep the classes apart
            spread = torch.rand((2,) + shape) if randomize else torch.zeros((2,) + shape)
            self.initial[name] = (a + spread[0], b + spread[1])
        alpha = pyro.param(name + "_alpha", self.initial[name][0], constraint=constraints.positive)
        beta = pyro.param(name + "_beta", self.initial[name][1], constraint=constraints.positive)
        return alpha, beta

    def guide(self, skin, skin_mask, ige, ige_mask, number_of_classes):
        number_of_years, _, number_of_allergens = skin.shape
        shape = (number_of_allergens, number_of_classes)
        transitions = (number_of_years - 1,) + shape
        pyro.sample("prob_sens1", dist.Beta(*self._beta_params("prob_sens1", shape)).to_event(2))
        pyro.sample("prob_gain", dist.Beta(*self._beta_params("prob_gain", transitions)).to_event(3))
        pyro.sample("prob_retain", dist.Beta(*self._beta_params("prob_retain", transitions)).to_event(3))
        for name, (a, b) in TEST_PRIORS.items():
            pyro.sample(name, dist.Beta(*self._beta_params(name, (), a, b, randomize=False)))

    def posterior_parameters(self):
        """Dictionary of site name to (alpha, beta) numpy arrays of the fitted guide."""
        names = ["prob_sens1", "prob_gain", "prob_retain"] + list(TEST_PRIORS)
        return dict((name, (pyro.param(name + "_alpha").detach().numpy(), pyro.param(name + "_beta").detach().numpy()))
                    for name in names)

    def run(self, data, number_of_classes):
        """
        Input
        -------
        data: AllergenData
        number_of_classes: count of sensitization classes

        Output
        --------
        AsthmaBeliefs
        """
        if number_of_classes < 1:
            raise ValueError("Need at least one sensitization class, got %s" % number_of_classes)
        set_seed(self.seed)
        self.initial = {}
        args = self.tensors(data) + (number_of_classes,)
        if self.print_logs:
            print("Training %s model with %s classes on %s children" % (self.name, number_of_classes,
                                                                          data.number_of_children))
        self.losses = run_svi(config_enumerate(self.model, default="parallel"), self.guide, *args,
                              steps=self.steps, lr=self.lr, loss=TraceEnum_ELBO(max_plate_nesting=2),
                              print_logs=self.print_logs)
        params = self.posterior_parameters()
        means = dict((name, torch.tensor(a / (a + b), dtype=torch.float)) for name, (a, b) in params.items())
        marginals = enumerated_marginals(poutine.condition(self.model, data=means), *args, max_plate_nesting=2)

        number_of_years, number_of_children, number_of_allergens = args[0].shape
        sensitization = np.stack([marginals["sensitized_%d" % y].probs.detach().numpy()
                                 .reshape(number_of_children, number_of_allergens) for y in range(number_of_years)])
        class_membership = marginals["class"].probs.detach().numpy().reshape(number_of_children, number_of_classes)

        def summaries(name):
            a, b = params[name]
            return np.vectorize(BetaSummary, otypes=[object])(a, b)

        sens1 = summaries("prob_sens1")
        # Year zero has no transition
        gain = [None] + list(summaries("prob_gain"))
        retain = [None] + list(summaries("prob_retain"))
        tests = dict((name, BetaSummary(*params[name])) for name in TEST_PRIORS)
        return AsthmaBeliefs(sensitization, class_membership, sens1, gain, retain, tests, list(data.allergens))
