import numpy as np
import pandas as pd
import torch
import pyro
import pyro.distributions as dist

from mbml.config import MURDER_CONFIG
from mbml.common.inference import enumerated_marginals


SUSPECTS = ["Grey", "Auburn"]
WEAPONS = ["Revolver", "Dagger"]


class MurderMystery(object):
    """
    The murder mystery: one of two suspects committed the crime, a weapon and
    a hair were found at the scene.

    Murderer index 0 is Major Grey, 1 is Miss Auburn. Weapon index 0 is the
    revolver, 1 the dagger.
    """

    def __init__(self, config=MURDER_CONFIG):
        self.config = config
        prior = [config.PRIOR_GREY, config.PRIOR_AUBURN]
        if any(p is None for p in prior):
            raise ValueError("Prior probabilities of the suspects must be given")
        if not np.isclose(sum(prior), 1.0):
            raise ValueError("Prior probabilities of the suspects must sum to one, got %s" % sum(prior))
        self.prior = torch.tensor(prior)
        self.weapon_cpt = torch.tensor([config.WEAPON_GIVEN_GREY, config.WEAPON_GIVEN_AUBURN])
        self.hair_cpt = torch.tensor([config.HAIR_GIVEN_GREY, config.HAIR_GIVEN_AUBURN])

    def model(self, weapon=None, hair=None):
        murderer = pyro.sample("murderer", dist.Categorical(self.prior))
        pyro.sample("weapon", dist.Categorical(self.weapon_cpt[murderer]),
                    obs=None if weapon is None else torch.tensor(weapon))
        pyro.sample("hair", dist.Bernoulli(self.hair_cpt[murderer]),
                    obs=None if hair is None else torch.tensor(float(hair)))
        return murderer

    def posterior(self, weapon=None, hair=None):
        """
        Input
        -------
        weapon: observed weapon index, or None
        hair: True if the hair was found, False if not, None if unobserved

        Output
        --------
        pandas Series of the posterior probability of each suspect.
        """
        marginals = enumerated_marginals(self.model, weapon=weapon, hair=hair, max_plate_nesting=0)
        probs = marginals["murderer"].probs.detach().numpy()
        return pd.Series(probs, index=SUSPECTS, name="P(murderer)")

    def joint_murderer_weapon(self):
        joint = self.prior.numpy()[:, None] * self.weapon_cpt.numpy()
        return pd.DataFrame(joint, index=SUSPECTS, columns=WEAPONS)

    def joint_murderer_hair(self, weapon=None):
        """Joint of murderer and hair evidence, conditioned on the weapon when one is given."""
        prior = self.prior.numpy() if weapon is None else self.posterior(weapon=weapon).values
        hair = self.hair_cpt.numpy()
        joint = prior[:, None] * np.stack([hair, 1 - hair], axis=1)
        return pd.DataFrame(joint, index=SUSPECTS, columns=["Hair", "No hair"])

    def conditional_weapon(self):
        return pd.DataFrame(self.weapon_cpt.numpy(), index=SUSPECTS, columns=WEAPONS)

    def progression(self, weapon=0, hair=True):
        """Posterior over suspects as the evidence arrives: prior, after the weapon, after the hair."""
        return pd.DataFrame({
            "Prior": self.posterior(),
            "After weapon": self.posterior(weapon=weapon),
            "After hair": self.posterior(weapon=weapon, hair=hair),
        })
