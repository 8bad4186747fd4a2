from collections import OrderedDict

import numpy as np
import pandas as pd
import torch
import pyro
import pyro.distributions as dist
from scipy import special, stats
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt

from mbml.config import ASTHMA_CONFIG
from mbml.common.gaussian import BetaSummary
from mbml.common.inference import get_hmc_n_chains, compute_grubin, autocorrelation_table, set_seed


class ClinicalTrialPosteriors(object):

    def __init__(self, treatment_has_effect, prob_if_control, prob_if_treated, prob_recovery):
        self.treatment_has_effect = treatment_has_effect
        self.prob_if_control = prob_if_control
        self.prob_if_treated = prob_if_treated
        self.prob_recovery = prob_recovery


class ClinicalTrialModel(object):
    """
    Compares two explanations of a trial's recoveries, each with prior
    probability one half: the treatment has an effect, so the control and
    treated groups recover with their own uniform-prior probabilities, or it
    has none and both groups share one recovery probability.
    """

    @staticmethod
    def counts(recovered):
        recovered = np.asarray(recovered, dtype=bool)
        return int(recovered.sum()), int((~recovered).sum())

    def log_evidence(self, recovered_control, recovered_treated):
        """(log evidence with an effect, log evidence without), each Beta-Bernoulli in closed form."""
        rc, fc = self.counts(recovered_control)
        rt, ft = self.counts(recovered_treated)
        # Beta(1, 1) priors have unit normalizers
        with_effect = special.betaln(1 + rc, 1 + fc) + special.betaln(1 + rt, 1 + ft)
        without_effect = special.betaln(1 + rc + rt, 1 + fc + ft)
        return with_effect, without_effect

    def run(self, recovered_control, recovered_treated):
        """
        Input
        -------
        recovered_control, recovered_treated: boolean arrays, one entry per patient

        Output
        --------
        ClinicalTrialPosteriors: P(treatment has effect) and the Beta
        posteriors of the recovery probabilities
        """
        if len(recovered_control) == 0 or len(recovered_treated) == 0:
            raise ValueError("Both groups need at least one patient")
        with_effect, without_effect = self.log_evidence(recovered_control, recovered_treated)
        has_effect = float(special.expit(with_effect - without_effect))
        rc, fc = self.counts(recovered_control)
        rt, ft = self.counts(recovered_treated)
        return ClinicalTrialPosteriors(has_effect, BetaSummary(1 + rc, 1 + fc), BetaSummary(1 + rt, 1 + ft),
                                       BetaSummary(1 + rc + rt, 1 + fc + ft))

    @staticmethod
    def pyro_model(recovered_control, recovered_treated):
        """The same comparison with the choice of explanation enumerated, for sampling the probabilities with NUTS."""
        has_effect = pyro.sample("has_effect", dist.Bernoulli(0.5), infer={"enumerate": "parallel"})
        prob_control = pyro.sample("prob_control", dist.Beta(1.0, 1.0))
        prob_treated = pyro.sample("prob_treated", dist.Beta(1.0, 1.0))
        prob_recovery = pyro.sample("prob_recovery", dist.Beta(1.0, 1.0))
        effect = has_effect.bool()
        p_control = torch.where(effect, prob_control, prob_recovery)
        p_treated = torch.where(effect, prob_treated, prob_recovery)
        with pyro.plate("control", len(recovered_control)):
            pyro.sample("recovered_control", dist.Bernoulli(p_control), obs=recovered_control)
        with pyro.plate("treated", len(recovered_treated)):
            pyro.sample("recovered_treated", dist.Bernoulli(p_treated), obs=recovered_treated)

    def sample(self, recovered_control, recovered_treated, num_chains=ASTHMA_CONFIG.NUTS_CHAINS,
               sample_count=ASTHMA_CONFIG.NUTS_SAMPLES, warmup_steps=ASTHMA_CONFIG.NUTS_WARMUP,
               seed=ASTHMA_CONFIG.INFERENCE_SEED, print_logs=True):
        """
        Output
        --------
        chains: dictionary of chain name to parameter samples
        diagnostics: Gelman-Rubin statistic per parameter
        has_effect: P(treatment has effect), averaging the exact conditional
        probability of an effect over the samples
        """
        set_seed(seed)
        control = torch.tensor(np.asarray(recovered_control, dtype=float), dtype=torch.float)
        treated = torch.tensor(np.asarray(recovered_treated, dtype=float), dtype=torch.float)
        chains, _ = get_hmc_n_chains(self.pyro_model, control, treated, num_chains=num_chains,
                                     sample_count=sample_count, warmup_steps=warmup_steps, print_logs=print_logs)
        grubin = compute_grubin(chains, print_logs=print_logs)
        rc, fc = self.counts(recovered_control)
        rt, ft = self.counts(recovered_treated)
        estimates = []
        for samples in chains.values():
            pc, pt, pr = samples["prob_control"], samples["prob_treated"], samples["prob_recovery"]
            with_effect = rc * np.log(pc) + fc * np.log1p(-pc) + rt * np.log(pt) + ft * np.log1p(-pt)
            without_effect = (rc + rt) * np.log(pr) + (fc + ft) * np.log1p(-pr)
            estimates.append(special.expit(with_effect - without_effect))
        return chains, grubin, float(np.mean(np.concatenate(estimates)))


def generate_trial_data(number_of_patients, fraction_recovered, rng):
    """Exactly round(fraction * n) recovered patients, in random order."""
    permutation = rng.permutation(number_of_patients)
    return permutation < int(round(fraction_recovered * number_of_patients))


class ClinicalTrialExperiment(object):
    """Runs the trial model on mock trials of growing size with fixed recovery rates."""

    def __init__(self, sizes=ASTHMA_CONFIG.TRIAL_SIZES, recovery=ASTHMA_CONFIG.TRIAL_RECOVERY,
                 seed=ASTHMA_CONFIG.INFERENCE_SEED):
        self.sizes = list(sizes)
        self.recovery = recovery
        self.seed = seed
        self.model = ClinicalTrialModel()
        self.trials = OrderedDict()
        self.results = OrderedDict()

    def run(self):
        rng = np.random.RandomState(self.seed)
        control_fraction, treated_fraction = self.recovery
        for n in self.sizes:
            control = generate_trial_data(n, control_fraction, rng)
            treated = generate_trial_data(n, treated_fraction, rng)
            self.trials[n] = (control, treated)
            self.results[n] = self.model.run(control, treated)
            print("%s patients per group: P(treatment has effect) = %.4f" % (n, self.results[n].treatment_has_effect))
        return self.results

    def has_effect_table(self):
        return pd.DataFrame(dict((str(n), {"NoEffect": 1 - r.treatment_has_effect, "HasEffect": r.treatment_has_effect})
                                 for n, r in self.results.items())).T

    def sampling_diagnostics(self, n, print_logs=True, **kwargs):
        """NUTS run on the trial with `n` patients per group: Gelman-Rubin table, autocorrelations and P(effect)."""
        control, treated = self.trials[n]
        chains, grubin, has_effect = self.model.sample(control, treated, print_logs=print_logs, **kwargs)
        return pd.Series(grubin, name="Gelman-Rubin"), autocorrelation_table(chains), has_effect

    def plot_posteriors(self):
        fig, axes = plt.subplots(1, len(self.results), figsize=(5 * len(self.results), 4), squeeze=False)
        x = np.linspace(0, 1, 501)
        for ax, (n, result) in zip(axes[0], self.results.items()):
            for label, beta in [("p(probControl)", result.prob_if_control), ("p(probTreated)", result.prob_if_treated)]:
                ax.plot(x, stats.beta.pdf(x, beta.alpha, beta.beta), label=label)
            ax.set_title("%s patients per group" % n)
            ax.set_xlabel("Probability of recovery")
        axes[0][-1].legend(loc="best")
        return fig
