import time
from collections import defaultdict

import numpy as np
import pandas as pd
import torch
import pyro
from pyro.infer import SVI, MCMC, NUTS, Trace_ELBO, TraceEnum_ELBO, config_enumerate
from pyro.optim import Adam
from statsmodels.tsa.stattools import acf


def empty_guide(*args, **kwargs):
    pass


def enumerated_marginals(model, *args, max_plate_nesting=1, guide=None, **kwargs):
    """
    Input
    -------
    model: Pyro model whose latent sites all have finite support
    args, kwargs: passed to the model
    max_plate_nesting: deepest plate nesting in the model
    guide: optional guide for the continuous sites, default an empty guide

    Output
    --------
    Dictionary of site name to exact marginal distribution (Categorical or
    Bernoulli) computed by variable elimination over enumerated sites.
    """
    elbo = TraceEnum_ELBO(max_plate_nesting=max_plate_nesting)
    enumerated_model = config_enumerate(model, default="parallel")
    with torch.no_grad():
        return elbo.compute_marginals(enumerated_model, guide or empty_guide, *args, **kwargs)


def run_svi(model, guide, *args, steps=500, lr=0.05, loss=None, print_every=100, print_logs=True, **kwargs):
    """
    Input
    -------
    model, guide: Pyro callables
    steps: count of optimisation steps
    lr: Adam learning rate
    loss: ELBO object, default Trace_ELBO
    print_every: print the loss every this many steps (0 for never)

    Output
    --------
    List of losses, one per step.
    """
    svi = SVI(model, guide, Adam({"lr": lr}), loss=loss if loss is not None else Trace_ELBO())
    losses = []
    t1 = time.time()
    for step in range(steps):
        losses.append(svi.step(*args, **kwargs))
        if print_logs and print_every and (step % print_every == 0 or step == steps - 1):
            print("Step %s: loss = %.4f" % (step, losses[-1]))
    if print_logs:
        print("Total time: %.3fs" % (time.time() - t1))
    return losses


def get_hmc_n_chains(pyromodel, *args, num_chains=2, sample_count=500, warmup_steps=200, print_logs=True, **kwargs):
    """
    Input
    -------
    pyromodel: Pyro model to sample with NUTS
    args, kwargs: passed to the model
    num_chains: count of MCMC chains to launch, one after another
    sample_count: count of samples kept per chain
    warmup_steps: count of warm up steps per chain

    Outputs
    ---------
    hmc_sample_chains: a dictionary with chain names as keys & dictionary of parameter vs sampled values as values
    hmc_chain_diagnostics: a dictionary with chain names as keys & the chain's diagnostics
    """
    hmc_sample_chains = defaultdict(dict)
    hmc_chain_diagnostics = defaultdict(dict)

    t1 = time.time()
    for idx in range(num_chains):
        nuts_kernel = NUTS(pyromodel)
        mcmc = MCMC(nuts_kernel, num_samples=sample_count, warmup_steps=warmup_steps, disable_progbar=True)
        mcmc.run(*args, **kwargs)
        hmc_sample_chains['chain_{}'.format(idx)] = {k: v.detach().cpu().numpy() for k, v in mcmc.get_samples().items()}
        hmc_chain_diagnostics['chain_{}'.format(idx)] = mcmc.diagnostics()

    if print_logs:
        print("\nTotal time: ", time.time() - t1)
    return dict(hmc_sample_chains), dict(hmc_chain_diagnostics)


def compute_grubin(hmc_sample_chains, print_logs=True):
    """
    Input
    -------
    hmc_sample_chains: output of get_hmc_n_chains, scalar parameters only

    Output
    -------
    Dictionary of parameter name to Gelman-Rubin statistic across chains.
    """
    param_chains = defaultdict(list)
    for chain, params_dict in hmc_sample_chains.items():
        for param, samples in params_dict.items():
            if np.ndim(samples) == 1:
                param_chains[param].append(samples)

    grubin_dict = {}
    for param, chain_list in param_chains.items():
        L = min(map(len, chain_list))
        chain_array = np.array([chain[:L] for chain in chain_list], dtype=float)
        num_chains_J = float(len(chain_list))
        if num_chains_J < 2:
            continue
        chain_mean = np.mean(chain_array, axis=1).reshape((-1, 1))
        grand_chain_mean = np.mean(chain_mean)

        B = L * np.reciprocal(num_chains_J - 1) * np.sum(np.square(chain_mean - grand_chain_mean))
        W = np.mean(np.sum(np.square(chain_array - chain_mean), axis=1) / (L - 1))

        grubin = round(((L - 1) * np.reciprocal(L) * W + np.reciprocal(L) * B) / W, 4)
        grubin_dict[param] = grubin
        if print_logs:
            print("Gelman-Rubin for '%s' over all chains is: %s" % (param, grubin))
    return grubin_dict


def autocorrelation_table(hmc_sample_chains, lags=20):
    """Autocorrelation of each scalar parameter in each chain, as a DataFrame indexed by lag."""
    columns = {}
    for chain, params_dict in hmc_sample_chains.items():
        for param, samples in params_dict.items():
            if np.ndim(samples) == 1:
                columns["%s/%s" % (param, chain)] = acf(samples, nlags=lags, fft=False)
    return pd.DataFrame(columns)


def set_seed(seed):
    pyro.set_rng_seed(seed)
    pyro.clear_param_store()
