# inference.py

"""
Hands a `ConfigBundle` to the Stan SEIR model through CmdStanPy and pulls the
posterior draws back out.

Nothing here validates inputs: the assembler has already done so. Errors
raised by CmdStan (compilation failures, divergent or failed chains) propagate
to the caller unchanged.
"""

import logging

import numpy as np
from scipy.stats import beta, lognorm
from cmdstanpy import CmdStanModel

from config import (STAN_FILE, DEFAULT_ITER, DEFAULT_CHAINS, DEFAULT_SEED,
                    INIT_LOGNORMAL_SD_DIVISOR, INIT_F_SD_DIVISOR, PARS_SAVE,
                    STATE_PREDICTION_PAR)
from priors import get_beta_params, get_ur

logger = logging.getLogger(__name__)


def _rlnorm(prior, rng):
    """One log-normal draw with the prior's log SD divided by the init divisor."""
    log_mean, log_sd = prior
    return float(lognorm.rvs(s=log_sd / INIT_LOGNORMAL_SD_DIVISOR,
                             scale=np.exp(log_mean), random_state=rng))


def make_inits(bundle, f_prior, e_prior, chains, rng):
    """
    Draws one set of initial values per chain from tightened priors.

    Args:
        bundle (ConfigBundle): The assembled model configuration.
        f_prior: Beta (mean, SD) of the distancing strength `f`.
        e_prior: Beta (mean, SD) of the distancing fraction `e`.
        chains (int): Number of chains.
        rng (np.random.Generator): Source of randomness.

    Returns:
        list[dict]: Initial values keyed by Stan parameter name.
    """
    ud = bundle.pars["ud"]
    f_params = get_beta_params(f_prior[0], f_prior[1] / INIT_F_SD_DIVISOR)
    inits = []
    for _ in range(chains):
        R0 = _rlnorm(bundle.R0_prior, rng)
        i0 = _rlnorm(bundle.i0_prior, rng)
        start_decline = _rlnorm(bundle.start_decline_prior, rng)
        end_decline = _rlnorm(bundle.end_decline_prior, rng)
        f = float(beta.rvs(f_params.alpha, f_params.beta, random_state=rng))
        inits.append({
            "R0": R0,
            "f_s": [f] * bundle.n_f_segments,
            "i0": i0,
            "ur": get_ur(e_prior[0], ud),
            "start_decline": start_decline,
            "end_decline": end_decline,
        })
    return inits


def pars_to_save(save_state_predictions=False):
    """Names of the posterior quantities to extract."""
    pars = list(PARS_SAVE)
    if save_state_predictions:
        pars.append(STATE_PREDICTION_PAR)
    return pars


def extract_draws(fit, pars):
    """Returns {name: draws array} with chains merged, like rstan::extract()."""
    return {name: fit.stan_variable(name) for name in pars}


def run_sampler(bundle, f_prior, e_prior, model=None, stan_file=STAN_FILE,
                iter=DEFAULT_ITER, chains=DEFAULT_CHAINS, seed=DEFAULT_SEED,
                save_state_predictions=False, **sampler_kwargs):
    """
    Runs the Stan SEIR model on an assembled configuration.

    Half of `iter` is used for warmup, matching the usual Stan convention for
    a total iteration count. Any extra keyword arguments are forwarded to
    `CmdStanModel.sample()` verbatim.

    Returns:
        tuple: (CmdStanMCMC fit, dict of extracted draws).
    """
    if model is None:
        model = CmdStanModel(stan_file=stan_file)

    rng = np.random.default_rng(seed)
    inits = make_inits(bundle, f_prior, e_prior, chains, rng)
    pars = pars_to_save(save_state_predictions)

    iter_warmup = iter // 2
    logger.info("Sampling SEIR model: %d chains, %d warmup + %d sampling iterations, seed %d.",
                chains, iter_warmup, iter - iter_warmup, seed)
    fit = model.sample(
        data=bundle.to_stan_data(),
        chains=chains,
        iter_warmup=iter_warmup,
        iter_sampling=iter - iter_warmup,
        seed=seed,
        inits=inits,
        **sampler_kwargs
    )
    return fit, extract_draws(fit, pars)
