# results.py

"""
The record returned by a SEIR fit.

It keeps the posterior draws together with every prior exactly as supplied
and the arrays derived for the fit, so that projections and reports can later
extend the fit consistently.
"""

import os
import pickle
from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True, eq=False)
class FitResult:
    """Posterior draws of a SEIR fit plus the inputs needed to reuse it."""
    fit: object
    post: dict
    phi_prior: float
    R0_prior: tuple
    f_prior: tuple
    e_prior: tuple
    e_prior_trans: np.ndarray
    i0_prior: tuple
    samp_frac_prior: tuple
    start_decline_prior: tuple
    end_decline_prior: tuple
    obs_model: int
    samp_frac_type: str
    samp_frac_fixed: np.ndarray
    state_0: dict
    daily_cases: np.ndarray
    days: np.ndarray
    time: np.ndarray
    last_day_obs: int
    pars: dict
    f2_prior_beta_shape1: float
    f2_prior_beta_shape2: float
    stan_data: dict
    bundle: object
    days_back: int

    @property
    def stream_names(self):
        return self.bundle.stream_names

    @property
    def n_days(self):
        return int(len(self.days))

    @property
    def n_streams(self):
        return int(self.daily_cases.shape[1])

    def save(self, path):
        """Pickles the result. The directory is created if needed."""
        directory = os.path.dirname(path)
        if directory and not os.path.exists(directory):
            os.makedirs(directory)
        with open(path, "wb") as f:
            pickle.dump(self, f)
        return path


def load_result(path):
    with open(path, "rb") as f:
        return pickle.load(f)


def _as_tuple(prior):
    return tuple(float(x) for x in np.atleast_1d(np.asarray(prior, dtype=float)))


def package_result(fit, post, bundle, R0_prior, phi_prior, f_prior, e_prior,
                   i0_prior, samp_frac_prior, start_decline_prior,
                   end_decline_prior):
    """
    Bundles raw draws, the configuration and the supplied priors into a
    `FitResult`. Purely constructive.
    """
    return FitResult(
        fit=fit,
        post=post,
        phi_prior=float(phi_prior),
        R0_prior=_as_tuple(R0_prior),
        f_prior=_as_tuple(f_prior),
        e_prior=_as_tuple(e_prior),
        e_prior_trans=bundle.e_prior,
        i0_prior=_as_tuple(i0_prior),
        samp_frac_prior=_as_tuple(samp_frac_prior),
        start_decline_prior=_as_tuple(start_decline_prior),
        end_decline_prior=_as_tuple(end_decline_prior),
        obs_model=bundle.obs_model_code,
        samp_frac_type=bundle.samp_frac_type,
        samp_frac_fixed=bundle.samp_frac_fixed,
        state_0=dict(zip(bundle.y0_names, bundle.y0_vars.tolist())),
        daily_cases=bundle.daily_cases,
        days=bundle.days,
        time=bundle.time,
        last_day_obs=bundle.last_day_obs,
        pars=bundle.pars,
        f2_prior_beta_shape1=float(bundle.f_prior[0]),
        f2_prior_beta_shape2=float(bundle.f_prior[1]),
        stan_data=bundle.to_stan_data(),
        bundle=bundle,
        days_back=bundle.days_back,
    )
