# fit_seir.py

"""
Fits the Stan SEIR model to one or more daily case series.

`fit_seir()` validates and assembles the model data, runs the sampler and
returns a `FitResult` for use by projection and reporting code. Running this
file directly fits a CSV of daily counts (or the built-in example data) and
pickles the result.
"""

import argparse
import logging
import os
import re

import numpy as np
import pandas as pd

from config import (DEFAULT_OBS_MODEL, DEFAULT_FORECAST_DAYS,
                    DEFAULT_TIME_INCREMENT, DEFAULT_SAMP_FRAC_TYPE,
                    DEFAULT_DAYS_BACK, DEFAULT_R0_PRIOR, DEFAULT_PHI_PRIOR,
                    DEFAULT_F_PRIOR, DEFAULT_E_PRIOR, DEFAULT_SAMP_FRAC_PRIOR,
                    DEFAULT_START_DECLINE_PRIOR, DEFAULT_END_DECLINE_PRIOR,
                    DEFAULT_F_RAMP_RATE, DEFAULT_RW_SIGMA, DEFAULT_SEED,
                    DEFAULT_CHAINS, DEFAULT_ITER, DEFAULT_N_POP,
                    DEFAULT_I0_PRIOR, DEFAULT_DELAY_SCALE, DEFAULT_DELAY_SHAPE,
                    DEFAULT_ODE_CONTROL, SAMP_FRAC_TYPES, OBS_MODEL_CODES,
                    STAN_FILE, RESULTS_DIR)
from assembler import build_config_bundle, check_count
from data_generation import generate_dataset
from inference import run_sampler
from results import package_result

logger = logging.getLogger(__name__)


def fit_seir(daily_cases,
             obs_model=DEFAULT_OBS_MODEL,
             forecast_days=DEFAULT_FORECAST_DAYS,
             time_increment=DEFAULT_TIME_INCREMENT,
             samp_frac_fixed=None,
             samp_frac_type=DEFAULT_SAMP_FRAC_TYPE,
             samp_frac_seg=None,
             f_seg=None,
             days_back=DEFAULT_DAYS_BACK,
             R0_prior=DEFAULT_R0_PRIOR,
             phi_prior=DEFAULT_PHI_PRIOR,
             f_prior=DEFAULT_F_PRIOR,
             e_prior=DEFAULT_E_PRIOR,
             samp_frac_prior=DEFAULT_SAMP_FRAC_PRIOR,
             start_decline_prior=DEFAULT_START_DECLINE_PRIOR,
             end_decline_prior=DEFAULT_END_DECLINE_PRIOR,
             f_ramp_rate=DEFAULT_F_RAMP_RATE,
             rw_sigma=DEFAULT_RW_SIGMA,
             seed=DEFAULT_SEED,
             chains=DEFAULT_CHAINS,
             iter=DEFAULT_ITER,
             N_pop=DEFAULT_N_POP,
             pars=None,
             i0_prior=DEFAULT_I0_PRIOR,
             state_0=None,
             save_state_predictions=False,
             delay_scale=DEFAULT_DELAY_SCALE,
             delay_shape=DEFAULT_DELAY_SHAPE,
             ode_control=DEFAULT_ODE_CONTROL,
             model=None,
             stan_file=STAN_FILE,
             **sampler_kwargs):
    """
    Fits the Stan SEIR model to daily case data.

    All validation happens before the sampler starts; any invalid input
    raises a `SeirInputError` subclass and nothing is run. See
    `assembler.build_config_bundle()` for the meaning of the model arguments.

    Args:
        seed (int): Seed for the initial values and for Stan.
        chains (int): Number of MCMC chains.
        iter (int): Iterations per chain, half of them warmup.
        save_state_predictions (bool): Also keep the ODE state trajectories
            `y_hat`. Makes the result much larger.
        model: A compiled `CmdStanModel`. Built from `stan_file` when omitted.
        stan_file (str): Path to the SEIR Stan program.
        **sampler_kwargs: Passed verbatim to `CmdStanModel.sample()`.

    Returns:
        FitResult: Draws, priors and the assembled configuration.
    """
    bundle = build_config_bundle(
        daily_cases,
        obs_model=obs_model,
        forecast_days=forecast_days,
        time_increment=time_increment,
        samp_frac_fixed=samp_frac_fixed,
        samp_frac_type=samp_frac_type,
        samp_frac_seg=samp_frac_seg,
        f_seg=f_seg,
        days_back=days_back,
        R0_prior=R0_prior,
        phi_prior=phi_prior,
        f_prior=f_prior,
        e_prior=e_prior,
        samp_frac_prior=samp_frac_prior,
        start_decline_prior=start_decline_prior,
        end_decline_prior=end_decline_prior,
        f_ramp_rate=f_ramp_rate,
        rw_sigma=rw_sigma,
        N_pop=N_pop,
        pars=pars,
        i0_prior=i0_prior,
        state_0=state_0,
        delay_scale=delay_scale,
        delay_shape=delay_shape,
        ode_control=ode_control,
    )
    seed = check_count("seed", seed, 1)
    chains = check_count("chains", chains, 1)
    iter = check_count("iter", iter, 1)

    fit, post = run_sampler(
        bundle, f_prior, e_prior,
        model=model,
        stan_file=stan_file,
        iter=iter,
        chains=chains,
        seed=seed,
        save_state_predictions=save_state_predictions,
        **sampler_kwargs
    )

    return package_result(
        fit, post, bundle,
        R0_prior=R0_prior,
        phi_prior=phi_prior,
        f_prior=f_prior,
        e_prior=e_prior,
        i0_prior=i0_prior,
        samp_frac_prior=samp_frac_prior,
        start_decline_prior=start_decline_prior,
        end_decline_prior=end_decline_prior,
    )


# ==============================================================================
# COMMAND LINE RUNNER
# ==============================================================================

def parse_float_list(s):
    """Parses '0.1,0.07' (comma/space separated) into a list of floats."""
    if not s:
        return []
    return [float(x) for x in re.split(r"[,\s;]+", s.strip()) if x]


def load_case_data(path, columns=None):
    """Reads daily counts from a CSV; each selected column is one data type."""
    df = pd.read_csv(path)
    if columns:
        missing = [c for c in columns if c not in df.columns]
        if missing:
            raise ValueError(f"Columns {missing} not found in {path}.")
        return df[columns]
    return df.select_dtypes(include=[np.number])


def main(argv=None):
    """Main function to fit the SEIR model from the command line."""
    p = argparse.ArgumentParser(description="Fit the Stan SEIR model to daily case counts")
    p.add_argument("csv", nargs="?", default=None,
                   help="CSV of daily counts, one column per data type "
                        "(omit to use the built-in example data)")
    p.add_argument("--columns", type=str, default=None,
                   help="Comma separated columns to fit (default: all numeric)")
    p.add_argument("--samp-frac", type=str, default="0.2",
                   help="Fixed sampled fraction per data type (default: 0.2)")
    p.add_argument("--samp-frac-type", choices=SAMP_FRAC_TYPES,
                   default=DEFAULT_SAMP_FRAC_TYPE)
    p.add_argument("--obs-model", choices=tuple(OBS_MODEL_CODES),
                   default=DEFAULT_OBS_MODEL)
    p.add_argument("--forecast-days", type=int, default=DEFAULT_FORECAST_DAYS)
    p.add_argument("--delay-scale", type=str, default=None,
                   help=f"Weibull delay scale per data type (default: {DEFAULT_DELAY_SCALE})")
    p.add_argument("--delay-shape", type=str, default=None,
                   help=f"Weibull delay shape per data type (default: {DEFAULT_DELAY_SHAPE})")
    p.add_argument("--n-pop", type=float, default=DEFAULT_N_POP)
    p.add_argument("--iter", type=int, default=DEFAULT_ITER)
    p.add_argument("--chains", type=int, default=DEFAULT_CHAINS)
    p.add_argument("--seed", type=int, default=DEFAULT_SEED)
    p.add_argument("--stan-file", default=STAN_FILE)
    p.add_argument("--save-states", action="store_true",
                   help="Keep the ODE state trajectories (large)")
    p.add_argument("--out", default=os.path.join(RESULTS_DIR, "fit_seir.pkl"),
                   help="Output pickle path")
    args = p.parse_args(argv)

    logging.basicConfig(level=logging.INFO,
                        format="%(asctime)s %(name)s %(levelname)s: %(message)s")

    if args.csv is None:
        example = generate_dataset(forecast_days=args.forecast_days)
        daily_cases = example["daily_cases"]["cases"]
    else:
        columns = [c.strip() for c in args.columns.split(",")] if args.columns else None
        daily_cases = load_case_data(args.csv, columns)
    n_streams = 1 if daily_cases.ndim == 1 else daily_cases.shape[1]
    n_days = len(daily_cases) + args.forecast_days

    samp_frac = parse_float_list(args.samp_frac)
    if len(samp_frac) == 1:
        samp_frac = samp_frac * n_streams
    samp_frac_fixed = np.tile(np.array(samp_frac, dtype=float), (n_days, 1))

    delay_scale = parse_float_list(args.delay_scale) or [DEFAULT_DELAY_SCALE] * n_streams
    delay_shape = parse_float_list(args.delay_shape) or [DEFAULT_DELAY_SHAPE] * n_streams

    print(f"Fitting {len(daily_cases)} days of {n_streams} data type(s) "
          f"with {args.chains} chains x {args.iter} iterations.")
    result = fit_seir(
        daily_cases,
        obs_model=args.obs_model,
        forecast_days=args.forecast_days,
        samp_frac_fixed=samp_frac_fixed,
        samp_frac_type=args.samp_frac_type,
        delay_scale=delay_scale,
        delay_shape=delay_shape,
        N_pop=args.n_pop,
        iter=args.iter,
        chains=args.chains,
        seed=args.seed,
        save_state_predictions=args.save_states,
        stan_file=args.stan_file,
    )
    path = result.save(args.out)

    print("\n--- Fit Finished ---")
    print(f"Posterior draws kept: {len(result.post['R0'])}")
    print(f"Saved result to: {path}")
    return result


if __name__ == "__main__":
    main()
