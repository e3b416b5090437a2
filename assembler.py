# assembler.py

"""
This module turns the user-facing arguments of a SEIR fit into one immutable
`ConfigBundle`. It contains:
- Validation of every input (schemas, shapes, segments, priors, sentinel).
- The derived arrays the Stan model needs (day and time grids, time indices,
  segment ids, converted priors, the x_r / x_i side vectors).
- `ConfigBundle.to_stan_data()`, the only place where the engine-specific
  encoding (missing-value sentinel, 1-based indices) is applied.
"""

import logging
from dataclasses import dataclass

import numpy as np
import pandas as pd

from config import (TIME_START, T0_OFFSET, NA_SENTINEL, OBS_MODEL_CODES,
                    SAMP_FRAC_TYPES, SAMP_FRAC_TYPE_CODES,
                    FIXED_SAMP_FRAC_PRIOR_SHAPES, IMPORTED_CASES,
                    IMPORTED_WINDOW, DEFAULT_OBS_MODEL, DEFAULT_FORECAST_DAYS,
                    DEFAULT_TIME_INCREMENT, DEFAULT_SAMP_FRAC_TYPE,
                    DEFAULT_DAYS_BACK, DEFAULT_R0_PRIOR, DEFAULT_PHI_PRIOR,
                    DEFAULT_F_PRIOR, DEFAULT_E_PRIOR, DEFAULT_SAMP_FRAC_PRIOR,
                    DEFAULT_START_DECLINE_PRIOR, DEFAULT_END_DECLINE_PRIOR,
                    DEFAULT_F_RAMP_RATE, DEFAULT_RW_SIGMA, DEFAULT_N_POP,
                    DEFAULT_PARS, DEFAULT_I0_PRIOR, DEFAULT_STATE_0,
                    DEFAULT_DELAY_SCALE, DEFAULT_DELAY_SHAPE,
                    DEFAULT_ODE_CONTROL)
from errors import (SeirInputError, DimensionError, SegmentError,
                    SentinelCollisionError, InvalidPriorError)
from priors import beta_prior_shapes, check_lognormal_prior
from schema import FIXED_PARAMS_SCHEMA, INITIAL_STATE_SCHEMA
from time_index import make_time_grid, time_day_ids

logger = logging.getLogger(__name__)


def _frozen(values, dtype=None):
    arr = np.array(values, dtype=dtype, copy=True)
    arr.flags.writeable = False
    return arr


# ==============================================================================
# CONFIGURATION BUNDLE
# ==============================================================================

@dataclass(frozen=True, eq=False)
class ConfigBundle:
    """
    Everything the Stan SEIR model needs for one fit.

    Arrays are read-only copies. Missing observations are NaN in
    `daily_cases`; the integer sentinel only appears in `to_stan_data()`.
    Time indices are 0-based here.
    """
    daily_cases: np.ndarray
    stream_names: tuple
    days: np.ndarray
    last_day_obs: int
    time: np.ndarray
    time_day_id: np.ndarray
    time_day_id0: np.ndarray
    days_back: int
    x_r: np.ndarray
    x_r_names: tuple
    x_i: np.ndarray
    x_i_names: tuple
    y0_vars: np.ndarray
    y0_names: tuple
    f_seg: np.ndarray
    n_f_segments: int
    delay_shape: np.ndarray
    delay_scale: np.ndarray
    samp_frac_fixed: np.ndarray
    samp_frac_seg: np.ndarray
    samp_frac_type: str
    n_samp_frac: int
    obs_model: str
    contains_nas: bool
    R0_prior: np.ndarray
    phi_prior: float
    i0_prior: np.ndarray
    f_prior: np.ndarray
    e_prior: np.ndarray
    samp_frac_prior: np.ndarray
    start_decline_prior: np.ndarray
    end_decline_prior: np.ndarray
    rw_sigma: float
    ode_control: np.ndarray
    priors_only: bool = False

    @property
    def n_days(self):
        return int(self.days.shape[0])

    @property
    def n_streams(self):
        return int(self.daily_cases.shape[1])

    @property
    def obs_model_code(self):
        return OBS_MODEL_CODES[self.obs_model]

    @property
    def samp_frac_type_code(self):
        return SAMP_FRAC_TYPE_CODES[self.samp_frac_type]

    @property
    def est_phi(self):
        """Number of NB2 dispersion parameters (one per stream, none for Poisson)."""
        return self.n_streams if self.obs_model == "NB2" else 0

    @property
    def pars(self):
        """The real-valued side vector as a name -> value dict."""
        return dict(zip(self.x_r_names, self.x_r.tolist()))

    def to_stan_data(self):
        """
        Encodes the bundle as the data dictionary of the Stan SEIR model.

        Missing observations become `NA_SENTINEL` and grid indices become
        1-based. A new dictionary of new arrays is returned on every call.
        """
        cases = self.daily_cases.copy()
        cases[np.isnan(cases)] = NA_SENTINEL
        return {
            "T": int(self.time.shape[0]),
            "days": self.days.astype(np.int64),
            "daily_cases": cases.astype(np.int64),
            "J": self.n_streams,
            "N": self.n_days,
            "S": self.n_f_segments,
            "y0_vars": self.y0_vars.copy(),
            "t0": float(self.time.min() - T0_OFFSET),
            "time": self.time.copy(),
            "n_x_r": int(self.x_r.shape[0]),
            "x_r": self.x_r.copy(),
            "n_x_i": int(self.x_i.shape[0]),
            "x_i": self.x_i.copy(),
            "delay_shape": self.delay_shape.copy(),
            "delay_scale": self.delay_scale.copy(),
            "samp_frac_fixed": self.samp_frac_fixed.copy(),
            "samp_frac_seg": self.samp_frac_seg.copy(),
            "samp_frac_type": self.samp_frac_type_code,
            "time_day_id": self.time_day_id + 1,
            "time_day_id0": self.time_day_id0 + 1,
            "R0_prior": self.R0_prior.copy(),
            "phi_prior": float(self.phi_prior),
            "i0_prior": self.i0_prior.copy(),
            "f_prior": self.f_prior.copy(),
            "samp_frac_prior": self.samp_frac_prior.copy(),
            "e_prior": self.e_prior.copy(),
            "start_decline_prior": self.start_decline_prior.copy(),
            "end_decline_prior": self.end_decline_prior.copy(),
            "n_samp_frac": int(self.n_samp_frac),
            "rw_sigma": float(self.rw_sigma),
            "priors_only": int(self.priors_only),
            "last_day_obs": int(self.last_day_obs),
            "obs_model": self.obs_model_code,
            "contains_NAs": int(self.contains_nas),
            "ode_control": self.ode_control.copy(),
            "est_phi": self.est_phi,
        }


# ==============================================================================
# INPUT COERCION AND VALIDATION HELPERS
# ==============================================================================

def _as_case_matrix(daily_cases):
    """Returns (float matrix, stream names); vectors become one column."""
    if isinstance(daily_cases, pd.DataFrame):
        names = tuple(str(c) for c in daily_cases.columns)
        arr = daily_cases.to_numpy(dtype=float)
    elif isinstance(daily_cases, pd.Series):
        names = (str(daily_cases.name) if daily_cases.name is not None else "data_type_1",)
        arr = daily_cases.to_numpy(dtype=float).reshape(-1, 1)
    else:
        arr = np.asarray(daily_cases, dtype=float)
        if arr.ndim == 1:
            arr = arr.reshape(-1, 1)
        names = None
    if arr.ndim != 2 or arr.shape[0] == 0 or arr.shape[1] == 0:
        raise DimensionError(
            f"daily_cases must be a non-empty vector or matrix, got shape {arr.shape}."
        )
    if names is None:
        names = tuple(f"data_type_{j + 1}" for j in range(arr.shape[1]))
    return arr, names


def _as_column_matrix(name, values):
    if values is None:
        raise DimensionError(f"`{name}` must be supplied.")
    arr = np.asarray(values, dtype=float)
    if arr.ndim == 1:
        arr = arr.reshape(-1, 1)
    if arr.ndim != 2:
        raise DimensionError(f"`{name}` must be a vector or matrix, got {arr.ndim} dimensions.")
    return arr


def _as_per_stream(name, values, n_streams):
    arr = np.atleast_1d(np.asarray(values, dtype=float))
    if arr.ndim != 1 or arr.shape[0] != n_streams:
        raise DimensionError(
            f"`{name}` needs one value per data type ({n_streams}), got {arr.size}."
        )
    return arr


def _as_segment_ids(name, values, n_days, origin=None):
    """
    Coerces a per-day segment id vector to integers. With an `origin`, the
    ids must also run contiguously from `origin` to their maximum, since the
    model indexes its segment parameters with them directly.
    """
    arr = np.asarray(values)
    if arr.ndim != 1 or arr.shape[0] != n_days:
        raise DimensionError(
            f"`{name}` must have one entry per day "
            f"(observed + forecast = {n_days}), got {arr.size}."
        )
    as_float = arr.astype(float)
    if not np.all(np.isfinite(as_float)) or np.any(as_float != np.round(as_float)):
        raise SegmentError(f"`{name}` must contain whole numbers.")
    arr = as_float.astype(np.int64)
    if origin is None:
        return arr
    if arr.min() != origin:
        raise SegmentError(
            f"`{name}` segment ids must start at {origin}; smallest id is {arr.min()}."
        )
    ids = np.unique(arr)
    if not np.array_equal(ids, np.arange(origin, arr.max() + 1)):
        raise SegmentError(
            f"`{name}` segment ids must run from {origin} to {arr.max()} "
            f"without gaps; got {ids.tolist()}."
        )
    return arr


def _check_positive(name, value):
    if not (np.isfinite(value) and value > 0):
        raise SeirInputError(f"`{name}` must be positive, got {value}.")
    return float(value)


def check_count(name, value, minimum):
    if int(value) != value or value < minimum:
        raise SeirInputError(f"`{name}` must be an integer >= {minimum}, got {value}.")
    return int(value)


def _check_choice(name, value, choices):
    if value not in choices:
        raise SeirInputError(f"`{name}` must be one of {list(choices)}, got {value!r}.")
    return value


def _count_samp_frac_params(samp_frac_type, samp_frac_seg, n_obs):
    if samp_frac_type == "fixed":
        return 0
    if samp_frac_type == "estimated":
        return 1
    if samp_frac_type == "segmented":
        return int(samp_frac_seg.max())
    # Random walk: one step per observed day
    return n_obs


def _check_samp_frac_fixed(samp_frac_fixed, samp_frac_type):
    # Only the first data type may have a non-fixed sample fraction, so every
    # other column (and the first one, when fixed) must be usable as is.
    first = 0 if samp_frac_type == "fixed" else 1
    block = samp_frac_fixed[:, first:]
    if block.size and not np.all(np.isfinite(block) & (block >= 0) & (block <= 1)):
        cols = "all columns" if first == 0 else "columns 2 and above"
        raise SeirInputError(
            f"`samp_frac_fixed` {cols} must be fixed fractions in [0, 1] "
            f"(samp_frac_type = {samp_frac_type!r})."
        )


def _check_case_values(cases):
    if np.any(cases == NA_SENTINEL):
        raise SentinelCollisionError(
            f"{NA_SENTINEL} is reserved as the missing-value marker and may not "
            f"appear in `daily_cases`; use NaN for missing observations."
        )
    observed = cases[~np.isnan(cases)]
    if np.any(observed < 0) or np.any(observed != np.round(observed)) or np.any(np.isinf(observed)):
        raise SeirInputError("`daily_cases` must contain non-negative whole numbers or NaN.")


# ==============================================================================
# MAIN ASSEMBLY
# ==============================================================================

def build_config_bundle(daily_cases,
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
                        N_pop=DEFAULT_N_POP,
                        pars=None,
                        i0_prior=DEFAULT_I0_PRIOR,
                        state_0=None,
                        delay_scale=DEFAULT_DELAY_SCALE,
                        delay_shape=DEFAULT_DELAY_SHAPE,
                        ode_control=DEFAULT_ODE_CONTROL):
    """
    Validates all inputs of a fit and assembles the `ConfigBundle`.

    Args:
        daily_cases: Vector or matrix (days x data types) of daily counts. NaN
            marks a missing observation. A DataFrame keeps its column names.
        obs_model (str): "NB2" or "Poisson".
        forecast_days (int): Days to simulate past the last observation.
        time_increment (float): ODE grid step in days.
        samp_frac_fixed: Vector or matrix ((observed + forecast) x data types)
            of fixed sampled fractions.
        samp_frac_type (str): "fixed", "estimated", "rw" or "segmented". Only
            applies to the first data type.
        samp_frac_seg: Sample fraction segment ids starting at 1. Defaults to a
            single segment.
        f_seg: Social distancing segment ids starting at 0 (0 is the fixed
            `f0`). Defaults to 0 on day 1 and 1 afterwards.
        days_back (int): Days covered by the reporting-delay integration.
        R0_prior, i0_prior, start_decline_prior, end_decline_prior: Log-normal
            (log mean, log SD) pairs.
        phi_prior (float): SD of the half-normal prior on 1/sqrt(phi).
        f_prior, e_prior, samp_frac_prior: Beta (mean, SD) pairs. All `f`
            segments share `f_prior`.
        f_ramp_rate (float): Shape of the distancing ramp (0 is linear).
        rw_sigma (float): SD of the sample fraction random walk.
        N_pop (float): Population size.
        pars: Named fixed parameters D, k1, k2, q, ud, ur, f0.
        state_0: Named initial state (see `config.INITIAL_STATE_NAMES`).
        delay_scale, delay_shape: Weibull delay parameters, one per data type.
        ode_control: (rtol, atol, max steps), passed to Stan unchanged.

    Returns:
        ConfigBundle: The validated, read-only configuration.

    Raises:
        IncompatibleSchemaError, DimensionError, SegmentError,
        SentinelCollisionError, InvalidPriorError, SeirInputError.
    """
    fixed_pars = FIXED_PARAMS_SCHEMA.validate(DEFAULT_PARS if pars is None else pars)
    y0 = INITIAL_STATE_SCHEMA.validate(DEFAULT_STATE_0 if state_0 is None else state_0)

    _check_choice("obs_model", obs_model, tuple(OBS_MODEL_CODES))
    _check_choice("samp_frac_type", samp_frac_type, SAMP_FRAC_TYPES)
    forecast_days = check_count("forecast_days", forecast_days, 0)
    days_back = check_count("days_back", days_back, 1)
    time_increment = _check_positive("time_increment", time_increment)
    N_pop = _check_positive("N_pop", N_pop)
    rw_sigma = _check_positive("rw_sigma", rw_sigma)
    try:
        phi_prior = _check_positive("phi_prior", float(phi_prior))
    except SeirInputError as e:
        raise InvalidPriorError(str(e)) from e

    cases, stream_names = _as_case_matrix(daily_cases)
    n_obs, n_streams = cases.shape
    n_days = n_obs + forecast_days

    samp_frac_fixed = _as_column_matrix("samp_frac_fixed", samp_frac_fixed)
    if samp_frac_fixed.shape != (n_days, n_streams):
        raise DimensionError(
            f"`samp_frac_fixed` must be {n_days} x {n_streams} "
            f"(observed + forecast days x data types), got "
            f"{samp_frac_fixed.shape[0]} x {samp_frac_fixed.shape[1]}."
        )
    _check_samp_frac_fixed(samp_frac_fixed, samp_frac_type)

    delay_scale = _as_per_stream("delay_scale", delay_scale, n_streams)
    delay_shape = _as_per_stream("delay_shape", delay_shape, n_streams)

    if f_seg is None:
        f_seg = np.concatenate([[0], np.ones(n_days - 1, dtype=np.int64)])
    f_seg = _as_segment_ids("f_seg", f_seg, n_days, origin=0)
    if samp_frac_seg is None:
        samp_frac_seg = np.ones(n_days, dtype=np.int64)
    samp_frac_seg = _as_segment_ids(
        "samp_frac_seg", samp_frac_seg, n_days,
        origin=1 if samp_frac_type == "segmented" else None)
    n_samp_frac = _count_samp_frac_params(samp_frac_type, samp_frac_seg, n_obs)

    days = np.arange(1, n_days + 1, dtype=np.int64)
    time = make_time_grid(days.max(), time_increment, start=TIME_START)
    time_day_id, time_day_id0 = time_day_ids(days, time, days_back)

    x_i_names = ("last_day_obs", "n_f_s") + tuple(f"f_seg_id_{i + 1}" for i in range(n_days))
    x_i = np.concatenate([[n_obs, n_days], f_seg]).astype(np.int64)

    x_r_names = (("N",) + tuple(fixed_pars) +
                 ("f_ramp_rate", "imported_cases", "imported_window"))
    x_r = np.array([N_pop] + list(fixed_pars.values()) +
                   [float(f_ramp_rate), IMPORTED_CASES, IMPORTED_WINDOW])

    _check_case_values(cases)
    contains_nas = bool(np.isnan(cases).any())

    f_prior_shapes = beta_prior_shapes("f_prior", f_prior)
    e_prior_shapes = beta_prior_shapes("e_prior", e_prior)
    if np.asarray(samp_frac_prior, dtype=float).size != 2:
        raise DimensionError(
            "`samp_frac_prior` must be a single (mean, SD) pair: only the first "
            "data type can have an estimated sample fraction."
        )
    if samp_frac_type == "fixed":
        samp_frac_prior_shapes = np.array(FIXED_SAMP_FRAC_PRIOR_SHAPES)
    else:
        samp_frac_prior_shapes = beta_prior_shapes("samp_frac_prior", samp_frac_prior)

    bundle = ConfigBundle(
        daily_cases=_frozen(cases, dtype=float),
        stream_names=stream_names,
        days=_frozen(days),
        last_day_obs=int(n_obs),
        time=_frozen(time),
        time_day_id=_frozen(time_day_id, dtype=np.int64),
        time_day_id0=_frozen(time_day_id0, dtype=np.int64),
        days_back=days_back,
        x_r=_frozen(x_r, dtype=float),
        x_r_names=x_r_names,
        x_i=_frozen(x_i),
        x_i_names=x_i_names,
        y0_vars=_frozen(list(y0.values()), dtype=float),
        y0_names=tuple(y0),
        f_seg=_frozen(f_seg),
        n_f_segments=int(len(np.unique(f_seg)) - 1),
        delay_shape=_frozen(delay_shape),
        delay_scale=_frozen(delay_scale),
        samp_frac_fixed=_frozen(samp_frac_fixed),
        samp_frac_seg=_frozen(samp_frac_seg),
        samp_frac_type=samp_frac_type,
        n_samp_frac=n_samp_frac,
        obs_model=obs_model,
        contains_nas=contains_nas,
        R0_prior=_frozen(check_lognormal_prior("R0_prior", R0_prior)),
        phi_prior=phi_prior,
        i0_prior=_frozen(check_lognormal_prior("i0_prior", i0_prior)),
        f_prior=_frozen(f_prior_shapes),
        e_prior=_frozen(e_prior_shapes),
        samp_frac_prior=_frozen(samp_frac_prior_shapes),
        start_decline_prior=_frozen(check_lognormal_prior("start_decline_prior", start_decline_prior)),
        end_decline_prior=_frozen(check_lognormal_prior("end_decline_prior", end_decline_prior)),
        rw_sigma=rw_sigma,
        ode_control=_frozen(ode_control, dtype=float),
    )
    logger.debug("Assembled SEIR data: %d days (%d observed), %d data types, "
                 "%d grid points, %d f segments, %d sample fraction parameters.",
                 n_days, n_obs, n_streams, time.shape[0],
                 bundle.n_f_segments, n_samp_frac)
    return bundle
