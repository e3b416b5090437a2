# config.py

"""
This file centralizes the default configuration of the SEIR fitting front end.
Every default used by the assembler, the sampler wrapper and the command line
runner lives here, so that the behaviour of a fit can be changed without
altering the core logic of the other modules.
"""

import numpy as np

# ==============================================================================
# --- Engine Data Layout ---
# ==============================================================================
# The ODE integration grid starts this many days before day 1
TIME_START = -30.0
# Offset subtracted from the first grid point to obtain the ODE initial time
T0_OFFSET = 0.000001
# The Stan model reads this integer as a missing observation
NA_SENTINEL = 9999999

# Observation model codes expected by the Stan model
OBS_MODEL_CODES = {"Poisson": 0, "NB2": 1}

# Sampling fraction treatments. Only "segmented" gets its own code in the
# current Stan model; the other modes are told apart by `n_samp_frac`.
SAMP_FRAC_TYPES = ("fixed", "estimated", "rw", "segmented")
SAMP_FRAC_TYPE_CODES = {"fixed": 1, "estimated": 1, "rw": 1, "segmented": 4}

# Beta(1, 1) shapes handed to the model when the sampling fraction is fixed
FIXED_SAMP_FRAC_PRIOR_SHAPES = (1.0, 1.0)

# Auxiliary constants appended to x_r. Only used by projections.
IMPORTED_CASES = 0.0
IMPORTED_WINDOW = 1.0

# ==============================================================================
# --- Reference Schemas ---
# ==============================================================================
FIXED_PARAM_NAMES = ("D", "k1", "k2", "q", "ud", "ur", "f0")
INITIAL_STATE_NAMES = (
    "E1_frac", "E2_frac", "I_frac", "Q_num", "R_num",
    "E1d_frac", "E2d_frac", "Id_frac", "Qd_num", "Rd_num",
)
# First names of the pre-N_pop input layout
LEGACY_FIXED_PARAM_FIRST = "N"
LEGACY_INITIAL_STATE_FIRST = "S"

# ==============================================================================
# --- Default Model Inputs ---
# ==============================================================================
DEFAULT_OBS_MODEL = "NB2"
DEFAULT_FORECAST_DAYS = 0
DEFAULT_TIME_INCREMENT = 0.25
DEFAULT_SAMP_FRAC_TYPE = "fixed"
DEFAULT_DAYS_BACK = 45
DEFAULT_F_RAMP_RATE = 0.0
DEFAULT_RW_SIGMA = 0.1
DEFAULT_N_POP = 5.1e6

DEFAULT_PARS = {
    "D": 5.0, "k1": 1 / 5, "k2": 1.0, "q": 0.05,
    "ud": 0.1, "ur": 0.02, "f0": 1.0,
}
DEFAULT_STATE_0 = {
    "E1_frac": 0.4, "E2_frac": 0.1, "I_frac": 0.5, "Q_num": 0.0, "R_num": 0.0,
    "E1d_frac": 0.4, "E2d_frac": 0.1, "Id_frac": 0.5, "Qd_num": 0.0, "Rd_num": 0.0,
}

# Weibull reporting delay (one entry per data stream)
DEFAULT_DELAY_SCALE = 9.85
DEFAULT_DELAY_SHAPE = 1.73

# Relative tolerance, absolute tolerance, max steps of the Stan ODE solver
DEFAULT_ODE_CONTROL = (1e-7, 1e-6, 1e6)

# ==============================================================================
# --- Default Priors ---
# ==============================================================================
# Log-normal (log mean, log SD)
DEFAULT_R0_PRIOR = (np.log(2.6), 0.2)
DEFAULT_I0_PRIOR = (np.log(8), 1.0)
DEFAULT_START_DECLINE_PRIOR = (np.log(15), 0.05)
DEFAULT_END_DECLINE_PRIOR = (np.log(22), 0.05)
# SD of the half-normal prior on 1/sqrt(phi)
DEFAULT_PHI_PRIOR = 1.0
# Beta (mean, SD). All f segments share one prior.
DEFAULT_F_PRIOR = (0.4, 0.2)
DEFAULT_E_PRIOR = (0.8, 0.05)
DEFAULT_SAMP_FRAC_PRIOR = (0.4, 0.2)

# ==============================================================================
# --- Sampler Configuration ---
# ==============================================================================
DEFAULT_SEED = 42
DEFAULT_CHAINS = 4
# Iterations per chain, half of which are warmup
DEFAULT_ITER = 2000

# Initial values are drawn with the prior spread divided by these factors
INIT_LOGNORMAL_SD_DIVISOR = 2.0
INIT_F_SD_DIVISOR = 4.0

# Quantities kept from the posterior
PARS_SAVE = ("R0", "f_s", "i0", "e", "ur", "phi", "mu", "y_rep",
             "start_decline", "end_decline", "samp_frac")
STATE_PREDICTION_PAR = "y_hat"

# ==============================================================================
# --- Directory Configuration ---
# ==============================================================================
# Default location of the Stan model source
STAN_FILE = "stan/seir.stan"
RESULTS_DIR = "results"
