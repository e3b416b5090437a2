# data_generation.py

"""
This script provides the example dataset used in the documentation, the
command line runner and the tests: 42 days of reported COVID-19 cases and
hospitalisations from British Columbia, with assumed sampled fractions and
segment vectors.
"""

import numpy as np
import pandas as pd

EXAMPLE_CASES = np.array([
    0, 0, 1, 3, 1, 8, 0, 6, 5, 0, 7, 7, 18, 9, 22, 38, 53, 45, 40,
    77, 76, 48, 67, 78, 42, 66, 67, 92, 16, 70, 43, 53, 55, 53, 29,
    26, 37, 25, 45, 34, 40, 35,
])

EXAMPLE_HOSP = np.array([
    0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 1, 11, 9, 4,
    7, 19, 23, 13, 11, 3, 13, 21, 14, 17, 29, 21, 19, 19, 10, 6,
    11, 8, 11, 8, 7, 6,
])

# Testing changed on day 14: 10% of positives sampled before, 20% after
SAMP_FRAC_CHANGE_DAY = 13
# Assumed fraction of positive individuals that are hospitalised
HOSP_FRACTION = 0.07


def generate_dataset(forecast_days=0):
    """
    Builds the example inputs for a fit.

    Args:
        forecast_days (int): Extra days appended to the day-indexed vectors
            (sampled fractions and segment ids).

    Returns:
        dict: 'daily_cases' (DataFrame with 'cases' and 'hosp' columns),
              's1' and 's2' (sampled fractions), 'samp_frac_seg' (two
              segments) and 'f_seg' (fixed f0 then two distancing segments).
    """
    n_obs = len(EXAMPLE_CASES)
    n_days = n_obs + forecast_days

    s1 = np.full(n_days, 0.2)
    s1[:SAMP_FRAC_CHANGE_DAY] = 0.1
    s2 = np.full(n_days, HOSP_FRACTION)

    samp_frac_seg = np.full(n_days, 2, dtype=np.int64)
    samp_frac_seg[:SAMP_FRAC_CHANGE_DAY] = 1

    f_seg = np.full(n_days, 2, dtype=np.int64)
    f_seg[:14] = 0
    f_seg[14:34] = 1

    daily_cases = pd.DataFrame({"cases": EXAMPLE_CASES, "hosp": EXAMPLE_HOSP})

    return {
        "daily_cases": daily_cases,
        "s1": s1,
        "s2": s2,
        "samp_frac_seg": samp_frac_seg,
        "f_seg": f_seg,
    }
