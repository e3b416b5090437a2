# time_index.py

"""
Maps calendar days onto the ODE integration time grid.

The Stan model integrates on a fine, uniformly spaced grid that starts a run-up
period before day 1. Each observed or forecast day is tied to two grid
positions: the last grid point at or before the day ("closing" index) and the
last grid point at or before the start of the reporting-delay window
("window-start" index). Indices here are 0-based.
"""

import numpy as np
from numba import njit

from config import TIME_START

# ==============================================================================
# ACCELERATED HELPER FUNCTIONS (NUMBA JIT)
# ==============================================================================

@njit
def _last_at_or_before(time, value):
    """Largest index with time[i] <= value on an ascending grid, or -1."""
    idx = -1
    for i in range(time.shape[0]):
        if time[i] <= value:
            idx = i
        else:
            break
    return idx


@njit
def _time_day_ids(days, time, days_back):
    """Closing and window-start indices for every day."""
    n = days.shape[0]
    closing = np.empty(n, dtype=np.int64)
    window_start = np.empty(n, dtype=np.int64)
    for d in range(n):
        closing[d] = _last_at_or_before(time, days[d])
        start = _last_at_or_before(time, days[d] - days_back)
        window_start[d] = start if start >= 0 else 0
    return closing, window_start


# ==============================================================================
# PUBLIC INTERFACE
# ==============================================================================

def make_time_grid(last_day, time_increment, start=TIME_START):
    """
    Builds the uniform integration grid from `start` through `last_day`.

    The last point is included whenever it falls on the grid. Points are
    computed as `start + i * time_increment` so the grid does not accumulate
    floating point drift.
    """
    if not time_increment > 0:
        raise ValueError(f"time_increment must be positive, got {time_increment}.")
    n_steps = int(np.floor((last_day - start) / time_increment + 1e-9))
    return start + time_increment * np.arange(n_steps + 1, dtype=np.float64)


def closing_index(day, time):
    """Returns the largest grid index whose time is <= `day`."""
    time = np.asarray(time, dtype=np.float64)
    idx = _last_at_or_before(time, float(day))
    if idx < 0:
        raise ValueError(f"Day {day} precedes the start of the time grid ({time[0]}).")
    return int(idx)


def window_start_index(day, time, days_back):
    """
    Returns the largest grid index whose time is <= `day - days_back`, or the
    first index when the window would open before the grid does.
    """
    time = np.asarray(time, dtype=np.float64)
    idx = _last_at_or_before(time, float(day) - float(days_back))
    return int(idx) if idx >= 0 else 0


def time_day_ids(days, time, days_back):
    """
    Computes the closing and window-start grid indices for a sequence of days.

    Args:
        days (array-like): Calendar days (1-based, ascending).
        time (np.ndarray): The ascending integration grid.
        days_back (int): Length of the reporting-delay window in days.

    Returns:
        tuple[np.ndarray, np.ndarray]: (closing indices, window-start indices).
    """
    days = np.asarray(days, dtype=np.float64)
    time = np.asarray(time, dtype=np.float64)
    if days.size and days.min() < time[0]:
        raise ValueError(f"Day {days.min()} precedes the start of the time grid ({time[0]}).")
    return _time_day_ids(days, time, float(days_back))
