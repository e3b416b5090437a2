# priors.py

"""
Conversions between user-facing prior specifications and the distribution
parameters the Stan model consumes.
"""

from collections import namedtuple

import numpy as np

from errors import InvalidPriorError

BetaParams = namedtuple("BetaParams", ["alpha", "beta"])


def get_beta_params(mu, sd):
    """
    Moment-matches a Beta distribution to a mean and standard deviation.

    Args:
        mu (float): Mean, strictly between 0 and 1.
        sd (float): Standard deviation, strictly positive.

    Returns:
        BetaParams: The shape parameters (alpha, beta).

    Raises:
        InvalidPriorError: If the mean is outside (0, 1) or the SD is so large
            that a shape parameter is not positive.
    """
    mu, sd = float(mu), float(sd)
    if not 0.0 < mu < 1.0:
        raise InvalidPriorError(f"Beta prior mean must be in (0, 1), got {mu}.")
    if not sd > 0.0:
        raise InvalidPriorError(f"Beta prior SD must be positive, got {sd}.")

    var = sd ** 2
    alpha = ((1 - mu) / var - 1 / mu) * mu ** 2
    beta = alpha * (1 / mu - 1)

    if not (alpha > 0 and beta > 0):
        raise InvalidPriorError(
            f"Beta prior with mean {mu} and SD {sd} is improper "
            f"(alpha={alpha:.4g}, beta={beta:.4g}); the SD must satisfy "
            f"sd^2 < mean * (1 - mean)."
        )
    return BetaParams(alpha, beta)


def beta_prior_shapes(name, prior):
    """Converts a (mean, SD) pair to a length-2 array of Beta shapes."""
    mu, sd = _as_pair(name, prior)
    try:
        params = get_beta_params(mu, sd)
    except InvalidPriorError as e:
        raise InvalidPriorError(f"`{name}`: {e}") from e
    return np.array([params.alpha, params.beta])


def check_lognormal_prior(name, prior):
    """Validates a (log mean, log SD) pair and returns it as an array."""
    log_mean, log_sd = _as_pair(name, prior)
    if not np.isfinite(log_mean):
        raise InvalidPriorError(f"`{name}` log mean must be finite, got {log_mean}.")
    if not log_sd > 0:
        raise InvalidPriorError(f"`{name}` log SD must be positive, got {log_sd}.")
    return np.array([log_mean, log_sd])


def _as_pair(name, prior):
    arr = np.asarray(prior, dtype=float).ravel()
    if arr.shape != (2,):
        raise InvalidPriorError(f"`{name}` must have exactly two values, got {arr.size}.")
    return float(arr[0]), float(arr[1])


def get_ur(e, ud):
    """Detection rate of the distancing group implied by the fraction `e` distancing."""
    return (ud - e * ud) / e
