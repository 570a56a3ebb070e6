import numpy as np
from numba import njit

# Maximum deviation from 1 allowed when checking that a row is a distribution.
STOCHASTIC_TOLERANCE = 1e-6


class InvalidArgumentError(ValueError):
    """Raised when a required argument is missing, malformed or has the wrong shape."""


@njit
def log_sum(lna, lnc):
    """
    Computes log(exp(lna) + exp(lnc)) without leaving log space.

    Negative infinity stands for probability 0, so it is the identity
    element: log_sum(a, -inf) == a and log_sum(-inf, -inf) == -inf.
    """
    if lna == -np.inf:
        return lnc
    if lnc == -np.inf:
        return lna

    if lna > lnc:
        return lna + np.log1p(np.exp(lnc - lna))
    return lnc + np.log1p(np.exp(lna - lnc))


@njit
def log_sum_all(values):
    """
    Reduces a 1-D array of log-probabilities with log_sum.
    An empty array gives -inf.
    """
    total = -np.inf
    for i in range(values.shape[0]):
        total = log_sum(total, values[i])
    return total


def to_log(matrix, logarithm=False, name='matrix'):
    """
    Returns a float64 copy of the matrix in log space.

    Args:
        matrix: Array-like of probabilities (or log-probabilities).
        logarithm: True if the values are already log-probabilities.
        name: Argument name used in error messages.
    """
    if matrix is None:
        raise InvalidArgumentError(f"{name} must not be None")

    values = np.array(matrix, dtype=np.float64)
    if logarithm:
        return values

    if np.any(values < 0):
        raise InvalidArgumentError(f"{name} contains negative probabilities")

    # log(0) is -inf on purpose: it is how zero probability is stored
    with np.errstate(divide='ignore'):
        return np.log(values)


def check_stochastic(log_matrix, name='matrix'):
    """
    Checks that every row (or the vector itself) sums to 1 once exponentiated.
    """
    if np.any(np.isnan(log_matrix)):
        raise InvalidArgumentError(f"{name} contains NaN values")

    sums = np.exp(log_matrix).sum(axis=-1)
    if not np.all(np.abs(sums - 1.0) <= STOCHASTIC_TOLERANCE):
        raise InvalidArgumentError(f"rows of {name} must sum to 1, got {np.round(sums, 6).tolist()}")


def readonly(array):
    """Marks an array as read-only and returns it."""
    array.flags.writeable = False
    return array


def as_sequence(values, name='observations'):
    """
    Converts an observation sequence (or a state path) to a numpy array.
    Integer-valued inputs become int64 so they can index the parameter tables.
    """
    if values is None:
        raise InvalidArgumentError(f"{name} must not be None")

    array = np.asarray(values)
    if array.size == 0:
        return np.zeros(0, dtype=np.int64)
    if array.dtype.kind in 'iu':
        return array.astype(np.int64)
    return array


def check_symbols(observations, symbols, name='observations'):
    """Ensures every entry is a valid symbol index in [0, symbols)."""
    if observations.dtype.kind not in 'iu':
        raise InvalidArgumentError(f"{name} must contain integer symbol indices")
    if observations.ndim != 1:
        raise InvalidArgumentError(f"{name} must be one-dimensional")
    if observations.size and (observations.min() < 0 or observations.max() >= symbols):
        raise InvalidArgumentError(f"{name} must contain symbols in [0, {symbols})")


def as_count(value, name):
    """Converts a non-negative whole number (int or integral float) to int."""
    if isinstance(value, (bool, np.bool_)) or not isinstance(value, (int, np.integer, float, np.floating)):
        raise InvalidArgumentError(f"{name} must be a non-negative number")
    if not np.isfinite(value) or value < 0 or int(value) != value:
        raise InvalidArgumentError(f"{name} must be a non-negative number")
    return int(value)
