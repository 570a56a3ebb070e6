"""
Forward and backward passes over an HMM in log space.

All functions take the model parameters as plain arrays:

    log_transitions  [states, states]  log A
    log_initial      [states]          log pi
    log_b            [T, states]       log P(o_t | state), see emissions.py

Lattices are returned with shape [T, states].
"""

import numpy as np
from numba import njit

from hmm_utils import InvalidArgumentError, log_sum


@njit
def propagate(row, log_transitions):
    """
    Moves a log state distribution one step along the transitions:
    out[j] = logsum_i(row[i] + log_transitions[i, j]).
    """
    n = row.shape[0]
    out = np.empty(n)
    for j in range(n):
        total = -np.inf
        for i in range(n):
            total = log_sum(total, row[i] + log_transitions[i, j])
        out[j] = total
    return out


@njit
def _log_forward(log_transitions, log_initial, log_b):
    T, n = log_b.shape
    lattice = np.empty((T, n))

    # Base
    for i in range(n):
        lattice[0, i] = log_initial[i] + log_b[0, i]

    # Induction
    for t in range(1, T):
        prior = propagate(lattice[t - 1], log_transitions)
        for j in range(n):
            lattice[t, j] = prior[j] + log_b[t, j]

    log_likelihood = -np.inf
    for i in range(n):
        log_likelihood = log_sum(log_likelihood, lattice[T - 1, i])

    return lattice, log_likelihood


@njit
def _log_backward(log_transitions, log_b):
    T, n = log_b.shape
    lattice = np.zeros((T, n))

    for t in range(T - 2, -1, -1):
        for i in range(n):
            total = -np.inf
            for j in range(n):
                total = log_sum(total, log_transitions[i, j] + log_b[t + 1, j] + lattice[t + 1, j])
            lattice[t, i] = total

    return lattice


def log_forward(log_transitions, log_initial, log_b):
    """
    Forward algorithm.

    Returns:
        lattice: [T, states] log forward probabilities, log P(o_1..o_t, s_t = i).
        log_likelihood: log P(o_1..o_T), -inf for an empty sequence.
    """
    if log_b.shape[0] == 0:
        return np.zeros((0, log_initial.shape[0])), -np.inf

    lattice, log_likelihood = _log_forward(log_transitions, log_initial, log_b)
    return lattice, float(log_likelihood)


def log_backward(log_transitions, log_b):
    """
    Backward algorithm.

    Returns:
        lattice: [T, states] log backward probabilities, log P(o_t+1..o_T | s_t = i).
    """
    if log_b.shape[0] == 0:
        return np.zeros((0, log_transitions.shape[0]))
    return _log_backward(log_transitions, log_b)


def state_posteriors(log_transitions, log_initial, log_b):
    """
    Posterior state probabilities P(s_t = i | o_1..o_T).

    Returns:
        posteriors: [T, states] array, each row sums to 1.
        log_likelihood: log P(o_1..o_T).
    """
    forward, log_likelihood = log_forward(log_transitions, log_initial, log_b)
    if log_b.shape[0] == 0:
        return forward, log_likelihood
    if log_likelihood == -np.inf:
        raise InvalidArgumentError("observation sequence has zero probability under the model")

    backward = log_backward(log_transitions, log_b)
    return np.exp(forward + backward - log_likelihood), log_likelihood
