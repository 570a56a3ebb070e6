"""
Markov topologies.

A topology fixes the number of hidden states and produces the starting
transition matrix A and initial state distribution pi of a model:

    transitions, initial = topology.create(logarithm=True)

0: Ergodic  - every state can reach every other state
1: Forward  - left-to-right chain, states are never revisited
2: Custom   - explicit matrices supplied by the caller
"""

import numpy as np

from hmm_utils import InvalidArgumentError, check_stochastic, to_log


class Ergodic:
    """
    Fully connected topology.

    Args:
        states: Number of hidden states.
        random: Draw random transition rows instead of uniform ones.
        seed: Seed (or numpy Generator) used when random is True.
    """

    def __init__(self, states, random=False, seed=None):
        if states is None or states <= 0:
            raise InvalidArgumentError("Number of states should be higher than zero.")
        self.states = int(states)
        self.random = random
        self.seed = seed

    def create(self, logarithm=True):
        n = self.states

        if self.random:
            rng = np.random.default_rng(self.seed)
            transitions = rng.random((n, n))
            transitions /= transitions.sum(axis=1, keepdims=True)
        else:
            transitions = np.full((n, n), 1.0 / n)

        initial = np.full(n, 1.0 / n)

        if logarithm:
            return to_log(transitions), to_log(initial)
        return transitions, initial


class Forward:
    """
    Left-to-right topology.

    State i may only move to states i .. i + deepness - 1 (clipped to the
    last state), and every sequence starts in state 0.

    Args:
        states: Number of hidden states.
        deepness: How many states ahead (including itself) a state can reach.
            Defaults to all remaining states.
        random: Draw random transition weights for the allowed moves.
        seed: Seed (or numpy Generator) used when random is True.
    """

    def __init__(self, states, deepness=None, random=False, seed=None):
        if states is None or states <= 0:
            raise InvalidArgumentError("Number of states should be higher than zero.")
        if deepness is None:
            deepness = states
        if deepness <= 0:
            raise InvalidArgumentError("Deepness should be higher than zero.")

        self.states = int(states)
        self.deepness = int(deepness)
        self.random = random
        self.seed = seed

    def create(self, logarithm=True):
        n = self.states
        rng = np.random.default_rng(self.seed) if self.random else None

        transitions = np.zeros((n, n))
        for i in range(n):
            end = min(n, i + self.deepness)
            if rng is not None:
                weights = rng.random(end - i)
                transitions[i, i:end] = weights / weights.sum()
            else:
                transitions[i, i:end] = 1.0 / (end - i)

        initial = np.zeros(n)
        initial[0] = 1.0

        if logarithm:
            return to_log(transitions), to_log(initial)
        return transitions, initial


class Custom:
    """
    Topology built from explicit transition and initial probabilities.

    Args:
        transitions: Square matrix A, row i holding P(next = j | current = i).
        initial: Vector pi of initial state probabilities.
        logarithm: True if both are given as log-probabilities.
    """

    def __init__(self, transitions, initial, logarithm=False):
        log_transitions = to_log(transitions, logarithm, name='transitions')
        log_initial = to_log(initial, logarithm, name='initial')

        if log_transitions.ndim != 2 or log_transitions.shape[0] != log_transitions.shape[1]:
            raise InvalidArgumentError("transitions must be a square matrix")
        if log_transitions.shape[0] == 0:
            raise InvalidArgumentError("Number of states should be higher than zero.")
        if log_initial.shape != (log_transitions.shape[0],):
            raise InvalidArgumentError(
                "initial must have one entry per state in the transition matrix")

        check_stochastic(log_transitions, 'transitions')
        check_stochastic(log_initial, 'initial')

        self.states = log_transitions.shape[0]
        self._log_transitions = log_transitions
        self._log_initial = log_initial

    def create(self, logarithm=True):
        if logarithm:
            return self._log_transitions.copy(), self._log_initial.copy()
        return np.exp(self._log_transitions), np.exp(self._log_initial)
