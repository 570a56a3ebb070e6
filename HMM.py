import os
import threading
from collections import namedtuple

import numpy as np
from numba import njit

from emissions import ContinuousEmissions, DiscreteEmissions
from forward_backward import log_forward, propagate, state_posteriors
from hmm_utils import (InvalidArgumentError, as_count, as_sequence, check_stochastic, log_sum, log_sum_all,
                       readonly, to_log)
from topology import Custom, Ergodic

# Immutable view of the model parameters. Inference reads one snapshot per call.
ModelParameters = namedtuple('ModelParameters', ['log_transitions', 'log_initial', 'emissions'])


@njit
def _viterbi(log_transitions, log_initial, log_b):
    T, n = log_b.shape
    score = np.empty((T, n))
    back = np.zeros((T, n), dtype=np.int64)

    # Base
    for i in range(n):
        score[0, i] = log_initial[i] + log_b[0, i]

    # Induction, ties keep the lowest predecessor index
    for t in range(1, T):
        for j in range(n):
            best_prev = 0
            best_weight = score[t - 1, 0] + log_transitions[0, j]
            for i in range(1, n):
                weight = score[t - 1, i] + log_transitions[i, j]
                if weight > best_weight:
                    best_prev = i
                    best_weight = weight
            score[t, j] = best_weight + log_b[t, j]
            back[t, j] = best_prev

    # Termination
    last = 0
    best = score[T - 1, 0]
    for i in range(1, n):
        if score[T - 1, i] > best:
            last = i
            best = score[T - 1, i]

    # Backtrack
    path = np.empty(T, dtype=np.int64)
    path[T - 1] = last
    for t in range(T - 2, -1, -1):
        path[t] = back[t + 1, path[t + 1]]

    return path, best


@njit
def _path_log_likelihood(log_transitions, log_initial, log_b, path):
    log_likelihood = log_initial[path[0]] + log_b[0, path[0]]
    for t in range(1, path.shape[0]):
        log_likelihood = log_sum(log_likelihood,
                                 log_transitions[path[t - 1], path[t]] + log_b[t, path[t]])
    return log_likelihood


@njit
def _predict(log_transitions, log_emissions, start, transition_first, steps, log_likelihood):
    n, symbols = log_emissions.shape
    prediction = np.zeros(steps, dtype=np.int64)
    log_likelihoods = np.empty((steps, symbols))
    row = start

    for t in range(steps):
        if t == 0 and not transition_first:
            prior = row
        else:
            prior = propagate(row, log_transitions)

        # State-marginalized weight of every candidate symbol
        weights = np.empty(symbols)
        for s in range(symbols):
            total = -np.inf
            for i in range(n):
                total = log_sum(total, prior[i] + log_emissions[i, s])
            weights[s] = total

        norm = log_sum_all(weights)
        if norm != -np.inf:
            for s in range(symbols):
                weights[s] -= norm

        best = 0
        for s in range(1, symbols):
            if weights[s] > weights[best]:
                best = s

        prediction[t] = best
        log_likelihoods[t] = weights
        log_likelihood = weights[best]

        # Continue from the chosen symbol's per-state distribution
        row = prior + log_emissions[:, best]

    return prediction, log_likelihoods, log_likelihood


class HiddenMarkovModel:
    """
    Hidden Markov model M = (A, B, pi), stored in log space.

    Args:
        topology: Topology object (Ergodic, Forward, Custom) or a number of
            states, which builds an Ergodic topology.
        emissions: One of
            - an emission matrix B [states, symbols],
            - a number of symbols (uniform emissions),
            - a DiscreteEmissions / ContinuousEmissions object.
        logarithm: True if an emission matrix is given as log-probabilities.
    """

    def __init__(self, topology, emissions=None, logarithm=False):
        if topology is None:
            raise InvalidArgumentError("topology must not be None")
        if isinstance(topology, (int, np.integer)):
            topology = Ergodic(topology)
        if emissions is None:
            raise InvalidArgumentError("emissions must not be None")

        if isinstance(emissions, (int, np.integer)):
            emissions = DiscreteEmissions.uniform(topology.states, emissions)
        elif not isinstance(emissions, (DiscreteEmissions, ContinuousEmissions)):
            emissions = DiscreteEmissions(emissions, logarithm)

        if emissions.states != topology.states:
            raise InvalidArgumentError(
                "The emission matrix should have the same number of rows as the number of states in the model.")

        log_transitions, log_initial = topology.create(logarithm=True)

        self.topology = topology
        self.version = 0
        self._lock = threading.Lock()
        self._params = self._snapshot(log_transitions, log_initial, emissions)

    @classmethod
    def from_matrices(cls, transitions, emissions, initial, logarithm=False):
        """
        Builds a model from raw A, B and pi.

        Args:
            transitions: Transition matrix A [states, states].
            emissions: Emission matrix B [states, symbols].
            initial: Initial state probabilities pi [states].
            logarithm: True if all three are given as log-probabilities.
        """
        if emissions is None:
            raise InvalidArgumentError("emissions must not be None")
        return cls(Custom(transitions, initial, logarithm), emissions, logarithm)

    @staticmethod
    def _snapshot(log_transitions, log_initial, emissions):
        log_transitions = np.array(log_transitions, dtype=np.float64)
        log_initial = np.array(log_initial, dtype=np.float64)
        n = emissions.states

        if log_transitions.shape != (n, n):
            raise InvalidArgumentError(f"transitions must have shape ({n}, {n})")
        if log_initial.shape != (n,):
            raise InvalidArgumentError(f"initial must have shape ({n},)")
        check_stochastic(log_transitions, 'transitions')
        check_stochastic(log_initial, 'initial')

        return ModelParameters(readonly(log_transitions), readonly(log_initial), emissions)

    # ------------------------------------------------------------------
    # Parameters

    @property
    def parameters(self):
        return self._params

    @property
    def states(self):
        return self._params.log_transitions.shape[0]

    @property
    def symbols(self):
        """Alphabet size, or None for continuous emissions."""
        emissions = self._params.emissions
        return emissions.symbols if isinstance(emissions, DiscreteEmissions) else None

    @property
    def log_transitions(self):
        return self._params.log_transitions

    @property
    def log_initial(self):
        return self._params.log_initial

    @property
    def emissions(self):
        return self._params.emissions

    @property
    def log_emissions(self):
        emissions = self._params.emissions
        if not isinstance(emissions, DiscreteEmissions):
            raise InvalidArgumentError("continuous emissions have no emission matrix")
        return emissions.log_emissions

    def replace_parameters(self, transitions=None, emissions=None, initial=None, logarithm=True):
        """
        Swaps in new parameters as a whole. Anything left as None is kept.

        The number of states (and symbols, for discrete emissions) can not
        change. Calls already running keep the snapshot they started with.
        """
        with self._lock:
            current = self._params

            if transitions is None:
                log_transitions = current.log_transitions
            else:
                log_transitions = to_log(transitions, logarithm, name='transitions')

            if initial is None:
                log_initial = current.log_initial
            else:
                log_initial = to_log(initial, logarithm, name='initial')

            if emissions is None:
                emissions = current.emissions
            elif not isinstance(emissions, (DiscreteEmissions, ContinuousEmissions)):
                emissions = DiscreteEmissions(emissions, logarithm)

            if emissions.states != self.states:
                raise InvalidArgumentError("the number of states of a model can not change")
            if isinstance(current.emissions, DiscreteEmissions) and (
                    not isinstance(emissions, DiscreteEmissions) or emissions.symbols != current.emissions.symbols):
                raise InvalidArgumentError("the number of symbols of a model can not change")

            self._params = self._snapshot(log_transitions, log_initial, emissions)
            self.version += 1

    # ------------------------------------------------------------------
    # Inference

    def decode(self, observations):
        """
        Viterbi decoding: the most likely state path for the observations.

        Returns:
            path: int array of length T.
            log_likelihood: log-likelihood along that path (-inf when T == 0).
        """
        params = self._params
        observations = as_sequence(observations)

        if len(observations) == 0:
            return np.zeros(0, dtype=np.int64), -np.inf

        log_b = params.emissions.log_likelihoods(observations)
        path, log_likelihood = _viterbi(params.log_transitions, params.log_initial, log_b)
        return path, float(log_likelihood)

    def evaluate(self, observations):
        """
        Log-likelihood that the model generated the observations (forward algorithm).
        """
        params = self._params
        observations = as_sequence(observations)

        if len(observations) == 0:
            return -np.inf

        log_b = params.emissions.log_likelihoods(observations)
        _, log_likelihood = log_forward(params.log_transitions, params.log_initial, log_b)
        return log_likelihood

    def evaluate_path(self, observations, path):
        """
        Log-likelihood of the observations along a given state path.

        Steps are combined with log_sum rather than plain addition, so the
        result is log(sum of step probabilities), not log of their product.
        """
        params = self._params
        observations = as_sequence(observations)
        path = as_sequence(path, name='path')

        if len(path) != len(observations):
            raise InvalidArgumentError("path and observations must have the same length")
        if len(observations) == 0:
            return -np.inf
        if path.dtype.kind not in 'iu' or path.min() < 0 or path.max() >= self.states:
            raise InvalidArgumentError(f"path must contain states in [0, {self.states})")

        log_b = params.emissions.log_likelihoods(observations)
        return float(_path_log_likelihood(params.log_transitions, params.log_initial, log_b, path))

    def posterior(self, observations):
        """
        Posterior state probabilities for each time step.

        Returns:
            posteriors: [T, states] array of P(s_t = i | observations).
            log_likelihood: log-likelihood of the observations.
        """
        params = self._params
        observations = as_sequence(observations)
        if len(observations) == 0:
            return np.zeros((0, self.states)), -np.inf

        log_b = params.emissions.log_likelihoods(observations)
        return state_posteriors(params.log_transitions, params.log_initial, log_b)

    def predict(self, observations, steps):
        """
        Predicts the symbols following an observation sequence.

        Args:
            observations: Observed symbol sequence (may be empty).
            steps: Number of future symbols to predict.

        Returns:
            prediction: int array of length steps.
            log_likelihoods: [steps, symbols] normalized log-probabilities of
                every symbol at each predicted step.
            log_likelihood: log-probability of the last predicted symbol.
        """
        params = self._params
        emissions = params.emissions
        if not isinstance(emissions, DiscreteEmissions):
            raise InvalidArgumentError("prediction requires discrete emissions")
        steps = as_count(steps, 'steps')

        observations = as_sequence(observations)

        if len(observations) == 0:
            start = params.log_initial
            transition_first = False
            log_likelihood = -np.inf
        else:
            log_b = emissions.log_likelihoods(observations)
            lattice, log_likelihood = log_forward(params.log_transitions, params.log_initial, log_b)
            if log_likelihood == -np.inf:
                raise InvalidArgumentError("observation sequence has zero probability under the model")
            start = lattice[-1]
            transition_first = True

        prediction, log_likelihoods, log_likelihood = _predict(
            params.log_transitions, emissions.log_emissions, np.array(start, dtype=np.float64),
            transition_first, steps, log_likelihood)
        return prediction, log_likelihoods, float(log_likelihood)

    def predict_next(self, observations):
        """
        Predicts the single next symbol.

        Returns:
            symbol: the most likely next symbol.
            log_probabilities: normalized log-probabilities of every symbol.
        """
        prediction, log_likelihoods, _ = self.predict(observations, 1)
        return int(prediction[0]), log_likelihoods[0]

    def generate(self, samples, seed=None):
        """
        Samples a sequence from the model.

        Args:
            samples: Length of the sequence.
            seed: Seed or numpy Generator used for the categorical draws.

        Returns:
            observations: the sampled sequence.
            path: the hidden states that produced it.
            log_likelihood: the step log-probabilities combined with log_sum
                (-inf when samples == 0).
        """
        samples = as_count(samples, 'samples')

        rng = seed if isinstance(seed, np.random.Generator) else np.random.default_rng(seed)
        params = self._params
        emissions = params.emissions

        observations = []
        path = np.zeros(samples, dtype=np.int64)
        log_likelihood = -np.inf
        weights = params.log_initial

        for t in range(samples):
            probabilities = np.exp(weights)
            state = int(rng.choice(self.states, p=probabilities / probabilities.sum()))
            symbol = emissions.sample(state, rng)

            observations.append(symbol)
            path[t] = state

            emission = emissions.log_likelihoods(np.asarray([symbol]))[0, state]
            log_likelihood = log_sum(log_likelihood, weights[state] + emission)

            weights = params.log_transitions[state]

        if samples == 0:
            return np.zeros(0, dtype=np.int64), path, log_likelihood
        return np.asarray(observations), path, float(log_likelihood)

    def to_continuous(self):
        """Returns an equivalent model whose emissions are scipy distributions."""
        params = self._params
        emissions = params.emissions
        if isinstance(emissions, DiscreteEmissions):
            emissions = emissions.to_continuous()

        topology = Custom(params.log_transitions, params.log_initial, logarithm=True)
        return HiddenMarkovModel(topology, emissions)


def _npz_path(path):
    # np.savez appends the suffix itself when it is missing
    path = os.fspath(path)
    return path if path.endswith('.npz') else f"{path}.npz"


def save_model(path, model):
    """
    Saves the (A, B, pi) triple of a discrete model in log space (.npz).
    """
    path = _npz_path(path)
    params = model.parameters
    np.savez(path,
             log_transitions=params.log_transitions,
             log_emissions=model.log_emissions,
             log_initial=params.log_initial)
    print(f"Saved model with {model.states} states and {model.symbols} symbols to {path}")


def load_model(path):
    """
    Loads a discrete model written by save_model.
    """
    path = _npz_path(path)
    if not os.path.exists(path):
        raise FileNotFoundError(f"Model file not found at {path}")

    with np.load(path) as payload:
        model = HiddenMarkovModel.from_matrices(payload['log_transitions'],
                                                payload['log_emissions'],
                                                payload['log_initial'],
                                                logarithm=True)
    print(f"Loaded model with {model.states} states and {model.symbols} symbols from {path}")
    return model
