"""
Emission models for hidden Markov models.

An emission model answers two questions for every hidden state:
how likely is an observation (in log space), and what does the state
emit when sampled. Both variants expose:

    states                         number of hidden states
    log_likelihoods(observations)  array [T, states] of log P(o_t | state)
    sample(state, rng)             draw one observation from a state
"""

import numpy as np
from scipy import stats

from hmm_utils import InvalidArgumentError, check_stochastic, check_symbols, readonly, to_log


class DiscreteEmissions:
    """
    Lookup table of log emission probabilities, shape [states, symbols].

    Args:
        matrix: Emission matrix B, row i holding P(symbol k | state i).
        logarithm: True if the matrix already holds log-probabilities.
    """

    def __init__(self, matrix, logarithm=False):
        log_b = to_log(matrix, logarithm, name='emissions')

        if log_b.ndim != 2:
            raise InvalidArgumentError("emissions must be a [states, symbols] matrix")
        if log_b.shape[0] <= 0:
            raise InvalidArgumentError("Number of states should be higher than zero.")
        if log_b.shape[1] <= 0:
            raise InvalidArgumentError("Number of symbols should be higher than zero.")
        check_stochastic(log_b, 'emissions')

        self.log_emissions = readonly(log_b)

    @classmethod
    def uniform(cls, states, symbols):
        """Every state emits every symbol with probability 1 / symbols."""
        if symbols is None or symbols <= 0:
            raise InvalidArgumentError("Number of symbols should be higher than zero.")
        if states is None or states <= 0:
            raise InvalidArgumentError("Number of states should be higher than zero.")
        return cls(np.full((states, symbols), np.log(1.0 / symbols)), logarithm=True)

    @property
    def states(self):
        return self.log_emissions.shape[0]

    @property
    def symbols(self):
        return self.log_emissions.shape[1]

    def log_likelihoods(self, observations):
        check_symbols(observations, self.symbols)
        return np.ascontiguousarray(self.log_emissions[:, observations].T)

    def sample(self, state, rng):
        probabilities = np.exp(self.log_emissions[state])
        return int(rng.choice(self.symbols, p=probabilities / probabilities.sum()))

    def to_continuous(self):
        """Converts each row of the table into a scipy discrete distribution."""
        support = np.arange(self.symbols)
        distributions = []
        for row in np.exp(self.log_emissions):
            distributions.append(stats.rv_discrete(values=(support, row / row.sum())))
        return ContinuousEmissions(distributions)


class ContinuousEmissions:
    """
    One scipy.stats distribution per hidden state.

    Any frozen distribution works (norm(0, 1), multivariate_normal(mean, cov),
    poisson(3), ...). Discrete scipy distributions are scored with logpmf,
    everything else with logpdf.

    Args:
        distributions: Sequence of distributions, one per state.
    """

    def __init__(self, distributions):
        if distributions is None:
            raise InvalidArgumentError("emissions must not be None")

        self.distributions = list(distributions)
        if len(self.distributions) == 0:
            raise InvalidArgumentError("Number of states should be higher than zero.")

    @property
    def states(self):
        return len(self.distributions)

    @staticmethod
    def _log_density(distribution, observations):
        base = getattr(distribution, 'dist', distribution)
        if isinstance(base, stats.rv_discrete):
            return distribution.logpmf(observations)
        return distribution.logpdf(observations)

    def log_likelihoods(self, observations):
        T = len(observations)
        columns = []
        for distribution in self.distributions:
            # multivariate densities collapse a single row to a scalar
            column = np.atleast_1d(np.asarray(self._log_density(distribution, observations), dtype=np.float64))
            columns.append(column.reshape(T))
        return np.ascontiguousarray(np.column_stack(columns))

    def sample(self, state, rng):
        return self.distributions[state].rvs(random_state=rng)
