"""
Online (running) versions of the forward algorithm and of sequence
classification. Observations arrive one at a time; the forward row is
extended in place instead of recomputing the whole lattice.
"""

import numpy as np

from forward_backward import propagate
from hmm_utils import InvalidArgumentError, as_sequence, log_sum_all


class RunningMarkovStatistics:
    """
    Tracks the log forward probability of a growing observation sequence.

    The model parameters are captured when the statistics are created or
    cleared, so a trainer replacing them does not affect a running sequence.
    """

    def __init__(self, model):
        if model is None:
            raise InvalidArgumentError("model must not be None")
        self.model = model
        self.clear()

    def clear(self):
        """Forgets every registered observation."""
        self._params = self.model.parameters
        self.current = None
        self.log_forward = -np.inf
        self.length = 0

    def _step(self, observation):
        params = self._params
        log_b = params.emissions.log_likelihoods(as_sequence([observation]))[0]

        if self.current is None:
            row = params.log_initial + log_b
        else:
            row = propagate(self.current, params.log_transitions) + log_b

        return row, float(log_sum_all(row))

    def push(self, observation):
        """Registers the next observation."""
        self.current, self.log_forward = self._step(observation)
        self.length += 1

    def peek(self, observation):
        """Returns the log forward probability if observation were registered next."""
        _, log_forward = self._step(observation)
        return log_forward


class RunningMarkovClassifier:
    """
    Running counterpart of MarkovSequenceClassifier.

    After each push, classification holds the most likely class for the
    sequence so far and responses the per-class scores (log prior plus
    running log-likelihood).
    """

    def __init__(self, classifier):
        if classifier is None:
            raise InvalidArgumentError("classifier must not be None")

        self.classifier = classifier
        self.models = [RunningMarkovStatistics(model) for model in classifier.models]
        self.responses = np.zeros(classifier.classes)
        self.classification = -1

    def push(self, observation):
        self.classification = -1
        best = -np.inf

        for i, statistics in enumerate(self.models):
            statistics.push(observation)
            self.responses[i] = self.classifier.log_priors[i] + statistics.log_forward

            if self.responses[i] > best:
                best = self.responses[i]
                self.classification = i

    def peek(self, observation):
        """
        Checks the classification after a new observation without registering it.

        Returns:
            label: class that would be chosen (-1 if every class rules it out).
            log_likelihood: its score.
        """
        label = -1
        best = -np.inf

        for i, statistics in enumerate(self.models):
            response = self.classifier.log_priors[i] + statistics.peek(observation)
            if response > best:
                best = response
                label = i

        return label, best

    def clear(self):
        for statistics in self.models:
            statistics.clear()

        self.responses[:] = 0
        self.classification = -1
