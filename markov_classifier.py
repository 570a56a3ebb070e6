import numpy as np
from scipy.special import logsumexp
from tqdm import tqdm

from hmm_utils import InvalidArgumentError, STOCHASTIC_TOLERANCE


class MarkovSequenceClassifier:
    """
    Classifies sequences by asking one hidden Markov model per class how
    likely each sequence is.

    Args:
        models: List of HiddenMarkovModel, one per class.
        priors: Class prior probabilities. Defaults to uniform.
    """

    def __init__(self, models, priors=None):
        if models is None or len(models) == 0:
            raise InvalidArgumentError("models must contain at least one model")

        self.models = list(models)
        symbols = {model.symbols for model in self.models}
        if len(symbols) != 1:
            raise InvalidArgumentError("all models must share the same symbol alphabet")

        if priors is None:
            priors = np.full(len(self.models), 1.0 / len(self.models))
        priors = np.asarray(priors, dtype=np.float64)
        if priors.shape != (len(self.models),):
            raise InvalidArgumentError("priors must have one entry per model")
        if np.any(priors < 0) or abs(priors.sum() - 1.0) > STOCHASTIC_TOLERANCE:
            raise InvalidArgumentError("priors must be a probability distribution")

        self.priors = priors
        with np.errstate(divide='ignore'):
            self.log_priors = np.log(priors)

    @property
    def classes(self):
        return len(self.models)

    def __getitem__(self, label):
        return self.models[label]

    def compute(self, sequence):
        """
        Scores a sequence against every class.

        Returns:
            label: The most likely class (lowest index on ties).
            responses: log prior + log-likelihood for each class.
        """
        responses = np.array([log_prior + model.evaluate(sequence)
                              for log_prior, model in zip(self.log_priors, self.models)])
        return int(np.argmax(responses)), responses

    def class_probabilities(self, sequence):
        """Posterior probability of each class given the sequence."""
        _, responses = self.compute(sequence)
        norm = logsumexp(responses)
        if norm == -np.inf:
            raise InvalidArgumentError("sequence has zero probability under every model")
        return np.exp(responses - norm)

    def classify(self, sequences):
        """
        Classifies many sequences.

        Returns:
            labels: int array with one label per sequence.
            responses: [n_sequences, classes] array of class scores.
        """
        labels = np.zeros(len(sequences), dtype=np.int64)
        responses = np.zeros((len(sequences), self.classes))

        for i, sequence in enumerate(tqdm(sequences, desc="Classifying", unit="seq")):
            labels[i], responses[i] = self.compute(sequence)

        return labels, responses
