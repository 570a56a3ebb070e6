import numpy as np
import pytest

from HMM import HiddenMarkovModel
from hmm_utils import InvalidArgumentError
from markov_classifier import MarkovSequenceClassifier


def make_models():
    transitions = [[0.9, 0.1], [0.1, 0.9]]
    initial = [0.5, 0.5]
    zeros = HiddenMarkovModel.from_matrices(transitions, [[0.8, 0.1, 0.1], [0.7, 0.2, 0.1]], initial)
    ones = HiddenMarkovModel.from_matrices(transitions, [[0.1, 0.8, 0.1], [0.1, 0.7, 0.2]], initial)
    return [zeros, ones]


def test_compute_picks_most_likely_class():
    classifier = MarkovSequenceClassifier(make_models())
    label, responses = classifier.compute([0, 0, 2, 0])
    assert label == 0
    assert responses.shape == (2,)
    assert responses[0] == pytest.approx(np.log(0.5) + classifier[0].evaluate([0, 0, 2, 0]))

    label, _ = classifier.compute([1, 1, 1])
    assert label == 1


def test_priors_shift_the_decision():
    models = make_models()
    sequence = [0, 1]
    neutral = MarkovSequenceClassifier(models).compute(sequence)[0]
    biased = MarkovSequenceClassifier(models, priors=[0.001, 0.999]).compute(sequence)[0]
    assert biased == 1
    assert neutral in (0, 1)


def test_class_probabilities_sum_to_one():
    classifier = MarkovSequenceClassifier(make_models())
    probabilities = classifier.class_probabilities([0, 1, 1, 2])
    assert probabilities.sum() == pytest.approx(1.0)
    assert np.all(probabilities > 0)


def test_classify_batch():
    classifier = MarkovSequenceClassifier(make_models())
    labels, responses = classifier.classify([[0, 0, 0], [1, 1], [0, 2, 0, 0]])
    assert labels.tolist() == [0, 1, 0]
    assert responses.shape == (3, 2)


def test_classify_generated_sequences():
    models = make_models()
    classifier = MarkovSequenceClassifier(models)
    rng = np.random.default_rng(0)

    sequences, expected = [], []
    for label, model in enumerate(models):
        for _ in range(10):
            sequences.append(model.generate(30, seed=rng)[0])
            expected.append(label)

    labels, _ = classifier.classify(sequences)
    assert np.mean(labels == np.array(expected)) >= 0.9


def test_invalid_classifiers():
    models = make_models()
    with pytest.raises(InvalidArgumentError):
        MarkovSequenceClassifier([])
    with pytest.raises(InvalidArgumentError):
        MarkovSequenceClassifier(models, priors=[0.2, 0.2])
    with pytest.raises(InvalidArgumentError):
        MarkovSequenceClassifier(models, priors=[1.0])
    with pytest.raises(InvalidArgumentError):
        MarkovSequenceClassifier([models[0], HiddenMarkovModel(2, 4)])
