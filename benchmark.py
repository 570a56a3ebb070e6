import argparse
import time

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import numpy as np
from tqdm import tqdm

from HMM import HiddenMarkovModel, load_model, save_model

N_SEQUENCES = 200
SEQUENCE_LENGTH = 50
SEED = 0
PLOT_PATH = 'benchmark_likelihoods.png'

# Two-state example model (rainy / sunny style weather chain)
EXAMPLE_TRANSITIONS = [[0.7, 0.3],
                       [0.4, 0.6]]
EXAMPLE_EMISSIONS = [[0.1, 0.4, 0.5],
                     [0.6, 0.3, 0.1]]
EXAMPLE_INITIAL = [0.6, 0.4]


def build_example_model():
    return HiddenMarkovModel.from_matrices(EXAMPLE_TRANSITIONS, EXAMPLE_EMISSIONS, EXAMPLE_INITIAL)


def calculate_path_accuracy(predicted_path, true_path):
    """
    Fraction of time steps where the decoded state equals the sampled state.
    """
    predicted_path = np.asarray(predicted_path)
    true_path = np.asarray(true_path)
    if true_path.size == 0:
        return 0.0
    return float(np.mean(predicted_path == true_path))


def run_benchmark(model, n_sequences=N_SEQUENCES, length=SEQUENCE_LENGTH, seed=SEED):
    """
    Samples sequences from the model, then decodes and evaluates each one.

    Returns:
        results: dict of per-sequence arrays (forward and Viterbi
            log-likelihoods, path accuracy) and total timings in seconds.
    """
    rng = np.random.default_rng(seed)

    forward = np.zeros(n_sequences)
    viterbi = np.zeros(n_sequences)
    accuracy = np.zeros(n_sequences)
    decode_time = 0.0
    evaluate_time = 0.0

    for i in tqdm(range(n_sequences), desc="Benchmarking", unit="seq"):
        observations, true_path, _ = model.generate(length, seed=rng)

        start = time.perf_counter()
        path, viterbi[i] = model.decode(observations)
        decode_time += time.perf_counter() - start

        start = time.perf_counter()
        forward[i] = model.evaluate(observations)
        evaluate_time += time.perf_counter() - start

        accuracy[i] = calculate_path_accuracy(path, true_path)

    return {
        'forward': forward,
        'viterbi': viterbi,
        'accuracy': accuracy,
        'decode_time': decode_time,
        'evaluate_time': evaluate_time,
    }


def plot_results(results, plot_path=PLOT_PATH):
    fig, axes = plt.subplots(1, 2, figsize=(10, 4))
    axes[0].hist(results['forward'], bins=30, color='steelblue', alpha=0.7, label='forward')
    axes[0].hist(results['viterbi'], bins=30, color='darkorange', alpha=0.7, label='viterbi')
    axes[0].set_title('Log-likelihood')
    axes[0].legend()

    axes[1].hist(results['accuracy'], bins=20, range=(0, 1), color='seagreen')
    axes[1].set_title('Viterbi path accuracy')

    fig.suptitle('Decoding sampled sequences')
    plt.tight_layout()
    plt.savefig(plot_path, dpi=200)
    plt.close(fig)
    print(f"Saved benchmark plot to {plot_path}")


def main(argv=None):
    parser = argparse.ArgumentParser(description='Sample, decode and evaluate sequences from a hidden Markov model.')
    parser.add_argument('--model', default=None, help='Path to a .npz model written by save_model (default: example model)')
    parser.add_argument('--sequences', type=int, default=N_SEQUENCES, help='Number of sequences to sample')
    parser.add_argument('--length', type=int, default=SEQUENCE_LENGTH, help='Length of each sampled sequence')
    parser.add_argument('--seed', type=int, default=SEED, help='Random seed')
    parser.add_argument('--plot', default=PLOT_PATH, help='Where to save the histogram plot')
    parser.add_argument('--save_model', default=None, help='Optionally save the benchmarked model to this .npz path')
    args = parser.parse_args(argv)

    model = load_model(args.model) if args.model else build_example_model()
    print(f"Model: {model.states} states, {model.symbols} symbols")

    results = run_benchmark(model, args.sequences, args.length, args.seed)

    # The best single path can never beat the total over all paths
    violations = int(np.sum(results['viterbi'] > results['forward'] + 1e-9))

    print("\n--- Benchmark summary ---")
    print(f"Sequences:           {args.sequences} x {args.length}")
    print(f"Mean forward LL:     {results['forward'].mean():.4f}")
    print(f"Mean Viterbi LL:     {results['viterbi'].mean():.4f}")
    print(f"Mean path accuracy:  {results['accuracy'].mean():.4f}")
    print(f"Decode time:         {results['decode_time']:.4f}s")
    print(f"Evaluate time:       {results['evaluate_time']:.4f}s")
    print(f"Viterbi > forward:   {violations}")

    if args.save_model:
        save_model(args.save_model, model)
    plot_results(results, args.plot)

    return results


if __name__ == '__main__':
    main()
