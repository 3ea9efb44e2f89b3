# docquery/utils/display.py
"""
DocQuery - Bayes Point Machines for Ranked Document Records

Module: display.py

Console output for the command-line runner: the start banner, the run
settings and the evaluation summary of each machine.
"""

from typing import Dict


def display_banner():
    """Print the start-up banner."""
    print("=" * 60)
    print("=" * 15 + " DocQuery Bayes Point Machines " + "=" * 14)
    print("Binary, multi-class and shared-variables classifiers")
    print("=" * 60)


def display_settings(config: Dict):
    """
    Print the effective run settings.

    Args:
        config: Merged configuration dictionary
    """
    selection = config.get("feature_selection") or []
    print("\n=== Settings ===")
    print(f"Features: {config['num_features']}")
    print(f"Selected features: {':'.join(str(f) for f in selection) if selection else 'all'}")
    print(f"Classes: {config['num_classes']}")
    print(f"Noise: {config['noise']}")
    print(f"Chunk size: {config['chunk_size']}")
    print(f"Shared chunks: {config['num_chunks']}")
    print(f"Shared passes: up to {config['shared_passes']} (tolerance {config['shared_tolerance']})")


def display_evaluation(results: Dict[str, Dict[str, float]]):
    """
    Print one row of metrics per machine.

    Args:
        results: Machine name to metric dictionary
    """
    print("\n=== Evaluation ===")
    print(f"{'Machine':<20}{'Accuracy':>10}{'Precision':>11}{'Recall':>9}{'F1':>9}")
    for name, metrics in results.items():
        print(f"{name:<20}{metrics['accuracy']:>10.4f}{metrics['precision']:>11.4f}"
              f"{metrics['recall']:>9.4f}{metrics['f1']:>9.4f}")
