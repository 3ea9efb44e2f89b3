# docquery/bpm/metrics.py
"""
DocQuery - Bayes Point Machines for Ranked Document Records

Module: metrics.py

Accuracy and macro-averaged precision, recall and F1 for predicted class
distributions against known labels, read off a confusion matrix.
"""

from typing import Dict, Sequence

import numpy as np

from docquery.bpm.predictor import most_probable


def confusion_matrix(y_true: Sequence[int], y_pred: Sequence[int]) -> np.ndarray:
    """
    Count label / prediction pairs.

    Returns:
        np.ndarray: m x m counts with rows indexed by the true label and
        columns by the predicted label, m = 1 + the largest label seen
    """
    if len(y_true) != len(y_pred):
        raise ValueError(f"Got {len(y_true)} labels but {len(y_pred)} predictions")
    y_true = np.asarray(y_true, dtype=int)
    y_pred = np.asarray(y_pred, dtype=int)
    if np.any(y_true < 0) or np.any(y_pred < 0):
        raise ValueError("Class labels must be non-negative")

    size = int(max(y_true.max(initial=-1), y_pred.max(initial=-1))) + 1
    counts = np.zeros((size, size), dtype=int)
    np.add.at(counts, (y_true, y_pred), 1)
    return counts


def classification_metrics(y_true: Sequence[int], y_pred: Sequence[int]) -> Dict[str, float]:
    """
    Compute accuracy and macro precision / recall / F1.

    The macro average runs over the classes that occur as a label or as a
    prediction.

    Args:
        y_true: Known class labels
        y_pred: Predicted class labels, aligned with y_true

    Returns:
        Dict[str, float]: accuracy, precision, recall, f1
    """
    counts = confusion_matrix(y_true, y_pred)
    total = counts.sum()
    if total == 0:
        return {"accuracy": 0.0, "precision": 0.0, "recall": 0.0, "f1": 0.0}

    tp = np.diag(counts).astype(float)
    predicted = counts.sum(axis=0)
    actual = counts.sum(axis=1)
    present = (predicted + actual) > 0

    with np.errstate(divide="ignore", invalid="ignore"):
        precision = np.where(predicted > 0, tp / predicted, 0.0)
        recall = np.where(actual > 0, tp / actual, 0.0)
        f1 = np.where(precision + recall > 0, 2 * precision * recall / (precision + recall), 0.0)

    return {
        "accuracy": float(tp.sum() / total),
        "precision": float(precision[present].mean()),
        "recall": float(recall[present].mean()),
        "f1": float(f1[present].mean()),
    }


def evaluate(distributions: Sequence[np.ndarray], labels: Sequence[int]) -> Dict[str, float]:
    """Metrics of the arg-max class of each distribution against the labels."""
    return classification_metrics(labels, most_probable(distributions))
