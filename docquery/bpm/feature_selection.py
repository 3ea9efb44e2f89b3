# docquery/bpm/feature_selection.py
"""
DocQuery - Bayes Point Machines for Ranked Document Records

Module: feature_selection.py

Feature selections are ordered lists of 1-based feature numbers. A selected
vector holds exactly the listed features, in the listed order.
"""

from collections import Counter
from typing import Dict, Optional, Sequence, Tuple

from docquery.bpm.errors import FeatureSelectionError


def validate_feature_selection(selection: Optional[Sequence[int]], num_features: int) -> Tuple[int, ...]:
    """
    Check a feature selection against the number of features in a record.

    Args:
        selection: 1-based feature numbers, or None / empty for all features
        num_features (int): Number of features in each record

    Returns:
        Tuple[int, ...]: The selection as a tuple (empty means all features)

    Raises:
        FeatureSelectionError: On duplicates or numbers outside [1, num_features]
    """
    if not selection:
        return ()

    selected = tuple(int(f) for f in selection)
    out_of_range = [f for f in selected if not 1 <= f <= num_features]
    if out_of_range:
        raise FeatureSelectionError(
            f"There are features in the selection out of the defined feature range [1, {num_features}]: "
            f"{out_of_range}")

    duplicates = sorted(f for f, count in Counter(selected).items() if count > 1)
    if duplicates:
        raise FeatureSelectionError(f"Duplicate features in the selection: {duplicates}")
    return selected


def selection_index(selection: Sequence[int]) -> Dict[int, int]:
    """Map each selected feature number to its position in the selected vector."""
    return {feature: position for position, feature in enumerate(selection)}


def selected_dimension(num_features: int, selection: Sequence[int]) -> int:
    """Number of features that survive the selection."""
    return len(selection) if selection else num_features

