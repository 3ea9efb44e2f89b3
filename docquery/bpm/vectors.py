# docquery/bpm/vectors.py
"""
DocQuery - Bayes Point Machines for Ranked Document Records

Module: vectors.py

Helpers that turn caller data into the shapes the engine works with:
read-only feature vectors, n x D matrices, and classified batches (one
matrix per class index).
"""

from typing import Dict, List, Mapping, Sequence, Union

import numpy as np

from docquery.bpm.errors import BatchError, DimensionMismatchError

VectorLike = Union[Sequence[float], np.ndarray]
BatchLike = Union[Sequence[Sequence[VectorLike]], Mapping[int, Sequence[VectorLike]]]


def feature_vector(values: VectorLike) -> np.ndarray:
    """
    Build an immutable feature vector.

    Args:
        values: Feature values in order

    Returns:
        np.ndarray: A 1-D float array with the write flag cleared
    """
    vector = np.array(values, dtype=float)
    if vector.ndim != 1:
        raise DimensionMismatchError(f"A feature vector must be one-dimensional, got shape {vector.shape}")
    vector.setflags(write=False)
    return vector


def as_matrix(vectors: Sequence[VectorLike], dimension: int) -> np.ndarray:
    """
    Stack vectors into an n x D matrix, checking every row has the dimension.

    Args:
        vectors: Sequence of feature vectors (may be empty)
        dimension (int): Expected number of features

    Returns:
        np.ndarray: n x D float matrix
    """
    if isinstance(vectors, np.ndarray) and vectors.ndim == 2:
        matrix = np.array(vectors, dtype=float)
    elif len(vectors) == 0:
        return np.zeros((0, dimension))
    else:
        rows = [np.asarray(v, dtype=float) for v in vectors]
        for row in rows:
            if row.ndim != 1 or row.shape[0] != dimension:
                raise DimensionMismatchError(
                    f"Expected vectors of dimension {dimension}, got shape {row.shape}")
        matrix = np.vstack(rows)

    if matrix.shape[1] != dimension:
        raise DimensionMismatchError(
            f"Expected vectors of dimension {dimension}, got {matrix.shape[1]}")
    if not np.all(np.isfinite(matrix)):
        raise BatchError("Feature vectors must contain finite values only")
    return matrix


def as_classified_batch(batch: BatchLike, num_classes: int, dimension: int) -> List[np.ndarray]:
    """
    Normalise a classified batch to a list of per-class matrices.

    The batch may be a sequence indexed by class or a mapping from class index
    to vectors; classes missing from a mapping receive no vectors.

    Args:
        batch: Classified vectors
        num_classes (int): Number of classes
        dimension (int): Number of features per vector

    Returns:
        List[np.ndarray]: num_classes matrices, each n_c x D

    Raises:
        BatchError: On class indices out of range or a batch with no vectors
        DimensionMismatchError: On vectors of the wrong length
    """
    if isinstance(batch, Mapping):
        per_class: Dict[int, Sequence[VectorLike]] = {}
        for class_id, vectors in batch.items():
            if not isinstance(class_id, (int, np.integer)) or not 0 <= class_id < num_classes:
                raise BatchError(f"Class index {class_id} is out of range [0, {num_classes})")
            per_class[int(class_id)] = vectors
        ordered = [per_class.get(c, []) for c in range(num_classes)]
    else:
        if len(batch) != num_classes:
            raise BatchError(f"Expected vectors for {num_classes} classes, got {len(batch)}")
        ordered = list(batch)

    matrices = [as_matrix(vectors, dimension) for vectors in ordered]
    if sum(m.shape[0] for m in matrices) == 0:
        raise BatchError("The training batch contains no vectors")
    return matrices
