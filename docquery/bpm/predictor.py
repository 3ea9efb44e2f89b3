# docquery/bpm/predictor.py
"""
DocQuery - Bayes Point Machines for Ranked Document Records

Module: predictor.py

Turns trained beliefs into class distributions. Each class score for a
vector v is Gaussian, N(<mean_j, v>, v' Sigma_j v + noise), and the
probability of class j is the probability that its score is the largest.
Two classes have a closed form (a probit of the score difference); more
classes integrate the score of j by Gauss-Hermite quadrature with every
rival handled by its normal CDF.
"""

from typing import List, Sequence

import numpy as np
from scipy import special

from docquery.bpm.belief import BeliefState
from docquery.bpm.errors import ConfigurationError, DimensionMismatchError
from docquery.bpm.solver import DEFAULT_NOISE
from docquery.bpm.vectors import VectorLike, as_matrix

QUADRATURE_POINTS = 64
PREDICTION_BATCH_SIZE = 1024


class Predictor:
    """
    Stateless class-distribution predictor.

    Attributes:
        noise (float): Variance of the Gaussian noise added to each class score
        quadrature_points (int): Number of Gauss-Hermite nodes for three or more classes
        batch_size (int): Vectors integrated at once for three or more classes
    """

    def __init__(self, noise: float = DEFAULT_NOISE, quadrature_points: int = QUADRATURE_POINTS,
                 batch_size: int = PREDICTION_BATCH_SIZE):
        if not noise > 0:
            raise ConfigurationError(f"Noise level must be positive, got {noise}")
        if batch_size < 1:
            raise ConfigurationError(f"Prediction batch size must be positive, got {batch_size}")
        self.noise = noise
        self.quadrature_points = quadrature_points
        self.batch_size = batch_size
        nodes, weights = np.polynomial.hermite_e.hermegauss(quadrature_points)
        self._nodes = nodes
        self._log_weights = np.log(weights) - 0.5 * np.log(2.0 * np.pi)

    def predict(self, beliefs: Sequence[BeliefState], vectors: Sequence[VectorLike]) -> List[np.ndarray]:
        """
        Predict a categorical distribution for every vector.

        Args:
            beliefs: One belief per class (never modified)
            vectors: Feature vectors to classify

        Returns:
            List[np.ndarray]: One probability vector of length num_classes per
            input vector, in input order

        Raises:
            DimensionMismatchError: If vectors and beliefs disagree on dimension
        """
        return list(self.predict_matrix(beliefs, vectors))

    def predict_matrix(self, beliefs: Sequence[BeliefState], vectors: Sequence[VectorLike]) -> np.ndarray:
        """Same as predict, returned as an n x num_classes array."""
        if len(beliefs) < 2:
            raise ConfigurationError("Prediction needs beliefs for at least two classes")
        dimension = beliefs[0].dimension
        if any(b.dimension != dimension for b in beliefs):
            raise DimensionMismatchError("All class beliefs must share one dimension")

        matrix = as_matrix(vectors, dimension)
        if matrix.shape[0] == 0:
            return np.zeros((0, len(beliefs)))

        moments = [b.score_moments(matrix) for b in beliefs]
        means = np.stack([m for m, _ in moments], axis=1)
        stds = np.sqrt(np.stack([v for _, v in moments], axis=1) + self.noise)

        if len(beliefs) == 2:
            return self._two_class(means, stds)
        # The quadrature arrays grow with n x K x K x T, so rows go in slices
        return np.concatenate([self._many_class(means[start:start + self.batch_size],
                                                stds[start:start + self.batch_size])
                               for start in range(0, means.shape[0], self.batch_size)])

    @staticmethod
    def _two_class(means: np.ndarray, stds: np.ndarray) -> np.ndarray:
        z = (means[:, 1] - means[:, 0]) / np.sqrt(stds[:, 0] ** 2 + stds[:, 1] ** 2)
        p1 = special.ndtr(z)
        return np.stack([special.ndtr(-z), p1], axis=1)

    def _many_class(self, means: np.ndarray, stds: np.ndarray) -> np.ndarray:
        # scores[n, j, t]: score of class j at quadrature node t
        scores = means[:, :, None] + stds[:, :, None] * self._nodes[None, None, :]
        # log_cdf[n, j, k, t] = log P(score_k < score_j at node t)
        log_cdf = special.log_ndtr(
            (scores[:, :, None, :] - means[:, None, :, None]) / stds[:, None, :, None])
        num_classes = means.shape[1]
        own = log_cdf[:, np.arange(num_classes), np.arange(num_classes), :]
        log_rivals = log_cdf.sum(axis=2) - own

        log_probs = special.logsumexp(log_rivals + self._log_weights[None, None, :], axis=2)
        log_probs -= special.logsumexp(log_probs, axis=1, keepdims=True)
        return np.exp(log_probs)


def most_probable(distributions: Sequence[np.ndarray]) -> List[int]:
    """Arg-max class of each distribution."""
    return [int(np.argmax(d)) for d in distributions]
