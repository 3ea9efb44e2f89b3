# docquery/bpm/belief.py
"""
DocQuery - Bayes Point Machines for Ranked Document Records

Module: belief.py

Gaussian beliefs over a single class's weight vector. A belief is stored in
moment form (mean vector) plus its precision matrix, with helpers to move
to and from natural parameters (precision, precision-adjusted mean) so that
beliefs can be multiplied and divided when chunk contributions are merged.

The reference class (index 0) is represented as a point mass at the zero
vector. Point masses absorb every product and quotient: once pinned, a
weight stays pinned.
"""

from typing import Optional, Tuple

import numpy as np
from scipy import linalg

from docquery.bpm.errors import ConvergenceError, DimensionMismatchError

REFERENCE_CLASS = 0


class BeliefState:
    """
    Multivariate Gaussian belief over one class's weight vector.

    Attributes:
        mean (np.ndarray): Length-D mean vector
        precision (np.ndarray): D x D symmetric precision matrix (infinite
            diagonal for a point mass)
        point_mass (bool): Whether the belief is a fixed value with zero
            uncertainty
    """

    def __init__(self, mean: np.ndarray, precision: np.ndarray, point_mass: bool = False):
        mean = np.array(mean, dtype=float)
        if mean.ndim != 1:
            raise DimensionMismatchError(f"Belief mean must be a vector, got shape {mean.shape}")

        dim = mean.shape[0]
        if point_mass:
            precision = np.diag(np.full(dim, np.inf))
        else:
            precision = np.array(precision, dtype=float)
            if precision.shape != (dim, dim):
                raise DimensionMismatchError(
                    f"Precision shape {precision.shape} does not match mean dimension {dim}")
            precision = 0.5 * (precision + precision.T)

        self.mean = mean
        self.precision = precision
        self.point_mass = point_mass
        self._covariance = None

    # --- Construction ---

    @classmethod
    def prior(cls, class_index: int, dimension: int) -> "BeliefState":
        """
        Build the initial belief for a class.

        Args:
            class_index (int): Class index; the reference class is pinned at zero
            dimension (int): Number of (selected) features

        Returns:
            BeliefState: Point mass at zero for the reference class, otherwise
            a zero-mean Gaussian with identity precision
        """
        if class_index == REFERENCE_CLASS:
            return cls.point_mass_at(np.zeros(dimension))
        return cls(np.zeros(dimension), np.eye(dimension))

    @classmethod
    def point_mass_at(cls, value: np.ndarray) -> "BeliefState":
        return cls(value, None, point_mass=True)

    @classmethod
    def from_natural(cls, precision: np.ndarray, shift: np.ndarray) -> "BeliefState":
        """
        Build a belief from natural parameters.

        Args:
            precision (np.ndarray): Precision matrix
            shift (np.ndarray): Precision times mean

        Raises:
            ConvergenceError: If the precision matrix is not positive definite
        """
        precision = 0.5 * (np.asarray(precision, dtype=float) + np.asarray(precision, dtype=float).T)
        try:
            factor = linalg.cho_factor(precision)
        except linalg.LinAlgError as e:
            raise ConvergenceError(f"Belief precision is not positive definite: {e}") from e
        mean = linalg.cho_solve(factor, np.asarray(shift, dtype=float))
        return cls(mean, precision)

    # --- Properties ---

    @property
    def dimension(self) -> int:
        return self.mean.shape[0]

    @property
    def is_point_mass(self) -> bool:
        return self.point_mass

    @property
    def covariance(self) -> np.ndarray:
        """Covariance matrix (zeros for a point mass), computed lazily."""
        if self._covariance is None:
            if self.point_mass:
                self._covariance = np.zeros((self.dimension, self.dimension))
            else:
                try:
                    factor = linalg.cho_factor(self.precision)
                except linalg.LinAlgError as e:
                    raise ConvergenceError(f"Belief precision is not positive definite: {e}") from e
                cov = linalg.cho_solve(factor, np.eye(self.dimension))
                self._covariance = 0.5 * (cov + cov.T)
        return self._covariance

    @property
    def variance(self) -> np.ndarray:
        """Marginal variance of each weight component."""
        return np.diag(self.covariance).copy()

    def natural(self) -> Tuple[np.ndarray, np.ndarray]:
        """
        Natural parameters of a proper (non point-mass) belief.

        Returns:
            Tuple[np.ndarray, np.ndarray]: (precision, precision @ mean)
        """
        if self.point_mass:
            raise ValueError("A point mass has no finite natural parameters")
        return self.precision.copy(), self.precision @ self.mean

    # --- Arithmetic ---

    def as_prior(self) -> "BeliefState":
        """Return an independent copy suitable for seeding the next update."""
        return self.copy()

    def copy(self) -> "BeliefState":
        if self.point_mass:
            return BeliefState.point_mass_at(self.mean)
        clone = BeliefState(self.mean.copy(), self.precision.copy())
        if self._covariance is not None:
            clone._covariance = self._covariance.copy()
        return clone

    def multiply(self, precision: np.ndarray, shift: np.ndarray) -> "BeliefState":
        """
        Multiply by a Gaussian message given in natural parameters.

        Args:
            precision (np.ndarray): Message precision
            shift (np.ndarray): Message precision-adjusted mean

        Returns:
            BeliefState: The product, or a copy of this belief if it is a point mass
        """
        if self.point_mass:
            return self.copy()
        own_precision, own_shift = self.natural()
        return BeliefState.from_natural(own_precision + precision, own_shift + shift)

    def divide(self, other: "BeliefState") -> Tuple[np.ndarray, np.ndarray]:
        """
        Natural parameters of the message self / other.

        Returns zeros when either side is a point mass, since a pinned weight
        never receives evidence.
        """
        self._check_dimension(other.dimension)
        if self.point_mass or other.point_mass:
            return np.zeros((self.dimension, self.dimension)), np.zeros(self.dimension)
        own_precision, own_shift = self.natural()
        other_precision, other_shift = other.natural()
        return own_precision - other_precision, own_shift - other_shift

    def score_moments(self, vectors: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """
        Mean and variance of the inner product <w, v> for each row of vectors.

        Args:
            vectors (np.ndarray): n x D matrix

        Returns:
            Tuple[np.ndarray, np.ndarray]: Means and variances, each of length n
        """
        vectors = np.atleast_2d(vectors)
        self._check_dimension(vectors.shape[1])
        means = vectors @ self.mean
        if self.point_mass:
            return means, np.zeros(vectors.shape[0])
        variances = np.einsum("nd,de,ne->n", vectors, self.covariance, vectors)
        return means, np.maximum(variances, 0.0)

    def allclose(self, other: "BeliefState", rtol: float = 1e-7, atol: float = 1e-9) -> bool:
        if self.point_mass != other.point_mass or self.dimension != other.dimension:
            return False
        if not np.allclose(self.mean, other.mean, rtol=rtol, atol=atol):
            return False
        if self.point_mass:
            return True
        return np.allclose(self.precision, other.precision, rtol=rtol, atol=atol)

    def _check_dimension(self, dimension: Optional[int]):
        if dimension != self.dimension:
            raise DimensionMismatchError(
                f"Expected vectors of dimension {self.dimension}, got {dimension}")

    def __repr__(self):
        kind = "PointMass" if self.point_mass else "Gaussian"
        return f"BeliefState({kind}, dimension={self.dimension})"
