import numpy as np
import pytest

from docquery.bpm.belief import REFERENCE_CLASS, BeliefState
from docquery.bpm.errors import ConvergenceError, DimensionMismatchError


# --- Construction ---
def test_prior_pins_reference_class():
    prior = BeliefState.prior(REFERENCE_CLASS, 3)
    assert prior.point_mass
    assert np.all(prior.mean == 0.0)
    assert np.all(np.isinf(np.diag(prior.precision)))
    assert np.all(prior.covariance == 0.0)


def test_prior_of_other_classes_is_standard_normal():
    prior = BeliefState.prior(2, 4)
    assert not prior.point_mass
    np.testing.assert_array_equal(prior.mean, np.zeros(4))
    np.testing.assert_array_equal(prior.precision, np.eye(4))
    np.testing.assert_allclose(prior.variance, np.ones(4))


def test_precision_is_symmetrised():
    belief = BeliefState(np.zeros(2), np.array([[1.0, 0.2], [0.4, 1.0]]))
    np.testing.assert_allclose(belief.precision, belief.precision.T)


def test_mismatched_precision_shape_is_rejected():
    with pytest.raises(DimensionMismatchError):
        BeliefState(np.zeros(3), np.eye(2))


def test_from_natural_recovers_mean(gaussian_belief):
    precision, shift = gaussian_belief.natural()
    rebuilt = BeliefState.from_natural(precision, shift)
    assert rebuilt.allclose(gaussian_belief)


def test_from_natural_rejects_indefinite_precision():
    with pytest.raises(ConvergenceError):
        BeliefState.from_natural(np.array([[1.0, 0.0], [0.0, -1.0]]), np.zeros(2))


# --- Arithmetic ---
def test_multiply_then_divide_returns_message(gaussian_belief):
    message_precision = np.array([[0.5, 0.1], [0.1, 0.2]])
    message_shift = np.array([0.3, -0.4])
    product = gaussian_belief.multiply(message_precision, message_shift)
    precision, shift = product.divide(gaussian_belief)
    np.testing.assert_allclose(precision, message_precision, atol=1e-10)
    np.testing.assert_allclose(shift, message_shift, atol=1e-10)


def test_point_mass_absorbs_messages():
    pinned = BeliefState.prior(REFERENCE_CLASS, 2)
    product = pinned.multiply(np.eye(2), np.ones(2))
    assert product.point_mass
    np.testing.assert_array_equal(product.mean, np.zeros(2))
    precision, shift = product.divide(pinned)
    assert not precision.any() and not shift.any()


def test_copy_is_independent(gaussian_belief):
    clone = gaussian_belief.copy()
    clone.mean[0] = 10.0
    assert gaussian_belief.mean[0] == 0.5


def test_score_moments(gaussian_belief):
    vectors = np.array([[1.0, 0.0], [1.0, 2.0]])
    means, variances = gaussian_belief.score_moments(vectors)
    np.testing.assert_allclose(means, vectors @ gaussian_belief.mean)
    expected = [v @ gaussian_belief.covariance @ v for v in vectors]
    np.testing.assert_allclose(variances, expected)


def test_score_moments_checks_dimension(gaussian_belief):
    with pytest.raises(DimensionMismatchError):
        gaussian_belief.score_moments(np.ones((1, 3)))


def test_as_prior_is_an_independent_copy(gaussian_belief):
    prior = gaussian_belief.as_prior()
    assert prior.allclose(gaussian_belief)
    assert prior is not gaussian_belief
    assert not prior.is_point_mass
    assert BeliefState.prior(REFERENCE_CLASS, 2).as_prior().is_point_mass
