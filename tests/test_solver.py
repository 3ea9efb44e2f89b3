import math

import numpy as np
import pytest
from scipy import stats

from docquery.bpm.belief import BeliefState
from docquery.bpm.errors import BatchError, ConfigurationError, ConvergenceError, DimensionMismatchError
from docquery.bpm.solver import MarginConstraintSolver, truncation_ratio
from docquery.bpm.trainers import initial_priors


@pytest.fixture
def solver():
    return MarginConstraintSolver(noise=0.1)


def test_truncation_ratio_matches_normal_pdf_over_cdf():
    for z in [-3.0, -0.5, 0.0, 1.5]:
        assert math.isclose(truncation_ratio(z), stats.norm.pdf(z) / stats.norm.cdf(z), rel_tol=1e-9)
    # Stays finite deep in the tail, approaching -z
    assert math.isclose(truncation_ratio(-40.0), 40.0, rel_tol=1e-2)


@pytest.mark.parametrize("kwargs", [
    {"noise": 0.0},
    {"max_iterations": 0},
    {"tolerance": 0.0},
    {"damping": 1.5},
])
def test_invalid_settings_are_rejected(kwargs):
    with pytest.raises(ConfigurationError):
        MarginConstraintSolver(**kwargs)


def test_separable_batch_pushes_weight_towards_class(solver, separable_batch):
    posteriors = solver.solve(initial_priors(2, 3), separable_batch)
    assert posteriors[0].point_mass
    assert posteriors[1].mean[0] > 0.5
    assert solver.last_iterations >= 1


def test_posterior_precision_grows(solver, separable_batch):
    priors = initial_priors(2, 3)
    posterior = solver.solve(priors, separable_batch)[1]
    assert np.all(np.linalg.eigvalsh(posterior.precision - priors[1].precision) >= -1e-9)
    assert np.all(posterior.variance <= 1.0 + 1e-12)


def test_solve_is_deterministic(solver, three_class_batch):
    first = solver.solve(initial_priors(3, 2), three_class_batch)
    second = solver.solve(initial_priors(3, 2), three_class_batch)
    for a, b in zip(first, second):
        np.testing.assert_array_equal(a.mean, b.mean)
        np.testing.assert_array_equal(a.precision, b.precision)


def test_solve_leaves_priors_untouched(solver, separable_batch):
    priors = initial_priors(2, 3)
    solver.solve(priors, separable_batch)
    np.testing.assert_array_equal(priors[1].mean, np.zeros(3))
    np.testing.assert_array_equal(priors[1].precision, np.eye(3))


def test_three_classes_separate(solver, three_class_batch):
    posteriors = solver.solve(initial_priors(3, 2), three_class_batch)
    assert posteriors[1].mean[0] > posteriors[2].mean[0]
    assert posteriors[2].mean[1] > posteriors[1].mean[1]


def test_class_without_vectors_is_held(solver):
    batch = {0: [np.array([-1.0, 0.0])], 1: [np.array([1.0, 0.0])]}
    priors = initial_priors(3, 2)
    posteriors = solver.solve(priors, batch)
    assert posteriors[2].allclose(priors[2])
    assert not posteriors[1].allclose(priors[1])


def test_absent_class_learns_as_rival_when_not_held():
    solver = MarginConstraintSolver(noise=0.1, hold_absent_classes=False)
    posteriors = solver.solve(initial_priors(2, 2), [[np.array([1.0, 0.0])], []])
    assert posteriors[1].mean[0] < 0.0


def test_only_pinned_class_with_vectors_changes_nothing(solver):
    priors = initial_priors(2, 2)
    posteriors = solver.solve(priors, [[np.array([1.0, 0.0])], []])
    assert posteriors[1].allclose(priors[1])
    assert solver.last_iterations == 0


def test_empty_batch_is_rejected(solver):
    with pytest.raises(BatchError):
        solver.solve(initial_priors(2, 2), [[], []])


def test_batch_with_wrong_class_count_is_rejected(solver):
    with pytest.raises(BatchError):
        solver.solve(initial_priors(2, 2), [[np.ones(2)]])


def test_mapping_with_unknown_class_is_rejected(solver):
    with pytest.raises(BatchError):
        solver.solve(initial_priors(2, 2), {5: [np.ones(2)]})


def test_dimension_mismatch_is_rejected(solver):
    with pytest.raises(DimensionMismatchError):
        solver.solve(initial_priors(2, 2), [[], [np.ones(3)]])


def test_non_finite_values_are_rejected(solver):
    with pytest.raises(BatchError):
        solver.solve(initial_priors(2, 2), [[], [np.array([np.nan, 1.0])]])


def test_exhausted_iterations_raise(three_class_batch):
    solver = MarginConstraintSolver(noise=0.1, max_iterations=1, tolerance=1e-12)
    with pytest.raises(ConvergenceError):
        solver.solve(initial_priors(3, 2), three_class_batch)


def test_damping_reaches_same_fixed_point(separable_batch):
    plain = MarginConstraintSolver(noise=0.1, tolerance=1e-9).solve(initial_priors(2, 3), separable_batch)
    damped = MarginConstraintSolver(noise=0.1, tolerance=1e-9, damping=0.7,
                                    max_iterations=500).solve(initial_priors(2, 3), separable_batch)
    np.testing.assert_allclose(plain[1].mean, damped[1].mean, atol=1e-5)


def test_informative_prior_is_respected(solver):
    prior = BeliefState(np.array([2.0, 0.0]), np.eye(2) * 100.0)
    posteriors = solver.solve([BeliefState.prior(0, 2), prior], [[], [np.array([1.0, 0.0])]])
    assert abs(posteriors[1].mean[0] - 2.0) < 0.05
