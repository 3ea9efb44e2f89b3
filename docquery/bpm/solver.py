# docquery/bpm/solver.py
"""
DocQuery - Bayes Point Machines for Ranked Document Records

Module: solver.py

Expectation propagation for the multi-class margin constraints. For every
training vector v labelled c and every rival class j the model asserts

    <w_c, v> + e_c  >  <w_j, v> + e_j,        e ~ N(0, noise)

The posterior over the weights is approximated by one full Gaussian per
class. Each constraint contributes two rank-one sites, one on w_c and one on
w_j, both along v. A site is refined by removing it from the current belief
(the cavity), moment-matching the truncated Gaussian of the score difference,
and dividing the matched marginal by the cavity. Sweeps repeat in a fixed
order until the class means stop moving.
"""

import math
from typing import AbstractSet, List, Optional, Sequence

import numpy as np
from scipy import special

from docquery.bpm.belief import BeliefState
from docquery.bpm.errors import ConfigurationError, ConvergenceError, DimensionMismatchError
from docquery.bpm.vectors import BatchLike, as_classified_batch
from docquery.utils.logger import get_logger

DEFAULT_NOISE = 0.1
DEFAULT_MAX_ITERATIONS = 100
DEFAULT_TOLERANCE = 1e-6

_LOG_SQRT_2PI = 0.5 * math.log(2.0 * math.pi)


def truncation_ratio(z: float) -> float:
    """phi(z) / Phi(z), evaluated in log space so it stays finite for large negative z."""
    return math.exp(-0.5 * z * z - _LOG_SQRT_2PI - float(special.log_ndtr(z)))


class _ClassState:
    """Running moments of one class during a solve."""

    def __init__(self, prior: BeliefState, updatable: bool):
        self.updatable = updatable
        self.mean = prior.mean.copy()
        self.cov = prior.covariance.copy()

    def project(self, x: np.ndarray):
        cov_x = self.cov @ x
        return cov_x, float(x @ self.mean), max(float(x @ cov_x), 0.0)

    def absorb(self, cov_x: np.ndarray, mu: float, var: float, d_tau: float, d_nu: float):
        # Rank-one Sherman-Morrison update for a change (d_tau, d_nu) of a site along x
        denom = 1.0 + d_tau * var
        self.mean = self.mean + cov_x * ((d_nu - d_tau * mu) / denom)
        self.cov = self.cov - np.outer(cov_x, cov_x) * (d_tau / denom)


class _Sites:
    """Site parameters for the vectors of one label against every rival class."""

    def __init__(self, num_vectors: int, num_classes: int):
        shape = (num_vectors, num_classes)
        self.winner_tau = np.zeros(shape)
        self.winner_nu = np.zeros(shape)
        self.loser_tau = np.zeros(shape)
        self.loser_nu = np.zeros(shape)


class MarginConstraintSolver:
    """
    Approximate Bayesian update of per-class weight beliefs under margin
    constraints.

    Attributes:
        noise (float): Variance of the Gaussian noise added to each class score
        max_iterations (int): Maximum number of EP sweeps
        tolerance (float): Largest change of any class mean that counts as converged
        damping (float): Fraction of the new site kept at each step (1.0 = undamped)
        hold_absent_classes (bool): Return classes without vectors in the batch
            unchanged; when False they still learn as rivals of other classes
        logger: Logger for progress messages
    """

    def __init__(self, noise: float = DEFAULT_NOISE, max_iterations: int = DEFAULT_MAX_ITERATIONS,
                 tolerance: float = DEFAULT_TOLERANCE, damping: float = 1.0,
                 hold_absent_classes: bool = True, logger=None):
        if not noise > 0:
            raise ConfigurationError(f"Noise level must be positive, got {noise}")
        if max_iterations < 1:
            raise ConfigurationError(f"max_iterations must be at least 1, got {max_iterations}")
        if not tolerance > 0:
            raise ConfigurationError(f"Tolerance must be positive, got {tolerance}")
        if not 0.0 < damping <= 1.0:
            raise ConfigurationError(f"Damping must lie in (0, 1], got {damping}")

        self.noise = noise
        self.max_iterations = max_iterations
        self.tolerance = tolerance
        self.damping = damping
        self.hold_absent_classes = hold_absent_classes
        self.logger = logger or get_logger(__name__)
        self.last_iterations = 0

    def solve(self, priors: Sequence[BeliefState], batch: BatchLike,
              held_classes: Optional[AbstractSet[int]] = None) -> List[BeliefState]:
        """
        Refine the per-class beliefs with one batch of classified vectors.

        Args:
            priors: One belief per class, all of the same dimension
            batch: Classified vectors (sequence or mapping indexed by class)
            held_classes: Classes to return unchanged. When given it replaces
                the hold_absent_classes rule, so a class absent from this batch
                still learns as a rival unless it is listed.

        Returns:
            List[BeliefState]: One refined belief per class. Point masses and
            held classes come back unchanged.

        Raises:
            DimensionMismatchError: If priors and vectors disagree on dimension
            BatchError: If the batch is malformed or empty
            ConvergenceError: If EP does not settle within max_iterations sweeps
        """
        num_classes = len(priors)
        dimension = priors[0].dimension
        if any(p.dimension != dimension for p in priors):
            raise DimensionMismatchError("All class priors must share one dimension")

        data = as_classified_batch(batch, num_classes, dimension)
        if held_classes is None:
            held_classes = {c for c in range(num_classes)
                            if self.hold_absent_classes and data[c].shape[0] == 0}
        updatable = [not p.point_mass and c not in held_classes for c, p in enumerate(priors)]
        if not any(updatable):
            self.logger.debug("[+] No class can receive evidence from this batch")
            self.last_iterations = 0
            return [p.copy() for p in priors]

        states = [_ClassState(p, updatable[c]) for c, p in enumerate(priors)]
        sites = [_Sites(data[c].shape[0], num_classes) for c in range(num_classes)]

        for iteration in range(1, self.max_iterations + 1):
            previous = [s.mean.copy() for s in states]

            for label in range(num_classes):
                vectors = data[label]
                for n in range(vectors.shape[0]):
                    for rival in range(num_classes):
                        if rival == label:
                            continue
                        if not (updatable[label] or updatable[rival]):
                            continue
                        self._update_constraint(vectors[n], states[label], states[rival],
                                                sites[label], n, rival)

            change = max(float(np.max(np.abs(s.mean - p))) for s, p in zip(states, previous))
            if not math.isfinite(change):
                raise ConvergenceError(f"Margin-constraint solve diverged at sweep {iteration}")
            if change < self.tolerance:
                self.last_iterations = iteration
                self.logger.debug(f"[+] EP converged after {iteration} sweeps (change {change:.2e})")
                break
        else:
            raise ConvergenceError(
                f"Margin-constraint solve did not converge in {self.max_iterations} sweeps "
                f"(last change {change:.2e} > tolerance {self.tolerance:.2e})")

        return [self._posterior(c, priors[c], data, sites) if updatable[c] else priors[c].copy()
                for c in range(num_classes)]

    def _update_constraint(self, x: np.ndarray, winner: _ClassState, loser: _ClassState,
                           sites: _Sites, n: int, rival: int):
        w_cov_x, w_mu, w_var = winner.project(x)
        l_cov_x, l_mu, l_var = loser.project(x)

        w_cavity = self._cavity(winner, w_mu, w_var, sites.winner_tau[n, rival], sites.winner_nu[n, rival])
        l_cavity = self._cavity(loser, l_mu, l_var, sites.loser_tau[n, rival], sites.loser_nu[n, rival])
        if w_cavity is None or l_cavity is None:
            return
        w_cav_mean, w_cav_var = w_cavity
        l_cav_mean, l_cav_var = l_cavity

        total_var = w_cav_var + l_cav_var + 2.0 * self.noise
        scale = math.sqrt(total_var)
        z = (w_cav_mean - l_cav_mean) / scale
        ratio = truncation_ratio(z)
        shrink = ratio * (ratio + z) / total_var

        if winner.updatable:
            new_mean = w_cav_mean + w_cav_var * ratio / scale
            new_var = w_cav_var * (1.0 - w_cav_var * shrink)
            self._refresh_site(winner, x, w_cov_x, w_mu, w_var, w_cav_mean, w_cav_var,
                               new_mean, new_var, sites.winner_tau, sites.winner_nu, n, rival)
        if loser.updatable:
            new_mean = l_cav_mean - l_cav_var * ratio / scale
            new_var = l_cav_var * (1.0 - l_cav_var * shrink)
            self._refresh_site(loser, x, l_cov_x, l_mu, l_var, l_cav_mean, l_cav_var,
                               new_mean, new_var, sites.loser_tau, sites.loser_nu, n, rival)

    @staticmethod
    def _cavity(state: _ClassState, mu: float, var: float, tau: float, nu: float):
        """Score marginal with the site removed, or None if the cavity is improper."""
        if not state.updatable or var <= 0.0:
            return mu, var
        cavity_precision = 1.0 / var - tau
        if cavity_precision <= 0.0:
            return None
        cavity_var = 1.0 / cavity_precision
        return cavity_var * (mu / var - nu), cavity_var

    def _refresh_site(self, state: _ClassState, x, cov_x, mu, var, cav_mean, cav_var,
                      new_mean, new_var, tau_table, nu_table, n, rival):
        if new_var <= 0.0 or cav_var <= 0.0:
            return
        tau = max(1.0 / new_var - 1.0 / cav_var, 0.0)
        nu = new_mean / new_var - cav_mean / cav_var

        old_tau = tau_table[n, rival]
        old_nu = nu_table[n, rival]
        if self.damping < 1.0:
            tau = self.damping * tau + (1.0 - self.damping) * old_tau
            nu = self.damping * nu + (1.0 - self.damping) * old_nu

        tau_table[n, rival] = tau
        nu_table[n, rival] = nu
        state.absorb(cov_x, mu, var, tau - old_tau, nu - old_nu)

    @staticmethod
    def _posterior(label: int, prior: BeliefState, data: List[np.ndarray],
                   sites: List[_Sites]) -> BeliefState:
        """Prior times every site that touches the class, rebuilt from natural parameters."""
        precision, shift = prior.natural()

        own = data[label]
        if own.shape[0]:
            tau = sites[label].winner_tau.sum(axis=1)
            nu = sites[label].winner_nu.sum(axis=1)
            precision = precision + own.T @ (own * tau[:, None])
            shift = shift + own.T @ nu

        for other, vectors in enumerate(data):
            if other == label or not vectors.shape[0]:
                continue
            tau = sites[other].loser_tau[:, label]
            nu = sites[other].loser_nu[:, label]
            precision = precision + vectors.T @ (vectors * tau[:, None])
            shift = shift + vectors.T @ nu

        return BeliefState.from_natural(precision, shift)
