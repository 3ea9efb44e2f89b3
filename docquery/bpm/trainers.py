# docquery/bpm/trainers.py
"""
DocQuery - Bayes Point Machines for Ranked Document Records

Module: trainers.py

Training strategies that drive the margin-constraint solver:

* BatchTrainer - every call starts again from the class priors.
* IncrementalTrainer - the first call is a batch call; every later call uses
  the previous posterior as its prior, so evidence accumulates across calls.

Sequential updates are approximate and, in general, sensitive to the order in
which batches arrive. Feeding disjoint chunks one at a time approaches the
all-at-once result without being required to equal it.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from docquery.bpm.belief import BeliefState
from docquery.bpm.errors import ConfigurationError, NotTrainedError
from docquery.bpm.solver import DEFAULT_NOISE, MarginConstraintSolver
from docquery.bpm.vectors import BatchLike
from docquery.utils.logger import get_logger


def validate_shape(num_classes: int, dimension: int):
    """Reject class counts below two and non-positive dimensions."""
    if not isinstance(num_classes, int) or num_classes < 2:
        raise ConfigurationError(f"Number of classes must be an integer >= 2, got {num_classes}")
    if not isinstance(dimension, int) or dimension < 1:
        raise ConfigurationError(f"Feature dimension must be a positive integer, got {dimension}")


def initial_priors(num_classes: int, dimension: int) -> List[BeliefState]:
    """One prior per class: the reference class pinned at zero, the rest standard normal."""
    return [BeliefState.prior(c, dimension) for c in range(num_classes)]


class BaseTrainer(ABC):
    """
    Common capability set of the per-class trainers.

    Attributes:
        num_classes (int): Number of classes
        dimension (int): Number of (selected) features
        solver (MarginConstraintSolver): The approximate-inference step
        logger: Logger for progress messages
    """

    def __init__(self, num_classes: int, dimension: int, solver: Optional[MarginConstraintSolver] = None,
                 noise: float = DEFAULT_NOISE, logger=None):
        validate_shape(num_classes, dimension)
        self.num_classes = num_classes
        self.dimension = dimension
        self.logger = logger or get_logger(__name__)
        self.solver = solver or MarginConstraintSolver(noise=noise, logger=self.logger)

    @property
    def noise(self) -> float:
        return self.solver.noise

    @abstractmethod
    def train(self, batch: BatchLike) -> None:
        """Update the beliefs with one classified batch."""
        pass

    @abstractmethod
    def get_posteriors(self) -> List[BeliefState]:
        """Copies of the current per-class beliefs."""
        pass

    @property
    @abstractmethod
    def is_trained(self) -> bool:
        pass


class BatchTrainer(BaseTrainer):
    """One-shot training from fresh priors; a new call discards earlier state."""

    def __init__(self, num_classes: int, dimension: int, solver: Optional[MarginConstraintSolver] = None,
                 noise: float = DEFAULT_NOISE, logger=None):
        super().__init__(num_classes, dimension, solver, noise, logger)
        self._posteriors: Optional[List[BeliefState]] = None

    @property
    def is_trained(self) -> bool:
        return self._posteriors is not None

    def train(self, batch: BatchLike) -> None:
        """
        Train from the class priors on one whole batch.

        Args:
            batch: Classified vectors, one group per class
        """
        self.fit(initial_priors(self.num_classes, self.dimension), batch)

    def fit(self, priors: List[BeliefState], batch: BatchLike) -> None:
        """
        Run the solver from explicit priors and store the result.

        Nothing is stored if the solve raises.
        """
        posteriors = self.solver.solve(priors, batch)
        self._posteriors = posteriors
        self.logger.debug(f"[+] Solver settled after {self.solver.last_iterations} sweeps")

    def get_posteriors(self) -> List[BeliefState]:
        """
        Return defensive copies of the trained beliefs.

        Raises:
            NotTrainedError: If no training call has completed yet
        """
        if self._posteriors is None:
            raise NotTrainedError("The trainer has not been trained yet")
        return [p.copy() for p in self._posteriors]

    def next_priors(self) -> List[BeliefState]:
        """Current posteriors as priors for the next update."""
        if self._posteriors is None:
            raise NotTrainedError("The trainer has not been trained yet")
        return [p.as_prior() for p in self._posteriors]

    def set_posteriors(self, posteriors: List[BeliefState]) -> None:
        """Replace the trained beliefs, e.g. with ones loaded from disk."""
        if len(posteriors) != self.num_classes or any(p.dimension != self.dimension for p in posteriors):
            raise ConfigurationError(
                f"Expected {self.num_classes} beliefs of dimension {self.dimension}")
        self._posteriors = [p.copy() for p in posteriors]


class IncrementalTrainer(BaseTrainer):
    """
    Sequential Bayesian updating on top of a BatchTrainer.

    The first call trains from the priors; later calls start from the
    previous posterior, so precision accumulates across calls.
    """

    def __init__(self, num_classes: int, dimension: int, solver: Optional[MarginConstraintSolver] = None,
                 noise: float = DEFAULT_NOISE, logger=None):
        super().__init__(num_classes, dimension, solver, noise, logger)
        self.trainer = BatchTrainer(num_classes, dimension, self.solver, logger=self.logger)
        self.updates = 0

    @property
    def is_trained(self) -> bool:
        return self.trainer.is_trained

    def train_incremental(self, batch: BatchLike) -> None:
        """
        Refine the current beliefs with one more batch.

        Args:
            batch: Classified vectors, one group per class
        """
        if self.trainer.is_trained:
            self.trainer.fit(self.trainer.next_priors(), batch)
        else:
            self.trainer.train(batch)
        self.updates += 1

    def train(self, batch: BatchLike) -> None:
        self.train_incremental(batch)

    def restart(self, batch: BatchLike) -> None:
        """Drop accumulated evidence and train from the priors on this batch."""
        self.trainer.train(batch)
        self.updates = 1

    def get_posteriors(self) -> List[BeliefState]:
        return self.trainer.get_posteriors()
