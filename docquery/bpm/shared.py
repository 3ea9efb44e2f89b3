# docquery/bpm/shared.py
"""
DocQuery - Bayes Point Machines for Ranked Document Records

Module: shared.py

Chunk-partitioned training with one shared belief per class.

A SharedBelief is the product of a base prior and N chunk contributions,
each a Gaussian message in natural parameters. Training chunk k works on a
local copy (the committed snapshot with chunk k's own committed contribution
divided out), runs the solver on the chunk, and stores
local posterior / local prior as chunk k's new contribution. Retraining a
chunk replaces its contribution instead of adding to it.

Within one pass every chunk is computed against the same frozen snapshot.
Once each of the N chunks has contributed, the pass is committed: the
snapshot becomes the product of all contributions and the next pass starts.
The shared belief after a full pass therefore does not depend on the order
in which the chunks were trained. Repeated passes converge to the
belief that batch training on the union of all chunks gives.

A class with no vectors in one chunk still learns from that chunk as a rival
once any committed pass has seen it. Classes no chunk has seen keep their prior.
"""

from typing import Dict, List, Optional, Tuple

import numpy as np

from docquery.bpm.belief import BeliefState
from docquery.bpm.errors import ChunkIndexError, ConfigurationError
from docquery.bpm.solver import DEFAULT_NOISE, MarginConstraintSolver
from docquery.bpm.trainers import initial_priors, validate_shape
from docquery.bpm.vectors import BatchLike, as_classified_batch
from docquery.utils.logger import get_logger

Message = Tuple[np.ndarray, np.ndarray]


class SharedBelief:
    """
    One class's belief assembled from chunk-local contributions.

    Attributes:
        prior (BeliefState): Base prior shared by every chunk
        num_chunks (int): Number of chunks the evidence is split into
        snapshot (BeliefState): Belief committed at the end of the last full pass
    """

    def __init__(self, prior: BeliefState, num_chunks: int):
        self.prior = prior
        self.num_chunks = num_chunks
        self.snapshot = prior.copy()
        self._committed: Dict[int, Message] = {}
        self._pending: Dict[int, Message] = {}

    @property
    def dimension(self) -> int:
        return self.prior.dimension

    def derive(self, chunk_index: int) -> BeliefState:
        """Local copy of the belief for one chunk: the snapshot without that chunk's evidence."""
        if self.snapshot.point_mass or chunk_index not in self._committed:
            return self.snapshot.as_prior()
        precision, shift = self._committed[chunk_index]
        return self.snapshot.multiply(-precision, -shift)

    def fold(self, chunk_index: int, local_prior: BeliefState, local_posterior: BeliefState):
        """Record local_posterior / local_prior as the chunk's contribution for this pass."""
        self._pending[chunk_index] = local_posterior.divide(local_prior)

    def commit(self):
        """Close the pass: every pending contribution becomes committed and the snapshot is rebuilt."""
        self._committed.update(self._pending)
        self._pending = {}
        self.snapshot = self._combine(self._committed)

    def marginal(self) -> BeliefState:
        """Current shared belief, using this pass's contribution where a chunk has one."""
        contributions = dict(self._committed)
        contributions.update(self._pending)
        return self._combine(contributions)

    def contribution(self, chunk_index: int) -> Optional[Message]:
        if chunk_index in self._pending:
            return self._pending[chunk_index]
        return self._committed.get(chunk_index)

    def _combine(self, contributions: Dict[int, Message]) -> BeliefState:
        if self.prior.point_mass or not contributions:
            return self.prior.copy()
        precision = np.zeros((self.dimension, self.dimension))
        shift = np.zeros(self.dimension)
        # Fixed summation order keeps the result independent of training order
        for chunk_index in sorted(contributions):
            chunk_precision, chunk_shift = contributions[chunk_index]
            precision = precision + chunk_precision
            shift = shift + chunk_shift
        return self.prior.multiply(precision, shift)


class SharedBeliefCoordinator:
    """
    Trains per-chunk sub-models against shared per-class beliefs.

    Attributes:
        num_chunks (int): Number of pre-declared chunks
        num_classes (int): Number of classes
        dimension (int): Number of (selected) features
        solver (MarginConstraintSolver): The approximate-inference step
        passes (int): Number of completed passes over all chunks
        last_change (float): Largest change of a class mean at the last commit
        logger: Logger for progress messages
    """

    def __init__(self, num_chunks: int, num_classes: int, dimension: int,
                 solver: Optional[MarginConstraintSolver] = None, noise: float = DEFAULT_NOISE,
                 logger=None):
        validate_shape(num_classes, dimension)
        if not isinstance(num_chunks, int) or num_chunks < 1:
            raise ConfigurationError(f"Number of chunks must be a positive integer, got {num_chunks}")

        self.num_chunks = num_chunks
        self.num_classes = num_classes
        self.dimension = dimension
        self.logger = logger or get_logger(__name__)
        self.solver = solver or MarginConstraintSolver(noise=noise, logger=self.logger)
        self.passes = 0
        self.last_change = float("inf")

        self._beliefs = [SharedBelief(p, num_chunks) for p in initial_priors(num_classes, dimension)]
        self._trained_this_pass = set()
        self._ever_trained = set()
        self._observed = set()
        self._observed_this_pass = set()

    @property
    def noise(self) -> float:
        return self.solver.noise

    def get_weights(self) -> List[BeliefState]:
        """Current shared belief of every class (the priors before any chunk is trained)."""
        return [b.marginal() for b in self._beliefs]

    def get_shared_beliefs(self) -> List[SharedBelief]:
        return list(self._beliefs)

    def derive(self, chunk_index: int) -> List[BeliefState]:
        """
        Sub-model copies of every class belief for one chunk.

        Raises:
            ChunkIndexError: If chunk_index is outside [0, num_chunks)
        """
        self._check_chunk(chunk_index)
        return [b.derive(chunk_index) for b in self._beliefs]

    def train(self, batch: BatchLike, chunk_index: int) -> None:
        """
        Train one chunk and fold its evidence into the shared beliefs.

        Args:
            batch: Classified vectors of this chunk
            chunk_index (int): Index of the chunk in [0, num_chunks)

        Raises:
            ChunkIndexError: If chunk_index is out of range
        """
        self._check_chunk(chunk_index)
        data = as_classified_batch(batch, self.num_classes, self.dimension)
        present = {c for c in range(self.num_classes) if data[c].shape[0] > 0}
        # Only classes unseen by every committed pass and by this chunk stay fixed
        held = set(range(self.num_classes)) - self._observed - present

        local_priors = self.derive(chunk_index)
        local_posteriors = self.solver.solve(local_priors, data, held_classes=held)

        for belief, prior, posterior in zip(self._beliefs, local_priors, local_posteriors):
            belief.fold(chunk_index, prior, posterior)

        self._trained_this_pass.add(chunk_index)
        self._ever_trained.add(chunk_index)
        self._observed_this_pass.update(present)
        self.logger.debug(f"[+] Chunk {chunk_index} folded into shared beliefs "
                          f"({len(self._trained_this_pass)}/{self.num_chunks} this pass)")

        if len(self._trained_this_pass) == self.num_chunks:
            self._commit()

    def untrained_chunks(self) -> List[int]:
        """Chunk indices that have never contributed evidence."""
        return [k for k in range(self.num_chunks) if k not in self._ever_trained]

    def _commit(self):
        previous = [b.snapshot.mean for b in self._beliefs]
        for belief in self._beliefs:
            belief.commit()
        self.last_change = max((float(np.max(np.abs(b.snapshot.mean - m)))
                                for b, m in zip(self._beliefs, previous) if not b.prior.point_mass),
                               default=0.0)
        self._observed.update(self._observed_this_pass)
        self._observed_this_pass = set()
        self._trained_this_pass = set()
        self.passes += 1
        self.logger.info(f"[+] Shared beliefs committed after pass {self.passes} "
                         f"(largest mean change {self.last_change:.2e})")

    def _check_chunk(self, chunk_index: int):
        if not isinstance(chunk_index, (int, np.integer)) or not 0 <= chunk_index < self.num_chunks:
            raise ChunkIndexError(f"Chunk index {chunk_index} is out of range [0, {self.num_chunks})")
