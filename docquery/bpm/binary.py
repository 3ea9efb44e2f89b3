#!/usr/bin/env python3
"""
DocQuery - Bayes Point Machines for Ranked Document Records

This module provides the binary Bayes Point Machine: one weight vector with a
standard normal prior, trained so that relevant records (class id 1) satisfy
<w, v> + e > 0 and every other record <w, v> + e < 0, with e Gaussian noise.

It is expressed as a two-class problem whose reference class is pinned at
zero. Each class score then carries half the noise, so the score difference
carries exactly the noise of the single-vector constraint. The weight learns
from every chunk, including chunks with no relevant records.
"""

from typing import List, Optional, Sequence

import numpy as np
from tqdm import tqdm

from docquery.bpm.base_machine import BaseMachine
from docquery.bpm.belief import BeliefState
from docquery.bpm.predictor import Predictor
from docquery.bpm.solver import DEFAULT_MAX_ITERATIONS, DEFAULT_NOISE, DEFAULT_TOLERANCE, MarginConstraintSolver
from docquery.bpm.trainers import IncrementalTrainer
from docquery.dataset import DataVector

RELEVANT_CLASS_ID = 1


class BinaryBayesPointMachine(BaseMachine):
    """
    Relevant / not-relevant Bayes Point Machine.

    Attributes:
        trainer (IncrementalTrainer): Two-class trainer; class 1 is "relevant"
        predictor (Predictor): Predictor over the two class scores
    """

    def __init__(self, num_features: int, feature_selection: Optional[Sequence[int]] = None,
                 noise: float = DEFAULT_NOISE, max_iterations: int = DEFAULT_MAX_ITERATIONS,
                 tolerance: float = DEFAULT_TOLERANCE, damping: float = 1.0, logger=None):
        super().__init__(num_features, feature_selection, noise, logger)
        solver = MarginConstraintSolver(noise=noise / 2, max_iterations=max_iterations, tolerance=tolerance,
                                        damping=damping, hold_absent_classes=False, logger=self.logger)
        self.trainer = IncrementalTrainer(2, self.dimension, solver, logger=self.logger)
        self.predictor = Predictor(noise / 2)

        self.logger.info(f"[+] Binary machine initialized: {self.dimension} features, noise {noise}")

    @property
    def is_trained(self) -> bool:
        return self.trainer.is_trained

    def train(self, file_path: str, chunk_size: Optional[int] = None) -> None:
        """
        Train on a record file.

        Without chunk_size the whole file is one batch and any earlier
        training is discarded; with chunk_size every chunk refines the
        current weight belief.
        """
        dataset = self.create_dataset(file_path)
        if chunk_size is None:
            self.logger.info(f"[+] Training binary machine on {file_path} as a single batch")
            self.trainer.restart(self.to_batch(dataset.get_data_vectors()))
            return

        self.logger.info(f"[+] Training binary machine on {file_path} in chunks of {chunk_size}")
        for chunk in tqdm(dataset.iter_chunks(chunk_size), desc="Training chunks",
                          disable=not self.show_progress):
            self.trainer.train_incremental(self.to_batch(chunk))

    @staticmethod
    def to_batch(records: Sequence[DataVector]) -> List[List[np.ndarray]]:
        """Group records into [not relevant, relevant] vectors."""
        batch = [[], []]
        for r in records:
            batch[int(r.class_id == RELEVANT_CLASS_ID)].append(r.feature_vector)
        return batch

    def get_posterior(self) -> BeliefState:
        """Belief over the weight vector."""
        return self.trainer.get_posteriors()[1]

    def test(self, file_path: str) -> List[np.ndarray]:
        records = self.create_dataset(file_path).get_data_vectors()
        return self.test_vectors([r.feature_vector for r in records])

    def test_vectors(self, vectors) -> List[np.ndarray]:
        """Distributions [P(not relevant), P(relevant)] per vector."""
        return self.predictor.predict(self.trainer.get_posteriors(), vectors)

    def probabilities(self, vectors) -> np.ndarray:
        """P(relevant) per vector."""
        return self.predictor.predict_matrix(self.trainer.get_posteriors(), vectors)[:, 1]

    def label_of(self, class_id: int) -> int:
        return int(class_id == RELEVANT_CLASS_ID)
