#!/usr/bin/env python3
"""
DocQuery - Bayes Point Machines for Ranked Document Records

This module provides the multi-class machines that pair a training strategy
with the predictor behind one train/test interface:

* MultiClassMachine trains on a whole file at once, or incrementally chunk
  by chunk, and can be saved to and loaded from disk.
* SharedVariablesMachine splits the training file into a fixed number of
  chunks, each updating the shared per-class beliefs through its own
  sub-model, and repeats passes over the chunks until the beliefs settle.
"""

import os
import pickle
from typing import List, Optional, Sequence

import numpy as np
from tqdm import tqdm

from docquery.bpm.base_machine import ClassifiedVectorsMachine
from docquery.bpm.belief import BeliefState
from docquery.bpm.errors import ConfigurationError
from docquery.bpm.predictor import Predictor
from docquery.bpm.shared import SharedBeliefCoordinator
from docquery.bpm.solver import DEFAULT_MAX_ITERATIONS, DEFAULT_NOISE, DEFAULT_TOLERANCE
from docquery.bpm.trainers import IncrementalTrainer
from docquery.bpm.vectors import BatchLike

DEFAULT_TRAIN_CHUNK_SIZE = 1000
DEFAULT_SHARED_PASSES = 10
DEFAULT_PASS_TOLERANCE = 1e-4


class MultiClassMachine(ClassifiedVectorsMachine):
    """
    Multi-class Bayes Point Machine with batch and incremental training.

    Attributes:
        trainer (IncrementalTrainer): Holds the per-class beliefs
        predictor (Predictor): Computes class distributions from the beliefs
    """

    def __init__(self, num_classes: int, num_features: int, feature_selection: Optional[Sequence[int]] = None,
                 noise: float = DEFAULT_NOISE, max_iterations: int = DEFAULT_MAX_ITERATIONS,
                 tolerance: float = DEFAULT_TOLERANCE, damping: float = 1.0, logger=None):
        super().__init__(num_classes, num_features, feature_selection, noise, logger)
        solver = self.build_solver(noise, max_iterations, tolerance, damping)
        self.trainer = IncrementalTrainer(num_classes, self.dimension, solver, logger=self.logger)
        self.predictor = Predictor(noise)

        self.logger.info(f"[+] Multi-class machine initialized: {num_classes} classes, "
                         f"{self.dimension} features, noise {noise}")

    def train(self, file_path: str, chunk_size: Optional[int] = None) -> None:
        """
        Train on a record file.

        Without chunk_size the whole file is one batch and any earlier
        training is discarded. With chunk_size each chunk refines the current
        beliefs in turn.
        """
        dataset = self.create_classified_dataset(file_path)
        if chunk_size is None:
            self.logger.info(f"[+] Training on {file_path} as a single batch")
            self.train_batch(dataset.get_classified_vectors())
            return

        self.logger.info(f"[+] Training incrementally on {file_path} in chunks of {chunk_size}")
        chunks = dataset.iter_classified_chunks(chunk_size)
        for chunk in tqdm(chunks, desc="Training chunks", disable=not self.show_progress):
            self.train_incremental(chunk)
        self.logger.info(f"[+] Trained on {self.trainer.updates} chunks")

    def train_batch(self, batch: BatchLike) -> None:
        """Train from the priors on one classified batch."""
        self.trainer.restart(batch)

    def train_incremental(self, batch: BatchLike) -> None:
        """Refine the current beliefs with one classified batch."""
        self.trainer.train_incremental(batch)

    def get_posteriors(self) -> List[BeliefState]:
        return self.trainer.get_posteriors()

    def test(self, file_path: str) -> List[np.ndarray]:
        records = self.create_dataset(file_path).get_data_vectors()
        return self.test_vectors([r.feature_vector for r in records])

    def test_vectors(self, vectors) -> List[np.ndarray]:
        return self.predictor.predict(self.trainer.get_posteriors(), vectors)

    def save(self, models_dir: str) -> bool:
        """
        Save the trained beliefs and settings to the models directory.

        Returns:
            bool: Whether the save was successful
        """
        self.logger.info(f"[+] Saving model to {models_dir}")

        try:
            os.makedirs(models_dir, exist_ok=True)
            state = {
                "num_classes": self.num_classes,
                "num_features": self.num_features,
                "feature_selection": list(self.feature_selection),
                "noise": self.noise,
                "posteriors": self.trainer.get_posteriors(),
            }
            model_path = os.path.join(models_dir, "model.pkl")
            with open(model_path, 'wb') as f:
                pickle.dump(state, f)

            self.logger.info(f"[+] Model saved successfully")
            return True

        except Exception as e:
            self.logger.error(f"[!] Failed to save model: {e}")
            return False

    @classmethod
    def load(cls, models_dir: str, logger=None) -> "MultiClassMachine":
        """
        Load a machine saved with save().

        Args:
            models_dir: Directory containing model.pkl

        Returns:
            MultiClassMachine: A trained machine
        """
        model_path = os.path.join(models_dir, "model.pkl")
        with open(model_path, 'rb') as f:
            state = pickle.load(f)

        instance = cls(state["num_classes"], state["num_features"], state["feature_selection"],
                       state["noise"], logger=logger)
        instance.trainer.trainer.set_posteriors(state["posteriors"])
        instance.trainer.updates = 1

        instance.logger.info(f"[+] Loaded model from {models_dir}")
        return instance


class SharedVariablesMachine(ClassifiedVectorsMachine):
    """
    Multi-class Bayes Point Machine with beliefs shared across training chunks.

    Attributes:
        num_chunks (int): Number of training chunks the shared beliefs expect
        passes (int): Most passes over the chunks train() makes
        pass_tolerance (float): train() stops once a pass moves no class mean further than this
        coordinator (SharedBeliefCoordinator): Holds the shared beliefs
        predictor (Predictor): Computes class distributions from the beliefs
    """

    def __init__(self, num_classes: int, num_features: int, num_chunks: int,
                 feature_selection: Optional[Sequence[int]] = None, noise: float = DEFAULT_NOISE,
                 max_iterations: int = DEFAULT_MAX_ITERATIONS, tolerance: float = DEFAULT_TOLERANCE,
                 damping: float = 1.0, passes: int = DEFAULT_SHARED_PASSES,
                 pass_tolerance: float = DEFAULT_PASS_TOLERANCE, logger=None):
        super().__init__(num_classes, num_features, feature_selection, noise, logger)
        if not isinstance(passes, int) or passes < 1:
            raise ConfigurationError(f"Number of passes must be a positive integer, got {passes}")
        solver = self.build_solver(noise, max_iterations, tolerance, damping)
        self.coordinator = SharedBeliefCoordinator(num_chunks, num_classes, self.dimension, solver,
                                                   logger=self.logger)
        self.num_chunks = num_chunks
        self.passes = passes
        self.pass_tolerance = pass_tolerance
        self.predictor = Predictor(noise)

        self.logger.info(f"[+] Shared-variables machine initialized: {num_classes} classes, "
                         f"{self.dimension} features, {num_chunks} chunks, noise {noise}")

    def train(self, file_path: str, chunk_size: Optional[int] = None, passes: Optional[int] = None) -> None:
        """
        Train on a record file split into chunks.

        Chunks are numbered in file order; reading stops after num_chunks
        chunks. Each pass re-reads the file and refines every chunk again.
        Training stops early once a pass changes no class mean by more than
        pass_tolerance, and after a pass that could not fill every chunk.

        Args:
            file_path: Training record file
            chunk_size: Records per chunk (DEFAULT_TRAIN_CHUNK_SIZE if omitted)
            passes: Most passes over the chunks (self.passes if omitted)
        """
        chunk_size = chunk_size or DEFAULT_TRAIN_CHUNK_SIZE
        passes = passes or self.passes
        dataset = self.create_classified_dataset(file_path)

        for p in range(passes):
            self.logger.info(f"[+] Shared training pass {p + 1}/{passes} on {file_path} "
                             f"in chunks of {chunk_size}")
            count = 0
            chunks = dataset.iter_classified_chunks(chunk_size)
            for chunk in tqdm(chunks, desc="Training chunks", total=self.num_chunks,
                              disable=not self.show_progress):
                self.train_chunk(chunk, count)
                count += 1
                if count == self.num_chunks:
                    break

            if count < self.num_chunks:
                self.logger.warning(f"[!] Only {count} of {self.num_chunks} chunks could be filled "
                                    f"from {file_path}")
                return

            if self.coordinator.last_change < self.pass_tolerance:
                self.logger.info(f"[+] Shared beliefs settled after {self.coordinator.passes} passes")
                return

    def train_chunk(self, batch: BatchLike, chunk_index: int) -> None:
        """Train one chunk's sub-model and fold it into the shared beliefs."""
        self.coordinator.train(batch, chunk_index)

    def get_weights(self) -> List[BeliefState]:
        return self.coordinator.get_weights()

    def test(self, file_path: str) -> List[np.ndarray]:
        records = self.create_dataset(file_path).get_data_vectors()
        return self.test_vectors([r.feature_vector for r in records])

    def test_vectors(self, vectors) -> List[np.ndarray]:
        untrained = self.coordinator.untrained_chunks()
        if untrained:
            self.logger.warning(f"[!] {len(untrained)} of {self.num_chunks} chunks were never trained; "
                                f"they contribute no evidence")
        return self.predictor.predict(self.coordinator.get_weights(), vectors)
