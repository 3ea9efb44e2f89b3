#!/usr/bin/env python3
"""
DocQuery - Bayes Point Machines for Ranked Document Records

This module defines the abstract base class for Bayes Point Machines.
It establishes the common interface that concrete machines must provide
and the settings they share: the number of features in a record, the
feature selection and the noise level.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence

import numpy as np

from docquery.bpm.errors import ConfigurationError
from docquery.bpm.feature_selection import selected_dimension, validate_feature_selection
from docquery.bpm.metrics import evaluate
from docquery.bpm.solver import DEFAULT_MAX_ITERATIONS, DEFAULT_NOISE, DEFAULT_TOLERANCE, MarginConstraintSolver
from docquery.dataset import ClassifiedDataset, UnclassifiedDataset
from docquery.utils.logger import get_logger


class BaseMachine(ABC):
    """
    Abstract base class for Bayes Point Machine implementations.

    Attributes:
        num_features (int): Number of features in each data record
        feature_selection (tuple): Selected 1-based features (empty for all)
        noise (float): Variance of the Gaussian noise on each class score
        logger: Logger for recording progress and errors
        show_progress (bool): Show a progress bar while training in chunks
    """

    def __init__(self, num_features: int, feature_selection: Optional[Sequence[int]] = None,
                 noise: float = DEFAULT_NOISE, logger=None):
        """
        Initialize the settings shared by every machine.

        Args:
            num_features: Number of features in each data record
            feature_selection: Optional 1-based features to keep, in order
            noise: Noise level

        Raises:
            ConfigurationError: On a non-positive feature count or noise level,
                or an invalid feature selection
        """
        if not isinstance(num_features, int) or num_features < 1:
            raise ConfigurationError(f"Number of features must be a positive integer, got {num_features}")
        if not noise > 0:
            raise ConfigurationError(f"Noise level must be positive, got {noise}")

        self.num_features = num_features
        self.feature_selection = validate_feature_selection(feature_selection, num_features)
        self.noise = noise
        self.logger = logger or get_logger(__name__)
        self.show_progress = False

    @property
    def dimension(self) -> int:
        """Number of features in the vectors the machine actually uses."""
        return selected_dimension(self.num_features, self.feature_selection)

    def create_dataset(self, file_path: str) -> UnclassifiedDataset:
        return UnclassifiedDataset(file_path, self.num_features, self.feature_selection, logger=self.logger)

    def build_solver(self, noise: float, max_iterations: int = DEFAULT_MAX_ITERATIONS,
                     tolerance: float = DEFAULT_TOLERANCE, damping: float = 1.0) -> MarginConstraintSolver:
        return MarginConstraintSolver(noise=noise, max_iterations=max_iterations, tolerance=tolerance,
                                      damping=damping, logger=self.logger)

    @abstractmethod
    def train(self, file_path: str, chunk_size: Optional[int] = None) -> None:
        """
        Train the machine on a record file.

        Args:
            file_path: Training record file
            chunk_size: Read and train in chunks of this many records
        """
        pass

    @abstractmethod
    def test(self, file_path: str) -> List[np.ndarray]:
        """
        Predict every record of a test file.

        Args:
            file_path: Test record file

        Returns:
            List[np.ndarray]: One distribution per record, in file order
        """
        pass

    @abstractmethod
    def test_vectors(self, vectors) -> List[np.ndarray]:
        """
        Predict already-selected feature vectors.

        Args:
            vectors: Feature vectors of the machine's dimension

        Returns:
            List[np.ndarray]: One distribution per vector
        """
        pass

    def evaluate(self, file_path: str) -> Dict[str, float]:
        """
        Evaluate the machine on a labelled record file.

        Returns:
            Dict[str, float]: accuracy, precision, recall, f1
        """
        records = self.create_dataset(file_path).get_data_vectors()
        distributions = self.test_vectors([r.feature_vector for r in records])
        metrics = evaluate(distributions, [self.label_of(r.class_id) for r in records])

        self.logger.info(f"[+] Evaluated {type(self).__name__} on {len(records)} records")
        for m, v in metrics.items():
            self.logger.info(f"  {m}: {v:.4f}")
        return metrics

    def label_of(self, class_id: int) -> int:
        """Class index a record's class id is scored against."""
        return class_id


class ClassifiedVectorsMachine(BaseMachine):
    """
    Base class for machines trained on vectors grouped by class.

    Attributes:
        num_classes (int): Number of classes
    """

    def __init__(self, num_classes: int, num_features: int, feature_selection: Optional[Sequence[int]] = None,
                 noise: float = DEFAULT_NOISE, logger=None):
        if not isinstance(num_classes, int) or num_classes < 2:
            raise ConfigurationError(f"Number of classes must be an integer >= 2, got {num_classes}")
        super().__init__(num_features, feature_selection, noise, logger)
        self.num_classes = num_classes

    def create_classified_dataset(self, file_path: str) -> ClassifiedDataset:
        return ClassifiedDataset(file_path, self.num_features, self.num_classes,
                                 self.feature_selection, logger=self.logger)
