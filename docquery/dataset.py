# docquery/dataset.py
"""
DocQuery - Bayes Point Machines for Ranked Document Records

Module: dataset.py

Readers for line-oriented ranked document records of the form

    <class> qid:<query id> 1:<value> 2:<value> ... n:<value> #docid = <document id>

with tokens separated by single spaces. Records can be read all at once or
streamed in fixed-size chunks, either as a flat list of DataVector records
(UnclassifiedDataset) or grouped by class index (ClassifiedDataset).
Feature selection is applied while parsing, so vectors come out holding only
the selected features, in selection order.
"""

import math
import re
from pathlib import Path
from typing import Iterator, List, NamedTuple, Optional, Sequence

import numpy as np

from docquery.bpm.feature_selection import selection_index, validate_feature_selection
from docquery.bpm.vectors import feature_vector
from docquery.utils.logger import get_logger

RECORD_DELIMITER = " "
QUERY_ID_PREFIX = "qid"
DOCUMENT_ID_MARKER = "#docid"

_INTEGER_PATTERN = re.compile(r"^\s*[+-]?\d+\s*$")
_FLOAT_PATTERN = re.compile(r"^\s*[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?\s*$")


class DatasetFormatError(ValueError):
    """Raised when a data record does not follow the record grammar."""


class DataVector(NamedTuple):
    """One parsed record."""
    class_id: int
    query_id: str
    feature_vector: np.ndarray
    document_id: str


class Dataset:
    """
    Base record parser shared by the classified and unclassified readers.

    Attributes:
        filepath (Path): Path to the record file
        num_features (int): Number of features in each record
        feature_selection (tuple): Selected 1-based features (empty for all)
        skip_parsing_errors (bool): Skip malformed records instead of raising
        logger: Logger for status messages
    """

    def __init__(self, filepath, num_features: int, feature_selection: Optional[Sequence[int]] = None,
                 logger=None):
        """
        Initialize the dataset reader.

        Args:
            filepath (str or Path): Path to the record file (opened lazily)
            num_features (int): Number of features in each record
            feature_selection: Optional 1-based feature numbers to keep

        Raises:
            FeatureSelectionError: If the selection has duplicates or
                features outside the record's range
        """
        self.filepath = Path(filepath)
        self.num_features = num_features
        self.feature_selection = validate_feature_selection(feature_selection, num_features)
        self._selected = selection_index(self.feature_selection)
        self.skip_parsing_errors = True
        self.logger = logger or get_logger(__name__)
        self.skipped_records = 0

    # --- Record grammar ---

    def create_data_vector(self, record: str) -> DataVector:
        """
        Parse one record line.

        Args:
            record (str): A record without its line terminator

        Returns:
            DataVector: The parsed record

        Raises:
            DatasetFormatError: If the record is malformed
        """
        tokens = record.split(RECORD_DELIMITER)
        if len(tokens) < self.num_features + 3:
            raise DatasetFormatError(
                f"The expected number of items in the record is {self.num_features + 3}, "
                f"but {len(tokens)} items have been found: '{record}'")

        feature_tokens = tokens[2:self.num_features + 2]
        values = (self.parse_selected_features(feature_tokens) if self._selected
                  else self.parse_features(feature_tokens))

        return DataVector(
            class_id=self.parse_class_id(tokens[0]),
            query_id=self.parse_query_id(tokens[1]),
            feature_vector=feature_vector(values),
            document_id=self.parse_document_id(tokens[self.num_features + 2:]),
        )

    @staticmethod
    def parse_class_id(token: str) -> int:
        if not _INTEGER_PATTERN.match(token):
            raise DatasetFormatError(f"The format of class ID ({token}) is wrong.")
        return int(token)

    @staticmethod
    def parse_query_id(token: str) -> str:
        parts = token.split(":", 1)
        if len(parts) != 2 or parts[0] != QUERY_ID_PREFIX or parts[1] == "":
            raise DatasetFormatError(f"The format of query ID ({token}) is wrong.")
        return parts[1]

    @staticmethod
    def parse_document_id(rest_tokens: Sequence[str]) -> str:
        if len(rest_tokens) <= 2:
            raise DatasetFormatError(
                f"Failed to parse the document ID record since the number of tokens is {len(rest_tokens)}")
        if rest_tokens[0] != DOCUMENT_ID_MARKER or rest_tokens[1] != "=" or rest_tokens[2] == "":
            raise DatasetFormatError(
                f"Failed to parse the document ID record: '{rest_tokens[0]} {rest_tokens[1]} {rest_tokens[2]}'")
        return rest_tokens[2]

    @staticmethod
    def parse_feature(token: str, index: int) -> float:
        """
        Parse a single `<index>:<value>` token.

        Args:
            token (str): Feature token
            index (int): Expected 1-based feature number

        Raises:
            DatasetFormatError: On a wrong layout, feature number or value
        """
        parts = token.split(":")
        if (len(parts) != 2 or not _INTEGER_PATTERN.match(parts[0]) or int(parts[0]) != index
                or not _FLOAT_PATTERN.match(parts[1])):
            raise DatasetFormatError(f"Failed to parse the feature at position {index}: '{token}'")

        value = float(parts[1])
        if not math.isfinite(value):
            raise DatasetFormatError(f"Feature at position {index} is not finite: '{token}'")
        return value

    def parse_features(self, feature_tokens: Sequence[str]) -> List[float]:
        """
        Parse all features in order.

        Raises:
            IndexError: If fewer tokens than num_features are supplied
        """
        if len(feature_tokens) < self.num_features:
            raise IndexError(
                f"Expected {self.num_features} feature tokens, got {len(feature_tokens)}")
        return [self.parse_feature(feature_tokens[i], i + 1) for i in range(self.num_features)]

    def parse_selected_features(self, feature_tokens: Sequence[str]) -> List[float]:
        """Parse only the selected features, placed in selection order."""
        if len(feature_tokens) < self.num_features:
            raise IndexError(
                f"Expected {self.num_features} feature tokens, got {len(feature_tokens)}")
        values = [0.0] * len(self._selected)
        for feature, position in self._selected.items():
            values[position] = self.parse_feature(feature_tokens[feature - 1], feature)
        return values

    # --- Reading ---

    def _read_records(self) -> Iterator[Optional[DataVector]]:
        """
        Yield one entry per line: the parsed record, or None for a skipped line.

        Raises:
            DatasetFormatError: On a malformed line when skip_parsing_errors is False
        """
        self.skipped_records = 0
        with open(self.filepath, "r", encoding="utf-8") as f:
            for line in f:
                try:
                    yield self.create_data_vector(line.rstrip("\r\n"))
                except DatasetFormatError:
                    if not self.skip_parsing_errors:
                        raise
                    self.skipped_records += 1
                    yield None


class UnclassifiedDataset(Dataset):
    """Reader returning records in file order, regardless of class."""

    def get_data_vectors(self) -> List[DataVector]:
        """Return every parsable record in the file."""
        vectors = [v for v in self._read_records() if v is not None]
        if self.skipped_records:
            self.logger.warning(f"[!] Skipped {self.skipped_records} malformed records in {self.filepath}")
        return vectors

    def iter_chunks(self, chunk_size: int) -> Iterator[List[DataVector]]:
        """
        Stream records in chunks of chunk_size lines.

        Skipped lines count towards the chunk size; chunks left without any
        parsable record are not yielded.
        """
        if chunk_size < 1:
            raise ValueError(f"Chunk size must be positive, got {chunk_size}")

        chunk, lines = [], 0
        for record in self._read_records():
            lines += 1
            if record is not None:
                chunk.append(record)
            if lines == chunk_size:
                if chunk:
                    yield chunk
                chunk, lines = [], 0
        if chunk:
            yield chunk


class ClassifiedDataset(Dataset):
    """
    Reader grouping feature vectors by class index.

    Attributes:
        num_classes (int): Number of classes; valid class ids are 0..num_classes-1
        skip_class_out_of_range (bool): Drop records with an invalid class id
            instead of raising
    """

    def __init__(self, filepath, num_features: int, num_classes: int,
                 feature_selection: Optional[Sequence[int]] = None, logger=None):
        super().__init__(filepath, num_features, feature_selection, logger)
        self.num_classes = num_classes
        self.skip_class_out_of_range = True

    def get_classified_vectors(self) -> List[List[np.ndarray]]:
        """
        Return the vectors of the whole file grouped by class.

        Returns:
            List[List[np.ndarray]]: Index is the class id, content the vectors of that class
        """
        vectors = self._empty_groups()
        for record in self._read_records():
            if record is not None and self._check_class_id(record.class_id):
                vectors[record.class_id].append(record.feature_vector)
        if self.skipped_records:
            self.logger.warning(f"[!] Skipped {self.skipped_records} malformed records in {self.filepath}")
        return vectors

    def iter_classified_chunks(self, chunk_size: int) -> Iterator[List[List[np.ndarray]]]:
        """
        Stream class-grouped vectors in chunks of chunk_size lines.

        Skipped lines and out-of-range classes count towards the chunk size;
        chunks left without any vector are not yielded.
        """
        if chunk_size < 1:
            raise ValueError(f"Chunk size must be positive, got {chunk_size}")

        vectors, lines = self._empty_groups(), 0
        for record in self._read_records():
            lines += 1
            if record is not None and self._check_class_id(record.class_id):
                vectors[record.class_id].append(record.feature_vector)
            if lines == chunk_size:
                if any(vectors):
                    yield vectors
                vectors, lines = self._empty_groups(), 0
        if any(vectors):
            yield vectors

    def _empty_groups(self) -> List[List[np.ndarray]]:
        return [[] for _ in range(self.num_classes)]

    def _check_class_id(self, class_id: int) -> bool:
        if 0 <= class_id < self.num_classes:
            return True
        if self.skip_class_out_of_range:
            return False
        raise DatasetFormatError(f"Class ID ({class_id}) is out of pre-defined range.")
