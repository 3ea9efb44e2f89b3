# docquery/bpm/errors.py
"""
DocQuery - Bayes Point Machines for Ranked Document Records

Module: errors.py

Exception hierarchy shared by the belief, solver, trainer and machine
modules. Every error raised by the engine derives from
BayesPointMachineError so callers can catch the whole family at once.
"""


class BayesPointMachineError(Exception):
    """Base class for all Bayes Point Machine errors."""


class ConfigurationError(BayesPointMachineError):
    """
    Raised at construction time for invalid settings: class counts below two,
    non-positive dimensions, chunk counts or noise levels, and duplicate or
    out-of-range feature selections.
    """


class FeatureSelectionError(ConfigurationError, IndexError):
    """Raised for feature selections with duplicate or out-of-range indices."""


class DimensionMismatchError(BayesPointMachineError):
    """Raised when vectors and beliefs disagree on the number of features."""


class BatchError(BayesPointMachineError):
    """Raised for malformed training batches (wrong class count, no vectors)."""


class ChunkIndexError(BayesPointMachineError, IndexError):
    """Raised when a chunk index falls outside the declared chunk range."""


class NotTrainedError(BayesPointMachineError):
    """Raised when posteriors are requested before any training call."""


class ConvergenceError(BayesPointMachineError):
    """Raised when the margin-constraint solve does not converge or blows up."""
