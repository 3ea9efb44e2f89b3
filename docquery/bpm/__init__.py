# docquery/bpm/__init__.py

from .errors import (
    BayesPointMachineError,
    ConfigurationError,
    FeatureSelectionError,
    DimensionMismatchError,
    BatchError,
    ChunkIndexError,
    NotTrainedError,
    ConvergenceError
)
from .belief import BeliefState, REFERENCE_CLASS
from .solver import MarginConstraintSolver
from .trainers import BatchTrainer, IncrementalTrainer
from .shared import SharedBelief, SharedBeliefCoordinator
from .predictor import Predictor, most_probable
from .feature_selection import validate_feature_selection
from .metrics import classification_metrics, confusion_matrix, evaluate
from .base_machine import BaseMachine, ClassifiedVectorsMachine
from .machine import MultiClassMachine, SharedVariablesMachine
from .binary import BinaryBayesPointMachine
