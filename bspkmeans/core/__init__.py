from .errors import (
    KMeansError,
    ConfigurationError,
    ProtocolViolationError,
    RecoveryError,
    InputError,
)
from .config import KMeansConfig, ExecutionConfig, CheckpointConfig, EmptyClusterPolicy
from .distance import (
    DistanceMeasure,
    EuclideanDistanceMeasure,
    get_distance_measure,
    register_distance_measure,
)
from .assigner import NearestCentroidAssigner, RoundAssignment, AssignerState
from .aggregator import ClusterAccumulator, accumulate, merge_accumulators, reduce_partials
from .averager import CentroidCollector, average
from .termination import (
    TerminationCriteria,
    TerminateOnMaxIterations,
    TerminateOnConvergence,
    AnyOf,
)
from .barrier import RoundBarrier
from .checkpoint import CheckpointStore, IterationSnapshot
from .controller import RoundController, IterationResult

# KMeans/KMeansModel импортируются из bspkmeans.core.kmeans: модуль зависит
# от bspkmeans.data, который сам импортирует bspkmeans.core.errors

__all__ = [
    "KMeansError",
    "ConfigurationError",
    "ProtocolViolationError",
    "RecoveryError",
    "InputError",
    "KMeansConfig",
    "ExecutionConfig",
    "CheckpointConfig",
    "EmptyClusterPolicy",
    "DistanceMeasure",
    "EuclideanDistanceMeasure",
    "get_distance_measure",
    "register_distance_measure",
    "NearestCentroidAssigner",
    "RoundAssignment",
    "AssignerState",
    "ClusterAccumulator",
    "accumulate",
    "merge_accumulators",
    "reduce_partials",
    "CentroidCollector",
    "average",
    "TerminationCriteria",
    "TerminateOnMaxIterations",
    "TerminateOnConvergence",
    "AnyOf",
    "RoundBarrier",
    "CheckpointStore",
    "IterationSnapshot",
    "RoundController",
    "IterationResult",
]
