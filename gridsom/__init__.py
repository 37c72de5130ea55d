"""
gridsom: Self-Organizing Maps on a rectangular lattice

Exhaustive best-matching-unit search under interchangeable distance
metrics, neighborhood updates under interchangeable kernels, and snapshot
persistence in YAML or key-value form.
"""

from .core import SOM
from .config import (
    SOMConfig,
    DistanceType,
    NeighborhoodKernel,
    SOMFileFormat,
)
from .exceptions import (
    SOMError,
    InvalidDimension,
    DimensionMismatch,
    UnsupportedFormat,
    CorruptState,
    IndexOutOfRange,
)
from .callbacks import Callback, CheckpointCallback
from .persistence import Snapshot
from .observability import (
    setup_logging,
    trace_operation,
    get_metrics,
)

__version__ = "0.1.0"

__all__ = [
    "SOM",
    "SOMConfig",
    "DistanceType",
    "NeighborhoodKernel",
    "SOMFileFormat",
    "SOMError",
    "InvalidDimension",
    "DimensionMismatch",
    "UnsupportedFormat",
    "CorruptState",
    "IndexOutOfRange",
    "Callback",
    "CheckpointCallback",
    "Snapshot",
    "setup_logging",
    "trace_operation",
    "get_metrics",
]
