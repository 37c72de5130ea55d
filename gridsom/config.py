"""
Configuration classes and enums for SOM
"""

from enum import Enum, IntEnum
from dataclasses import dataclass, asdict
from typing import Optional, Dict, Union
import numpy as np

from .exceptions import InvalidDimension


class _CodedEnum(IntEnum):
    """Integer-coded enum that also parses from names"""

    @classmethod
    def parse(cls, value: Union["_CodedEnum", int, str]):
        """Accept a member, its integer code or its (case-insensitive) name"""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = value.strip().upper().replace("-", "_")
            if key in cls.__members__:
                return cls.__members__[key]
            if key.isdigit():
                return cls(int(key))
            raise ValueError(f"{value!r} is not a valid {cls.__name__}")
        return cls(value)


class DistanceType(_CodedEnum):
    """Distance metrics used to rank candidate BMUs"""

    EUCLIDEAN = 0
    DOT_PRODUCT = 1
    COSINE_SIMILARITY = 2
    SQUARED_EUCLIDEAN = 3


class NeighborhoodKernel(_CodedEnum):
    """Update coefficient distributions around the BMU"""

    UNIFORM = 0
    EXPONENTIAL_DECAY = 1
    GAUSSIAN = 2


class SOMFileFormat(_CodedEnum):
    """Snapshot file formats"""

    YAML = 0
    KEYVALUE = 1


@dataclass
class SOMConfig:
    """Centralized configuration management for SOM parameters"""

    # Lattice shape
    width: int
    height: int
    n_features: int = 3

    # Strategies
    distance_type: DistanceType = DistanceType.EUCLIDEAN
    kernel: NeighborhoodKernel = NeighborhoodKernel.UNIFORM

    # Training defaults, used when train() is called without them
    n_iterations: int = 1000
    start_learn_rate: float = 0.1
    end_learn_rate: float = 0.01
    neighborhood_radius: Optional[float] = None  # Auto-calculated if None
    cycle_samples: bool = True

    dtype: type = np.float64

    # Reproducibility
    seed: Optional[int] = None

    # Persistence
    checkpoint_interval: Optional[int] = None
    checkpoint_dir: str = "checkpoints"
    checkpoint_format: SOMFileFormat = SOMFileFormat.YAML

    def __post_init__(self):
        """Validate the lattice shape and fill in the default radius"""
        for name in ("width", "height", "n_features"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
                raise InvalidDimension(f"{name} must be an integer, got {value!r}")
            if value <= 0:
                raise InvalidDimension(f"{name} must be positive, got {value}")
            setattr(self, name, int(value))

        self.dtype = np.dtype(self.dtype).type
        self.distance_type = DistanceType.parse(self.distance_type)
        self.kernel = NeighborhoodKernel.parse(self.kernel)
        self.checkpoint_format = SOMFileFormat.parse(self.checkpoint_format)
        if self.checkpoint_interval is not None and (
            isinstance(self.checkpoint_interval, bool)
            or not isinstance(self.checkpoint_interval, int)
            or self.checkpoint_interval <= 0
        ):
            raise ValueError(
                "checkpoint_interval must be a positive integer, "
                f"got {self.checkpoint_interval!r}"
            )

        if self.neighborhood_radius is None:
            self.neighborhood_radius = max(self.width, self.height) / 2

    def to_dict(self) -> Dict:
        """Convert config to dictionary for serialization"""
        config_dict = asdict(self)
        for key, value in config_dict.items():
            if isinstance(value, Enum):
                config_dict[key] = value.name.lower()
        config_dict["dtype"] = np.dtype(self.dtype).name
        return config_dict

    @classmethod
    def from_dict(cls, config_dict: Dict) -> "SOMConfig":
        """Create config from dictionary"""
        config_dict = dict(config_dict)
        if isinstance(config_dict.get("dtype"), str):
            config_dict["dtype"] = np.dtype(config_dict["dtype"]).type
        return cls(**config_dict)
