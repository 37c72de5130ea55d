"""
Snapshot record and the file formats it can be stored in
"""

import dbm
import shelve
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Union

import numpy as np
import structlog
import yaml

from .config import DistanceType, NeighborhoodKernel, SOMFileFormat
from .exceptions import CorruptState, UnsupportedFormat

logger = structlog.get_logger(__name__)

FIELDS = ("W", "H", "D", "DistanceType", "NeighborhoodKernel", "weights")

# Older files name the kernel field after the neighbour distribution type
LEGACY_ALIASES = {"BMDistType": "NeighborhoodKernel"}

FORMAT_ALIASES = {"kv": SOMFileFormat.KEYVALUE, "yml": SOMFileFormat.YAML}


@dataclass
class Snapshot:
    """
    Atomic copy of everything needed to rebuild a lattice

    Construction validates the shape, the strategy codes and the weight
    count, so a snapshot that exists can always be imported.
    """

    width: int
    height: int
    n_features: int
    distance_type: DistanceType
    kernel: NeighborhoodKernel
    weights: np.ndarray

    def __post_init__(self):
        for name in ("width", "height", "n_features"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
                raise CorruptState(f"Snapshot {name} must be an integer, got {value!r}")
            if value <= 0:
                raise CorruptState(f"Snapshot {name} must be positive, got {value}")
            setattr(self, name, int(value))

        try:
            self.distance_type = DistanceType(int(self.distance_type))
            self.kernel = NeighborhoodKernel(int(self.kernel))
        except (TypeError, ValueError) as e:
            raise CorruptState(f"Invalid strategy code in snapshot: {e}")

        try:
            self.weights = np.asarray(self.weights).ravel()
        except (TypeError, ValueError) as e:
            raise CorruptState(f"Snapshot weights are not an array: {e}")
        if not np.issubdtype(self.weights.dtype, np.number):
            raise CorruptState(f"Snapshot weights must be numeric, got {self.weights.dtype}")

        expected = self.width * self.height * self.n_features
        if self.weights.size != expected:
            raise CorruptState(
                f"Snapshot has {self.weights.size} weights, expected {expected}"
            )

    def to_record(self) -> Dict[str, Any]:
        """Plain mapping with the persisted field names"""
        return {
            "W": self.width,
            "H": self.height,
            "D": self.n_features,
            "DistanceType": int(self.distance_type),
            "NeighborhoodKernel": int(self.kernel),
            "weights": self.weights.astype(np.float64).tolist(),
        }

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Snapshot":
        """Build a snapshot from a persisted mapping"""
        if not isinstance(record, Mapping):
            raise CorruptState(f"Snapshot must be a mapping, got {type(record).__name__}")

        record = dict(record)
        for legacy, name in LEGACY_ALIASES.items():
            if name not in record and legacy in record:
                record[name] = record.pop(legacy)

        missing = [name for name in FIELDS if name not in record]
        if missing:
            raise CorruptState(f"Snapshot is missing fields: {', '.join(missing)}")

        try:
            weights = np.asarray(record["weights"], dtype=np.float64)
        except (TypeError, ValueError) as e:
            raise CorruptState(f"Field weights is not a sequence of numbers: {e}")

        return cls(
            width=record["W"],
            height=record["H"],
            n_features=record["D"],
            distance_type=record["DistanceType"],
            kernel=record["NeighborhoodKernel"],
            weights=weights,
        )


class SnapshotCodec(ABC):
    """Writes and reads snapshots in one file format"""

    file_format: SOMFileFormat

    @abstractmethod
    def save(self, path: str, snapshot: Snapshot) -> None:
        pass

    @abstractmethod
    def load(self, path: str) -> Snapshot:
        pass


class YamlCodec(SnapshotCodec):
    """Human-readable mapping; floats keep their round-tripping repr"""

    file_format = SOMFileFormat.YAML

    def save(self, path: str, snapshot: Snapshot) -> None:
        try:
            with open(path, "w") as f:
                yaml.safe_dump(
                    snapshot.to_record(), f, default_flow_style=None, sort_keys=False
                )
        except (IOError, OSError) as e:
            raise IOError(f"Failed to save snapshot to {path}: {e}")

    def load(self, path: str) -> Snapshot:
        try:
            with open(path, "r") as f:
                record = yaml.safe_load(f)
        except (IOError, OSError) as e:
            raise IOError(f"Failed to load snapshot from {path}: {e}")
        except yaml.YAMLError as e:
            raise CorruptState(f"Snapshot {path} is not valid YAML: {e}")
        return Snapshot.from_record(record)


class KeyValueCodec(SnapshotCodec):
    """One key per field in a shelve store"""

    file_format = SOMFileFormat.KEYVALUE

    def save(self, path: str, snapshot: Snapshot) -> None:
        try:
            with shelve.open(path, flag="n") as db:
                for key, value in snapshot.to_record().items():
                    db[key] = value
        except dbm.error as e:
            raise IOError(f"Failed to save snapshot to {path}: {e}")

    def load(self, path: str) -> Snapshot:
        try:
            with shelve.open(path, flag="r") as db:
                record = {key: db[key] for key in db.keys()}
        except dbm.error as e:
            raise IOError(f"Failed to load snapshot from {path}: {e}")
        return Snapshot.from_record(record)


CODECS: Dict[SOMFileFormat, SnapshotCodec] = {
    codec.file_format: codec for codec in (YamlCodec(), KeyValueCodec())
}


def resolve_format(file_format: Union[SOMFileFormat, int, str]) -> SOMFileFormat:
    """Normalize a format tag, raising UnsupportedFormat for unknown tags"""
    if isinstance(file_format, str) and file_format.strip().lower() in FORMAT_ALIASES:
        return FORMAT_ALIASES[file_format.strip().lower()]
    try:
        return SOMFileFormat.parse(file_format)
    except (TypeError, ValueError):
        raise UnsupportedFormat(f"Unsupported file format: {file_format!r}")


def get_codec(file_format: Union[SOMFileFormat, int, str]) -> SnapshotCodec:
    return CODECS[resolve_format(file_format)]


def save_snapshot(path: str, snapshot: Snapshot, file_format=SOMFileFormat.YAML) -> None:
    codec = get_codec(file_format)
    codec.save(str(path), snapshot)
    logger.debug("Snapshot saved", path=str(path), format=codec.file_format.name)


def load_snapshot(path: str, file_format=SOMFileFormat.YAML) -> Snapshot:
    codec = get_codec(file_format)
    snapshot = codec.load(str(path))
    logger.debug("Snapshot loaded", path=str(path), format=codec.file_format.name)
    return snapshot
