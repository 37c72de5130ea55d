"""
Callback system for monitoring SOM training
"""

import os
from abc import ABC, abstractmethod
from typing import Dict, TYPE_CHECKING

import structlog

from .config import SOMFileFormat
from .persistence import resolve_format

if TYPE_CHECKING:
    from .core import SOM

logger = structlog.get_logger(__name__)

SUFFIXES = {SOMFileFormat.YAML: ".yaml", SOMFileFormat.KEYVALUE: ".db"}


class Callback(ABC):
    """Abstract base class for callbacks"""

    def on_training_begin(self, som: "SOM") -> None:
        pass

    def on_iteration_begin(self, iteration: int, som: "SOM") -> None:
        pass

    @abstractmethod
    def on_iteration_end(self, iteration: int, som: "SOM", metrics: Dict) -> None:
        pass

    def on_training_end(self, som: "SOM") -> None:
        pass


class CheckpointCallback(Callback):
    """Save a snapshot every ``interval`` iterations and once training ends"""

    def __init__(
        self,
        checkpoint_dir: str,
        interval: int = 100,
        file_format: SOMFileFormat = SOMFileFormat.YAML,
    ):
        if isinstance(interval, bool) or not isinstance(interval, int) or interval <= 0:
            raise ValueError(f"Checkpoint interval must be a positive integer, got {interval!r}")
        self.checkpoint_dir = checkpoint_dir
        self.interval = interval
        self.file_format = resolve_format(file_format)
        os.makedirs(checkpoint_dir, exist_ok=True)

    def _path(self, name: str) -> str:
        return os.path.join(self.checkpoint_dir, name + SUFFIXES[self.file_format])

    def _save(self, som: "SOM", path: str) -> None:
        try:
            som.save(path, self.file_format)
            logger.debug("Checkpoint saved", path=path)
        except (IOError, OSError) as e:
            logger.warning("Failed to save checkpoint", path=path, error=str(e))

    def on_iteration_end(self, iteration: int, som: "SOM", metrics: Dict) -> None:
        if iteration % self.interval == 0:
            self._save(som, self._path(f"checkpoint_iter_{iteration}"))

    def on_training_end(self, som: "SOM") -> None:
        self._save(som, self._path("final_model"))
