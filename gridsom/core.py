"""
Core SOM implementation
"""

import time
from dataclasses import replace
from datetime import datetime
from typing import Optional, List, Dict, Any, Tuple

import numpy as np
import structlog
from tqdm import tqdm

from .config import SOMConfig, SOMFileFormat
from .callbacks import Callback, CheckpointCallback
from .distance import get_metric
from .exceptions import InvalidDimension, DimensionMismatch, IndexOutOfRange, CorruptState
from .neighborhood import get_kernel
from .observability import log_training_metrics, log_bmu_query, log_snapshot_operation
from .persistence import Snapshot, save_snapshot, load_snapshot, resolve_format
from .visualization import SOMVisualizer

logger = structlog.get_logger(__name__)


def round_half_away(value: float) -> int:
    """Round to the nearest integer, halves away from zero"""
    return int(np.sign(value) * np.floor(np.abs(value) + 0.5))


class SOM:
    """
    Self-Organizing Map on a rectangular lattice

    The codebook lives in one flat buffer of ``height * width * n_features``
    scalars, row-major with the feature axis innermost, so node ``(i, j)``
    starts at ``n_features * (i * width + j)``.
    """

    def __init__(
        self,
        config: SOMConfig,
        verbose: bool = True,
        rng: Optional[np.random.RandomState] = None,
    ):
        """
        Initialize SOM with configuration

        Args:
            config: SOMConfig object with all parameters
            verbose: Whether to show training progress
            rng: Random generator for weight initialization; built from
                config.seed when omitted
        """
        self.config = config
        self.verbose = verbose

        if rng is not None:
            self.rng = rng
        elif config.seed is not None:
            self.rng = np.random.RandomState(config.seed)
        else:
            self.rng = np.random.RandomState()

        self.metric = get_metric(config.distance_type)
        self.kernel = get_kernel(config.kernel)

        self.metadata = {
            "creation_time": datetime.now().isoformat(),
            "total_iterations": 0,
            "total_train_calls": 0,
            "config": config.to_dict(),
        }

        self.callbacks: List[Callback] = []
        # Per-iteration curves of the most recent train() call
        self.training_history: Dict[str, np.ndarray] = {}

        self.weights = self._random_weights()

    @classmethod
    def create(
        cls, width: int, height: int, n_features: int, **kwargs
    ) -> "SOM":
        """Build a randomly initialized lattice; extra keywords go to SOMConfig"""
        verbose = kwargs.pop("verbose", True)
        rng = kwargs.pop("rng", None)
        config = SOMConfig(width=width, height=height, n_features=n_features, **kwargs)
        return cls(config, verbose=verbose, rng=rng)

    def _random_weights(self) -> np.ndarray:
        dtype = self.config.dtype
        size = self.config.width * self.config.height * self.config.n_features
        weights = self.rng.random(size).astype(dtype)
        # Narrowing casts may round values just below 1 up to 1
        return np.minimum(weights, np.nextafter(dtype(1), dtype(0)))

    # Lattice access

    @property
    def width(self) -> int:
        return self.config.width

    @property
    def height(self) -> int:
        return self.config.height

    @property
    def n_features(self) -> int:
        return self.config.n_features

    def cols(self) -> int:
        return self.config.width

    def rows(self) -> int:
        return self.config.height

    def dims(self) -> int:
        return self.config.n_features

    @property
    def lattice(self) -> np.ndarray:
        """(height, width, n_features) view onto the weight buffer"""
        return self.weights.reshape(
            self.config.height, self.config.width, self.config.n_features
        )

    def index(self, i: int, j: int) -> int:
        """Offset of node (row i, column j) in the flat weight buffer"""
        return self.config.n_features * (i * self.config.width + j)

    def _check_node(self, i: int, j: int):
        if not (0 <= i < self.config.height and 0 <= j < self.config.width):
            raise IndexOutOfRange(
                f"Node ({i}, {j}) outside {self.config.height}x{self.config.width} lattice"
            )

    def node_at(self, i: int, j: int) -> np.ndarray:
        """
        Mutable view onto the weights of node (i, j).

        The view aliases the lattice buffer. Do not keep it across
        import_state() or reload(), which replace that buffer.
        """
        self._check_node(i, j)
        start = self.index(i, j)
        return self.weights[start : start + self.config.n_features]

    def set_node_at(self, i: int, j: int, vector) -> None:
        """Overwrite the weights of node (i, j)"""
        self.node_at(i, j)[:] = self._as_sample(vector)

    def get_weights(self) -> np.ndarray:
        """Copy of the weights in (height, width, n_features) grid format"""
        return self.lattice.copy()

    # Input validation

    def _as_sample(self, sample) -> np.ndarray:
        arr = np.asarray(sample, dtype=self.config.dtype)
        if arr.ndim != 1 or arr.shape[0] != self.config.n_features:
            raise DimensionMismatch(self.config.n_features, arr.size)
        return arr

    def _as_samples(self, samples) -> np.ndarray:
        if isinstance(samples, np.ndarray) and samples.ndim == 2:
            if samples.shape[0] == 0:
                raise InvalidDimension("Sample set is empty")
            if samples.shape[1] != self.config.n_features:
                raise DimensionMismatch(self.config.n_features, samples.shape[1])
            return samples.astype(self.config.dtype, copy=False)

        rows = [self._as_sample(sample) for sample in samples]
        if not rows:
            raise InvalidDimension("Sample set is empty")
        return np.stack(rows)

    # Best matching unit

    def _best_matching_unit(self, sample: np.ndarray) -> Tuple[int, int, float]:
        scores = self.metric(sample, self.weights.reshape(-1, self.config.n_features))
        # NaN never compares below the running minimum
        scores = np.where(np.isnan(scores), np.inf, scores)
        # argmin keeps the first of equal minima in row-major order
        winner = int(np.argmin(scores))
        row, col = divmod(winner, self.config.width)
        return row, col, float(scores[winner])

    def calc_best_matching_unit(self, sample) -> Tuple[Tuple[int, int], float]:
        """
        Find the node closest to a sample under the configured metric

        Args:
            sample: Vector of length n_features

        Returns:
            ((row, col), distance) of the winning node
        """
        row, col, distance = self._best_matching_unit(self._as_sample(sample))
        log_bmu_query()
        return (row, col), distance

    def cluster(self, sample) -> np.ndarray:
        """Copy of the winning node's weight vector"""
        (row, col), _ = self.calc_best_matching_unit(sample)
        return self.node_at(row, col).copy()

    def predict(self, samples) -> np.ndarray:
        """Flat BMU indices (row * width + col) for each sample"""
        coords = self.transform(samples)
        return coords[:, 0] * self.config.width + coords[:, 1]

    def transform(self, samples) -> np.ndarray:
        """(row, col) lattice coordinates of each sample's BMU"""
        data = self._as_samples(samples)
        coords = np.empty((len(data), 2), dtype=np.int64)
        for n, sample in enumerate(data):
            row, col, _ = self._best_matching_unit(sample)
            coords[n] = (row, col)
        log_bmu_query(len(data))
        return coords

    def quantization_error(self, samples) -> float:
        """Mean BMU distance over samples under the configured metric"""
        data = self._as_samples(samples)
        distances = [self._best_matching_unit(sample)[2] for sample in data]
        log_bmu_query(len(data))
        return float(np.mean(distances))

    # Training

    def train(
        self,
        samples,
        iterations: Optional[int] = None,
        start_learn_rate: Optional[float] = None,
        end_learn_rate: Optional[float] = None,
        neighborhood_radius: Optional[float] = None,
        callbacks: Optional[List[Callback]] = None,
        cycle_samples: Optional[bool] = None,
    ) -> "SOM":
        """
        Train the lattice, one sample per iteration

        The learning-rate gap (start - end) and the radius are both scaled
        by (1 - t / iterations) at every iteration t, so the decay compounds.
        When there are fewer samples than iterations they are replayed
        cyclically.

        Args:
            samples: Sequence of vectors of length n_features
            iterations: Number of iterations (uses config if None)
            start_learn_rate: Learning rate at the first iteration
            end_learn_rate: Floor the learning rate decays towards; forced
                to 0 when larger than start_learn_rate
            neighborhood_radius: Starting half-width of the update box
            callbacks: List of callback objects
            cycle_samples: Replay samples when there are fewer than
                iterations; when False that case raises IndexOutOfRange

        Returns:
            self for method chaining
        """
        data = self._as_samples(samples)

        if iterations is None:
            iterations = self.config.n_iterations
        if isinstance(iterations, bool) or int(iterations) != iterations or iterations <= 0:
            raise InvalidDimension(f"iterations must be a positive integer, got {iterations}")
        iterations = int(iterations)

        if start_learn_rate is None:
            start_learn_rate = self.config.start_learn_rate
        if end_learn_rate is None:
            end_learn_rate = self.config.end_learn_rate
        if neighborhood_radius is None:
            neighborhood_radius = self.config.neighborhood_radius
        if cycle_samples is None:
            cycle_samples = self.config.cycle_samples

        if start_learn_rate < end_learn_rate:
            logger.warning(
                "End learning rate above start learning rate, using 0",
                start_learn_rate=start_learn_rate,
                end_learn_rate=end_learn_rate,
            )
            end_learn_rate = 0.0

        n_samples = len(data)
        less_samples = n_samples < iterations
        if less_samples and not cycle_samples:
            raise IndexOutOfRange(
                f"{iterations} iterations need {iterations} samples, got {n_samples}"
            )

        self.callbacks = list(callbacks or [])
        if self.config.checkpoint_interval is not None:
            self.callbacks.append(
                CheckpointCallback(
                    self.config.checkpoint_dir,
                    self.config.checkpoint_interval,
                    self.config.checkpoint_format,
                )
            )

        logger.info(
            "Training started",
            width=self.config.width,
            height=self.config.height,
            n_features=self.config.n_features,
            n_samples=n_samples,
            iterations=iterations,
            distance_type=self.config.distance_type.name,
            kernel=self.config.kernel.name,
        )
        start_time = time.time()

        for callback in self.callbacks:
            callback.on_training_begin(self)

        self._train_loop(
            data,
            iterations,
            float(start_learn_rate - end_learn_rate),
            float(end_learn_rate),
            float(neighborhood_radius),
            less_samples,
        )

        for callback in self.callbacks:
            callback.on_training_end(self)

        duration = time.time() - start_time
        self.metadata["total_iterations"] += iterations
        self.metadata["total_train_calls"] += 1
        self.metadata["last_training"] = datetime.now().isoformat()
        log_training_metrics(self.config.width, self.config.height, duration, iterations)
        logger.info(
            "Training completed", iterations=iterations, duration_seconds=duration
        )

        return self

    def _train_loop(
        self,
        data: np.ndarray,
        iterations: int,
        gap: float,
        end_learn_rate: float,
        radius: float,
        less_samples: bool,
    ) -> None:
        iterator = range(iterations)
        if self.verbose:
            iterator = tqdm(iterator, desc="Training SOM")

        history = {
            "learn_rate": np.empty(iterations),
            "radius": np.empty(iterations),
            "distance": np.empty(iterations),
            "sample_index": np.empty(iterations, dtype=np.int64),
        }
        self.training_history = history

        n_samples = len(data)
        for t in iterator:
            for callback in self.callbacks:
                callback.on_iteration_begin(t, self)

            # Decay state carries over from the previous iteration
            decay = 1.0 - t / iterations
            gap *= decay
            radius *= decay
            learn_rate = end_learn_rate + gap

            sample_index = t % n_samples if less_samples else t
            sample = data[sample_index]

            row, col, distance = self._best_matching_unit(sample)
            box = self._update_neighborhood(sample, row, col, learn_rate, radius)

            metrics = {
                "iteration": t,
                "sample_index": sample_index,
                "bmu": (row, col),
                "distance": distance,
                "learn_rate": learn_rate,
                "radius": radius,
                "box": box,
            }
            history["learn_rate"][t] = learn_rate
            history["radius"][t] = radius
            history["distance"][t] = distance
            history["sample_index"][t] = sample_index

            if self.verbose:
                iterator.set_postfix(
                    {"d": f"{distance:.4f}", "r": f"{radius:.3f}", "lr": f"{learn_rate:.4f}"}
                )

            for callback in self.callbacks:
                callback.on_iteration_end(t, self, metrics)

    def _update_neighborhood(
        self, sample: np.ndarray, row: int, col: int, learn_rate: float, radius: float
    ) -> Tuple[int, int, int, int]:
        """
        Pull every node of the clamped box around (row, col) towards sample

        Returns:
            (first_row, last_row, first_col, last_col) of the updated box
        """
        reach = max(round_half_away(radius), 0)
        first_row = max(0, row - reach)
        last_row = min(self.config.height - 1, row + reach)
        first_col = max(0, col - reach)
        last_col = min(self.config.width - 1, col + reach)

        rows = np.arange(first_row, last_row + 1)[:, np.newaxis]
        cols = np.arange(first_col, last_col + 1)[np.newaxis, :]
        coef = self.kernel(row, col, rows, cols, radius)

        box = self.lattice[first_row : last_row + 1, first_col : last_col + 1]
        box += (sample - box) * learn_rate * coef[..., np.newaxis]

        return first_row, last_row, first_col, last_col

    # State import/export

    def to_snapshot(self) -> Snapshot:
        """Atomic copy of the lattice state"""
        return Snapshot(
            width=self.config.width,
            height=self.config.height,
            n_features=self.config.n_features,
            distance_type=self.config.distance_type,
            kernel=self.config.kernel,
            weights=self.weights.copy(),
        )

    def import_state(self, snapshot: Snapshot) -> "SOM":
        """
        Replace shape, strategies and weights with those of a snapshot.

        Views returned by node_at() before the import no longer alias the
        lattice afterwards.
        """
        weights = np.array(snapshot.weights, dtype=self.config.dtype).ravel()
        expected = snapshot.width * snapshot.height * snapshot.n_features
        if weights.size != expected:
            raise CorruptState(f"Snapshot has {weights.size} weights, expected {expected}")

        self.config = replace(
            self.config,
            width=snapshot.width,
            height=snapshot.height,
            n_features=snapshot.n_features,
            distance_type=snapshot.distance_type,
            kernel=snapshot.kernel,
        )
        self.metric = get_metric(self.config.distance_type)
        self.kernel = get_kernel(self.config.kernel)
        self.weights = weights
        self.metadata["config"] = self.config.to_dict()
        return self

    @classmethod
    def from_snapshot(
        cls, snapshot: Snapshot, verbose: bool = False, **config_kwargs
    ) -> "SOM":
        """Build a SOM from a snapshot; extra keywords go to SOMConfig"""
        config = SOMConfig(
            width=snapshot.width,
            height=snapshot.height,
            n_features=snapshot.n_features,
            distance_type=snapshot.distance_type,
            kernel=snapshot.kernel,
            **config_kwargs,
        )
        som = cls(config, verbose=verbose)
        return som.import_state(snapshot)

    def save(self, filepath: str, file_format=SOMFileFormat.YAML) -> None:
        """Save the lattice state to file"""
        file_format = resolve_format(file_format)
        save_snapshot(filepath, self.to_snapshot(), file_format)
        log_snapshot_operation("save", file_format.name.lower())
        logger.info("Model saved", path=str(filepath), format=file_format.name)

    @classmethod
    def load(
        cls, filepath: str, file_format=SOMFileFormat.YAML, verbose: bool = False, **config_kwargs
    ) -> "SOM":
        """Load a SOM from file"""
        file_format = resolve_format(file_format)
        snapshot = load_snapshot(filepath, file_format)
        log_snapshot_operation("load", file_format.name.lower())
        logger.info("Model loaded", path=str(filepath), format=file_format.name)
        return cls.from_snapshot(snapshot, verbose=verbose, **config_kwargs)

    def reload(self, filepath: str, file_format=SOMFileFormat.YAML) -> "SOM":
        """Replace this lattice's state with the one stored in a file"""
        file_format = resolve_format(file_format)
        self.import_state(load_snapshot(filepath, file_format))
        log_snapshot_operation("load", file_format.name.lower())
        return self

    def get_info(self) -> Dict[str, Any]:
        """Get comprehensive information about the SOM"""
        return {
            "config": self.config.to_dict(),
            "metadata": dict(self.metadata),
            "shape": (self.config.height, self.config.width),
            "n_neurons": self.config.width * self.config.height,
            "n_features": self.config.n_features,
            "distance_type": self.config.distance_type.name,
            "kernel": self.config.kernel.name,
            "total_iterations": self.metadata["total_iterations"],
        }

    # Visualization methods

    def visualize_weights(self, show_plot=True, save_path="som_weights.png"):
        """Visualize SOM weights as an image"""
        SOMVisualizer.visualize_weights(self, show_plot, save_path)
        return self

    def plot_training_progress(self, show_plot=True, save_path="training_progress.png"):
        """Plot BMU distance, learning rate and radius per iteration"""
        SOMVisualizer.plot_training_progress(self, show_plot, save_path)
        return self

    def plot_u_matrix(self, show_plot=True, save_path="u_matrix.png"):
        """Plot the unified distance matrix"""
        SOMVisualizer.plot_u_matrix(self, show_plot, save_path)
        return self
