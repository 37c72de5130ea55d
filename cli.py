"""
Command Line Interface for gridsom
"""

import argparse
import json
import os
import sys
import structlog
from pathlib import Path

import numpy as np
import pandas as pd

from gridsom import (
    SOM,
    SOMConfig,
    DistanceType,
    NeighborhoodKernel,
    SOMFileFormat,
    __version__,
    get_metrics,
    setup_logging,
    trace_operation,
)

# Initialize observability
setup_logging(
    log_level=os.getenv("LOG_LEVEL", "WARNING"),
    json_format=False,  # Use console format for CLI
)

logger = structlog.get_logger()

DISTANCE_CHOICES = [d.name.lower() for d in DistanceType]
KERNEL_CHOICES = [k.name.lower() for k in NeighborhoodKernel]
MODEL_FORMAT_CHOICES = ["auto", "yaml", "kv"]


def _read_csv(path: Path):
    numeric = pd.read_csv(path).select_dtypes(include=[np.number])
    if numeric.shape[1] == 0:
        raise ValueError("no numeric columns")
    return numeric.values


def _read_json(path: Path):
    with open(path, "r") as f:
        return json.load(f)


def _read_npz(path: Path):
    # First array in the archive
    with np.load(path) as archive:
        return archive[archive.files[0]]


DATA_READERS = {
    "csv": _read_csv,
    "json": _read_json,
    "npy": np.load,
    "npz": _read_npz,
}


def load_data(file_path: str, format: str = "auto") -> np.ndarray:
    """Read a sample matrix as float64; "auto" picks the reader from the file suffix"""
    path = Path(file_path)
    if not path.exists():
        raise FileNotFoundError(f"Data file not found: {file_path}")

    name = path.suffix.lower().lstrip(".") if format == "auto" else format
    reader = DATA_READERS.get(name)
    if reader is None:
        raise ValueError(f"Unsupported format: {name or file_path}")

    try:
        return np.asarray(reader(path), dtype=np.float64)
    except Exception as e:
        raise ValueError(f"Failed to load data from {file_path}: {e}")


def model_format(model_path: str, format: str = "auto") -> SOMFileFormat:
    """YAML for .yaml/.yml files unless told otherwise, key-value store for the rest"""
    if format == "auto":
        suffix = Path(model_path).suffix.lower()
        return SOMFileFormat.YAML if suffix in (".yaml", ".yml") else SOMFileFormat.KEYVALUE
    return SOMFileFormat.KEYVALUE if format == "kv" else SOMFileFormat.parse(format)


def save_model(som: SOM, output_path: str, format: str = "auto") -> None:
    """Save trained SOM model"""
    try:
        som.save(output_path, model_format(output_path, format))
        print(f"Model saved to: {output_path}")
    except Exception as e:
        print(f"Error saving model: {e}", file=sys.stderr)
        sys.exit(1)


def train_command(args) -> None:
    """Train a SOM model"""
    print(f"Loading data from: {args.input}")
    try:
        data = load_data(args.input, args.format)
        print(f"Data shape: {data.shape}")

        config = SOMConfig(
            width=args.width,
            height=args.height,
            n_features=data.shape[1],
            n_iterations=args.iterations,
            start_learn_rate=args.start_learn_rate,
            end_learn_rate=args.end_learn_rate,
            neighborhood_radius=args.radius,
            distance_type=DistanceType.parse(args.distance_type),
            kernel=NeighborhoodKernel.parse(args.kernel),
            seed=args.seed,
        )

        print(f"Training SOM: {args.width}x{args.height}, {args.iterations} iterations")
        print(f"Distance: {args.distance_type}, Kernel: {args.kernel}")

        som = SOM(config, verbose=args.verbose)
        with trace_operation("train", width=args.width, height=args.height):
            som.train(data)

        qe = som.quantization_error(data)

        print("Training completed!")
        print(f"Quantization Error: {qe:.4f}")

        save_model(som, args.output, args.model_format)

        if args.visualize:
            stem = str(Path(args.output).with_suffix(""))
            viz_path = f"{stem}_weights.png"
            som.visualize_weights(show_plot=False, save_path=viz_path)
            print(f"Weights visualization saved to: {viz_path}")

            progress_path = f"{stem}_training.png"
            som.plot_training_progress(show_plot=False, save_path=progress_path)
            print(f"Training progress saved to: {progress_path}")

        if args.metrics:
            print(get_metrics().decode())

    except Exception as e:
        print(f"Error during training: {e}", file=sys.stderr)
        sys.exit(1)


def _load_model(args) -> SOM:
    return SOM.load(args.model, model_format(args.model, args.model_format))


def predict_command(args) -> None:
    """Find best matching units for samples with a trained SOM"""
    print(f"Loading model from: {args.model}")
    try:
        som = _load_model(args)
    except Exception as e:
        print(f"Error loading model: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"Loading data from: {args.input}")
    try:
        data = load_data(args.input, args.format)
        print(f"Data shape: {data.shape}")

        print("Making predictions...")
        with trace_operation("predict", n_samples=len(data)):
            coordinates = som.transform(data)
        predictions = coordinates[:, 0] * som.width + coordinates[:, 1]

        results = {
            "bmu_indices": predictions.tolist(),
            "coordinates": coordinates.tolist(),
        }

        with open(args.output, "w") as f:
            json.dump(results, f, indent=2)

        print(f"Predictions saved to: {args.output}")
        print(f"Predicted {len(predictions)} samples")

    except Exception as e:
        print(f"Error during prediction: {e}", file=sys.stderr)
        sys.exit(1)


def visualize_command(args) -> None:
    """Visualize a trained SOM"""
    print(f"Loading model from: {args.model}")
    try:
        som = _load_model(args)
        stem = str(Path(args.output).with_suffix("")) if args.output else "som"

        if args.type in ["weights", "all"]:
            weights_path = f"{stem}_weights.png"
            som.visualize_weights(show_plot=False, save_path=weights_path)
            print(f"Weights visualization saved to: {weights_path}")

        if args.type in ["umatrix", "all"]:
            umatrix_path = f"{stem}_umatrix.png"
            som.plot_u_matrix(show_plot=False, save_path=umatrix_path)
            print(f"U-Matrix saved to: {umatrix_path}")

    except Exception as e:
        print(f"Error loading model: {e}", file=sys.stderr)
        sys.exit(1)


def info_command(args) -> None:
    """Show information about a trained SOM"""
    print(f"Loading model from: {args.model}")
    try:
        som = _load_model(args)

        info = som.get_info()

        print("\n=== SOM Model Information ===")
        print(f"Shape: {info['shape'][0]}x{info['shape'][1]}")
        print(f"Features: {info['n_features']}")
        print(f"Total Neurons: {info['n_neurons']}")
        print(f"Distance: {info['distance_type']}")
        print(f"Kernel: {info['kernel']}")

    except Exception as e:
        print(f"Error loading model: {e}", file=sys.stderr)
        sys.exit(1)


def _add_model_format(parser) -> None:
    parser.add_argument(
        "--model-format",
        choices=MODEL_FORMAT_CHOICES,
        default="auto",
        help="Model file format (auto: yaml for .yaml/.yml, kv otherwise)",
    )


def _add_data_format(parser) -> None:
    parser.add_argument(
        "--format",
        choices=["auto", *DATA_READERS],
        default="auto",
        help="Input data format",
    )


def version_command(args) -> None:
    """Print the package version"""
    print(f"gridsom CLI v{__version__}")


def _train_parser(subparsers) -> None:
    parser = subparsers.add_parser("train", help="Train a new SOM model")
    parser.add_argument("input", help="Input data file")
    parser.add_argument("--output", "-o", default="trained_som.yaml", help="Output model file")
    parser.add_argument("--width", type=int, default=20, help="Lattice width (columns)")
    parser.add_argument("--height", type=int, default=20, help="Lattice height (rows)")
    parser.add_argument("--iterations", type=int, default=1000, help="Training iterations")
    parser.add_argument("--start-learn-rate", type=float, default=0.1, help="Initial learning rate")
    parser.add_argument("--end-learn-rate", type=float, default=0.01, help="Learning rate floor")
    parser.add_argument("--radius", type=float, help="Initial radius (half the longer side if unset)")
    parser.add_argument("--distance-type", choices=DISTANCE_CHOICES, default="euclidean")
    parser.add_argument("--kernel", choices=KERNEL_CHOICES, default="uniform")
    _add_data_format(parser)
    _add_model_format(parser)
    parser.add_argument("--seed", type=int, help="Seed for the initial weights")
    parser.add_argument("--visualize", action="store_true", help="Save weight and progress plots")
    parser.add_argument("--metrics", action="store_true", help="Print Prometheus metrics when done")
    parser.add_argument("--verbose", action="store_true", help="Log progress while training")
    parser.set_defaults(handler=train_command)


def _predict_parser(subparsers) -> None:
    parser = subparsers.add_parser("predict", help="Find best matching units with a trained model")
    parser.add_argument("model", help="Trained model file")
    parser.add_argument("input", help="Input data file")
    parser.add_argument("--output", "-o", default="predictions.json", help="JSON results file")
    _add_data_format(parser)
    _add_model_format(parser)
    parser.set_defaults(handler=predict_command)


def _visualize_parser(subparsers) -> None:
    parser = subparsers.add_parser("visualize", help="Plot a trained model")
    parser.add_argument("model", help="Trained model file")
    parser.add_argument("--output", "-o", help="Image path; its stem prefixes each plot")
    parser.add_argument("--type", choices=["weights", "umatrix", "all"], default="weights")
    _add_model_format(parser)
    parser.set_defaults(handler=visualize_command)


def _info_parser(subparsers) -> None:
    parser = subparsers.add_parser("info", help="Show model information")
    parser.add_argument("model", help="Trained model file")
    _add_model_format(parser)
    parser.set_defaults(handler=info_command)


def main():
    """Main CLI entry point"""
    parser = argparse.ArgumentParser(
        description="Self-Organizing Map CLI",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")
    _train_parser(subparsers)
    _predict_parser(subparsers)
    _visualize_parser(subparsers)
    _info_parser(subparsers)
    subparsers.add_parser("version", help="Show version information").set_defaults(
        handler=version_command
    )

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(1)
        return

    args.handler(args)


if __name__ == "__main__":
    main()
