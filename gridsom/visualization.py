"""
Visualization utilities for SOM
"""

import numpy as np
from typing import TYPE_CHECKING

import structlog

# Set matplotlib backend to Agg (non-interactive) before importing pyplot
import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402

if TYPE_CHECKING:
    from .core import SOM

logger = structlog.get_logger(__name__)


def u_matrix(weights: np.ndarray) -> np.ndarray:
    """
    Mean Euclidean distance from each node to its 4-connected neighbours

    Args:
        weights: Lattice of shape (height, width, n_features)

    Returns:
        Array of shape (height, width)
    """
    height, width, _ = weights.shape
    totals = np.zeros((height, width))
    counts = np.zeros((height, width))

    vertical = np.linalg.norm(weights[1:] - weights[:-1], axis=-1)
    totals[1:] += vertical
    totals[:-1] += vertical
    counts[1:] += 1
    counts[:-1] += 1

    horizontal = np.linalg.norm(weights[:, 1:] - weights[:, :-1], axis=-1)
    totals[:, 1:] += horizontal
    totals[:, :-1] += horizontal
    counts[:, 1:] += 1
    counts[:, :-1] += 1

    return totals / np.maximum(counts, 1)


def _finish(figure_name: str, som: "SOM", show_plot: bool, save_path: str):
    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches="tight")
        if som.verbose:
            logger.info(f"{figure_name} saved", path=save_path)

    if show_plot:
        plt.show()
    else:
        plt.close()


class SOMVisualizer:
    """Visualization utilities for SOM analysis"""

    @staticmethod
    def visualize_weights(
        som: "SOM", show_plot: bool = True, save_path: str = "som_weights.png"
    ):
        """
        Visualize SOM weights as an image

        Args:
            som: SOM instance
            show_plot: Whether to display the visualization
            save_path: Path to save the visualization (None to skip saving)
        """
        weights = som.get_weights()

        plt.figure(figsize=(8, 8))
        if weights.shape[2] == 1:
            plt.imshow(weights[:, :, 0], cmap="viridis", interpolation="nearest")
            plt.colorbar(label="Weight Value")
            plt.title("SOM Weight Visualization (Single Feature)")
        elif weights.shape[2] == 2:
            img = np.zeros((weights.shape[0], weights.shape[1], 3))
            img[:, :, 0] = weights[:, :, 0]
            img[:, :, 1] = weights[:, :, 1]
            img[:, :, 2] = 0.5
            plt.imshow(np.clip(img, 0, 1), interpolation="nearest")
            plt.title("SOM Weight Visualization (2 Features as RG)")
        else:
            img = weights[:, :, :3]
            img = (img - img.min()) / (img.max() - img.min() + 1e-8)
            plt.imshow(img, interpolation="nearest")
            plt.title("SOM Weight Visualization (First 3 Features as RGB)")

        plt.axis("off")
        _finish("SOM visualization", som, show_plot, save_path)

    @staticmethod
    def plot_u_matrix(som: "SOM", show_plot: bool = True, save_path: str = "u_matrix.png"):
        """Plot the unified distance matrix of the lattice"""
        plt.figure(figsize=(8, 8))
        plt.imshow(u_matrix(som.get_weights()), cmap="bone_r", interpolation="nearest")
        plt.colorbar(label="Mean neighbour distance")
        plt.title("U-Matrix")
        _finish("U-Matrix", som, show_plot, save_path)

    @staticmethod
    def plot_training_progress(
        som: "SOM", show_plot: bool = True, save_path: str = "training_progress.png"
    ):
        """
        Plot BMU distance, learning rate and neighborhood radius per iteration

        Args:
            som: Trained SOM instance
            show_plot: Whether to display the plot
            save_path: Path to save the plot image (None to skip saving)
        """
        history = som.training_history
        if not history:
            if som.verbose:
                logger.warning("No training history available for plotting")
            return

        distances = history["distance"]
        learn_rates = history["learn_rate"]
        radii = history["radius"]
        iterations = np.arange(len(distances))

        fig, (ax1, ax2, ax3) = plt.subplots(1, 3, figsize=(18, 5))

        ax1.plot(iterations, distances, "b-", linewidth=1)
        ax1.set_xlabel("Iteration")
        ax1.set_ylabel("BMU distance")
        ax1.set_title("Best Matching Unit Distance")
        ax1.grid(True, alpha=0.3)

        ax2.plot(iterations, learn_rates, "g-", linewidth=2)
        ax2.set_xlabel("Iteration")
        ax2.set_ylabel("Learning rate")
        ax2.set_title("Learning Rate Decay")
        ax2.grid(True, alpha=0.3)

        ax3.plot(iterations, radii, "r-", linewidth=2)
        ax3.set_xlabel("Iteration")
        ax3.set_ylabel("Radius")
        ax3.set_title("Neighborhood Radius Decay")
        ax3.grid(True, alpha=0.3)

        plt.tight_layout()
        _finish("Training progress plot", som, show_plot, save_path)
