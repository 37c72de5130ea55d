"""Distance calculation utilities for SOM."""

from abc import ABC, abstractmethod
from typing import Dict

import numpy as np

from .config import DistanceType


class DistanceCalculator:
    """Calculate distances and similarities along the last axis."""

    @staticmethod
    def euclidean(a: np.ndarray, b: np.ndarray) -> np.ndarray:
        """Calculate Euclidean distance."""
        return np.sqrt(DistanceCalculator.squared_euclidean(a, b))

    @staticmethod
    def squared_euclidean(a: np.ndarray, b: np.ndarray) -> np.ndarray:
        """Calculate squared Euclidean distance."""
        diff = a - b
        return np.sum(diff * diff, axis=-1)

    @staticmethod
    def dot_product(a: np.ndarray, b: np.ndarray) -> np.ndarray:
        """Calculate dot product."""
        return np.sum(a * b, axis=-1)

    @staticmethod
    def cosine_similarity(a: np.ndarray, b: np.ndarray) -> np.ndarray:
        """Calculate cosine similarity. Zero vectors give NaN."""
        dot_product = np.sum(a * b, axis=-1)
        norms = np.sum(a * a, axis=-1) * np.sum(b * b, axis=-1)
        with np.errstate(divide="ignore", invalid="ignore"):
            return dot_product / np.sqrt(norms)

    @staticmethod
    def similarity_to_distance(similarity: np.ndarray) -> np.ndarray:
        """Map a similarity onto a distance: higher similarity, lower distance."""
        with np.errstate(divide="ignore", invalid="ignore"):
            return 1.0 / (1.0 + similarity)


class DistanceMetric(ABC):
    """Scores every node of the lattice against one sample"""

    distance_type: DistanceType

    @abstractmethod
    def __call__(self, sample: np.ndarray, nodes: np.ndarray) -> np.ndarray:
        """
        Args:
            sample: Vector of shape (D,)
            nodes: Codebook vectors of shape (..., D)

        Returns:
            Distances of shape (...,), lower is better
        """

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class EuclideanMetric(DistanceMetric):
    distance_type = DistanceType.EUCLIDEAN

    def __call__(self, sample, nodes):
        return DistanceCalculator.euclidean(sample, nodes)


class SquaredEuclideanMetric(DistanceMetric):
    distance_type = DistanceType.SQUARED_EUCLIDEAN

    def __call__(self, sample, nodes):
        return DistanceCalculator.squared_euclidean(sample, nodes)


class DotProductMetric(DistanceMetric):
    distance_type = DistanceType.DOT_PRODUCT

    def __call__(self, sample, nodes):
        return DistanceCalculator.similarity_to_distance(
            DistanceCalculator.dot_product(sample, nodes)
        )


class CosineSimilarityMetric(DistanceMetric):
    distance_type = DistanceType.COSINE_SIMILARITY

    def __call__(self, sample, nodes):
        return DistanceCalculator.similarity_to_distance(
            DistanceCalculator.cosine_similarity(sample, nodes)
        )


METRICS: Dict[DistanceType, DistanceMetric] = {
    metric.distance_type: metric
    for metric in (
        EuclideanMetric(),
        DotProductMetric(),
        CosineSimilarityMetric(),
        SquaredEuclideanMetric(),
    )
}


def get_metric(distance_type) -> DistanceMetric:
    """Look up the metric for a DistanceType (member, code or name)"""
    return METRICS[DistanceType.parse(distance_type)]
