"""
Neighborhood kernels: update strength of each node in the box around the BMU
"""

from abc import ABC, abstractmethod
from typing import Dict

import numpy as np

from .config import NeighborhoodKernel


class Kernel(ABC):
    """
    Maps lattice positions around the BMU to update coefficients.

    Coordinates follow the lattice: ``rows`` holds row indices with shape
    (n_rows, 1) and ``cols`` holds column indices with shape (1, n_cols),
    so the returned coefficients have shape (n_rows, n_cols).
    """

    kernel: NeighborhoodKernel

    @abstractmethod
    def __call__(
        self,
        bmu_row: int,
        bmu_col: int,
        rows: np.ndarray,
        cols: np.ndarray,
        radius: float,
    ) -> np.ndarray:
        pass

    @staticmethod
    def _exp_ratio(numerator: np.ndarray, denominator: float) -> np.ndarray:
        """exp(-numerator / denominator), taking the limit for a zero denominator"""
        if denominator == 0:
            return np.where(numerator == 0, 1.0, 0.0)
        return np.exp(-numerator / denominator)

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class UniformKernel(Kernel):
    """Same coefficient for the BMU and every node of its box"""

    kernel = NeighborhoodKernel.UNIFORM

    def __call__(self, bmu_row, bmu_col, rows, cols, radius):
        rows, cols = np.broadcast_arrays(rows, cols)
        return np.ones(rows.shape)


class ExponentialDecayKernel(Kernel):
    """
    exp((x - i)^2 * (y - i)^2 / (-2 r^2)) with (x, y) the BMU column and row.

    Both factors use the candidate's row index ``i``; the candidate column
    never enters the formula.
    """

    kernel = NeighborhoodKernel.EXPONENTIAL_DECAY

    def __call__(self, bmu_row, bmu_col, rows, cols, radius):
        rows, cols = np.broadcast_arrays(rows, cols)
        numerator = (bmu_col - rows) ** 2 * (bmu_row - rows) ** 2
        return self._exp_ratio(numerator.astype(np.float64), 2.0 * radius * radius)


class GaussianKernel(Kernel):
    """Unnormalized 2D Gaussian centred on the BMU with sigma = radius / 2"""

    kernel = NeighborhoodKernel.GAUSSIAN

    def __call__(self, bmu_row, bmu_col, rows, cols, radius):
        sigma = radius / 2.0
        numerator = (cols - bmu_col) ** 2 + (rows - bmu_row) ** 2
        return self._exp_ratio(numerator.astype(np.float64), 2.0 * sigma * sigma)


KERNELS: Dict[NeighborhoodKernel, Kernel] = {
    k.kernel: k for k in (UniformKernel(), ExponentialDecayKernel(), GaussianKernel())
}


def get_kernel(kernel) -> Kernel:
    """Look up the kernel for a NeighborhoodKernel (member, code or name)"""
    return KERNELS[NeighborhoodKernel.parse(kernel)]
