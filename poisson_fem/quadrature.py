"""
Quadrature rules for numerical integration in FEM.
"""

import numpy as np
import numpy.typing as npt
from typing import Dict, Tuple


# Precomputed Gauss points and weights on [-1, 1]
_GAUSS_RULES: Dict[int, Tuple[npt.NDArray[np.float64], npt.NDArray[np.float64]]] = {
    1: (np.array([0.0]), np.array([2.0])),
    2: (np.array([-1 / np.sqrt(3), 1 / np.sqrt(3)]), np.array([1.0, 1.0])),
    3: (
        np.array([-np.sqrt(3 / 5), 0.0, np.sqrt(3 / 5)]),
        np.array([5 / 9, 8 / 9, 5 / 9]),
    ),
}


def gauss_legendre(n_points: int) -> Tuple[npt.NDArray[np.float64], npt.NDArray[np.float64]]:
    """
    Look up the n-point Gauss-Legendre rule on [-1, 1].

    Rules that are not in the table are generated once and added to it.

    Args:
        n_points: Number of points (exact for polynomials of degree 2n-1)

    Returns:
        Tuple (points, weights)
    """
    if n_points < 1:
        raise ValueError("Quadrature order must be at least 1")
    if n_points not in _GAUSS_RULES:
        _GAUSS_RULES[n_points] = np.polynomial.legendre.leggauss(n_points)
    return _GAUSS_RULES[n_points]


class QuadratureRule:
    """
    Tensor-product Gaussian quadrature rule on the reference cell [0,1]^dim.
    """

    def __init__(self, order: int = 2, dim: int = 2):
        """
        Initialize quadrature rule of given order.

        Args:
            order: Number of Gauss points per axis
            dim: Spatial dimension of the reference cell (1, 2 or 3)
        """
        if dim not in (1, 2, 3):
            raise ValueError("Quadrature dimension must be 1, 2, or 3")

        self.order = order
        self.dim = dim

        points_1d, weights_1d = gauss_legendre(order)
        self.points_1d = 0.5 * (points_1d + 1.0)
        self.weights_1d = 0.5 * weights_1d

        # x varies fastest, matching the lexicographic node numbering
        grids = np.meshgrid(*([self.points_1d] * dim), indexing="ij")
        self.points = np.stack([g.ravel(order="F") for g in grids], axis=-1)
        weight_grids = np.meshgrid(*([self.weights_1d] * dim), indexing="ij")
        self.weights = np.prod(
            np.stack([w.ravel(order="F") for w in weight_grids], axis=-1), axis=-1
        )

    @property
    def num_points(self) -> int:
        return self.points.shape[0]

    def get_points(self) -> npt.NDArray[np.float64]:
        """
        Get quadrature points.

        Returns:
            Array of shape (num_points, dim) with points in [0,1]^dim
        """
        return self.points

    def get_weights(self) -> npt.NDArray[np.float64]:
        """
        Get quadrature weights.

        Returns:
            Array of shape (num_points,); the weights sum to 1
        """
        return self.weights

    def integrate(self, f) -> float:
        """
        Integrate a function over the reference cell.

        Args:
            f: Function taking an array of shape (num_points, dim) and
               returning one value per point

        Returns:
            Approximated integral value
        """
        return float(np.sum(np.asarray(f(self.points)) * self.weights))
