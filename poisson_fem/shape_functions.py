"""
Tensor-product Lagrange shape functions for quadrilateral and hexahedral cells.

The reference cell is [0,1]^dim. Corners and nodes are numbered
lexicographically with x varying fastest, e.g. in 2D the corners are
(0,0), (1,0), (0,1), (1,1).
"""

import itertools

import numpy as np
import numpy.typing as npt
from typing import List, Tuple

from .exceptions import InvalidDegree


def lagrange_1d(
    degree: int, x: npt.NDArray[np.float64]
) -> Tuple[npt.NDArray[np.float64], npt.NDArray[np.float64]]:
    """
    Evaluate the 1D Lagrange basis on equispaced nodes k/degree and its derivative.

    Args:
        degree: Polynomial degree
        x: Evaluation points, shape (n,)

    Returns:
        Tuple (values, derivatives), each of shape (n, degree + 1)
    """
    x = np.asarray(x, dtype=np.float64)
    nodes = np.linspace(0.0, 1.0, degree + 1)
    values = np.ones((x.size, degree + 1))
    derivatives = np.zeros((x.size, degree + 1))

    for k in range(degree + 1):
        others = [m for m in range(degree + 1) if m != k]
        denominator = np.prod([nodes[k] - nodes[m] for m in others])
        factors = np.stack([x - nodes[m] for m in others], axis=-1) if others else np.ones((x.size, 0))
        values[:, k] = np.prod(factors, axis=-1) / denominator
        # Product rule: sum over the factor that is differentiated
        for skip in range(len(others)):
            rest = np.delete(factors, skip, axis=-1)
            derivatives[:, k] += np.prod(rest, axis=-1)
        derivatives[:, k] /= denominator

    return values, derivatives


class LagrangeElement:
    """
    Lagrange finite element Q_p on quadrilaterals (dim=2) or hexahedra (dim=3).

    Attributes:
        degree: Polynomial degree p
        dim: Spatial dimension
        dofs_per_cell: (p + 1)^dim
        node_indices: Integer multi-index (i_1, ..., i_dim) of each local node
        node_points: Reference coordinates i/p of each local node
    """

    def __init__(self, degree: int, dim: int = 2):
        if isinstance(degree, bool) or not isinstance(degree, (int, np.integer)) or degree < 1:
            raise InvalidDegree(f"Polynomial degree must be a positive integer, got {degree!r}")
        if dim not in (2, 3):
            raise ValueError("Only 2D and 3D elements are supported")

        self.degree = int(degree)
        self.dim = dim
        self.dofs_per_cell = (self.degree + 1) ** dim

        # x fastest: itertools.product varies the last entry fastest, so reverse
        self.node_indices = np.array(
            [idx[::-1] for idx in itertools.product(range(self.degree + 1), repeat=dim)],
            dtype=np.int64,
        )
        self.node_points = self.node_indices / self.degree

    def __repr__(self):
        return f"FE_Q<{self.dim}>({self.degree})"

    def values(self, points: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
        """
        Evaluate all shape functions at reference points.

        Args:
            points: Reference points, shape (n, dim)

        Returns:
            Array of shape (n, dofs_per_cell)
        """
        values, _ = self._evaluate(points)
        return values

    def gradients(self, points: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
        """
        Evaluate reference gradients of all shape functions.

        Args:
            points: Reference points, shape (n, dim)

        Returns:
            Array of shape (n, dofs_per_cell, dim)
        """
        _, gradients = self._evaluate(points)
        return gradients

    def _evaluate(self, points):
        points = np.atleast_2d(np.asarray(points, dtype=np.float64))
        n_points = points.shape[0]

        tables = [lagrange_1d(self.degree, points[:, k]) for k in range(self.dim)]

        values = np.ones((n_points, self.dofs_per_cell))
        gradients = np.ones((n_points, self.dofs_per_cell, self.dim))
        for k in range(self.dim):
            v_k = tables[k][0][:, self.node_indices[:, k]]
            d_k = tables[k][1][:, self.node_indices[:, k]]
            values *= v_k
            for m in range(self.dim):
                gradients[:, :, m] *= d_k if m == k else v_k

        return values, gradients

    def face_nodes(self) -> List[npt.NDArray[np.int64]]:
        """
        Local node indices lying on each face of the reference cell.

        Faces are numbered 2*axis + side, with side 0 at coordinate 0 and
        side 1 at coordinate 1.

        Returns:
            List of 2*dim index arrays
        """
        faces = []
        for axis in range(self.dim):
            for side in (0, self.degree):
                faces.append(np.flatnonzero(self.node_indices[:, axis] == side))
        return faces


def reference_corners(dim: int) -> npt.NDArray[np.int64]:
    """Corner multi-indices of the reference cell in lexicographic order."""
    return np.array(
        [idx[::-1] for idx in itertools.product((0, 1), repeat=dim)], dtype=np.int64
    )


def face_corners(dim: int) -> List[npt.NDArray[np.int64]]:
    """Local corner indices of each face, numbered like LagrangeElement.face_nodes."""
    corners = reference_corners(dim)
    return [
        np.flatnonzero(corners[:, axis] == side)
        for axis in range(dim)
        for side in (0, 1)
    ]


class CellMapping:
    """
    Multilinear (Q1) map from the reference cell to a physical cell.
    """

    def __init__(self, dim: int):
        self.dim = dim
        self.geometry = LagrangeElement(1, dim)

    def map_to_physical(
        self, points: npt.NDArray[np.float64], corner_coordinates: npt.NDArray[np.float64]
    ) -> npt.NDArray[np.float64]:
        """
        Map coordinates from reference element to physical element.

        Args:
            points: Reference points, shape (n, dim)
            corner_coordinates: Physical corners in lexicographic order, shape (2^dim, dim)

        Returns:
            Physical points, shape (n, dim)
        """
        return self.geometry.values(points) @ corner_coordinates

    def jacobians(
        self, points: npt.NDArray[np.float64], corner_coordinates: npt.NDArray[np.float64]
    ) -> Tuple[npt.NDArray[np.float64], npt.NDArray[np.float64], npt.NDArray[np.float64]]:
        """
        Calculate the Jacobian of the mapping at reference points.

        Args:
            points: Reference points, shape (n, dim)
            corner_coordinates: Physical corners, shape (2^dim, dim)

        Returns:
            Tuple containing:
                - Jacobian matrices J[q, i, k] = dx_i/dxi_k, shape (n, dim, dim)
                - Determinants, shape (n,)
                - Inverse Jacobians, shape (n, dim, dim)
        """
        reference_gradients = self.geometry.gradients(points)
        J = np.einsum("ci,qck->qik", corner_coordinates, reference_gradients)
        det_J = np.linalg.det(J)

        if np.any(det_J <= 0.0):
            raise ValueError("Jacobian determinant is not positive, element may be degenerate or inverted")

        return J, det_J, np.linalg.inv(J)
