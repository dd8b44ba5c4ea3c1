"""
Element-level computations for the Poisson problem.
"""

from enum import Enum

import numpy as np
import numpy.typing as npt
from typing import Callable, Optional, Tuple

from .quadrature import QuadratureRule
from .shape_functions import CellMapping, LagrangeElement


class SourceKind(Enum):
    CONSTANT = "constant"
    QUARTIC = "quartic"
    FUNCTION = "function"


class SourceTerm:
    """
    Right-hand side f of -Δu = f.

    CONSTANT: f = value (1 by default)
    QUARTIC: f(x) = sum_k 4 x_k^4
    FUNCTION: f given by a callable mapping points (n, dim) to values (n,)
    """

    def __init__(
        self,
        kind: SourceKind = SourceKind.CONSTANT,
        value: float = 1.0,
        function: Optional[Callable[[npt.NDArray[np.float64]], npt.NDArray[np.float64]]] = None,
    ):
        self.kind = SourceKind(kind)
        self.value = float(value)
        self.function = function
        if self.kind is SourceKind.FUNCTION and function is None:
            raise ValueError("A FUNCTION source term needs a callable")

    @classmethod
    def constant(cls, value: float = 1.0) -> "SourceTerm":
        return cls(SourceKind.CONSTANT, value=value)

    @classmethod
    def quartic(cls) -> "SourceTerm":
        return cls(SourceKind.QUARTIC)

    @classmethod
    def from_function(cls, function) -> "SourceTerm":
        return cls(SourceKind.FUNCTION, function=function)

    def __repr__(self):
        if self.kind is SourceKind.CONSTANT:
            return f"SourceTerm.constant({self.value})"
        return f"SourceTerm({self.kind.value})"

    def evaluate(self, points: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
        """
        Evaluate the source term.

        Args:
            points: Physical points, shape (n, dim)

        Returns:
            Values, shape (n,)
        """
        if self.kind is SourceKind.CONSTANT:
            return np.full(points.shape[0], self.value)
        if self.kind is SourceKind.QUARTIC:
            return np.sum(4.0 * points**4, axis=1)
        return np.broadcast_to(np.asarray(self.function(points), dtype=np.float64), (points.shape[0],))


class Element:
    """
    Class for element-level computations in FEM.

    Reference values and gradients of the shape functions are tabulated once
    at the quadrature points and reused for every cell.
    """

    def __init__(self, fe: LagrangeElement, quadrature: Optional[QuadratureRule] = None):
        """
        Initialize element with quadrature rule.

        Args:
            fe: Lagrange element
            quadrature: Quadrature rule; defaults to a Gauss rule with degree + 1
                points per axis
        """
        self.fe = fe
        self.quadrature = quadrature or QuadratureRule(fe.degree + 1, fe.dim)
        self.mapping = CellMapping(fe.dim)

        self.phi = fe.values(self.quadrature.points)
        self.grad_phi_ref = fe.gradients(self.quadrature.points)

    def reinit(
        self, corner_coordinates: npt.NDArray[np.float64]
    ) -> Tuple[npt.NDArray[np.float64], npt.NDArray[np.float64], npt.NDArray[np.float64]]:
        """
        Geometry of one cell at the quadrature points.

        Args:
            corner_coordinates: Physical corners, shape (2^dim, dim)

        Returns:
            Tuple containing:
                - Physical quadrature points, shape (n_q, dim)
                - Physical shape function gradients, shape (n_q, dofs_per_cell, dim)
                - JxW values |J| * w_q, shape (n_q,)
        """
        points = self.mapping.map_to_physical(self.quadrature.points, corner_coordinates)
        _, det_J, inv_J = self.mapping.jacobians(self.quadrature.points, corner_coordinates)

        # grad phi = J^{-T} grad_ref phi
        grad_phi = np.einsum("qkd,qnk->qnd", inv_J, self.grad_phi_ref)
        JxW = det_J * self.quadrature.weights

        return points, grad_phi, JxW

    def stiffness_matrix(self, corner_coordinates: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
        """
        Compute element stiffness matrix.

        Args:
            corner_coordinates: Physical corners, shape (2^dim, dim)

        Returns:
            Element stiffness matrix (dofs_per_cell x dofs_per_cell)
        """
        _, grad_phi, JxW = self.reinit(corner_coordinates)
        return np.einsum("qid,qjd,q->ij", grad_phi, grad_phi, JxW)

    def load_vector(
        self, corner_coordinates: npt.NDArray[np.float64], source: SourceTerm
    ) -> npt.NDArray[np.float64]:
        """
        Compute element load vector.

        Args:
            corner_coordinates: Physical corners, shape (2^dim, dim)
            source: Source term f

        Returns:
            Element load vector (dofs_per_cell,)
        """
        points, _, JxW = self.reinit(corner_coordinates)
        return np.einsum("qi,q,q->i", self.phi, source.evaluate(points), JxW)

    def local_system(
        self, corner_coordinates: npt.NDArray[np.float64], source: SourceTerm
    ) -> Tuple[npt.NDArray[np.float64], npt.NDArray[np.float64]]:
        """Stiffness matrix and load vector of one cell in a single pass."""
        points, grad_phi, JxW = self.reinit(corner_coordinates)
        K = np.einsum("qid,qjd,q->ij", grad_phi, grad_phi, JxW)
        f = np.einsum("qi,q,q->i", self.phi, source.evaluate(points), JxW)
        return K, f
