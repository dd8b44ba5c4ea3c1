"""
Dirichlet boundary conditions: locating boundary dofs and eliminating them
from the linear system.
"""

import logging
from enum import Enum

import numpy as np
import numpy.typing as npt
from typing import Callable, Dict, Iterable, Optional

from .dof_handler import DoFHandler
from .geometry import Domain
from .shape_functions import face_corners
from .sparsity import SparseMatrix

logger = logging.getLogger(__name__)


class BoundaryKind(Enum):
    CONSTANT = "constant"
    SQUARED_NORM = "squared_norm"
    FUNCTION = "function"


class BoundaryValue:
    """
    Prescribed value g of u on the boundary.

    CONSTANT: g = value
    SQUARED_NORM: g(x) = sum_k x_k^2
    FUNCTION: g given by a callable mapping points (n, dim) to values (n,)
    """

    def __init__(
        self,
        kind: BoundaryKind = BoundaryKind.CONSTANT,
        value: float = 0.0,
        function: Optional[Callable[[npt.NDArray[np.float64]], npt.NDArray[np.float64]]] = None,
    ):
        self.kind = BoundaryKind(kind)
        self.value = float(value)
        self.function = function
        if self.kind is BoundaryKind.FUNCTION and function is None:
            raise ValueError("A FUNCTION boundary value needs a callable")

    @classmethod
    def constant(cls, value: float) -> "BoundaryValue":
        return cls(BoundaryKind.CONSTANT, value=value)

    @classmethod
    def squared_norm(cls) -> "BoundaryValue":
        return cls(BoundaryKind.SQUARED_NORM)

    @classmethod
    def from_function(cls, function) -> "BoundaryValue":
        return cls(BoundaryKind.FUNCTION, function=function)

    def __repr__(self):
        if self.kind is BoundaryKind.CONSTANT:
            return f"BoundaryValue.constant({self.value})"
        return f"BoundaryValue({self.kind.value})"

    def evaluate(self, points: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
        """
        Evaluate g at physical points.

        Args:
            points: Shape (n, dim)

        Returns:
            Values, shape (n,)
        """
        if self.kind is BoundaryKind.CONSTANT:
            return np.full(points.shape[0], self.value)
        if self.kind is BoundaryKind.SQUARED_NORM:
            return np.sum(points**2, axis=1)
        return np.broadcast_to(np.asarray(self.function(points), dtype=np.float64), (points.shape[0],))


def locate_boundary_dofs(dof_handler: DoFHandler, domain: Domain) -> Dict[int, int]:
    """
    Find the dofs lying on the domain boundary.

    A cell face is on the boundary when all of its corners lie on the same
    boundary component of the domain; every node of such a face is a
    boundary dof.

    Args:
        dof_handler: DoFHandler with distributed dofs
        domain: Domain the mesh was generated from

    Returns:
        Mapping boundary dof -> boundary id, in increasing dof order
    """
    faces = face_corners(dof_handler.mesh.dim)
    face_nodes = dof_handler.fe.face_nodes()
    boundary: Dict[int, int] = {}

    for row in range(len(dof_handler.active_cells)):
        corners = dof_handler.cell_coordinates(row)
        for face, local_corners in enumerate(faces):
            boundary_id = domain.boundary_id(corners[local_corners])
            if boundary_id is None:
                continue
            for dof in dof_handler.cell_dofs[row, face_nodes[face]]:
                boundary.setdefault(int(dof), boundary_id)

    logger.info("Located %d boundary dofs", len(boundary))
    return dict(sorted(boundary.items()))


def interpolate_boundary_values(
    dof_handler: DoFHandler,
    boundary_dofs: Dict[int, int],
    boundary_value: BoundaryValue,
    boundary_ids: Optional[Iterable[int]] = None,
) -> Dict[int, float]:
    """
    Evaluate the prescribed value at each boundary dof.

    Args:
        dof_handler: DoFHandler with distributed dofs
        boundary_dofs: Output of locate_boundary_dofs
        boundary_value: Prescribed value g
        boundary_ids: Restrict to these boundary components (all by default)

    Returns:
        Mapping dof -> g(x_dof)
    """
    selected = None if boundary_ids is None else set(boundary_ids)
    dofs = np.array(
        [dof for dof, bid in boundary_dofs.items() if selected is None or bid in selected],
        dtype=np.int64,
    )
    if dofs.size == 0:
        return {}
    values = boundary_value.evaluate(dof_handler.dof_locations[dofs])
    return dict(zip(dofs.tolist(), values.tolist()))


def apply_boundary_values(
    boundary_values: Dict[int, float],
    matrix: SparseMatrix,
    solution: npt.NDArray[np.float64],
    rhs: npt.NDArray[np.float64],
) -> None:
    """
    Eliminate Dirichlet dofs from the system (in place).

    For each boundary dof i with value g_i the column contribution a_ki g_i
    is moved to the right-hand side of every other row, row and column i are
    zeroed, the diagonal is set to 1 and rhs_i = g_i. The matrix stays
    symmetric. The solution vector receives g_i as well, so that an
    iterative solver starting from it satisfies the boundary rows exactly.

    Args:
        boundary_values: Mapping dof -> prescribed value
        matrix: Assembled system matrix
        solution: Initial guess / solution vector
        rhs: Right-hand side vector
    """
    if not boundary_values:
        return

    dofs = np.fromiter(boundary_values.keys(), dtype=np.int64, count=len(boundary_values))
    values = np.fromiter(boundary_values.values(), dtype=np.float64, count=len(boundary_values))

    is_boundary = np.zeros(matrix.shape[0], dtype=bool)
    is_boundary[dofs] = True
    lifted = np.zeros(matrix.shape[0])
    lifted[dofs] = values

    rhs -= matrix.matvec(lifted)

    pattern = matrix.pattern
    matrix.data[is_boundary[pattern.row_of_entry] | is_boundary[pattern.indices]] = 0.0
    matrix.data[pattern.positions(dofs, dofs)] = 1.0

    rhs[dofs] = values
    solution[dofs] = values
    logger.debug("Eliminated %d Dirichlet dofs", dofs.size)
