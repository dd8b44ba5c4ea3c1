"""
Result handoff for visualization or export.

The core does not write files. A consumer receives the final mesh, one value
per dof and the physical location of every dof, and renders or stores them
in whatever format it needs.
"""

import numpy as np
import numpy.typing as npt
from scipy.spatial import KDTree
from typing import Dict, Optional

from .dof_handler import DoFHandler
from .linear_solver import SolverResult
from .mesh import Mesh


class PoissonResult:
    """
    Mesh + scalar field produced by one solve.

    Attributes:
        mesh: Final refined mesh
        dof_handler: DoF map of the solve
        solution: One value per dof
        boundary_dofs: Boundary dof -> boundary id
        iterations, residual_norm, converged: Linear solver report
    """

    def __init__(
        self,
        mesh: Mesh,
        dof_handler: DoFHandler,
        solution: npt.NDArray[np.float64],
        solver_result: SolverResult,
        boundary_dofs: Dict[int, int],
    ):
        self.mesh = mesh
        self.dof_handler = dof_handler
        self.solution = solution
        self.boundary_dofs = boundary_dofs
        self.iterations = solver_result.iterations
        self.residual_norm = solver_result.residual_norm
        self.converged = solver_result.converged
        self._tree: Optional[KDTree] = None

    def __repr__(self):
        return (
            f"PoissonResult(n_dofs={self.n_dofs}, n_active_cells={self.mesh.n_active_cells}, "
            f"iterations={self.iterations}, converged={self.converged})"
        )

    @property
    def n_dofs(self) -> int:
        return self.dof_handler.n_dofs

    @property
    def vertices(self) -> npt.NDArray[np.float64]:
        """Mesh vertex coordinates, shape (n_vertices, dim)."""
        return self.mesh.vertices

    @property
    def cells(self) -> npt.NDArray[np.int64]:
        """Active cell connectivity, lexicographic corner order, shape (n_active_cells, 2^dim)."""
        return self.mesh.active_cells()

    @property
    def dof_locations(self) -> npt.NDArray[np.float64]:
        """Physical location of every dof, shape (n_dofs, dim)."""
        return self.dof_handler.dof_locations

    def vertex_values(self) -> npt.NDArray[np.float64]:
        """
        Solution sampled at the mesh vertices.

        Returns:
            Array of shape (n_vertices,); NaN for vertices not used by an active cell
        """
        values = np.full(self.mesh.n_vertices, np.nan)
        for vertex, dof in self.dof_handler.vertex_dofs.items():
            values[vertex] = self.solution[dof]
        return values

    def boundary_values(self) -> npt.NDArray[np.float64]:
        """Solution at the boundary dofs, in increasing dof order."""
        return self.solution[np.array(sorted(self.boundary_dofs), dtype=np.int64)]

    def nearest_dofs(self, points: npt.ArrayLike) -> npt.NDArray[np.int64]:
        """
        Dofs closest to the given points.

        Args:
            points: Shape (n, dim) or (dim,)

        Returns:
            Dof indices, shape (n,)
        """
        if self._tree is None:
            self._tree = KDTree(self.dof_locations)
        _, dofs = self._tree.query(np.atleast_2d(points))
        return np.asarray(dofs, dtype=np.int64)

    def value_at_dofs_near(self, points: npt.ArrayLike) -> npt.NDArray[np.float64]:
        """Solution value at the dof nearest to each point."""
        return self.solution[self.nearest_dofs(points)]
