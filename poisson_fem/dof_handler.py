"""
Degree of freedom enumeration for Lagrange elements on a refined mesh.
"""

import logging

import numpy as np
import numpy.typing as npt
from collections import defaultdict
from typing import Dict, List, Optional, Tuple

from .mesh import Mesh
from .shape_functions import CellMapping, LagrangeElement, lagrange_1d, reference_corners

logger = logging.getLogger(__name__)

# Constraint weights below this magnitude are dropped
_WEIGHT_TOLERANCE = 1e-12


class DoFHandler:
    """
    Assigns global indices to the nodes of every active cell.

    A node is identified by its multilinear weights on the corner vertices of
    the cell, written as exact integers over the common denominator p^dim.
    A node on a shared vertex, edge or face gets the same key from every
    cell containing it, hence a single global index. Indices are handed out
    in order of first appearance (active cells in arena order, local nodes
    in lexicographic order), so identical input gives an identical map.

    On 2D meshes with local refinement, nodes on the refined side of a coarse
    edge are constrained to the polynomial trace of the coarse edge.

    Attributes:
        fe: LagrangeElement of the requested degree
        cell_dofs: Global dof indices per active cell, shape (n_active_cells, dofs_per_cell)
        active_cells: Arena indices of the active cells, aligned with cell_dofs
        n_dofs: Total number of dofs
        dof_locations: Physical position of each dof, shape (n_dofs, dim)
        vertex_dofs: Mesh vertex index -> dof located at that vertex
        constraints: Constrained dof -> list of (master dof, weight)
    """

    def __init__(self, mesh: Mesh, degree: int):
        """
        Initialize the handler.

        Args:
            mesh: Refined mesh
            degree: Polynomial degree of the Lagrange element

        Raises:
            InvalidDegree: if degree is not a positive integer
        """
        self.mesh = mesh
        self.fe = LagrangeElement(degree, mesh.dim)
        self.mapping = CellMapping(mesh.dim)

        self.cell_dofs: Optional[npt.NDArray[np.int64]] = None
        self.active_cells: List[int] = []
        self.n_dofs = 0
        self.dof_locations: Optional[npt.NDArray[np.float64]] = None
        self.vertex_dofs: Dict[int, int] = {}
        self.constraints: Dict[int, List[Tuple[int, float]]] = {}
        self._key_to_dof: Dict[tuple, int] = {}

        # Integer weight of every corner for every local node
        p = self.fe.degree
        corners = reference_corners(mesh.dim)
        idx = self.fe.node_indices
        self._node_weights = np.prod(
            np.where(corners[None, :, :] == 1, idx[:, None, :], p - idx[:, None, :]), axis=-1
        )

    @property
    def degree(self) -> int:
        return self.fe.degree

    @property
    def dofs_per_cell(self) -> int:
        return self.fe.dofs_per_cell

    def distribute_dofs(self) -> "DoFHandler":
        """
        Enumerate the dofs of the current mesh.

        Returns:
            self, for chaining
        """
        self._key_to_dof = {}
        self.vertex_dofs = {}
        self.active_cells = self.mesh.active_cell_indices()
        cell_dofs = np.zeros((len(self.active_cells), self.dofs_per_cell), dtype=np.int64)
        locations = []

        full_weight = self.degree**self.mesh.dim
        for row, cell_index in enumerate(self.active_cells):
            vertices = self.mesh.cells[cell_index].vertices
            node_positions = None
            for local, weights in enumerate(self._node_weights):
                key = tuple(sorted((vertices[c], int(w)) for c, w in enumerate(weights) if w > 0))
                dof = self._key_to_dof.get(key)
                if dof is None:
                    dof = len(self._key_to_dof)
                    self._key_to_dof[key] = dof
                    if node_positions is None:
                        node_positions = self.mapping.map_to_physical(
                            self.fe.node_points, self.mesh.get_cell_coordinates(cell_index)
                        )
                    locations.append(node_positions[local])
                    if len(key) == 1 and key[0][1] == full_weight:
                        self.vertex_dofs[key[0][0]] = dof
                cell_dofs[row, local] = dof

        self.cell_dofs = cell_dofs
        self.n_dofs = len(self._key_to_dof)
        self.dof_locations = np.array(locations).reshape(self.n_dofs, self.mesh.dim)

        self._make_hanging_node_constraints()
        logger.info(
            "Distributed %d dofs for %r on %d active cells (%d constrained)",
            self.n_dofs,
            self.fe,
            len(self.active_cells),
            len(self.constraints),
        )
        return self

    def _edge_key(self, a: int, b: int, k: int) -> tuple:
        """Key of the node at fraction k/p along the edge from vertex a to b."""
        p = self.degree
        scale = p ** (self.mesh.dim - 1)
        entries = [(a, (p - k) * scale), (b, k * scale)]
        return tuple(sorted(entry for entry in entries if entry[1] > 0))

    def _make_hanging_node_constraints(self) -> None:
        self.constraints = {}
        p = self.degree
        for _, a, b, midpoint in self.mesh.hanging_edges():
            coarse = [self._key_to_dof[self._edge_key(a, b, k)] for k in range(p + 1)]
            self._constrain_segment(a, midpoint, 0.0, 0.5, coarse)
            self._constrain_segment(midpoint, b, 0.5, 1.0, coarse)
        self._resolve_constraints()

    def _constrain_segment(self, a: int, b: int, t0: float, t1: float, coarse: List[int]) -> None:
        # A segment that was split again carries its nodes on the halves
        midpoint = self.mesh.entity_centers.get(tuple(sorted((a, b))))
        if midpoint is not None:
            t_mid = 0.5 * (t0 + t1)
            self._constrain_segment(a, midpoint, t0, t_mid, coarse)
            self._constrain_segment(midpoint, b, t_mid, t1, coarse)
            return

        p = self.degree
        for k in range(p + 1):
            dof = self._key_to_dof.get(self._edge_key(a, b, k))
            if dof is None or dof in coarse:
                continue
            t = t0 + (t1 - t0) * k / p
            weights = lagrange_1d(p, np.array([t]))[0][0]
            self.constraints[dof] = [
                (coarse[j], float(w)) for j, w in enumerate(weights) if abs(w) > _WEIGHT_TOLERANCE
            ]

    def _resolve_constraints(self) -> None:
        """Substitute constrained masters until every master is a free dof."""
        changed = True
        while changed:
            changed = False
            for dof, entries in self.constraints.items():
                if not any(master in self.constraints for master, _ in entries):
                    continue
                expanded = defaultdict(float)
                for master, weight in entries:
                    if master in self.constraints:
                        for inner, inner_weight in self.constraints[master]:
                            expanded[inner] += weight * inner_weight
                    else:
                        expanded[master] += weight
                self.constraints[dof] = [
                    (m, w) for m, w in sorted(expanded.items()) if abs(w) > _WEIGHT_TOLERANCE
                ]
                changed = True

    def is_constrained(self, dof: int) -> bool:
        return dof in self.constraints

    def expand(
        self, dofs: npt.NDArray[np.int64]
    ) -> Tuple[npt.NDArray[np.int64], Optional[npt.NDArray[np.float64]]]:
        """
        Rewrite a cell's dofs in terms of unconstrained dofs.

        Args:
            dofs: Global dofs of one cell

        Returns:
            Tuple (targets, T) such that the cell's values equal T @ values[targets].
            T is None when no dof of the cell is constrained (identity).
        """
        if not any(int(d) in self.constraints for d in dofs):
            return dofs, None

        targets: List[int] = []
        position: Dict[int, int] = {}
        entries = []
        for local, dof in enumerate(dofs):
            dof = int(dof)
            for master, weight in self.constraints.get(dof, [(dof, 1.0)]):
                if master not in position:
                    position[master] = len(targets)
                    targets.append(master)
                entries.append((local, position[master], weight))

        T = np.zeros((len(dofs), len(targets)))
        for local, column, weight in entries:
            T[local, column] += weight
        return np.array(targets, dtype=np.int64), T

    def distribute(self, values: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
        """
        Set constrained entries of a dof vector from their masters (in place).

        Args:
            values: Vector of length n_dofs

        Returns:
            The same vector
        """
        for dof, entries in self.constraints.items():
            values[dof] = sum(weight * values[master] for master, weight in entries)
        return values

    def cell_coordinates(self, row: int) -> npt.NDArray[np.float64]:
        """Corner coordinates of the active cell stored in row ``row`` of cell_dofs."""
        return self.mesh.get_cell_coordinates(self.active_cells[row])
