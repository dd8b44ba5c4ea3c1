"""
Mesh storage and refinement for quadrilateral (2D) and hexahedral (3D) cells.

Cells live in a flat arena (``Mesh.cells``); refinement appends children and
links them to their parent by integer index. Only leaves are active.
"""

import itertools
import logging

import numpy as np
import numpy.typing as npt
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .shape_functions import CellMapping, face_corners, reference_corners
from .quadrature import QuadratureRule

logger = logging.getLogger(__name__)

# Refinement near a distinguished boundary: vertex distance tolerance relative
# to the boundary's characteristic length, and the number of passes.
NEAR_BOUNDARY_TOLERANCE = 1e-6
NEAR_BOUNDARY_PASSES = 3


class Cell:
    """
    One quadrilateral or hexahedral cell of the mesh arena.

    Attributes:
        vertices: Vertex indices in lexicographic corner order
        parent: Index of the parent cell, -1 for top-level cells
        children: Indices of the 2^dim children, empty while the cell is active
        level: Number of subdivisions from the coarse mesh
        refine_flag: Marks the cell for the next execute_refinement()
    """

    __slots__ = ("vertices", "parent", "children", "level", "refine_flag")

    def __init__(self, vertices: Sequence[int], parent: int = -1, level: int = 0):
        self.vertices = tuple(int(v) for v in vertices)
        self.parent = parent
        self.children: List[int] = []
        self.level = level
        self.refine_flag = False

    @property
    def active(self) -> bool:
        return not self.children

    def __repr__(self):
        return f"Cell(vertices={self.vertices}, parent={self.parent}, level={self.level})"


class Mesh:
    """
    Class for managing a refinable finite element mesh.

    New vertices created by refinement are shared between neighbours through
    a registry keyed by the sorted vertex ids of the subdivided entity (edge,
    face or cell). Their position is the mean of the entity corners, or, when
    ``polar_center`` is given, the point at the mean radius and mean angle
    about that centre so that vertices on circles stay on circles.
    """

    def __init__(
        self,
        vertices: npt.ArrayLike,
        cells: Iterable[Sequence[int]],
        polar_center: Optional[npt.ArrayLike] = None,
    ):
        """
        Initialize a coarse mesh.

        Args:
            vertices: Vertex coordinates, shape (num_vertices, dim)
            cells: Corner vertex indices of each cell in lexicographic order
            polar_center: Centre of the polar vertex placement (2D only)
        """
        vertices = np.asarray(vertices, dtype=np.float64)
        if vertices.ndim != 2 or vertices.shape[1] not in (2, 3):
            raise ValueError("Vertices must have shape (num_vertices, 2) or (num_vertices, 3)")

        self.dim = vertices.shape[1]
        self._vertex_list = [v for v in vertices]
        self._vertex_array: Optional[npt.NDArray[np.float64]] = None

        self.cells: List[Cell] = []
        for corners in cells:
            if len(corners) != 2**self.dim:
                raise ValueError(f"A {self.dim}D cell needs {2**self.dim} vertices, got {len(corners)}")
            self.cells.append(Cell(corners))

        self.polar_center = None if polar_center is None else np.asarray(polar_center, dtype=np.float64)
        if self.polar_center is not None and self.dim != 2:
            raise ValueError("Polar vertex placement is only available in 2D")

        # sorted entity vertex ids -> vertex created at the entity centre
        self.entity_centers: Dict[Tuple[int, ...], int] = {}

    @property
    def vertices(self) -> npt.NDArray[np.float64]:
        """Vertex coordinates, shape (num_vertices, dim)."""
        if self._vertex_array is None or self._vertex_array.shape[0] != len(self._vertex_list):
            self._vertex_array = np.array(self._vertex_list)
        return self._vertex_array

    @property
    def n_vertices(self) -> int:
        """Number of vertices, including those created by refinement."""
        return len(self._vertex_list)

    @property
    def n_cells(self) -> int:
        """Total number of cells in the arena, refined ones included."""
        return len(self.cells)

    @property
    def n_active_cells(self) -> int:
        """Number of leaf cells."""
        return sum(1 for cell in self.cells if cell.active)

    @property
    def max_level(self) -> int:
        """Deepest refinement level of any cell."""
        return max(cell.level for cell in self.cells)

    def active_cell_indices(self) -> List[int]:
        """Arena indices of the leaf cells, in arena order."""
        return [i for i, cell in enumerate(self.cells) if cell.active]

    def active_cells(self) -> npt.NDArray[np.int64]:
        """
        Connectivity of the active cells.

        Returns:
            Array of shape (n_active_cells, 2^dim) of vertex indices
        """
        return np.array([cell.vertices for cell in self.cells if cell.active], dtype=np.int64)

    def get_cell_coordinates(self, cell_index: int) -> npt.NDArray[np.float64]:
        """
        Get the coordinates of the corners of a cell.

        Args:
            cell_index: Index into the cell arena

        Returns:
            Array of shape (2^dim, dim)
        """
        return self.vertices[list(self.cells[cell_index].vertices)]

    def volume(self) -> float:
        """Total area (2D) or volume (3D) covered by the active cells."""
        mapping = CellMapping(self.dim)
        quadrature = QuadratureRule(2, self.dim)
        total = 0.0
        for index in self.active_cell_indices():
            _, det_J, _ = mapping.jacobians(quadrature.points, self.get_cell_coordinates(index))
            total += float(np.sum(det_J * quadrature.weights))
        return total

    def hanging_edges(self) -> List[Tuple[int, int, int, int]]:
        """
        Find edges of active cells whose neighbour across the edge is refined.

        Only meaningful in 2D.

        Returns:
            List of (cell_index, first_vertex, second_vertex, midpoint_vertex);
            the edge runs from first to second vertex in the cell's reference
            orientation.
        """
        if self.dim != 2:
            return []
        result = []
        edges = face_corners(self.dim)
        for index in self.active_cell_indices():
            vertices = self.cells[index].vertices
            for local in edges:
                a, b = vertices[local[0]], vertices[local[1]]
                midpoint = self.entity_centers.get(tuple(sorted((a, b))))
                if midpoint is not None:
                    result.append((index, a, b, midpoint))
        return result

    def refine_global(self, levels: int = 1) -> None:
        """
        Split every active cell into 2^dim children, ``levels`` times.

        Args:
            levels: Number of refinement passes (non-negative)
        """
        if levels < 0:
            raise ValueError("Number of refinement levels must be non-negative")
        for _ in range(levels):
            for cell in self.cells:
                if cell.active:
                    cell.refine_flag = True
            self.execute_refinement()
        logger.debug("Global refinement by %d level(s): %d active cells", levels, self.n_active_cells)

    def refine_near_boundary(
        self,
        boundary_predicate: Callable[[npt.NDArray[np.float64]], npt.NDArray[np.bool_]],
        passes: int = NEAR_BOUNDARY_PASSES,
    ) -> int:
        """
        Refine only the cells touching a distinguished boundary.

        Each pass flags every active cell with at least one vertex for which
        ``boundary_predicate`` holds and refines the flagged cells. A pass that
        flags nothing ends the loop without modifying the mesh.

        Args:
            boundary_predicate: Maps vertex coordinates (n, dim) to a boolean array (n,)
            passes: Maximum number of passes

        Returns:
            Number of cells refined in total
        """
        if self.dim != 2:
            raise ValueError("Local refinement is only supported for 2D meshes")
        if passes < 0:
            raise ValueError("Number of refinement passes must be non-negative")

        total = 0
        for step in range(passes):
            near = np.asarray(boundary_predicate(self.vertices), dtype=bool)
            flagged = 0
            for cell in self.cells:
                if cell.active and near[list(cell.vertices)].any():
                    cell.refine_flag = True
                    flagged += 1
            if flagged == 0:
                logger.debug("Pass %d: no cell touches the boundary, stopping", step)
                break
            total += self.execute_refinement()
            logger.debug("Pass %d: refined %d cells near the boundary", step, flagged)
        return total

    def execute_refinement(self) -> int:
        """
        Refine all active cells carrying a refine flag.

        Returns:
            Number of cells refined (0 leaves the mesh unchanged)
        """
        flagged = [i for i, cell in enumerate(self.cells) if cell.active and cell.refine_flag]
        for index in flagged:
            self._refine_cell(index)
        return len(flagged)

    def _refine_cell(self, index: int) -> None:
        cell = self.cells[index]
        corners = reference_corners(self.dim)

        # Vertices of the 3^dim grid at reference coordinates {0, 1/2, 1}^dim
        grid = {}
        for a in itertools.product(range(3), repeat=self.dim):
            a = np.array(a[::-1])
            fixed = a != 1
            entity = [
                c for c in range(len(corners)) if np.all(corners[c][fixed] * 2 == a[fixed])
            ]
            vertex_ids = [cell.vertices[c] for c in entity]
            if len(vertex_ids) == 1:
                grid[tuple(a)] = vertex_ids[0]
            else:
                grid[tuple(a)] = self._entity_center(vertex_ids)

        for offset in corners:
            child_vertices = [grid[tuple(offset + corner)] for corner in corners]
            self.cells.append(Cell(child_vertices, parent=index, level=cell.level + 1))
            cell.children.append(len(self.cells) - 1)
        cell.refine_flag = False

    def _entity_center(self, vertex_ids: Sequence[int]) -> int:
        key = tuple(sorted(vertex_ids))
        if key in self.entity_centers:
            return self.entity_centers[key]

        points = np.array([self._vertex_list[v] for v in vertex_ids])
        if self.polar_center is None:
            position = points.mean(axis=0)
        else:
            relative = points - self.polar_center
            radii = np.hypot(relative[:, 0], relative[:, 1])
            angles = np.arctan2(relative[:, 1], relative[:, 0])
            # unwrap around the first corner so that averaging does not jump at +-pi
            angles = angles[0] + (angles - angles[0] + np.pi) % (2 * np.pi) - np.pi
            radius, angle = radii.mean(), angles.mean()
            position = self.polar_center + radius * np.array([np.cos(angle), np.sin(angle)])

        self._vertex_list.append(position)
        self.entity_centers[key] = len(self._vertex_list) - 1
        return self.entity_centers[key]
