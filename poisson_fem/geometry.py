"""
Coarse mesh generation for the supported domain families.

A domain is a tagged variant: an axis-aligned box anchored at the origin
(2D or 3D), or a 2D annulus around a fixed centre.
"""

import logging
from enum import Enum

import numpy as np
import numpy.typing as npt
from typing import Callable, Optional, Sequence

from .exceptions import InvalidDomain
from .mesh import Mesh, NEAR_BOUNDARY_TOLERANCE

logger = logging.getLogger(__name__)

ANNULUS_CENTER = (1.0, 0.0)

# Relative tolerance for deciding that a vertex lies on the domain boundary
_BOUNDARY_TOLERANCE = 1e-8


class DomainKind(Enum):
    BOX = "box"
    ANNULUS = "annulus"


class Domain:
    """
    Description of the computational domain.

    Use the ``Domain.box`` and ``Domain.annulus`` constructors.

    Attributes:
        kind: DomainKind
        lengths: Box edge lengths along each axis (box only)
        repetitions: Coarse cells per axis (box only); defaults to ceil(length)
        inner_radius, outer_radius: Annulus radii (annulus only)
        center: Annulus centre
        n_cells: Number of coarse cells around the annulus; defaults to
            ceil(pi * (r_out + r_in) / (r_out - r_in))
    """

    def __init__(
        self,
        kind: DomainKind,
        lengths: Optional[Sequence[float]] = None,
        repetitions: Optional[Sequence[int]] = None,
        inner_radius: Optional[float] = None,
        outer_radius: Optional[float] = None,
        center: Sequence[float] = ANNULUS_CENTER,
        n_cells: Optional[int] = None,
    ):
        self.kind = DomainKind(kind)
        self.lengths = None if lengths is None else tuple(float(x) for x in lengths)
        self.repetitions = None if repetitions is None else tuple(repetitions)
        self.inner_radius = inner_radius
        self.outer_radius = outer_radius
        self.center = tuple(float(x) for x in center)
        self.n_cells = n_cells

    @classmethod
    def box(cls, lengths: Sequence[float], repetitions: Optional[Sequence[int]] = None) -> "Domain":
        """
        Axis-aligned box [0, L_1] x ... x [0, L_d].

        Args:
            lengths: Edge length along each axis (2 or 3 values)
            repetitions: Coarse cells per axis; defaults to ceil(length)

        Returns:
            Box Domain (not yet validated)
        """
        return cls(DomainKind.BOX, lengths=lengths, repetitions=repetitions)

    @classmethod
    def annulus(
        cls,
        inner_radius: float,
        outer_radius: float,
        center: Sequence[float] = ANNULUS_CENTER,
        n_cells: Optional[int] = None,
    ) -> "Domain":
        """
        Ring between two concentric circles.

        Args:
            inner_radius: Radius of the inner circle
            outer_radius: Radius of the outer circle
            center: Common centre of both circles
            n_cells: Coarse cells around the ring

        Returns:
            Annulus Domain (not yet validated)
        """
        return cls(
            DomainKind.ANNULUS,
            inner_radius=inner_radius,
            outer_radius=outer_radius,
            center=center,
            n_cells=n_cells,
        )

    def __repr__(self):
        if self.kind is DomainKind.BOX:
            return f"Domain.box(lengths={self.lengths})"
        return f"Domain.annulus(inner_radius={self.inner_radius}, outer_radius={self.outer_radius})"

    @property
    def dim(self) -> int:
        """Spatial dimension: number of box lengths, 2 for the annulus."""
        if self.kind is DomainKind.BOX:
            return len(self.lengths)
        return 2

    @property
    def characteristic_length(self) -> float:
        """Largest box edge or outer radius; scales the boundary tolerance."""
        if self.kind is DomainKind.BOX:
            return max(self.lengths)
        return self.outer_radius

    def validate(self) -> None:
        """
        Check the domain description.

        Raises:
            InvalidDomain: if the description does not define a valid domain
        """
        if self.kind is DomainKind.BOX:
            if self.lengths is None or len(self.lengths) not in (2, 3):
                raise InvalidDomain("A box needs 2 or 3 edge lengths")
            if not all(np.isfinite(self.lengths)) or min(self.lengths) <= 0:
                raise InvalidDomain(f"Box edge lengths must be positive, got {self.lengths}")
            if self.repetitions is not None:
                if len(self.repetitions) != len(self.lengths) or min(self.repetitions) < 1:
                    raise InvalidDomain("Box repetitions must give one positive count per axis")
        else:
            if self.inner_radius is None or self.outer_radius is None:
                raise InvalidDomain("An annulus needs an inner and an outer radius")
            if not (np.isfinite(self.inner_radius) and np.isfinite(self.outer_radius)):
                raise InvalidDomain(
                    f"Annulus radii must be finite, got {self.inner_radius} and {self.outer_radius}"
                )
            if self.inner_radius <= 0:
                raise InvalidDomain(f"Inner radius must be positive, got {self.inner_radius}")
            if self.inner_radius >= self.outer_radius:
                raise InvalidDomain(
                    f"Inner radius ({self.inner_radius}) must be smaller than outer radius ({self.outer_radius})"
                )
            if len(self.center) != 2:
                raise InvalidDomain("The annulus centre must be a 2D point")
            if self.n_cells is not None and self.n_cells < 3:
                raise InvalidDomain("An annulus needs at least 3 cells around the centre")

    def boundary_id(self, face_points: npt.NDArray[np.float64]) -> Optional[int]:
        """
        Identify the boundary component a cell face lies on.

        Args:
            face_points: Corner coordinates of the face, shape (n, dim)

        Returns:
            Box: 2 * axis + side (side 0 at coordinate 0, side 1 at the far end).
            Annulus: 0 for the inner circle, 1 for the outer circle.
            None when the face is interior.
        """
        tolerance = _BOUNDARY_TOLERANCE * self.characteristic_length
        if self.kind is DomainKind.BOX:
            for axis, length in enumerate(self.lengths):
                if np.all(np.abs(face_points[:, axis]) <= tolerance):
                    return 2 * axis
                if np.all(np.abs(face_points[:, axis] - length) <= tolerance):
                    return 2 * axis + 1
            return None

        radii = np.linalg.norm(face_points - np.array(self.center), axis=1)
        if np.all(np.abs(radii - self.inner_radius) <= tolerance):
            return 0
        if np.all(np.abs(radii - self.outer_radius) <= tolerance):
            return 1
        return None

    def inner_boundary_predicate(
        self, tolerance: float = NEAR_BOUNDARY_TOLERANCE
    ) -> Callable[[npt.NDArray[np.float64]], npt.NDArray[np.bool_]]:
        """
        Vertex predicate selecting points on the inner circle of an annulus.

        Args:
            tolerance: Distance tolerance relative to the inner radius

        Returns:
            Function mapping points (n, 2) to a boolean array (n,)
        """
        if self.kind is not DomainKind.ANNULUS:
            raise ValueError("Only an annulus has an inner boundary")
        center = np.array(self.center)
        inner_radius = self.inner_radius

        def predicate(points):
            distance = np.linalg.norm(points - center, axis=1)
            return np.abs(distance - inner_radius) <= tolerance * inner_radius

        return predicate


def generate_mesh(domain: Domain) -> Mesh:
    """
    Build the coarse mesh of a domain.

    Args:
        domain: Domain description (validated here)

    Returns:
        Coarse Mesh covering the domain
    """
    domain.validate()
    if domain.kind is DomainKind.BOX:
        mesh = _box_mesh(domain)
    else:
        mesh = _annulus_mesh(domain)
    logger.info("Coarse mesh for %r: %d cells, %d vertices", domain, mesh.n_cells, mesh.n_vertices)
    return mesh


def _box_mesh(domain: Domain) -> Mesh:
    """Structured grid of repetitions[k] cells along each axis."""
    dim = domain.dim
    if domain.repetitions is None:
        repetitions = [max(1, int(np.ceil(length - 1e-12))) for length in domain.lengths]
    else:
        repetitions = list(domain.repetitions)

    # Vertex (i, j, k) has index i + (nx+1) * (j + (ny+1) * k)
    axes = [np.linspace(0.0, length, n + 1) for length, n in zip(domain.lengths, repetitions)]
    grids = np.meshgrid(*axes, indexing="ij")
    vertices = np.stack([g.ravel(order="F") for g in grids], axis=-1)

    shape = [n + 1 for n in repetitions]

    def vertex_index(idx):
        return int(np.ravel_multi_index(tuple(idx), shape, order="F"))

    corners = np.array([[c & 1, (c >> 1) & 1, (c >> 2) & 1][:dim] for c in range(2**dim)])
    cells = []
    for cell_idx in np.ndindex(*repetitions[::-1]):
        origin = np.array(cell_idx[::-1])
        cells.append([vertex_index(origin + corner) for corner in corners])

    return Mesh(vertices, cells)


def _annulus_mesh(domain: Domain) -> Mesh:
    """Ring of quadrilaterals, the base cell repeated around the centre."""
    r_in, r_out = domain.inner_radius, domain.outer_radius
    if domain.n_cells is None:
        n_cells = int(np.ceil(np.pi * (r_out + r_in) / (r_out - r_in)))
    else:
        n_cells = domain.n_cells

    center = np.array(domain.center)
    angles = 2 * np.pi * np.arange(n_cells) / n_cells
    directions = np.stack([np.cos(angles), np.sin(angles)], axis=-1)
    # inner vertices 0..N-1, outer vertices N..2N-1
    vertices = np.concatenate([center + r_in * directions, center + r_out * directions])

    # Reference x runs radially outwards and y counter-clockwise, which keeps det(J) > 0
    cells = []
    for i in range(n_cells):
        j = (i + 1) % n_cells
        cells.append([i, n_cells + i, j, n_cells + j])

    return Mesh(vertices, cells, polar_center=center)
