"""
Solver invocation parameters.

Parameters are normally supplied by an outer application (a GUI or the
command line driver in ``main.py``); they can also be read from JSON.
"""

import json
import numbers
from pathlib import Path

from typing import Any, Dict, Optional, Sequence, Union

from .boundary import BoundaryValue
from .element import SourceTerm
from .exceptions import InvalidDegree
from .geometry import ANNULUS_CENTER, Domain, DomainKind
from .linear_solver import DEFAULT_MAX_ITERATIONS, DEFAULT_TOLERANCE, PRECONDITIONERS
from .mesh import NEAR_BOUNDARY_PASSES, NEAR_BOUNDARY_TOLERANCE

BOUNDARY_KINDS = ("constant", "squared_norm")
SOURCE_KINDS = ("constant", "quartic")


class ProblemParameters:
    """
    Everything needed to set up and run one Poisson solve.

    Args:
        domain: "box" or "annulus"
        lengths: Box edge lengths (2 or 3 values)
        inner_radius, outer_radius: Annulus radii
        center: Annulus centre
        refinement: Number of global refinement levels
        degree: Polynomial degree of the Lagrange element
        boundary_kind: "constant" or "squared_norm"
        boundary_value: Value used when boundary_kind is "constant"
        source_kind: "constant" or "quartic"
        source_value: Value used when source_kind is "constant"
        tolerance: Absolute residual tolerance of CG
        max_iterations: CG iteration cap
        preconditioner: "identity" or "jacobi"
        near_boundary_passes: Local refinement passes near the inner circle (annulus)
        near_boundary_tolerance: Relative vertex distance tolerance for those passes
    """

    def __init__(
        self,
        domain: Union[str, DomainKind] = "box",
        lengths: Optional[Sequence[float]] = (1.0, 1.0),
        inner_radius: Optional[float] = None,
        outer_radius: Optional[float] = None,
        center: Sequence[float] = ANNULUS_CENTER,
        refinement: int = 1,
        degree: int = 1,
        boundary_kind: str = "constant",
        boundary_value: float = 0.0,
        source_kind: str = "constant",
        source_value: float = 1.0,
        tolerance: float = DEFAULT_TOLERANCE,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        preconditioner: str = "identity",
        near_boundary_passes: int = NEAR_BOUNDARY_PASSES,
        near_boundary_tolerance: float = NEAR_BOUNDARY_TOLERANCE,
    ):
        self.domain = DomainKind(domain).value
        self.lengths = None if lengths is None else [float(x) for x in lengths]
        self.inner_radius = None if inner_radius is None else float(inner_radius)
        self.outer_radius = None if outer_radius is None else float(outer_radius)
        self.center = [float(x) for x in center]
        self.refinement = refinement
        self.degree = degree
        self.boundary_kind = boundary_kind
        self.boundary_value = float(boundary_value)
        self.source_kind = source_kind
        self.source_value = float(source_value)
        self.tolerance = float(tolerance)
        self.max_iterations = max_iterations
        self.preconditioner = preconditioner
        self.near_boundary_passes = near_boundary_passes
        self.near_boundary_tolerance = float(near_boundary_tolerance)

    def __repr__(self):
        fields = ", ".join(f"{key}={value!r}" for key, value in self.to_dict().items())
        return f"ProblemParameters({fields})"

    def __eq__(self, other):
        return isinstance(other, ProblemParameters) and self.to_dict() == other.to_dict()

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> "ProblemParameters":
        unknown = set(values) - set(cls().to_dict())
        if unknown:
            raise ValueError(f"Unknown parameter(s): {', '.join(sorted(unknown))}")
        return cls(**values)

    @classmethod
    def from_json(cls, path: Union[str, Path]) -> "ProblemParameters":
        with open(path, "r") as f:
            return cls.from_dict(json.load(f))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "domain": self.domain,
            "lengths": self.lengths,
            "inner_radius": self.inner_radius,
            "outer_radius": self.outer_radius,
            "center": self.center,
            "refinement": self.refinement,
            "degree": self.degree,
            "boundary_kind": self.boundary_kind,
            "boundary_value": self.boundary_value,
            "source_kind": self.source_kind,
            "source_value": self.source_value,
            "tolerance": self.tolerance,
            "max_iterations": self.max_iterations,
            "preconditioner": self.preconditioner,
            "near_boundary_passes": self.near_boundary_passes,
            "near_boundary_tolerance": self.near_boundary_tolerance,
        }

    def to_json(self, path: Union[str, Path]) -> None:
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)

    def validate(self) -> None:
        """
        Check all parameters before any mesh is built.

        Raises:
            InvalidDomain: for an invalid domain description
            InvalidDegree: for a non-positive polynomial degree
            ValueError: for any other invalid setting
        """
        self.make_domain().validate()
        if isinstance(self.degree, bool) or not isinstance(self.degree, numbers.Integral) or self.degree < 1:
            raise InvalidDegree(f"Polynomial degree must be a positive integer, got {self.degree!r}")
        if isinstance(self.refinement, bool) or not isinstance(self.refinement, numbers.Integral) or self.refinement < 0:
            raise ValueError(f"Refinement level must be a non-negative integer, got {self.refinement!r}")
        if self.boundary_kind not in BOUNDARY_KINDS:
            raise ValueError(f"Unknown boundary kind {self.boundary_kind!r}, expected one of {BOUNDARY_KINDS}")
        if self.source_kind not in SOURCE_KINDS:
            raise ValueError(f"Unknown source kind {self.source_kind!r}, expected one of {SOURCE_KINDS}")
        if self.preconditioner not in PRECONDITIONERS:
            raise ValueError(f"Unknown preconditioner {self.preconditioner!r}")
        if self.tolerance <= 0 or self.max_iterations < 1:
            raise ValueError("Solver tolerance must be positive and max_iterations at least 1")
        if self.near_boundary_passes < 0 or self.near_boundary_tolerance <= 0:
            raise ValueError("Near-boundary passes must be non-negative and the tolerance positive")

    def make_domain(self) -> Domain:
        if self.domain == DomainKind.BOX.value:
            return Domain.box(self.lengths or ())
        return Domain.annulus(self.inner_radius, self.outer_radius, center=self.center)

    def make_boundary_value(self) -> BoundaryValue:
        if self.boundary_kind == "squared_norm":
            return BoundaryValue.squared_norm()
        return BoundaryValue.constant(self.boundary_value)

    def make_source_term(self) -> SourceTerm:
        if self.source_kind == "quartic":
            return SourceTerm.quartic()
        return SourceTerm.constant(self.source_value)
