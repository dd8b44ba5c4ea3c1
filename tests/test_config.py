import json

import numpy as np
import pytest

from poisson_fem.boundary import BoundaryKind
from poisson_fem.config import ProblemParameters
from poisson_fem.element import SourceKind
from poisson_fem.exceptions import InvalidDegree, InvalidDomain
from poisson_fem.fem_solver import FEMSolver
from poisson_fem.geometry import DomainKind


def test_defaults_are_valid():
    params = ProblemParameters()
    params.validate()
    assert params.domain == "box"
    assert params.tolerance == 1e-12
    assert params.max_iterations == 1000
    assert params.make_domain().kind is DomainKind.BOX


def test_dict_round_trip(annulus_parameters):
    values = annulus_parameters.to_dict()
    assert ProblemParameters.from_dict(values) == annulus_parameters
    assert values["center"] == [1.0, 0.0]


def test_json_round_trip(tmp_path, box_parameters):
    path = tmp_path / "problem.json"
    box_parameters.to_json(path)
    assert json.loads(path.read_text())["lengths"] == [2.0, 4.0]
    assert ProblemParameters.from_json(path) == box_parameters


def test_unknown_keys_are_rejected():
    with pytest.raises(ValueError, match="refinements"):
        ProblemParameters.from_dict({"refinements": 2})


def test_factories(annulus_parameters):
    domain = annulus_parameters.make_domain()
    assert domain.kind is DomainKind.ANNULUS
    assert (domain.inner_radius, domain.outer_radius) == (1.0, 2.0)

    assert annulus_parameters.make_boundary_value().kind is BoundaryKind.CONSTANT
    assert annulus_parameters.make_boundary_value().value == 5.0
    params = ProblemParameters(boundary_kind="squared_norm", source_kind="quartic")
    assert params.make_boundary_value().kind is BoundaryKind.SQUARED_NORM
    assert params.make_source_term().kind is SourceKind.QUARTIC


def test_invalid_domain_is_reported_first():
    params = ProblemParameters(domain="annulus", inner_radius=2.0, outer_radius=1.0, degree=0)
    with pytest.raises(InvalidDomain):
        params.validate()


def test_numpy_integers_are_accepted():
    params = ProblemParameters(degree=np.int64(2), refinement=np.int32(1))
    params.validate()
    solver = FEMSolver(params)
    assert solver.dof_handler.degree == 2


@pytest.mark.parametrize("degree", [0, -2, 1.5, True, np.float64(2.0)])
def test_invalid_degree(degree):
    with pytest.raises(InvalidDegree):
        ProblemParameters(degree=degree).validate()


@pytest.mark.parametrize(
    "overrides",
    [
        {"refinement": -1},
        {"boundary_kind": "neumann"},
        {"source_kind": "sine"},
        {"preconditioner": "ilu"},
        {"tolerance": 0.0},
        {"max_iterations": 0},
        {"near_boundary_passes": -1},
    ],
)
def test_other_invalid_settings(overrides):
    with pytest.raises(ValueError):
        ProblemParameters(**overrides).validate()


def test_unknown_domain_kind():
    with pytest.raises(ValueError):
        ProblemParameters(domain="sphere")
