import matplotlib

matplotlib.use("Agg")

import numpy as np
import pytest

from poisson_fem.config import ProblemParameters
from poisson_fem.dof_handler import DoFHandler
from poisson_fem.geometry import Domain, generate_mesh


@pytest.fixture
def unit_square_mesh():
    mesh = generate_mesh(Domain.box([1.0, 1.0]))
    mesh.refine_global(2)
    return mesh


@pytest.fixture
def locally_refined_square():
    """Unit square, refined once globally and twice more next to x = 0."""
    mesh = generate_mesh(Domain.box([1.0, 1.0]))
    mesh.refine_global(1)
    mesh.refine_near_boundary(lambda points: np.abs(points[:, 0]) < 1e-12, passes=2)
    return mesh


@pytest.fixture
def q1_handler(unit_square_mesh):
    return DoFHandler(unit_square_mesh, 1).distribute_dofs()


@pytest.fixture
def box_parameters():
    return ProblemParameters(domain="box", lengths=[2.0, 4.0], refinement=4, degree=1, boundary_value=1.0)


@pytest.fixture
def annulus_parameters():
    return ProblemParameters(
        domain="annulus",
        lengths=None,
        inner_radius=1.0,
        outer_radius=2.0,
        refinement=3,
        degree=1,
        boundary_value=5.0,
    )
