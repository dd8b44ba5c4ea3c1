import numpy as np
import pytest

from poisson_fem.boundary import BoundaryValue
from poisson_fem.config import ProblemParameters
from poisson_fem.element import SourceTerm
from poisson_fem.exceptions import InvalidDegree, InvalidDomain
from poisson_fem.fem_solver import FEMSolver


def _squared_norm(points):
    return np.sum(points**2, axis=1)


def test_box_2x4_scenario(box_parameters):
    result = FEMSolver(box_parameters).run()
    assert result.n_dofs == 33 * 65
    assert result.mesh.n_active_cells == 8 * 4**4
    assert result.converged
    assert result.iterations <= 1000
    assert np.all(result.boundary_values() == 1.0)
    # -Δu = 1 with u = 1 on the boundary lifts the interior above 1
    assert result.solution.max() > 1.0


def test_annulus_scenario(annulus_parameters):
    result = FEMSolver(annulus_parameters).run()
    radii = np.linalg.norm(result.dof_locations - np.array([1.0, 0.0]), axis=1)
    on_circles = np.isclose(radii, 1.0, atol=1e-10) | np.isclose(radii, 2.0, atol=1e-10)

    assert on_circles.sum() == len(result.boundary_dofs)
    assert np.all(result.solution[on_circles] == 5.0)
    assert result.mesh.max_level == 6
    assert result.mesh.hanging_edges()


def test_reversed_annulus_fails_before_meshing():
    params = ProblemParameters(domain="annulus", lengths=None, inner_radius=2.0, outer_radius=1.0)
    with pytest.raises(InvalidDomain):
        FEMSolver(params)


@pytest.mark.parametrize("radii", [(1.0, np.inf), (np.nan, 2.0), (1.0, np.nan)])
def test_non_finite_annulus_radii_fail_before_meshing(radii):
    inner, outer = radii
    params = ProblemParameters(domain="annulus", lengths=None, inner_radius=inner, outer_radius=outer)
    with pytest.raises(InvalidDomain, match="finite"):
        FEMSolver(params).run()


def test_invalid_degree_fails_before_meshing():
    with pytest.raises(InvalidDegree):
        FEMSolver(ProblemParameters(degree=0))


def test_assembled_matrix_is_symmetric_before_elimination():
    solver = FEMSolver(ProblemParameters(lengths=[1.0, 2.0], refinement=2, degree=2))
    matrix, rhs = solver.assemble_system()
    assert matrix.is_symmetric()
    assert np.allclose(matrix @ np.ones(solver.dof_handler.n_dofs), 0.0)
    assert np.isclose(rhs.sum(), 2.0)


@pytest.mark.parametrize("lengths", [[1.0, 1.0], [2.0, 1.0, 1.0]])
def test_q2_reproduces_quadratic_solution(lengths):
    dim = len(lengths)
    solver = FEMSolver(ProblemParameters(lengths=lengths, refinement=1, degree=2))
    solver.set_boundary_value(BoundaryValue.squared_norm())
    solver.set_source_term(SourceTerm.constant(-2.0 * dim))
    result = solver.run()

    assert result.converged
    assert np.allclose(result.solution, _squared_norm(result.dof_locations), atol=1e-9)
    l2_error, h1_error = solver.evaluate_error(_squared_norm, lambda p: 2.0 * p)
    assert l2_error < 1e-9
    assert h1_error < 1e-8


@pytest.mark.parametrize("degree", [1, 2])
def test_hanging_nodes_reproduce_linear_solution(locally_refined_square, degree):
    def exact(points):
        return 1.0 + 2.0 * points[:, 0] - 0.5 * points[:, 1]

    solver = FEMSolver(ProblemParameters(lengths=[1.0, 1.0], refinement=0, degree=degree))
    solver.mesh = locally_refined_square
    solver.setup_system()
    assert solver.dof_handler.constraints

    solver.set_boundary_value(BoundaryValue.from_function(exact))
    solver.set_source_term(SourceTerm.constant(0.0))
    result = solver.run()

    assert result.converged
    assert np.allclose(result.solution, exact(result.dof_locations), atol=1e-9)


def test_hanging_nodes_converge_for_curved_solution(locally_refined_square):
    solver = FEMSolver(ProblemParameters(lengths=[1.0, 1.0], refinement=0, degree=2))
    solver.mesh = locally_refined_square
    solver.setup_system()
    solver.set_boundary_value(BoundaryValue.squared_norm())
    solver.set_source_term(SourceTerm.constant(-4.0))
    result = solver.run()
    assert np.allclose(result.solution, _squared_norm(result.dof_locations), atol=1e-9)


def test_changing_data_reuses_the_mesh():
    solver = FEMSolver(ProblemParameters(refinement=2, boundary_value=1.0, source_value=0.0))
    first = solver.run()
    mesh, handler, pattern = solver.mesh, solver.dof_handler, solver.sparsity_pattern
    assert np.allclose(first.solution, 1.0)

    solver.set_boundary_value(BoundaryValue.constant(3.0))
    second = solver.run()
    assert solver.mesh is mesh
    assert solver.dof_handler is handler
    assert solver.sparsity_pattern is pattern
    assert np.allclose(second.solution, 3.0)


def test_boundary_subset():
    solver = FEMSolver(ProblemParameters(refinement=2, source_value=0.0))
    solver.set_boundary_value(BoundaryValue.constant(1.0), boundary_ids=[0])
    result = solver.run()
    left = np.isclose(result.dof_locations[:, 0], 0.0)
    assert np.all(result.solution[left] == 1.0)
    # only x = 0 is constrained: the remaining boundary is natural and u = 1 everywhere
    assert np.allclose(result.solution, 1.0)


def test_quartic_source_in_3d():
    params = ProblemParameters(
        lengths=[1.0, 1.0, 1.0], refinement=2, boundary_kind="squared_norm", source_kind="quartic"
    )
    result = FEMSolver(params).run()
    assert result.converged
    assert result.n_dofs == 125


def test_jacobi_matches_identity():
    base = dict(lengths=[1.0, 1.0], refinement=3, degree=2, source_kind="quartic", boundary_value=0.5)
    plain = FEMSolver(ProblemParameters(**base)).run()
    jacobi = FEMSolver(ProblemParameters(preconditioner="jacobi", **base)).run()
    assert np.allclose(plain.solution, jacobi.solution, atol=1e-10)


def test_error_decreases_with_refinement():
    def exact(points):
        return np.sin(np.pi * points[:, 0]) * np.sin(np.pi * points[:, 1])

    errors = []
    for level in (2, 3):
        solver = FEMSolver(ProblemParameters(refinement=level, degree=1))
        solver.set_source_term(SourceTerm.from_function(lambda p: 2 * np.pi**2 * exact(p)))
        solver.run()
        errors.append(solver.evaluate_error(exact)[0])
    assert errors[1] < errors[0] / 3.0


def test_evaluate_solution_requires_a_run():
    solver = FEMSolver(ProblemParameters())
    with pytest.raises(ValueError):
        solver.evaluate_solution([0.5, 0.5], 0)
    solver.set_source_term(SourceTerm.constant(0.0))
    solver.set_boundary_value(BoundaryValue.constant(2.0))
    solver.run()
    assert np.isclose(solver.evaluate_solution([0.5, 0.5], 0), 2.0)
