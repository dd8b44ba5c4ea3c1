"""
Example problems for the FEM solver.
"""

import logging

import numpy as np
import matplotlib.pyplot as plt
from typing import Tuple

from .config import ProblemParameters
from .fem_solver import FEMSolver
from .plots import plot_solution
from .result import PoissonResult
from .utils import convergence_study

logger = logging.getLogger(__name__)


def _report(name: str, result: PoissonResult) -> None:
    logger.info(
        "%s: %d active cells, %d dofs, %d CG iterations, residual %.3e, converged=%s",
        name,
        result.mesh.n_active_cells,
        result.n_dofs,
        result.iterations,
        result.residual_norm,
        result.converged,
    )


def box_example(plot: bool = False) -> Tuple[FEMSolver, PoissonResult]:
    """
    Example 1: Constant source on a 2 x 4 rectangle.

    Problem: -Δu = 1 on [0,2]×[0,4]
    Boundary conditions: u = 1 on boundary
    Mesh: 2 x 4 unit cells refined globally four times (33 x 65 Q1 dofs)
    """
    params = ProblemParameters(
        domain="box", lengths=[2.0, 4.0], refinement=4, degree=1, boundary_value=1.0
    )
    solver = FEMSolver(params)
    result = solver.run()
    _report("Box example", result)

    if plot:
        plot_solution(result, title="Box: -Δu = 1, u = 1 on boundary")
        plt.show()

    return solver, result


def annulus_example(plot: bool = False) -> Tuple[FEMSolver, PoissonResult]:
    """
    Example 2: Constant source on an annulus around (1, 0).

    Problem: -Δu = 1 on 1 < |x - (1,0)| < 2
    Boundary conditions: u = 5 on both circles
    Mesh: 10 coarse cells, refined globally three times and three more
    times next to the inner circle
    """
    params = ProblemParameters(
        domain="annulus",
        lengths=None,
        inner_radius=1.0,
        outer_radius=2.0,
        refinement=3,
        degree=1,
        boundary_value=5.0,
    )
    solver = FEMSolver(params)
    result = solver.run()
    _report("Annulus example", result)

    if plot:
        plot_solution(result, title="Annulus: -Δu = 1, u = 5 on boundary")
        plt.show()

    return solver, result


def cube_example() -> Tuple[FEMSolver, PoissonResult]:
    """
    Example 3: Three-dimensional unit cube.

    Problem: -Δu = 4(x⁴ + y⁴ + z⁴) on [0,1]³
    Boundary conditions: u = x² + y² + z² on boundary
    """
    params = ProblemParameters(
        domain="box",
        lengths=[1.0, 1.0, 1.0],
        refinement=3,
        degree=1,
        boundary_kind="squared_norm",
        source_kind="quartic",
    )
    solver = FEMSolver(params)
    result = solver.run()
    _report("Cube example", result)
    return solver, result


def manufactured_solution_example(plot: bool = False) -> dict:
    """
    Example 4: Convergence against a known solution.

    Problem: -Δu = -4 on [0,1]×[0,1]
    Boundary conditions: u = x² + y² on boundary
    Exact solution: u(x,y) = x² + y²

    Q1 elements converge with rates 2 (L2) and 1 (H1).
    """

    def exact_solution(points):
        return np.sum(points**2, axis=1)

    def exact_gradient(points):
        return 2.0 * points

    params = ProblemParameters(
        domain="box",
        lengths=[1.0, 1.0],
        degree=1,
        boundary_kind="squared_norm",
        source_value=-4.0,
    )
    results = convergence_study(
        params,
        refinements=[2, 3, 4, 5],
        exact_solution=exact_solution,
        exact_gradient=exact_gradient,
        show_plot=plot,
    )
    logger.info(
        "Average rates: L2 %.2f, H1 %.2f",
        np.mean(results["l2_rates"]),
        np.mean(results["h1_rates"]),
    )
    logger.info("Max nodal error on the finest mesh: %.3e", results["nodal_errors"][-1])
    return results


def run_all_examples(plot: bool = False) -> None:
    """Run all examples."""
    logger.info("Running box example...")
    box_example(plot)

    logger.info("Running annulus example...")
    annulus_example(plot)

    logger.info("Running cube example...")
    cube_example()

    logger.info("Running manufactured solution example...")
    manufactured_solution_example(plot)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    run_all_examples()
