"""
Utility functions for FEM analysis.
"""

import logging

import numpy as np
import matplotlib.pyplot as plt
from typing import Any, Callable, Dict, List, Optional, Sequence
import numpy.typing as npt

from .config import ProblemParameters
from .fem_solver import FEMSolver
from .mesh import Mesh
from .sparsity import SparseMatrix

logger = logging.getLogger(__name__)

# dense condition numbers only below this size
_DENSE_LIMIT = 2000


def max_cell_diameter(mesh: Mesh) -> float:
    """Largest corner-to-corner distance over the active cells."""
    vertices = mesh.vertices
    cells = mesh.active_cells()
    corners = vertices[cells]  # (n_cells, 2^dim, dim)
    distances = np.linalg.norm(corners[:, :, None, :] - corners[:, None, :, :], axis=-1)
    return float(distances.max())


def convergence_study(
    parameters: ProblemParameters,
    refinements: Sequence[int],
    exact_solution: Callable[[npt.NDArray[np.float64]], npt.NDArray[np.float64]],
    exact_gradient: Optional[Callable[[npt.NDArray[np.float64]], npt.NDArray[np.float64]]] = None,
    source=None,
    boundary_value=None,
    show_plot: bool = False,
) -> Dict[str, List[float]]:
    """
    Perform a convergence study for the FEM solver.

    Args:
        parameters: Base problem; only the refinement level is varied
        refinements: Global refinement levels to test
        exact_solution: Exact solution u, maps points (n, dim) to values (n,)
        exact_gradient: Exact gradient of u, maps points (n, dim) to (n, dim)
        source: SourceTerm overriding the configured one
        boundary_value: BoundaryValue overriding the configured one
        show_plot: Draw a log-log plot of the errors

    Returns:
        Dictionary containing h_values, n_dofs, l2_errors, h1_errors, nodal_errors,
        l2_rates, and h1_rates
    """
    h_values = []
    n_dofs = []
    l2_errors = []
    h1_errors = []
    nodal_errors = []

    for level in refinements:
        values = parameters.to_dict()
        values["refinement"] = level
        solver = FEMSolver(ProblemParameters.from_dict(values))
        if source is not None:
            solver.set_source_term(source)
        if boundary_value is not None:
            solver.set_boundary_value(boundary_value)
        result = solver.run()

        h = max_cell_diameter(result.mesh)
        h_values.append(h)
        n_dofs.append(result.n_dofs)

        l2_error, h1_error = solver.evaluate_error(exact_solution, exact_gradient)
        l2_errors.append(l2_error)
        h1_errors.append(h1_error)

        exact_at_dofs = compute_exact_solution_at_dofs(result.dof_locations, exact_solution)
        nodal_errors.append(float(np.max(np.abs(result.solution - exact_at_dofs))))

        logger.info(
            "Refinement %d: h = %.6f, dofs = %d, L2 error = %.6e, H1 error = %.6e, max nodal error = %.6e",
            level, h, result.n_dofs, l2_error, h1_error, nodal_errors[-1],
        )

    # Compute convergence rates
    l2_rates = [
        float(np.log(l2_errors[i] / l2_errors[i + 1]) / np.log(h_values[i] / h_values[i + 1]))
        for i in range(len(h_values) - 1)
    ]
    h1_rates = [
        float(np.log(h1_errors[i] / h1_errors[i + 1]) / np.log(h_values[i] / h_values[i + 1]))
        for i in range(len(h_values) - 1)
    ]

    if show_plot and l2_rates:
        plt.figure(figsize=(10, 8))
        plt.loglog(h_values, l2_errors, "o-", label=f"L2 Error (Rate ≈ {np.mean(l2_rates):.2f})")
        if exact_gradient is not None:
            plt.loglog(h_values, h1_errors, "s-", label=f"H1 Error (Rate ≈ {np.mean(h1_rates):.2f})")

        p = parameters.degree
        ref_h = np.array([h_values[0], h_values[-1]])
        plt.loglog(ref_h, ref_h ** (p + 1) * l2_errors[0] / h_values[0] ** (p + 1), "k--", label=f"O(h^{p + 1})")
        plt.loglog(ref_h, ref_h**p * h1_errors[0] / h_values[0] ** p, "k-.", label=f"O(h^{p})")

        plt.xlabel("Element Size (h)")
        plt.ylabel("Error")
        plt.title("FEM Convergence Study")
        plt.grid(True, which="both")
        plt.legend()
        plt.show()

    return {
        "h_values": h_values,
        "n_dofs": n_dofs,
        "l2_errors": l2_errors,
        "h1_errors": h1_errors,
        "nodal_errors": nodal_errors,
        "l2_rates": l2_rates,
        "h1_rates": h1_rates,
    }


def compute_exact_solution_at_dofs(
    dof_locations: npt.NDArray[np.float64],
    exact_solution: Callable[[npt.NDArray[np.float64]], npt.NDArray[np.float64]],
) -> npt.NDArray[np.float64]:
    """Evaluate the exact solution at every dof location."""
    return np.asarray(exact_solution(dof_locations), dtype=np.float64)


def compute_condition_number(matrix: SparseMatrix) -> float:
    """
    Compute the 2-norm condition number of a system matrix.

    Returns NaN for systems too large to densify.
    """
    if matrix.shape[0] > _DENSE_LIMIT:
        return float("nan")
    return float(np.linalg.cond(matrix.to_dense()))


def linear_solve_stats(matrix: SparseMatrix, rhs: npt.NDArray[np.float64]) -> Dict[str, Any]:
    """
    Provide statistics about the linear system.

    Args:
        matrix: Global system matrix
        rhs: Global right-hand side

    Returns:
        Dictionary containing statistics about the system
    """
    stats: Dict[str, Any] = {}

    stats["matrix_size"] = matrix.shape[0]
    stats["nonzeros"] = matrix.n_nonzero
    stats["condition_number"] = compute_condition_number(matrix)

    diagonal = matrix.diagonal()
    stats["matrix_norm"] = matrix.frobenius_norm()
    stats["matrix_trace"] = float(np.sum(diagonal))
    stats["symmetric"] = matrix.is_symmetric()

    stats["rhs_norm"] = float(np.linalg.norm(rhs))
    stats["rhs_min"] = float(np.min(rhs))
    stats["rhs_max"] = float(np.max(rhs))

    # Sparsity
    stats["sparsity_ratio"] = 1.0 - matrix.n_nonzero / float(matrix.shape[0] ** 2)

    return stats
