"""
Preconditioned conjugate gradient for symmetric positive definite systems.
"""

import logging
import warnings

import numpy as np
import numpy.typing as npt
from typing import Optional

from .exceptions import SingularSystem, SolverDidNotConverge
from .sparsity import MatrixLike, SparseMatrix

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE = 1e-12
DEFAULT_MAX_ITERATIONS = 1000


class IdentityPreconditioner:
    """No preconditioning: z = r."""

    def apply(self, r: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
        return r


class JacobiPreconditioner:
    """
    Diagonal scaling: z = D^{-1} r.

    Raises:
        SingularSystem: if the matrix has a non-positive diagonal entry
    """

    def __init__(self, matrix: MatrixLike):
        diagonal = matrix.diagonal() if isinstance(matrix, SparseMatrix) else np.diag(matrix)
        if np.any(diagonal <= 0):
            raise SingularSystem("Jacobi preconditioner needs a positive diagonal")
        self.inverse_diagonal = 1.0 / diagonal

    def apply(self, r: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
        return self.inverse_diagonal * r


PRECONDITIONERS = {
    "identity": lambda matrix: IdentityPreconditioner(),
    "jacobi": JacobiPreconditioner,
}


def make_preconditioner(name: str, matrix: MatrixLike):
    """Build a preconditioner by name ('identity' or 'jacobi')."""
    try:
        return PRECONDITIONERS[name](matrix)
    except KeyError:
        raise ValueError(f"Unknown preconditioner {name!r}, expected one of {sorted(PRECONDITIONERS)}") from None


class SolverResult:
    """
    Outcome of an iterative solve.

    Attributes:
        solution: Best iterate (smallest residual norm seen)
        iterations: Number of iterations performed
        residual_norm: Euclidean norm of b - A x for the returned solution
        converged: True if the tolerance was reached within the iteration cap
    """

    def __init__(self, solution, iterations: int, residual_norm: float, converged: bool):
        self.solution = solution
        self.iterations = iterations
        self.residual_norm = residual_norm
        self.converged = converged

    def __repr__(self):
        return (
            f"SolverResult(iterations={self.iterations}, residual_norm={self.residual_norm:.3e}, "
            f"converged={self.converged})"
        )


def _matvec(A: MatrixLike, x):
    return A.matvec(x) if isinstance(A, SparseMatrix) else A @ x


def solve_cg(
    A: MatrixLike,
    b: npt.NDArray[np.float64],
    x0: Optional[npt.NDArray[np.float64]] = None,
    preconditioner=None,
    tolerance: float = DEFAULT_TOLERANCE,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
) -> SolverResult:
    """
    Solve A x = b with the (preconditioned) conjugate gradient method.

    Iterates until the residual norm ||b - A x|| drops below the absolute
    ``tolerance`` or ``max_iterations`` is reached. Stopping at the cap is
    not an error: the best iterate is returned with ``converged=False`` and a
    SolverDidNotConverge warning is issued.

    Args:
        A: Symmetric positive definite matrix (SparseMatrix or dense array)
        b: Right-hand side
        x0: Initial guess (zero by default); not modified
        preconditioner: Object with an ``apply(r)`` method (identity by default)
        tolerance: Absolute tolerance on the residual norm
        max_iterations: Iteration cap

    Returns:
        SolverResult

    Raises:
        SingularSystem: on a breakdown p^T A p <= 0
    """
    if preconditioner is None:
        preconditioner = IdentityPreconditioner()

    b = np.asarray(b, dtype=np.float64)
    x = np.zeros_like(b) if x0 is None else np.array(x0, dtype=np.float64)
    r = b - _matvec(A, x)
    residual_norm = float(np.linalg.norm(r))

    best_x, best_norm = x.copy(), residual_norm
    rho_prev, p = None, None
    iteration = 0

    while residual_norm >= tolerance and iteration < max_iterations:
        z = preconditioner.apply(r)
        rho = float(r @ z)
        if p is None:
            p = z.copy()
        else:
            p = z + (rho / rho_prev) * p

        q = _matvec(A, p)
        curvature = float(p @ q)
        if curvature <= 0.0:
            raise SingularSystem(
                f"Conjugate gradient breakdown at iteration {iteration}: p^T A p = {curvature:.3e}"
            )

        alpha = rho / curvature
        x += alpha * p
        r -= alpha * q
        rho_prev = rho
        iteration += 1

        residual_norm = float(np.linalg.norm(r))
        if residual_norm < best_norm:
            best_x, best_norm = x.copy(), residual_norm

    converged = residual_norm < tolerance
    if not converged:
        message = (
            f"Conjugate gradient did not converge in {iteration} iterations "
            f"(residual {best_norm:.3e}, tolerance {tolerance:.1e})"
        )
        logger.warning(message)
        warnings.warn(message, SolverDidNotConverge, stacklevel=2)
        x, residual_norm = best_x, best_norm

    logger.debug("%d CG iterations, residual %.3e", iteration, residual_norm)
    return SolverResult(x, iteration, residual_norm, converged)
