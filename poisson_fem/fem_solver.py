"""
Finite Element Method solver for the Poisson equation -Δu = f with
Dirichlet boundary values.

The pipeline is staged: make_grid -> setup_system -> assemble_system ->
apply_boundary_conditions -> solve. Mesh, dof map and sparsity pattern are
kept between runs; matrix, right-hand side and solution are rebuilt on
every run.
"""

import logging

import numpy as np
import numpy.typing as npt
from typing import Callable, Dict, Optional, Tuple

from .boundary import (
    BoundaryValue,
    apply_boundary_values,
    interpolate_boundary_values,
    locate_boundary_dofs,
)
from .config import ProblemParameters
from .dof_handler import DoFHandler
from .element import Element, SourceTerm
from .exceptions import SingularSystem
from .geometry import DomainKind, generate_mesh
from .linear_solver import SolverResult, make_preconditioner, solve_cg
from .mesh import Mesh
from .quadrature import QuadratureRule
from .result import PoissonResult
from .sparsity import SparseMatrix, SparsityPattern

logger = logging.getLogger(__name__)


class FEMSolver:
    """
    Class for solving the Poisson equation using the finite element method.

    Provides methods for grid generation, assembly, boundary conditions,
    solving and error evaluation.

    Examples:
        >>> params = ProblemParameters(domain="box", lengths=[2, 4], refinement=4,
        ...                            degree=1, boundary_value=1.0)
        >>> result = FEMSolver(params).run()
        >>> result.n_dofs
        2145
    """

    def __init__(self, parameters: ProblemParameters):
        """
        Initialize the FEM solver.

        Args:
            parameters: Problem description; validated here, before any mesh is built

        Raises:
            InvalidDomain, InvalidDegree: for invalid parameters
        """
        parameters.validate()
        self.parameters = parameters
        self.domain = parameters.make_domain()
        self.boundary_value = parameters.make_boundary_value()
        self.source = parameters.make_source_term()
        self.boundary_ids = None

        self.mesh: Optional[Mesh] = None
        self.dof_handler: Optional[DoFHandler] = None
        self.sparsity_pattern: Optional[SparsityPattern] = None
        self.boundary_dofs: Optional[Dict[int, int]] = None
        self.element: Optional[Element] = None

        self.system_matrix: Optional[SparseMatrix] = None
        self.system_rhs: Optional[npt.NDArray[np.float64]] = None
        self.solution: Optional[npt.NDArray[np.float64]] = None
        self.solver_result: Optional[SolverResult] = None

    @property
    def is_prepared(self) -> bool:
        return self.sparsity_pattern is not None

    def set_boundary_value(self, boundary_value: BoundaryValue, boundary_ids=None) -> None:
        """
        Change the Dirichlet data; the mesh and dof map are reused.

        Args:
            boundary_value: New prescribed value
            boundary_ids: Boundary components to constrain (all by default)
        """
        self.boundary_value = boundary_value
        self.boundary_ids = boundary_ids

    def set_source_term(self, source: SourceTerm) -> None:
        """Change the right-hand side f; the mesh and dof map are reused."""
        self.source = source

    def make_grid(self) -> Mesh:
        """Generate the coarse mesh and refine it."""
        mesh = generate_mesh(self.domain)
        mesh.refine_global(self.parameters.refinement)
        if self.domain.kind is DomainKind.ANNULUS:
            mesh.refine_near_boundary(
                self.domain.inner_boundary_predicate(self.parameters.near_boundary_tolerance),
                self.parameters.near_boundary_passes,
            )
        logger.info("Number of active cells: %d", mesh.n_active_cells)
        logger.info("Total number of cells: %d", mesh.n_cells)
        self.mesh = mesh
        return mesh

    def setup_system(self) -> None:
        """Enumerate dofs, build the sparsity pattern and find boundary dofs."""
        self.dof_handler = DoFHandler(self.mesh, self.parameters.degree).distribute_dofs()
        self.sparsity_pattern = SparsityPattern.from_dof_handler(self.dof_handler)
        self.boundary_dofs = locate_boundary_dofs(self.dof_handler, self.domain)
        self.element = Element(self.dof_handler.fe)
        logger.info("Number of degrees of freedom: %d", self.dof_handler.n_dofs)

    def prepare(self) -> None:
        """Build mesh, dof map and sparsity pattern once."""
        self.make_grid()
        self.setup_system()

    def assemble_system(self) -> Tuple[SparseMatrix, npt.NDArray[np.float64]]:
        """
        Assemble the global stiffness matrix and load vector.

        Local contributions are added, never overwritten. Constrained (hanging)
        dofs are condensed into their masters and left with a unit diagonal
        and a zero right-hand side.

        Returns:
            Tuple of global stiffness matrix and load vector
        """
        if not self.is_prepared:
            self.prepare()

        matrix = SparseMatrix(self.sparsity_pattern)
        rhs = np.zeros(self.dof_handler.n_dofs)

        for row, dofs in enumerate(self.dof_handler.cell_dofs):
            K, f = self.element.local_system(self.dof_handler.cell_coordinates(row), self.source)
            targets, T = self.dof_handler.expand(dofs)
            if T is not None:
                K = T.T @ K @ T
                f = T.T @ f
            matrix.add_local(targets, K)
            np.add.at(rhs, targets, f)

        constrained = np.array(sorted(self.dof_handler.constraints), dtype=np.int64)
        if constrained.size:
            matrix.data[self.sparsity_pattern.positions(constrained, constrained)] = 1.0
            rhs[constrained] = 0.0

        self.system_matrix = matrix
        self.system_rhs = rhs
        return matrix, rhs

    def apply_boundary_conditions(self) -> Dict[int, float]:
        """
        Eliminate the Dirichlet dofs from the assembled system.

        Returns:
            Mapping boundary dof -> prescribed value
        """
        boundary_values = interpolate_boundary_values(
            self.dof_handler, self.boundary_dofs, self.boundary_value, self.boundary_ids
        )
        self.solution = np.zeros(self.dof_handler.n_dofs)
        apply_boundary_values(boundary_values, self.system_matrix, self.solution, self.system_rhs)
        return boundary_values

    def solve(self) -> SolverResult:
        """
        Solve the eliminated system with conjugate gradient.

        Returns:
            SolverResult of the linear solve

        Raises:
            SingularSystem: if a diagonal entry vanishes or CG breaks down
        """
        diagonal = self.system_matrix.diagonal()
        if np.any(diagonal <= 0.0):
            raise SingularSystem(f"{int(np.sum(diagonal <= 0.0))} non-positive diagonal entries")

        preconditioner = make_preconditioner(self.parameters.preconditioner, self.system_matrix)
        result = solve_cg(
            self.system_matrix,
            self.system_rhs,
            x0=self.solution,
            preconditioner=preconditioner,
            tolerance=self.parameters.tolerance,
            max_iterations=self.parameters.max_iterations,
        )
        self.solution = self.dof_handler.distribute(result.solution)
        self.solver_result = result
        if result.converged:
            logger.info("%d CG iterations needed to obtain convergence.", result.iterations)
        return result

    def run(self) -> PoissonResult:
        """
        Run the whole pipeline.

        Returns:
            PoissonResult with mesh, dof map and solution
        """
        logger.info("Solving problem in %d space dimensions.", self.domain.dim)
        if not self.is_prepared:
            self.prepare()
        self.assemble_system()
        self.apply_boundary_conditions()
        result = self.solve()
        return PoissonResult(self.mesh, self.dof_handler, self.solution, result, self.boundary_dofs)

    def evaluate_solution(self, point: npt.ArrayLike, cell: int) -> float:
        """
        Evaluate the solution at a point within a cell.

        Args:
            point: Reference coordinates in [0,1]^dim
            cell: Row of the active cell in dof_handler.cell_dofs

        Returns:
            Solution value at the specified point
        """
        if self.solution is None:
            raise ValueError("Solution not available. Call run() first.")
        values = self.dof_handler.fe.values(np.atleast_2d(point))[0]
        return float(values @ self.solution[self.dof_handler.cell_dofs[cell]])

    def evaluate_error(
        self,
        exact_solution: Callable[[npt.NDArray[np.float64]], npt.NDArray[np.float64]],
        exact_gradient: Optional[Callable[[npt.NDArray[np.float64]], npt.NDArray[np.float64]]] = None,
    ) -> Tuple[float, float]:
        """
        Evaluate the L2 and H1 error norms.

        Args:
            exact_solution: Maps points (n, dim) to values (n,)
            exact_gradient: Maps points (n, dim) to gradients (n, dim)

        Returns:
            Tuple of L2 and H1 error norms (H1 equals L2 without a gradient)
        """
        if self.solution is None:
            raise ValueError("Solution not available. Call run() first.")

        # one extra point per axis for the error integrals
        element = Element(self.dof_handler.fe, QuadratureRule(self.dof_handler.degree + 2, self.mesh.dim))
        l2_error_squared = 0.0
        h1_error_squared = 0.0

        for row, dofs in enumerate(self.dof_handler.cell_dofs):
            points, grad_phi, JxW = element.reinit(self.dof_handler.cell_coordinates(row))
            u_cell = self.solution[dofs]

            u_h = element.phi @ u_cell
            l2_error_squared += float(np.sum((exact_solution(points) - u_h) ** 2 * JxW))

            if exact_gradient is not None:
                grad_u_h = np.einsum("qnd,n->qd", grad_phi, u_cell)
                gradient_error = exact_gradient(points) - grad_u_h
                h1_error_squared += float(np.sum(np.sum(gradient_error**2, axis=1) * JxW))

        l2_error = np.sqrt(l2_error_squared)
        h1_error = np.sqrt(l2_error_squared + h1_error_squared)
        return l2_error, h1_error
