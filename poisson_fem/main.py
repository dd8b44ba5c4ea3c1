"""
Command line driver for the Poisson FEM solver.

Examples:
    python -m poisson_fem.main --domain box --lengths 2 4 --refinement 4 --boundary-value 1
    python -m poisson_fem.main --domain annulus --inner-radius 1 --outer-radius 2 --refinement 3
    python -m poisson_fem.main --config problem.json --plot
    python -m poisson_fem.main --example all
"""

import argparse
import logging
import sys
from typing import List, Optional

import matplotlib.pyplot as plt

from .config import BOUNDARY_KINDS, SOURCE_KINDS, ProblemParameters
from .exceptions import PoissonError
from .fem_solver import FEMSolver
from .geometry import ANNULUS_CENTER
from .linear_solver import DEFAULT_MAX_ITERATIONS, DEFAULT_TOLERANCE, PRECONDITIONERS
from .mesh import NEAR_BOUNDARY_PASSES, NEAR_BOUNDARY_TOLERANCE
from .plots import plot_solution
from .examples import annulus_example, box_example, cube_example, run_all_examples
from .utils import linear_solve_stats

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Solve the Poisson equation -Δu = f with the finite element method")
    parser.add_argument("--config", type=str, default=None, help="JSON file with problem parameters")
    parser.add_argument(
        "--example",
        type=str,
        choices=["box", "annulus", "cube", "all"],
        default=None,
        help="Run a predefined example instead of a configured problem",
    )

    parser.add_argument("--domain", type=str, choices=["box", "annulus"], default="box", help="Domain kind (default: box)")
    parser.add_argument("--lengths", type=float, nargs="+", default=[1.0, 1.0], help="Box edge lengths (default: 1 1)")
    parser.add_argument("--inner-radius", type=float, default=1.0, help="Annulus inner radius (default: 1)")
    parser.add_argument("--outer-radius", type=float, default=2.0, help="Annulus outer radius (default: 2)")
    parser.add_argument(
        "--center", type=float, nargs=2, default=list(ANNULUS_CENTER), help="Annulus center (default: 1 0)"
    )
    parser.add_argument("--refinement", type=int, default=1, help="Global refinement levels (default: 1)")
    parser.add_argument("--degree", type=int, default=1, help="Polynomial degree of the elements (default: 1)")

    parser.add_argument(
        "--boundary-kind", type=str, choices=BOUNDARY_KINDS, default="constant", help="Dirichlet data (default: constant)"
    )
    parser.add_argument("--boundary-value", type=float, default=0.0, help="Constant Dirichlet value (default: 0)")
    parser.add_argument(
        "--source-kind", type=str, choices=SOURCE_KINDS, default="constant", help="Right-hand side (default: constant)"
    )
    parser.add_argument("--source-value", type=float, default=1.0, help="Constant right-hand side (default: 1)")

    parser.add_argument("--tolerance", type=float, default=DEFAULT_TOLERANCE, help="CG residual tolerance")
    parser.add_argument("--max-iterations", type=int, default=DEFAULT_MAX_ITERATIONS, help="CG iteration cap")
    parser.add_argument(
        "--preconditioner", type=str, choices=sorted(PRECONDITIONERS), default="identity", help="CG preconditioner"
    )
    parser.add_argument("--near-boundary-passes", type=int, default=NEAR_BOUNDARY_PASSES)
    parser.add_argument("--near-boundary-tolerance", type=float, default=NEAR_BOUNDARY_TOLERANCE)

    parser.add_argument("--stats", action="store_true", help="Print linear system statistics")
    parser.add_argument("--plot", action="store_true", help="Plot the solution (2D only)")
    parser.add_argument(
        "--log-level", type=str, default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Logging level"
    )
    return parser


def parameters_from_args(args: argparse.Namespace) -> ProblemParameters:
    """Problem parameters from a JSON file or from the individual flags."""
    if args.config is not None:
        return ProblemParameters.from_json(args.config)

    return ProblemParameters(
        domain=args.domain,
        lengths=args.lengths if args.domain == "box" else None,
        inner_radius=args.inner_radius if args.domain == "annulus" else None,
        outer_radius=args.outer_radius if args.domain == "annulus" else None,
        center=args.center,
        refinement=args.refinement,
        degree=args.degree,
        boundary_kind=args.boundary_kind,
        boundary_value=args.boundary_value,
        source_kind=args.source_kind,
        source_value=args.source_value,
        tolerance=args.tolerance,
        max_iterations=args.max_iterations,
        preconditioner=args.preconditioner,
        near_boundary_passes=args.near_boundary_passes,
        near_boundary_tolerance=args.near_boundary_tolerance,
    )


def run_example(name: str, plot: bool) -> None:
    if name == "all":
        run_all_examples(plot)
    elif name == "box":
        box_example(plot)
    elif name == "annulus":
        annulus_example(plot)
    else:
        cube_example()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(levelname)s %(name)s: %(message)s")

    if args.example is not None:
        run_example(args.example, args.plot)
        return 0

    try:
        parameters = parameters_from_args(args)
        solver = FEMSolver(parameters)
        result = solver.run()
    except PoissonError as e:
        logger.error("%s: %s", type(e).__name__, e)
        return 1

    print(f"Active cells:       {result.mesh.n_active_cells}")
    print(f"Degrees of freedom: {result.n_dofs}")
    print(f"CG iterations:      {result.iterations}")
    print(f"Residual norm:      {result.residual_norm:.3e}")
    print(f"Converged:          {result.converged}")

    if args.stats:
        print("\nLinear system statistics:")
        for key, value in linear_solve_stats(solver.system_matrix, solver.system_rhs).items():
            print(f"  {key}: {value}")

    if args.plot:
        if result.mesh.dim == 2:
            plot_solution(result)
            plt.show()
        else:
            logger.warning("Plotting is only available for 2D problems")

    return 0


if __name__ == "__main__":
    sys.exit(main())
