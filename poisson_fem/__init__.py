"""
Finite Element Method (FEM) package for solving the Poisson equation on
2D/3D boxes and 2D annuli.
"""

from .boundary import BoundaryValue
from .config import ProblemParameters
from .element import SourceTerm
from .exceptions import InvalidDegree, InvalidDomain, PoissonError, SingularSystem, SolverDidNotConverge
from .fem_solver import FEMSolver
from .geometry import Domain, generate_mesh
from .mesh import Mesh
from .result import PoissonResult
from .utils import convergence_study
