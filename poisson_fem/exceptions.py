"""
Error kinds raised by the Poisson finite element pipeline.
"""


class PoissonError(Exception):
    """Base class for all errors raised by poisson_fem."""


class InvalidDomain(PoissonError, ValueError):
    """
    Raised when a domain description cannot be meshed.

    Examples are an annulus whose inner radius is not smaller than its outer
    radius, or a box with a non-positive edge length.
    """


class InvalidDegree(PoissonError, ValueError):
    """Raised when the polynomial degree of the finite element is not a positive integer."""


class SingularSystem(PoissonError, ArithmeticError):
    """Raised when the linear system is not symmetric positive definite."""


class SolverDidNotConverge(PoissonError, RuntimeWarning):
    """
    Issued (as a warning, never raised by the pipeline) when conjugate
    gradient stops at its iteration cap.

    The best iterate found is still returned to the caller.
    """
