"""
Lateration module: position from distances to known points.

Submodules:
    solvers: Homogeneous and inhomogeneous linear solvers, non-linear solver
"""

from radiosource.lateration.solvers import (
    NonLinearLaterationSolver,
    homogeneous_linear_lateration,
    inhomogeneous_linear_lateration,
)

__all__ = [
    "homogeneous_linear_lateration",
    "inhomogeneous_linear_lateration",
    "NonLinearLaterationSolver",
]
