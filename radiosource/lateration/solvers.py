"""
Lateration solvers: position from distances to known points.

Given N points p_i with measured distances d_i to an unknown position x:
    ‖x - p_i‖ = d_i

Linear solvers expand the squared equations
    ‖p_i‖² - 2·p_iᵀx + ‖x‖² = d_i²
and treat ‖x‖² as an additional unknown, giving a closed-form solution that
needs no initial guess. The non-linear solver refines a position by weighted
Levenberg-Marquardt on the range equations and provides its covariance.

All solvers work on 2D or 3D positions and need at least dims + 1 points.
"""

from typing import Dict, Optional, Tuple

import numpy as np

from radiosource.estimators.nonlinear_least_squares import levenberg_marquardt
from radiosource.exceptions import FittingError, LaterationError
from radiosource.rf.types import DEFAULT_DISTANCE_STANDARD_DEVIATION

# Smallest singular value ratio considered non-degenerate
RANK_TOLERANCE = 1e-12


def _validate_inputs(positions: np.ndarray, distances: np.ndarray) -> None:
    if positions.ndim != 2 or positions.shape[1] not in (2, 3):
        raise ValueError(
            f"positions must have shape (N, 2) or (N, 3), got {positions.shape}"
        )
    n_points, dim = positions.shape
    if distances.shape != (n_points,):
        raise ValueError(f"Expected {n_points} distances, got shape {distances.shape}")
    if n_points < dim + 1:
        raise LaterationError(
            f"at least {dim + 1} points are required in {dim}D, got {n_points}"
        )


def homogeneous_linear_lateration(
    positions: np.ndarray,
    distances: np.ndarray,
) -> Tuple[np.ndarray, Dict]:
    """
    Closed-form lateration by homogeneous linear least squares.

    Each point contributes a row of the homogeneous system A·h = 0:
        [-2·p_i, 1, ‖p_i‖² - d_i²] · [w·x, w·‖x‖², w]ᵀ = 0
    The solution h is the right singular vector of A associated with its
    smallest singular value; the position is recovered as h[:dim] / h[-1].

    Args:
        positions: Known points, shape (N, 2) or (N, 3).
        distances: Distances to every point, shape (N,).

    Returns:
        position: Estimated position, shape (dim,).
        info: Dictionary with solver information:
            - 'method': 'homogeneous_linear'
            - 'singular_values': singular values of A

    Raises:
        ValueError: If input shapes are inconsistent.
        LaterationError: If there are not enough points or the geometry is
            degenerate.

    Example:
        >>> positions = np.array([[0.0, 0.0], [10.0, 0.0], [0.0, 10.0]])
        >>> distances = np.linalg.norm(positions - np.array([3.0, 4.0]), axis=1)
        >>> pos, info = homogeneous_linear_lateration(positions, distances)
    """
    positions = np.asarray(positions, dtype=float)
    distances = np.asarray(distances, dtype=float)
    _validate_inputs(positions, distances)

    n_points, dim = positions.shape

    A = np.zeros((n_points, dim + 2))
    A[:, :dim] = -2.0 * positions
    A[:, dim] = 1.0
    A[:, dim + 1] = np.sum(positions**2, axis=1) - distances**2

    try:
        _, s, vt = np.linalg.svd(A)
    except np.linalg.LinAlgError as e:
        raise LaterationError("SVD of the lateration system failed") from e

    # more than one null direction means the points do not fix the position
    rank = int(np.sum(s > RANK_TOLERANCE * s[0]))
    if rank < dim + 1:
        raise LaterationError(
            f"degenerate geometry: system rank {rank} < {dim + 1}"
        )

    h = vt[-1]
    if abs(h[-1]) < RANK_TOLERANCE * np.linalg.norm(h):
        raise LaterationError("degenerate geometry: solution lies at infinity")

    position = h[:dim] / h[-1]

    info = {
        "method": "homogeneous_linear",
        "singular_values": s,
    }
    return position, info


def inhomogeneous_linear_lateration(
    positions: np.ndarray,
    distances: np.ndarray,
) -> Tuple[np.ndarray, Dict]:
    """
    Closed-form lateration by inhomogeneous linear least squares.

    Solves in the least-squares sense
        [-2·p_i, 1] · [x, ‖x‖²]ᵀ = d_i² - ‖p_i‖²

    Args:
        positions: Known points, shape (N, 2) or (N, 3).
        distances: Distances to every point, shape (N,).

    Returns:
        position: Estimated position, shape (dim,).
        info: Dictionary with solver information:
            - 'method': 'inhomogeneous_linear'
            - 'residual': residual norm of the linear system
            - 'rank': rank of the system matrix

    Raises:
        ValueError: If input shapes are inconsistent.
        LaterationError: If there are not enough points or the system is
            rank deficient.
    """
    positions = np.asarray(positions, dtype=float)
    distances = np.asarray(distances, dtype=float)
    _validate_inputs(positions, distances)

    n_points, dim = positions.shape

    A = np.ones((n_points, dim + 1))
    A[:, :dim] = -2.0 * positions
    b = distances**2 - np.sum(positions**2, axis=1)

    try:
        solution, _, rank, _ = np.linalg.lstsq(A, b, rcond=None)
    except np.linalg.LinAlgError as e:
        raise LaterationError("least squares lateration failed") from e

    if rank < dim + 1:
        raise LaterationError(
            f"degenerate geometry: system rank {rank} < {dim + 1}"
        )

    position = solution[:dim]

    info = {
        "method": "inhomogeneous_linear",
        "residual": float(np.linalg.norm(A @ solution - b)),
        "rank": int(rank),
    }
    return position, info


class NonLinearLaterationSolver:
    """
    Weighted non-linear lateration using Levenberg-Marquardt.

    Minimizes Σ ((d_i - ‖x - p_i‖) / σ_i)² starting from an initial position.

    Attributes:
        positions: Known points, shape (N, d) where d=2 or 3.
        distances: Measured distances, shape (N,).
        standard_deviations: Standard deviations of the distances, shape (N,).
        position: Last estimated position, or None.
        covariance: Covariance of the last estimated position, or None.
    """

    def __init__(
        self,
        positions: np.ndarray,
        distances: np.ndarray,
        standard_deviations: Optional[np.ndarray] = None,
    ):
        positions = np.asarray(positions, dtype=float)
        distances = np.asarray(distances, dtype=float)
        _validate_inputs(positions, distances)

        if standard_deviations is None:
            standard_deviations = np.full(
                len(distances), DEFAULT_DISTANCE_STANDARD_DEVIATION
            )
        standard_deviations = np.asarray(standard_deviations, dtype=float)
        if standard_deviations.shape != distances.shape:
            raise ValueError(
                f"Expected {len(distances)} standard deviations, "
                f"got shape {standard_deviations.shape}"
            )
        if np.any(standard_deviations <= 0.0):
            raise ValueError("standard deviations must be positive")

        self.positions = positions
        self.distances = distances
        self.standard_deviations = standard_deviations
        self.dim = positions.shape[1]

        self.position: Optional[np.ndarray] = None
        self.covariance: Optional[np.ndarray] = None

    def _predicted_distances(self, x: np.ndarray) -> np.ndarray:
        return np.linalg.norm(x - self.positions, axis=1)

    def _jacobian(self, x: np.ndarray) -> np.ndarray:
        diff = x - self.positions
        ranges = np.linalg.norm(diff, axis=1, keepdims=True)
        return diff / np.maximum(ranges, 1e-10)

    def solve(self, initial_position: np.ndarray) -> Tuple[np.ndarray, Dict]:
        """
        Refine a position from an initial guess.

        Args:
            initial_position: Starting position, shape (dim,).

        Returns:
            position: Estimated position, shape (dim,).
            info: Dictionary with convergence information:
                - 'covariance': position covariance (dim × dim)
                - 'iterations': number of iterations
                - 'converged': True if converged
                - 'chi_sq': weighted sum of squared residuals

        Raises:
            LaterationError: If the fit fails.
        """
        x0 = np.asarray(initial_position, dtype=float)
        if x0.shape != (self.dim,):
            raise ValueError(
                f"initial position must have shape ({self.dim},), got {x0.shape}"
            )

        try:
            result = levenberg_marquardt(
                h=self._predicted_distances,
                jacobian=self._jacobian,
                y=self.distances,
                x0=x0,
                weights=1.0 / self.standard_deviations**2,
            )
        except FittingError as e:
            raise LaterationError(f"non-linear lateration failed: {e}") from e

        self.position = result.x
        self.covariance = result.covariance

        info = {
            "covariance": result.covariance,
            "iterations": result.iterations,
            "converged": result.converged,
            "chi_sq": result.chi_sq,
        }
        return result.x, info
