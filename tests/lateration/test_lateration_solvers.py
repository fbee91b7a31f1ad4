"""
Unit tests for the lateration solvers.

Tests cover:
    - Homogeneous and inhomogeneous linear lateration in 2D and 3D
    - Degenerate geometries
    - Non-linear refinement and its covariance
"""

import numpy as np
import pytest
from numpy.testing import assert_allclose

from radiosource.exceptions import LaterationError
from radiosource.lateration import solvers
from radiosource.lateration.solvers import (
    NonLinearLaterationSolver,
    homogeneous_linear_lateration,
    inhomogeneous_linear_lateration,
)
from radiosource.rf.types import DEFAULT_DISTANCE_STANDARD_DEVIATION

POSITIONS_2D = np.array([[0.0, 0.0], [10.0, 0.0], [0.0, 10.0], [10.0, 10.0]])
SOURCE_2D = np.array([3.0, 4.0])

POSITIONS_3D = np.array(
    [[0.0, 0.0, 0.0], [10.0, 0.0, 1.0], [0.0, 10.0, 2.0], [10.0, 10.0, 5.0],
     [5.0, 2.0, 8.0]]
)
SOURCE_3D = np.array([4.0, 6.0, 3.0])


def ranges(positions, source):
    return np.linalg.norm(positions - source, axis=1)


@pytest.mark.parametrize(
    "solver", [homogeneous_linear_lateration, inhomogeneous_linear_lateration]
)
class TestLinearLateration:
    def test_exact_2d(self, solver):
        position, info = solver(POSITIONS_2D, ranges(POSITIONS_2D, SOURCE_2D))
        assert_allclose(position, SOURCE_2D, atol=1e-8)
        assert "method" in info

    def test_minimal_points_2d(self, solver):
        positions = POSITIONS_2D[:3]
        position, _ = solver(positions, ranges(positions, SOURCE_2D))
        assert_allclose(position, SOURCE_2D, atol=1e-8)

    def test_exact_3d(self, solver):
        position, _ = solver(POSITIONS_3D, ranges(POSITIONS_3D, SOURCE_3D))
        assert_allclose(position, SOURCE_3D, atol=1e-8)

    def test_too_few_points(self, solver):
        with pytest.raises(LaterationError):
            solver(POSITIONS_2D[:2], ranges(POSITIONS_2D[:2], SOURCE_2D))

    def test_collinear_points(self, solver):
        positions = np.array([[0.0, 0.0], [1.0, 0.0], [2.0, 0.0], [3.0, 0.0]])
        with pytest.raises(LaterationError):
            solver(positions, ranges(positions, SOURCE_2D))

    def test_mismatched_distances(self, solver):
        with pytest.raises(ValueError):
            solver(POSITIONS_2D, np.ones(3))


class TestNonLinearLateration:
    def test_refines_noisy_linear_estimate(self):
        rng = np.random.default_rng(7)
        distances = ranges(POSITIONS_2D, SOURCE_2D) + 0.05 * rng.standard_normal(4)

        linear, _ = homogeneous_linear_lateration(POSITIONS_2D, distances)
        solver = NonLinearLaterationSolver(POSITIONS_2D, distances, np.full(4, 0.05))
        position, info = solver.solve(linear)

        assert np.linalg.norm(position - SOURCE_2D) < 0.2
        assert info["converged"]
        assert info["covariance"].shape == (2, 2)
        assert_allclose(solver.position, position)

    def test_exact_3d(self):
        solver = NonLinearLaterationSolver(POSITIONS_3D, ranges(POSITIONS_3D, SOURCE_3D))
        position, info = solver.solve(np.array([5.0, 5.0, 4.0]))
        assert_allclose(position, SOURCE_3D, atol=1e-6)
        assert info["chi_sq"] < 1e-6

    def test_invalid_standard_deviations(self):
        with pytest.raises(ValueError):
            NonLinearLaterationSolver(POSITIONS_2D, np.ones(4), np.zeros(4))
        with pytest.raises(ValueError):
            NonLinearLaterationSolver(POSITIONS_2D, np.ones(4), np.ones(2))

    def test_default_standard_deviations(self):
        solver = NonLinearLaterationSolver(POSITIONS_2D, ranges(POSITIONS_2D, SOURCE_2D))
        assert_allclose(solver.standard_deviations, DEFAULT_DISTANCE_STANDARD_DEVIATION)
        assert solvers.DEFAULT_DISTANCE_STANDARD_DEVIATION is DEFAULT_DISTANCE_STANDARD_DEVIATION

    def test_initial_position_shape(self):
        solver = NonLinearLaterationSolver(POSITIONS_2D, ranges(POSITIONS_2D, SOURCE_2D))
        with pytest.raises(ValueError):
            solver.solve(np.zeros(3))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
