"""
Unit tests for the Levenberg-Marquardt solvers.

Tests cover:
    - Functional solver on the 2D range positioning problem
    - Weighted fitting and covariance scaling
    - Per-observation fitter driven by a FunctionEvaluator
"""

import unittest

import numpy as np
from numpy.testing import assert_allclose

from radiosource.estimators.nonlinear_least_squares import (
    FunctionEvaluator,
    LevenbergMarquardtFitter,
    NonlinearLSResult,
    levenberg_marquardt,
)
from radiosource.exceptions import FittingError


class TestLevenbergMarquardtRangePositioning(unittest.TestCase):
    """LM on hᵢ(x) = ‖x - aᵢ‖ with four anchors."""

    def setUp(self):
        self.anchors = np.array([[0, 0], [10, 0], [0, 10], [10, 10]], dtype=float)
        self.true_pos = np.array([3.0, 4.0])

        def h(x):
            return np.linalg.norm(self.anchors - x, axis=1)

        def jacobian(x):
            diff = x - self.anchors
            ranges = np.linalg.norm(diff, axis=1, keepdims=True)
            return diff / np.maximum(ranges, 1e-10)

        self.h = h
        self.jacobian = jacobian
        self.y_clean = h(self.true_pos)

    def test_exact_measurements_convergence(self):
        result = levenberg_marquardt(
            self.h, self.jacobian, self.y_clean, np.array([5.0, 5.0])
        )

        self.assertIsInstance(result, NonlinearLSResult)
        assert_allclose(result.x, self.true_pos, atol=1e-6)
        self.assertTrue(result.converged)
        self.assertLess(result.chi_sq, 1e-12)

    def test_other_initial_guess(self):
        result = levenberg_marquardt(
            self.h, self.jacobian, self.y_clean, np.array([9.0, 1.0])
        )
        assert_allclose(result.x, self.true_pos, atol=1e-6)

    def test_weighted_covariance(self):
        """Unadjusted covariance is (J'WJ)⁻¹ at the solution."""
        weights = np.array([1.0, 4.0, 4.0, 1.0])
        result = levenberg_marquardt(
            self.h, self.jacobian, self.y_clean, np.array([5.0, 5.0]),
            weights=weights, adjust_covariance=False,
        )

        J = self.jacobian(result.x)
        expected = np.linalg.inv((J.T * weights) @ J)
        assert_allclose(result.covariance, expected, rtol=1e-6)

    def test_noisy_measurements(self):
        rng = np.random.default_rng(42)
        y = self.y_clean + 0.1 * rng.standard_normal(4)

        result = levenberg_marquardt(self.h, self.jacobian, y, np.array([5.0, 5.0]))

        self.assertLess(np.linalg.norm(result.x - self.true_pos), 0.5)
        self.assertEqual(result.covariance.shape, (2, 2))

    def test_invalid_shapes(self):
        with self.assertRaises(ValueError):
            levenberg_marquardt(
                self.h, self.jacobian, self.y_clean[:, None], np.array([5.0, 5.0])
            )
        with self.assertRaises(ValueError):
            levenberg_marquardt(
                self.h, self.jacobian, self.y_clean, np.array([5.0, 5.0]),
                weights=np.ones(3),
            )

    def test_non_finite_start(self):
        with self.assertRaises(FittingError):
            levenberg_marquardt(
                lambda x: np.full(4, np.nan),
                self.jacobian,
                self.y_clean,
                np.array([5.0, 5.0]),
            )


class ExponentialDecayEvaluator(FunctionEvaluator):
    """y = a·exp(-b·t)."""

    def __init__(self, a0, b0):
        self.a0 = a0
        self.b0 = b0

    @property
    def number_of_dimensions(self):
        return 2

    def create_initial_parameters(self):
        return np.array([self.a0, self.b0])

    def evaluate(self, i, point, params, derivatives):
        a, b = params
        t = point[0]
        e = np.exp(-b * t)
        derivatives[0] = e
        derivatives[1] = -a * t * e
        return a * e


class TestLevenbergMarquardtFitter(unittest.TestCase):
    def setUp(self):
        self.t = np.linspace(0.0, 4.0, 20)[:, None]
        self.y = 3.0 * np.exp(-0.7 * self.t[:, 0])
        self.sigmas = np.full(20, 0.1)

    def test_fit_exact_data(self):
        fitter = LevenbergMarquardtFitter(
            ExponentialDecayEvaluator(1.0, 0.1), self.t, self.y, self.sigmas
        )

        result = fitter.fit()

        assert_allclose(result.a, [3.0, 0.7], atol=1e-8)
        self.assertTrue(result.converged)
        self.assertLess(result.chi_sq, 1e-12)
        self.assertLess(result.mse, 1e-12)
        assert_allclose(fitter.a, result.a)

    def test_chi_sq_of_noisy_data(self):
        rng = np.random.default_rng(1)
        y = self.y + 0.1 * rng.standard_normal(20)

        fitter = LevenbergMarquardtFitter()
        fitter.set_function_evaluator(ExponentialDecayEvaluator(1.0, 0.1))
        fitter.set_input_data(self.t, y, self.sigmas)
        result = fitter.fit()

        a, b = result.a
        residuals = (y - a * np.exp(-b * self.t[:, 0])) / self.sigmas
        self.assertAlmostEqual(result.chi_sq, float(residuals @ residuals), places=8)
        self.assertAlmostEqual(result.mse, result.chi_sq / 18, places=10)
        self.assertEqual(result.covariance.shape, (2, 2))

    def test_not_ready(self):
        fitter = LevenbergMarquardtFitter()
        self.assertFalse(fitter.is_ready())
        with self.assertRaises(FittingError):
            fitter.fit()

    def test_invalid_input_data(self):
        fitter = LevenbergMarquardtFitter()
        with self.assertRaises(ValueError):
            fitter.set_input_data(self.t[:, 0], self.y, self.sigmas)
        with self.assertRaises(ValueError):
            fitter.set_input_data(self.t, self.y[:5], self.sigmas)
        with self.assertRaises(ValueError):
            fitter.set_input_data(self.t, self.y, np.zeros(20))


if __name__ == "__main__":
    unittest.main()
