"""
Weighted non-linear least squares using Levenberg-Marquardt.

This module provides the fitting engine used by every radio source estimator.

Mathematical Formulation:
    Given observations y_i taken at input points x_i with standard deviations
    σ_i and a model f(x; a) with parameters a, we seek:
        â = argmin Σ_i ((y_i - f(x_i; a)) / σ_i)²
    which is a weighted problem ½‖r(a)‖²_W with r = y - f and W = diag(1/σ²).

    Levenberg-Marquardt update:
        (J'WJ + μI) Δa = J'W r
    where μ is an adaptive damping parameter updated from the gain ratio
    between the actual and the predicted decrease of the cost.

Two interfaces are offered:
    - ``levenberg_marquardt``: vectorised functional solver taking h(a) and
      J(a) callables.
    - ``LevenbergMarquardtFitter``: per-observation solver driven by a
      ``FunctionEvaluator`` that returns each predicted value together with
      its analytic Jacobian row.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np

from radiosource.exceptions import FittingError

DEFAULT_MAX_ITERATIONS = 1000
DEFAULT_TOLERANCE = 1e-10
DEFAULT_MU0 = 1e-3

# Damping beyond this value means no step can decrease the cost any further.
MAX_DAMPING = 1e12


@dataclass
class NonlinearLSResult:
    """Result container for the functional Levenberg-Marquardt solver.

    Attributes:
        x: Estimated parameter vector.
        covariance: Covariance matrix (n × n), or None.
        iterations: Number of iterations performed.
        residuals: Final residuals r = y - h(x̂).
        cost: Final cost value ½‖r‖²_W.
        converged: Whether the solver converged within tolerance.
        weights: Measurement weights used.
    """

    x: np.ndarray
    covariance: Optional[np.ndarray]
    iterations: int
    residuals: np.ndarray
    cost: float
    converged: bool
    weights: Optional[np.ndarray] = None

    @property
    def chi_sq(self) -> float:
        """Weighted sum of squared residuals Σ w_i r_i²."""
        return 2.0 * self.cost


@dataclass
class FitResult:
    """Result of ``LevenbergMarquardtFitter.fit``.

    Attributes:
        a: Fitted parameter vector.
        covariance: Parameter covariance matrix, or None.
        chi_sq: Chi-square of the fit, Σ ((y_i - f_i) / σ_i)².
        mse: Chi-square per degree of freedom (0 when there are none).
        iterations: Number of iterations performed.
        converged: Whether the solver converged.
    """

    a: np.ndarray
    covariance: Optional[np.ndarray]
    chi_sq: float
    mse: float
    iterations: int
    converged: bool


def levenberg_marquardt(
    h: Callable[[np.ndarray], np.ndarray],
    jacobian: Callable[[np.ndarray], np.ndarray],
    y: np.ndarray,
    x0: np.ndarray,
    weights: Optional[np.ndarray] = None,
    max_iter: int = DEFAULT_MAX_ITERATIONS,
    tol: float = DEFAULT_TOLERANCE,
    mu0: float = DEFAULT_MU0,
    return_covariance: bool = True,
    adjust_covariance: bool = True,
) -> NonlinearLSResult:
    """
    Levenberg-Marquardt solver for weighted nonlinear least squares.

    Solves: x̂ = argmin ½‖y - h(x)‖²_W

    LM combines Gauss-Newton (fast near solution) with gradient descent
    (robust far from solution) by adaptively adjusting μ:
        - Small μ: Gauss-Newton behavior (quadratic convergence)
        - Large μ: Gradient descent behavior (global convergence)

    Args:
        h: Measurement model function h: R^n → R^m.
        jacobian: Function returning Jacobian matrix J = ∂h/∂x (m × n).
        y: Observation vector (m,).
        x0: Initial state estimate (n,).
        weights: Optional measurement weights (m,), typically 1/σ².
            If None, uniform weights are used.
        max_iter: Maximum number of iterations.
        tol: Relative convergence tolerance on ‖Δx‖.
        mu0: Initial damping parameter.
        return_covariance: If True, compute covariance at final estimate.
        adjust_covariance: If True, scale the covariance by the residual
            variance χ²/(m - n) when m > n.

    Returns:
        NonlinearLSResult containing estimate, covariance, and diagnostics.

    Raises:
        ValueError: If input shapes are inconsistent.
        FittingError: If the model is not finite at x0, the normal matrix is
            singular at the solution, or the solver does not converge within
            ``max_iter`` iterations.

    Example:
        >>> import numpy as np
        >>> anchors = np.array([[0, 0], [10, 0], [0, 10], [10, 10]])
        >>> def h(x):
        ...     return np.linalg.norm(anchors - x, axis=1)
        >>> def jac(x):
        ...     diff = x - anchors
        ...     ranges = np.linalg.norm(diff, axis=1, keepdims=True)
        ...     return diff / np.maximum(ranges, 1e-10)
        >>> y = h(np.array([3.0, 4.0]))
        >>> result = levenberg_marquardt(h, jac, y, x0=np.array([5.0, 5.0]))
        >>> print(f"Estimate: {result.x}, Converged: {result.converged}")
    """
    # Input validation
    y = np.asarray(y, dtype=float)
    x0 = np.asarray(x0, dtype=float)

    if y.ndim != 1:
        raise ValueError(f"y must be 1D array, got shape {y.shape}")
    if x0.ndim != 1:
        raise ValueError(f"x0 must be 1D array, got shape {x0.shape}")

    m = len(y)
    n = len(x0)
    x = x0.copy()

    if weights is None:
        w = np.ones(m)
    else:
        w = np.asarray(weights, dtype=float)
        if w.ndim != 1 or len(w) != m:
            raise ValueError(f"weights must be 1D array of length {m}")
        if np.any(w < 0):
            raise ValueError("weights must be non-negative")

    hx = np.asarray(h(x), dtype=float)
    if len(hx) != m:
        raise ValueError(f"h(x) returned {len(hx)} elements, expected {m}")
    r = y - hx
    cost = 0.5 * np.sum(w * r * r)

    J = np.asarray(jacobian(x), dtype=float)
    if J.shape != (m, n):
        raise ValueError(f"Jacobian shape {J.shape}, expected ({m}, {n})")

    if not np.isfinite(cost) or not np.all(np.isfinite(J)):
        raise FittingError("model is not finite at the initial parameters")

    mu = mu0
    nu = 2.0
    converged = False
    iteration = 0

    for iteration in range(max_iter):
        # Weighted normal equations: (J'WJ + μI) Δx = J'Wr
        JtW = J.T * w
        JtWJ = JtW @ J
        JtWr = JtW @ r

        accepted = False
        while True:
            JtWJ_damped = JtWJ + mu * np.eye(n)

            try:
                delta_x = np.linalg.solve(JtWJ_damped, JtWr)
            except np.linalg.LinAlgError:
                delta_x = np.linalg.lstsq(JtWJ_damped, JtWr, rcond=None)[0]

            x_new = x + delta_x
            with np.errstate(all="ignore"):
                r_new = y - np.asarray(h(x_new), dtype=float)
                cost_new = 0.5 * np.sum(w * r_new * r_new)

            # Predicted decrease: ½ Δx'(μΔx + J'Wr)
            predicted_decrease = 0.5 * delta_x @ (mu * delta_x + JtWr)
            actual_decrease = cost - cost_new

            if np.isfinite(cost_new) and predicted_decrease > 0.0:
                gain_ratio = actual_decrease / predicted_decrease
            else:
                gain_ratio = 0.0

            if gain_ratio > 0:
                x = x_new
                r = r_new
                cost = cost_new
                mu = mu * max(1.0 / 3.0, 1.0 - (2.0 * gain_ratio - 1.0) ** 3)
                nu = 2.0
                accepted = True
                break

            mu = mu * nu
            nu = 2.0 * nu
            if mu > MAX_DAMPING:
                break

        if not accepted:
            # cost cannot be decreased any further from x
            converged = True
            break

        if np.linalg.norm(delta_x) < tol * (np.linalg.norm(x) + tol):
            converged = True
            break

        J = np.asarray(jacobian(x), dtype=float)

    if not converged:
        raise FittingError(
            f"Levenberg-Marquardt did not converge after {max_iter} iterations"
        )

    # Covariance estimation
    P = None
    if return_covariance:
        J = np.asarray(jacobian(x), dtype=float)
        JtWJ = (J.T * w) @ J
        try:
            P = np.linalg.inv(JtWJ)
        except np.linalg.LinAlgError as e:
            raise FittingError("normal matrix is singular at the solution") from e

        if adjust_covariance and m > n:
            P = P * (np.sum(w * r * r) / (m - n))

    return NonlinearLSResult(
        x=x,
        covariance=P,
        iterations=iteration + 1,
        residuals=r,
        cost=cost,
        converged=converged,
        weights=w,
    )


class FunctionEvaluator(ABC):
    """Model evaluated one observation at a time with an analytic Jacobian."""

    @property
    @abstractmethod
    def number_of_dimensions(self) -> int:
        """Number of parameters being fitted."""

    @abstractmethod
    def create_initial_parameters(self) -> np.ndarray:
        """Return the parameter vector the fit starts from."""

    @abstractmethod
    def evaluate(
        self,
        i: int,
        point: np.ndarray,
        params: np.ndarray,
        derivatives: np.ndarray,
    ) -> float:
        """
        Evaluate the model for one observation.

        Args:
            i: Index of the observation.
            point: Row of the input matrix for that observation.
            params: Current parameter vector.
            derivatives: Output array (number_of_dimensions,) to be filled
                with ∂f/∂params at ``params``.

        Returns:
            Predicted value of the observation.
        """


class LevenbergMarquardtFitter:
    """
    Multi-dimensional weighted Levenberg-Marquardt fitter.

    The fitter holds no estimation state between calls other than the last
    result; it can be reused with a different evaluator or input data.

    Attributes:
        max_iterations: Maximum number of LM iterations.
        tol: Relative convergence tolerance on the parameter step.
        mu0: Initial damping.
        adjust_covariance: Whether the covariance is scaled by χ²/(m - n).
    """

    def __init__(
        self,
        evaluator: Optional[FunctionEvaluator] = None,
        x: Optional[np.ndarray] = None,
        y: Optional[np.ndarray] = None,
        standard_deviations: Optional[np.ndarray] = None,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        tol: float = DEFAULT_TOLERANCE,
        mu0: float = DEFAULT_MU0,
        adjust_covariance: bool = True,
    ):
        self.max_iterations = max_iterations
        self.tol = tol
        self.mu0 = mu0
        self.adjust_covariance = adjust_covariance

        self._evaluator = evaluator
        self._x: Optional[np.ndarray] = None
        self._y: Optional[np.ndarray] = None
        self._sigmas: Optional[np.ndarray] = None
        if x is not None and y is not None and standard_deviations is not None:
            self.set_input_data(x, y, standard_deviations)

        self.a: Optional[np.ndarray] = None
        self.covariance: Optional[np.ndarray] = None
        self.chi_sq = 0.0
        self.mse = 0.0

    @property
    def function_evaluator(self) -> Optional[FunctionEvaluator]:
        return self._evaluator

    def set_function_evaluator(self, evaluator: FunctionEvaluator) -> None:
        self._evaluator = evaluator

    def set_input_data(
        self,
        x: np.ndarray,
        y: np.ndarray,
        standard_deviations: np.ndarray,
    ) -> None:
        """
        Set input points, observed values and their standard deviations.

        Args:
            x: Input matrix (m × k), one row per observation.
            y: Observed values (m,).
            standard_deviations: Positive standard deviations (m,).

        Raises:
            ValueError: If shapes do not match or a deviation is not positive.
        """
        x = np.asarray(x, dtype=float)
        y = np.asarray(y, dtype=float)
        sigmas = np.asarray(standard_deviations, dtype=float)

        if x.ndim != 2:
            raise ValueError(f"x must be 2D array, got shape {x.shape}")
        m = x.shape[0]
        if y.shape != (m,) or sigmas.shape != (m,):
            raise ValueError(
                f"y and standard_deviations must have shape ({m},), "
                f"got {y.shape} and {sigmas.shape}"
            )
        if np.any(sigmas <= 0.0):
            raise ValueError("standard deviations must be positive")

        self._x = x
        self._y = y
        self._sigmas = sigmas

    def is_ready(self) -> bool:
        return self._evaluator is not None and self._x is not None

    def fit(self) -> FitResult:
        """
        Fit the evaluator's model to the input data.

        Returns:
            FitResult with fitted parameters, covariance and chi-square.

        Raises:
            FittingError: If the fitter is not ready or fitting fails.
        """
        if not self.is_ready():
            raise FittingError("function evaluator and input data must be set")

        evaluator = self._evaluator
        x_data = self._x
        m = x_data.shape[0]
        n = evaluator.number_of_dimensions

        a0 = np.asarray(evaluator.create_initial_parameters(), dtype=float)
        if a0.shape != (n,):
            raise FittingError(
                f"initial parameters have shape {a0.shape}, expected ({n},)"
            )

        # h and jacobian are requested separately by the solver; evaluate the
        # model once per parameter vector.
        cache = {}

        def evaluate_all(a: np.ndarray):
            key = a.tobytes()
            if cache.get("key") != key:
                values = np.empty(m)
                jac = np.empty((m, n))
                derivatives = np.zeros(n)
                with np.errstate(divide="ignore", invalid="ignore"):
                    for i in range(m):
                        derivatives[:] = 0.0
                        values[i] = evaluator.evaluate(i, x_data[i], a, derivatives)
                        jac[i] = derivatives
                cache["key"] = key
                cache["values"] = values
                cache["jacobian"] = jac
            return cache["values"], cache["jacobian"]

        result = levenberg_marquardt(
            h=lambda a: evaluate_all(a)[0],
            jacobian=lambda a: evaluate_all(a)[1],
            y=self._y,
            x0=a0,
            weights=1.0 / self._sigmas**2,
            max_iter=self.max_iterations,
            tol=self.tol,
            mu0=self.mu0,
            adjust_covariance=self.adjust_covariance,
        )

        self.a = result.x
        self.covariance = result.covariance
        self.chi_sq = result.chi_sq
        self.mse = self.chi_sq / (m - n) if m > n else 0.0

        return FitResult(
            a=self.a,
            covariance=self.covariance,
            chi_sq=self.chi_sq,
            mse=self.mse,
            iterations=result.iterations,
            converged=result.converged,
        )
