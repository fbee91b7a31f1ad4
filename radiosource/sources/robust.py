"""
Robust radio source estimation.

A robust estimator wraps a point estimator (the inner estimator) and a
robust method. The method repeatedly draws small subsets of the readings;
the inner estimator fits a candidate ``Solution`` on every subset; the
method scores candidates against all readings and returns the best one with
its inliers. The consensus is finally refined by fitting all inliers at
once, which also yields a covariance.

Subsets the inner estimator cannot solve simply produce no candidate.
Refinement failures fall back to the unrefined consensus.
"""

import logging
from abc import abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from radiosource.exceptions import RadioSourceError
from radiosource.robust.methods import (
    DEFAULT_CONFIDENCE,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_PROGRESS_DELTA,
    DEFAULT_STOP_THRESHOLD,
    DEFAULT_THRESHOLD,
    create_robust_estimator,
)
from radiosource.robust.types import InliersData, RobustEstimatorCallbacks, RobustMethod
from radiosource.sources.base import RadioSourceEstimator, locked_setting
from radiosource.sources.config import EstimationConfig
from radiosource.sources.listeners import RadioSourceEstimatorListener

logger = logging.getLogger(__name__)

DEFAULT_ROBUST_METHOD = RobustMethod.PROMEDS
DEFAULT_REFINE_RESULT = True
DEFAULT_KEEP_COVARIANCE = True


@dataclass(frozen=True)
class Solution:
    """Candidate source parameters fitted on a subset of readings.

    Attributes:
        position: Estimated position.
        transmitted_power_dbm: Estimated power, None for ranging-only fits.
        path_loss_exponent: Estimated path-loss exponent, None for
            ranging-only fits.
    """

    position: np.ndarray
    transmitted_power_dbm: Optional[float] = None
    path_loss_exponent: Optional[float] = None


def _open_unit_interval(name, value):
    if not (0.0 < value < 1.0):
        raise ValueError(f"{name} must be in (0, 1), got {value}")
    return value


def _unit_interval(name, value):
    if not (0.0 <= value <= 1.0):
        raise ValueError(f"{name} must be in [0, 1], got {value}")
    return value


def _positive(name, value):
    if value is not None and value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")
    return value


def _quality_scores(name, value):
    if value is None:
        return None
    return np.asarray(value, dtype=float)


class RobustRadioSourceEstimator(RadioSourceEstimator):
    """
    Base class of robust radio source estimators.

    Subclasses own an inner point estimator and implement how it is
    configured for a subset, how its result becomes a ``Solution``, how a
    ``Solution`` is scored and how refined results are stored.

    Args:
        readings: Readings of a single source.
        listener: Optional listener of estimation events.
        dims: Number of position coordinates (2 or 3).
        config: Parameters to estimate and their initial values.
        method: Robust method.
        quality_scores: Quality of every reading (higher is better),
            required by PROSAC and PROMedS.
        confidence: Probability of drawing an outlier-free subset.
        max_iterations: Maximum number of subsets drawn.
        progress_delta: Minimum progress change between notifications.
        refine_result: Whether the consensus is refined with all inliers.
        keep_covariance: Whether the covariance of the refined fit is kept.
        threshold: Inlier residual threshold of RANSAC, MSAC and PROSAC.
        stop_threshold: Median residual at which LMedS and PROMedS stop.
        preliminary_subset_size: Subset size; never below ``min_readings``.
        seed: Seed of the random generator used to draw subsets.
    """

    method = locked_setting()
    quality_scores = locked_setting(_quality_scores)
    confidence = locked_setting(_open_unit_interval)
    max_iterations = locked_setting(_positive)
    progress_delta = locked_setting(_unit_interval)
    refine_result = locked_setting()
    keep_covariance = locked_setting()
    threshold = locked_setting(_positive)
    stop_threshold = locked_setting(_positive)
    preliminary_subset_size = locked_setting(_positive)
    seed = locked_setting()

    def __init__(
        self,
        readings: Optional[Sequence] = None,
        listener: Optional[RadioSourceEstimatorListener] = None,
        dims: int = 2,
        config: Optional[EstimationConfig] = None,
        method: RobustMethod = DEFAULT_ROBUST_METHOD,
        quality_scores: Optional[np.ndarray] = None,
        confidence: float = DEFAULT_CONFIDENCE,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        progress_delta: float = DEFAULT_PROGRESS_DELTA,
        refine_result: bool = DEFAULT_REFINE_RESULT,
        keep_covariance: bool = DEFAULT_KEEP_COVARIANCE,
        threshold: float = DEFAULT_THRESHOLD,
        stop_threshold: float = DEFAULT_STOP_THRESHOLD,
        preliminary_subset_size: Optional[int] = None,
        seed: Optional[int] = None,
    ):
        super().__init__(readings, listener, dims, config)
        self.method = method
        self.quality_scores = quality_scores
        self.confidence = confidence
        self.max_iterations = max_iterations
        self.progress_delta = progress_delta
        self.refine_result = refine_result
        self.keep_covariance = keep_covariance
        self.threshold = threshold
        self.stop_threshold = stop_threshold
        self.preliminary_subset_size = preliminary_subset_size
        self.seed = seed

        self._inliers_data: Optional[InliersData] = None
        self._inner_readings: List = []

    @property
    def inliers_data(self) -> Optional[InliersData]:
        return self._inliers_data

    @property
    def subset_size(self) -> int:
        if self.preliminary_subset_size is None:
            return self.min_readings
        return max(self.preliminary_subset_size, self.min_readings)

    def is_ready(self) -> bool:
        if not super().is_ready():
            return False
        if self.method.requires_quality_scores:
            return (
                self.quality_scores is not None
                and len(self.quality_scores) == len(self._readings)
            )
        return True

    # -- consensus loop -----------------------------------------------------

    def _estimate(self) -> None:
        readings = self._readings
        self._prepare(readings)

        callbacks = RobustEstimatorCallbacks(
            total_samples=len(readings),
            subset_size=self.subset_size,
            estimate_preliminary_solutions=self._estimate_preliminary_solutions,
            compute_residuals=self._compute_residuals,
            on_next_iteration=self._notify_next_iteration,
            on_progress_change=self._notify_progress_change,
        )
        robust = create_robust_estimator(
            self.method,
            callbacks,
            confidence=self.confidence,
            max_iterations=self.max_iterations,
            progress_delta=self.progress_delta,
            threshold=self.threshold,
            stop_threshold=self.stop_threshold,
            quality_scores=self.quality_scores,
            rng=np.random.default_rng(self.seed),
        )

        solution, inliers_data = robust.estimate()
        logger.debug(
            "%s consensus after %d iterations: %d/%d inliers",
            self.method.name, robust.iterations, inliers_data.num_inliers, len(readings),
        )

        self._inliers_data = inliers_data
        self._attempt_refine(solution)

    def _estimate_preliminary_solutions(self, indices: np.ndarray) -> List[Solution]:
        self._inner_readings.clear()
        self._inner_readings.extend(self._readings[i] for i in indices)
        try:
            solution = self._solve_subset(self._inner_readings)
        except (RadioSourceError, ValueError) as e:
            logger.debug("subset %s produced no solution: %s", list(indices), e)
            return []
        return [solution]

    def _attempt_refine(self, solution: Solution) -> None:
        inliers_data = self._inliers_data
        if self.refine_result and inliers_data is not None:
            self._inner_readings.clear()
            self._inner_readings.extend(
                r for r, inlier in zip(self._readings, inliers_data.inliers) if inlier
            )
            try:
                self._refine(self._inner_readings, solution)
                return
            except (RadioSourceError, ValueError) as e:
                logger.debug("refinement failed, keeping consensus: %s", e)

        self._store_solution(solution)

    def _notify_next_iteration(self, iteration: int) -> None:
        if self._listener is not None:
            self._listener.on_estimate_next_iteration(self, iteration)

    def _notify_progress_change(self, progress: float) -> None:
        if self._listener is not None:
            self._listener.on_estimate_progress_change(self, progress)

    def _prepare(self, readings: Sequence) -> None:
        """Cache per-estimation arrays used by ``_compute_residuals``."""
        self._positions = np.array([r.position for r in readings])

    @abstractmethod
    def _solve_subset(self, readings: List) -> Solution:
        """Fit the inner estimator on a subset and return its solution."""

    @abstractmethod
    def _compute_residuals(self, solution: Solution) -> np.ndarray:
        """Residual of every reading for a candidate solution."""

    @abstractmethod
    def _refine(self, inlier_readings: List, solution: Solution) -> None:
        """Fit all inliers starting from ``solution`` and store the results."""

    @abstractmethod
    def _store_solution(self, solution: Solution) -> None:
        """Store an unrefined solution as the result, without covariance."""
