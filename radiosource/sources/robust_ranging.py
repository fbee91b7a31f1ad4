"""Robust ranging radio source estimator."""

from typing import List, Optional, Sequence

import numpy as np

from radiosource.rf.types import RadioSourceLocated, RangingReadingLocated
from radiosource.robust.types import RobustMethod
from radiosource.sources.config import EstimationConfig
from radiosource.sources.listeners import RadioSourceEstimatorListener
from radiosource.sources.ranging import (
    DEFAULT_USE_HOMOGENEOUS_LINEAR_SOLVER,
    RangingRadioSourceEstimator,
)
from radiosource.sources.robust import (
    DEFAULT_ROBUST_METHOD,
    RobustRadioSourceEstimator,
    Solution,
)


class RobustRangingRadioSourceEstimator(RobustRadioSourceEstimator):
    """
    Robust estimator of a radio source position from ranging readings.

    Candidates are scored by |‖source - p_i‖ - d_i| over all readings.
    Subsets are solved by linear lateration, refined non-linearly only when
    an initial position is available.
    """

    def __init__(
        self,
        readings: Optional[Sequence[RangingReadingLocated]] = None,
        initial_position: Optional[np.ndarray] = None,
        listener: Optional[RadioSourceEstimatorListener] = None,
        dims: int = 2,
        method: RobustMethod = DEFAULT_ROBUST_METHOD,
        **robust_settings,
    ):
        config = EstimationConfig(initial_position=initial_position)
        super().__init__(readings, listener, dims, config, method, **robust_settings)
        self._homogeneous_linear_solver_used = DEFAULT_USE_HOMOGENEOUS_LINEAR_SOLVER
        self._inner_estimator = RangingRadioSourceEstimator(dims=dims)

    @property
    def homogeneous_linear_solver_used(self) -> bool:
        return self._homogeneous_linear_solver_used

    @homogeneous_linear_solver_used.setter
    def homogeneous_linear_solver_used(self, value: bool) -> None:
        self._check_not_locked()
        self._homogeneous_linear_solver_used = value

    @property
    def min_readings(self) -> int:
        return self.dims + 1

    def _prepare(self, readings: Sequence[RangingReadingLocated]) -> None:
        super()._prepare(readings)
        self._distances = np.array([r.distance for r in readings], dtype=float)

    def _configure_inner(
        self,
        readings: List[RangingReadingLocated],
        initial_position: Optional[np.ndarray],
        non_linear_solver_enabled: bool,
    ) -> RangingRadioSourceEstimator:
        inner = self._inner_estimator
        inner.use_reading_position_covariances = self._config.use_reading_position_covariances
        inner.homogeneous_linear_solver_used = self._homogeneous_linear_solver_used
        inner.non_linear_solver_enabled = non_linear_solver_enabled
        inner.initial_position = initial_position
        inner.readings = readings
        return inner

    def _solve_subset(self, readings: List[RangingReadingLocated]) -> Solution:
        initial_position = self._config.initial_position
        inner = self._configure_inner(
            readings, initial_position, initial_position is not None
        )
        inner.estimate()
        return Solution(position=inner.estimated_position)

    def _compute_residuals(self, solution: Solution) -> np.ndarray:
        ranges = np.linalg.norm(self._positions - solution.position, axis=1)
        return np.abs(ranges - self._distances)

    def _refine(self, inlier_readings: List[RangingReadingLocated], solution: Solution) -> None:
        inner = self._configure_inner(inlier_readings, solution.position, True)
        inner.estimate()

        self._store_solution(Solution(position=inner.estimated_position))
        if self.keep_covariance and inner.estimated_covariance is not None:
            self._estimated_covariance = inner.estimated_covariance
            self._estimated_position_covariance = inner.estimated_position_covariance

    def _store_solution(self, solution: Solution) -> None:
        self._estimated_position = solution.position
        self._estimated_covariance = None
        self._estimated_position_covariance = None

    def get_estimated_radio_source(self) -> Optional[RadioSourceLocated]:
        if not self._readings or self._estimated_position is None:
            return None
        return RadioSourceLocated(
            source=self._readings[0].source,
            position=self._estimated_position,
            position_covariance=self._estimated_position_covariance,
        )


class RobustRangingRadioSourceEstimator2D(RobustRangingRadioSourceEstimator):
    """Robust ranging radio source estimator on the plane."""

    def __init__(self, readings=None, initial_position=None, listener=None,
                 method=DEFAULT_ROBUST_METHOD, **robust_settings):
        super().__init__(readings, initial_position, listener, 2, method,
                         **robust_settings)


class RobustRangingRadioSourceEstimator3D(RobustRangingRadioSourceEstimator):
    """Robust ranging radio source estimator in space."""

    def __init__(self, readings=None, initial_position=None, listener=None,
                 method=DEFAULT_ROBUST_METHOD, **robust_settings):
        super().__init__(readings, initial_position, listener, 3, method,
                         **robust_settings)
