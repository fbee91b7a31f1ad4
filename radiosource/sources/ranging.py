"""
Ranging radio source estimator.

Estimates the source position from distances measured at known positions.
Without an initial position, a closed-form linear lateration provides one;
the non-linear solver then refines it and yields the position covariance.
"""

import logging
from typing import Optional, Sequence

import numpy as np

from radiosource.lateration.solvers import (
    NonLinearLaterationSolver,
    homogeneous_linear_lateration,
    inhomogeneous_linear_lateration,
)
from radiosource.rf.accuracy import position_standard_deviation
from radiosource.rf.types import (
    DEFAULT_DISTANCE_STANDARD_DEVIATION,
    RadioSourceLocated,
    RangingReadingLocated,
)
from radiosource.sources.base import RadioSourceEstimator
from radiosource.sources.config import EstimationConfig
from radiosource.sources.listeners import RadioSourceEstimatorListener

logger = logging.getLogger(__name__)

DEFAULT_USE_HOMOGENEOUS_LINEAR_SOLVER = True


def ranging_standard_deviations(
    readings: Sequence[RangingReadingLocated],
    use_position_covariances: bool,
) -> np.ndarray:
    """
    Standard deviation of every distance.

    When position covariances are used, the distance deviation is combined
    with the average accuracy of the reading position, assuming both are
    independent:
        σ = sqrt(σ_d² + σ_pos²)
    """
    sigmas = np.empty(len(readings))
    for i, reading in enumerate(readings):
        sigma = reading.distance_standard_deviation
        if sigma is None:
            sigma = DEFAULT_DISTANCE_STANDARD_DEVIATION
        if use_position_covariances:
            sigma_pos = position_standard_deviation(reading.position_covariance)
            sigma = np.sqrt(sigma**2 + sigma_pos**2)
        sigmas[i] = sigma
    return sigmas


class RangingRadioSourceEstimator(RadioSourceEstimator):
    """
    Point estimator of a radio source position from ranging readings.

    Args:
        readings: Ranging readings of a single source.
        initial_position: Initial source position. When None, the linear
            solver provides one.
        listener: Optional listener of estimation events.
        dims: Number of position coordinates (2 or 3).
    """

    def __init__(
        self,
        readings: Optional[Sequence[RangingReadingLocated]] = None,
        initial_position: Optional[np.ndarray] = None,
        listener: Optional[RadioSourceEstimatorListener] = None,
        dims: int = 2,
    ):
        config = EstimationConfig(initial_position=initial_position)
        super().__init__(readings, listener, dims, config)
        self._homogeneous_linear_solver_used = DEFAULT_USE_HOMOGENEOUS_LINEAR_SOLVER
        self._non_linear_solver_enabled = True

    @property
    def homogeneous_linear_solver_used(self) -> bool:
        """Whether the homogeneous (True) or inhomogeneous linear solver is used."""
        return self._homogeneous_linear_solver_used

    @homogeneous_linear_solver_used.setter
    def homogeneous_linear_solver_used(self, value: bool) -> None:
        self._check_not_locked()
        self._homogeneous_linear_solver_used = value

    @property
    def non_linear_solver_enabled(self) -> bool:
        return self._non_linear_solver_enabled

    @non_linear_solver_enabled.setter
    def non_linear_solver_enabled(self, value: bool) -> None:
        self._check_not_locked()
        self._non_linear_solver_enabled = value

    @property
    def min_readings(self) -> int:
        return self.dims + 1

    def _estimate(self) -> None:
        readings = self._readings
        positions = np.array([r.position for r in readings])
        distances = np.array([r.distance for r in readings], dtype=float)
        sigmas = ranging_standard_deviations(
            readings, self._config.use_reading_position_covariances
        )

        initial_position = self._config.initial_position
        if initial_position is None or not self._non_linear_solver_enabled:
            if self._homogeneous_linear_solver_used:
                initial_position, _ = homogeneous_linear_lateration(positions, distances)
            else:
                initial_position, _ = inhomogeneous_linear_lateration(positions, distances)

        covariance = None
        position = initial_position
        if self._non_linear_solver_enabled:
            solver = NonLinearLaterationSolver(positions, distances, sigmas)
            position, info = solver.solve(initial_position)
            covariance = info["covariance"]
            logger.debug(
                "non-linear lateration: %d readings, %d iterations",
                len(readings), info["iterations"],
            )

        self._estimated_position = np.array(position, dtype=float)
        self._estimated_position_covariance = covariance
        self._estimated_covariance = covariance

    def get_estimated_radio_source(self) -> Optional[RadioSourceLocated]:
        """
        Estimated source with its position.

        Returns:
            The estimated source, or None when there are no readings or no
            estimation has completed yet.
        """
        if not self._readings or self._estimated_position is None:
            return None
        return RadioSourceLocated(
            source=self._readings[0].source,
            position=self._estimated_position,
            position_covariance=self._estimated_position_covariance,
        )


class RangingRadioSourceEstimator2D(RangingRadioSourceEstimator):
    """Ranging radio source estimator on the plane."""

    def __init__(self, readings=None, initial_position=None, listener=None):
        super().__init__(readings, initial_position, listener, dims=2)


class RangingRadioSourceEstimator3D(RangingRadioSourceEstimator):
    """Ranging radio source estimator in space."""

    def __init__(self, readings=None, initial_position=None, listener=None):
        super().__init__(readings, initial_position, listener, dims=3)
