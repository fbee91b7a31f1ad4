"""Robust RSSI radio source estimator."""

from typing import List, Optional, Sequence

import numpy as np

from radiosource.rf.types import RssiReadingLocated
from radiosource.robust.types import RobustMethod
from radiosource.sources.base import PowerEstimationMixin, config_property
from radiosource.sources.config import DEFAULT_PATH_LOSS_EXPONENT, EstimationConfig
from radiosource.sources.listeners import RadioSourceEstimatorListener
from radiosource.sources.models import rssi_residuals
from radiosource.sources.robust import (
    DEFAULT_ROBUST_METHOD,
    RobustRadioSourceEstimator,
    Solution,
)
from radiosource.sources.rssi import RssiRadioSourceEstimator, warn_ill_conditioned


class RobustRssiRadioSourceEstimator(PowerEstimationMixin, RobustRadioSourceEstimator):
    """
    Robust estimator of a radio source from RSSI readings with outliers.

    Candidates are scored by |predicted RSSI - measured RSSI| over all
    readings. Accepts the same settings as ``RssiRadioSourceEstimator`` plus
    the robust settings of ``RobustRadioSourceEstimator``.

    Example:
        >>> estimator = RobustRssiRadioSourceEstimator(
        ...     readings, method=RobustMethod.RANSAC, threshold=1.0, seed=0)
        >>> estimator.estimate()
        >>> estimator.inliers_data.inliers
    """

    def __init__(
        self,
        readings: Optional[Sequence[RssiReadingLocated]] = None,
        initial_position: Optional[np.ndarray] = None,
        initial_transmitted_power_dbm: Optional[float] = None,
        initial_path_loss_exponent: float = DEFAULT_PATH_LOSS_EXPONENT,
        listener: Optional[RadioSourceEstimatorListener] = None,
        dims: int = 2,
        method: RobustMethod = DEFAULT_ROBUST_METHOD,
        **robust_settings,
    ):
        config = EstimationConfig(
            initial_position=initial_position,
            initial_transmitted_power_dbm=initial_transmitted_power_dbm,
            initial_path_loss_exponent=initial_path_loss_exponent,
        )
        super().__init__(readings, listener, dims, config, method, **robust_settings)
        self._reset_power_results()
        self._inner_estimator = RssiRadioSourceEstimator(dims=dims)
        self._inner_estimator._warn_three_parameters = False

    position_estimation_enabled = config_property(
        "position_estimation_enabled",
        "Whether the source position is estimated.",
    )

    @property
    def min_readings(self) -> int:
        cfg = self._config
        return (
            1
            + self.dims * cfg.position_estimation_enabled
            + cfg.transmitted_power_estimation_enabled
            + cfg.path_loss_estimation_enabled
        )

    def is_ready(self) -> bool:
        cfg = self._config
        return (
            cfg.num_enabled_parameters > 0
            and (cfg.position_estimation_enabled or cfg.initial_position is not None)
            and (
                cfg.transmitted_power_estimation_enabled
                or cfg.initial_transmitted_power_dbm is not None
            )
            and super().is_ready()
        )

    def _prepare(self, readings: Sequence[RssiReadingLocated]) -> None:
        super()._prepare(readings)
        self._rssi = np.array([r.rssi for r in readings], dtype=float)
        self._frequency = readings[0].source.frequency
        if self._config.num_enabled_parameters == 3:
            warn_ill_conditioned(stacklevel=4)

    def _configure_inner(
        self,
        readings: List[RssiReadingLocated],
        initial_position: Optional[np.ndarray],
        initial_transmitted_power_dbm: Optional[float],
        initial_path_loss_exponent: float,
    ) -> RssiRadioSourceEstimator:
        cfg = self._config
        inner = self._inner_estimator
        inner.position_estimation_enabled = cfg.position_estimation_enabled
        inner.transmitted_power_estimation_enabled = cfg.transmitted_power_estimation_enabled
        inner.path_loss_estimation_enabled = cfg.path_loss_estimation_enabled
        inner.initial_position = initial_position
        inner.initial_transmitted_power_dbm = initial_transmitted_power_dbm
        inner.initial_path_loss_exponent = initial_path_loss_exponent
        inner.readings = readings
        return inner

    def _solve_subset(self, readings: List[RssiReadingLocated]) -> Solution:
        cfg = self._config
        inner = self._configure_inner(
            readings,
            cfg.initial_position,
            cfg.initial_transmitted_power_dbm,
            cfg.initial_path_loss_exponent,
        )
        inner.estimate()
        return Solution(
            position=inner.estimated_position,
            transmitted_power_dbm=inner.estimated_transmitted_power_dbm,
            path_loss_exponent=inner.estimated_path_loss_exponent,
        )

    def _compute_residuals(self, solution: Solution) -> np.ndarray:
        return rssi_residuals(
            self._positions,
            self._rssi,
            self._frequency,
            solution.position,
            solution.transmitted_power_dbm,
            solution.path_loss_exponent,
        )

    def _refine(self, inlier_readings: List[RssiReadingLocated], solution: Solution) -> None:
        inner = self._configure_inner(
            inlier_readings,
            solution.position,
            solution.transmitted_power_dbm,
            solution.path_loss_exponent,
        )
        inner.estimate()

        self._store_solution(
            Solution(
                position=inner.estimated_position,
                transmitted_power_dbm=inner.estimated_transmitted_power_dbm,
                path_loss_exponent=inner.estimated_path_loss_exponent,
            )
        )
        if self.keep_covariance and inner.estimated_covariance is not None:
            self._estimated_covariance = inner.estimated_covariance
            self._estimated_position_covariance = inner.estimated_position_covariance
            self._estimated_transmitted_power_variance = (
                inner.estimated_transmitted_power_variance
            )
            self._estimated_path_loss_exponent_variance = (
                inner.estimated_path_loss_exponent_variance
            )

    def _store_solution(self, solution: Solution) -> None:
        self._estimated_position = solution.position
        self._estimated_transmitted_power_dbm = solution.transmitted_power_dbm
        self._estimated_path_loss_exponent = solution.path_loss_exponent
        self._estimated_covariance = None
        self._estimated_position_covariance = None
        self._estimated_transmitted_power_variance = None
        self._estimated_path_loss_exponent_variance = None


class RobustRssiRadioSourceEstimator2D(RobustRssiRadioSourceEstimator):
    """Robust RSSI radio source estimator on the plane."""

    def __init__(self, readings=None, initial_position=None,
                 initial_transmitted_power_dbm=None,
                 initial_path_loss_exponent=DEFAULT_PATH_LOSS_EXPONENT,
                 listener=None, method=DEFAULT_ROBUST_METHOD, **robust_settings):
        super().__init__(readings, initial_position, initial_transmitted_power_dbm,
                         initial_path_loss_exponent, listener, 2, method,
                         **robust_settings)


class RobustRssiRadioSourceEstimator3D(RobustRssiRadioSourceEstimator):
    """Robust RSSI radio source estimator in space."""

    def __init__(self, readings=None, initial_position=None,
                 initial_transmitted_power_dbm=None,
                 initial_path_loss_exponent=DEFAULT_PATH_LOSS_EXPONENT,
                 listener=None, method=DEFAULT_ROBUST_METHOD, **robust_settings):
        super().__init__(readings, initial_position, initial_transmitted_power_dbm,
                         initial_path_loss_exponent, listener, 3, method,
                         **robust_settings)
