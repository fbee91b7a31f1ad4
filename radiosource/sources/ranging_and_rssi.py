"""
Ranging and RSSI radio source estimator.

The position is estimated from the distances of the readings; the
transmitted power and/or path-loss exponent are then fitted on the RSSI of
the same readings with the position fixed at that estimate.
"""

from typing import Optional, Sequence

import numpy as np
from scipy.linalg import block_diag

from radiosource.rf.types import RangingAndRssiReadingLocated
from radiosource.sources.base import PowerEstimationMixin, RadioSourceEstimator
from radiosource.sources.config import DEFAULT_PATH_LOSS_EXPONENT, EstimationConfig
from radiosource.sources.listeners import RadioSourceEstimatorListener
from radiosource.sources.ranging import (
    DEFAULT_USE_HOMOGENEOUS_LINEAR_SOLVER,
    RangingRadioSourceEstimator,
)
from radiosource.sources.rssi import RssiRadioSourceEstimator


class RangingAndRssiRadioSourceEstimator(PowerEstimationMixin, RadioSourceEstimator):
    """
    Point estimator of a radio source from combined ranging and RSSI readings.

    The position is always estimated. Transmitted power estimation is
    enabled by default and path-loss estimation disabled.

    Args:
        readings: Ranging and RSSI readings of a single source.
        initial_position: Initial source position for the ranging fit.
        initial_transmitted_power_dbm: Initial (or fixed) power in dBm.
        initial_path_loss_exponent: Initial (or fixed) path-loss exponent.
        listener: Optional listener of estimation events.
        dims: Number of position coordinates (2 or 3).
    """

    def __init__(
        self,
        readings: Optional[Sequence[RangingAndRssiReadingLocated]] = None,
        initial_position: Optional[np.ndarray] = None,
        initial_transmitted_power_dbm: Optional[float] = None,
        initial_path_loss_exponent: float = DEFAULT_PATH_LOSS_EXPONENT,
        listener: Optional[RadioSourceEstimatorListener] = None,
        dims: int = 2,
    ):
        config = EstimationConfig(
            initial_position=initial_position,
            initial_transmitted_power_dbm=initial_transmitted_power_dbm,
            initial_path_loss_exponent=initial_path_loss_exponent,
        )
        super().__init__(readings, listener, dims, config)
        self._reset_power_results()
        self._homogeneous_ranging_linear_solver_used = DEFAULT_USE_HOMOGENEOUS_LINEAR_SOLVER

        self._ranging_estimator = RangingRadioSourceEstimator(dims=dims)
        self._rssi_estimator = RssiRadioSourceEstimator(dims=dims)

    @property
    def homogeneous_ranging_linear_solver_used(self) -> bool:
        return self._homogeneous_ranging_linear_solver_used

    @homogeneous_ranging_linear_solver_used.setter
    def homogeneous_ranging_linear_solver_used(self, value: bool) -> None:
        self._check_not_locked()
        self._homogeneous_ranging_linear_solver_used = value

    @property
    def min_readings(self) -> int:
        cfg = self._config
        return (
            1
            + self.dims
            + cfg.transmitted_power_estimation_enabled
            + cfg.path_loss_estimation_enabled
        )

    def is_ready(self) -> bool:
        cfg = self._config
        return (
            cfg.transmitted_power_estimation_enabled
            or cfg.initial_transmitted_power_dbm is not None
        ) and self._are_valid_readings(self._readings)

    def _estimate(self) -> None:
        cfg = self._config
        readings = self._readings

        ranging = self._ranging_estimator
        ranging.use_reading_position_covariances = cfg.use_reading_position_covariances
        ranging.homogeneous_linear_solver_used = self._homogeneous_ranging_linear_solver_used
        ranging.readings = [r.to_ranging_reading() for r in readings]
        ranging.initial_position = cfg.initial_position
        ranging.estimate()

        position = ranging.estimated_position
        position_cov = ranging.estimated_position_covariance
        covariance = position_cov

        power = cfg.initial_transmitted_power_dbm
        power_var = None
        path_loss = cfg.initial_path_loss_exponent
        path_loss_var = None

        if cfg.transmitted_power_estimation_enabled or cfg.path_loss_estimation_enabled:
            rssi = self._rssi_estimator
            rssi.position_estimation_enabled = False
            rssi.initial_position = position
            rssi.transmitted_power_estimation_enabled = cfg.transmitted_power_estimation_enabled
            rssi.initial_transmitted_power_dbm = cfg.initial_transmitted_power_dbm
            rssi.path_loss_estimation_enabled = cfg.path_loss_estimation_enabled
            rssi.initial_path_loss_exponent = cfg.initial_path_loss_exponent
            rssi.readings = [r.to_rssi_reading() for r in readings]
            rssi.estimate()

            if cfg.transmitted_power_estimation_enabled:
                power = rssi.estimated_transmitted_power_dbm
                power_var = rssi.estimated_transmitted_power_variance
            if cfg.path_loss_estimation_enabled:
                path_loss = rssi.estimated_path_loss_exponent
                path_loss_var = rssi.estimated_path_loss_exponent_variance

            rssi_cov = rssi.estimated_covariance
            if position_cov is not None and rssi_cov is not None:
                covariance = block_diag(position_cov, rssi_cov)
            else:
                covariance = None

        self._estimated_position = position
        self._estimated_position_covariance = position_cov
        self._estimated_covariance = covariance
        self._estimated_transmitted_power_dbm = power
        self._estimated_transmitted_power_variance = power_var
        self._estimated_path_loss_exponent = path_loss
        self._estimated_path_loss_exponent_variance = path_loss_var


class RangingAndRssiRadioSourceEstimator2D(RangingAndRssiRadioSourceEstimator):
    """Ranging and RSSI radio source estimator on the plane."""

    def __init__(self, readings=None, initial_position=None,
                 initial_transmitted_power_dbm=None,
                 initial_path_loss_exponent=DEFAULT_PATH_LOSS_EXPONENT,
                 listener=None):
        super().__init__(readings, initial_position, initial_transmitted_power_dbm,
                         initial_path_loss_exponent, listener, dims=2)


class RangingAndRssiRadioSourceEstimator3D(RangingAndRssiRadioSourceEstimator):
    """Ranging and RSSI radio source estimator in space."""

    def __init__(self, readings=None, initial_position=None,
                 initial_transmitted_power_dbm=None,
                 initial_path_loss_exponent=DEFAULT_PATH_LOSS_EXPONENT,
                 listener=None):
        super().__init__(readings, initial_position, initial_transmitted_power_dbm,
                         initial_path_loss_exponent, listener, dims=3)
