"""
RSSI radio source estimator.

Estimates any combination of the source position, its equivalent
transmitted power and the path-loss exponent from RSSI readings taken at
known positions, by weighted Levenberg-Marquardt fitting of the isotropic
received power model (see ``radiosource.sources.models``).

Example:
    >>> ap = WifiAccessPoint("00:11:22:33:44:55", 2.4e9)
    >>> readings = [RssiReadingLocated(ap, rssi, p) for rssi, p in data]
    >>> estimator = RssiRadioSourceEstimator2D(readings)
    >>> estimator.estimate()
    >>> estimator.estimated_position, estimator.estimated_transmitted_power_dbm
"""

import logging
import warnings
from typing import Optional, Sequence

import numpy as np

from radiosource.estimators.nonlinear_least_squares import LevenbergMarquardtFitter
from radiosource.rf.types import DEFAULT_POWER_STANDARD_DEVIATION, RssiReadingLocated
from radiosource.sources.base import (
    PowerEstimationMixin,
    RadioSourceEstimator,
    config_property,
)
from radiosource.sources.config import DEFAULT_PATH_LOSS_EXPONENT, EstimationConfig
from radiosource.sources.listeners import RadioSourceEstimatorListener
from radiosource.sources.models import (
    RssiFunctionEvaluator,
    get_fitting_configuration,
    split_covariance,
)

logger = logging.getLogger(__name__)


def rssi_standard_deviations(readings: Sequence[RssiReadingLocated]) -> np.ndarray:
    return np.array(
        [
            r.rssi_standard_deviation
            if r.rssi_standard_deviation is not None
            else DEFAULT_POWER_STANDARD_DEVIATION
            for r in readings
        ]
    )


def warn_ill_conditioned(stacklevel: int = 2) -> None:
    warnings.warn(
        "Estimating position, transmitted power and path-loss exponent "
        "at once is usually ill-conditioned",
        RuntimeWarning,
        stacklevel=stacklevel + 1,
    )


class RssiRadioSourceEstimator(PowerEstimationMixin, RadioSourceEstimator):
    """
    Point estimator of a radio source from RSSI readings.

    By default the position and the transmitted power are estimated and the
    path-loss exponent is kept at its initial value (2.0, free space).
    Enabling all three parameters is allowed but usually ill-conditioned.

    Args:
        readings: RSSI readings of a single source.
        initial_position: Initial (or fixed) source position.
        initial_transmitted_power_dbm: Initial (or fixed) power in dBm.
        initial_path_loss_exponent: Initial (or fixed) path-loss exponent.
        listener: Optional listener of estimation events.
        dims: Number of position coordinates (2 or 3).
    """

    def __init__(
        self,
        readings: Optional[Sequence[RssiReadingLocated]] = None,
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
        self._chi_sq: Optional[float] = None
        self._fitter = LevenbergMarquardtFitter()
        # cleared by wrappers that warn once for many fits
        self._warn_three_parameters = True

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

    @property
    def chi_sq(self) -> Optional[float]:
        return self._chi_sq

    def is_ready(self) -> bool:
        cfg = self._config
        return (
            cfg.num_enabled_parameters > 0
            and (cfg.position_estimation_enabled or cfg.initial_position is not None)
            and (
                cfg.transmitted_power_estimation_enabled
                or cfg.initial_transmitted_power_dbm is not None
            )
            and self._are_valid_readings(self._readings)
        )

    def _estimate(self) -> None:
        cfg = self._config
        readings = self._readings

        configuration = get_fitting_configuration(
            cfg.position_estimation_enabled,
            cfg.transmitted_power_estimation_enabled,
            cfg.path_loss_estimation_enabled,
        )
        if cfg.num_enabled_parameters == 3 and self._warn_three_parameters:
            warn_ill_conditioned(stacklevel=3)

        # all readings belong to the same source
        frequency = readings[0].source.frequency
        positions = np.array([r.position for r in readings])
        rssi = np.array([r.rssi for r in readings], dtype=float)

        evaluator = RssiFunctionEvaluator(
            configuration,
            positions,
            rssi,
            frequency,
            cfg.initial_position,
            cfg.initial_transmitted_power_dbm,
            cfg.initial_path_loss_exponent,
        )
        self._fitter.set_function_evaluator(evaluator)
        self._fitter.set_input_data(
            evaluator.input_points(), rssi, rssi_standard_deviations(readings)
        )

        result = self._fitter.fit()
        logger.debug(
            "%s fit: %d readings, %d iterations, chi_sq=%g",
            configuration.name, len(readings), result.iterations, result.chi_sq,
        )

        a = result.a
        position_cov, power_var, path_loss_var = split_covariance(
            result.covariance, configuration, self.dims
        )

        idx = 0
        if configuration.position:
            position = a[: self.dims].copy()
            idx += self.dims
        else:
            position = cfg.initial_position.copy()

        if configuration.transmitted_power:
            power = float(a[idx])
            idx += 1
        else:
            power = cfg.initial_transmitted_power_dbm

        if configuration.path_loss:
            path_loss = float(a[idx])
        else:
            path_loss = cfg.initial_path_loss_exponent

        self._estimated_position = position
        self._estimated_position_covariance = position_cov
        self._estimated_covariance = result.covariance
        self._estimated_transmitted_power_dbm = power
        self._estimated_transmitted_power_variance = power_var
        self._estimated_path_loss_exponent = path_loss
        self._estimated_path_loss_exponent_variance = path_loss_var
        self._chi_sq = result.chi_sq


class RssiRadioSourceEstimator2D(RssiRadioSourceEstimator):
    """RSSI radio source estimator on the plane."""

    def __init__(self, readings=None, initial_position=None,
                 initial_transmitted_power_dbm=None,
                 initial_path_loss_exponent=DEFAULT_PATH_LOSS_EXPONENT,
                 listener=None):
        super().__init__(readings, initial_position, initial_transmitted_power_dbm,
                         initial_path_loss_exponent, listener, dims=2)


class RssiRadioSourceEstimator3D(RssiRadioSourceEstimator):
    """RSSI radio source estimator in space."""

    def __init__(self, readings=None, initial_position=None,
                 initial_transmitted_power_dbm=None,
                 initial_path_loss_exponent=DEFAULT_PATH_LOSS_EXPONENT,
                 listener=None):
        super().__init__(readings, initial_position, initial_transmitted_power_dbm,
                         initial_path_loss_exponent, listener, dims=3)
