"""
Base class of radio source estimators.

Every estimator follows the same life cycle:

    IDLE --estimate()--> ESTIMATING (locked) --> IDLE (results | error)

While locked, configuration setters and re-entrant ``estimate()`` calls raise
``LockedError``. Results are only replaced once an estimation succeeds, so a
failed call never leaves partial results behind.
"""

from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Sequence

import numpy as np

from radiosource.exceptions import (
    LockedError,
    NotReadyError,
    NumericalError,
    RadioSourceEstimationError,
)
from radiosource.rf.measurement_models import dbm_to_power
from radiosource.rf.types import RadioSourceWithPowerAndLocated
from radiosource.sources.config import EstimationConfig
from radiosource.sources.listeners import RadioSourceEstimatorListener


def config_property(name: str, doc: str) -> property:
    """Property reading and writing ``EstimationConfig.<name>``, locked-aware."""

    def fget(self):
        return getattr(self._config, name)

    def fset(self, value):
        self._check_not_locked()
        setattr(self._config, name, value)

    return property(fget, fset, doc=doc)


class locked_setting:
    """
    Estimator attribute that can only be assigned while unlocked.

    Args:
        validator: Optional callable checking (and possibly converting) the
            assigned value; it raises ``ValueError`` for invalid values.
    """

    def __init__(self, validator: Optional[Callable] = None):
        self.validator = validator

    def __set_name__(self, owner, name):
        self.name = name
        self.attr = "_" + name

    def __get__(self, obj, objtype=None):
        if obj is None:
            return self
        return getattr(obj, self.attr)

    def __set__(self, obj, value):
        obj._check_not_locked()
        if self.validator is not None:
            value = self.validator(self.name, value)
        setattr(obj, self.attr, value)


class RadioSourceEstimator(ABC):
    """
    Common state of radio source estimators.

    Attributes:
        dims: Number of position coordinates (2 or 3).
    """

    def __init__(
        self,
        readings: Optional[Sequence] = None,
        listener: Optional[RadioSourceEstimatorListener] = None,
        dims: int = 2,
        config: Optional[EstimationConfig] = None,
    ):
        if dims not in (2, 3):
            raise ValueError(f"dims must be 2 or 3, got {dims}")
        self.dims = dims
        self._config = config if config is not None else EstimationConfig()
        self._check_position(self._config.initial_position)

        self._locked = False
        self._listener = listener
        self._readings: Optional[List] = None
        if readings is not None:
            self.readings = readings

        self._estimated_position: Optional[np.ndarray] = None
        self._estimated_position_covariance: Optional[np.ndarray] = None
        self._estimated_covariance: Optional[np.ndarray] = None

    # -- lock ---------------------------------------------------------------

    @property
    def is_locked(self) -> bool:
        """True only while ``estimate()`` is running."""
        return self._locked

    def _check_not_locked(self) -> None:
        if self._locked:
            raise LockedError(f"{type(self).__name__} is locked")

    # -- configuration ------------------------------------------------------

    @property
    def number_of_dimensions(self) -> int:
        return self.dims

    @property
    def readings(self) -> Optional[List]:
        return self._readings

    @readings.setter
    def readings(self, readings: Optional[Sequence]) -> None:
        self._check_not_locked()
        if readings is None:
            self._readings = None
            return
        readings = list(readings)
        for reading in readings:
            if reading.dims != self.dims:
                raise ValueError(
                    f"expected {self.dims}D readings, got a {reading.dims}D reading"
                )
        self._readings = readings

    @property
    def listener(self) -> Optional[RadioSourceEstimatorListener]:
        return self._listener

    @listener.setter
    def listener(self, listener: Optional[RadioSourceEstimatorListener]) -> None:
        self._check_not_locked()
        self._listener = listener

    @property
    def initial_position(self) -> Optional[np.ndarray]:
        """Initial source position, or None to start from the readings."""
        return self._config.initial_position

    @initial_position.setter
    def initial_position(self, position: Optional[np.ndarray]) -> None:
        self._check_not_locked()
        if position is not None:
            position = np.asarray(position, dtype=float)
        self._check_position(position)
        self._config.initial_position = position

    def _check_position(self, position: Optional[np.ndarray]) -> None:
        if position is not None and np.shape(position) != (self.dims,):
            raise ValueError(
                f"position must have shape ({self.dims},), got {np.shape(position)}"
            )

    use_reading_position_covariances = config_property(
        "use_reading_position_covariances",
        "Whether reading position covariances inflate measurement deviations.",
    )

    @property
    @abstractmethod
    def min_readings(self) -> int:
        """Minimum number of readings needed with the current settings."""

    def _are_valid_readings(self, readings: Optional[Sequence]) -> bool:
        return readings is not None and len(readings) >= self.min_readings

    def is_ready(self) -> bool:
        return self._are_valid_readings(self._readings)

    # -- estimation ---------------------------------------------------------

    def estimate(self) -> None:
        """
        Run the estimation on the current readings.

        Raises:
            LockedError: If an estimation is already running.
            NotReadyError: If ``is_ready()`` is False.
            RadioSourceEstimationError: If the estimation fails numerically.
        """
        self._check_not_locked()
        if not self.is_ready():
            raise NotReadyError(f"{type(self).__name__} is not ready")

        self._locked = True
        try:
            if self._listener is not None:
                self._listener.on_estimate_start(self)

            try:
                self._estimate()
            except NumericalError as e:
                raise RadioSourceEstimationError(str(e)) from e

            if self._listener is not None:
                self._listener.on_estimate_end(self)
        finally:
            self._locked = False

    @abstractmethod
    def _estimate(self) -> None:
        """Estimate and store results; called with the estimator locked."""

    # -- results ------------------------------------------------------------

    @property
    def estimated_position(self) -> Optional[np.ndarray]:
        return self._estimated_position

    @property
    def estimated_position_covariance(self) -> Optional[np.ndarray]:
        return self._estimated_position_covariance

    @property
    def estimated_covariance(self) -> Optional[np.ndarray]:
        """Covariance of all estimated parameters, or None."""
        return self._estimated_covariance

    @abstractmethod
    def get_estimated_radio_source(self):
        """Estimated source built on the identity of the first reading's source."""


class PowerEstimationMixin:
    """
    Transmitted power and path-loss exponent settings and results.

    Used by every estimator that fits RSSI readings.
    """

    transmitted_power_estimation_enabled = config_property(
        "transmitted_power_estimation_enabled",
        "Whether the equivalent transmitted power is estimated.",
    )
    path_loss_estimation_enabled = config_property(
        "path_loss_estimation_enabled",
        "Whether the path-loss exponent is estimated.",
    )
    initial_transmitted_power_dbm = config_property(
        "initial_transmitted_power_dbm",
        "Initial transmitted power in dBm, or None to use the mean RSSI.",
    )
    initial_path_loss_exponent = config_property(
        "initial_path_loss_exponent",
        "Initial (or fixed) path-loss exponent.",
    )

    @property
    def initial_transmitted_power(self) -> Optional[float]:
        """Initial transmitted power in mW, or None."""
        return self._config.initial_transmitted_power

    @initial_transmitted_power.setter
    def initial_transmitted_power(self, value: Optional[float]) -> None:
        self._check_not_locked()
        self._config.initial_transmitted_power = value

    def _reset_power_results(self) -> None:
        self._estimated_transmitted_power_dbm: Optional[float] = None
        self._estimated_transmitted_power_variance: Optional[float] = None
        self._estimated_path_loss_exponent: Optional[float] = None
        self._estimated_path_loss_exponent_variance: Optional[float] = None

    @property
    def estimated_transmitted_power_dbm(self) -> Optional[float]:
        return self._estimated_transmitted_power_dbm

    @property
    def estimated_transmitted_power(self) -> Optional[float]:
        """Estimated transmitted power in mW."""
        if self._estimated_transmitted_power_dbm is None:
            return None
        return dbm_to_power(self._estimated_transmitted_power_dbm)

    @property
    def estimated_transmitted_power_variance(self) -> Optional[float]:
        return self._estimated_transmitted_power_variance

    @property
    def estimated_path_loss_exponent(self) -> Optional[float]:
        return self._estimated_path_loss_exponent

    @property
    def estimated_path_loss_exponent_variance(self) -> Optional[float]:
        return self._estimated_path_loss_exponent_variance

    def get_estimated_radio_source(self) -> Optional[RadioSourceWithPowerAndLocated]:
        """
        Estimated source with position, power and path-loss exponent.

        Standard deviations are only filled when the corresponding variance
        is available.

        Returns:
            The estimated source, or None when there are no readings or no
            estimation has completed yet.
        """
        if not self._readings or self._estimated_position is None:
            return None

        power_std = None
        if self._estimated_transmitted_power_variance is not None:
            power_std = float(np.sqrt(self._estimated_transmitted_power_variance))
        path_loss_std = None
        if self._estimated_path_loss_exponent_variance is not None:
            path_loss_std = float(np.sqrt(self._estimated_path_loss_exponent_variance))

        return RadioSourceWithPowerAndLocated(
            source=self._readings[0].source,
            position=self._estimated_position,
            position_covariance=self._estimated_position_covariance,
            transmitted_power_dbm=self._estimated_transmitted_power_dbm,
            transmitted_power_standard_deviation=power_std,
            path_loss_exponent=self._estimated_path_loss_exponent,
            path_loss_exponent_standard_deviation=path_loss_std,
        )
