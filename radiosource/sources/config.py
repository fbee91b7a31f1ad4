"""Per-estimator configuration of which parameters are estimated and from where."""

from dataclasses import dataclass
from typing import Optional

import numpy as np

from radiosource.rf.measurement_models import dbm_to_power, power_to_dbm

DEFAULT_PATH_LOSS_EXPONENT = 2.0
DEFAULT_POSITION_ESTIMATION_ENABLED = True
DEFAULT_TRANSMITTED_POWER_ESTIMATION_ENABLED = True
DEFAULT_PATH_LOSS_ESTIMATION_ENABLED = False
DEFAULT_USE_READING_POSITION_COVARIANCES = True


@dataclass
class EstimationConfig:
    """Enabled parameters and initial values of a radio source estimation.

    Any parameter that is not estimated keeps its initial value, so a
    disabled position or transmitted power must be given an initial value.

    Attributes:
        position_estimation_enabled: Whether the source position is fitted.
        transmitted_power_estimation_enabled: Whether the equivalent
            transmitted power is fitted.
        path_loss_estimation_enabled: Whether the path-loss exponent is fitted.
        initial_position: Initial (or fixed) source position.
        initial_transmitted_power_dbm: Initial (or fixed) power in dBm.
        initial_path_loss_exponent: Initial (or fixed) path-loss exponent.
        use_reading_position_covariances: Whether ranging standard deviations
            account for the uncertainty of the reading positions.
    """

    position_estimation_enabled: bool = DEFAULT_POSITION_ESTIMATION_ENABLED
    transmitted_power_estimation_enabled: bool = DEFAULT_TRANSMITTED_POWER_ESTIMATION_ENABLED
    path_loss_estimation_enabled: bool = DEFAULT_PATH_LOSS_ESTIMATION_ENABLED
    initial_position: Optional[np.ndarray] = None
    initial_transmitted_power_dbm: Optional[float] = None
    initial_path_loss_exponent: float = DEFAULT_PATH_LOSS_EXPONENT
    use_reading_position_covariances: bool = DEFAULT_USE_READING_POSITION_COVARIANCES

    def __post_init__(self) -> None:
        if self.initial_position is not None:
            self.initial_position = np.asarray(self.initial_position, dtype=float)

    @property
    def initial_transmitted_power(self) -> Optional[float]:
        """Initial transmitted power in mW, or None."""
        if self.initial_transmitted_power_dbm is None:
            return None
        return dbm_to_power(self.initial_transmitted_power_dbm)

    @initial_transmitted_power.setter
    def initial_transmitted_power(self, value: Optional[float]) -> None:
        if value is None:
            self.initial_transmitted_power_dbm = None
        else:
            self.initial_transmitted_power_dbm = power_to_dbm(value)

    @property
    def num_enabled_parameters(self) -> int:
        return sum(
            (
                self.position_estimation_enabled,
                self.transmitted_power_estimation_enabled,
                self.path_loss_estimation_enabled,
            )
        )
