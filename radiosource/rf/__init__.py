"""
RF (Radio Frequency) domain module.

Submodules:
    measurement_models: Isotropic received power model and power conversions
    types: Radio sources, located readings and estimated source records
    accuracy: Position accuracy derived from covariance matrices
"""

from radiosource.rf.accuracy import Accuracy, position_standard_deviation
from radiosource.rf.measurement_models import (
    SPEED_OF_LIGHT,
    dbm_to_power,
    frequency_constant,
    power_to_dbm,
    received_power_dbm,
)
from radiosource.rf.types import (
    DEFAULT_BEACON_FREQUENCY,
    DEFAULT_DISTANCE_STANDARD_DEVIATION,
    DEFAULT_POWER_STANDARD_DEVIATION,
    Beacon,
    RadioSource,
    RadioSourceLocated,
    RadioSourceType,
    RadioSourceWithPowerAndLocated,
    RangingAndRssiReadingLocated,
    RangingReadingLocated,
    ReadingLocated,
    RssiReadingLocated,
    WifiAccessPoint,
)

__all__ = [
    # Constants
    "SPEED_OF_LIGHT",
    "DEFAULT_BEACON_FREQUENCY",
    "DEFAULT_DISTANCE_STANDARD_DEVIATION",
    "DEFAULT_POWER_STANDARD_DEVIATION",
    # Measurement models
    "dbm_to_power",
    "power_to_dbm",
    "frequency_constant",
    "received_power_dbm",
    # Sources
    "RadioSource",
    "RadioSourceType",
    "WifiAccessPoint",
    "Beacon",
    # Readings
    "ReadingLocated",
    "RssiReadingLocated",
    "RangingReadingLocated",
    "RangingAndRssiReadingLocated",
    # Estimated sources
    "RadioSourceLocated",
    "RadioSourceWithPowerAndLocated",
    # Accuracy
    "Accuracy",
    "position_standard_deviation",
]
