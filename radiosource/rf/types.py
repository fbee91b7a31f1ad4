"""
Radio sources, located readings and estimated source records.

Readings are immutable snapshots taken by a receiver at a known position.
All readings passed to a single estimation must refer to the same radio
source; this is a precondition and is not re-validated per reading.

Estimated sources are returned as records wrapping the identity of the
original source (``RadioSourceLocated`` for ranging-only estimation,
``RadioSourceWithPowerAndLocated`` when power and path-loss are available).
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple, Union

import numpy as np

from radiosource.rf.measurement_models import dbm_to_power

# Default standard deviation of RSSI readings, in dB
DEFAULT_POWER_STANDARD_DEVIATION = 1.0

# Default standard deviation of ranging readings, in meters
DEFAULT_DISTANCE_STANDARD_DEVIATION = 1e-3

# Default BLE frequency, in Hz
DEFAULT_BEACON_FREQUENCY = 2.4e9


class RadioSourceType(Enum):
    """Kind of radio emitter."""

    WIFI_ACCESS_POINT = "wifi_access_point"
    BEACON = "beacon"


@dataclass(frozen=True)
class WifiAccessPoint:
    """WiFi access point identified by its BSSID.

    Attributes:
        bssid: Basic service set identifier (MAC address of the radio).
        frequency: Carrier frequency in Hz.
        ssid: Optional network name.
    """

    bssid: str
    frequency: float
    ssid: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.bssid:
            raise ValueError("bssid must be a non-empty string")
        if self.frequency <= 0.0:
            raise ValueError(f"frequency must be positive, got {self.frequency}")

    @property
    def source_type(self) -> RadioSourceType:
        return RadioSourceType.WIFI_ACCESS_POINT


@dataclass(frozen=True)
class Beacon:
    """Bluetooth LE beacon.

    Attributes:
        identifiers: Beacon identifiers (e.g. UUID, major, minor).
        transmitted_power_dbm: Calibrated power advertised by the beacon.
        frequency: Carrier frequency in Hz.
        bluetooth_address: Optional MAC address.
        beacon_type_code: Layout type code of the advertisement.
        manufacturer: Bluetooth manufacturer code (-1 when unknown).
        service_uuid: Service UUID (-1 when unknown).
        bluetooth_name: Optional advertised name.
    """

    identifiers: Tuple[str, ...]
    transmitted_power_dbm: float
    frequency: float = DEFAULT_BEACON_FREQUENCY
    bluetooth_address: Optional[str] = None
    beacon_type_code: int = 0
    manufacturer: int = -1
    service_uuid: int = -1
    bluetooth_name: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "identifiers", tuple(self.identifiers))
        if not self.identifiers:
            raise ValueError("beacon must have at least one identifier")
        if self.frequency <= 0.0:
            raise ValueError(f"frequency must be positive, got {self.frequency}")

    @property
    def source_type(self) -> RadioSourceType:
        return RadioSourceType.BEACON

    @property
    def transmitted_power(self) -> float:
        """Advertised transmitted power in mW."""
        return dbm_to_power(self.transmitted_power_dbm)


RadioSource = Union[WifiAccessPoint, Beacon]


def _validate_position(
    position: np.ndarray,
    position_covariance: Optional[np.ndarray],
) -> Tuple[np.ndarray, Optional[np.ndarray]]:
    position = np.asarray(position, dtype=float)
    if position.ndim != 1 or len(position) not in (2, 3):
        raise ValueError(
            f"position must have 2 or 3 coordinates, got shape {position.shape}"
        )

    if position_covariance is not None:
        position_covariance = np.asarray(position_covariance, dtype=float)
        dims = len(position)
        if position_covariance.shape != (dims, dims):
            raise ValueError(
                f"position covariance must have shape ({dims}, {dims}), "
                f"got {position_covariance.shape}"
            )
        if not np.allclose(position_covariance, position_covariance.T):
            raise ValueError("position covariance must be symmetric")

    return position, position_covariance


def _validate_standard_deviation(name: str, value: Optional[float]) -> None:
    if value is not None and value <= 0.0:
        raise ValueError(f"{name} must be positive, got {value}")


@dataclass(frozen=True)
class RssiReadingLocated:
    """Received signal strength measured at a known receiver position.

    Attributes:
        source: Radio source the reading belongs to.
        rssi: Received power in dBm.
        position: Receiver position, 2 or 3 coordinates.
        rssi_standard_deviation: Standard deviation of ``rssi`` in dB, or
            None to use ``DEFAULT_POWER_STANDARD_DEVIATION``.
        position_covariance: Optional covariance of ``position``.
    """

    source: RadioSource
    rssi: float
    position: np.ndarray
    rssi_standard_deviation: Optional[float] = None
    position_covariance: Optional[np.ndarray] = None

    def __post_init__(self) -> None:
        position, covariance = _validate_position(
            self.position, self.position_covariance
        )
        object.__setattr__(self, "position", position)
        object.__setattr__(self, "position_covariance", covariance)
        _validate_standard_deviation(
            "rssi_standard_deviation", self.rssi_standard_deviation
        )

    @property
    def dims(self) -> int:
        return len(self.position)


@dataclass(frozen=True)
class RangingReadingLocated:
    """Distance to the source measured at a known receiver position.

    Attributes:
        source: Radio source the reading belongs to.
        distance: Measured distance in meters.
        position: Receiver position, 2 or 3 coordinates.
        distance_standard_deviation: Standard deviation of ``distance`` in
            meters, or None to use ``DEFAULT_DISTANCE_STANDARD_DEVIATION``.
        position_covariance: Optional covariance of ``position``.
    """

    source: RadioSource
    distance: float
    position: np.ndarray
    distance_standard_deviation: Optional[float] = None
    position_covariance: Optional[np.ndarray] = None

    def __post_init__(self) -> None:
        if self.distance < 0.0:
            raise ValueError(f"distance must be non-negative, got {self.distance}")
        position, covariance = _validate_position(
            self.position, self.position_covariance
        )
        object.__setattr__(self, "position", position)
        object.__setattr__(self, "position_covariance", covariance)
        _validate_standard_deviation(
            "distance_standard_deviation", self.distance_standard_deviation
        )

    @property
    def dims(self) -> int:
        return len(self.position)


@dataclass(frozen=True)
class RangingAndRssiReadingLocated:
    """Simultaneous distance and RSSI measurement at a known position."""

    source: RadioSource
    distance: float
    rssi: float
    position: np.ndarray
    distance_standard_deviation: Optional[float] = None
    rssi_standard_deviation: Optional[float] = None
    position_covariance: Optional[np.ndarray] = None

    def __post_init__(self) -> None:
        if self.distance < 0.0:
            raise ValueError(f"distance must be non-negative, got {self.distance}")
        position, covariance = _validate_position(
            self.position, self.position_covariance
        )
        object.__setattr__(self, "position", position)
        object.__setattr__(self, "position_covariance", covariance)
        _validate_standard_deviation(
            "distance_standard_deviation", self.distance_standard_deviation
        )
        _validate_standard_deviation(
            "rssi_standard_deviation", self.rssi_standard_deviation
        )

    @property
    def dims(self) -> int:
        return len(self.position)

    def to_ranging_reading(self) -> RangingReadingLocated:
        return RangingReadingLocated(
            source=self.source,
            distance=self.distance,
            position=self.position,
            distance_standard_deviation=self.distance_standard_deviation,
            position_covariance=self.position_covariance,
        )

    def to_rssi_reading(self) -> RssiReadingLocated:
        return RssiReadingLocated(
            source=self.source,
            rssi=self.rssi,
            position=self.position,
            rssi_standard_deviation=self.rssi_standard_deviation,
            position_covariance=self.position_covariance,
        )


@dataclass(frozen=True)
class RadioSourceLocated:
    """Radio source with an estimated position.

    Attributes:
        source: Original source providing identity and frequency.
        position: Estimated position.
        position_covariance: Covariance of the estimated position, or None.
    """

    source: RadioSource
    position: np.ndarray
    position_covariance: Optional[np.ndarray] = None

    @property
    def frequency(self) -> float:
        return self.source.frequency

    @property
    def source_type(self) -> RadioSourceType:
        return self.source.source_type


@dataclass(frozen=True)
class RadioSourceWithPowerAndLocated(RadioSourceLocated):
    """Radio source with estimated position, power and path-loss exponent.

    Attributes:
        transmitted_power_dbm: Estimated equivalent transmitted power.
        transmitted_power_standard_deviation: Its standard deviation in dB,
            or None when unavailable.
        path_loss_exponent: Estimated path-loss exponent.
        path_loss_exponent_standard_deviation: Its standard deviation, or
            None when unavailable.
    """

    transmitted_power_dbm: float = 0.0
    transmitted_power_standard_deviation: Optional[float] = None
    path_loss_exponent: float = 2.0
    path_loss_exponent_standard_deviation: Optional[float] = None

    @property
    def transmitted_power(self) -> float:
        """Estimated transmitted power in mW."""
        return dbm_to_power(self.transmitted_power_dbm)


ReadingLocated = Union[
    RssiReadingLocated, RangingReadingLocated, RangingAndRssiReadingLocated
]
