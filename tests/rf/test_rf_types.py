"""
Unit tests for radio sources, located readings and position accuracy.
"""

import warnings

import numpy as np
import pytest
from numpy.testing import assert_allclose

from radiosource.rf.accuracy import Accuracy, position_standard_deviation
from radiosource.rf.types import (
    DEFAULT_BEACON_FREQUENCY,
    Beacon,
    RadioSourceLocated,
    RadioSourceType,
    RadioSourceWithPowerAndLocated,
    RangingAndRssiReadingLocated,
    RangingReadingLocated,
    RssiReadingLocated,
    WifiAccessPoint,
)

AP = WifiAccessPoint("aa:bb:cc:dd:ee:ff", 2.4e9, ssid="lab")


class TestRadioSources:
    def test_wifi_access_point(self):
        assert AP.source_type is RadioSourceType.WIFI_ACCESS_POINT
        assert AP.frequency == 2.4e9

    def test_wifi_access_point_validation(self):
        with pytest.raises(ValueError):
            WifiAccessPoint("", 2.4e9)
        with pytest.raises(ValueError):
            WifiAccessPoint("aa:bb:cc:dd:ee:ff", -1.0)

    def test_beacon_defaults(self):
        beacon = Beacon(["uuid", "1", "2"], transmitted_power_dbm=-59.0)
        assert beacon.identifiers == ("uuid", "1", "2")
        assert beacon.frequency == DEFAULT_BEACON_FREQUENCY
        assert beacon.manufacturer == -1
        assert beacon.service_uuid == -1
        assert beacon.source_type is RadioSourceType.BEACON
        assert beacon.transmitted_power == pytest.approx(10 ** (-5.9))

    def test_beacon_requires_identifier(self):
        with pytest.raises(ValueError):
            Beacon([], transmitted_power_dbm=0.0)

    def test_sources_are_hashable(self):
        assert len({AP, WifiAccessPoint("aa:bb:cc:dd:ee:ff", 2.4e9, ssid="lab")}) == 1


class TestReadings:
    def test_rssi_reading_converts_position(self):
        reading = RssiReadingLocated(AP, -50.0, [1, 2])
        assert reading.position.dtype == float
        assert reading.dims == 2
        assert reading.rssi_standard_deviation is None

    def test_invalid_positions(self):
        with pytest.raises(ValueError):
            RssiReadingLocated(AP, -50.0, [1.0])
        with pytest.raises(ValueError):
            RssiReadingLocated(AP, -50.0, np.zeros((2, 2)))

    def test_invalid_position_covariance(self):
        with pytest.raises(ValueError):
            RssiReadingLocated(AP, -50.0, [0.0, 0.0], position_covariance=np.eye(3))
        with pytest.raises(ValueError):
            RssiReadingLocated(
                AP, -50.0, [0.0, 0.0], position_covariance=[[1.0, 0.5], [0.0, 1.0]]
            )

    def test_invalid_standard_deviations(self):
        with pytest.raises(ValueError):
            RssiReadingLocated(AP, -50.0, [0.0, 0.0], rssi_standard_deviation=0.0)
        with pytest.raises(ValueError):
            RangingReadingLocated(AP, 3.0, [0.0, 0.0], distance_standard_deviation=-1.0)

    def test_negative_distance(self):
        with pytest.raises(ValueError):
            RangingReadingLocated(AP, -0.1, [0.0, 0.0, 0.0])

    def test_ranging_and_rssi_split(self):
        reading = RangingAndRssiReadingLocated(
            AP, 5.0, -60.0, [1.0, 2.0, 3.0],
            distance_standard_deviation=0.5,
            rssi_standard_deviation=2.0,
            position_covariance=0.1 * np.eye(3),
        )
        ranging = reading.to_ranging_reading()
        rssi = reading.to_rssi_reading()

        assert ranging.distance == 5.0
        assert ranging.distance_standard_deviation == 0.5
        assert rssi.rssi == -60.0
        assert rssi.rssi_standard_deviation == 2.0
        assert ranging.dims == rssi.dims == 3
        assert_allclose(ranging.position, reading.position)
        assert_allclose(rssi.position_covariance, 0.1 * np.eye(3))


class TestLocatedSources:
    def test_radio_source_located(self):
        located = RadioSourceLocated(AP, np.array([1.0, 2.0]))
        assert located.frequency == AP.frequency
        assert located.source_type is RadioSourceType.WIFI_ACCESS_POINT
        assert located.position_covariance is None

    def test_radio_source_with_power(self):
        located = RadioSourceWithPowerAndLocated(
            AP, np.zeros(2), transmitted_power_dbm=-10.0, path_loss_exponent=2.5
        )
        assert located.transmitted_power == pytest.approx(0.1)
        assert located.path_loss_exponent == 2.5
        assert located.transmitted_power_standard_deviation is None


class TestAccuracy:
    def test_one_sigma(self):
        accuracy = Accuracy(np.diag([4.0, 4.0]))
        assert accuracy.number_of_standard_deviations == pytest.approx(1.0)
        assert accuracy.average_accuracy == pytest.approx(2.0)

    def test_principal_axes(self):
        accuracy = Accuracy(np.diag([1.0, 9.0, 4.0]), confidence=0.95)
        k = accuracy.number_of_standard_deviations
        assert k == pytest.approx(1.959964, abs=1e-6)
        assert_allclose(accuracy.standard_deviations, [1.0, 2.0, 3.0])
        assert accuracy.smallest_accuracy == pytest.approx(k)
        assert accuracy.largest_accuracy == pytest.approx(3.0 * k)

    def test_invalid_inputs(self):
        with pytest.raises(ValueError):
            Accuracy(np.eye(4))
        with pytest.raises(ValueError):
            Accuracy(np.eye(2), confidence=1.0)

    def test_position_standard_deviation(self):
        assert position_standard_deviation(None) == 0.0
        assert position_standard_deviation(np.diag([0.25, 0.25])) == pytest.approx(0.5)

    def test_non_psd_covariance_is_ignored(self):
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            sigma = position_standard_deviation(np.diag([-1.0, 1.0]))
        assert sigma == 0.0
        assert any(issubclass(w.category, RuntimeWarning) for w in caught)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
