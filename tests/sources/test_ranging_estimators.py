"""
Unit tests for the ranging and the ranging + RSSI radio source estimators.
"""

import numpy as np
import pytest
from numpy.testing import assert_allclose

from radiosource.exceptions import NotReadyError, RadioSourceEstimationError
from radiosource.rf.measurement_models import received_power_dbm
from radiosource.rf.types import (
    Beacon,
    RadioSourceLocated,
    RadioSourceWithPowerAndLocated,
    RangingAndRssiReadingLocated,
    RangingReadingLocated,
)
from radiosource.sources.ranging import (
    RangingRadioSourceEstimator,
    RangingRadioSourceEstimator2D,
    RangingRadioSourceEstimator3D,
    ranging_standard_deviations,
)
from radiosource.sources.ranging_and_rssi import (
    RangingAndRssiRadioSourceEstimator2D,
    RangingAndRssiRadioSourceEstimator3D,
)

BEACON = Beacon(("f7826da6-4fa2-4e98-8024-bc5b71e0893e", "1", "7"), -59.0)

POSITIONS_2D = np.array(
    [[0.0, 0.0], [10.0, 0.0], [0.0, 10.0], [10.0, 10.0], [5.0, -3.0]]
)
POSITIONS_3D = np.array(
    [[0.0, 0.0, 0.0], [10.0, 0.0, 1.0], [0.0, 10.0, 2.0], [10.0, 10.0, 5.0],
     [5.0, 2.0, 8.0]]
)


def ranging_readings(positions, source, **kwargs):
    distances = np.linalg.norm(positions - source, axis=1)
    return [RangingReadingLocated(BEACON, float(d), p, **kwargs) for d, p in zip(distances, positions)]


def ranging_and_rssi_readings(positions, source, power_dbm, path_loss=2.0):
    distances = np.linalg.norm(positions - source, axis=1)
    rssi = received_power_dbm(power_dbm, distances**2, path_loss, BEACON.frequency)
    return [
        RangingAndRssiReadingLocated(BEACON, float(d), float(r), p)
        for d, r, p in zip(distances, rssi, positions)
    ]


class TestRangingEstimator:
    @pytest.mark.parametrize("homogeneous", [True, False])
    def test_recovers_position_2d(self, homogeneous):
        source = np.array([3.0, 4.0])
        estimator = RangingRadioSourceEstimator2D(ranging_readings(POSITIONS_2D, source))
        estimator.homogeneous_linear_solver_used = homogeneous

        estimator.estimate()

        assert_allclose(estimator.estimated_position, source, atol=1e-6)
        assert estimator.estimated_position_covariance.shape == (2, 2)
        # the linear solution is not stored as initial position
        assert estimator.initial_position is None

    def test_recovers_position_3d(self):
        source = np.array([4.0, 6.0, 3.0])
        estimator = RangingRadioSourceEstimator3D(ranging_readings(POSITIONS_3D, source))
        estimator.estimate()
        assert_allclose(estimator.estimated_position, source, atol=1e-6)

    def test_initial_position_skips_linear_solver(self):
        source = np.array([3.0, 4.0])
        estimator = RangingRadioSourceEstimator2D(
            ranging_readings(POSITIONS_2D, source), initial_position=[4.0, 5.0]
        )
        estimator.estimate()
        assert_allclose(estimator.estimated_position, source, atol=1e-6)

    def test_linear_only(self):
        source = np.array([3.0, 4.0])
        estimator = RangingRadioSourceEstimator2D(ranging_readings(POSITIONS_2D, source))
        estimator.non_linear_solver_enabled = False
        estimator.estimate()

        assert_allclose(estimator.estimated_position, source, atol=1e-8)
        assert estimator.estimated_position_covariance is None
        assert estimator.estimated_covariance is None

    def test_min_readings(self):
        assert RangingRadioSourceEstimator2D().min_readings == 3
        assert RangingRadioSourceEstimator3D().min_readings == 4
        estimator = RangingRadioSourceEstimator2D(
            ranging_readings(POSITIONS_2D[:2], np.zeros(2))
        )
        assert not estimator.is_ready()
        with pytest.raises(NotReadyError):
            estimator.estimate()

    def test_degenerate_geometry(self):
        positions = np.array([[0.0, 0.0], [1.0, 0.0], [2.0, 0.0]])
        estimator = RangingRadioSourceEstimator2D(
            ranging_readings(positions, np.array([1.0, 3.0]))
        )
        with pytest.raises(RadioSourceEstimationError):
            estimator.estimate()
        assert estimator.estimated_position is None

    def test_estimated_radio_source(self):
        source = np.array([3.0, 4.0])
        estimator = RangingRadioSourceEstimator2D(ranging_readings(POSITIONS_2D, source))
        assert estimator.get_estimated_radio_source() is None

        estimator.estimate()
        located = estimator.get_estimated_radio_source()

        assert isinstance(located, RadioSourceLocated)
        assert not isinstance(located, RadioSourceWithPowerAndLocated)
        assert located.source == BEACON
        assert_allclose(located.position, source, atol=1e-6)


class TestRangingStandardDeviations:
    def test_defaults_and_position_covariances(self):
        readings = ranging_readings(
            POSITIONS_2D[:2], np.zeros(2),
            distance_standard_deviation=0.3,
            position_covariance=np.diag([0.16, 0.16]),
        )
        assert_allclose(ranging_standard_deviations(readings, False), [0.3, 0.3])
        assert_allclose(ranging_standard_deviations(readings, True), [0.5, 0.5])

    def test_missing_values(self):
        readings = ranging_readings(POSITIONS_2D[:1], np.zeros(2))
        assert_allclose(ranging_standard_deviations(readings, True), [1e-3])

    def test_uniform_position_covariances_keep_adjusted_covariance(self):
        rng = np.random.default_rng(5)
        source = np.array([3.0, 4.0])
        distances = np.linalg.norm(POSITIONS_2D - source, axis=1) + 0.05 * rng.standard_normal(5)
        readings = [
            RangingReadingLocated(
                BEACON, float(d), p,
                distance_standard_deviation=0.05,
                position_covariance=np.eye(2),
            )
            for d, p in zip(distances, POSITIONS_2D)
        ]

        covariances = []
        for use in (False, True):
            estimator = RangingRadioSourceEstimator(readings)
            estimator.use_reading_position_covariances = use
            estimator.estimate()
            covariances.append(estimator.estimated_position_covariance)

        # adjusted covariances are scale invariant for equal deviations, so
        # both fits must agree
        assert_allclose(covariances[0], covariances[1], rtol=1e-6)


class TestRangingAndRssiEstimator:
    def test_recovers_position_and_power_2d(self):
        source = np.array([3.0, 4.0])
        readings = ranging_and_rssi_readings(POSITIONS_2D, source, -12.0)

        estimator = RangingAndRssiRadioSourceEstimator2D(readings)
        estimator.estimate()

        assert_allclose(estimator.estimated_position, source, atol=1e-6)
        assert estimator.estimated_transmitted_power_dbm == pytest.approx(-12.0, abs=1e-6)
        assert estimator.estimated_path_loss_exponent == 2.0
        assert estimator.estimated_covariance.shape == (3, 3)
        assert estimator.estimated_position_covariance.shape == (2, 2)

        located = estimator.get_estimated_radio_source()
        assert isinstance(located, RadioSourceWithPowerAndLocated)
        assert located.transmitted_power_dbm == pytest.approx(-12.0, abs=1e-6)

    def test_recovers_power_and_path_loss_3d(self):
        source = np.array([4.0, 6.0, 3.0])
        readings = ranging_and_rssi_readings(POSITIONS_3D, source, 3.0, path_loss=2.4)

        estimator = RangingAndRssiRadioSourceEstimator3D(readings)
        estimator.path_loss_estimation_enabled = True
        assert estimator.min_readings == 6
        estimator.readings = readings + ranging_and_rssi_readings(
            np.array([[8.0, 1.0, 6.0]]), source, 3.0, path_loss=2.4
        )
        estimator.estimate()

        assert_allclose(estimator.estimated_position, source, atol=1e-6)
        assert estimator.estimated_transmitted_power_dbm == pytest.approx(3.0, abs=1e-6)
        assert estimator.estimated_path_loss_exponent == pytest.approx(2.4, abs=1e-6)
        assert estimator.estimated_covariance.shape == (5, 5)

    def test_min_readings(self):
        estimator = RangingAndRssiRadioSourceEstimator2D()
        assert estimator.min_readings == 4
        estimator.transmitted_power_estimation_enabled = False
        assert estimator.min_readings == 3
        estimator.path_loss_estimation_enabled = True
        assert estimator.min_readings == 4
        assert RangingAndRssiRadioSourceEstimator3D().min_readings == 5

    def test_fixed_power_requires_initial_power(self):
        source = np.array([3.0, 4.0])
        readings = ranging_and_rssi_readings(POSITIONS_2D, source, -12.0)

        estimator = RangingAndRssiRadioSourceEstimator2D(readings)
        estimator.transmitted_power_estimation_enabled = False
        assert not estimator.is_ready()

        estimator.initial_transmitted_power_dbm = -12.0
        estimator.estimate()

        assert estimator.estimated_transmitted_power_dbm == -12.0
        assert estimator.estimated_transmitted_power_variance is None
        assert_allclose(estimator.estimated_position, source, atol=1e-6)
        assert estimator.estimated_covariance.shape == (2, 2)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
