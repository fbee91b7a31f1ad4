"""
Unit tests for the robust radio source estimators and their factories.

Readings are noise-free except for a planted set of gross outliers, so a
robust estimation must flag exactly the planted outliers and recover the
source exactly after refinement.
"""

import warnings

import numpy as np
import pytest
from numpy.testing import assert_allclose, assert_array_equal

from radiosource.exceptions import LockedError, RadioSourceEstimationError
from radiosource.rf.measurement_models import received_power_dbm
from radiosource.rf.types import (
    RadioSourceLocated,
    RadioSourceWithPowerAndLocated,
    RangingAndRssiReadingLocated,
    RangingReadingLocated,
    RssiReadingLocated,
    WifiAccessPoint,
)
from radiosource.robust.types import RobustMethod
from radiosource.sources.factory import (
    RobustEstimatorOptions,
    create_robust_ranging_and_rssi_estimator,
    create_robust_ranging_estimator,
    create_robust_rssi_estimator,
)
from radiosource.sources.listeners import RadioSourceEstimatorListener
from radiosource.sources.robust import DEFAULT_ROBUST_METHOD
from radiosource.sources.robust_ranging import (
    RobustRangingRadioSourceEstimator2D,
    RobustRangingRadioSourceEstimator3D,
)
from radiosource.sources.robust_ranging_and_rssi import (
    RobustRangingAndRssiRadioSourceEstimator2D,
)
from radiosource.sources.robust_rssi import (
    RobustRssiRadioSourceEstimator,
    RobustRssiRadioSourceEstimator2D,
    RobustRssiRadioSourceEstimator3D,
)

AP = WifiAccessPoint("00:11:22:33:44:55", 2.4e9)
SOURCE = np.array([1.0, -2.0])
POWER_DBM = -5.0
POSITIONS = np.array([(x, y) for x in (-8.0, -4.0, 0.0, 4.0, 8.0) for y in (-9.0, -3.0, 3.0, 9.0)])
OUTLIERS = np.zeros(len(POSITIONS), dtype=bool)
OUTLIERS[[2, 7, 13, 18]] = True
# progressive methods are told outliers are less reliable
QUALITY_SCORES = np.where(OUTLIERS, 0.2, 1.0)


def rssi_values():
    sqr_distances = np.sum((POSITIONS - SOURCE) ** 2, axis=1)
    rssi = received_power_dbm(POWER_DBM, sqr_distances, 2.0, AP.frequency)
    return rssi + 20.0 * OUTLIERS


def distances():
    return np.linalg.norm(POSITIONS - SOURCE, axis=1) + 5.0 * OUTLIERS


def rssi_readings():
    return [RssiReadingLocated(AP, float(r), p) for r, p in zip(rssi_values(), POSITIONS)]


def ranging_readings():
    return [RangingReadingLocated(AP, float(d), p) for d, p in zip(distances(), POSITIONS)]


def ranging_and_rssi_readings():
    return [
        RangingAndRssiReadingLocated(AP, float(d), float(r), p)
        for d, r, p in zip(distances(), rssi_values(), POSITIONS)
    ]


class RecordingListener(RadioSourceEstimatorListener):
    def __init__(self):
        self.events = []
        self.iterations = []
        self.progress = []
        self.lock_errors = 0

    def on_estimate_start(self, estimator):
        self.events.append("start")
        try:
            estimator.threshold = 2.0
        except LockedError:
            self.lock_errors += 1

    def on_estimate_end(self, estimator):
        self.events.append("end")

    def on_estimate_next_iteration(self, estimator, iteration):
        self.iterations.append(iteration)

    def on_estimate_progress_change(self, estimator, progress):
        self.progress.append(progress)


class TestRobustRssiEstimator:
    @pytest.mark.parametrize(
        "method,settings",
        [
            (RobustMethod.RANSAC, dict(threshold=1.0)),
            (RobustMethod.MSAC, dict(threshold=1.0)),
            (RobustMethod.LMEDS, dict()),
            (RobustMethod.PROSAC, dict(threshold=1.0, quality_scores=QUALITY_SCORES)),
            (RobustMethod.PROMEDS, dict(quality_scores=QUALITY_SCORES)),
        ],
    )
    def test_excludes_planted_outliers(self, method, settings):
        estimator = RobustRssiRadioSourceEstimator2D(
            rssi_readings(), method=method, seed=0, **settings
        )
        assert estimator.is_ready()

        estimator.estimate()

        assert_array_equal(estimator.inliers_data.inliers, ~OUTLIERS)
        assert_allclose(estimator.estimated_position, SOURCE, atol=1e-5)
        assert estimator.estimated_transmitted_power_dbm == pytest.approx(POWER_DBM, abs=1e-5)
        assert estimator.estimated_path_loss_exponent == 2.0
        assert estimator.estimated_covariance.shape == (3, 3)

        located = estimator.get_estimated_radio_source()
        assert isinstance(located, RadioSourceWithPowerAndLocated)
        assert located.source == AP

    @pytest.mark.parametrize("seed", range(15))
    def test_lmeds_excludes_planted_outliers_for_any_seed(self, seed):
        estimator = RobustRssiRadioSourceEstimator2D(
            rssi_readings(), method=RobustMethod.LMEDS, seed=seed
        )
        estimator.estimate()

        assert_array_equal(estimator.inliers_data.inliers, ~OUTLIERS)
        assert_allclose(estimator.estimated_position, SOURCE, atol=1e-5)

    def test_refinement_failure_keeps_consensus(self, monkeypatch):
        estimator = RobustRssiRadioSourceEstimator2D(
            rssi_readings(), method=RobustMethod.RANSAC, threshold=1.0, seed=0
        )
        inner = estimator._inner_estimator
        fit = inner.estimate

        def fit_subsets_only():
            if len(inner.readings) > estimator.subset_size:
                raise RadioSourceEstimationError("refinement diverged")
            fit()

        monkeypatch.setattr(inner, "estimate", fit_subsets_only)
        estimator.estimate()

        assert_array_equal(estimator.inliers_data.inliers, ~OUTLIERS)
        assert_allclose(estimator.estimated_position, SOURCE, atol=1e-3)
        assert estimator.estimated_transmitted_power_dbm == pytest.approx(POWER_DBM, abs=1e-3)
        assert estimator.estimated_covariance is None
        assert estimator.estimated_position_covariance is None
        assert estimator.estimated_transmitted_power_variance is None
        assert not estimator.is_locked

    def test_three_parameters_warn_once(self):
        estimator = RobustRssiRadioSourceEstimator2D(
            rssi_readings(),
            initial_position=SOURCE + 0.5,
            initial_transmitted_power_dbm=POWER_DBM,
            method=RobustMethod.RANSAC,
            threshold=1.0,
            seed=0,
        )
        estimator.path_loss_estimation_enabled = True

        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            estimator.estimate()

        ill_conditioned = [w for w in caught if "ill-conditioned" in str(w.message)]
        assert len(ill_conditioned) == 1
        assert ill_conditioned[0].category is RuntimeWarning
        assert ill_conditioned[0].filename == __file__

    def test_without_refinement(self):
        estimator = RobustRssiRadioSourceEstimator2D(
            rssi_readings(), method=RobustMethod.RANSAC, threshold=1.0,
            refine_result=False, seed=0,
        )
        estimator.estimate()

        assert estimator.estimated_covariance is None
        assert estimator.estimated_position_covariance is None
        assert estimator.estimated_transmitted_power_variance is None
        assert_allclose(estimator.estimated_position, SOURCE, atol=1e-3)

    def test_refined_without_covariance(self):
        estimator = RobustRssiRadioSourceEstimator2D(
            rssi_readings(), method=RobustMethod.RANSAC, threshold=1.0,
            keep_covariance=False, seed=0,
        )
        estimator.estimate()

        assert estimator.estimated_covariance is None
        assert_allclose(estimator.estimated_position, SOURCE, atol=1e-5)

    def test_fixed_position(self):
        estimator = RobustRssiRadioSourceEstimator2D(
            rssi_readings(), initial_position=SOURCE,
            method=RobustMethod.RANSAC, threshold=1.0, seed=0,
        )
        estimator.position_estimation_enabled = False
        assert estimator.min_readings == 2
        assert estimator.subset_size == 2

        estimator.estimate()

        assert_array_equal(estimator.estimated_position, SOURCE)
        assert estimator.estimated_position_covariance is None
        assert_array_equal(estimator.inliers_data.inliers, ~OUTLIERS)

    def test_min_readings_and_subset_size(self):
        estimator = RobustRssiRadioSourceEstimator3D()
        assert estimator.min_readings == 5
        assert estimator.subset_size == 5
        estimator.preliminary_subset_size = 8
        assert estimator.subset_size == 8
        estimator.path_loss_estimation_enabled = True
        assert estimator.min_readings == 6

    def test_readiness(self):
        estimator = RobustRssiRadioSourceEstimator2D(rssi_readings())
        assert estimator.method is DEFAULT_ROBUST_METHOD
        # PROMedS needs one quality score per reading
        assert not estimator.is_ready()
        estimator.quality_scores = QUALITY_SCORES[:5]
        assert not estimator.is_ready()
        estimator.quality_scores = QUALITY_SCORES
        assert estimator.is_ready()

        estimator.transmitted_power_estimation_enabled = False
        assert not estimator.is_ready()
        estimator.initial_transmitted_power_dbm = POWER_DBM
        assert estimator.is_ready()

    def test_invalid_settings(self):
        estimator = RobustRssiRadioSourceEstimator2D()
        with pytest.raises(ValueError):
            estimator.confidence = 1.5
        with pytest.raises(ValueError):
            estimator.threshold = -1.0
        with pytest.raises(ValueError):
            estimator.progress_delta = 2.0
        with pytest.raises(ValueError):
            RobustRssiRadioSourceEstimator(max_iterations=0)

    def test_listener_and_lock(self):
        listener = RecordingListener()
        estimator = RobustRssiRadioSourceEstimator2D(
            rssi_readings(), listener=listener,
            method=RobustMethod.RANSAC, threshold=1.0, progress_delta=0.1, seed=0,
        )
        estimator.estimate()

        assert listener.events == ["start", "end"]
        assert listener.lock_errors == 1
        assert estimator.threshold == 1.0
        assert listener.iterations == list(range(1, len(listener.iterations) + 1))
        assert listener.progress and all(0.0 < p <= 1.0 for p in listener.progress)
        assert not estimator.is_locked


class TestRobustRangingEstimator:
    @pytest.mark.parametrize("method", [RobustMethod.RANSAC, RobustMethod.LMEDS])
    def test_excludes_planted_outliers(self, method):
        estimator = RobustRangingRadioSourceEstimator2D(ranging_readings(), method=method, seed=1)
        estimator.estimate()

        assert_array_equal(estimator.inliers_data.inliers, ~OUTLIERS)
        assert_allclose(estimator.estimated_position, SOURCE, atol=1e-6)
        assert estimator.estimated_position_covariance.shape == (2, 2)

        located = estimator.get_estimated_radio_source()
        assert isinstance(located, RadioSourceLocated)
        assert not isinstance(located, RadioSourceWithPowerAndLocated)

    def test_inhomogeneous_solver(self):
        estimator = RobustRangingRadioSourceEstimator2D(
            ranging_readings(), method=RobustMethod.RANSAC, seed=1
        )
        estimator.homogeneous_linear_solver_used = False
        estimator.estimate()
        assert_allclose(estimator.estimated_position, SOURCE, atol=1e-6)

    def test_min_readings(self):
        assert RobustRangingRadioSourceEstimator2D().min_readings == 3
        assert RobustRangingRadioSourceEstimator3D().min_readings == 4

    def test_no_subset_solvable(self):
        positions = np.array([[float(x), 0.0] for x in range(6)])
        readings = [
            RangingReadingLocated(AP, float(abs(x - 2.0)) + 1.0, p)
            for x, p in zip(positions[:, 0], positions)
        ]
        estimator = RobustRangingRadioSourceEstimator2D(
            readings, method=RobustMethod.RANSAC, max_iterations=10, seed=0
        )
        with pytest.raises(RadioSourceEstimationError):
            estimator.estimate()
        assert not estimator.is_locked
        assert estimator.estimated_position is None


class TestRobustRangingAndRssiEstimator:
    def test_excludes_planted_outliers(self):
        estimator = RobustRangingAndRssiRadioSourceEstimator2D(
            ranging_and_rssi_readings(), method=RobustMethod.RANSAC, threshold=1.0, seed=2
        )
        assert estimator.min_readings == 4
        estimator.estimate()

        assert_array_equal(estimator.inliers_data.inliers, ~OUTLIERS)
        assert_allclose(estimator.estimated_position, SOURCE, atol=1e-6)
        assert estimator.estimated_transmitted_power_dbm == pytest.approx(POWER_DBM, abs=1e-6)
        assert estimator.estimated_covariance.shape == (3, 3)

    def test_fixed_power_requires_initial_power(self):
        estimator = RobustRangingAndRssiRadioSourceEstimator2D(
            ranging_and_rssi_readings(), method=RobustMethod.RANSAC
        )
        estimator.transmitted_power_estimation_enabled = False
        assert not estimator.is_ready()
        estimator.initial_transmitted_power_dbm = POWER_DBM
        assert estimator.is_ready()


class TestFactories:
    def test_default_options(self):
        options = RobustEstimatorOptions()
        assert options.method is DEFAULT_ROBUST_METHOD is RobustMethod.PROMEDS

        estimator = create_robust_rssi_estimator()
        assert estimator.method is RobustMethod.PROMEDS
        assert estimator.dims == 2
        assert estimator.readings is None

    def test_rssi_factory(self):
        options = RobustEstimatorOptions(
            method=RobustMethod.PROSAC,
            readings=rssi_readings(),
            quality_scores=QUALITY_SCORES,
            threshold=1.0,
            seed=0,
        )
        estimator = create_robust_rssi_estimator(options)
        assert isinstance(estimator, RobustRssiRadioSourceEstimator)
        assert estimator.threshold == 1.0

        estimator.estimate()
        assert_array_equal(estimator.inliers_data.inliers, ~OUTLIERS)

    def test_ranging_factory(self):
        options = RobustEstimatorOptions(
            method=RobustMethod.MSAC, readings=ranging_readings(), seed=0
        )
        estimator = create_robust_ranging_estimator(options)
        assert estimator.method is RobustMethod.MSAC
        estimator.estimate()
        assert_allclose(estimator.estimated_position, SOURCE, atol=1e-6)

    def test_ranging_and_rssi_factory(self):
        options = RobustEstimatorOptions(
            method=RobustMethod.LMEDS,
            dims=3,
            initial_transmitted_power_dbm=-3.0,
            initial_path_loss_exponent=2.2,
        )
        estimator = create_robust_ranging_and_rssi_estimator(options)
        assert estimator.dims == 3
        assert estimator.min_readings == 5
        assert estimator.initial_transmitted_power_dbm == -3.0
        assert estimator.initial_path_loss_exponent == 2.2


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
