"""
Sequential robust ranging and RSSI radio source estimation.

Two robust estimations run one after the other:
    1. Ranging stage: a robust ranging estimator finds the source position
       and rejects distance outliers (multipath, NLOS).
    2. RSSI stage: a robust RSSI estimator with the position fixed at the
       ranging estimate finds the transmitted power and/or path-loss
       exponent and rejects RSSI outliers (shadowing, fading).

Each stage keeps its own robust method, threshold, confidence, iteration
budget, subset size and inliers. Readings may mix ranging, RSSI and
ranging + RSSI readings of the same source. When there are fewer ranging
readings than the ranging stage needs, the ranging stage is skipped and the
RSSI stage estimates the position as well.

Progress of the two stages is reported on a single [0, 1] scale: the
ranging stage covers [0, 0.5] and the RSSI stage [0.5, 1].
"""

import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np
from scipy.linalg import block_diag

from radiosource.rf.types import (
    RangingAndRssiReadingLocated,
    RangingReadingLocated,
    RssiReadingLocated,
)
from radiosource.robust.methods import (
    DEFAULT_CONFIDENCE,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_PROGRESS_DELTA,
)
from radiosource.robust.types import InliersData, RobustMethod
from radiosource.sources.base import (
    PowerEstimationMixin,
    RadioSourceEstimator,
    locked_setting,
)
from radiosource.sources.config import DEFAULT_PATH_LOSS_EXPONENT, EstimationConfig
from radiosource.sources.listeners import RadioSourceEstimatorListener
from radiosource.sources.ranging import DEFAULT_USE_HOMOGENEOUS_LINEAR_SOLVER
from radiosource.sources.robust import (
    DEFAULT_KEEP_COVARIANCE,
    DEFAULT_REFINE_RESULT,
    DEFAULT_ROBUST_METHOD,
    _open_unit_interval,
    _positive,
    _quality_scores,
    _unit_interval,
)
from radiosource.sources.robust_ranging import RobustRangingRadioSourceEstimator
from radiosource.sources.robust_rssi import RobustRssiRadioSourceEstimator

logger = logging.getLogger(__name__)


def split_readings(
    readings: Sequence,
) -> Tuple[List[RangingReadingLocated], np.ndarray, List[RssiReadingLocated], np.ndarray]:
    """
    Split mixed readings into the readings of each stage.

    A ranging + RSSI reading contributes to both stages.

    Returns:
        ranging_readings: Readings of the ranging stage.
        ranging_indices: Index in ``readings`` of every ranging reading.
        rssi_readings: Readings of the RSSI stage.
        rssi_indices: Index in ``readings`` of every RSSI reading.

    Raises:
        TypeError: If a reading is of none of the three located types.
    """
    ranging, ranging_indices = [], []
    rssi, rssi_indices = [], []
    for i, reading in enumerate(readings):
        if isinstance(reading, RangingAndRssiReadingLocated):
            ranging.append(reading.to_ranging_reading())
            ranging_indices.append(i)
            rssi.append(reading.to_rssi_reading())
            rssi_indices.append(i)
        elif isinstance(reading, RangingReadingLocated):
            ranging.append(reading)
            ranging_indices.append(i)
        elif isinstance(reading, RssiReadingLocated):
            rssi.append(reading)
            rssi_indices.append(i)
        else:
            raise TypeError(f"unsupported reading type {type(reading).__name__}")
    return (
        ranging,
        np.array(ranging_indices, dtype=int),
        rssi,
        np.array(rssi_indices, dtype=int),
    )


class _StageListener(RadioSourceEstimatorListener):
    """Forwards the events of one stage as events of the sequential estimator."""

    def __init__(self, owner: "SequentialRobustRangingAndRssiRadioSourceEstimator"):
        self.owner = owner
        self.offset = 0.0
        self.scale = 1.0

    def on_estimate_next_iteration(self, estimator, iteration: int) -> None:
        listener = self.owner.listener
        if listener is not None:
            listener.on_estimate_next_iteration(self.owner, iteration)

    def on_estimate_progress_change(self, estimator, progress: float) -> None:
        listener = self.owner.listener
        if listener is not None:
            listener.on_estimate_progress_change(
                self.owner, self.offset + self.scale * progress
            )


def _stage_threshold(estimator, method: RobustMethod, threshold: Optional[float]) -> None:
    # a stage threshold is the inlier threshold or the stop threshold,
    # depending on the method of the stage
    if threshold is None:
        return
    if method.uses_threshold:
        estimator.threshold = threshold
    else:
        estimator.stop_threshold = threshold


class SequentialRobustRangingAndRssiRadioSourceEstimator(
    PowerEstimationMixin, RadioSourceEstimator
):
    """
    Robust radio source estimator running a ranging stage, then an RSSI stage.

    The position is always estimated. Transmitted power estimation is
    enabled by default and path-loss estimation disabled; with both disabled
    only the ranging stage runs.

    Args:
        readings: Ranging, RSSI and/or ranging + RSSI readings of a single
            source.
        initial_position: Initial source position, used to refine ranging
            subsets and, without a ranging stage, to start the RSSI fit.
        initial_transmitted_power_dbm: Initial (or fixed) power in dBm.
        initial_path_loss_exponent: Initial (or fixed) path-loss exponent.
        listener: Optional listener of estimation events.
        dims: Number of position coordinates (2 or 3).
        ranging_method: Robust method of the ranging stage.
        rssi_method: Robust method of the RSSI stage.
        quality_scores: Quality of every reading (higher is better), split
            between the stages; required when a stage uses PROSAC or PROMedS.
        ranging_threshold: Inlier threshold (RANSAC, MSAC, PROSAC) or stop
            threshold (LMedS, PROMedS) of the ranging stage, in meters.
            None keeps the method default.
        rssi_threshold: Same as ``ranging_threshold`` for the RSSI stage, in dB.
        ranging_confidence: Confidence of the ranging stage.
        rssi_confidence: Confidence of the RSSI stage.
        ranging_max_iterations: Maximum subsets drawn by the ranging stage.
        rssi_max_iterations: Maximum subsets drawn by the RSSI stage.
        ranging_preliminary_subset_size: Subset size of the ranging stage.
        rssi_preliminary_subset_size: Subset size of the RSSI stage.
        progress_delta: Minimum change of the overall progress between
            notifications.
        refine_result: Whether each stage refines its consensus.
        keep_covariance: Whether covariances of refined fits are kept.
        seed: Seed of the random generators drawing subsets.

    Example:
        >>> estimator = SequentialRobustRangingAndRssiRadioSourceEstimator2D(
        ...     readings, ranging_method=RobustMethod.RANSAC,
        ...     rssi_method=RobustMethod.LMEDS, ranging_threshold=0.5, seed=0)
        >>> estimator.estimate()
        >>> estimator.ranging_inliers_data.inliers
    """

    ranging_method = locked_setting()
    rssi_method = locked_setting()
    quality_scores = locked_setting(_quality_scores)
    ranging_threshold = locked_setting(_positive)
    rssi_threshold = locked_setting(_positive)
    ranging_confidence = locked_setting(_open_unit_interval)
    rssi_confidence = locked_setting(_open_unit_interval)
    ranging_max_iterations = locked_setting(_positive)
    rssi_max_iterations = locked_setting(_positive)
    ranging_preliminary_subset_size = locked_setting(_positive)
    rssi_preliminary_subset_size = locked_setting(_positive)
    progress_delta = locked_setting(_unit_interval)
    refine_result = locked_setting()
    keep_covariance = locked_setting()
    homogeneous_ranging_linear_solver_used = locked_setting()
    seed = locked_setting()

    def __init__(
        self,
        readings: Optional[Sequence] = None,
        initial_position: Optional[np.ndarray] = None,
        initial_transmitted_power_dbm: Optional[float] = None,
        initial_path_loss_exponent: float = DEFAULT_PATH_LOSS_EXPONENT,
        listener: Optional[RadioSourceEstimatorListener] = None,
        dims: int = 2,
        ranging_method: RobustMethod = DEFAULT_ROBUST_METHOD,
        rssi_method: RobustMethod = DEFAULT_ROBUST_METHOD,
        quality_scores: Optional[np.ndarray] = None,
        ranging_threshold: Optional[float] = None,
        rssi_threshold: Optional[float] = None,
        ranging_confidence: float = DEFAULT_CONFIDENCE,
        rssi_confidence: float = DEFAULT_CONFIDENCE,
        ranging_max_iterations: int = DEFAULT_MAX_ITERATIONS,
        rssi_max_iterations: int = DEFAULT_MAX_ITERATIONS,
        ranging_preliminary_subset_size: Optional[int] = None,
        rssi_preliminary_subset_size: Optional[int] = None,
        progress_delta: float = DEFAULT_PROGRESS_DELTA,
        refine_result: bool = DEFAULT_REFINE_RESULT,
        keep_covariance: bool = DEFAULT_KEEP_COVARIANCE,
        seed: Optional[int] = None,
    ):
        config = EstimationConfig(
            initial_position=initial_position,
            initial_transmitted_power_dbm=initial_transmitted_power_dbm,
            initial_path_loss_exponent=initial_path_loss_exponent,
        )
        super().__init__(readings, listener, dims, config)
        self._reset_power_results()

        self.ranging_method = ranging_method
        self.rssi_method = rssi_method
        self.quality_scores = quality_scores
        self.ranging_threshold = ranging_threshold
        self.rssi_threshold = rssi_threshold
        self.ranging_confidence = ranging_confidence
        self.rssi_confidence = rssi_confidence
        self.ranging_max_iterations = ranging_max_iterations
        self.rssi_max_iterations = rssi_max_iterations
        self.ranging_preliminary_subset_size = ranging_preliminary_subset_size
        self.rssi_preliminary_subset_size = rssi_preliminary_subset_size
        self.progress_delta = progress_delta
        self.refine_result = refine_result
        self.keep_covariance = keep_covariance
        self.homogeneous_ranging_linear_solver_used = DEFAULT_USE_HOMOGENEOUS_LINEAR_SOLVER
        self.seed = seed

        self._ranging_listener = _StageListener(self)
        self._rssi_listener = _StageListener(self)
        self._ranging_estimator: Optional[RobustRangingRadioSourceEstimator] = None
        self._rssi_estimator: Optional[RobustRssiRadioSourceEstimator] = None
        self._rssi_position_enabled = False

        self._ranging_inliers_data: Optional[InliersData] = None
        self._rssi_inliers_data: Optional[InliersData] = None

    @property
    def min_readings(self) -> int:
        """Readings needed by the ranging stage."""
        return self.dims + 1

    @property
    def rssi_position_enabled(self) -> bool:
        """Whether the last configured run estimates the position from RSSI."""
        return self._rssi_position_enabled

    @property
    def ranging_inliers_data(self) -> Optional[InliersData]:
        """Inliers among the ranging readings, None if the stage did not run."""
        return self._ranging_inliers_data

    @property
    def rssi_inliers_data(self) -> Optional[InliersData]:
        """Inliers among the RSSI readings, None if the stage did not run."""
        return self._rssi_inliers_data

    @property
    def inliers_data(self) -> Optional[InliersData]:
        """Inliers of the last stage that ran."""
        if self._rssi_inliers_data is not None:
            return self._rssi_inliers_data
        return self._ranging_inliers_data

    # -- stages -------------------------------------------------------------

    def _runs_rssi_stage(self) -> bool:
        cfg = self._config
        return (
            self._rssi_position_enabled
            or cfg.transmitted_power_estimation_enabled
            or cfg.path_loss_estimation_enabled
        )

    def _stage_quality_scores(self, indices: np.ndarray) -> Optional[np.ndarray]:
        scores = self.quality_scores
        if scores is None or len(scores) != len(self._readings):
            return None
        return scores[indices]

    def _configure_stages(self) -> None:
        """Build the stage estimators for the current readings and settings."""
        cfg = self._config
        ranging_readings, ranging_indices, rssi_readings, rssi_indices = split_readings(
            self._readings
        )
        self._rssi_position_enabled = len(ranging_readings) < self.min_readings
        runs_rssi = self._runs_rssi_stage()
        both = not self._rssi_position_enabled and runs_rssi
        stage_delta = min(1.0, 2.0 * self.progress_delta) if both else self.progress_delta

        self._ranging_estimator = None
        if not self._rssi_position_enabled:
            ranging = RobustRangingRadioSourceEstimator(
                ranging_readings,
                initial_position=cfg.initial_position,
                listener=self._ranging_listener,
                dims=self.dims,
                method=self.ranging_method,
                quality_scores=self._stage_quality_scores(ranging_indices),
                confidence=self.ranging_confidence,
                max_iterations=self.ranging_max_iterations,
                progress_delta=stage_delta,
                refine_result=self.refine_result,
                keep_covariance=self.keep_covariance,
                preliminary_subset_size=self.ranging_preliminary_subset_size,
                seed=self.seed,
            )
            ranging.use_reading_position_covariances = cfg.use_reading_position_covariances
            ranging.homogeneous_linear_solver_used = self.homogeneous_ranging_linear_solver_used
            _stage_threshold(ranging, self.ranging_method, self.ranging_threshold)
            self._ranging_listener.scale = 0.5 if both else 1.0
            self._ranging_estimator = ranging

        self._rssi_estimator = None
        if runs_rssi:
            rssi = RobustRssiRadioSourceEstimator(
                rssi_readings,
                initial_position=cfg.initial_position,
                initial_transmitted_power_dbm=cfg.initial_transmitted_power_dbm,
                initial_path_loss_exponent=cfg.initial_path_loss_exponent,
                listener=self._rssi_listener,
                dims=self.dims,
                method=self.rssi_method,
                quality_scores=self._stage_quality_scores(rssi_indices),
                confidence=self.rssi_confidence,
                max_iterations=self.rssi_max_iterations,
                progress_delta=stage_delta,
                refine_result=self.refine_result,
                keep_covariance=self.keep_covariance,
                preliminary_subset_size=self.rssi_preliminary_subset_size,
                seed=self.seed,
            )
            rssi.position_estimation_enabled = self._rssi_position_enabled
            rssi.transmitted_power_estimation_enabled = cfg.transmitted_power_estimation_enabled
            rssi.path_loss_estimation_enabled = cfg.path_loss_estimation_enabled
            if not self._rssi_position_enabled:
                # replaced by the ranging estimate before the stage runs
                rssi.initial_position = np.zeros(self.dims)
            _stage_threshold(rssi, self.rssi_method, self.rssi_threshold)
            self._rssi_listener.offset = 0.5 if both else 0.0
            self._rssi_listener.scale = 0.5 if both else 1.0
            self._rssi_estimator = rssi

    def is_ready(self) -> bool:
        cfg = self._config
        if not self._readings:
            return False
        if not (
            cfg.transmitted_power_estimation_enabled
            or cfg.initial_transmitted_power_dbm is not None
        ):
            return False

        self._configure_stages()
        if self._ranging_estimator is not None and not self._ranging_estimator.is_ready():
            return False
        if self._rssi_estimator is not None and not self._rssi_estimator.is_ready():
            return False
        return True

    def _estimate(self) -> None:
        cfg = self._config

        ranging_inliers = None
        position = None
        position_cov = None
        if self._ranging_estimator is not None:
            ranging = self._ranging_estimator
            ranging.estimate()
            position = ranging.estimated_position
            position_cov = ranging.estimated_position_covariance
            ranging_inliers = ranging.inliers_data
            logger.debug(
                "ranging stage: %d/%d inliers",
                ranging_inliers.num_inliers, len(ranging.readings),
            )

        covariance = position_cov
        power = cfg.initial_transmitted_power_dbm
        power_var = None
        path_loss = cfg.initial_path_loss_exponent
        path_loss_var = None
        rssi_inliers = None

        if self._rssi_estimator is not None:
            rssi = self._rssi_estimator
            if not self._rssi_position_enabled:
                rssi.initial_position = position
            rssi.estimate()
            rssi_inliers = rssi.inliers_data
            logger.debug(
                "RSSI stage: %d/%d inliers", rssi_inliers.num_inliers, len(rssi.readings)
            )

            if self._rssi_position_enabled:
                position = rssi.estimated_position
                position_cov = rssi.estimated_position_covariance
                covariance = rssi.estimated_covariance
            else:
                rssi_cov = rssi.estimated_covariance
                if position_cov is not None and rssi_cov is not None:
                    covariance = block_diag(position_cov, rssi_cov)
                else:
                    covariance = None

            if cfg.transmitted_power_estimation_enabled:
                power = rssi.estimated_transmitted_power_dbm
                power_var = rssi.estimated_transmitted_power_variance
            if cfg.path_loss_estimation_enabled:
                path_loss = rssi.estimated_path_loss_exponent
                path_loss_var = rssi.estimated_path_loss_exponent_variance

        self._ranging_inliers_data = ranging_inliers
        self._rssi_inliers_data = rssi_inliers
        self._estimated_position = position
        self._estimated_position_covariance = position_cov
        self._estimated_covariance = covariance
        self._estimated_transmitted_power_dbm = power
        self._estimated_transmitted_power_variance = power_var
        self._estimated_path_loss_exponent = path_loss
        self._estimated_path_loss_exponent_variance = path_loss_var


class SequentialRobustRangingAndRssiRadioSourceEstimator2D(
    SequentialRobustRangingAndRssiRadioSourceEstimator
):
    """Sequential robust ranging and RSSI radio source estimator on the plane."""

    def __init__(self, readings=None, initial_position=None,
                 initial_transmitted_power_dbm=None,
                 initial_path_loss_exponent=DEFAULT_PATH_LOSS_EXPONENT,
                 listener=None, **settings):
        super().__init__(readings, initial_position, initial_transmitted_power_dbm,
                         initial_path_loss_exponent, listener, dims=2, **settings)


class SequentialRobustRangingAndRssiRadioSourceEstimator3D(
    SequentialRobustRangingAndRssiRadioSourceEstimator
):
    """Sequential robust ranging and RSSI radio source estimator in space."""

    def __init__(self, readings=None, initial_position=None,
                 initial_transmitted_power_dbm=None,
                 initial_path_loss_exponent=DEFAULT_PATH_LOSS_EXPONENT,
                 listener=None, **settings):
        super().__init__(readings, initial_position, initial_transmitted_power_dbm,
                         initial_path_loss_exponent, listener, dims=3, **settings)
