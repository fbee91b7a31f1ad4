"""
Factories of robust radio source estimators.

Each family (RSSI, ranging, ranging and RSSI) has a single factory taking a
``RobustEstimatorOptions``; the robust method is one of its fields.

Example:
    >>> options = RobustEstimatorOptions(
    ...     method=RobustMethod.RANSAC, readings=readings, threshold=1.0, seed=0)
    >>> estimator = create_robust_rssi_estimator(options)
    >>> estimator.estimate()
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence

import numpy as np

from radiosource.robust.methods import (
    DEFAULT_CONFIDENCE,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_PROGRESS_DELTA,
    DEFAULT_STOP_THRESHOLD,
    DEFAULT_THRESHOLD,
)
from radiosource.robust.types import RobustMethod
from radiosource.sources.config import DEFAULT_PATH_LOSS_EXPONENT
from radiosource.sources.listeners import RadioSourceEstimatorListener
from radiosource.sources.robust import (
    DEFAULT_KEEP_COVARIANCE,
    DEFAULT_REFINE_RESULT,
    DEFAULT_ROBUST_METHOD,
)
from radiosource.sources.robust_ranging import RobustRangingRadioSourceEstimator
from radiosource.sources.robust_ranging_and_rssi import (
    RobustRangingAndRssiRadioSourceEstimator,
)
from radiosource.sources.robust_rssi import RobustRssiRadioSourceEstimator


@dataclass
class RobustEstimatorOptions:
    """Everything needed to build a robust radio source estimator.

    Attributes:
        method: Robust method, PROMedS by default.
        readings: Readings of a single source.
        initial_position: Initial source position.
        initial_transmitted_power_dbm: Initial (or fixed) power in dBm.
            Ignored by ranging estimators.
        initial_path_loss_exponent: Initial (or fixed) path-loss exponent.
            Ignored by ranging estimators.
        listener: Listener of estimation events.
        quality_scores: Quality of every reading, for PROSAC and PROMedS.
        confidence: Probability of drawing an outlier-free subset.
        max_iterations: Maximum number of subsets drawn.
        progress_delta: Minimum progress change between notifications.
        refine_result: Whether the consensus is refined with all inliers.
        keep_covariance: Whether the covariance of the refined fit is kept.
        threshold: Inlier threshold of RANSAC, MSAC and PROSAC.
        stop_threshold: Stop threshold of LMedS and PROMedS.
        preliminary_subset_size: Subset size, None for the minimum.
        dims: Number of position coordinates (2 or 3).
        seed: Seed of the random generator.
    """

    method: RobustMethod = DEFAULT_ROBUST_METHOD
    readings: Optional[Sequence] = None
    initial_position: Optional[np.ndarray] = None
    initial_transmitted_power_dbm: Optional[float] = None
    initial_path_loss_exponent: float = DEFAULT_PATH_LOSS_EXPONENT
    listener: Optional[RadioSourceEstimatorListener] = None
    quality_scores: Optional[np.ndarray] = None
    confidence: float = DEFAULT_CONFIDENCE
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    progress_delta: float = DEFAULT_PROGRESS_DELTA
    refine_result: bool = DEFAULT_REFINE_RESULT
    keep_covariance: bool = DEFAULT_KEEP_COVARIANCE
    threshold: float = DEFAULT_THRESHOLD
    stop_threshold: float = DEFAULT_STOP_THRESHOLD
    preliminary_subset_size: Optional[int] = None
    dims: int = 2
    seed: Optional[int] = None

    def robust_settings(self) -> Dict[str, Any]:
        return dict(
            quality_scores=self.quality_scores,
            confidence=self.confidence,
            max_iterations=self.max_iterations,
            progress_delta=self.progress_delta,
            refine_result=self.refine_result,
            keep_covariance=self.keep_covariance,
            threshold=self.threshold,
            stop_threshold=self.stop_threshold,
            preliminary_subset_size=self.preliminary_subset_size,
            seed=self.seed,
        )


def create_robust_rssi_estimator(
    options: Optional[RobustEstimatorOptions] = None,
) -> RobustRssiRadioSourceEstimator:
    """Robust RSSI estimator configured from ``options`` (defaults if None)."""
    if options is None:
        options = RobustEstimatorOptions()
    return RobustRssiRadioSourceEstimator(
        options.readings,
        options.initial_position,
        options.initial_transmitted_power_dbm,
        options.initial_path_loss_exponent,
        options.listener,
        options.dims,
        options.method,
        **options.robust_settings(),
    )


def create_robust_ranging_estimator(
    options: Optional[RobustEstimatorOptions] = None,
) -> RobustRangingRadioSourceEstimator:
    """Robust ranging estimator configured from ``options`` (defaults if None)."""
    if options is None:
        options = RobustEstimatorOptions()
    return RobustRangingRadioSourceEstimator(
        options.readings,
        options.initial_position,
        options.listener,
        options.dims,
        options.method,
        **options.robust_settings(),
    )


def create_robust_ranging_and_rssi_estimator(
    options: Optional[RobustEstimatorOptions] = None,
) -> RobustRangingAndRssiRadioSourceEstimator:
    """Robust ranging and RSSI estimator configured from ``options``."""
    if options is None:
        options = RobustEstimatorOptions()
    return RobustRangingAndRssiRadioSourceEstimator(
        options.readings,
        options.initial_position,
        options.initial_transmitted_power_dbm,
        options.initial_path_loss_exponent,
        options.listener,
        options.dims,
        options.method,
        **options.robust_settings(),
    )
