"""
Robust consensus estimation methods.

Available methods:
    - RANSAC, MSAC and LMedS (uniform sampling)
    - PROSAC and PROMedS (progressive sampling by quality score)
"""

from radiosource.robust.methods import (
    DEFAULT_CONFIDENCE,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_PROGRESS_DELTA,
    DEFAULT_STOP_THRESHOLD,
    DEFAULT_THRESHOLD,
    LMedSRobustEstimator,
    MSACRobustEstimator,
    PROMedSRobustEstimator,
    PROSACRobustEstimator,
    RANSACRobustEstimator,
    RobustEstimator,
    create_robust_estimator,
    required_iterations,
)
from radiosource.robust.types import InliersData, RobustEstimatorCallbacks, RobustMethod

__all__ = [
    # Defaults
    "DEFAULT_CONFIDENCE",
    "DEFAULT_MAX_ITERATIONS",
    "DEFAULT_PROGRESS_DELTA",
    "DEFAULT_THRESHOLD",
    "DEFAULT_STOP_THRESHOLD",
    # Types
    "RobustMethod",
    "InliersData",
    "RobustEstimatorCallbacks",
    # Methods
    "RobustEstimator",
    "RANSACRobustEstimator",
    "MSACRobustEstimator",
    "LMedSRobustEstimator",
    "PROSACRobustEstimator",
    "PROMedSRobustEstimator",
    "create_robust_estimator",
    "required_iterations",
]
