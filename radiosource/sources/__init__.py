"""
Radio source estimators.

Point estimators:
    - RssiRadioSourceEstimator (2D/3D): position, power and/or path-loss
      exponent from RSSI readings
    - RangingRadioSourceEstimator (2D/3D): position from distances
    - RangingAndRssiRadioSourceEstimator (2D/3D): position from distances,
      then power and/or path-loss exponent from RSSI

Robust estimators wrap each point estimator with a consensus method and
are most easily built through the ``create_robust_*_estimator`` factories.
The sequential robust estimator runs a robust ranging stage and a robust
RSSI stage, each with its own method and inliers.
"""

from radiosource.sources.base import PowerEstimationMixin, RadioSourceEstimator
from radiosource.sources.config import DEFAULT_PATH_LOSS_EXPONENT, EstimationConfig
from radiosource.sources.factory import (
    RobustEstimatorOptions,
    create_robust_ranging_and_rssi_estimator,
    create_robust_ranging_estimator,
    create_robust_rssi_estimator,
)
from radiosource.sources.listeners import RadioSourceEstimatorListener
from radiosource.sources.models import (
    FITTING_CONFIGURATIONS,
    RssiFittingConfiguration,
    get_fitting_configuration,
)
from radiosource.sources.ranging import (
    RangingRadioSourceEstimator,
    RangingRadioSourceEstimator2D,
    RangingRadioSourceEstimator3D,
)
from radiosource.sources.ranging_and_rssi import (
    RangingAndRssiRadioSourceEstimator,
    RangingAndRssiRadioSourceEstimator2D,
    RangingAndRssiRadioSourceEstimator3D,
)
from radiosource.sources.robust import (
    DEFAULT_ROBUST_METHOD,
    RobustRadioSourceEstimator,
    Solution,
)
from radiosource.sources.robust_ranging import (
    RobustRangingRadioSourceEstimator,
    RobustRangingRadioSourceEstimator2D,
    RobustRangingRadioSourceEstimator3D,
)
from radiosource.sources.robust_ranging_and_rssi import (
    RobustRangingAndRssiRadioSourceEstimator,
    RobustRangingAndRssiRadioSourceEstimator2D,
    RobustRangingAndRssiRadioSourceEstimator3D,
)
from radiosource.sources.robust_rssi import (
    RobustRssiRadioSourceEstimator,
    RobustRssiRadioSourceEstimator2D,
    RobustRssiRadioSourceEstimator3D,
)
from radiosource.sources.rssi import (
    RssiRadioSourceEstimator,
    RssiRadioSourceEstimator2D,
    RssiRadioSourceEstimator3D,
)
from radiosource.sources.sequential import (
    SequentialRobustRangingAndRssiRadioSourceEstimator,
    SequentialRobustRangingAndRssiRadioSourceEstimator2D,
    SequentialRobustRangingAndRssiRadioSourceEstimator3D,
    split_readings,
)

__all__ = [
    # Configuration
    "DEFAULT_PATH_LOSS_EXPONENT",
    "DEFAULT_ROBUST_METHOD",
    "EstimationConfig",
    "RssiFittingConfiguration",
    "FITTING_CONFIGURATIONS",
    "get_fitting_configuration",
    "RadioSourceEstimatorListener",
    # Base classes
    "RadioSourceEstimator",
    "PowerEstimationMixin",
    "RobustRadioSourceEstimator",
    "Solution",
    # Point estimators
    "RssiRadioSourceEstimator",
    "RssiRadioSourceEstimator2D",
    "RssiRadioSourceEstimator3D",
    "RangingRadioSourceEstimator",
    "RangingRadioSourceEstimator2D",
    "RangingRadioSourceEstimator3D",
    "RangingAndRssiRadioSourceEstimator",
    "RangingAndRssiRadioSourceEstimator2D",
    "RangingAndRssiRadioSourceEstimator3D",
    # Robust estimators
    "RobustRssiRadioSourceEstimator",
    "RobustRssiRadioSourceEstimator2D",
    "RobustRssiRadioSourceEstimator3D",
    "RobustRangingRadioSourceEstimator",
    "RobustRangingRadioSourceEstimator2D",
    "RobustRangingRadioSourceEstimator3D",
    "RobustRangingAndRssiRadioSourceEstimator",
    "RobustRangingAndRssiRadioSourceEstimator2D",
    "RobustRangingAndRssiRadioSourceEstimator3D",
    "SequentialRobustRangingAndRssiRadioSourceEstimator",
    "SequentialRobustRangingAndRssiRadioSourceEstimator2D",
    "SequentialRobustRangingAndRssiRadioSourceEstimator3D",
    "split_readings",
    # Factories
    "RobustEstimatorOptions",
    "create_robust_rssi_estimator",
    "create_robust_ranging_estimator",
    "create_robust_ranging_and_rssi_estimator",
]
