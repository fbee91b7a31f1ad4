"""
Types shared by the robust (consensus) estimation methods.

A robust method is independent of what is being estimated. It talks to its
owner through ``RobustEstimatorCallbacks``:

    - ``estimate_preliminary_solutions(indices)`` fits candidate solutions on
      a subset of the samples and returns them as a list (empty when the
      subset does not yield a solution).
    - ``compute_residuals(solution)`` returns the residual of every sample
      with respect to a candidate solution.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Generic, List, Optional, TypeVar

import numpy as np

T = TypeVar("T")


class RobustMethod(Enum):
    """Robust estimation method."""

    RANSAC = "ransac"
    LMEDS = "lmeds"
    MSAC = "msac"
    PROSAC = "prosac"
    PROMEDS = "promeds"

    @property
    def requires_quality_scores(self) -> bool:
        return self in (RobustMethod.PROSAC, RobustMethod.PROMEDS)

    @property
    def uses_threshold(self) -> bool:
        """Whether inliers are decided by a fixed residual threshold."""
        return self in (RobustMethod.RANSAC, RobustMethod.MSAC, RobustMethod.PROSAC)


@dataclass
class InliersData:
    """Inliers of the best solution found by a robust method.

    Attributes:
        inliers: Boolean mask over all samples.
        residuals: Residual of every sample for the best solution.
        num_inliers: Number of True entries in ``inliers``.
        threshold: Residual threshold used to classify inliers.
    """

    inliers: np.ndarray
    residuals: np.ndarray
    num_inliers: int
    threshold: float


@dataclass
class RobustEstimatorCallbacks(Generic[T]):
    """Callables connecting a robust method to the problem being solved.

    Attributes:
        total_samples: Number of samples available.
        subset_size: Number of samples drawn per iteration.
        estimate_preliminary_solutions: Fits candidates on a subset given by
            sample indices.
        compute_residuals: Residuals (total_samples,) of a candidate.
        on_next_iteration: Optional hook called with the iteration number.
        on_progress_change: Optional hook called with progress in [0, 1].
    """

    total_samples: int
    subset_size: int
    estimate_preliminary_solutions: Callable[[np.ndarray], List[T]]
    compute_residuals: Callable[[T], np.ndarray]
    on_next_iteration: Optional[Callable[[int], None]] = None
    on_progress_change: Optional[Callable[[float], None]] = None
