"""Position accuracy derived from a covariance matrix.

Ranging estimators can account for the uncertainty of the receiver position
of every reading. The covariance of that position is reduced to a single
distance (the average accuracy), which is combined with the ranging standard
deviation:

    σ = sqrt(σ_d² + σ_pos²)

The average accuracy is the mean of the standard deviations along the
principal axes of the covariance (square roots of its eigenvalues), scaled by
the two-sided normal quantile of the requested confidence level.
"""

import warnings
from typing import Optional

import numpy as np
from scipy import stats

# Confidence of a one standard deviation interval of a normal distribution
DEFAULT_CONFIDENCE = 0.6826894921370859


class Accuracy:
    """
    Accuracy of a 2D or 3D position expressed by its covariance.

    Attributes:
        covariance: Symmetric covariance matrix (2×2 or 3×3).
        confidence: Confidence level in (0, 1).

    Example:
        >>> acc = Accuracy(np.diag([4.0, 4.0]))
        >>> round(acc.average_accuracy, 6)
        2.0
    """

    def __init__(
        self,
        covariance: np.ndarray,
        confidence: float = DEFAULT_CONFIDENCE,
    ):
        covariance = np.asarray(covariance, dtype=float)
        if covariance.ndim != 2 or covariance.shape[0] != covariance.shape[1]:
            raise ValueError(
                f"covariance must be a square matrix, got shape {covariance.shape}"
            )
        if covariance.shape[0] not in (2, 3):
            raise ValueError("covariance must be 2×2 or 3×3")
        if not (0.0 < confidence < 1.0):
            raise ValueError(f"confidence must be in (0, 1), got {confidence}")

        self.covariance = covariance
        self.confidence = confidence

    @property
    def number_of_standard_deviations(self) -> float:
        """Two-sided normal quantile for the confidence level."""
        return float(stats.norm.ppf((1.0 + self.confidence) / 2.0))

    @property
    def standard_deviations(self) -> np.ndarray:
        """Standard deviations along the principal axes, sorted ascending."""
        eigvals = np.linalg.eigvalsh(self.covariance)
        if np.any(eigvals < 0.0):
            raise ValueError(
                f"covariance must be positive semi-definite, got eigenvalues {eigvals}"
            )
        return np.sqrt(eigvals)

    @property
    def smallest_accuracy(self) -> float:
        return float(self.standard_deviations[0] * self.number_of_standard_deviations)

    @property
    def largest_accuracy(self) -> float:
        return float(self.standard_deviations[-1] * self.number_of_standard_deviations)

    @property
    def average_accuracy(self) -> float:
        return float(
            np.mean(self.standard_deviations) * self.number_of_standard_deviations
        )


def position_standard_deviation(
    covariance: Optional[np.ndarray],
    confidence: float = DEFAULT_CONFIDENCE,
) -> float:
    """
    Average accuracy of a reading position, or 0 when it is not available.

    Covariances that are not positive semi-definite are ignored with a
    ``RuntimeWarning``.
    """
    if covariance is None:
        return 0.0
    try:
        return Accuracy(covariance, confidence).average_accuracy
    except (ValueError, np.linalg.LinAlgError) as e:
        warnings.warn(
            f"Ignoring reading position covariance: {e}",
            RuntimeWarning,
            stacklevel=2,
        )
        return 0.0
