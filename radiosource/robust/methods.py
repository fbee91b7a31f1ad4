"""
Robust consensus methods: RANSAC, MSAC, LMedS, PROSAC and PROMedS.

All methods repeat the same loop:
    1. Draw a subset of ``subset_size`` samples.
    2. Fit candidate solutions on the subset.
    3. Score every candidate against all samples.
    4. Keep the best candidate and shrink the iteration budget as the
       estimated inlier ratio w grows:
           k = log(1 - confidence) / log(1 - w^s)

They differ in how a candidate is scored and how subsets are drawn:

    ========  ====================  ==========================
    Method    Score                 Sampling
    ========  ====================  ==========================
    RANSAC    inlier count          uniform
    MSAC      Σ min(r_i, t)         uniform
    LMedS     median residual       uniform
    PROSAC    inlier count          progressive (by quality)
    PROMedS   median residual       progressive (by quality)
    ========  ====================  ==========================

References:
    M. Fischler, R. Bolles, "Random Sample Consensus", 1981.
    P. Rousseeuw, "Least Median of Squares Regression", 1984.
    O. Chum, J. Matas, "Matching with PROSAC - Progressive Sample
    Consensus", 2005.
"""

import logging
import math
from abc import ABC, abstractmethod
from typing import Generic, List, Optional, Tuple

import numpy as np

from radiosource.exceptions import RobustEstimatorError
from radiosource.robust.types import (
    InliersData,
    RobustEstimatorCallbacks,
    RobustMethod,
    T,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 0.99
DEFAULT_MAX_ITERATIONS = 5000
DEFAULT_PROGRESS_DELTA = 0.05

# Residual threshold for RANSAC, MSAC and PROSAC
DEFAULT_THRESHOLD = 0.1

# Median residual at which LMedS and PROMedS stop early
DEFAULT_STOP_THRESHOLD = 1e-4

# Multiple of the robust standard deviation used to classify LMedS inliers
DEFAULT_INLIER_FACTOR = 1.5

# Consistency constant of the median absolute deviation for normal data
MAD_SCALE = 1.4826

# Largest inlier ratio a median score can vouch for
MEDIAN_BREAKDOWN_POINT = 0.5


def required_iterations(
    inlier_ratio: float,
    subset_size: int,
    confidence: float,
    max_iterations: int,
) -> int:
    """
    Number of subsets needed to draw an outlier-free one with ``confidence``.

    k = log(1 - confidence) / log(1 - w^s)

    Example:
        >>> required_iterations(0.5, 3, 0.99, 5000)
        35
    """
    p = inlier_ratio**subset_size
    if p >= 1.0:
        return 1
    if p <= 0.0:
        return max_iterations
    k = math.log(1.0 - confidence) / math.log(1.0 - p)
    return int(min(max_iterations, max(1, math.ceil(k))))


class UniformSampler:
    """Draws subsets uniformly at random without replacement."""

    def __init__(self, total_samples: int, subset_size: int, rng: np.random.Generator):
        self.total_samples = total_samples
        self.subset_size = subset_size
        self.rng = rng

    def draw(self) -> np.ndarray:
        return self.rng.choice(self.total_samples, self.subset_size, replace=False)


class ProgressiveSampler:
    """
    PROSAC sampling: subsets are drawn from a pool of the best-quality samples
    that grows as iterations go on, converging to uniform sampling after
    ``max_iterations`` draws.
    """

    def __init__(
        self,
        quality_scores: np.ndarray,
        subset_size: int,
        max_iterations: int,
        rng: np.random.Generator,
    ):
        total = len(quality_scores)
        # descending quality, stable for ties
        self.order = np.argsort(-np.asarray(quality_scores, dtype=float), kind="stable")
        self.total_samples = total
        self.subset_size = subset_size
        self.rng = rng

        s = subset_size
        tn = float(max_iterations)
        for i in range(s):
            tn *= (s - i) / (total - i)

        self._n = s
        self._tn = tn
        self._tn_prime = 1
        self._t = 0

    def draw(self) -> np.ndarray:
        s = self.subset_size
        self._t += 1

        if self._t > self._tn_prime and self._n < self.total_samples:
            tn_next = self._tn * (self._n + 1) / (self._n + 1 - s)
            self._tn_prime += max(1, math.ceil(tn_next - self._tn))
            self._tn = tn_next
            self._n += 1

        n = self._n
        if self._tn_prime < self._t:
            return self.rng.choice(self.order[:n], s, replace=False)

        # newest sample of the pool plus s - 1 drawn from the better ones
        others = self.rng.choice(self.order[: n - 1], s - 1, replace=False)
        return np.append(others, self.order[n - 1])


class RobustEstimator(ABC, Generic[T]):
    """
    Base class of the robust consensus methods.

    Attributes:
        callbacks: Problem-specific callables.
        confidence: Probability of drawing at least one outlier-free subset.
        max_iterations: Hard upper bound on the number of subsets drawn.
        progress_delta: Minimum progress change between notifications.
        rng: Random number generator used for sampling.
    """

    method: RobustMethod

    def __init__(
        self,
        callbacks: RobustEstimatorCallbacks[T],
        confidence: float = DEFAULT_CONFIDENCE,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        progress_delta: float = DEFAULT_PROGRESS_DELTA,
        rng: Optional[np.random.Generator] = None,
    ):
        if not (0.0 < confidence < 1.0):
            raise ValueError(f"confidence must be in (0, 1), got {confidence}")
        if max_iterations < 1:
            raise ValueError(f"max_iterations must be at least 1, got {max_iterations}")
        if not (0.0 <= progress_delta <= 1.0):
            raise ValueError(
                f"progress_delta must be in [0, 1], got {progress_delta}"
            )

        self.callbacks = callbacks
        self.confidence = confidence
        self.max_iterations = max_iterations
        self.progress_delta = progress_delta
        self.rng = rng if rng is not None else np.random.default_rng()

        self.iterations = 0

    def _create_sampler(self):
        return UniformSampler(
            self.callbacks.total_samples, self.callbacks.subset_size, self.rng
        )

    @abstractmethod
    def _score(self, residuals: np.ndarray) -> float:
        """Score of a candidate; lower is better."""

    @abstractmethod
    def _inlier_threshold(self, residuals: np.ndarray, score: float) -> float:
        """Residual threshold classifying inliers of the best candidate."""

    def _is_done(self, best_score: float) -> bool:
        return False

    def _bound_inlier_ratio(self, num_inliers: int, total: int) -> float:
        """Inlier ratio used to shrink the iteration budget."""
        return num_inliers / total

    def estimate(self) -> Tuple[T, InliersData]:
        """
        Run the consensus loop.

        Returns:
            best_solution: Candidate with the best score.
            inliers_data: Inliers of the best candidate.

        Raises:
            RobustEstimatorError: If there are fewer samples than the subset
                size, or no subset produced a candidate.
        """
        cb = self.callbacks
        total = cb.total_samples
        s = cb.subset_size
        if s < 1 or total < s:
            raise RobustEstimatorError(
                f"need at least {s} samples, got {total}"
            )

        sampler = self._create_sampler()

        best_solution = None
        best_score = math.inf
        best_inliers: Optional[InliersData] = None
        bound = self.max_iterations
        last_progress = 0.0

        self.iterations = 0
        while self.iterations < bound:
            indices = sampler.draw()
            solutions: List[T] = cb.estimate_preliminary_solutions(indices)

            for solution in solutions:
                residuals = np.asarray(cb.compute_residuals(solution), dtype=float)
                score = self._score(residuals)
                if score < best_score:
                    threshold = self._inlier_threshold(residuals, score)
                    inliers = residuals <= threshold
                    num_inliers = int(np.count_nonzero(inliers))

                    best_score = score
                    best_solution = solution
                    best_inliers = InliersData(
                        inliers=inliers,
                        residuals=residuals,
                        num_inliers=num_inliers,
                        threshold=threshold,
                    )
                    bound = required_iterations(
                        self._bound_inlier_ratio(num_inliers, total),
                        s,
                        self.confidence,
                        self.max_iterations,
                    )
                    logger.debug(
                        "%s: iteration %d, new best score %g with %d/%d inliers",
                        self.method.name, self.iterations, score, num_inliers, total,
                    )

            self.iterations += 1
            if cb.on_next_iteration is not None:
                cb.on_next_iteration(self.iterations)

            progress = min(1.0, self.iterations / bound)
            if cb.on_progress_change is not None and (
                progress - last_progress >= self.progress_delta
            ):
                last_progress = progress
                cb.on_progress_change(progress)

            if best_solution is not None and self._is_done(best_score):
                break

        if best_solution is None:
            raise RobustEstimatorError(
                f"{self.method.name} found no solution after {self.iterations} iterations"
            )

        return best_solution, best_inliers


class RANSACRobustEstimator(RobustEstimator[T]):
    """RANSAC: keeps the candidate with most residuals below ``threshold``."""

    method = RobustMethod.RANSAC

    def __init__(
        self,
        callbacks: RobustEstimatorCallbacks[T],
        threshold: float = DEFAULT_THRESHOLD,
        **kwargs,
    ):
        super().__init__(callbacks, **kwargs)
        if threshold <= 0.0:
            raise ValueError(f"threshold must be positive, got {threshold}")
        self.threshold = threshold

    def _score(self, residuals: np.ndarray) -> float:
        return -float(np.count_nonzero(residuals <= self.threshold))

    def _inlier_threshold(self, residuals: np.ndarray, score: float) -> float:
        return self.threshold


class MSACRobustEstimator(RANSACRobustEstimator[T]):
    """MSAC: RANSAC with residuals truncated at ``threshold`` as the score."""

    method = RobustMethod.MSAC

    def _score(self, residuals: np.ndarray) -> float:
        return float(np.sum(np.minimum(residuals, self.threshold)))


class LMedSRobustEstimator(RobustEstimator[T]):
    """
    LMedS: keeps the candidate with the least median residual.

    Inliers are the samples within ``inlier_factor`` robust standard
    deviations, estimated from the median as
        σ = 1.4826 · (1 + 5 / (N - s)) · median(r)
    and never below ``stop_threshold``.

    The median score says nothing about samples beyond the best half, so the
    inlier ratio shrinking the iteration budget is capped at
    ``MEDIAN_BREAKDOWN_POINT``.
    """

    method = RobustMethod.LMEDS

    def __init__(
        self,
        callbacks: RobustEstimatorCallbacks[T],
        stop_threshold: float = DEFAULT_STOP_THRESHOLD,
        inlier_factor: float = DEFAULT_INLIER_FACTOR,
        **kwargs,
    ):
        super().__init__(callbacks, **kwargs)
        if stop_threshold <= 0.0:
            raise ValueError(f"stop_threshold must be positive, got {stop_threshold}")
        if inlier_factor <= 0.0:
            raise ValueError(f"inlier_factor must be positive, got {inlier_factor}")
        self.stop_threshold = stop_threshold
        self.inlier_factor = inlier_factor

    def _score(self, residuals: np.ndarray) -> float:
        return float(np.median(residuals))

    def _inlier_threshold(self, residuals: np.ndarray, score: float) -> float:
        total = self.callbacks.total_samples
        s = self.callbacks.subset_size
        correction = 1.0 + 5.0 / (total - s) if total > s else 1.0
        sigma = max(MAD_SCALE * correction * score, self.stop_threshold)
        return self.inlier_factor * sigma

    def _is_done(self, best_score: float) -> bool:
        return best_score <= self.stop_threshold

    def _bound_inlier_ratio(self, num_inliers: int, total: int) -> float:
        # the median only guarantees half of the samples fit the candidate
        return min(num_inliers / total, MEDIAN_BREAKDOWN_POINT)


def _validate_quality_scores(
    quality_scores: Optional[np.ndarray], total_samples: int
) -> np.ndarray:
    if quality_scores is None:
        raise ValueError("quality scores are required for progressive sampling")
    quality_scores = np.asarray(quality_scores, dtype=float)
    if quality_scores.shape != (total_samples,):
        raise ValueError(
            f"Expected {total_samples} quality scores, got shape {quality_scores.shape}"
        )
    return quality_scores


class PROSACRobustEstimator(RANSACRobustEstimator[T]):
    """PROSAC: RANSAC scoring with subsets drawn from the best samples first."""

    method = RobustMethod.PROSAC

    def __init__(
        self,
        callbacks: RobustEstimatorCallbacks[T],
        quality_scores: Optional[np.ndarray] = None,
        threshold: float = DEFAULT_THRESHOLD,
        **kwargs,
    ):
        super().__init__(callbacks, threshold=threshold, **kwargs)
        self.quality_scores = _validate_quality_scores(
            quality_scores, callbacks.total_samples
        )

    def _create_sampler(self):
        return ProgressiveSampler(
            self.quality_scores, self.callbacks.subset_size, self.max_iterations, self.rng
        )


class PROMedSRobustEstimator(LMedSRobustEstimator[T]):
    """PROMedS: LMedS scoring with subsets drawn from the best samples first."""

    method = RobustMethod.PROMEDS

    def __init__(
        self,
        callbacks: RobustEstimatorCallbacks[T],
        quality_scores: Optional[np.ndarray] = None,
        stop_threshold: float = DEFAULT_STOP_THRESHOLD,
        **kwargs,
    ):
        super().__init__(callbacks, stop_threshold=stop_threshold, **kwargs)
        self.quality_scores = _validate_quality_scores(
            quality_scores, callbacks.total_samples
        )

    def _create_sampler(self):
        return ProgressiveSampler(
            self.quality_scores, self.callbacks.subset_size, self.max_iterations, self.rng
        )


_METHODS = {
    RobustMethod.RANSAC: RANSACRobustEstimator,
    RobustMethod.MSAC: MSACRobustEstimator,
    RobustMethod.LMEDS: LMedSRobustEstimator,
    RobustMethod.PROSAC: PROSACRobustEstimator,
    RobustMethod.PROMEDS: PROMedSRobustEstimator,
}


def create_robust_estimator(
    method: RobustMethod,
    callbacks: RobustEstimatorCallbacks[T],
    confidence: float = DEFAULT_CONFIDENCE,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    progress_delta: float = DEFAULT_PROGRESS_DELTA,
    threshold: float = DEFAULT_THRESHOLD,
    stop_threshold: float = DEFAULT_STOP_THRESHOLD,
    quality_scores: Optional[np.ndarray] = None,
    rng: Optional[np.random.Generator] = None,
) -> RobustEstimator[T]:
    """
    Build a robust method from its enum value.

    Settings that do not apply to ``method`` are ignored (``threshold`` for
    LMedS and PROMedS, ``stop_threshold`` for RANSAC, MSAC and PROSAC,
    ``quality_scores`` for non-progressive methods).

    Raises:
        ValueError: If a setting is out of range or quality scores are
            missing for PROSAC / PROMedS.
    """
    common = dict(
        confidence=confidence,
        max_iterations=max_iterations,
        progress_delta=progress_delta,
        rng=rng,
    )
    cls = _METHODS[method]
    if method.requires_quality_scores:
        common["quality_scores"] = quality_scores
    if method.uses_threshold:
        return cls(callbacks, threshold=threshold, **common)
    return cls(callbacks, stop_threshold=stop_threshold, **common)
