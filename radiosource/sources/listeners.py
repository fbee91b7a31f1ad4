"""Listener notified of the progress of radio source estimations."""


class RadioSourceEstimatorListener:
    """
    Base listener with no-op hooks; override the ones of interest.

    Exceptions raised by a hook propagate out of ``estimate()``.
    """

    def on_estimate_start(self, estimator) -> None:
        """Called once the estimator is locked, before any work is done."""

    def on_estimate_end(self, estimator) -> None:
        """Called after results are stored, before the estimator is unlocked."""

    def on_estimate_next_iteration(self, estimator, iteration: int) -> None:
        """Called by robust estimators after every sampled subset."""

    def on_estimate_progress_change(self, estimator, progress: float) -> None:
        """Called by robust estimators when progress advances, in [0, 1]."""
