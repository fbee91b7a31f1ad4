"""
Exception hierarchy for radio source estimation.

User-facing estimators raise exactly one of ``NotReadyError``,
``LockedError`` or ``RadioSourceEstimationError``. Numerical layers
(fitter, lateration solvers, robust methods) raise subclasses of
``NumericalError`` which estimators wrap.
"""


class RadioSourceError(Exception):
    """Base class for all errors raised by this package."""


class NotReadyError(RadioSourceError):
    """Raised when ``estimate()`` is called before preconditions are met.

    Typical causes: no parameter enabled for estimation, a disabled parameter
    without an initial value, or fewer readings than required.
    """


class LockedError(RadioSourceError, RuntimeError):
    """Raised when configuration is modified while an estimation is running."""


class RadioSourceEstimationError(RadioSourceError):
    """Raised when estimation fails for numerical reasons."""


class NumericalError(RadioSourceError):
    """Base class for failures of the numerical building blocks."""


class FittingError(NumericalError):
    """Raised when non-linear fitting fails (singular system, no convergence)."""


class LaterationError(NumericalError):
    """Raised when a lateration solver cannot produce a position."""


class RobustEstimatorError(NumericalError):
    """Raised when a robust method cannot produce any consensus solution."""
