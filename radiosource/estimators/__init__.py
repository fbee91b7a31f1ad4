"""
Non-linear fitting algorithms for radio source estimation.

Available estimators:
    - Levenberg-Marquardt (functional and per-observation evaluator forms)
"""

from radiosource.estimators.nonlinear_least_squares import (
    FitResult,
    FunctionEvaluator,
    LevenbergMarquardtFitter,
    NonlinearLSResult,
    levenberg_marquardt,
)

__all__ = [
    "levenberg_marquardt",
    "NonlinearLSResult",
    "FunctionEvaluator",
    "LevenbergMarquardtFitter",
    "FitResult",
]
