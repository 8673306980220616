"""
Excess Engine - estimates excess events above a seasonal baseline.
"""

from .core import (
    ConfigValidationError,
    ExcessModelError,
    FitTypeError,
    IdentifiabilityError,
    InputValidationError,
    NumericalInstabilityError,
    load_config,
)
from .engine import ExcessResult, estimate_excess
from .models import (
    BaselineSeries,
    CorrelationModel,
    CurveFit,
    FitKind,
    cumulative,
    estimate_expected,
    excess_summary,
    fit_ar,
    fit_curve,
    fit_intervals,
)
from .results import load_correlation, load_fit, save_correlation, save_fit

__version__ = "0.1.0"

__all__ = [
    "BaselineSeries",
    "ConfigValidationError",
    "CorrelationModel",
    "CurveFit",
    "ExcessModelError",
    "ExcessResult",
    "FitKind",
    "FitTypeError",
    "IdentifiabilityError",
    "InputValidationError",
    "NumericalInstabilityError",
    "cumulative",
    "estimate_excess",
    "estimate_expected",
    "excess_summary",
    "fit_ar",
    "fit_curve",
    "fit_intervals",
    "load_config",
    "load_correlation",
    "load_fit",
    "save_correlation",
    "save_fit",
]
