"""Statistical stages of the excess estimation pipeline."""

from .base import BaselineSeries, CorrelationModel, CurveFit, FitKind
from .baseline import estimate_expected
from .correlation import fit_ar
from .covariance import COVARIANCE_REGISTRY
from .cumulative import cumulative, excess_summary, propagate_covariance
from .curve_fit import fit_curve, fit_intervals

__all__ = [
    "BaselineSeries",
    "COVARIANCE_REGISTRY",
    "CorrelationModel",
    "CurveFit",
    "FitKind",
    "cumulative",
    "estimate_expected",
    "excess_summary",
    "fit_ar",
    "fit_curve",
    "fit_intervals",
    "propagate_covariance",
]
