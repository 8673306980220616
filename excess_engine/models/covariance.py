"""
Observation covariance builders for the curve fitter.

Builders are registered by model name and return the covariance of the
counts over a window. `response_covariance` maps it to the scale of the
percentage excess (observed - expected) / expected used in the GLS fit.
"""

from typing import Callable, Optional

import numpy as np

from ..core.errors import InputValidationError
from ..core.registry import FunctionRegistry
from .base import CorrelationModel

CovarianceBuilder = Callable[[np.ndarray, float, Optional[CorrelationModel]], np.ndarray]

COVARIANCE_REGISTRY: FunctionRegistry[CovarianceBuilder] = FunctionRegistry("covariance model")


@COVARIANCE_REGISTRY.register_decorator("independent")
def independent_covariance(
    expected: np.ndarray, dispersion: float, correlation: Optional[CorrelationModel] = None
) -> np.ndarray:
    """Overdispersed Poisson noise: D = diag(dispersion * expected)."""
    return np.diag(dispersion * expected)


@COVARIANCE_REGISTRY.register_decorator("correlated")
def correlated_covariance(
    expected: np.ndarray, dispersion: float, correlation: Optional[CorrelationModel] = None
) -> np.ndarray:
    """AR-correlated noise: D^(1/2) R D^(1/2) with R the Toeplitz autocorrelation."""
    if correlation is None:
        raise InputValidationError("The correlated model requires a CorrelationModel", stage="curve_fit")
    sd = np.sqrt(dispersion * expected)
    corr = correlation.correlation_matrix(len(expected))
    return np.outer(sd, sd) * corr


def response_covariance(count_covariance: np.ndarray, expected: np.ndarray) -> np.ndarray:
    """Covariance of (observed - expected) / expected given the count covariance."""
    return count_covariance / np.outer(expected, expected)
