"""Cumulative Aggregator - running excess totals with propagated errors."""

import logging
from typing import Any, Dict

import numpy as np
import pandas as pd

from ..core.errors import InputValidationError
from .base import CurveFit, FitKind, require_kind

logger = logging.getLogger(__name__)

CUMULATIVE_COLUMNS = ["date", "observed", "sd", "fitted", "se"]


def summation_operator(expected: np.ndarray) -> np.ndarray:
    """Lower-triangular A with A[i, j] = expected[j] for j <= i.

    Row i of A @ f is sum_{j <= i} expected_j * f_j, turning a percentage
    excess curve into cumulative excess counts.
    """
    n = len(expected)
    return np.tril(np.ones((n, n))) * expected[np.newaxis, :]


def propagate_covariance(a: np.ndarray, m: np.ndarray) -> np.ndarray:
    """Return A M A' for a symmetric PSD M, symmetrized against round-off."""
    out = a @ m @ a.T
    return (out + out.T) / 2


def _sqrt_diag(m: np.ndarray) -> np.ndarray:
    # clip round-off negatives on the diagonal of a PSD matrix
    return np.sqrt(np.clip(np.diag(m), 0.0, None))


def cumulative(fit: CurveFit, start, end) -> pd.DataFrame:
    """Compute cumulative observed and fitted excess over [start, end].

    Args:
        fit: Curve fit result.
        start: First date of the window.
        end: Last date of the window.

    Returns:
        pd.DataFrame: Columns date, observed, sd, fitted, se, one row per
            fitted date in the window, ascending. Empty when the window does
            not overlap the fitted dates.

    Raises:
        FitTypeError: If fit is not a curve fit.
        InputValidationError: If start is after end.
    """
    require_kind(fit, FitKind.CURVE_FIT, stage="cumulative")

    start = pd.Timestamp(start).normalize()
    end = pd.Timestamp(end).normalize()
    if start > end:
        raise InputValidationError(f"Window start {start.date()} is after end {end.date()}", stage="cumulative")

    ind = np.flatnonzero((fit.dates >= start) & (fit.dates <= end))
    if len(ind) == 0:
        logger.warning(f"No fitted dates in [{start.date()}, {end.date()}]; returning an empty result")
        return pd.DataFrame({column: [] for column in CUMULATIVE_COLUMNS}).astype(
            {"date": "datetime64[ns]", "observed": float, "sd": float, "fitted": float, "se": float}
        )

    expected = fit.expected[ind]
    a = summation_operator(expected)

    fitted = a @ fit.fitted[ind]
    observed = np.cumsum(fit.observed[ind] - expected)

    ax = a @ fit.x[ind, :]
    se = _sqrt_diag(propagate_covariance(ax, fit.betacov))
    sd = _sqrt_diag(propagate_covariance(a, fit.cov[np.ix_(ind, ind)]))

    return pd.DataFrame(
        {
            "date": fit.dates[ind],
            "observed": observed,
            "sd": sd,
            "fitted": fitted,
            "se": se,
        }
    )[CUMULATIVE_COLUMNS]


def excess_summary(fit: CurveFit, start, end) -> Dict[str, Any]:
    """Totals over [start, end]: the last cumulative row plus observed/expected sums.

    Raises:
        InputValidationError: If the window does not overlap the fitted dates.
    """
    table = cumulative(fit, start, end)
    if table.empty:
        raise InputValidationError("Window does not overlap the fitted dates", stage="cumulative")

    mask = (fit.dates >= table["date"].iloc[0]) & (fit.dates <= table["date"].iloc[-1])
    last = table.iloc[-1]
    return {
        "start": table["date"].iloc[0],
        "end": last["date"],
        "observed_total": float(fit.observed[mask].sum()),
        "expected_total": float(fit.expected[mask].sum()),
        "observed_excess": float(last["observed"]),
        "fitted_excess": float(last["fitted"]),
        "sd": float(last["sd"]),
        "se": float(last["se"]),
    }
