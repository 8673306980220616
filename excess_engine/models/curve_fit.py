"""Curve Fitter - GLS fit of a spline event-effect curve over a window."""

import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

import numpy as np
import pandas as pd
from scipy.linalg import LinAlgError, cho_factor, cho_solve

from ..core.errors import InputValidationError, NumericalInstabilityError
from .base import BaselineSeries, CorrelationModel, CurveFit, DateRange, FitKind, require_kind
from .basis import DesignSpec, build_curve_design, check_full_rank
from .covariance import COVARIANCE_REGISTRY, response_covariance

logger = logging.getLogger(__name__)

# Half-width of the pointwise band used to flag excess, in standard errors
DETECTION_Z = 2.0


def gls(
    x: np.ndarray, y: np.ndarray, v: np.ndarray, max_condition: float = 1e12
) -> Tuple[np.ndarray, np.ndarray]:
    """Solve (X' V^-1 X) beta = X' V^-1 y.

    Args:
        x: Design matrix (n x k), full column rank.
        y: Response (n,).
        v: Observation covariance (n x n), positive definite.
        max_condition: Largest accepted condition number of X' V^-1 X.

    Returns:
        Tuple of beta and its covariance (X' V^-1 X)^-1.

    Raises:
        NumericalInstabilityError: If V is not positive definite or the
            normal equations are ill-conditioned.
    """
    try:
        v_factor = cho_factor(v, lower=True)
    except LinAlgError as e:
        raise NumericalInstabilityError(
            f"Observation covariance is not positive definite: {e}", stage="curve_fit"
        ) from e

    vinv_x = cho_solve(v_factor, x)
    vinv_y = cho_solve(v_factor, y)
    information = x.T @ vinv_x
    information = (information + information.T) / 2

    condition = np.linalg.cond(information)
    if not np.isfinite(condition) or condition > max_condition:
        raise NumericalInstabilityError(
            f"GLS normal equations are ill-conditioned (condition number {condition:.3g} "
            f"exceeds {max_condition:.3g})",
            stage="curve_fit",
        )

    try:
        info_factor = cho_factor(information, lower=True)
    except LinAlgError as e:
        raise NumericalInstabilityError(f"GLS normal equations are singular: {e}", stage="curve_fit") from e

    betacov = cho_solve(info_factor, np.eye(information.shape[0]))
    betacov = (betacov + betacov.T) / 2
    beta = cho_solve(info_factor, x.T @ vinv_y)
    return beta, betacov


def detect_intervals(
    dates: pd.DatetimeIndex, fitted: np.ndarray, cov: np.ndarray, z: float = DETECTION_Z
) -> List[DateRange]:
    """Maximal runs of consecutive dates where fitted +/- z * se excludes zero."""
    se = np.sqrt(np.clip(np.diag(cov), 0.0, None))
    flagged = (fitted - z * se > 0) | (fitted + z * se < 0)

    intervals = []
    run_start = None
    for i, flag in enumerate(flagged):
        if flag and run_start is None:
            run_start = i
        elif not flag and run_start is not None:
            intervals.append((dates[run_start], dates[i - 1]))
            run_start = None
    if run_start is not None:
        intervals.append((dates[run_start], dates[len(dates) - 1]))
    return intervals


def _resolve_window(series: BaselineSeries, start, end) -> np.ndarray:
    start = pd.Timestamp(start).normalize()
    end = pd.Timestamp(end).normalize()
    if start > end:
        raise InputValidationError(f"Window start {start.date()} is after end {end.date()}", stage="curve_fit")
    positions = np.flatnonzero((series.dates >= start) & (series.dates <= end))
    if len(positions) == 0:
        raise InputValidationError(
            f"No series dates fall in window [{start.date()}, {end.date()}]", stage="curve_fit"
        )
    return positions


def _resolve_event(dates: pd.DatetimeIndex, discontinuity: bool, event_date) -> Optional[pd.Timestamp]:
    if not discontinuity:
        return None
    if event_date is None:
        raise InputValidationError("event_date is required when discontinuity is requested", stage="curve_fit")
    event = pd.Timestamp(event_date).normalize()
    if not dates[0] < event <= dates[-1]:
        raise InputValidationError(
            f"event_date {event.date()} must fall after the first and on or before the last window date",
            stage="curve_fit",
        )
    return event


def fit_curve(
    series: BaselineSeries,
    correlation: Optional[CorrelationModel] = None,
    start=None,
    end=None,
    event_date=None,
    discontinuity: bool = False,
    knots_per_year: int = 12,
    weekday_effect: bool = False,
    model: Optional[str] = None,
    max_condition: float = 1e12,
) -> CurveFit:
    """Fit the event-effect curve f(t) over [start, end].

    The response is the percentage excess (observed - expected) / expected,
    fitted by generalized least squares with either independent
    (overdispersed Poisson) or AR-correlated observation noise.

    Args:
        series: Baseline result.
        correlation: AR model of the residuals; required for the correlated model.
        start: First date of the window (defaults to the first series date).
        end: Last date of the window (defaults to the last series date).
        event_date: Date of the step change used when discontinuity is set.
        discontinuity: Add a step column at event_date.
        knots_per_year: Interior spline knots per year of window.
        weekday_effect: Add day-of-week columns (daily data only).
        model: "independent" or "correlated"; defaults to "correlated" when a
            correlation model is given.
        max_condition: Largest accepted condition number of the normal equations.

    Returns:
        CurveFit: Coefficients, covariances, fitted curve and detected intervals.

    Raises:
        FitTypeError: If series is not a baseline result.
        InputValidationError: For empty windows, unknown models or a bad event_date.
        IdentifiabilityError: If the design matrix is rank deficient.
        NumericalInstabilityError: If the GLS system is ill-conditioned.
    """
    require_kind(series, FitKind.BASELINE_SERIES, stage="curve_fit")

    positions = _resolve_window(
        series,
        series.dates[0] if start is None else start,
        series.dates[-1] if end is None else end,
    )
    dates = series.dates[positions]

    if model is None:
        model = "correlated" if correlation is not None else "independent"
    if model not in COVARIANCE_REGISTRY:
        raise InputValidationError(
            f"Unknown curve model '{model}'. Available: {COVARIANCE_REGISTRY.keys()}", stage="curve_fit"
        )
    builder = COVARIANCE_REGISTRY.get(model)

    if weekday_effect and series.cadence == "weekly":
        logger.warning("Ignoring weekday_effect for weekly data")
        weekday_effect = False

    years = (dates[-1] - dates[0]).days / 365.25
    knots = max(int(round(knots_per_year * years)), 1)
    design = DesignSpec(
        spline_df=knots + 2,
        weekday_effect=weekday_effect,
        event_date=_resolve_event(dates, discontinuity, event_date),
    )
    x, columns = build_curve_design(dates, design)
    check_full_rank(x, stage="curve_fit")

    expected = series.expected[positions].copy()
    observed = series.observed[positions].copy()
    y = (observed - expected) / expected
    v = response_covariance(builder(expected, series.dispersion, correlation), expected)

    logger.info(
        f"Fitting {model} curve on {len(dates)} dates "
        f"[{dates[0].date()}, {dates[-1].date()}] with {x.shape[1]} columns"
    )
    beta, betacov = gls(x, y, v, max_condition=max_condition)

    fitted = x @ beta
    cov = x @ betacov @ x.T
    cov = (cov + cov.T) / 2

    intervals = detect_intervals(dates, fitted, cov)
    logger.info(f"Detected {len(intervals)} interval(s) of significant excess")

    return CurveFit(
        dates=dates,
        expected=expected,
        observed=observed,
        x=x,
        columns=tuple(columns),
        beta=beta,
        betacov=betacov,
        fitted=fitted,
        cov=cov,
        detected_intervals=intervals,
        model=model,
        dispersion=series.dispersion,
    )


def fit_intervals(
    series: BaselineSeries,
    intervals: Mapping[str, Tuple[Any, Any]],
    correlation: Optional[CorrelationModel] = None,
    **kwargs,
) -> Dict[str, CurveFit]:
    """Fit each named (start, end) interval independently with fit_curve.

    Args:
        series: Baseline result.
        intervals: Mapping of interval name to (start, end).
        correlation: AR model shared by all intervals.
        **kwargs: Remaining fit_curve options.

    Returns:
        Dict of interval name to CurveFit, in the order given.
    """
    return {
        name: fit_curve(series, correlation, start=start, end=end, **kwargs)
        for name, (start, end) in intervals.items()
    }
