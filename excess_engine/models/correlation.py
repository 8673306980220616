"""Correlation Estimator - AR(p) model of standardized baseline residuals."""

import logging
from typing import Iterable, Optional

import numpy as np
from statsmodels.tsa.ar_model import AutoReg
from statsmodels.tsa.arima_process import ArmaProcess, arma_acovf

from ..core.contracts import as_date_index
from ..core.errors import IdentifiabilityError, InputValidationError, NumericalInstabilityError
from .base import BaselineSeries, CorrelationModel, FitKind, require_kind

logger = logging.getLogger(__name__)


def standardized_residuals(series: BaselineSeries, positions: np.ndarray) -> np.ndarray:
    """Return (observed - expected) / sqrt(dispersion * expected) at the given rows."""
    observed = series.observed[positions]
    expected = series.expected[positions]
    return (observed - expected) / np.sqrt(series.dispersion * expected)


def _control_positions(series: BaselineSeries, control_dates: Iterable) -> np.ndarray:
    control = as_date_index(control_dates)
    if len(control) == 0:
        raise InputValidationError("control_dates is empty", stage="correlation")

    positions = np.sort(series.positions(control))
    if len(positions) > 1 and not np.all(np.diff(positions) == 1):
        raise InputValidationError(
            "control_dates must be a contiguous run of series dates without duplicates",
            stage="correlation",
        )
    if series.excluded[positions].any():
        raise InputValidationError("control_dates overlap excluded dates", stage="correlation")
    return positions


def fit_ar(
    series: BaselineSeries,
    control_dates: Iterable,
    max_order: int = 5,
    select_by_aic: bool = True,
    nlags: Optional[int] = None,
) -> CorrelationModel:
    """Fit an autoregressive model to the control-period residuals.

    Orders 1..max_order are fitted by conditional least squares on a common
    sample (the first max_order points are held back), so their AICs are
    comparable.

    Args:
        series: Baseline result.
        control_dates: Contiguous dates free of events and exclusions.
        max_order: Largest AR order considered.
        select_by_aic: Choose the order with the smallest AIC; otherwise use
            max_order.
        nlags: Number of autocovariance lags to derive; defaults to the
            length of the series.

    Returns:
        CorrelationModel: Coefficients, innovation variance and autocovariance.

    Raises:
        FitTypeError: If series is not a baseline result.
        InputValidationError: If control dates are missing, non-contiguous
            or excluded.
        IdentifiabilityError: If there are fewer than 2 * max_order + 1 points
            or statsmodels cannot estimate a candidate order.
        NumericalInstabilityError: If the selected fit is non-stationary.
    """
    require_kind(series, FitKind.BASELINE_SERIES, stage="correlation")
    if max_order < 1:
        raise InputValidationError(f"max_order must be at least 1, got {max_order}", stage="correlation")

    positions = _control_positions(series, control_dates)
    # max_order points are held back, leaving the rest as regression rows
    if len(positions) - max_order < max_order + 1:
        raise IdentifiabilityError(
            f"{len(positions)} control dates cannot identify an AR({max_order}) model; "
            f"at least {2 * max_order + 1} are needed after holding back {max_order}",
            stage="correlation",
        )

    r = standardized_residuals(series, positions)

    orders = range(1, max_order + 1) if select_by_aic else [max_order]
    best = None
    for order in orders:
        try:
            results = AutoReg(r, lags=order, trend="n", hold_back=max_order).fit()
        except (ValueError, TypeError, np.linalg.LinAlgError) as e:
            raise IdentifiabilityError(
                f"AR({order}) cannot be estimated from {len(r)} control dates: {e}", stage="correlation"
            ) from e
        logger.debug(f"AR({order}) aic={results.aic:.3f}")
        if best is None or results.aic < best[1].aic:
            best = (order, results)
    order, results = best

    ar = np.asarray(results.params, dtype=float)
    sigma2 = float(results.sigma2)
    process = ArmaProcess(ar=np.r_[1.0, -ar], ma=np.array([1.0]))
    if not process.isstationary:
        raise NumericalInstabilityError(
            f"Estimated AR({order}) process is not stationary (coefficients {ar.round(4).tolist()})",
            stage="correlation",
        )

    if nlags is None:
        nlags = len(series)
    acovf = arma_acovf(np.r_[1.0, -ar], np.array([1.0]), nobs=nlags, sigma2=sigma2)

    logger.info(f"Selected AR({order}) on {len(r)} control dates, sigma2={sigma2:.4f}")
    return CorrelationModel(
        order=order,
        ar=ar,
        sigma2=sigma2,
        acovf=np.asarray(acovf, dtype=float),
        aic=float(results.aic),
        n_obs=len(r),
    )
