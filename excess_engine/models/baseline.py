"""Baseline Estimator - expected counts from a seasonal Poisson regression.

Fits log(mu_t / N_t) = trend(t) + seasonal(t) + weekday(t) with a Poisson GLM
and log-population offset, leaving excluded dates out of the fit but
predicting them from the fitted curve.
"""

import logging
from typing import Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd
import statsmodels.api as sm

from ..core.contracts import as_date_index, infer_cadence, validate_counts
from ..core.errors import IdentifiabilityError
from .base import BaselineSeries
from .basis import check_full_rank, elapsed_days, harmonic_basis, natural_spline, weekday_dummies

logger = logging.getLogger(__name__)

# One trend knot per seven years of data
TREND_KNOTS_PER_YEAR = 1 / 7


def default_trend_knots(dates: pd.DatetimeIndex) -> int:
    """Number of interior trend knots used when none is configured."""
    years = (dates[-1] - dates[0]).days / 365.25
    return max(1, int(round(years * TREND_KNOTS_PER_YEAR)))


def _baseline_design(
    dates: pd.DatetimeIndex,
    weekday_effect: bool,
    trend_knots: int,
    seasonal_harmonics: int,
    include_trend: bool,
) -> Tuple[np.ndarray, List[str], List[str]]:
    """Return the design matrix, column names and each column's component."""
    if include_trend:
        trend = natural_spline(elapsed_days(dates), trend_knots + 2)
        names = [f"trend{i + 1}" for i in range(trend.shape[1])]
    else:
        trend = np.ones((len(dates), 1))
        names = ["intercept"]
    parts = [trend]
    groups = ["trend"] * len(names)

    seasonal, seasonal_names = harmonic_basis(dates, seasonal_harmonics)
    parts.append(seasonal)
    names.extend(seasonal_names)
    groups.extend(["seasonal"] * len(seasonal_names))

    if weekday_effect:
        weekday, weekday_names = weekday_dummies(dates)
        parts.append(weekday)
        names.extend(weekday_names)
        groups.extend(["weekday"] * len(weekday_names))

    return np.hstack(parts), names, groups


def estimate_expected(
    data: pd.DataFrame,
    exclude_dates: Optional[Iterable] = None,
    weekday_effect: bool = False,
    trend_knots: Optional[int] = None,
    seasonal_harmonics: int = 2,
    include_trend: bool = True,
) -> BaselineSeries:
    """Estimate expected counts and the overdispersion factor.

    Args:
        data: Count table with date, observed and population columns.
        exclude_dates: Dates given zero weight in the fit (they still get an
            expected value).
        weekday_effect: Include day-of-week effects (daily data only).
        trend_knots: Interior knots of the trend spline; defaults to one
            per seven years of data.
        seasonal_harmonics: Number of annual Fourier pairs.
        include_trend: When False the trend is a constant.

    Returns:
        BaselineSeries: The series with expected counts and dispersion.

    Raises:
        InputValidationError: If the count table is invalid.
        IdentifiabilityError: If too few non-excluded dates remain.
    """
    df = validate_counts(data)
    dates = pd.DatetimeIndex(df["date"])
    cadence = infer_cadence(df["date"])

    if weekday_effect and cadence == "weekly":
        logger.warning("Ignoring weekday_effect for weekly data")
        weekday_effect = False

    if trend_knots is None:
        trend_knots = default_trend_knots(dates)

    excluded = np.asarray(dates.isin(as_date_index(exclude_dates)))
    keep = ~excluded

    x, names, groups = _baseline_design(dates, weekday_effect, trend_knots, seasonal_harmonics, include_trend)
    n_fit, n_params = int(keep.sum()), x.shape[1]
    if n_fit <= n_params:
        raise IdentifiabilityError(
            f"{n_fit} non-excluded dates cannot identify {n_params} baseline parameters",
            stage="baseline",
        )
    check_full_rank(x[keep], stage="baseline")

    observed = df["observed"].to_numpy()
    population = df["population"].to_numpy()
    offset = np.log(population)

    logger.info(
        f"Fitting {cadence} baseline with {n_params} parameters on {n_fit} dates "
        f"({int(excluded.sum())} excluded)"
    )
    results = sm.GLM(
        observed[keep],
        x[keep],
        family=sm.families.Poisson(),
        offset=offset[keep],
    ).fit()

    params = np.asarray(results.params)
    expected = np.exp(x @ params + offset)

    # Pearson chi-square over the fitting rows divided by residual df
    residuals = observed[keep] - expected[keep]
    df_resid = n_fit - n_params
    dispersion = float(np.sum(residuals**2 / expected[keep]) / df_resid)
    logger.info(f"Baseline dispersion: {dispersion:.3f}")

    groups = np.asarray(groups)
    components = pd.DataFrame(
        {
            component: x[:, groups == component] @ params[groups == component]
            for component in ("trend", "seasonal", "weekday")
        },
        index=dates,
    )
    components.index.name = "date"

    return BaselineSeries(
        dates=dates,
        observed=observed.copy(),
        population=population.copy(),
        expected=expected,
        excluded=excluded,
        dispersion=dispersion,
        cadence=cadence,
        df_resid=df_resid,
        components=components,
    )
