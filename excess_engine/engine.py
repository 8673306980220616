"""
Excess estimation engine: runs the full pipeline from a configuration.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

import pandas as pd

from .core import ExcessModelError, load_config
from .models import (
    BaselineSeries,
    CorrelationModel,
    CurveFit,
    cumulative,
    estimate_expected,
    fit_ar,
    fit_intervals,
)

logger = logging.getLogger(__name__)

# Name of the curve fit when CURVE.start/end is used instead of CURVE.intervals
DEFAULT_INTERVAL = "main"


@dataclass
class ExcessResult:
    """Everything produced by a single pipeline run.

    Attributes:
        config: The merged and validated configuration.
        baseline: Expected counts and dispersion.
        correlation: AR model of the residuals, when enabled.
        fits: Curve fit per named interval.
        cumulative: Cumulative excess table per named interval.
    """

    config: Dict[str, Any]
    baseline: BaselineSeries
    correlation: Optional[CorrelationModel] = None
    fits: Dict[str, CurveFit] = field(default_factory=dict)
    cumulative: Dict[str, pd.DataFrame] = field(default_factory=dict)


def exclusion_dates(exclude) -> pd.DatetimeIndex:
    """Expand BASELINE.exclude entries (dates or {start, end} ranges) to daily dates."""
    pieces = []
    for item in exclude or []:
        if isinstance(item, dict):
            pieces.append(pd.date_range(str(item["start"]), str(item["end"]), freq="D"))
        else:
            pieces.append(pd.DatetimeIndex([pd.Timestamp(str(item))]))
    if not pieces:
        return pd.DatetimeIndex([])
    return pieces[0].append(pieces[1:]).normalize().unique()


def _curve_intervals(curve_config: Dict[str, Any]) -> Dict[str, tuple]:
    intervals = curve_config.get("intervals") or {}
    if intervals:
        return {name: (str(w["start"]), str(w["end"])) for name, w in intervals.items()}
    return {DEFAULT_INTERVAL: (str(curve_config["start"]), str(curve_config["end"]))}


def estimate_excess(
    config: Union[str, Path, Dict[str, Any]],
    data: pd.DataFrame,
) -> ExcessResult:
    """
    Run baseline, correlation, curve and cumulative stages on a count table.

    Args:
        config: Path to a YAML/JSON configuration file or a config dict.
        data: Count table with date, observed and population columns.

    Returns:
        ExcessResult: All intermediate and final results.

    Raises:
        ConfigValidationError: If the configuration is invalid.
        ExcessModelError: If any stage fails.
    """
    config = load_config(config)
    baseline_config = config["BASELINE"]
    correlation_config = config["CORRELATION"]
    curve_config = config["CURVE"]
    cumulative_config = config["CUMULATIVE"]

    try:
        baseline = estimate_expected(
            data,
            exclude_dates=exclusion_dates(baseline_config.get("exclude")),
            weekday_effect=baseline_config["weekday_effect"],
            trend_knots=baseline_config.get("trend_knots"),
            seasonal_harmonics=baseline_config["seasonal_harmonics"],
            include_trend=baseline_config["include_trend"],
        )

        correlation = None
        if correlation_config["enabled"]:
            start = pd.Timestamp(str(correlation_config["control_start"]))
            end = pd.Timestamp(str(correlation_config["control_end"]))
            control = baseline.dates[(baseline.dates >= start) & (baseline.dates <= end)]
            correlation = fit_ar(
                baseline,
                control,
                max_order=correlation_config["max_order"],
                select_by_aic=correlation_config["select_by_aic"],
            )

        fits = fit_intervals(
            baseline,
            _curve_intervals(curve_config),
            correlation,
            event_date=curve_config.get("event_date"),
            discontinuity=curve_config["discontinuity"],
            knots_per_year=curve_config["knots_per_year"],
            weekday_effect=curve_config["weekday_effect"],
            model=curve_config.get("model"),
            max_condition=float(curve_config["max_condition"]),
        )

        tables = {}
        for name, fit in fits.items():
            start = cumulative_config.get("start") or fit.dates[0]
            end = cumulative_config.get("end") or fit.dates[-1]
            tables[name] = cumulative(fit, str(start), str(end))
    except ExcessModelError as e:
        logger.error(f"Excess estimation failed: {e}")
        raise

    return ExcessResult(
        config=config,
        baseline=baseline,
        correlation=correlation,
        fits=fits,
        cumulative=tables,
    )
