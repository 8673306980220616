"""Serialize and restore correlation models and curve fits as JSON."""

import json
from pathlib import Path
from typing import Any, Dict, Union

import numpy as np
import pandas as pd

from .core.errors import FitTypeError
from .models.base import CorrelationModel, CurveFit, FitKind, require_kind

SCHEMA_VERSION = "1.0"

PathLike = Union[str, Path]


def _dates_out(dates: pd.DatetimeIndex) -> list:
    return [d.strftime("%Y-%m-%d") for d in dates]


def correlation_to_dict(model: CorrelationModel) -> Dict[str, Any]:
    """Convert a CorrelationModel to a JSON-compatible dict."""
    return {
        "schema_version": SCHEMA_VERSION,
        "kind": "correlation_model",
        "order": model.order,
        "ar": model.ar.tolist(),
        "sigma2": model.sigma2,
        "acovf": model.acovf.tolist(),
        "aic": model.aic,
        "n_obs": model.n_obs,
    }


def correlation_from_dict(data: Dict[str, Any]) -> CorrelationModel:
    """Rebuild a CorrelationModel from correlation_to_dict output."""
    if data.get("kind") != "correlation_model":
        raise FitTypeError(f"Expected a correlation_model record, got {data.get('kind')}", stage="results")
    return CorrelationModel(
        order=int(data["order"]),
        ar=np.asarray(data["ar"], dtype=float),
        sigma2=float(data["sigma2"]),
        acovf=np.asarray(data["acovf"], dtype=float),
        aic=float(data["aic"]),
        n_obs=int(data["n_obs"]),
    )


def fit_to_dict(fit: CurveFit) -> Dict[str, Any]:
    """Convert a CurveFit to a JSON-compatible dict preserving every field."""
    require_kind(fit, FitKind.CURVE_FIT, stage="results")
    return {
        "schema_version": SCHEMA_VERSION,
        "kind": fit.kind.value,
        "dates": _dates_out(fit.dates),
        "expected": fit.expected.tolist(),
        "observed": fit.observed.tolist(),
        "x": fit.x.tolist(),
        "columns": list(fit.columns),
        "beta": fit.beta.tolist(),
        "betacov": fit.betacov.tolist(),
        "fitted": fit.fitted.tolist(),
        "cov": fit.cov.tolist(),
        "detected_intervals": [_dates_out(pd.DatetimeIndex(pair)) for pair in fit.detected_intervals],
        "model": fit.model,
        "dispersion": fit.dispersion,
    }


def fit_from_dict(data: Dict[str, Any]) -> CurveFit:
    """Rebuild a CurveFit from fit_to_dict output.

    Raises:
        FitTypeError: If the record is not a curve fit.
    """
    if data.get("kind") != FitKind.CURVE_FIT.value:
        raise FitTypeError(f"Expected a curve_fit record, got {data.get('kind')}", stage="results")
    return CurveFit(
        dates=pd.DatetimeIndex(pd.to_datetime(data["dates"])),
        expected=np.asarray(data["expected"], dtype=float),
        observed=np.asarray(data["observed"], dtype=float),
        x=np.asarray(data["x"], dtype=float),
        columns=tuple(data["columns"]),
        beta=np.asarray(data["beta"], dtype=float),
        betacov=np.asarray(data["betacov"], dtype=float),
        fitted=np.asarray(data["fitted"], dtype=float),
        cov=np.asarray(data["cov"], dtype=float),
        detected_intervals=[(pd.Timestamp(s), pd.Timestamp(e)) for s, e in data["detected_intervals"]],
        model=data["model"],
        dispersion=float(data["dispersion"]),
    )


def _write_json(path: PathLike, payload: Dict[str, Any]) -> str:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(payload, f)
    return str(path)


def _read_json(path: PathLike) -> Dict[str, Any]:
    with open(Path(path), "r", encoding="utf-8") as f:
        return json.load(f)


def save_fit(fit: CurveFit, path: PathLike) -> str:
    """Write a CurveFit to a JSON file and return its path."""
    return _write_json(path, fit_to_dict(fit))


def load_fit(path: PathLike) -> CurveFit:
    """Read a CurveFit written by save_fit."""
    return fit_from_dict(_read_json(path))


def save_correlation(model: CorrelationModel, path: PathLike) -> str:
    """Write a CorrelationModel to a JSON file and return its path."""
    return _write_json(path, correlation_to_dict(model))


def load_correlation(path: PathLike) -> CorrelationModel:
    """Read a CorrelationModel written by save_correlation."""
    return correlation_from_dict(_read_json(path))
