"""Shared fixtures: synthetic count series and hand-built result objects."""

import numpy as np
import pandas as pd
import pytest

from excess_engine.models.base import BaselineSeries, CurveFit

POPULATION = 1_000_000
BASE_RATE = 50 / POPULATION


def seasonal_mean(dates: pd.DatetimeIndex, level: float = 50.0) -> np.ndarray:
    """Daily mean with a 15% annual cycle."""
    doy = np.asarray(dates.dayofyear, dtype=float)
    return level * (1 + 0.15 * np.cos(2 * np.pi * doy / 365.25))


def make_counts(
    start: str = "2014-01-01",
    periods: int = 5 * 365,
    freq: str = "D",
    bump_start=None,
    bump_days: int = 60,
    bump_size: float = 0.4,
    seed: int = 42,
) -> pd.DataFrame:
    """Poisson counts around a seasonal mean, with an optional excess bump."""
    rng = np.random.default_rng(seed)
    dates = pd.date_range(start, periods=periods, freq=freq)
    level = 50.0 if freq == "D" else 350.0
    mu = seasonal_mean(dates, level)
    if bump_start is not None:
        t = np.asarray((dates - pd.Timestamp(bump_start)).days, dtype=float)
        bump = np.where((t >= 0) & (t < bump_days), bump_size * np.sin(np.pi * t / bump_days), 0.0)
        mu = mu * (1 + bump)
    return pd.DataFrame(
        {
            "date": dates,
            "observed": rng.poisson(mu),
            "population": np.full(len(dates), POPULATION, dtype=float),
        }
    )


def make_series(observed, expected, start="2020-01-01", dispersion=1.0, excluded=None) -> BaselineSeries:
    """Build a BaselineSeries directly from arrays."""
    observed = np.asarray(observed, dtype=float)
    expected = np.asarray(expected, dtype=float)
    dates = pd.date_range(start, periods=len(observed), freq="D")
    if excluded is None:
        excluded = np.zeros(len(observed), dtype=bool)
    return BaselineSeries(
        dates=dates,
        observed=observed,
        population=np.full(len(observed), float(POPULATION)),
        expected=expected,
        excluded=np.asarray(excluded, dtype=bool),
        dispersion=dispersion,
        cadence="daily",
        df_resid=len(observed) - 1,
        components=pd.DataFrame(index=dates),
    )


def make_fit(expected, observed, fitted, cov, start="2020-03-01", beta=None, x=None, betacov=None) -> CurveFit:
    """Build a CurveFit whose design matrix defaults to the identity."""
    n = len(expected)
    fitted = np.asarray(fitted, dtype=float)
    cov = np.asarray(cov, dtype=float)
    return CurveFit(
        dates=pd.date_range(start, periods=n, freq="D"),
        expected=np.asarray(expected, dtype=float),
        observed=np.asarray(observed, dtype=float),
        x=np.eye(n) if x is None else np.asarray(x, dtype=float),
        columns=tuple(f"c{i}" for i in range(n)) if x is None else tuple(f"c{i}" for i in range(np.shape(x)[1])),
        beta=fitted.copy() if beta is None else np.asarray(beta, dtype=float),
        betacov=cov.copy() if betacov is None else np.asarray(betacov, dtype=float),
        fitted=fitted,
        cov=cov,
        detected_intervals=[],
        model="independent",
        dispersion=1.0,
    )


def ar1_noise(n: int, phi: float, seed: int = 0) -> np.ndarray:
    """Stationary AR(1) noise with unit innovation variance."""
    rng = np.random.default_rng(seed)
    e = rng.normal(size=n + 200)
    r = np.zeros_like(e)
    for t in range(1, len(e)):
        r[t] = phi * r[t - 1] + e[t]
    return r[200:]


@pytest.fixture(scope="session")
def daily_counts() -> pd.DataFrame:
    """Five years of daily counts with an excess bump starting 2018-06-01."""
    return make_counts(bump_start="2018-06-01")


@pytest.fixture
def scenario_fit() -> CurveFit:
    """Three dates, expected 10, observed [12, 9, 15], f = [0.1, 0.05, 0.2]."""
    return make_fit(
        expected=[10, 10, 10],
        observed=[12, 9, 15],
        fitted=[0.1, 0.05, 0.2],
        cov=np.diag([0.01, 0.01, 0.04]),
    )
