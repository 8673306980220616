"""Result containers shared by the pipeline stages.

Every stage returns a frozen dataclass tagged with a FitKind, so that a
downstream stage can check it received the variant it needs before touching
any field. Arrays are made read-only on construction.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Tuple

import numpy as np
import pandas as pd
from scipy.linalg import toeplitz

from ..core.errors import FitTypeError, InputValidationError

DateRange = Tuple[pd.Timestamp, pd.Timestamp]


class FitKind(Enum):
    """Tag identifying which pipeline variant a result object is."""

    BASELINE_SERIES = "baseline_series"
    CURVE_FIT = "curve_fit"


def _freeze(*arrays: np.ndarray) -> None:
    for array in arrays:
        array.setflags(write=False)


def require_kind(obj, kind: FitKind, stage: str) -> None:
    """Raise FitTypeError unless obj carries the given tag.

    Args:
        obj: Object handed to a stage.
        kind: Required FitKind.
        stage: Stage name used in the error message.

    Raises:
        FitTypeError: If obj has no tag or a different tag.
    """
    found = getattr(obj, "kind", None)
    if found is not kind:
        label = found.value if isinstance(found, FitKind) else type(obj).__name__
        raise FitTypeError(f"Expected a {kind.value} result, got {label}", stage=stage)


@dataclass(frozen=True, eq=False)
class BaselineSeries:
    """Count series with its fitted expected counts.

    Attributes:
        dates: Strictly increasing dates, one per record.
        observed: Observed counts aligned with dates.
        population: Population at risk aligned with dates.
        expected: Fitted expected counts (> 0), including excluded dates.
        excluded: True where the date was left out of the baseline fit.
        dispersion: Pearson overdispersion factor over non-excluded dates.
        cadence: "daily" or "weekly".
        df_resid: Residual degrees of freedom of the baseline fit.
        components: Log-scale trend, seasonal and weekday contributions.
    """

    dates: pd.DatetimeIndex
    observed: np.ndarray
    population: np.ndarray
    expected: np.ndarray
    excluded: np.ndarray
    dispersion: float
    cadence: str
    df_resid: int
    components: pd.DataFrame
    kind: FitKind = field(default=FitKind.BASELINE_SERIES, init=False)

    def __post_init__(self):
        _freeze(self.observed, self.population, self.expected, self.excluded)

    def __len__(self) -> int:
        return len(self.dates)

    def positions(self, dates) -> np.ndarray:
        """Map dates to row positions, failing on dates not in the series."""
        index = pd.DatetimeIndex(pd.to_datetime(dates)).normalize()
        pos = self.dates.get_indexer(index)
        if (pos < 0).any():
            missing = index[pos < 0][:5].date.tolist()
            raise InputValidationError(f"Dates not present in series: {missing}", stage="series")
        return pos

    def to_frame(self) -> pd.DataFrame:
        """Return the series as a DataFrame (date, observed, population, expected, excluded)."""
        return pd.DataFrame(
            {
                "date": self.dates,
                "observed": self.observed,
                "population": self.population,
                "expected": self.expected,
                "excluded": self.excluded,
            }
        )


@dataclass(frozen=True, eq=False)
class CorrelationModel:
    """Autoregressive model of the standardized baseline residuals.

    Attributes:
        order: AR order p.
        ar: Coefficients phi_1..phi_p.
        sigma2: Innovation variance.
        acovf: Theoretical autocovariance gamma(0..L-1).
        aic: Akaike information criterion of the selected fit.
        n_obs: Number of control points used.
    """

    order: int
    ar: np.ndarray
    sigma2: float
    acovf: np.ndarray
    aic: float
    n_obs: int

    def __post_init__(self):
        _freeze(self.ar, self.acovf)

    @property
    def max_lag(self) -> int:
        return len(self.acovf)

    def autocorrelation(self, n: int) -> np.ndarray:
        """Return rho(0..n-1) = gamma(k) / gamma(0).

        Raises:
            InputValidationError: If n exceeds the lags computed at fit time.
        """
        if n > self.max_lag:
            raise InputValidationError(
                f"Requested {n} lags but the correlation model holds {self.max_lag}; "
                "refit with a larger nlags",
                stage="correlation",
            )
        return self.acovf[:n] / self.acovf[0]

    def correlation_matrix(self, n: int) -> np.ndarray:
        """Return the n x n Toeplitz correlation matrix of n consecutive dates."""
        return toeplitz(self.autocorrelation(n))


@dataclass(frozen=True, eq=False)
class CurveFit:
    """Fitted event-effect curve over a window.

    Attributes:
        dates: Window dates, strictly increasing, one per row of x.
        expected: Baseline expected counts over the window.
        observed: Observed counts over the window.
        x: Design matrix (dates x basis dimension).
        columns: Names of the design columns.
        beta: GLS coefficients.
        betacov: Coefficient covariance (X' V^-1 X)^-1.
        fitted: Fitted percentage excess X beta.
        cov: Pointwise covariance X betacov X'.
        detected_intervals: Date ranges where the 2-sd band excludes zero.
        model: Observation covariance mode, "independent" or "correlated".
        dispersion: Overdispersion factor carried from the baseline.
    """

    dates: pd.DatetimeIndex
    expected: np.ndarray
    observed: np.ndarray
    x: np.ndarray
    columns: Tuple[str, ...]
    beta: np.ndarray
    betacov: np.ndarray
    fitted: np.ndarray
    cov: np.ndarray
    detected_intervals: List[DateRange]
    model: str
    dispersion: float
    kind: FitKind = field(default=FitKind.CURVE_FIT, init=False)

    def __post_init__(self):
        _freeze(self.expected, self.observed, self.x, self.beta, self.betacov, self.fitted, self.cov)

    @property
    def se(self) -> np.ndarray:
        """Pointwise standard error of the fitted curve."""
        return np.sqrt(np.clip(np.diag(self.cov), 0.0, None))

    def to_frame(self) -> pd.DataFrame:
        """Return the per-date curve as a DataFrame."""
        return pd.DataFrame(
            {
                "date": self.dates,
                "observed": self.observed,
                "expected": self.expected,
                "fitted": self.fitted,
                "se": self.se,
            }
        )
