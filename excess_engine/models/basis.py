"""Design-matrix builders for the baseline and curve models.

Each model is described by an explicit design record that is turned into a
dense matrix once per call. No formula parsing is involved; the spline
columns come from patsy's natural cubic regression spline transform.
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np
import pandas as pd
from patsy import PatsyError, cr

from ..core.errors import IdentifiabilityError

DAYS_PER_YEAR = 365.25
WEEKDAY_NAMES = ("tue", "wed", "thu", "fri", "sat", "sun")


@dataclass(frozen=True)
class DesignSpec:
    """Explicit description of a curve design matrix.

    Attributes:
        spline_df: Number of natural-spline columns (interior knots + 2).
        weekday_effect: Add six day-of-week indicator columns.
        event_date: Add a step column 1[t >= event_date] when set.
    """

    spline_df: int
    weekday_effect: bool = False
    event_date: Optional[pd.Timestamp] = None


def elapsed_days(dates: pd.DatetimeIndex) -> np.ndarray:
    """Days elapsed since the first date, as floats."""
    return ((dates - dates[0]) / pd.Timedelta(days=1)).to_numpy(dtype=float)


def natural_spline(t: np.ndarray, df: int) -> np.ndarray:
    """Natural cubic regression spline basis with df columns.

    The columns span the constant function, so no separate intercept is
    needed. Knots sit at quantiles of t.
    """
    if df < 3:
        raise IdentifiabilityError(f"Spline needs at least 3 columns, got {df}", stage="design")
    if len(t) < df:
        raise IdentifiabilityError(f"{len(t)} dates cannot identify a spline with {df} columns", stage="design")
    try:
        return np.asarray(cr(np.asarray(t, dtype=float), df=df), dtype=float)
    except (np.linalg.LinAlgError, ValueError, PatsyError) as e:
        raise IdentifiabilityError(
            f"Cannot build a spline with {df} columns over {len(t)} dates: {e}", stage="design"
        ) from e


def harmonic_basis(dates: pd.DatetimeIndex, harmonics: int) -> Tuple[np.ndarray, List[str]]:
    """Annual-period Fourier pairs sin/cos(2 pi k t / 365.25), k = 1..harmonics."""
    t = (dates - pd.Timestamp("1970-01-01")) / pd.Timedelta(days=1)
    t = np.asarray(t, dtype=float) / DAYS_PER_YEAR
    columns, names = [], []
    for k in range(1, harmonics + 1):
        columns.extend([np.sin(2 * np.pi * k * t), np.cos(2 * np.pi * k * t)])
        names.extend([f"sin{k}", f"cos{k}"])
    if not columns:
        return np.empty((len(dates), 0)), names
    return np.column_stack(columns), names


def weekday_dummies(dates: pd.DatetimeIndex) -> Tuple[np.ndarray, List[str]]:
    """Day-of-week indicators with Monday as the reference level."""
    weekday = np.asarray(dates.dayofweek)
    x = np.column_stack([(weekday == d).astype(float) for d in range(1, 7)])
    return x, [f"weekday_{name}" for name in WEEKDAY_NAMES]


def step_column(dates: pd.DatetimeIndex, event_date: pd.Timestamp) -> np.ndarray:
    """Indicator of dates on or after the event."""
    return np.asarray(dates >= event_date, dtype=float)


def build_curve_design(dates: pd.DatetimeIndex, design: DesignSpec) -> Tuple[np.ndarray, List[str]]:
    """Build the event-effect design matrix for a window.

    Args:
        dates: Window dates.
        design: Design description.

    Returns:
        Tuple of the design matrix and its column names.
    """
    parts = [natural_spline(elapsed_days(dates), design.spline_df)]
    names = [f"spline{i + 1}" for i in range(design.spline_df)]

    if design.event_date is not None:
        parts.append(step_column(dates, design.event_date)[:, None])
        names.append("discontinuity")

    if design.weekday_effect:
        weekday, weekday_names = weekday_dummies(dates)
        parts.append(weekday)
        names.extend(weekday_names)

    return np.hstack(parts), names


def check_full_rank(x: np.ndarray, stage: str) -> None:
    """Fail unless x has full column rank.

    Raises:
        IdentifiabilityError: If there are fewer rows than columns or the
            columns are collinear.
    """
    n, k = x.shape
    if n < k:
        raise IdentifiabilityError(f"{n} observations cannot identify {k} parameters", stage=stage)
    rank = np.linalg.matrix_rank(x)
    if rank < k:
        raise IdentifiabilityError(
            f"Design matrix is rank deficient (rank {rank} < {k} columns); "
            "reduce the number of knots or effect columns",
            stage=stage,
        )
