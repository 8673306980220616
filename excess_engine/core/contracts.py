"""
Data contract for the count table consumed by the pipeline.

The ingestion and demographic layers live outside this package; they hand
over a table with one row per date. This module defines the column schema
and the checks every stage relies on.
"""

from dataclasses import dataclass, field
from typing import Dict, List

import numpy as np
import pandas as pd

from .errors import InputValidationError


@dataclass
class Schema:
    """Column schema with validation and mapping from external column names."""

    required: List[str]
    # Field mappings: {source_type: {external_name: standard_name}}
    mappings: Dict[str, Dict[str, str]] = field(default_factory=dict)

    def validate(self, df: pd.DataFrame) -> bool:
        """Check DataFrame has required columns."""
        missing = set(self.required) - set(df.columns)
        if missing:
            raise InputValidationError(f"Missing required columns: {sorted(missing)}")
        return True

    def from_external(self, df: pd.DataFrame, source: str) -> pd.DataFrame:
        """Convert external format to standard schema."""
        if source not in self.mappings:
            return df.copy()
        return df.copy().rename(columns=self.mappings[source])


# Count schema: one row per date with the observed count and population at risk
CountSchema = Schema(
    required=["date", "observed", "population"],
    mappings={
        "mortality": {"deaths": "observed"},
        "excessmort": {"outcome": "observed"},
    },
)

CADENCE_DAYS = {"daily": 1, "weekly": 7}


def as_date_index(values) -> pd.DatetimeIndex:
    """Normalize an iterable of date-likes (or None) to a midnight DatetimeIndex."""
    if values is None:
        return pd.DatetimeIndex([])
    return pd.DatetimeIndex(pd.to_datetime(list(values))).normalize()


def infer_cadence(dates: pd.Series) -> str:
    """Infer the sampling cadence from the spacing of sorted dates.

    Args:
        dates: Strictly increasing datetime Series with at least two values.

    Returns:
        str: "daily" or "weekly".

    Raises:
        InputValidationError: If spacing is irregular or not daily/weekly.
    """
    steps = np.unique(np.diff(dates.values).astype("timedelta64[D]").astype(int))
    if len(steps) != 1:
        raise InputValidationError(
            f"Dates must be regularly spaced without gaps, found steps of {steps.tolist()} days",
            stage="input",
        )
    for cadence, days in CADENCE_DAYS.items():
        if steps[0] == days:
            return cadence
    raise InputValidationError(
        f"Unsupported spacing of {int(steps[0])} days; expected daily or weekly data",
        stage="input",
    )


def validate_counts(data: pd.DataFrame) -> pd.DataFrame:
    """Validate and normalize a count table.

    Checks the column contract, parses dates, and rejects unsorted or
    duplicated dates, missing, negative or fractional counts and non-positive
    population. Nothing is repaired silently.

    Args:
        data: Table with date, observed and population columns.

    Returns:
        pd.DataFrame: Copy with normalized dtypes and a fresh RangeIndex.

    Raises:
        InputValidationError: If any check fails.
    """
    CountSchema.validate(data)
    if len(data) < 2:
        raise InputValidationError("Count table needs at least two dates", stage="input")

    df = data.copy()
    df["date"] = pd.to_datetime(df["date"]).dt.normalize()

    if df["date"].duplicated().any():
        dupes = df.loc[df["date"].duplicated(), "date"].dt.date.tolist()
        raise InputValidationError(f"Duplicate dates in count table: {dupes[:5]}", stage="input")
    if not df["date"].is_monotonic_increasing:
        raise InputValidationError("Dates must be sorted in ascending order", stage="input")

    if df["observed"].isna().any():
        raise InputValidationError("Observed counts contain missing values", stage="input")
    if (df["observed"] < 0).any():
        raise InputValidationError("Observed counts must be non-negative", stage="input")
    fractional = df["observed"] % 1 != 0
    if fractional.any():
        raise InputValidationError(
            f"Observed counts must be whole numbers, found {df.loc[fractional, 'observed'].tolist()[:5]}",
            stage="input",
        )
    if df["population"].isna().any() or (df["population"] <= 0).any():
        raise InputValidationError("Population must be positive for every date", stage="input")

    df["observed"] = df["observed"].astype(float)
    df["population"] = df["population"].astype(float)
    return df.reset_index(drop=True)
