"""Core modules shared by the pipeline stages."""

from .contracts import CADENCE_DAYS, CountSchema, Schema, as_date_index, infer_cadence, validate_counts
from .errors import (
    ExcessModelError,
    FitTypeError,
    IdentifiabilityError,
    InputValidationError,
    NumericalInstabilityError,
)
from .registry import FunctionRegistry
from .validation import ConfigValidationError, deep_merge, get_defaults, load_config

__all__ = [
    "CADENCE_DAYS",
    "ConfigValidationError",
    "CountSchema",
    "ExcessModelError",
    "FitTypeError",
    "FunctionRegistry",
    "IdentifiabilityError",
    "InputValidationError",
    "NumericalInstabilityError",
    "Schema",
    "as_date_index",
    "deep_merge",
    "get_defaults",
    "infer_cadence",
    "load_config",
    "validate_counts",
]
