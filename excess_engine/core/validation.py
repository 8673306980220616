"""
Centralized configuration validation for excess_engine.

Provides a single entry point for config processing:
    load -> merge defaults -> validate structure -> validate parameters

Design principles:
- Defaults live in config_defaults.yaml; users specify only what differs
- Deep merge of user config over defaults
- All errors of a stage are collected and reported together
"""

import copy
import json
from datetime import datetime
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

REQUIRED_SECTIONS = ("BASELINE", "CORRELATION", "CURVE", "CUMULATIVE")
CURVE_MODELS = ("independent", "correlated")


class ConfigValidationError(ValueError):
    """Exception raised for configuration validation errors."""

    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        context = f" at '{path}'" if path else ""
        super().__init__(f"{message}{context}")


# --- Defaults Loading ---


@lru_cache(maxsize=1)
def _load_defaults() -> Dict[str, Any]:
    defaults_path = Path(__file__).parent.parent / "config_defaults.yaml"
    if not defaults_path.exists():
        return {}

    with open(defaults_path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def get_defaults() -> Dict[str, Any]:
    """Return a copy of the packaged defaults (config_defaults.yaml)."""
    return copy.deepcopy(_load_defaults())


# --- Deep Merge ---


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge two dictionaries, with override taking precedence.

    Args:
        base: Base dictionary (typically defaults).
        override: Override dictionary (typically user config).

    Returns:
        Merged dictionary.
    """
    result = copy.deepcopy(base)

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)

    return result


# --- Validation Pipeline ---


def _read_file(config_path: str) -> Dict[str, Any]:
    """Check the file exists and parse it as JSON or YAML."""
    path = Path(config_path)

    if not path.exists():
        raise ConfigValidationError(f"Configuration file not found: {config_path}")
    if not path.is_file():
        raise ConfigValidationError(f"Path is not a file: {config_path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            if path.suffix.lower() == ".json":
                return json.load(f)
            elif path.suffix.lower() in [".yaml", ".yml"]:
                return yaml.safe_load(f) or {}
            else:
                content = f.read()
                try:
                    return json.loads(content)
                except json.JSONDecodeError:
                    return yaml.safe_load(content) or {}
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise ConfigValidationError(f"Failed to parse configuration file: {e}") from e


def _validate_structure(config: Dict[str, Any]) -> List[str]:
    """Validate required top-level sections."""
    errors = []
    for section in REQUIRED_SECTIONS:
        if section not in config:
            errors.append(f"Missing required section: {section}")
        elif not isinstance(config[section], dict):
            errors.append(f"Section {section} must be a mapping")
    return errors


def _parse_date(value: Any, key: str, errors: List[str]) -> Optional[datetime]:
    if value is None:
        return None
    try:
        return datetime.strptime(str(value), "%Y-%m-%d")
    except ValueError:
        errors.append(f"Invalid date format for {key}: '{value}'. Expected YYYY-MM-DD")
        return None


def _check_range(start: Any, end: Any, key: str, errors: List[str], required: bool = False) -> None:
    if required and (start is None or end is None):
        errors.append(f"Missing required field: {key}.start/{key}.end")
        return
    start_date = _parse_date(start, f"{key}.start", errors)
    end_date = _parse_date(end, f"{key}.end", errors)
    if start_date and end_date and start_date > end_date:
        errors.append(f"{key}.start ({start}) must be before or equal to end ({end})")


def _check_positive_int(value: Any, key: str, errors: List[str], allow_none: bool = False) -> None:
    if value is None and allow_none:
        return
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        errors.append(f"{key} must be a positive integer, got {value!r}")


def _validate_parameters(config: Dict[str, Any]) -> List[str]:
    """Validate parameter values and relationships.

    Validates:
    - Date formats (YYYY-MM-DD) and ordering (start <= end)
    - Positive integer smoothing and AR order settings
    - Curve model names and the discontinuity/event_date pairing
    """
    errors: List[str] = []

    baseline = config["BASELINE"]
    exclude = baseline.get("exclude") or []
    if not isinstance(exclude, list):
        errors.append("BASELINE.exclude must be a list of dates or {start, end} ranges")
        exclude = []
    for i, item in enumerate(exclude):
        if isinstance(item, dict):
            _check_range(item.get("start"), item.get("end"), f"BASELINE.exclude[{i}]", errors, required=True)
        else:
            _parse_date(item, f"BASELINE.exclude[{i}]", errors)
    _check_positive_int(baseline.get("trend_knots"), "BASELINE.trend_knots", errors, allow_none=True)
    harmonics = baseline.get("seasonal_harmonics")
    if isinstance(harmonics, bool) or not isinstance(harmonics, int) or harmonics < 0:
        errors.append(f"BASELINE.seasonal_harmonics must be a non-negative integer, got {harmonics!r}")

    correlation = config["CORRELATION"]
    if correlation.get("enabled"):
        _check_range(
            correlation.get("control_start"),
            correlation.get("control_end"),
            "CORRELATION.control",
            errors,
            required=True,
        )
    _check_positive_int(correlation.get("max_order"), "CORRELATION.max_order", errors)

    curve = config["CURVE"]
    intervals = curve.get("intervals") or {}
    if not isinstance(intervals, dict):
        errors.append("CURVE.intervals must be a mapping of name -> {start, end}")
        intervals = {}
    if intervals:
        for name, window in intervals.items():
            window = window or {}
            _check_range(window.get("start"), window.get("end"), f"CURVE.intervals.{name}", errors, required=True)
    else:
        _check_range(curve.get("start"), curve.get("end"), "CURVE", errors, required=True)

    model = curve.get("model")
    if model is not None and model not in CURVE_MODELS:
        errors.append(f"CURVE.model must be one of {list(CURVE_MODELS)}, got '{model}'")
    if model == "correlated" and not correlation.get("enabled"):
        errors.append("CURVE.model 'correlated' requires CORRELATION.enabled")
    _check_positive_int(curve.get("knots_per_year"), "CURVE.knots_per_year", errors)
    if curve.get("discontinuity") and curve.get("event_date") is None:
        errors.append("CURVE.event_date is required when CURVE.discontinuity is true")
    _parse_date(curve.get("event_date"), "CURVE.event_date", errors)

    cumulative = config["CUMULATIVE"]
    _check_range(cumulative.get("start"), cumulative.get("end"), "CUMULATIVE", errors)

    return errors


# --- Main Entry Point ---


def load_config(source: Union[str, Path, Dict[str, Any], None] = None) -> Dict[str, Any]:
    """Load, merge and validate a pipeline configuration.

    Parameters
    ----------
    source : str | Path | dict | None
        YAML/JSON file path, pre-parsed dict, or ``None`` for the packaged defaults.
        When a dict is supplied, file-loading stages are skipped.

    Returns
    -------
    dict
        Fully validated and merged configuration.

    Raises
    ------
    ConfigValidationError
        If validation fails. Note: ``None`` source still fails validation
        because the curve window has no default.
    """
    if source is None or isinstance(source, dict):
        user_config: Dict[str, Any] = source or {}
    else:
        user_config = _read_file(str(source))

    if not isinstance(user_config, dict):
        raise ConfigValidationError("Configuration must be a dictionary/object")

    merged = deep_merge(_load_defaults(), user_config)

    structure_errors = _validate_structure(merged)
    if structure_errors:
        raise ConfigValidationError("Configuration structure errors:\n  - " + "\n  - ".join(structure_errors))

    param_errors = _validate_parameters(merged)
    if param_errors:
        raise ConfigValidationError("Configuration parameter errors:\n  - " + "\n  - ".join(param_errors))

    return merged
