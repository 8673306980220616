"""
Error taxonomy for the excess estimation pipeline.

Callers can tell bad data (InputValidationError), models that cannot be
estimated from the data at hand (IdentifiabilityError), numerically unusable
estimates (NumericalInstabilityError) and wrong result objects (FitTypeError)
apart, while still catching everything through ExcessModelError.
"""

from typing import Optional


class ExcessModelError(Exception):
    """Base class for all pipeline errors."""

    def __init__(self, message: str, stage: Optional[str] = None):
        self.stage = stage
        prefix = f"[{stage}] " if stage else ""
        super().__init__(f"{prefix}{message}")


class InputValidationError(ExcessModelError, ValueError):
    """Raised for invalid input data (dates, counts, population, windows)."""


class IdentifiabilityError(ExcessModelError, ValueError):
    """Raised when the data cannot identify the requested model."""


class FitTypeError(ExcessModelError, TypeError):
    """Raised when a result object of the wrong kind is passed to a stage."""


class NumericalInstabilityError(ExcessModelError, ArithmeticError):
    """Raised for non-stationary AR estimates and ill-conditioned systems."""
