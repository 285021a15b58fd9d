"""
Exception hierarchy for the loop arbitrage detection core.

Degenerate market data (empty reserves, missing decimals) is not exceptional
and never raises during a scan. These types cover configuration mistakes,
malformed records at the ingestion boundary and programming defects.
"""

from typing import Any, Dict, Optional


class LoopArbitrageError(Exception):
    """Base exception for all loop arbitrage related errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class ConfigurationError(LoopArbitrageError):
    """Raised when detector configuration is missing or has impossible values."""

    pass


class ValidationError(LoopArbitrageError):
    """Raised when validation of data or configuration fails."""

    pass


class DataError(LoopArbitrageError):
    """Raised when a pool record or snapshot file cannot be ingested."""

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        record: Optional[Dict[str, Any]] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.source = source
        self.record = record


class RouteValidationError(ValidationError):
    """Raised when a candidate route does not chain or exceeds its bounds."""

    def __init__(
        self,
        message: str,
        reason: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.reason = reason


class InvariantViolation(LoopArbitrageError):
    """Raised when an opportunity is built with profit fields its route does not produce."""

    pass
