"""
Common utilities and helper functions for the loop arbitrage core.

This module provides the structured logger used by every module, plus the
small numeric and address helpers shared by the swap math and the detector.
"""

import logging
import time
from typing import Any, Dict, Optional, Union


# Timestamp utilities
def get_current_timestamp() -> float:
    """Get current Unix timestamp as float."""
    return time.time()


def normalize_timestamp(value: Union[int, float]) -> float:
    """
    Normalize a timestamp to seconds.

    Storage layers commonly record milliseconds; values above 1e12 are
    treated as milliseconds and scaled down.
    """
    value = float(value)
    if value > 1e12:
        return value / 1000.0
    return value


# Math utilities
def clamp(value: float, min_val: float, max_val: float) -> float:
    """Clamp value between min and max bounds."""
    return max(min_val, min(value, max_val))


# Address utilities
def normalize_address(address: Any) -> str:
    """Lower-case and strip a token or pool address."""
    if not isinstance(address, str):
        raise TypeError(f"Address must be a string, got {type(address).__name__}")
    return address.strip().lower()


def short_address(address: str, size: int = 6) -> str:
    """Shorten an address for log output (0x4200...)."""
    if len(address) <= size + 3:
        return address
    return f"{address[:size]}..."


# Logging utilities
def get_logger(
    name: str,
    level: Union[str, int] = logging.INFO,
    extra: Optional[Dict[str, Any]] = None,
    minimal: bool = False,
) -> logging.Logger:
    """
    Get a structured logger with consistent formatting and extra context.

    Args:
        name: Logger name (typically __name__)
        level: Logging level
        extra: Additional context fields to include in all log messages
        minimal: If True, use simplified format (time + message only)

    Returns:
        Configured logger with structured output
    """
    logger = logging.getLogger(name)

    # Set level if not already set
    if logger.level == logging.NOTSET:
        logger.setLevel(level)

    # Add structured formatter if no handlers exist
    if not logger.handlers:
        handler = logging.StreamHandler()

        if minimal:
            format_str = "%(asctime)s | %(message)s"
        else:
            format_str = (
                "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | " "%(message)s"
            )

        if extra:
            extra_fields = " | ".join([f"{k}=%(extra_{k})s" for k in extra.keys()])
            format_str = format_str.replace(
                " | %(message)s", f" | {extra_fields} | %(message)s"
            )

        formatter = logging.Formatter(format_str, datefmt="%H:%M:%S")
        handler.setFormatter(formatter)
        logger.addHandler(handler)

        # Store extra context in logger
        if extra:
            logger = logging.LoggerAdapter(
                logger, {"extra_" + k: v for k, v in extra.items()}
            )

    return logger


# Performance utilities
def timing_decorator(func):
    """Decorator to measure function execution time."""

    def wrapper(*args, **kwargs):
        start_time = time.perf_counter()
        result = func(*args, **kwargs)
        end_time = time.perf_counter()

        logger = logging.getLogger(func.__module__)
        logger.debug(f"{func.__name__} executed in {end_time - start_time:.4f}s")
        return result

    wrapper.__name__ = func.__name__
    wrapper.__doc__ = func.__doc__
    return wrapper


