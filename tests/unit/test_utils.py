"""
Unit tests for loop_arbitrage.utils module.
"""

import logging
import time

import pytest

from loop_arbitrage.utils import (
    clamp,
    get_current_timestamp,
    normalize_address,
    normalize_timestamp,
    short_address,
    timing_decorator,
)


class TestTimestampUtils:
    """Test timestamp utility functions."""

    def test_get_current_timestamp(self):
        before = time.time()
        ts = get_current_timestamp()
        assert before <= ts <= time.time()

    def test_normalize_timestamp_seconds(self):
        assert normalize_timestamp(1760745600) == 1760745600.0

    def test_normalize_timestamp_milliseconds(self):
        assert normalize_timestamp(1760745600000) == 1760745600.0


class TestMathUtils:
    """Test mathematical utility functions."""

    def test_clamp(self):
        assert clamp(5, 0, 10) == 5
        assert clamp(-5, 0, 10) == 0
        assert clamp(15, 0, 10) == 10


class TestAddressUtils:
    """Test address helpers."""

    def test_normalize_address(self):
        assert normalize_address("  0xAbC ") == "0xabc"

    def test_normalize_address_rejects_non_strings(self):
        with pytest.raises(TypeError):
            normalize_address(42)

    def test_short_address(self):
        assert short_address("0x4200000000000000000000000000000000000006") == "0x4200..."
        assert short_address("0xabc") == "0xabc"


def test_timing_decorator_preserves_function(caplog):
    @timing_decorator
    def add(a, b):
        """Add two numbers."""
        return a + b

    with caplog.at_level(logging.DEBUG, logger=__name__):
        assert add(2, 3) == 5

    assert add.__name__ == "add"
    assert add.__doc__ == "Add two numbers."
    assert "add executed in" in caplog.text
