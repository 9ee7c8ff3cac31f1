"""Tests for duration parsing."""

import math

import pytest

from asyncquery import parse_duration
from asyncquery.duration import parse_optional_duration


class TestParseDuration:
    """Tests for parse_duration function."""

    def test_milliseconds(self) -> None:
        """Test parsing milliseconds."""
        assert parse_duration("100ms") == 100
        assert parse_duration("0ms") == 0

    def test_seconds_and_minutes(self) -> None:
        """Test parsing seconds and minutes."""
        assert parse_duration("30s") == 30_000
        assert parse_duration("5m") == 300_000

    def test_hours_and_days(self) -> None:
        """Test parsing hours and days."""
        assert parse_duration("2h") == 7_200_000
        assert parse_duration("1d") == 86_400_000

    def test_number_passthrough(self) -> None:
        """Test that numbers pass through unchanged."""
        assert parse_duration(1000) == 1000
        assert parse_duration(12.5) == 12.5
        assert parse_duration(0) == 0

    def test_infinity_passthrough(self) -> None:
        """Test that infinity is accepted to disable timers."""
        assert parse_duration(math.inf) == math.inf

    def test_invalid_format(self) -> None:
        """Test that invalid formats raise ValueError."""
        for value in ("invalid", "10x", "s10", "", "10"):
            with pytest.raises(ValueError, match="Invalid duration"):
                parse_duration(value)

    def test_invalid_numbers(self) -> None:
        """Test that negative, NaN and boolean durations are rejected."""
        for value in (-1, math.nan, True):
            with pytest.raises(ValueError, match="Invalid duration"):
                parse_duration(value)

    def test_optional_none(self) -> None:
        """Test that None passes through as unset."""
        assert parse_optional_duration(None) is None
        assert parse_optional_duration("1s") == 1000
