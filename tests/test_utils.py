"""Tests for utils module."""

import pytest

from spotify_analysis.utils import Colors, format_count, format_duration_ms, truncate_text


class TestFormatDuration:
    """Tests for format_duration_ms function."""

    @pytest.mark.parametrize(
        "ms,expected",
        [
            (None, "0s"),
            (0, "0s"),
            (999, "1s"),
            (45_000, "45s"),
            (150_000, "2.5m"),
            (5_400_000, "1.5h"),
        ],
    )
    def test_units(self, ms, expected):
        assert format_duration_ms(ms) == expected


class TestFormatCount:
    """Tests for format_count function."""

    def test_small(self):
        assert format_count(999) == "999"

    def test_thousands(self):
        assert format_count(1234) == "1.2K"

    def test_millions(self):
        assert format_count(3_400_000) == "3.4M"


class TestTruncateText:
    """Tests for truncate_text function."""

    def test_short_text_unchanged(self):
        assert truncate_text("Song", 10) == "Song"

    def test_long_text_gets_ellipsis(self):
        result = truncate_text("a" * 60, 20)
        assert len(result) == 20
        assert result.endswith("...")

    def test_none(self):
        assert truncate_text(None) == ""


class TestColors:
    """Tests for Colors class."""

    def test_endc_resets(self):
        assert Colors.ENDC == "\033[0m"
