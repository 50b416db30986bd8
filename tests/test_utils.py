"""
Tests for the primitive cell coercions and the rules file.
"""

import json
from datetime import datetime

import pytest

from attendance_core import utils
from attendance_core.utils import (
    cell_text, load_json, parse_boolean, parse_number, parse_percent, percent, round_half_up,
)


class TestParseNumber:
    """Tests for parse_number()."""

    def test_numeric_values(self):
        assert parse_number(42) == 42
        assert parse_number(4.5) == 4.5
        assert parse_number("12") == 12

    def test_thousands_and_percent_are_stripped(self):
        assert parse_number("1,234") == 1234
        assert parse_number("85%") == 85
        assert parse_number(" 2,500.5 ") == 2500.5

    def test_empty_and_garbage_become_zero(self):
        for v in (None, "", "   ", "n/a", "abc", float("nan")):
            assert parse_number(v) == 0, f"Expected 0 for {v!r}"

    def test_trailing_text_is_unparseable(self):
        assert parse_number("12 classes") == 0

    def test_lenient_keeps_leading_number(self):
        assert parse_number("12 sessions", lenient=True) == 12
        assert parse_number("n/a", lenient=True) == 0

    def test_integral_float_returns_int(self):
        assert isinstance(parse_number(7.0), int)


class TestParsePercent:
    """Fraction vs percentage heuristic."""

    def test_fraction_is_scaled(self):
        assert parse_percent(0.85) == 85
        assert parse_percent("0.85") == 85

    def test_percentage_kept(self):
        assert parse_percent(85) == 85
        assert parse_percent("85%") == 85
        assert parse_percent("50%") == 50

    def test_one_is_a_fraction(self):
        assert parse_percent(1) == 100

    def test_rounding_is_half_up(self):
        assert parse_percent(84.5) == 85
        assert parse_percent(0.125) == 13

    def test_garbage_is_zero(self):
        assert parse_percent(None) == 0
        assert parse_percent("--") == 0

    def test_clamped_to_0_100(self):
        assert parse_percent("-0.5") == 0
        assert parse_percent("150") == 100
        assert parse_percent(-20) == 0

    def test_leading_number_accepted(self):
        assert parse_percent("85% of sessions") == 85


class TestParseBoolean:

    def test_true_values(self):
        for v in ("yes", "Yes", " TRUE ", "1", 1, True):
            assert parse_boolean(v) is True, f"Expected True for {v!r}"

    def test_false_values(self):
        for v in ("no", "", None, "0", "y", 0, "enrolled"):
            assert parse_boolean(v) is False, f"Expected False for {v!r}"


class TestRounding:

    def test_round_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(3.5) == 4
        assert round_half_up(2.4999) == 2
        assert round_half_up(-2.5) == -2

    def test_percent_guards_zero(self):
        assert percent(5, 0) == 0
        assert percent(1, 3) == 33
        assert percent(2, 3) == 67


class TestCellText:

    def test_render(self):
        assert cell_text(None) == ""
        assert cell_text(12.0) == "12"
        assert cell_text(datetime(2025, 9, 1)) == "Sep 01"
        assert cell_text("Yes ") == "Yes "


class TestRules:

    def test_defaults_loaded(self):
        assert utils.AT_RISK_THRESHOLD == 60
        assert utils.ACADEMIC_YEAR_START == 2025
        assert utils.RULES["insights"]["district_gap_pp"] == 15

    def test_override_file(self, tmp_path, monkeypatch):
        custom = tmp_path / "rules.json"
        custom.write_text(json.dumps({"academic_year_start": 2026, "insights": {"district_gap_pp": 20}}))
        monkeypatch.setenv(utils.RULES_ENV, str(custom))

        rules = utils.load_rules()
        assert rules["academic_year_start"] == 2026
        assert rules["insights"]["district_gap_pp"] == 20
        # untouched keys keep their defaults
        assert rules["insights"]["high_risk_share"] == 0.35
        assert rules["at_risk_threshold"] == 60

    def test_load_json_missing_file(self, tmp_path):
        assert load_json(tmp_path / "missing.json", {"x": 1}) == {"x": 1}
