"""Tests for numeric and categorical coercion helpers."""

import math

import pytest

from trade_fusion.utils.validators import clamp, clamp_unit, coerce_choice, coerce_float, coerce_str_list


class TestCoerceFloat:
    """Tests for coerce_float function."""

    @pytest.mark.parametrize("value,expected", [(1, 1.0), ("2.5", 2.5), (0.0, 0.0), (-3, -3.0)])
    def test_numbers(self, value, expected) -> None:
        assert coerce_float(value) == expected

    @pytest.mark.parametrize("value", [None, True, False, "abc", [], math.nan, math.inf, -math.inf])
    def test_unusable(self, value) -> None:
        """Bools, junk and non-finite values are rejected."""
        assert coerce_float(value) is None


class TestClamp:
    """Tests for clamp and clamp_unit functions."""

    def test_clamp(self) -> None:
        assert clamp(1.7) == 1.0
        assert clamp(-0.2) == 0.0
        assert clamp(5.0, 0.0, 10.0) == 5.0

    def test_clamp_unit_default(self) -> None:
        """Unusable input gives the default, not an exception."""
        assert clamp_unit("bad") == 0.0
        assert clamp_unit(None, default=0.5) == 0.5
        assert clamp_unit("0.8") == 0.8
        assert clamp_unit(math.nan) == 0.0


class TestCoerceChoice:
    """Tests for coerce_choice function."""

    def test_exact_and_case_insensitive(self) -> None:
        grades = ("A", "B", "C")
        assert coerce_choice("B", grades) == "B"
        assert coerce_choice(" b ", grades) == "B"

    def test_default(self) -> None:
        assert coerce_choice("Z", ("A", "B"), "B") == "B"
        assert coerce_choice(None, ("A", "B")) is None


class TestCoerceStrList:
    """Tests for coerce_str_list function."""

    def test_list(self) -> None:
        assert coerce_str_list(["a", " b ", "", None, 3]) == ["a", "b", "3"]

    def test_single_string(self) -> None:
        assert coerce_str_list("Volume") == ["Volume"]

    def test_limit(self) -> None:
        assert coerce_str_list([str(i) for i in range(20)], limit=3) == ["0", "1", "2"]

    def test_other_types(self) -> None:
        assert coerce_str_list({"a": 1}) == []
        assert coerce_str_list(None) == []
