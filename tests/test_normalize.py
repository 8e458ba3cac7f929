"""Tests for normalize module."""

import json
import math
from datetime import datetime, timezone

import numpy as np

from conftest import make_candidate
from trade_fusion.utils.normalize import canonical_dumps, sanitize_for_json
from trade_fusion.utils.provenance import build_error_response, build_meta, build_provenance


class TestCanonicalDumps:
    """Tests for canonical_dumps function."""

    def test_sorted_keys(self):
        """Keys should be sorted at every level."""
        obj = {"z": 1, "a": 2, "m": {"z": 3, "a": 4}}
        assert canonical_dumps(obj) == '{"a":2,"m":{"a":4,"z":3},"z":1}'

    def test_minimal_separators(self):
        """Output should use minimal separators (no spaces)."""
        result = canonical_dumps({"a": [1, 2, 3]})
        assert result == '{"a":[1,2,3]}'
        assert " " not in result

    def test_tuples_as_lists(self):
        assert canonical_dumps({"levels": (95.0, 90.0)}) == '{"levels":[95.0,90.0]}'

    def test_unicode_preserved(self):
        """Unicode should be preserved (not escaped)."""
        assert "世界" in canonical_dumps({"note": "世界"})

    def test_non_finite_become_null(self):
        """NaN and inf are emitted as null rather than invalid JSON."""
        result = canonical_dumps({"nan": float("nan"), "inf": float("inf")})
        assert result == '{"inf":null,"nan":null}'
        assert json.loads(result) == {"inf": None, "nan": None}

    def test_key_order_insensitive(self):
        """Equal payloads built in different orders serialize identically."""
        a = {"symbol": "AAPL", "scores": {"risk": 0.6, "technical": 0.75}}
        b = {"scores": {"technical": 0.75, "risk": 0.6}, "symbol": "AAPL"}
        assert canonical_dumps(a) == canonical_dumps(b)


class TestSanitizeForJson:
    """Tests for sanitize_for_json function."""

    def test_nested_nan_sanitized(self):
        """NaN in nested structures should be sanitized."""
        raw = {"outer": {"inner": {"deep": float("nan")}, "list": [1.0, float("nan"), 3.0]}}
        result = sanitize_for_json(raw)
        assert result["outer"]["inner"]["deep"] is None
        assert result["outer"]["list"] == [1.0, None, 3.0]

    def test_negative_zero_normalized(self):
        """Negative zero should be normalized to positive zero."""
        result = sanitize_for_json({"values": [-0.0, 1.0]})
        assert math.copysign(1.0, result["values"][0]) > 0

    def test_bools_and_strings_untouched(self):
        assert sanitize_for_json({"passed": False, "id": "X"}) == {"passed": False, "id": "X"}

    def test_numpy_values_unwrapped(self):
        result = sanitize_for_json({"atr": np.float64(2.5), "levels": np.array([95.0, np.nan]), "n": np.int64(3)})
        assert result == {"atr": 2.5, "levels": [95.0, None], "n": 3}
        assert type(result["n"]) is int

    def test_datetimes_as_iso(self):
        as_of = datetime(2024, 3, 15, 14, 30, tzinfo=timezone.utc)
        assert sanitize_for_json({"as_of": as_of}) == {"as_of": "2024-03-15T14:30:00+00:00"}


class TestProvenance:
    """Tests for response metadata helpers."""

    def test_build_meta(self):
        meta = build_meta("validate_trade_card", 12.345)
        assert meta["tool"] == "validate_trade_card"
        assert meta["duration_ms"] == 12.3
        assert "engine_version" in meta
        assert "schema_version" in meta

    def test_build_meta_without_duration(self):
        assert "duration_ms" not in build_meta("fuse_candidates")

    def test_build_error_response(self):
        response = build_error_response("invalid_input", "bad strictness", symbol="AAPL")
        assert response["error"] is True
        assert response["error_type"] == "invalid_input"
        assert response["symbol"] == "AAPL"
        assert response["meta"]["tool"] == "error"

    def test_build_meta_context(self):
        """Run context is merged in; None values are dropped."""
        meta = build_meta("fusion_report", 1.0, cycle_id="2024-03-15", strictness=None)
        assert meta["cycle_id"] == "2024-03-15"
        assert "strictness" not in meta

    def test_build_error_response_details(self):
        details = [{"index": 0, "symbol": "BAD", "message": "current_price must be positive"}]
        response = build_error_response("invalid_input", "No valid candidates", details=details)
        assert response["details"] == details
        assert "details" not in build_error_response("invalid_input", "x")

    def test_build_provenance(self):
        candidate = make_candidate(scores={"technical": 0.8, "risk": 0.6})
        prov = build_provenance(candidate)
        assert prov["as_of"] == "2024-03-15T14:30:00+00:00"
        assert prov["sources_present"] == ["technical", "risk"]
        assert prov["sources_missing"] == ["sentiment", "sector", "anomaly", "earnings"]
        assert (prov["support_levels"], prov["resistance_levels"], prov["bars"]) == (2, 2, 0)
        assert prov["warnings"] == []

    def test_build_provenance_warnings(self):
        candidate = make_candidate(scores={}, support=(), resistance=())
        assert len(build_provenance(candidate)["warnings"]) == 2
