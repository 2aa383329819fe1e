"""Tests for the engine tracer decorator and input fingerprints."""

from decimal import Decimal

import pytest

from pricing_engines.tracer import compute_input_fingerprint, traced_engine
from pricing_kernel.domain.billing import BillingMethod
from pricing_kernel.domain.proposal import LineItem


class TestFingerprint:
    def test_deterministic(self):
        kwargs = {"items": [LineItem(amount="900")], "method": BillingMethod.HOURLY}
        first = compute_input_fingerprint(("items", "method"), kwargs)
        assert first == compute_input_fingerprint(("items", "method"), dict(kwargs))
        assert len(first) == 16

    def test_decimal_scale_does_not_matter(self):
        a = compute_input_fingerprint(("amount",), {"amount": Decimal("900")})
        b = compute_input_fingerprint(("amount",), {"amount": Decimal("900.00")})
        assert a == b

    def test_mapping_order_does_not_matter(self):
        a = compute_input_fingerprint(("table",), {"table": {"a": 1, "b": 2}})
        b = compute_input_fingerprint(("table",), {"table": {"b": 2, "a": 1}})
        assert a == b

    def test_values_change_fingerprint(self):
        a = compute_input_fingerprint(("items",), {"items": [LineItem(amount="900")]})
        b = compute_input_fingerprint(("items",), {"items": [LineItem(amount="901")]})
        assert a != b

    def test_missing_field_is_null(self):
        assert compute_input_fingerprint(("x",), {}) == compute_input_fingerprint(("x",), {"x": None})


class TestTracedEngine:
    def test_emits_trace_and_returns_result(self, captured_logs):
        @traced_engine("doubler", "2.1", fingerprint_fields=("value",))
        def double(*, value):
            return value * 2

        assert double(value=Decimal("21")) == Decimal("42")
        trace = next(r for r in captured_logs() if r["message"] == "PRICING_ENGINE_TRACE")
        assert trace["engine_name"] == "doubler"
        assert trace["engine_version"] == "2.1"
        assert trace["function"].endswith("double")
        assert trace["input_fingerprint"] == compute_input_fingerprint(
            ("value",), {"value": Decimal("21")}
        )

    def test_no_fingerprint_fields(self, captured_logs):
        @traced_engine("noop", "1.0")
        def noop():
            return None

        noop()
        trace = next(r for r in captured_logs() if r["message"] == "PRICING_ENGINE_TRACE")
        assert trace["input_fingerprint"] == ""

    def test_positional_and_keyword_calls_match(self, captured_logs):
        @traced_engine("adder", "1.0", fingerprint_fields=("a", "b"))
        def add(a, b):
            return a + b

        add(Decimal("1"), Decimal("2"))
        add(a=Decimal("1.0"), b=Decimal("2"))
        traces = [r for r in captured_logs() if r["message"] == "PRICING_ENGINE_TRACE"]
        assert traces[0]["input_fingerprint"] == traces[1]["input_fingerprint"]

    def test_error_is_traced_and_reraised(self, captured_logs):
        @traced_engine("failing", "1.0")
        def fail():
            raise ValueError("bad input")

        with pytest.raises(ValueError, match="bad input"):
            fail()
        trace = next(r for r in captured_logs() if r["message"] == "PRICING_ENGINE_TRACE")
        assert trace["outcome"] == "error"
