"""
Tests for the engine tracer.

Covers:
- Fingerprint stability and sensitivity
- LEDGER_ENGINE_TRACE record emitted per call
"""

from datetime import date
from decimal import Decimal

import pytest

from ledger_engines.recurrence import Frequency, next_occurrence
from ledger_engines.tracer import TRACE_MESSAGE, compute_input_fingerprint, traced_engine


class TestInputFingerprint:
    def test_same_inputs_same_fingerprint(self):
        kwargs = {"as_of_date": date(2024, 6, 30), "amount": Decimal("10.00")}

        first = compute_input_fingerprint(("as_of_date", "amount"), kwargs)
        second = compute_input_fingerprint(("as_of_date", "amount"), dict(kwargs))

        assert first == second
        assert len(first) == 16

    def test_different_inputs_differ(self):
        a = compute_input_fingerprint(("as_of_date",), {"as_of_date": date(2024, 6, 30)})
        b = compute_input_fingerprint(("as_of_date",), {"as_of_date": date(2024, 7, 1)})

        assert a != b

    def test_enum_and_value_fingerprint_alike(self):
        a = compute_input_fingerprint(("frequency",), {"frequency": Frequency.MONTHLY})
        b = compute_input_fingerprint(("frequency",), {"frequency": "monthly"})

        assert a == b

    def test_missing_field_is_null(self):
        a = compute_input_fingerprint(("missing",), {})
        b = compute_input_fingerprint(("missing",), {"missing": None})

        assert a == b


class TestTracedEngine:
    def test_emits_trace_record(self, captured_logs):
        next_occurrence(current=date(2024, 1, 31), frequency=Frequency.MONTHLY)

        traces = [r for r in captured_logs() if r["message"] == TRACE_MESSAGE]
        assert len(traces) == 1
        record = traces[0]
        assert record["engine_name"] == "recurrence"
        assert record["engine_version"] == "1.0"
        assert len(record["input_fingerprint"]) == 16
        assert record["duration_ms"] >= 0

    def test_no_trace_when_engine_raises(self, captured_logs):
        @traced_engine("failing", "0.1")
        def explode():
            raise ValueError("boom")

        with pytest.raises(ValueError):
            explode()

        assert not [r for r in captured_logs() if r["message"] == TRACE_MESSAGE]

    def test_wrapped_function_keeps_name(self):
        assert next_occurrence.__name__ == "next_occurrence"
