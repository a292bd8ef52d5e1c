"""
Engine tracing.

Verifies:
- One ITC_ENGINE_TRACE record per call, carrying name and version
- Fingerprints ignore call style and argument order, but not values
"""

from datetime import date
from decimal import Decimal

from itc_engines.tracer import compute_input_fingerprint, traced_engine
from itc_kernel.domain.values import Money


@traced_engine("sample", "2.1", fingerprint_fields=("amount", "as_of"))
def _sample_engine(amount, as_of, note=None):
    return amount


class TestTracedEngine:
    def test_trace_record(self, captured_logs):
        assert _sample_engine(Money.of("10"), date(2024, 4, 1)) == Money.of("10")

        traces = [r for r in captured_logs() if r["message"] == "ITC_ENGINE_TRACE"]
        assert len(traces) == 1
        assert traces[0]["engine_name"] == "sample"
        assert traces[0]["engine_version"] == "2.1"
        assert traces[0]["function"] == "_sample_engine"
        assert len(traces[0]["input_fingerprint"]) == 16

    def test_positional_and_keyword_calls_match(self, captured_logs):
        _sample_engine(Money.of("10"), date(2024, 4, 1))
        _sample_engine(as_of=date(2024, 4, 1), amount=Money.of("10"), note="ignored")

        prints = [
            r["input_fingerprint"]
            for r in captured_logs()
            if r["message"] == "ITC_ENGINE_TRACE"
        ]
        assert prints[0] == prints[1]


class TestFingerprint:
    def test_sensitive_to_values(self):
        fields = ("amount",)
        assert compute_input_fingerprint(
            fields, {"amount": Decimal("1")}
        ) != compute_input_fingerprint(fields, {"amount": Decimal("2")})

    def test_missing_argument_is_null(self):
        assert compute_input_fingerprint(("x",), {}) == compute_input_fingerprint(
            ("x",), {"x": None}
        )
