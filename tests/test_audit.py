"""Tests for the append-only audit trail and logging helpers."""

import json
import logging
from unittest.mock import MagicMock

from autonomy.audit import AuditCategory, AuditTrail
from autonomy.logging_config import (
    CorrelationContext,
    JSONFormatter,
    StructuredFormatter,
    get_cycle_id,
    short_address,
)


class TestAuditTrail:
    """Tests for JSONL audit records."""

    def test_append_and_read(self, tmp_path):
        trail = AuditTrail(tmp_path / "nested" / "mission.jsonl")

        trail.record(AuditCategory.OUTCOME, "none", {"tier": "nominal"})
        trail.record(AuditCategory.OUTCOME, "stabilize", {"tier": "stabilizing"}, success=False)

        entries = trail.read()
        assert [e["action"] for e in entries] == ["none", "stabilize"]
        assert entries[1]["success"] is False
        assert entries[0]["category"] == "outcome"

    def test_records_cycle_id(self, tmp_path):
        trail = AuditTrail(tmp_path / "mission.jsonl")
        with CorrelationContext("abc123"):
            trail.record(AuditCategory.TRIBUTE, "tribute_sent", {})
        assert trail.read()[0]["cycle_id"] == "abc123"

    def test_skips_corrupt_lines(self, tmp_path):
        path = tmp_path / "mission.jsonl"
        trail = AuditTrail(path)
        trail.record(AuditCategory.OUTCOME, "none", {})
        with open(path, "a") as f:
            f.write("{truncated\n")
        trail.record(AuditCategory.OUTCOME, "invest", {})

        assert [e["action"] for e in trail.read()] == ["none", "invest"]
        assert [e["action"] for e in trail.read(limit=1)] == ["invest"]

    def test_missing_file(self, tmp_path):
        assert AuditTrail(tmp_path / "absent.jsonl").read() == []


class TestLoggingHelpers:
    """Tests for correlation ids and formatting."""

    def test_correlation_context_resets(self):
        assert get_cycle_id() is None
        with CorrelationContext() as ctx:
            assert get_cycle_id() == ctx.cycle_id
            assert len(ctx.cycle_id) == 12
        assert get_cycle_id() is None

    def test_json_formatter_includes_cycle_id(self):
        record = logging.LogRecord("autonomy.engine", logging.INFO, __file__, 1, "Vitals ok", None, None)
        with CorrelationContext("cycle-1"):
            data = json.loads(JSONFormatter(extra_fields={"service": "automaton"}).format(record))
        assert data["cycle_id"] == "cycle-1"
        assert data["service"] == "automaton"
        assert data["message"] == "Vitals ok"

    def test_color_follows_handler_stream(self):
        """Test colour is decided by the stream the handler writes to."""
        record = logging.LogRecord("autonomy.engine", logging.WARNING, __file__, 1, "Low SOL", None, None)
        tty = MagicMock()
        tty.isatty.return_value = True
        pipe = MagicMock()
        pipe.isatty.return_value = False

        assert "\033[33m" in StructuredFormatter(use_color=True, stream=tty).format(record)
        assert "\033[" not in StructuredFormatter(use_color=True, stream=pipe).format(record)
        assert "\033[" not in StructuredFormatter(use_color=False, stream=tty).format(record)

    def test_short_address(self):
        assert short_address("9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM") == "9WzDXwBb..."
        assert short_address(None) == "-"
