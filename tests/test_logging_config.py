"""
test_logging_config.py — Log formatters and request-ID propagation.

Run with:
    pytest tests/test_logging_config.py -v
"""

from __future__ import annotations

import json
import logging

from floodwatch.core.logging_config import (
    JSONFormatter,
    PrettyFormatter,
    bind_request_id,
    current_request_id,
    reset_request_id,
)


def _make_record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        "floodwatch.alerts.engine", logging.INFO, __file__, 1,
        "Cluster at %s rejected", ("Zoo Road",), None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:

    def test_trace_fields_copied(self):
        line = json.loads(JSONFormatter().format(
            _make_record(area_name="Zoo Road", confidence=2, unrelated="x"),
        ))
        assert line["message"] == "Cluster at Zoo Road rejected"
        assert line["area_name"] == "Zoo Road"
        assert line["confidence"] == 2
        assert "unrelated" not in line
        assert "request_id" not in line

    def test_request_id_included_while_bound(self):
        token = bind_request_id("abc123")
        try:
            line = json.loads(JSONFormatter().format(_make_record()))
        finally:
            reset_request_id(token)

        assert line["request_id"] == "abc123"
        assert current_request_id() is None


class TestPrettyFormatter:

    def test_area_and_request_id_shown(self):
        token = bind_request_id("0123456789abcdef")
        try:
            text = PrettyFormatter().format(_make_record(area_name="GS Road"))
        finally:
            reset_request_id(token)

        assert "[01234567]" in text
        assert "<GS Road>" in text
        assert "Cluster at Zoo Road rejected" in text
