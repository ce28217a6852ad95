"""
Logging formatter tests — request and entity fields passed through
``extra={...}`` reach the rendered record.
"""

import json
import logging
import sys

from portfolio.middleware.logging_config import JSONFormatter, ReadableFormatter


def _record(msg="Approval step approved", **extra):
    record = logging.LogRecord("portfolio.services.approval_service", logging.INFO, __file__, 1, msg, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    def test_entity_and_request_fields(self):
        line = JSONFormatter().format(_record(approval_request_id=7, step_order=2, request_id="abc", status=200))
        entry = json.loads(line)
        assert entry["message"] == "Approval step approved"
        assert entry["level"] == "INFO"
        assert entry["approval_request_id"] == 7
        assert entry["step_order"] == 2
        assert entry["request_id"] == "abc"
        assert entry["status"] == 200

    def test_unset_fields_are_omitted(self):
        entry = json.loads(JSONFormatter().format(_record()))
        assert "document_id" not in entry
        assert "request_id" not in entry

    def test_exception_is_rendered(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", (), sys.exc_info())
        entry = json.loads(JSONFormatter().format(record))
        assert "RuntimeError: boom" in entry["exception"]


class TestReadableFormatter:
    def test_ids_appended(self):
        line = ReadableFormatter(use_color=False).format(_record(profile_id=3, time_slot_id=11))
        assert line.endswith("Approval step approved (profile_id=3 time_slot_id=11)")
        assert "\033[" not in line

    def test_request_id_suffix(self):
        line = ReadableFormatter(use_color=False).format(_record(request_id="r-1"))
        assert line.endswith("[req r-1]")
