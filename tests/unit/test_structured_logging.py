"""Tests for the structured JSON logger and the no-op metrics hook."""

from __future__ import annotations

import io
import json
import logging
import sys

from crosspost.errors import ErrorCode
from crosspost.observability import (
    MetricsHook,
    NoopMetricsHook,
    StructuredFormatter,
    bound_fields,
    get_logger,
    log_context,
)


def make_record(msg="hello", **kwargs) -> logging.LogRecord:
    record = logging.LogRecord("crosspost.test", logging.INFO, __file__, 1, msg, None, None)
    for key, value in kwargs.items():
        setattr(record, key, value)
    return record


class TestStructuredFormatter:
    def test_guaranteed_keys(self):
        entry = json.loads(StructuredFormatter().format(make_record()))
        assert entry["level"] == "INFO"
        assert entry["logger"] == "crosspost.test"
        assert entry["message"] == "hello"
        assert "ts" in entry

    def test_extra_fields_merged(self):
        record = make_record(extra_fields={"platform": "substack", "job_id": 3})
        entry = json.loads(StructuredFormatter().format(record))
        assert entry["platform"] == "substack"
        assert entry["job_id"] == 3

    def test_error_code_logged_by_value(self):
        record = make_record(extra_fields={"error_code": ErrorCode.TIMEOUT})
        entry = json.loads(StructuredFormatter().format(record))
        assert entry["error_code"] == "TIMEOUT"

    def test_secrets_redacted(self):
        record = make_record(extra_fields={"app_secret": "abcdefgh1234", "cookie": "sid=1"})
        entry = json.loads(StructuredFormatter().format(record))
        assert entry["app_secret"] == "<redacted:...1234>"
        assert entry["cookie"] == "<redacted>"

    def test_unicode_not_escaped(self):
        assert "你好" in StructuredFormatter().format(make_record("你好"))

    def test_exception_serialised(self):
        try:
            raise ValueError("boom")
        except ValueError:
            record = make_record(exc_info=sys.exc_info())
        entry = json.loads(StructuredFormatter().format(record))
        assert "ValueError: boom" in entry["exception"]


class TestGetLogger:
    def test_idempotent_handlers(self):
        stream = io.StringIO()
        first = get_logger("crosspost.test.idempotent", stream=stream)
        second = get_logger("crosspost.test.idempotent")
        assert first is second
        assert len(first.handlers) == 1
        first.info("x", extra={"extra_fields": {"k": "v"}})
        assert json.loads(stream.getvalue())["k"] == "v"

    def test_string_level(self):
        logger = get_logger("crosspost.test.level", level="warning", stream=io.StringIO())
        assert logger.level == logging.WARNING


class TestNoopMetricsHook:
    def test_satisfies_protocol(self):
        hook = NoopMetricsHook()
        assert isinstance(hook, MetricsHook)
        hook.increment("a", tags={"x": "y"})
        hook.timing("b", 1.5)
        hook.gauge("c", 2)


class TestLogContext:
    def test_bound_fields_added_to_records(self):
        with log_context(page_id="p1", platform="substack"):
            entry = json.loads(StructuredFormatter().format(make_record()))
        assert entry["page_id"] == "p1"
        assert entry["platform"] == "substack"
        assert "page_id" not in json.loads(StructuredFormatter().format(make_record()))

    def test_nested_contexts_merge(self):
        with log_context(page_id="p1", platform="al-folio"):
            with log_context(platform="substack"):
                assert bound_fields() == {"page_id": "p1", "platform": "substack"}
            assert bound_fields()["platform"] == "al-folio"
        assert bound_fields() == {}

    def test_record_fields_override_bound(self):
        with log_context(platform="al-folio"):
            record = make_record(extra_fields={"platform": "wechat-official"})
            entry = json.loads(StructuredFormatter().format(record))
        assert entry["platform"] == "wechat-official"
