"""
Tests for structured logging helpers.
"""

from __future__ import annotations

import json
import logging

from dlcache.logging import (
    ContextLogger,
    JSONFormatter,
    get_cache_key,
    get_logger,
    get_request_id,
    log_context,
)


class ListHandler(logging.Handler):
    def __init__(self) -> None:
        super().__init__(logging.DEBUG)
        self.records: list[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)


class TestLogContext:
    def test_sets_and_restores(self) -> None:
        with log_context(request_id="req1", cache_key="abc"):
            assert get_request_id() == "req1"
            assert get_cache_key() == "abc"
            with log_context(cache_key="def"):
                assert get_request_id() == "req1"
                assert get_cache_key() == "def"
            assert get_cache_key() == "abc"

        assert get_request_id() is None
        assert get_cache_key() is None


class TestContextLogger:
    def test_keyword_arguments_become_extra(self) -> None:
        base = logging.getLogger("dlcache.tests.extra")
        base.setLevel(logging.DEBUG)
        handler = ListHandler()
        base.addHandler(handler)
        try:
            logger = ContextLogger(base)
            with log_context(request_id="req1", cache_key="abc"):
                logger.info("Cache miss", identity="u1")
        finally:
            base.removeHandler(handler)

        record = handler.records[0]
        assert record.getMessage() == "Cache miss"
        assert record.extra == {"request_id": "req1", "cache_key": "abc", "identity": "u1"}

    def test_percent_in_message_without_args(self) -> None:
        base = logging.getLogger("dlcache.tests.percent")
        base.setLevel(logging.DEBUG)
        handler = ListHandler()
        base.addHandler(handler)
        try:
            ContextLogger(base).info("[download]  42.0% of 10MiB")
        finally:
            base.removeHandler(handler)

        assert handler.records[0].getMessage() == "[download]  42.0% of 10MiB"

    def test_get_logger_namespaces_names(self) -> None:
        assert get_logger("custom").name == "dlcache.custom"
        assert get_logger("dlcache.cache.index").name == "dlcache.cache.index"


class TestJSONFormatter:
    def test_formats_context_and_extra(self) -> None:
        record = logging.LogRecord(
            "dlcache.test", logging.INFO, __file__, 1, "Cache hit", None, None
        )
        record.extra = {"identity": "u1"}

        with log_context(request_id="req1", cache_key="abc"):
            payload = json.loads(JSONFormatter().format(record))

        assert payload["level"] == "INFO"
        assert payload["message"] == "Cache hit"
        assert payload["request_id"] == "req1"
        assert payload["cache_key"] == "abc"
        assert payload["extra"] == {"identity": "u1"}
