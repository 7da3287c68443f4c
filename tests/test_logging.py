"""Tests for structured broker logging."""

import json
import logging
import pytest

from capbroker.core.logging import BrokerLogger, ColoredFormatter, JSONFormatter


class ListHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records: list[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)


@pytest.fixture
def captured():
    logger = logging.getLogger("capbroker.test_logging")
    handler = ListHandler()
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    yield BrokerLogger("test_logging", logger), handler.records
    logger.removeHandler(handler)


def test_context_fields_become_attributes(captured):
    log, records = captured

    log.info("Script cached", component="cache", cache_id="ab12", generated_by="template")

    [record] = records
    assert record.component == "cache"
    assert record.cache_id == "ab12"
    assert record.extra_data == {"generated_by": "template"}


def test_json_formatter(captured):
    log, records = captured
    log.tool_executed("uia_click", "uiAction", success=False, duration_ms=12.5)

    entry = json.loads(JSONFormatter().format(records[0]))

    assert entry["level"] == "WARNING"
    assert entry["logger"] == "capbroker.test_logging"
    assert entry["message"] == "Tool failed: uia_click"
    assert entry["tool"] == "uia_click"
    assert entry["success"] is False
    assert entry["duration_ms"] == 12.5
    assert entry["timestamp"].endswith("+00:00")


def test_colored_formatter(captured):
    log, records = captured
    log.scan_completed("shortcuts", 3, duration_ms=41.7)
    log.info("Catalog built")

    scanned = ColoredFormatter().format(records[0])
    plain = ColoredFormatter().format(records[1])

    assert "[scanner] Scanner shortcuts discovered 3 tools (time=42ms)" in scanned
    assert scanned.startswith("\033[32m[")
    assert plain.endswith("INFO    \033[0m Catalog built")
