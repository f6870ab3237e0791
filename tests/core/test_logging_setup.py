"""
Tests for etfspine.core.logging.

Tests verify:
- JSON output carries ECS field names and service metadata
- DEBUG events are suppressed at INFO level
- Document payloads are summarised; decimals and dates become strings
- LogContext binds values and restores outer values on exit
"""

import datetime
import json
from decimal import Decimal

import structlog

from etfspine import __version__
from etfspine.core.logging import (
    LogContext,
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    unbind_context,
)


def _last_json(stderr: str) -> dict:
    lines = [line for line in stderr.splitlines() if line.strip()]
    return json.loads(lines[-1])


class TestConfigureLogging:
    def teardown_method(self):
        clear_context()
        configure_logging(level="WARNING", json_format=False)

    def test_json_fields(self, capsys):
        configure_logging(level="INFO", json_format=True, service="etfspine-test")
        get_logger("etfspine.test").info("document_inserted", collection="etfs", document_id=7)

        record = _last_json(capsys.readouterr().err)
        assert record["event"] == "document_inserted"
        assert record["collection"] == "etfs"
        assert record["document_id"] == 7
        assert record["log.level"] == "info"
        assert record["service.name"] == "etfspine-test"
        assert record["service.version"] == __version__
        assert record["logger"] == "etfspine.test"
        assert "@timestamp" in record

    def test_debug_suppressed_at_info(self, capsys):
        configure_logging(level="INFO", json_format=True)
        get_logger("etfspine.test").debug("noisy")
        assert "noisy" not in capsys.readouterr().err

    def test_context_is_merged(self, capsys):
        configure_logging(level="INFO", json_format=True)
        with LogContext(migration_id="01TEST"):
            get_logger("etfspine.test").info("batch_loaded", rows=3)
        record = _last_json(capsys.readouterr().err)
        assert record["migration_id"] == "01TEST"

    def test_documents_summarised(self, capsys):
        configure_logging(level="INFO", json_format=True)
        get_logger("etfspine.test").warning(
            "row_rejected", raw_data={"_id": 4, "name": "Lowercase Bank", "country_code": "us"}
        )
        record = _last_json(capsys.readouterr().err)
        assert record["raw_data"] == {"_id": 4, "fields": ["country_code", "name"]}

    def test_values_stringified(self, capsys):
        configure_logging(level="INFO", json_format=True)
        get_logger("etfspine.test").info(
            "etf_checked", ter=Decimal("0.00030"), as_of=datetime.date(2024, 6, 30)
        )
        record = _last_json(capsys.readouterr().err)
        assert record["ter"] == "0.00030"
        assert record["as_of"] == "2024-06-30"


class TestContextManagement:
    def setup_method(self):
        clear_context()

    def teardown_method(self):
        clear_context()

    def test_bind_and_unbind(self):
        bind_context(collection="etfs", run="r1")
        unbind_context("run")
        assert structlog.contextvars.get_contextvars() == {"collection": "etfs"}

    def test_log_context_scopes_values(self):
        with LogContext(migration_id="abc"):
            assert structlog.contextvars.get_contextvars()["migration_id"] == "abc"
        assert "migration_id" not in structlog.contextvars.get_contextvars()

    def test_nested_log_context_restores_outer_value(self):
        with LogContext(collection="etfs", migration_id="run-1"):
            with LogContext(collection="holdings"):
                assert structlog.contextvars.get_contextvars() == {
                    "collection": "holdings",
                    "migration_id": "run-1",
                }
            assert structlog.contextvars.get_contextvars()["collection"] == "etfs"
        assert structlog.contextvars.get_contextvars() == {}
