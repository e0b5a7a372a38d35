"""Tests for logging setup and the query logger."""

import json
import logging

import pytest

from cloudtables.lib.logging import JSONFormatter, get_query_logger, setup_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    level = root.level
    yield root
    # Clean up handlers
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
    root.setLevel(level)


class TestJSONFormatter:
    """Tests for JSON log output."""

    def test_fields_and_extra(self):
        """Records become JSON with extra fields nested."""
        record = logging.LogRecord("cloudtables.lib.query", logging.INFO, __file__, 1, "rows=%d", (3,), None)
        record.table = "aws_route53"

        data = json.loads(JSONFormatter().format(record))

        assert data["level"] == "INFO"
        assert data["logger"] == "cloudtables.lib.query"
        assert data["message"] == "rows=3"
        assert data["extra"] == {"table": "aws_route53"}
        assert data["timestamp"].endswith("Z")

    def test_exclude_fields(self):
        """Excluded extra fields are dropped."""
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "m", (), None)
        record.secret = "s"
        data = json.loads(JSONFormatter(exclude_fields=["secret"]).format(record))
        assert "extra" not in data


class TestQueryLogger:
    """Tests for the context-carrying logger."""

    def test_context_on_records(self, caplog):
        """Context fields ride along on every record."""
        qlog = get_query_logger("cloudtables.test")
        qlog.set_context(table="aws_cost_by_service", strategy="list")

        with caplog.at_level(logging.INFO, logger="cloudtables.test"):
            qlog.info("Streaming %s", "items")

        record = caplog.records[-1]
        assert record.getMessage() == "Streaming items"
        assert record.table == "aws_cost_by_service"
        assert record.strategy == "list"

    def test_metric(self, caplog):
        """Metrics are logged with name, value and unit."""
        qlog = get_query_logger("cloudtables.test")

        with caplog.at_level(logging.INFO, logger="cloudtables.test"):
            qlog.metric("pages_fetched", 3, unit="pages")

        record = caplog.records[-1]
        assert record.getMessage() == "METRIC pages_fetched=3"
        assert record.metric_name == "pages_fetched"
        assert record.metric_value == 3
        assert record.metric_unit == "pages"

    def test_clear_context(self):
        """Context can be reset."""
        qlog = get_query_logger("cloudtables.test")
        qlog.set_context(table="t")
        qlog.clear_context()
        assert qlog.context == {}


class TestSetupLogging:
    """Tests for CLI logging configuration."""

    def test_verbose_level_and_stderr(self, restore_root_logger):
        """Verbose logging is DEBUG on a single stderr handler."""
        setup_logging(verbose=True)
        root = restore_root_logger
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert logging.getLogger("botocore").level == logging.WARNING

    def test_json_and_file(self, restore_root_logger, tmp_path):
        """JSON format applies to the console and log file handlers."""
        log_file = tmp_path / "cloudtables.log"
        setup_logging(json_format=True, log_file=str(log_file))

        logging.getLogger("cloudtables.test").info("hello")
        for handler in restore_root_logger.handlers:
            handler.flush()

        assert len(restore_root_logger.handlers) == 2
        assert all(isinstance(h.formatter, JSONFormatter) for h in restore_root_logger.handlers)
        assert json.loads(log_file.read_text().splitlines()[-1])["message"] == "hello"
