"""Tests for structured logging."""

import json
import logging

from provider_sync.utils.logging import ConsoleFormatter, JSONFormatter, LogContext, setup_logging


def make_record(message="Cleaned orphaned instance", **fields):
    record = logging.LogRecord("provider_sync.cleaner", logging.INFO, __file__, 1, message, None, None)
    for key, value in fields.items():
        setattr(record, key, value)
    return record


class TestFormatters:
    def test_json_includes_structured_fields(self):
        record = make_record(provider_id=1, instance_name="vm-b", unrelated="x")

        data = json.loads(JSONFormatter().format(record))

        assert data["level"] == "INFO"
        assert data["message"] == "Cleaned orphaned instance"
        assert data["provider_id"] == 1
        assert data["instance_name"] == "vm-b"
        assert "unrelated" not in data

    def test_console_prefixes(self):
        line = ConsoleFormatter().format(make_record(provider_name="aws-east", instance_name="vm-b"))
        assert "<aws-east> [vm-b] Cleaned orphaned instance" in line


class TestLogContext:
    def test_adds_fields_inside_block_only(self):
        factory = logging.getLogRecordFactory()

        with LogContext(provider_name="aws-east", job_id="job-1"):
            record = logging.getLogRecordFactory()("x", logging.INFO, __file__, 1, "msg", None, None)
            assert record.provider_name == "aws-east"
            assert record.job_id == "job-1"

        assert logging.getLogRecordFactory() is factory


class TestSetupLogging:
    def test_writes_json_lines(self, tmp_path):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        try:
            setup_logging("info", str(tmp_path))
            logging.getLogger("provider_sync.test").info("hello", extra={"provider_id": 7})
            for handler in root.handlers:
                handler.flush()

            files = list(tmp_path.glob("provider-sync-*.jsonl"))
            assert len(files) == 1
            entry = json.loads(files[0].read_text().strip().splitlines()[-1])
            assert entry["message"] == "hello"
            assert entry["provider_id"] == 7
            assert logging.getLogger("botocore").level == logging.WARNING
        finally:
            for handler in root.handlers:
                handler.close()
            root.handlers[:] = handlers
            root.setLevel(level)
