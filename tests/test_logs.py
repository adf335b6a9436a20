"""Tests for job logging setup."""
import json
import logging

import pytest

from automatch.utils.logs import JSONFormatter, setup_job_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers = handlers
    root.setLevel(level)


class TestJobLogging:
    """Tests for setup_job_logging and JSONFormatter."""

    def test_json_log_with_duration(self, tmp_path, restore_root_logger):
        log_file = setup_job_logging("unit_job", log_dir=tmp_path)
        logging.getLogger("automatch.test").info("done", extra={"duration": 1.5})

        for handler in restore_root_logger.handlers:
            handler.flush()

        entries = [json.loads(line) for line in log_file.read_text(encoding="utf-8").splitlines()]
        entry = entries[-1]
        assert entry["message"] == "done"
        assert entry["level"] == "INFO"
        assert entry["logger"] == "automatch.test"
        assert entry["duration_seconds"] == 1.5

    def test_no_duplicate_handlers(self, tmp_path, restore_root_logger):
        before = len(restore_root_logger.handlers)
        setup_job_logging("unit_job", log_dir=tmp_path)
        setup_job_logging("unit_job", log_dir=tmp_path)
        assert len(restore_root_logger.handlers) == before + 2

    def test_formatter_without_duration(self):
        record = logging.LogRecord("x", logging.WARNING, __file__, 1, "hello %s", ("world",), None)
        entry = json.loads(JSONFormatter().format(record))
        assert entry["message"] == "hello world"
        assert "duration_seconds" not in entry
