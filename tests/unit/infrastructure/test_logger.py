"""Unit tests for logging setup."""

import json
import logging

from tsk.infrastructure.logger import get_logger, setup_logging


def _flush_root_handlers() -> None:
    for handler in logging.getLogger().handlers:
        handler.flush()


class TestSetupLogging:
    def test_log_file_receives_json_events(self, tmp_path):
        log_file = tmp_path / "logs" / "tsk.log"
        setup_logging("INFO", log_file)

        get_logger("tsk.tests").info("task_created", task_id="abc123")
        _flush_root_handlers()

        event = json.loads(log_file.read_text().splitlines()[-1])
        assert event["event"] == "task_created"
        assert event["task_id"] == "abc123"
        assert event["level"] == "info"

    def test_level_filters_events(self, tmp_path):
        log_file = tmp_path / "tsk.log"
        setup_logging("WARNING", log_file)

        logger = get_logger("tsk.tests")
        logger.info("store_initialized")
        logger.warning("store_busy")
        _flush_root_handlers()

        events = [json.loads(line)["event"] for line in log_file.read_text().splitlines()]
        assert events == ["store_busy"]

    def test_repeated_setup_replaces_handlers(self, tmp_path):
        setup_logging("INFO", tmp_path / "first.log")
        setup_logging("INFO")

        assert len(logging.getLogger().handlers) == 1

    def test_third_party_debug_is_quiet(self):
        setup_logging("DEBUG")

        assert logging.getLogger("aiosqlite").getEffectiveLevel() == logging.WARNING
