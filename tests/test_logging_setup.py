"""Tests for logging configuration."""

import json
import logging

from smartaudit.config import Config
from smartaudit.utils.logging_setup import (
    JSONFormatter,
    get_logger,
    log_operation,
    setup_from_config,
    setup_logging,
)


def test_get_logger_is_namespaced():
    assert get_logger("fixers").name == "smartaudit.fixers"
    assert get_logger("smartaudit.cli").name == "smartaudit.cli"


def test_json_formatter_includes_context():
    record = logging.LogRecord("smartaudit.fixers", logging.WARNING, __file__, 10,
                               "Rolled back %s", ("snap_1",), None)
    record.snapshot_id = "snap_1"
    record.extra_fields = {"files": 3}

    data = json.loads(JSONFormatter().format(record))

    assert data["message"] == "Rolled back snap_1"
    assert data["level"] == "WARNING"
    assert data["snapshot_id"] == "snap_1"
    assert data["files"] == 3


def test_file_logging_writes_json_lines(tmp_path):
    logger = setup_logging(level="ERROR", log_dir=tmp_path, console=False, file=True)
    log_operation(get_logger("engine"), "audit", phase="quality")
    for handler in logger.handlers:
        handler.flush()

    log_files = list(tmp_path.glob("smartaudit_*.jsonl"))
    assert len(log_files) == 1
    entry = json.loads(log_files[0].read_text(encoding="utf-8").splitlines()[0])
    assert entry["operation"] == "audit"
    assert entry["phase"] == "quality"
    assert not logger.propagate


def test_setup_from_config(tmp_path):
    config = Config({"logging": {"level": "ERROR", "file": True, "json": False}})
    logger = setup_from_config(config, tmp_path, verbose=True)

    console, file_handler = logger.handlers
    assert console.level == logging.DEBUG
    assert list((tmp_path / ".smartaudit" / "logs").glob("smartaudit_*.log"))
    file_handler.close()
