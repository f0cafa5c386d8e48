"""Structured logging setup coverage."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from VulnDB.Installation.logging_utils import LOGGER_NAME, JSONFormatter, setup_logging


def test_json_formatter_includes_extra_fields() -> None:
    record = logging.LogRecord(LOGGER_NAME, logging.INFO, __file__, 1, "imported %s", ("db",), None)
    record.stage = "import"
    record.archive = "/tmp/db.tar.gz"

    payload = json.loads(JSONFormatter().format(record))

    assert payload["message"] == "imported db"
    assert payload["stage"] == "import"
    assert payload["archive"] == "/tmp/db.tar.gz"
    assert payload["level"] == "INFO"


def test_setup_logging_writes_jsonl(tmp_path: Path) -> None:
    logger = setup_logging(level="DEBUG", log_dir=tmp_path)
    logger.info("deleted vulnerability DB", extra={"stage": "delete"})
    for handler in logger.handlers:
        handler.flush()

    lines = (tmp_path / "vulndb.jsonl").read_text(encoding="utf-8").splitlines()
    assert json.loads(lines[-1])["stage"] == "delete"


def test_setup_logging_replaces_managed_handlers(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("VULNDB_LOG_DIR", raising=False)
    setup_logging(level="INFO")
    logger = setup_logging(level="INFO")

    managed = [h for h in logger.handlers if getattr(h, "_vulndb_managed", False)]
    assert len(managed) == 1
    assert logger.level == logging.INFO
