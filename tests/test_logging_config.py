from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from fdb.logging_config import configure_logging
from fdb.settings import load_settings


def _flush(logger: logging.Logger) -> None:
    for handler in logger.handlers:
        handler.flush()


def test_file_log_is_json_lines() -> None:
    settings = load_settings()

    log_file = configure_logging(settings)
    logging.getLogger("fdb.cluster").info("cluster running name=%s", "mydb")
    _flush(logging.getLogger("fdb"))

    assert log_file == settings.log_dir / "fdb.log"
    assert log_file is not None
    records = [json.loads(line) for line in log_file.read_text(encoding="utf-8").splitlines()]
    last = records[-1]
    assert last["event"] == "cluster running name=mydb"
    assert last["level"] == "info"
    assert last["logger"] == "fdb.cluster"
    assert "timestamp" in last


def test_console_level_follows_settings_and_verbose(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FDB_LOG_LEVEL", "info")
    configure_logging(load_settings())
    console_handler = logging.getLogger("fdb").handlers[0]
    assert console_handler.level == logging.INFO

    configure_logging(load_settings(), verbose=True)
    handlers = logging.getLogger("fdb").handlers
    assert len(handlers) == 2
    assert handlers[0].level == logging.DEBUG


def test_unwritable_log_dir_disables_file_logging(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    blocker = tmp_path / "not-a-directory"
    blocker.write_text("", encoding="utf-8")
    monkeypatch.setenv("FDB_HOME", str(blocker))

    log_file = configure_logging(load_settings())

    assert log_file is None
    assert len(logging.getLogger("fdb").handlers) == 1
