from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from pathlib import Path

import pytest

from fakes import FakeToolchain


@pytest.fixture(autouse=True)
def _isolated_environment(  # pyright: ignore[reportUnusedFunction]
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> Iterator[None]:
    home = tmp_path / "home"
    work = tmp_path / "work"
    home.mkdir()
    work.mkdir()
    for name in list(os.environ):
        if name.startswith("FDB_") or name == "KUBECONFIG":
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("FDB_HOME", str(home / ".fdb"))
    monkeypatch.chdir(work)
    yield
    logger = logging.getLogger("fdb")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


@pytest.fixture
def fake_toolchain(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> FakeToolchain:
    bin_dir = tmp_path / "fakebin"
    calls_file = tmp_path / "calls.log"
    toolchain = FakeToolchain(bin_dir=bin_dir, calls_file=calls_file)
    toolchain.install()
    monkeypatch.setenv("PATH", os.pathsep.join([str(bin_dir), "/usr/bin", "/bin"]))
    monkeypatch.setenv("FDB_TEST_CALLS", str(calls_file))
    monkeypatch.setenv("FDB_POLL_INTERVAL_SECONDS", "0.01")
    monkeypatch.setenv("FDB_WAIT_TIMEOUT_SECONDS", "1")
    monkeypatch.setattr("fdb.kubectl.SERVICE_SETTLE_SECONDS", 0.0)
    monkeypatch.setattr("fdb.kubectl.NODE_PORT_RETRY_SECONDS", 0.0)
    return toolchain
