"""Error types raised by fdb."""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path


class FdbError(RuntimeError):
    exit_code = 1


class ConfigError(FdbError):
    def __init__(self, message: str, *, path: Path | None = None) -> None:
        if path is not None:
            message = f"{path}: {message}"
        super().__init__(message)
        self.path = path


class PlatformError(FdbError):
    pass


class NetworkError(FdbError):
    def __init__(self, message: str, *, url: str) -> None:
        super().__init__(f"{message} ({url})")
        self.url = url


class ToolNotFoundError(FdbError):
    pass


class SubprocessError(FdbError):
    """An external tool exited nonzero; ``stderr`` is kept exactly as the tool wrote it."""

    def __init__(self, command: Sequence[str], *, returncode: int, stderr: str) -> None:
        name = Path(command[0]).name if command else "command"
        super().__init__(f"{name} exited with status {returncode}")
        self.command = list(command)
        self.returncode = returncode
        self.stderr = stderr

    @property
    def exit_code(self) -> int:  # type: ignore[override]
        return self.returncode if self.returncode > 0 else 1
