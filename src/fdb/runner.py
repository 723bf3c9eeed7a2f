"""Run external tools with the resolved kubeconfig."""

from __future__ import annotations

import logging
import os
import subprocess
from collections.abc import Sequence
from pathlib import Path
from typing import Optional

from fdb.errors import SubprocessError
from fdb.models import CommandResult

LOGGER = logging.getLogger("fdb.runner")

EXIT_CANNOT_EXECUTE = 127


class ProcessRunner:
    """Runs a binary with ``--kubeconfig`` prepended and ``KUBECONFIG`` exported."""

    def __init__(self, kubeconfig: Path) -> None:
        self.kubeconfig = kubeconfig

    def run(
        self,
        binary: Path,
        args: Sequence[str],
        input_data: Optional[str] = None,
    ) -> CommandResult:
        command = (str(binary), f"--kubeconfig={self.kubeconfig}", *args)
        env = {**os.environ, "KUBECONFIG": str(self.kubeconfig)}
        LOGGER.debug("running command=%s", " ".join(command))
        # No input means no stdin at all, so a prompting tool fails instead of hanging.
        stdin = subprocess.DEVNULL if input_data is None else None
        try:
            completed = subprocess.run(
                command,
                input=input_data,
                stdin=stdin,
                text=True,
                capture_output=True,
                check=False,
                env=env,
            )
        except OSError as exc:
            LOGGER.warning("could not start command=%s error=%s", command[0], exc)
            return CommandResult(
                args=command,
                returncode=EXIT_CANNOT_EXECUTE,
                stdout="",
                stderr=f"{command[0]}: {exc}",
            )

        result = CommandResult(
            args=command,
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )
        LOGGER.debug("command finished command=%s returncode=%s", command[0], result.returncode)
        return result

    def check(
        self,
        binary: Path,
        args: Sequence[str],
        input_data: Optional[str] = None,
    ) -> CommandResult:
        result = self.run(binary, args, input_data=input_data)
        if not result.ok:
            raise SubprocessError(result.args, returncode=result.returncode, stderr=result.stderr)
        return result
