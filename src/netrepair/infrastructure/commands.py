"""Blocking external-command runner with a timeout.

Probes and repair actions never call :mod:`subprocess` directly; they go
through :class:`CommandRunner` so tests can substitute a fake and so every
command shares the same timeout and error mapping.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass

from netrepair.domain.exceptions import CommandTimeoutError, CommandUnavailableError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    """Captured output of one finished command."""

    cmd: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandRunner:
    """Runs commands with a default timeout.

    Parameters
    ----------
    timeout:
        Default timeout in seconds for :meth:`run`.
    """

    def __init__(self, timeout: float = 30.0) -> None:
        self._timeout = timeout

    @property
    def timeout(self) -> float:
        return self._timeout

    def which(self, name: str) -> bool:
        """True when *name* is on ``PATH``."""
        return shutil.which(name) is not None

    def run(
        self,
        cmd: Sequence[str],
        timeout: float | None = None,
        privileged: bool = False,
    ) -> CommandResult:
        """Run *cmd* and capture its output.

        A non-zero exit status is returned, not raised.  With *privileged*
        set and a non-root effective user the command is prefixed with
        ``sudo -n`` so it fails fast instead of prompting.

        Raises
        ------
        CommandUnavailableError
            If the executable does not exist.
        CommandTimeoutError
            If the command does not finish within the timeout.
        """
        argv = tuple(cmd)
        if privileged and os.geteuid() != 0:
            argv = ("sudo", "-n", *argv)
        limit = self._timeout if timeout is None else timeout
        logger.debug("Running: %s (timeout=%ss)", " ".join(argv), limit)
        try:
            completed = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                timeout=limit,
                check=False,
            )
        except FileNotFoundError as exc:
            raise CommandUnavailableError(
                f"Command not found: {argv[0]}", cmd=argv
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise CommandTimeoutError(
                f"Command timed out after {limit}s: {' '.join(argv)}",
                cmd=argv,
                timeout=limit,
            ) from exc

        result = CommandResult(
            cmd=argv,
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )
        if not result.ok:
            logger.debug("%s exited %d: %s", argv[0], result.returncode, result.stderr.strip())
        return result
