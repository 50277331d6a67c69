"""Privilege checks for mutating repairs."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess

from netrepair.domain.exceptions import PrivilegeError

logger = logging.getLogger(__name__)


def is_root() -> bool:
    """True when the effective user is root."""
    return os.geteuid() == 0


def can_sudo() -> bool:
    """True when ``sudo`` exists and works without a password prompt."""
    if shutil.which("sudo") is None:
        return False
    try:
        completed = subprocess.run(
            ["sudo", "-n", "true"],
            capture_output=True,
            timeout=5,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired):
        return False
    return completed.returncode == 0


class PrivilegeChecker:
    """Gatekeeper consulted before a non-dry-run repair cycle.

    Repairs write system files directly, so the process itself must run as
    root; a working ``sudo`` only changes the hint in the error message.
    """

    def has_privileges(self) -> bool:
        return is_root()

    def check(self) -> None:
        """Raise :class:`PrivilegeError` unless running as root."""
        if self.has_privileges():
            logger.debug("Running as root")
            return
        hint = "re-run with sudo" if can_sudo() else "run as root"
        raise PrivilegeError(f"Repairs require root privileges; {hint}.")
