"""Backup/restore store for files the repair layer is about to mutate.

``snapshot`` copies a file into the backup directory under
``<original-filename>.<timestamp>`` and makes the copy durable before it
returns, so a caller that proceeds after ``snapshot`` always has a readable
backup.  ``restore`` copies the saved content back verbatim and is safe to
call any number of times.

Backups are never deleted by the control loop.  ``clean_old`` exists for
manual maintenance only.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
import time
from datetime import datetime
from pathlib import Path

from netrepair.domain.events import BackupCreated, BackupRestored
from netrepair.domain.exceptions import RestoreError, SnapshotError
from netrepair.domain.values import BackupRecord
from netrepair.infrastructure.event_bus import EventBus

logger = logging.getLogger(__name__)

_TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S_%f"
_PARTIAL_PREFIX = ".partial-"


class BackupStore:
    """Creates and restores :class:`BackupRecord` snapshots.

    Parameters
    ----------
    backup_dir:
        Directory that receives the snapshot files.  Created on first use.
    event_bus:
        Optional bus receiving ``BackupCreated`` / ``BackupRestored``.
    """

    def __init__(self, backup_dir: str | Path, event_bus: EventBus | None = None) -> None:
        self._backup_dir = Path(backup_dir).expanduser()
        self._event_bus = event_bus

    @property
    def backup_dir(self) -> Path:
        return self._backup_dir

    # -- snapshot -----------------------------------------------------------

    def snapshot(self, path: str | Path) -> BackupRecord:
        """Save the current content of *path* and return its record.

        A missing target is recorded with ``existed=False``; restoring such a
        record removes whatever the repair created.

        Raises
        ------
        SnapshotError
            If the backup directory cannot be created or the copy cannot be
            written, synced and read back.
        """
        target = Path(path)
        created_at = time.time()

        if not target.exists():
            record = BackupRecord(
                target_path=str(target),
                snapshot_path="",
                created_at=created_at,
                existed=False,
            )
            logger.debug("Target does not exist yet, recording absence: %s", target)
            self._publish(BackupCreated(source_id="backup", record=record))
            return record

        try:
            self._backup_dir.mkdir(parents=True, exist_ok=True)
            destination = self._unique_name(target.name, created_at)
            self._durable_copy(target, destination)
            if destination.stat().st_size != target.stat().st_size:
                raise OSError("snapshot size does not match its source")
        except OSError as exc:
            raise SnapshotError(
                f"Failed to back up {target}: {exc}",
                target_path=str(target),
            ) from exc

        record = BackupRecord(
            target_path=str(target),
            snapshot_path=str(destination),
            created_at=created_at,
        )
        logger.info("Backed up: %s -> %s", target, destination)
        self._publish(BackupCreated(source_id="backup", record=record))
        return record

    # -- restore ------------------------------------------------------------

    def restore(self, record: BackupRecord) -> None:
        """Put the snapshotted content back over ``record.target_path``."""
        target = Path(record.target_path)

        if not record.existed:
            try:
                target.unlink(missing_ok=True)
            except OSError as exc:
                raise RestoreError(
                    f"Failed to remove {target}: {exc}",
                    target_path=str(target),
                ) from exc
            logger.warning("Restored absence of %s", target)
            self._publish(BackupRestored(source_id="backup", record=record))
            return

        snapshot = Path(record.snapshot_path)
        if not snapshot.is_file():
            raise RestoreError(
                f"Backup file not found: {snapshot}",
                snapshot_path=str(snapshot),
                target_path=str(target),
            )
        try:
            shutil.copyfile(snapshot, target)
            shutil.copymode(snapshot, target)
        except OSError as exc:
            raise RestoreError(
                f"Failed to restore {snapshot} -> {target}: {exc}",
                snapshot_path=str(snapshot),
                target_path=str(target),
            ) from exc

        logger.warning("Restored: %s -> %s", snapshot, target)
        self._publish(BackupRestored(source_id="backup", record=record))

    # -- maintenance --------------------------------------------------------

    def list_backups(self) -> list[Path]:
        """Snapshot files in the backup directory, newest first."""
        if not self._backup_dir.is_dir():
            return []
        files = [
            p
            for p in self._backup_dir.iterdir()
            if p.is_file() and not p.name.startswith(_PARTIAL_PREFIX)
        ]
        return sorted(files, key=lambda p: p.stat().st_mtime, reverse=True)

    def clean_old(self, keep: int = 10) -> list[Path]:
        """Delete all but the newest *keep* snapshots; return what was removed."""
        if keep < 0:
            raise ValueError(f"keep must be >= 0, got {keep}")
        removed: list[Path] = []
        for old in self.list_backups()[keep:]:
            old.unlink()
            logger.debug("Removed old backup: %s", old)
            removed.append(old)
        return removed

    # -- helpers ------------------------------------------------------------

    def _unique_name(self, filename: str, created_at: float) -> Path:
        stamp = datetime.fromtimestamp(created_at).strftime(_TIMESTAMP_FORMAT)
        candidate = self._backup_dir / f"{filename}.{stamp}"
        suffix = 1
        while candidate.exists():
            candidate = self._backup_dir / f"{filename}.{stamp}.{suffix}"
            suffix += 1
        return candidate

    def _durable_copy(self, source: Path, destination: Path) -> None:
        fd, tmp_name = tempfile.mkstemp(dir=self._backup_dir, prefix=_PARTIAL_PREFIX)
        try:
            with os.fdopen(fd, "wb") as out, open(source, "rb") as src:
                shutil.copyfileobj(src, out)
                out.flush()
                os.fsync(out.fileno())
            shutil.copymode(source, tmp_name)
            os.replace(tmp_name, destination)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def _publish(self, event: BackupCreated | BackupRestored) -> None:
        if self._event_bus is not None:
            self._event_bus.publish(event)
