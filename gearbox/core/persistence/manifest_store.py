"""
Manifest store — atomic read/write and backups for the Manifest.

The manifest is stored as JSON in ~/.gearbox/manifest.json. Writes are
atomic (write to a temp file in the same directory, then rename) so a
crash mid-write never leaves a half-written manifest behind. Concurrent
writers each use their own temp file; the last rename wins.

There is no read-modify-write locking. A corrupt manifest is reported,
never repaired or discarded.
"""

from __future__ import annotations

import json
import logging
import os
import re
import shutil
import tempfile
from datetime import datetime
from pathlib import Path

from pydantic import ValidationError

from gearbox.core.errors import BackupNotFound, InvalidBackupSuffix, ManifestCorrupt
from gearbox.core.models.manifest import SCHEMA_VERSION, Manifest

logger = logging.getLogger(__name__)

BACKUP_PREFIX = "manifest-"
BACKUP_EXT = ".json"
BACKUP_TIME_FORMAT = "%Y%m%d-%H%M%S"
PRE_RESTORE_SUFFIX = "pre-restore"
_SUFFIX_RE = re.compile(r"^[A-Za-z0-9._-]+$")


class ManifestStore:
    """Load, save, back up and restore one manifest file.

    Args:
        path: The live manifest file.
        backups_dir: Where snapshots go (default: ``backups/`` beside
            the manifest).
    """

    def __init__(self, path: Path, backups_dir: Path | None = None):
        self._path = path
        self._backups_dir = backups_dir or path.parent / "backups"

    @property
    def path(self) -> Path:
        return self._path

    @property
    def backups_dir(self) -> Path:
        return self._backups_dir

    def exists(self) -> bool:
        return self._path.is_file()

    # ── Read ────────────────────────────────────────────────────

    def load(self) -> Manifest:
        """Load the manifest.

        Returns:
            The stored Manifest, or a fresh empty one at the current
            schema version if no file exists yet.

        Raises:
            ManifestCorrupt: If the file can't be parsed or validated.
        """
        if not self._path.is_file():
            logger.info("No manifest at %s — starting fresh", self._path)
            return Manifest()

        manifest = _read_manifest(self._path)
        logger.debug(
            "Loaded manifest from %s (%d installations)",
            self._path, len(manifest.installations),
        )
        return manifest

    # ── Write ───────────────────────────────────────────────────

    def save(self, manifest: Manifest) -> None:
        """Save the manifest (atomic write).

        Updates ``manifest.updated_at`` before writing.
        """
        manifest.touch()
        self._write(manifest)

    def _write(self, manifest: Manifest) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)

        data = manifest.model_dump(mode="json")
        content = json.dumps(data, indent=2, ensure_ascii=False) + "\n"

        fd, tmp_path = tempfile.mkstemp(
            dir=self._path.parent,
            prefix=".manifest_",
            suffix=".tmp",
        )
        tmp = Path(tmp_path)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            tmp.replace(self._path)
            logger.debug("Manifest saved to %s", self._path)
        except Exception as e:
            tmp.unlink(missing_ok=True)
            logger.error("Failed to save manifest to %s: %s", self._path, e)
            raise

    # ── Backups ─────────────────────────────────────────────────

    def backup(self, suffix: str = "") -> Path | None:
        """Copy the live manifest into the backups directory.

        Returns:
            Path of the new backup, or None when there was no manifest
            to back up.

        Raises:
            InvalidBackupSuffix: If ``suffix`` is not a plain label.
        """
        if suffix and not _SUFFIX_RE.match(suffix):
            raise InvalidBackupSuffix(suffix)
        if not self._path.is_file():
            logger.debug("No manifest at %s — nothing to back up", self._path)
            return None

        self._backups_dir.mkdir(parents=True, exist_ok=True)
        stem = BACKUP_PREFIX + datetime.now().strftime(BACKUP_TIME_FORMAT)
        if suffix:
            stem += f"-{suffix}"

        target = self._backups_dir / f"{stem}{BACKUP_EXT}"
        counter = 1
        while target.exists():
            target = self._backups_dir / f"{stem}-{counter}{BACKUP_EXT}"
            counter += 1

        shutil.copy2(self._path, target)
        logger.info("Manifest backed up to %s", target)
        return target

    def list_backups(self) -> list[str]:
        """Backup file names, oldest first."""
        if not self._backups_dir.is_dir():
            return []
        names = [
            p.name
            for p in self._backups_dir.iterdir()
            if p.is_file() and p.suffix == BACKUP_EXT
        ]
        return sorted(names)

    def restore_backup(self, name: str) -> Manifest:
        """Replace the live manifest with a backup.

        The current manifest is snapshotted with the ``pre-restore``
        suffix first, so a restore can itself be undone.

        Raises:
            BackupNotFound: If no backup has that name.
            ManifestCorrupt: If the backup doesn't hold a valid manifest.
        """
        # Only plain file names inside the backups directory
        if not name or Path(name).name != name:
            raise BackupNotFound(name)
        source = self._backups_dir / name
        if not source.is_file():
            raise BackupNotFound(name)

        restored = _read_manifest(source)
        self.backup(PRE_RESTORE_SUFFIX)
        self._write(restored)
        logger.info("Manifest restored from backup %s", name)
        return restored


def _read_manifest(path: Path) -> Manifest:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ManifestCorrupt(path, e) from e

    try:
        manifest = Manifest.model_validate(data)
    except ValidationError as e:
        raise ManifestCorrupt(path, e) from e

    if manifest.schema_version.split(".")[0] != SCHEMA_VERSION.split(".")[0]:
        error = ValueError(f"unsupported schema version {manifest.schema_version}")
        raise ManifestCorrupt(path, error)

    return manifest
