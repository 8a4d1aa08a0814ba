"""
Persisted snapshots of project files, taken before any write.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Iterable, List, Optional, Union

from .exceptions import BackupError
from .models import BackupFile, UpdateBackup, new_backup_id
from .project_reader import find_central_packages_file, is_project_file, packages_config_path
from .serialization import backup_from_dict, backup_to_dict
from .time_utils import utcnow


logger = logging.getLogger(__name__)

ENCODING = "utf-8"
ERRORS = "surrogateescape"


def read_text_lossless(path: Union[str, Path]) -> str:
    """Decode file bytes so that encoding them again gives the same bytes."""
    return Path(path).read_bytes().decode(ENCODING, ERRORS)


def write_text_atomic(path: Union[str, Path], content: str) -> None:
    """Write ``content`` back byte-for-byte through a temp file and ``os.replace``."""
    target = Path(path)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", dir=str(target.parent))
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(content.encode(ENCODING, ERRORS))
        if target.exists():
            os.chmod(tmp_name, target.stat().st_mode & 0o777)
        os.replace(tmp_name, target)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


def expand_backup_paths(paths: Iterable[str]) -> List[str]:
    """Project files plus the package files that declare versions for them."""
    expanded: List[str] = []
    seen = set()

    def add(path: Union[str, Path]) -> None:
        resolved = os.path.abspath(str(path))
        if resolved not in seen:
            seen.add(resolved)
            expanded.append(resolved)

    for path in paths:
        add(path)
        if not is_project_file(path):
            continue
        config = packages_config_path(path)
        if config.is_file():
            add(config)
        central = find_central_packages_file(path)
        if central is not None:
            add(central)
    return expanded


class BackupStore:
    """Create, persist and restore ``UpdateBackup`` snapshots as ``<id>.json``."""

    def __init__(self, directory: Union[str, Path]) -> None:
        self.directory = Path(directory)

    def _path_for(self, backup_id: str) -> Path:
        return self.directory / f"{backup_id}.json"

    def create(self, paths: Iterable[str], description: str) -> UpdateBackup:
        files = []
        for path in expand_backup_paths(paths):
            try:
                content = read_text_lossless(path)
            except OSError as e:
                raise BackupError(f"Could not back up {path}: {e}") from e
            files.append(BackupFile(original_path=path, content=content, backed_up_at=utcnow()))

        backup = UpdateBackup(
            backup_id=new_backup_id(),
            created_at=utcnow(),
            files=tuple(files),
            description=description,
        )
        self.save(backup)
        logger.info("Created backup %s with %s files", backup.backup_id, len(files))
        return backup

    def save(self, backup: UpdateBackup) -> Path:
        target = self._path_for(backup.backup_id)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            with open(target, "w", encoding="ascii") as handle:
                json.dump(backup_to_dict(backup), handle, indent=2)
        except OSError as e:
            raise BackupError(f"Could not persist backup {backup.backup_id}: {e}") from e
        return target

    def load(self, backup_id: str) -> UpdateBackup:
        source = self._path_for(backup_id)
        if not source.is_file():
            raise BackupError(f"Backup {backup_id} not found in {self.directory}")
        try:
            with open(source, encoding="ascii") as handle:
                return backup_from_dict(json.load(handle))
        except (OSError, ValueError, KeyError) as e:
            raise BackupError(f"Could not read backup {backup_id}: {e}") from e

    def restore(self, backup: Union[UpdateBackup, str]) -> None:
        if isinstance(backup, str):
            backup = self.load(backup)
        for backup_file in backup.files:
            try:
                write_text_atomic(backup_file.original_path, backup_file.content)
            except OSError as e:
                raise BackupError(
                    f"Could not restore {backup_file.original_path} from backup {backup.backup_id}: {e}"
                ) from e
            logger.debug("Restored %s", backup_file.original_path)
        logger.info("Restored backup %s", backup.backup_id)

    def list_backups(self) -> List[UpdateBackup]:
        if not self.directory.is_dir():
            return []
        backups = []
        for path in sorted(self.directory.glob("*.json")):
            try:
                backups.append(self.load(path.stem))
            except BackupError as e:
                logger.warning("%s", e)
        backups.sort(key=lambda b: b.created_at)
        return backups

    def delete(self, backup_id: str) -> bool:
        target = self._path_for(backup_id)
        if not target.exists():
            return False
        target.unlink()
        logger.debug("Deleted backup %s", backup_id)
        return True

    def latest(self) -> Optional[UpdateBackup]:
        backups = self.list_backups()
        return backups[-1] if backups else None
