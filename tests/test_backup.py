"""Tests for backup snapshots."""

import os
import re
from pathlib import Path

import pytest

from nuvet.backup import BackupStore, expand_backup_paths, read_text_lossless, write_text_atomic
from nuvet.exceptions import BackupError

PROJECT_BYTES = b'\xef\xbb\xbf<Project>\r\n  <ItemGroup />\r\n</Project>\r\n'
CONFIG_BYTES = b'<?xml version="1.0"?>\n<packages>\n  <!-- caf\xff -->\n</packages>\n'
NOTES_BYTES = b"no trailing newline"


@pytest.fixture
def files(tmp_path: Path):
    project = tmp_path / "App" / "App.csproj"
    project.parent.mkdir()
    project.write_bytes(PROJECT_BYTES)
    config = project.parent / "packages.config"
    config.write_bytes(CONFIG_BYTES)
    notes = tmp_path / "notes.txt"
    notes.write_bytes(NOTES_BYTES)
    return project, config, notes


def test_restore_is_byte_for_byte(tmp_path: Path, files) -> None:
    project, config, notes = files
    store = BackupStore(tmp_path / "backups")

    backup = store.create([str(project), str(notes)], "before update")

    assert backup.paths == [str(project), str(config), str(notes)]
    for path in files:
        path.write_bytes(b"<changed />")

    store.restore(backup)

    assert project.read_bytes() == PROJECT_BYTES
    assert config.read_bytes() == CONFIG_BYTES
    assert notes.read_bytes() == NOTES_BYTES


def test_backup_is_persisted_and_reloadable(tmp_path: Path, files) -> None:
    project, config, _ = files
    directory = tmp_path / "backups"

    backup = BackupStore(directory).create([str(project)], "persisted")

    assert re.fullmatch(r"[0-9a-f]{8}", backup.backup_id)
    assert (directory / f"{backup.backup_id}.json").is_file()

    project.write_bytes(b"<Project />")
    config.unlink()
    reloaded = BackupStore(directory)
    assert reloaded.load(backup.backup_id) == backup

    reloaded.restore(backup.backup_id)

    assert project.read_bytes() == PROJECT_BYTES
    assert config.read_bytes() == CONFIG_BYTES


def test_list_latest_and_delete(tmp_path: Path, files) -> None:
    project = str(files[0])
    store = BackupStore(tmp_path / "backups")

    first = store.create([project], "first")
    second = store.create([project], "second")

    assert [b.backup_id for b in store.list_backups()] == [first.backup_id, second.backup_id]
    assert store.latest() == second
    assert store.delete(first.backup_id)
    assert not store.delete(first.backup_id)
    assert [b.backup_id for b in store.list_backups()] == [second.backup_id]


def test_missing_backup_and_unreadable_file(tmp_path: Path) -> None:
    store = BackupStore(tmp_path / "backups")

    assert store.list_backups() == []
    with pytest.raises(BackupError):
        store.load("deadbeef")
    with pytest.raises(BackupError):
        store.create([str(tmp_path / "Missing.csproj")], "missing")


def test_expand_backup_paths_adds_central_file(tmp_path: Path) -> None:
    props = tmp_path / "Directory.Packages.props"
    props.write_text("<Project />", encoding="utf-8")
    project = tmp_path / "src" / "App.csproj"
    project.parent.mkdir()
    project.write_text("<Project />", encoding="utf-8")

    paths = expand_backup_paths([str(project), str(project)])

    assert paths == [str(project), str(props.resolve())]


def test_atomic_write_keeps_mode_and_bytes(tmp_path: Path) -> None:
    target = tmp_path / "App.csproj"
    target.write_bytes(CONFIG_BYTES)
    os.chmod(target, 0o640)

    write_text_atomic(target, read_text_lossless(target))

    assert target.read_bytes() == CONFIG_BYTES
    assert target.stat().st_mode & 0o777 == 0o640
    assert [p.name for p in tmp_path.iterdir()] == ["App.csproj"]
