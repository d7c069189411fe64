"""Tests for ram_profile_manager.backup.restore and backup.inventory.

Validates listing order, latest/selected restore, selection bounds and
cancel, overlay semantics, archive safety checks, and clean/purge.
"""

import os
import zipfile
from datetime import datetime

import pytest

from conftest import no, read_tree, write_tree, yes
from ram_profile_manager.backup.archiver import BackupArchiver, write_archive
from ram_profile_manager.backup.inventory import BackupInventory, BackupRecord
from ram_profile_manager.backup.restore import RestoreEngine, extract_archive
from ram_profile_manager.errors import (
    BackupFailed,
    InvalidArchive,
    InvalidSelection,
    NoBackupsFound,
    RamNotActive,
)
from ram_profile_manager.mount import MountController
from ram_profile_manager.results import Outcome
from ram_profile_manager.sync.engine import SyncEngine


def make_backup(config, stamp, mtime, files):
    """Write an archive named for ``stamp`` containing ``files``."""
    tree = config.backup_dir.parent / f"tree-{stamp}"
    write_tree(tree, files)
    config.backup_dir.mkdir(parents=True, exist_ok=True)
    path = config.backup_dir / f"{config.backup_prefix}-{stamp}.zip"
    write_archive(tree, path)
    os.utime(path, (mtime, mtime))
    return path


@pytest.fixture
def controller(profile_config, backend, fake_runner):
    write_tree(profile_config.source, {"Preferences": b"current prefs", "keep.txt": b"mine"})
    return MountController(profile_config, backend, SyncEngine(profile_config, fake_runner))


@pytest.fixture
def three_backups(profile_config):
    """Three archives; the file names deliberately disagree with mtime order."""
    return {
        "old": make_backup(profile_config, "2024-01-01_10-00-00", 1_700_000_000, {"Preferences": b"old"}),
        "new": make_backup(profile_config, "2024-01-02_10-00-00", 1_700_200_000, {"Preferences": b"new"}),
        "mid": make_backup(profile_config, "2024-01-03_10-00-00", 1_700_100_000, {"Preferences": b"mid"}),
    }


@pytest.fixture
def engine(profile_config, controller):
    controller.load()
    return RestoreEngine(profile_config, controller, BackupInventory(profile_config), confirm=yes)


class TestListBackups:
    """Archives are listed newest first by modification time."""

    def test_descending_mtime(self, engine, three_backups):
        records = engine.list_backups()
        assert [r.path for r in records] == [
            three_backups["new"], three_backups["mid"], three_backups["old"]
        ]
        mtimes = [r.mtime for r in records]
        assert mtimes == sorted(mtimes, reverse=True)
        assert len(set(mtimes)) == 3

    def test_empty_when_no_directory(self, engine, profile_config):
        assert not profile_config.backup_dir.exists()
        assert engine.list_backups() == []

    def test_only_matching_files(self, engine, profile_config, three_backups):
        (profile_config.backup_dir / "notes.txt").write_text("not a backup")
        (profile_config.backup_dir / "other-2024-01-01_00-00-00.zip").write_bytes(b"")
        (profile_config.backup_dir / "vivaldi-profile-dir.zip").mkdir()

        names = [r.name for r in engine.list_backups()]

        assert len(names) == 3
        assert all(n.startswith("vivaldi-profile-2024") for n in names)

    def test_rescanned_every_call(self, engine, profile_config, three_backups):
        assert len(engine.list_backups()) == 3
        make_backup(profile_config, "2024-02-01_00-00-00", 1_700_300_000, {"x": b"x"})
        records = engine.list_backups()
        assert len(records) == 4
        assert records[0].name == "vivaldi-profile-2024-02-01_00-00-00.zip"


class TestRestoreLatest:
    """restore_latest overlays the newest archive."""

    def test_picks_first_listed(self, engine, profile_config, three_backups):
        result = engine.restore_latest()

        assert result.outcome == Outcome.DONE
        assert result.path == three_backups["new"]
        assert (profile_config.source / "Preferences").read_bytes() == b"new"

    def test_overlay_keeps_unrelated_files(self, engine, profile_config, three_backups):
        (profile_config.source / "extraneous.db").write_bytes(b"not in any backup")

        engine.restore_latest()

        assert (profile_config.source / "extraneous.db").read_bytes() == b"not in any backup"
        assert (profile_config.source / "keep.txt").read_bytes() == b"mine"

    def test_no_backups(self, engine):
        with pytest.raises(NoBackupsFound):
            engine.restore_latest()

    def test_requires_mounted_profile(self, profile_config, controller, three_backups):
        engine = RestoreEngine(profile_config, controller, confirm=yes)
        with pytest.raises(RamNotActive):
            engine.restore_latest()
        assert (profile_config.source / "Preferences").read_bytes() == b"current prefs"

    def test_not_mounted_checked_before_empty(self, profile_config, controller):
        engine = RestoreEngine(profile_config, controller, confirm=yes)
        with pytest.raises(RamNotActive):
            engine.restore_latest()

    def test_declined(self, engine, profile_config, three_backups):
        engine.confirm = no
        result = engine.restore_latest()

        assert result.outcome == Outcome.DECLINED
        assert (profile_config.source / "Preferences").read_bytes() == b"current prefs"

    def test_progress(self, engine, three_backups):
        fractions = []
        engine.restore_latest(progress=fractions.append)
        assert fractions == sorted(fractions)
        assert fractions[-1] == 1.0


class TestRestoreSelected:
    """restore_selected with a 1-based selector."""

    def test_middle_index(self, engine, profile_config, three_backups):
        result = engine.restore_selected(lambda records: 2)

        assert result.outcome == Outcome.DONE
        assert result.path == three_backups["mid"]
        assert (profile_config.source / "Preferences").read_bytes() == b"mid"

    def test_selector_sees_ordered_list(self, engine, three_backups):
        seen = []

        def selector(records):
            seen.extend(records)
            return 1

        engine.restore_selected(selector)
        assert [r.path for r in seen] == [
            three_backups["new"], three_backups["mid"], three_backups["old"]
        ]

    @pytest.mark.parametrize("index", [0, 4, -1])
    def test_out_of_range(self, engine, profile_config, three_backups, index):
        with pytest.raises(InvalidSelection):
            engine.restore_selected(lambda records: index)
        assert (profile_config.source / "Preferences").read_bytes() == b"current prefs"

    def test_count_is_last_valid_index(self, engine, profile_config, three_backups):
        engine.restore_selected(lambda records: len(records))
        assert (profile_config.source / "Preferences").read_bytes() == b"old"

    def test_cancel(self, engine, profile_config, three_backups):
        result = engine.restore_selected(lambda records: None)

        assert result.outcome == Outcome.CANCELLED
        assert result.success is True
        assert (profile_config.source / "Preferences").read_bytes() == b"current prefs"

    def test_no_backups(self, engine):
        with pytest.raises(NoBackupsFound):
            engine.restore_selected(lambda records: 1)

    def test_requires_mounted_profile(self, profile_config, controller, three_backups):
        engine = RestoreEngine(profile_config, controller, confirm=yes)
        with pytest.raises(RamNotActive):
            engine.restore_selected(lambda records: 1)


class TestExtractArchive:
    """Overlay extraction and archive safety."""

    def test_backup_restore_round_trip(self, profile_config, controller, tmp_path):
        write_tree(profile_config.source, {
            "a.txt": b"0123456789",
            "b/c.txt": b"abcdefghijklmnopqrst",
            "Default/Cache/blob": bytes(range(256)) * 40,
        })
        controller.load()
        archive = BackupArchiver(profile_config, controller, clock=lambda: datetime(2024, 5, 1)).create_backup()
        fresh = tmp_path / "fresh"

        extract_archive(archive, fresh)

        assert read_tree(fresh) == read_tree(profile_config.source)

    def test_overlay_with_extraneous_file(self, tmp_path):
        write_tree(tmp_path / "tree", {"a.txt": b"from backup", "b/c.txt": b"nested"})
        write_archive(tmp_path / "tree", tmp_path / "backup.zip")
        target = tmp_path / "target"
        write_tree(target, {"a.txt": b"stale", "extra.txt": b"unrelated", "b/other": b"also"})

        count = extract_archive(tmp_path / "backup.zip", target)

        assert count == 2
        assert (target / "a.txt").read_bytes() == b"from backup"
        assert (target / "b" / "c.txt").read_bytes() == b"nested"
        assert (target / "extra.txt").read_bytes() == b"unrelated"
        assert (target / "b" / "other").read_bytes() == b"also"

    def test_restores_mtime(self, tmp_path):
        write_tree(tmp_path / "tree", {"f.txt": b"x"})
        os.utime(tmp_path / "tree" / "f.txt", (1_600_000_000, 1_600_000_000))
        write_archive(tmp_path / "tree", tmp_path / "backup.zip")

        extract_archive(tmp_path / "backup.zip", tmp_path / "out")

        # ZIP timestamps have two-second resolution
        assert abs(os.stat(tmp_path / "out" / "f.txt").st_mtime - 1_600_000_000) <= 2

    def test_replaces_symlink_instead_of_following(self, tmp_path):
        write_tree(tmp_path / "tree", {"f.txt": b"archived"})
        write_archive(tmp_path / "tree", tmp_path / "backup.zip")
        outside = tmp_path / "outside.txt"
        outside.write_bytes(b"untouched")
        (tmp_path / "out").mkdir()
        (tmp_path / "out" / "f.txt").symlink_to(outside)

        extract_archive(tmp_path / "backup.zip", tmp_path / "out")

        assert outside.read_bytes() == b"untouched"
        assert not (tmp_path / "out" / "f.txt").is_symlink()
        assert (tmp_path / "out" / "f.txt").read_bytes() == b"archived"

    def test_symlinked_parent_replaced_not_followed(self, tmp_path):
        write_tree(tmp_path / "tree", {"b/c.txt": b"archived"})
        write_archive(tmp_path / "tree", tmp_path / "backup.zip")
        outside = tmp_path / "outside"
        outside.mkdir()
        profile = tmp_path / "profile"
        profile.mkdir()
        (profile / "b").symlink_to(outside)

        extract_archive(tmp_path / "backup.zip", profile)

        assert list(outside.iterdir()) == []
        assert not (profile / "b").is_symlink()
        assert (profile / "b" / "c.txt").read_bytes() == b"archived"

    def test_deep_symlinked_parent(self, tmp_path):
        write_tree(tmp_path / "tree", {"a/b/c/d.txt": b"deep"})
        write_archive(tmp_path / "tree", tmp_path / "backup.zip")
        outside = tmp_path / "outside"
        outside.mkdir()
        profile = tmp_path / "profile"
        (profile / "a").mkdir(parents=True)
        (profile / "a" / "b").symlink_to(outside)

        extract_archive(tmp_path / "backup.zip", profile)

        assert list(outside.iterdir()) == []
        assert (profile / "a" / "b" / "c" / "d.txt").read_bytes() == b"deep"

    def test_directory_in_place_of_file(self, tmp_path):
        write_tree(tmp_path / "tree", {"a.txt": b"new", "x": b"file in backup"})
        write_archive(tmp_path / "tree", tmp_path / "backup.zip")
        profile = tmp_path / "profile"
        write_tree(profile, {"a.txt": b"old", "x/inner": b"dir in profile"})

        with pytest.raises(BackupFailed, match="is a directory"):
            extract_archive(tmp_path / "backup.zip", profile)

        assert (profile / "a.txt").read_bytes() == b"old"
        assert (profile / "x" / "inner").read_bytes() == b"dir in profile"

    def test_file_in_place_of_directory(self, tmp_path):
        write_tree(tmp_path / "tree", {"a.txt": b"new", "x/y.txt": b"nested"})
        write_archive(tmp_path / "tree", tmp_path / "backup.zip")
        profile = tmp_path / "profile"
        write_tree(profile, {"a.txt": b"old", "x": b"plain file"})

        with pytest.raises(BackupFailed, match="is a file"):
            extract_archive(tmp_path / "backup.zip", profile)

        assert (profile / "a.txt").read_bytes() == b"old"
        assert (profile / "x").read_bytes() == b"plain file"

    def test_missing_archive(self, tmp_path):
        with pytest.raises(BackupFailed, match="Cannot open backup"):
            extract_archive(tmp_path / "gone.zip", tmp_path / "out")

    @pytest.mark.parametrize("name", ["../evil.txt", "/etc/evil.txt", "a/../../evil.txt"])
    def test_unsafe_entries_rejected(self, tmp_path, name):
        archive = tmp_path / "evil.zip"
        with zipfile.ZipFile(archive, "w") as zf:
            zf.writestr("fine.txt", b"fine")
            zf.writestr(name, b"evil")
        target = tmp_path / "deep" / "target"

        with pytest.raises(InvalidArchive, match="Unsafe path"):
            extract_archive(archive, target)

        assert not target.exists()
        assert not (tmp_path / "deep" / "evil.txt").exists()

    def test_corrupt_archive(self, tmp_path):
        archive = tmp_path / "vivaldi-profile-2024-01-01_00-00-00.zip"
        archive.write_bytes(b"this is not a zip file")
        with pytest.raises(InvalidArchive):
            extract_archive(archive, tmp_path / "out")


class TestBackupInventory:
    """clean() and purge()."""

    def test_latest(self, profile_config, three_backups):
        assert BackupInventory(profile_config).latest().path == three_backups["new"]

    def test_latest_none(self, profile_config):
        assert BackupInventory(profile_config).latest() is None

    def test_clean_keeps_latest(self, profile_config, three_backups):
        result = BackupInventory(profile_config, confirm=yes).clean()

        assert result.outcome == Outcome.DONE
        assert sorted(result.details) == sorted([three_backups["mid"].name, three_backups["old"].name])
        assert three_backups["new"].exists()
        assert not three_backups["mid"].exists()
        assert not three_backups["old"].exists()

    def test_clean_noop_with_single_backup(self, profile_config):
        only = make_backup(profile_config, "2024-01-01_00-00-00", 1_700_000_000, {"x": b"x"})
        result = BackupInventory(profile_config, confirm=no).clean()
        assert result.outcome == Outcome.NOOP
        assert only.exists()

    def test_clean_noop_without_backups(self, profile_config):
        assert BackupInventory(profile_config).clean().outcome == Outcome.NOOP

    def test_clean_declined(self, profile_config, three_backups):
        result = BackupInventory(profile_config).clean()
        assert result.outcome == Outcome.DECLINED
        assert all(p.exists() for p in three_backups.values())

    def test_purge_removes_all_and_empty_dir(self, profile_config, three_backups):
        result = BackupInventory(profile_config, confirm=yes).purge()

        assert result.outcome == Outcome.DONE
        assert len(result.details) == 3
        assert not profile_config.backup_dir.exists()

    def test_purge_leaves_unrelated_files(self, profile_config, three_backups):
        notes = profile_config.backup_dir / "notes.txt"
        notes.write_text("keep me")

        BackupInventory(profile_config, confirm=yes).purge()

        assert notes.exists()
        assert list(profile_config.backup_dir.glob("*.zip")) == []

    def test_purge_declined(self, profile_config, three_backups):
        result = BackupInventory(profile_config, confirm=no).purge()
        assert result.outcome == Outcome.DECLINED
        assert all(p.exists() for p in three_backups.values())

    def test_purge_noop_without_backups(self, profile_config):
        assert BackupInventory(profile_config, confirm=yes).purge().outcome == Outcome.NOOP


class TestBackupRecord:
    """BackupRecord helpers."""

    def test_age_days(self, tmp_path):
        record = BackupRecord(path=tmp_path / "b.zip", size_bytes=10, mtime=datetime(2024, 1, 1).timestamp())
        assert record.age_days(datetime(2024, 1, 9, 12)) == 8
        assert record.age_days(datetime(2024, 1, 1, 23)) == 0

    def test_to_dict(self, tmp_path):
        record = BackupRecord(path=tmp_path / "b.zip", size_bytes=10, mtime=datetime(2024, 1, 1, 8).timestamp())
        d = record.to_dict()
        assert d["name"] == "b.zip"
        assert d["size_bytes"] == 10
        assert d["modified"] == "2024-01-01T08:00:00"
