"""Tests for ram_profile_manager.sync.engine module.

Validates SyncEngine: mirrored copy in both strategies, mirrored delete,
metadata preservation, progress reporting and integrity verification.
"""

import os
import stat

import pytest

from conftest import FakeRunner, read_tree, write_tree
from ram_profile_manager.config import ProfileConfig, SyncStrategy
from ram_profile_manager.errors import ExternalToolFailed, SyncFailed
from ram_profile_manager.sync.engine import SyncEngine, SyncStats
from ram_profile_manager.utils.process import CommandResult


@pytest.fixture
def dirs(tmp_path):
    src = tmp_path / "src"
    dst = tmp_path / "dst"
    write_tree(src, {
        "file1.txt": b"hello world",
        "data.bin": b"\x00\x01\x02\x03" * 100,
        "subdir/nested.txt": b"nested content",
        "subdir/deeper/leaf.json": b"{}",
    })
    (src / "empty").mkdir()
    return src, dst


def make_engine(tmp_path, strategy=SyncStrategy.NATIVE, verify=False, runner=None):
    config = ProfileConfig(
        source=tmp_path / "src",
        ram_path=tmp_path / "dst",
        backup_dir=tmp_path / "backups",
        sync_strategy=strategy,
        verify_integrity=verify,
    )
    return SyncEngine(config, runner=runner or FakeRunner())


class TestSyncStats:
    """Test SyncStats dataclass."""

    def test_defaults(self):
        s = SyncStats()
        assert s.success is True
        assert s.files_copied == 0
        assert s.files_deleted == 0
        assert s.verified is None
        assert s.errors == []

    def test_to_dict(self):
        s = SyncStats(files_copied=5, bytes_copied=1024, direction="to_ram")
        d = s.to_dict()
        assert d["files_copied"] == 5
        assert d["bytes_copied"] == 1024
        assert d["direction"] == "to_ram"
        assert "success" in d


class TestStrategyResolution:
    """AUTO picks rsync only when it is installed."""

    def test_auto_with_rsync(self, tmp_path):
        engine = make_engine(tmp_path, SyncStrategy.AUTO)
        assert engine.resolve_strategy() == SyncStrategy.RSYNC

    def test_auto_without_rsync(self, tmp_path):
        runner = FakeRunner(programs=("mount", "umount"))
        engine = make_engine(tmp_path, SyncStrategy.AUTO, runner=runner)
        assert engine.resolve_strategy() == SyncStrategy.NATIVE

    def test_explicit_strategy_kept(self, tmp_path):
        runner = FakeRunner(programs=())
        engine = make_engine(tmp_path, SyncStrategy.RSYNC, runner=runner)
        assert engine.resolve_strategy() == SyncStrategy.RSYNC


class TestNativeMirror:
    """Test the pure Python mirror."""

    def test_round_trip(self, tmp_path, dirs):
        src, dst = dirs
        stats = make_engine(tmp_path).mirror(src, dst, direction="to_ram")

        assert stats.success is True
        assert stats.strategy == "native"
        assert stats.direction == "to_ram"
        assert stats.files_copied == 4
        assert read_tree(dst) == read_tree(src)
        assert (dst / "empty").is_dir()

    def test_creates_missing_target(self, tmp_path, dirs):
        src, dst = dirs
        assert not dst.exists()
        make_engine(tmp_path).mirror(src, dst)
        assert dst.is_dir()

    def test_mirrored_delete(self, tmp_path, dirs):
        src, dst = dirs
        engine = make_engine(tmp_path)
        engine.mirror(src, dst)

        (src / "file1.txt").unlink()
        (src / "subdir" / "deeper" / "leaf.json").unlink()
        (src / "subdir" / "deeper").rmdir()

        stats = engine.mirror(src, dst)

        assert not (dst / "file1.txt").exists()
        assert not (dst / "subdir" / "deeper").exists()
        assert stats.files_deleted >= 2
        assert read_tree(dst) == read_tree(src)

    def test_extraneous_target_entries_removed(self, tmp_path, dirs):
        src, dst = dirs
        write_tree(dst, {"stale.txt": b"old", "old_dir/x": b"x"})

        make_engine(tmp_path).mirror(src, dst)

        assert not (dst / "stale.txt").exists()
        assert not (dst / "old_dir").exists()

    def test_unchanged_files_skipped(self, tmp_path, dirs):
        src, dst = dirs
        engine = make_engine(tmp_path)
        engine.mirror(src, dst)

        stats = engine.mirror(src, dst)

        assert stats.files_copied == 0
        assert stats.files_unchanged == 4

    def test_modified_file_copied(self, tmp_path, dirs):
        src, dst = dirs
        engine = make_engine(tmp_path)
        engine.mirror(src, dst)

        (src / "file1.txt").write_text("MODIFIED and longer")
        stats = engine.mirror(src, dst)

        assert stats.files_copied == 1
        assert (dst / "file1.txt").read_text() == "MODIFIED and longer"

    def test_type_change_file_to_directory(self, tmp_path, dirs):
        src, dst = dirs
        engine = make_engine(tmp_path)
        engine.mirror(src, dst)

        (src / "file1.txt").unlink()
        write_tree(src, {"file1.txt/inner": b"now a directory"})
        engine.mirror(src, dst)

        assert (dst / "file1.txt").is_dir()
        assert (dst / "file1.txt" / "inner").read_bytes() == b"now a directory"

    def test_preserves_metadata(self, tmp_path, dirs):
        src, dst = dirs
        os.chmod(src / "file1.txt", 0o600)
        os.utime(src / "data.bin", ns=(1_600_000_000_000_000_000, 1_600_000_000_000_000_000))
        os.utime(src / "subdir", (1_500_000_000, 1_500_000_000))

        make_engine(tmp_path).mirror(src, dst)

        assert stat.S_IMODE(os.stat(dst / "file1.txt").st_mode) == 0o600
        assert os.stat(dst / "data.bin").st_mtime_ns == 1_600_000_000_000_000_000
        assert os.stat(dst / "subdir").st_mtime == 1_500_000_000

    def test_symlinks_recreated_not_followed(self, tmp_path, dirs):
        src, dst = dirs
        (src / "SingletonLock").symlink_to("myhost-4242")

        stats = make_engine(tmp_path).mirror(src, dst)

        assert (dst / "SingletonLock").is_symlink()
        assert os.readlink(dst / "SingletonLock") == "myhost-4242"
        assert stats.success is True

    def test_progress_monotonic_and_complete(self, tmp_path, dirs):
        src, dst = dirs
        fractions = []

        make_engine(tmp_path).mirror(src, dst, progress=fractions.append)

        assert fractions
        assert fractions == sorted(fractions)
        assert all(0.0 <= f <= 1.0 for f in fractions)
        assert fractions[-1] == 1.0

    def test_progress_completes_for_empty_source(self, tmp_path):
        src = tmp_path / "src"
        src.mkdir()
        fractions = []

        make_engine(tmp_path).mirror(src, tmp_path / "dst", progress=fractions.append)

        assert fractions == [1.0]

    def test_verification_passes(self, tmp_path, dirs):
        src, dst = dirs
        stats = make_engine(tmp_path, verify=True).mirror(src, dst)
        assert stats.verified is True
        assert stats.errors == []


class TestMirrorFailures:
    """Source unreadable or destination unwritable are fatal."""

    def test_missing_source(self, tmp_path):
        with pytest.raises(SyncFailed, match="does not exist"):
            make_engine(tmp_path).mirror(tmp_path / "nope", tmp_path / "dst")

    def test_uncreatable_target(self, tmp_path, dirs):
        src, _ = dirs
        blocker = tmp_path / "blocker"
        blocker.write_text("a file, not a directory")

        with pytest.raises(SyncFailed, match="Cannot create destination"):
            make_engine(tmp_path).mirror(src, blocker / "dst")


class TestRsyncMirror:
    """rsync strategy through the FakeRunner."""

    def test_command_line(self, tmp_path, dirs):
        src, dst = dirs
        runner = FakeRunner()
        make_engine(tmp_path, SyncStrategy.RSYNC, runner=runner).mirror(src, dst)

        (cmd,) = runner.commands("rsync")
        assert cmd[:3] == ["rsync", "-a", "--delete"]
        assert cmd[-2:] == [f"{src}/", f"{dst}/"]

    def test_progress_parsed_from_output(self, tmp_path, dirs):
        src, dst = dirs
        runner = FakeRunner()
        runner.output["rsync"] = [
            "          1,024   5%    0.00kB/s    0:00:00 (xfr#1, to-chk=9/10)",
            "         10,240  50%   10.00MB/s    0:00:00 (xfr#5, to-chk=5/10)",
            "sending incremental file list",
            "         20,480 100%   20.00MB/s    0:00:00 (xfr#10, to-chk=0/10)",
        ]
        fractions = []

        make_engine(tmp_path, SyncStrategy.RSYNC, runner=runner).mirror(
            src, dst, progress=fractions.append
        )

        assert fractions[:3] == [0.05, 0.5, 1.0]
        assert fractions == sorted(fractions)

    def test_no_progress_lines_still_completes(self, tmp_path, dirs):
        src, dst = dirs
        fractions = []
        make_engine(tmp_path, SyncStrategy.RSYNC).mirror(src, dst, progress=fractions.append)
        assert fractions == [1.0]

    def test_nonzero_exit_raises(self, tmp_path, dirs):
        src, dst = dirs
        runner = FakeRunner()
        runner.failures["rsync"] = CommandResult(23, "", "rsync error: some files could not be transferred")

        with pytest.raises(ExternalToolFailed) as exc_info:
            make_engine(tmp_path, SyncStrategy.RSYNC, runner=runner).mirror(src, dst)

        assert exc_info.value.returncode == 23
        assert exc_info.value.command[0] == "rsync"
        assert "could not be transferred" in str(exc_info.value)

    def test_verification_mismatch_recorded(self, tmp_path, dirs):
        """The fake rsync copies nothing, so verification must notice."""
        src, dst = dirs
        stats = make_engine(tmp_path, SyncStrategy.RSYNC, verify=True).mirror(src, dst)

        assert stats.verified is False
        assert stats.errors
        assert "Verification failed" in stats.errors[0]
