"""Shared pytest fixtures for RAM Profile Manager tests.

Provides temp profile layouts, config objects, and a FakeRunner that
simulates mount, umount, mountpoint, pgrep, rsync and systemctl so no test
touches real mounts or processes.
"""

import json
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from ram_profile_manager.backends.linux import LinuxBackend
from ram_profile_manager.config import ProfileConfig, SyncStrategy
from ram_profile_manager.utils.process import CommandResult


DEFAULT_PROGRAMS = ("mountpoint", "mount", "umount", "pgrep", "rsync", "systemctl")


class FakeRunner:
    """In-memory stand-in for CommandRunner.

    Mount state lives in ``mounted`` (set of target path strings) and is
    changed by ``mount --bind`` and ``umount`` exactly as the kernel would
    report it through ``mountpoint -q``.

    Attributes:
        calls: Every command run, ``sudo`` included
        mounted: Paths currently reported as mount points
        running: Process names pgrep reports as running
        failures: Program name -> CommandResult to return instead
        output: Program name -> lines fed to the output callback
        mount_takes_effect: When False, mount succeeds without mounting
    """

    def __init__(self, programs=DEFAULT_PROGRAMS):
        self.available = set(programs)
        self.calls: List[List[str]] = []
        self.mounted = set()
        self.running = set()
        self.failures: Dict[str, CommandResult] = {}
        self.output: Dict[str, List[str]] = {}
        self.mount_takes_effect = True

    def which(self, program: str) -> Optional[str]:
        return f"/usr/bin/{program}" if program in self.available else None

    def run(self, cmd, on_output=None) -> CommandResult:
        self.calls.append(list(cmd))
        args = list(cmd[1:]) if cmd[0] == "sudo" else list(cmd)
        program = args[0]

        if program not in self.available:
            return CommandResult(-1, "", f"Command not found: {program}")

        for line in self.output.get(program, []):
            if on_output:
                on_output(line)

        if program in self.failures:
            return self.failures[program]

        if program == "mountpoint":
            return CommandResult(0 if args[-1] in self.mounted else 1)
        if program == "mount":
            if self.mount_takes_effect:
                self.mounted.add(args[-1])
            return CommandResult(0)
        if program == "umount":
            self.mounted.discard(args[-1])
            return CommandResult(0)
        if program == "pgrep":
            return CommandResult(0 if args[-1] in self.running else 1)
        return CommandResult(0)

    def commands(self, program: str) -> List[List[str]]:
        """Calls of ``program`` with any sudo prefix stripped."""
        result = []
        for call in self.calls:
            args = call[1:] if call[0] == "sudo" else call
            if args[0] == program:
                result.append(args)
        return result


def yes(_prompt: str) -> bool:
    return True


def no(_prompt: str) -> bool:
    return False


@pytest.fixture
def fake_runner():
    """A FakeRunner with every external tool installed."""
    return FakeRunner()


@pytest.fixture
def profile_dirs(tmp_path):
    """Profile, RAM mirror and backup locations under tmp_path.

    The profile exists; the RAM mirror and backup directory do not.
    """
    source = tmp_path / "home" / ".config" / "vivaldi"
    ram = tmp_path / "shm" / "vivaldi-profile"
    backups = tmp_path / "home" / "Backups" / "vivaldi-profile-ram"
    source.mkdir(parents=True)
    (tmp_path / "shm").mkdir()
    return {"source": source, "ram": ram, "backups": backups, "root": tmp_path}


@pytest.fixture
def populated_profile(profile_dirs):
    """Profile directory with a small realistic tree."""
    source = profile_dirs["source"]

    (source / "Local State").write_text(json.dumps({"browser": {"enabled_labs_experiments": []}}))
    (source / "Default").mkdir()
    (source / "Default" / "Preferences").write_text(json.dumps({"profile": {"name": "Default"}}))
    (source / "Default" / "History").write_bytes(b"SQLite format 3\x00" + b"\x00" * 2048)
    (source / "Default" / "Extensions").mkdir()
    (source / "Default" / "Extensions" / "manifest.json").write_text("{}")

    return profile_dirs


@pytest.fixture
def profile_config(profile_dirs):
    """ProfileConfig over the temp layout using the native mirror, no sudo."""
    return ProfileConfig(
        source=profile_dirs["source"],
        ram_path=profile_dirs["ram"],
        backup_dir=profile_dirs["backups"],
        sync_strategy=SyncStrategy.NATIVE,
        use_sudo=False,
    )


@pytest.fixture
def backend(fake_runner):
    """LinuxBackend driven by the FakeRunner."""
    return LinuxBackend(runner=fake_runner, use_sudo=False)


def write_tree(root: Path, files: Dict[str, bytes]) -> None:
    """Create ``files`` (relative path -> content) under ``root``."""
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)


def read_tree(root: Path) -> Dict[str, bytes]:
    """Regular files under ``root`` as relative POSIX path -> content."""
    return {
        p.relative_to(root).as_posix(): p.read_bytes()
        for p in sorted(root.rglob("*"))
        if p.is_file() and not p.is_symlink()
    }
