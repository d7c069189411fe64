"""CLI entry point for RAM Profile Manager.

Usage:
    ram-profile [OPTIONS] load
    ram-profile [OPTIONS] save
    ram-profile [OPTIONS] status [--json]
    ram-profile [OPTIONS] backup | restore | restore-select
    ram-profile [OPTIONS] check-ram
    ram-profile [OPTIONS] clean-backup | purge-backup
    ram-profile [OPTIONS] install [--exec-path PATH] | disable | remove
    ram-profile [OPTIONS] sudo-help

Commands:
    load            Load the profile into RAM
    save            Save the RAM profile back to disk
    status          Show RAM and backup status
    check-ram       Check profile size against available RAM
    backup          Create a ZIP backup (RAM must be active)
    restore         Restore the latest backup
    restore-select  Restore a backup chosen from a list
    clean-backup    Delete all backups except the latest
    purge-backup    Delete all backups
    install         Install and enable the systemd user service
    disable         Disable the service (keep its file)
    remove          Disable the service and remove its file
    sudo-help       Show optional password-less sudo instructions
"""

import argparse
import getpass
import json
import logging
import sys
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from tqdm import tqdm

from ram_profile_manager import __version__
from ram_profile_manager.backup.inventory import BackupRecord
from ram_profile_manager.config import ManagerConfig, ProfileConfig, ServiceConfig, SyncStrategy
from ram_profile_manager.errors import InvalidSelection, RamProfileError
from ram_profile_manager.manager import ProfileManager
from ram_profile_manager.results import ConfirmCallback, OperationResult, Outcome, SelectCallback
from ram_profile_manager.service import (
    disable_service,
    install_service,
    remove_service,
    sudoers_instructions,
)
from ram_profile_manager.utils.logging import CLI_FORMAT, configure_root_logger
from ram_profile_manager.utils.process import CommandRunner


def format_bytes(size: float) -> str:
    """Human-readable binary size."""
    for unit in ("B", "KiB", "MiB", "GiB"):
        if abs(size) < 1024 or unit == "GiB":
            return f"{size:.0f} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} GiB"


def terminal_confirm(prompt: str) -> bool:
    """Ask a yes/no question on the terminal. Anything but yes means no."""
    try:
        answer = input(f"{prompt} [y/N] ")
    except EOFError:
        print()
        return False
    return answer.strip().lower() in ("y", "yes")


def terminal_select(records: Sequence[BackupRecord]) -> Optional[int]:
    """Print the numbered backups and read a choice.

    Returns:
        1-based index, or None when the user cancels

    Raises:
        InvalidSelection: If the answer is not a number
    """
    print("Available backups:")
    for number, record in enumerate(records, start=1):
        print(
            f"  {number:>3}) {record.name}  "
            f"{format_bytes(record.size_bytes):>10}  "
            f"{record.modified:%Y-%m-%d %H:%M:%S}"
        )
    try:
        answer = input(f"Select backup [1-{len(records)}], or c to cancel: ").strip()
    except EOFError:
        print()
        return None
    if answer.lower() in ("", "c", "cancel", "q"):
        return None
    try:
        return int(answer)
    except ValueError:
        raise InvalidSelection(f"Not a backup number: {answer!r}") from None


class ProgressBar:
    """Progress callback drawing a tqdm bar in percent.

    The bar is created on the first report, so confirmation prompts and
    the backup menu shown before any work starts are not drawn under it.

    Example:
        with ProgressBar("Mirroring") as bar:
            manager.load(progress=bar)
    """

    def __init__(self, desc: str):
        self.desc = desc
        self._bar = None

    def __call__(self, fraction: float) -> None:
        if self._bar is None:
            self._bar = tqdm(total=100, desc=f"  {self.desc}", unit="%", leave=False, disable=None)
        position = int(fraction * 100)
        if position > self._bar.n:
            self._bar.update(position - self._bar.n)

    def __enter__(self) -> "ProgressBar":
        return self

    def __exit__(self, *exc_info) -> None:
        if self._bar is not None:
            self._bar.close()


def exit_code(result: OperationResult) -> int:
    """0 for done, no-op and cancel; 1 for a declined confirmation."""
    return 1 if result.outcome == Outcome.DECLINED else 0


def report(result: OperationResult) -> int:
    """Print an operation result and return its exit code."""
    stream = sys.stderr if result.outcome == Outcome.DECLINED else sys.stdout
    print(result.message, file=stream)
    return exit_code(result)


def _abspath(value: Optional[str]) -> Optional[Path]:
    return Path(value).expanduser().absolute() if value else None


def build_config(args: argparse.Namespace) -> ProfileConfig:
    """ProfileConfig for the default layout with command-line overrides."""
    return ProfileConfig.for_home(
        source=_abspath(args.profile),
        ram_path=_abspath(args.ram_path),
        backup_dir=_abspath(args.backup_dir),
        backup_prefix=args.prefix,
        process_name=args.process_name,
        capacity_multiplier=args.multiplier,
        check_capacity_on_load=True if args.check_capacity else None,
        sync_strategy=SyncStrategy(args.strategy) if args.strategy else None,
        verify_integrity=False if args.no_verify else None,
        use_sudo=False if args.no_sudo else None,
    )


def cmd_load(manager: ProfileManager, args: argparse.Namespace) -> int:
    """Handle the 'load' command - mirror to RAM and bind-mount."""
    with ProgressBar("Copying profile to RAM") as bar:
        result = manager.load(progress=bar)
    if result.outcome == Outcome.DONE:
        print(f"Profile is now running from RAM: {manager.config.ram_path}")
        print(f"  Do NOT delete {manager.config.ram_path} while it is mounted")
        return 0
    return report(result)


def cmd_save(manager: ProfileManager, args: argparse.Namespace) -> int:
    """Handle the 'save' command - unmount and mirror back to disk."""
    with ProgressBar("Copying profile to disk") as bar:
        result = manager.save(progress=bar)
    return report(result)


def cmd_backup(manager: ProfileManager, args: argparse.Namespace) -> int:
    """Handle the 'backup' command - archive the live profile."""
    with ProgressBar("Creating backup") as bar:
        result = manager.backup(progress=bar)
    size = result.path.stat().st_size
    print(f"Backup created: {result.path} ({format_bytes(size)})")
    return 0


def cmd_restore(manager: ProfileManager, args: argparse.Namespace) -> int:
    """Handle the 'restore' command - overlay the latest backup."""
    with ProgressBar("Restoring backup") as bar:
        result = manager.restore_latest(progress=bar)
    return report(result)


def cmd_restore_select(manager: ProfileManager, args: argparse.Namespace) -> int:
    """Handle the 'restore-select' command - overlay a chosen backup."""
    with ProgressBar("Restoring backup") as bar:
        result = manager.restore_selected(progress=bar)
    return report(result)


def cmd_check_ram(manager: ProfileManager, args: argparse.Namespace) -> int:
    """Handle the 'check-ram' command - compare profile size with free RAM."""
    capacity = manager.check_capacity()
    print(f"Profile size:       {format_bytes(capacity.profile_bytes)}")
    print(f"Available in RAM:   {format_bytes(capacity.available_bytes)}")
    print(f"Required ({capacity.multiplier:g}x):     {format_bytes(capacity.required_bytes)}")
    if capacity.error:
        print(f"Error: {capacity.error}", file=sys.stderr)
    if capacity.ok:
        print("Enough RAM to load the profile")
        return 0
    print("Not enough RAM to load the profile safely", file=sys.stderr)
    return 1


def cmd_status(manager: ProfileManager, args: argparse.Namespace) -> int:
    """Handle the 'status' command - show mount and backup state."""
    status = manager.status()

    if args.json:
        print(json.dumps(status.to_dict(), indent=2, default=str))
        return 0

    process = manager.config.process_name
    print(f"Profile:      {status.source}")
    print(f"RAM mirror:   {status.ram_path}")
    print(f"RAM active:   {'yes' if status.mounted else 'no'}")
    if status.stale_mirror:
        print(f"  Warning: {status.ram_path} holds a copy that is not mounted; run load or save")
    print(f"{process} running: {'yes' if status.application_running else 'no'}")
    if status.ram_usage:
        usage = status.ram_usage
        print(
            f"RAM usage:    {format_bytes(usage.used_bytes)} / "
            f"{format_bytes(usage.total_bytes)} ({usage.percent_used:.1f}%)"
        )
    print(f"Backups:      {status.backup_count} in {status.backup_dir}")
    if status.latest_backup:
        print(f"Latest:       {status.latest_backup.name} ({status.latest_age_days} days old)")
        if status.backup_stale:
            print(f"  Warning: latest backup is older than {manager.config.stale_backup_days} days")
    return 0


def cmd_clean_backup(manager: ProfileManager, args: argparse.Namespace) -> int:
    """Handle the 'clean-backup' command - keep only the latest backup."""
    return report(manager.clean_backups())


def cmd_purge_backup(manager: ProfileManager, args: argparse.Namespace) -> int:
    """Handle the 'purge-backup' command - delete every backup."""
    return report(manager.purge_backups())


def cmd_install(manager: ProfileManager, args: argparse.Namespace) -> int:
    """Handle the 'install' command - write and enable the user unit."""
    service = ServiceConfig(
        exec_path=args.exec_path or manager.runner.which("ram-profile") or "ram-profile",
    )
    result = install_service(service, manager.runner)
    if not result["enabled"]:
        print(f"Error: could not enable {service.service_name}", file=sys.stderr)
        return 1
    print(f"Service {service.service_name} installed and enabled")
    if manager.confirm("Show optional password-less sudo instructions?"):
        print(sudoers_instructions(manager.config, getpass.getuser(), manager.runner))
    return 0


def cmd_disable(manager: ProfileManager, args: argparse.Namespace) -> int:
    """Handle the 'disable' command - disable the unit, keep its file."""
    service = ServiceConfig()
    disable_service(service, manager.runner)
    print(f"Service {service.service_name} disabled")
    return 0


def cmd_remove(manager: ProfileManager, args: argparse.Namespace) -> int:
    """Handle the 'remove' command - disable and delete the unit."""
    service = ServiceConfig()
    remove_service(service, manager.runner)
    print(f"Service {service.service_name} removed")
    if manager.list_backups():
        report(manager.purge_backups())
    return 0


def cmd_sudo_help(manager: ProfileManager, args: argparse.Namespace) -> int:
    """Handle the 'sudo-help' command."""
    print(sudoers_instructions(manager.config, getpass.getuser(), manager.runner))
    return 0


COMMANDS = {
    "load": cmd_load,
    "save": cmd_save,
    "backup": cmd_backup,
    "restore": cmd_restore,
    "restore-select": cmd_restore_select,
    "check-ram": cmd_check_ram,
    "check-capacity": cmd_check_ram,
    "status": cmd_status,
    "clean-backup": cmd_clean_backup,
    "purge-backup": cmd_purge_backup,
    "install": cmd_install,
    "disable": cmd_disable,
    "remove": cmd_remove,
    "sudo-help": cmd_sudo_help,
}


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        prog="ram-profile",
        description="Run the Vivaldi profile from RAM and keep ZIP backups of it",
    )
    parser.add_argument(
        "--version", action="version",
        version=f"%(prog)s {__version__}"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable verbose output"
    )
    parser.add_argument("--log-json", action="store_true", help="Log as JSON lines")
    parser.add_argument("--log-file", help="Also write logs to this file")

    paths = parser.add_argument_group("profile")
    paths.add_argument("--profile", help="Persistent profile directory (default: ~/.config/vivaldi)")
    paths.add_argument("--ram-path", help="RAM mirror directory (default: /dev/shm/vivaldi-profile)")
    paths.add_argument("--backup-dir", help="Backup directory (default: ~/Backups/vivaldi-profile-ram)")
    paths.add_argument("--prefix", help="Backup filename prefix (default: vivaldi-profile)")
    paths.add_argument("--process-name", help="Process to check before load/save (default: vivaldi-bin)")

    policy = parser.add_argument_group("policy")
    policy.add_argument("--multiplier", type=float, help="Required RAM as a multiple of profile size (default: 2)")
    policy.add_argument("--check-capacity", action="store_true", help="Refuse to load without enough RAM")
    policy.add_argument(
        "--strategy", choices=[s.value for s in SyncStrategy],
        help="Mirror strategy (default: auto)"
    )
    policy.add_argument("--no-verify", action="store_true", help="Skip hash verification after mirroring")
    policy.add_argument("--no-sudo", action="store_true", help="Run mount/umount without sudo")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("load", help="Load the profile into RAM")
    subparsers.add_parser("save", help="Save the RAM profile back to disk")

    status_parser = subparsers.add_parser("status", help="Show RAM and backup status")
    status_parser.add_argument("--json", action="store_true", help="Output as JSON")

    subparsers.add_parser("check-ram", aliases=["check-capacity"], help="Check profile size against available RAM")
    subparsers.add_parser("backup", help="Create a ZIP backup (RAM must be active)")
    subparsers.add_parser("restore", help="Restore the latest backup")
    subparsers.add_parser("restore-select", help="Restore a backup chosen from a list")
    subparsers.add_parser("clean-backup", help="Delete all backups except the latest")
    subparsers.add_parser("purge-backup", help="Delete all backups")

    install_parser = subparsers.add_parser("install", help="Install and enable the systemd user service")
    install_parser.add_argument("--exec-path", help="Command the service runs (default: ram-profile on PATH)")
    subparsers.add_parser("disable", help="Disable the service (keep its file)")
    subparsers.add_parser("remove", help="Disable the service and remove its file")
    subparsers.add_parser("sudo-help", help="Show optional password-less sudo instructions")

    return parser


def main(
    argv: Optional[List[str]] = None,
    runner: Optional[CommandRunner] = None,
    confirm: Optional[ConfirmCallback] = None,
    select: Optional[SelectCallback] = None,
    manager_factory: Optional[Callable[..., ProfileManager]] = None,
) -> int:
    """Main entry point for the CLI.

    Args:
        argv: Arguments (sys.argv[1:] when None)
        runner: Command runner (a real one when None)
        confirm: Yes/no callback (terminal prompt when None)
        select: Backup chooser (terminal menu when None)
        manager_factory: Builds the ProfileManager (the class itself when None)

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    level = logging.DEBUG if args.verbose else logging.INFO
    configure_root_logger(level, json_output=args.log_json, fmt=CLI_FORMAT)

    handler = COMMANDS.get(args.command)
    if handler is None:
        parser.print_help()
        return 1

    factory = manager_factory or ProfileManager
    try:
        manager = factory(
            build_config(args),
            manager_config=ManagerConfig(
                log_file=args.log_file,
                log_level=logging.getLevelName(level),
                json_logs=args.log_json,
            ),
            runner=runner,
            confirm=confirm or terminal_confirm,
            select=select or terminal_select,
        )
        return handler(manager, args)
    except RamProfileError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except (ValueError, NotImplementedError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
