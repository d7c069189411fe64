"""Systemd user service for loading and saving the profile with the session.

The unit is a oneshot that runs ``<exec> load`` when the user session
starts and ``<exec> save`` when it stops. User-level systemd
(``systemctl --user``) is used, so installing needs no root.

Usage:
    from ram_profile_manager.service import install_service
    install_service(ServiceConfig())
"""

import logging
from typing import Dict, Optional

from .config import ProfileConfig, ServiceConfig
from .utils.process import CommandResult, CommandRunner

logger = logging.getLogger(__name__)


def _systemctl(runner: CommandRunner, *args: str) -> CommandResult:
    """Run a ``systemctl --user`` command."""
    return runner.run(["systemctl", "--user", *args])


def generate_unit_file(service: Optional[ServiceConfig] = None) -> str:
    """Render the unit file.

    Args:
        service: Service settings (defaults apply when None)

    Returns:
        str: Complete unit file content
    """
    service = service or ServiceConfig()
    exec_cmd = service.exec_path

    return f"""[Unit]
Description={service.description}
After=graphical-session.target

[Service]
Type=oneshot
ExecStart={exec_cmd} load
ExecStop={exec_cmd} save
RemainAfterExit=yes

[Install]
WantedBy=default.target
"""


def install_service(
    service: Optional[ServiceConfig] = None,
    runner: Optional[CommandRunner] = None,
) -> Dict[str, bool]:
    """Write the unit file, reload systemd and enable the unit.

    Returns:
        dict: 'installed' and 'enabled' flags
    """
    service = service or ServiceConfig()
    runner = runner or CommandRunner()
    result = {"installed": False, "enabled": False}

    service.unit_dir.mkdir(parents=True, exist_ok=True)
    unit_path = service.unit_dir / service.service_name
    unit_path.write_text(generate_unit_file(service))
    result["installed"] = True
    logger.info(f"Wrote unit file {unit_path}")

    reload = _systemctl(runner, "daemon-reload")
    if not reload.ok:
        logger.warning(f"systemctl daemon-reload failed: {reload.output}")

    enable = _systemctl(runner, "enable", service.service_name)
    result["enabled"] = enable.ok
    if enable.ok:
        logger.info(f"Enabled {service.service_name}")
    else:
        logger.error(f"Could not enable {service.service_name}: {enable.output}")

    return result


def disable_service(
    service: Optional[ServiceConfig] = None,
    runner: Optional[CommandRunner] = None,
) -> bool:
    """Disable the unit but keep its file.

    Returns:
        bool: True if systemctl reported success
    """
    service = service or ServiceConfig()
    runner = runner or CommandRunner()

    r = _systemctl(runner, "disable", service.service_name)
    if r.ok:
        logger.info(f"Disabled {service.service_name}")
    else:
        logger.warning(f"systemctl disable {service.service_name} failed: {r.output}")
    return r.ok


def remove_service(
    service: Optional[ServiceConfig] = None,
    runner: Optional[CommandRunner] = None,
) -> Dict[str, bool]:
    """Disable the unit and delete its file.

    A unit that is already disabled or missing is not an error.

    Returns:
        dict: 'disabled' and 'removed' flags
    """
    service = service or ServiceConfig()
    runner = runner or CommandRunner()

    disabled = disable_service(service, runner)

    unit_path = service.unit_dir / service.service_name
    removed = unit_path.exists()
    unit_path.unlink(missing_ok=True)
    if removed:
        logger.info(f"Removed unit file {unit_path}")

    _systemctl(runner, "daemon-reload")
    return {"disabled": disabled, "removed": removed}


def sudoers_instructions(
    config: ProfileConfig,
    user: str,
    runner: Optional[CommandRunner] = None,
) -> str:
    """Instructions for password-less mount and umount of this profile.

    Args:
        config: Profile configuration (paths appear in the rule)
        user: Account the rule is for
        runner: Used to locate the mount binaries

    Returns:
        str: Multi-line instructions
    """
    runner = runner or CommandRunner()
    mount = runner.which("mount") or "/bin/mount"
    umount = runner.which("umount") or "/bin/umount"

    return f"""\
OPTIONAL: password-less mount/umount

To load and save without a sudo password prompt:

1) Open sudoers safely:

   sudo visudo

2) Add this line at the end:

   {user} ALL=(root) NOPASSWD: \\
     {mount} --bind {config.ram_path} {config.source}, \\
     {umount} {config.source}

3) Save and exit.
"""
