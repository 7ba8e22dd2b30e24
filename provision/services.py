"""Systemd service management with idempotent operations."""

import subprocess


def _systemctl(*args: str, check: bool = True) -> subprocess.CompletedProcess:
    """Run a systemctl command."""
    cmd = ["sudo", "systemctl"] + list(args)
    return subprocess.run(cmd, capture_output=True, text=True, check=check)


def is_active(service: str) -> bool:
    """Check if a service is currently running."""
    result = _systemctl("is-active", "--quiet", service, check=False)
    return result.returncode == 0


def unit_exists(unit: str) -> bool:
    """Check if systemd knows about a unit file."""
    result = _systemctl("list-unit-files", unit, check=False)
    return unit in result.stdout


def restart_service(service: str) -> None:
    """Restart a service."""
    print(f"Restarting {service}")
    _systemctl("restart", service)


def reload_service(service: str) -> None:
    """Reload a service configuration without full restart."""
    print(f"Reloading {service}")
    _systemctl("reload", service)


def restart_if_active(service: str) -> bool:
    """
    Restart a service only when it is already running.

    Returns:
        True if restarted, False if the service was not running
    """
    if not is_active(service):
        print(f"WARNING: {service} is not active; not restarted. Check the service manually.")
        return False
    restart_service(service)
    print(f"{service} restarted successfully.")
    return True


def reload_if_active(service: str) -> bool:
    """
    Reload a service only when it is already running.

    Returns:
        True if reloaded, False if the service was not running
    """
    if not is_active(service):
        print(f"WARNING: {service} is not active; not reloaded. Check the service manually.")
        return False
    reload_service(service)
    print(f"{service} reloaded successfully.")
    return True
