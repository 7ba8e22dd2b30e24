"""APT package management and preflight command checks."""

import os
import shutil
import subprocess
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional

from .base import log
from .errors import PreflightError

# Command that must be on PATH -> package that provides it
REQUIRED_COMMANDS: Dict[str, str] = {
    "sudo": "sudo",
    "apt-get": "apt-get",
    "sed": "sed",
    "ssh-keygen": "openssh-client",
    "systemctl": "systemd",
    "dpkg": "dpkg",
    "curl": "curl",
    "git": "git",
    "nc": "netcat-traditional",
}

PARALLEL_INSTALL_WORKERS = 9

APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}


def _apt_get(*args: str, check: bool = True) -> subprocess.CompletedProcess:
    """Run an apt-get command."""
    cmd = ["sudo", "-E", "apt-get"] + list(args)
    return subprocess.run(cmd, check=check, env={**os.environ, **APT_ENV})


def get_installed_packages() -> set[str]:
    """
    Get all installed packages.

    More efficient than checking each package individually.
    """
    result = subprocess.run(
        ["dpkg-query", "-W", "-f=${Package} ${Status}\n"],
        capture_output=True,
        text=True,
    )
    if result.returncode != 0:
        return set()
    installed = set()
    for line in result.stdout.splitlines():
        name, _, status = line.partition(" ")
        if status.endswith("installed") and "not-installed" not in status:
            installed.add(name.split(":")[0])
    return installed


def update_package_lists() -> None:
    """Refresh apt package lists."""
    print("Updating package lists...")
    _apt_get("update")


def dist_upgrade() -> None:
    """Upgrade all installed packages, allowing dependency changes."""
    print("Running dist-upgrade...")
    _apt_get("dist-upgrade", "-y")


def install(packages: list[str]) -> None:
    """Install packages (not idempotent - use ensure_packages instead)."""
    if not packages:
        return
    _apt_get("install", "-y", *packages)


def ensure_packages(packages: list[str]) -> list[str]:
    """
    Idempotently ensure packages are installed.

    Args:
        packages: List of package names to ensure are installed

    Returns:
        List of packages that were newly installed
    """
    installed = get_installed_packages()
    to_install = [p for p in packages if p not in installed]

    if to_install:
        print(f"Installing: {', '.join(to_install)}")
        install(to_install)
    else:
        print(f"Already installed: {', '.join(packages)}")

    return to_install


def find_missing_commands(required: Optional[Dict[str, str]] = None) -> list[str]:
    """
    Find packages providing commands that are not on PATH.

    Returns:
        Package names in the order of ``required``, without duplicates
    """
    required = REQUIRED_COMMANDS if required is None else required
    missing: List[str] = []
    for command, package in required.items():
        if shutil.which(command):
            log(f"{command} is already installed.")
        elif package not in missing:
            missing.append(package)
    return missing


def _install_one(package: str) -> bool:
    result = _apt_get("install", "-y", package, check=False)
    return result.returncode == 0


def install_parallel_then_serial(
    packages: list[str],
    workers: int = PARALLEL_INSTALL_WORKERS,
) -> list[str]:
    """
    Install packages concurrently, retrying failures one at a time.

    Concurrent apt-get runs contend for the dpkg lock, so some attempts are
    expected to fail and are picked up by the serial retry.

    Returns:
        Packages that could not be installed even after the retry
    """
    if not packages:
        return []

    with ThreadPoolExecutor(max_workers=min(workers, len(packages))) as pool:
        outcomes = list(pool.map(_install_one, packages))

    failed_first = [pkg for pkg, ok in zip(packages, outcomes) if not ok]
    if not failed_first:
        log("Parallel installation successful.")
        return []

    log("Parallel installation failed. Retrying packages one by one...", "WARN")
    failed = []
    for package in failed_first:
        if _install_one(package):
            log(f"Successfully installed {package} after retry.")
        else:
            log(f"Failed to install {package} even after retry.", "ERROR")
            failed.append(package)
    return failed


def ensure_commands(required: Optional[Dict[str, str]] = None) -> list[str]:
    """
    Make sure every required command is available.

    Returns:
        Packages that were installed

    Raises:
        PreflightError: if a command is still missing afterwards
    """
    required = REQUIRED_COMMANDS if required is None else required
    missing = find_missing_commands(required)

    if missing:
        log(f"Installing missing packages: {' '.join(missing)}")
        try:
            update_package_lists()
        except subprocess.CalledProcessError as e:
            raise PreflightError(
                "Error updating package lists. Please check your sources and network."
            ) from e
        failed = install_parallel_then_serial(missing)
        if failed:
            raise PreflightError(f"The following packages could not be installed: {' '.join(failed)}")
    else:
        log("All required packages are already installed.")

    still_missing = [cmd for cmd in required if not shutil.which(cmd)]
    if still_missing:
        raise PreflightError(
            f"Still not available after all installation attempts: {', '.join(still_missing)}"
        )

    log("All required commands are now available.")
    return missing
