"""Docker CE installation from the official Docker APT repository."""

import grp
import subprocess
from pathlib import Path
from typing import Dict, Optional

from .files import ensure_dir, ensure_file, set_permissions
from .packages import ensure_packages, update_package_lists
from .paths import APT_KEYRINGS_DIR, DOCKER_KEYRING, DOCKER_SOURCES_LIST

OS_RELEASE = Path("/etc/os-release")
DOCKER_REPO_BASE = "https://download.docker.com/linux"

DOCKER_PREREQUISITES = ["ca-certificates", "curl"]
DOCKER_PACKAGES = [
    "docker-ce",
    "docker-ce-cli",
    "containerd.io",
    "docker-buildx-plugin",
    "docker-compose-plugin",
    "docker-ce-rootless-extras",
]

# Distributions without their own Docker repository use Debian's
DISTRO_FALLBACK = {"raspbian": "debian"}


def parse_os_release(path: Path = OS_RELEASE) -> Dict[str, str]:
    """Parse /etc/os-release into a dictionary."""
    values = {}
    if not path.exists():
        return values
    for line in path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        values[key.strip()] = value.strip().strip('"').strip("'")
    return values


def get_dpkg_architecture() -> str:
    result = subprocess.run(
        ["dpkg", "--print-architecture"],
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout.strip()


def resolve_distro(distro: str, os_release: Dict[str, str]) -> str:
    """Resolve 'auto' to the Docker repository name for this system."""
    if distro != "auto":
        return distro
    detected = os_release.get("ID", "debian")
    return DISTRO_FALLBACK.get(detected, detected)


def render_docker_source(arch: str, codename: str, distro: str = "debian") -> str:
    return (
        f"deb [arch={arch} signed-by={DOCKER_KEYRING}] "
        f"{DOCKER_REPO_BASE}/{distro} {codename} stable\n"
    )


def install_docker_repository(distro: str = "auto", dry_run: bool = False) -> bool:
    """
    Add Docker's signing key and APT source, then refresh package lists.

    Returns:
        True if the APT source file changed
    """
    os_release = parse_os_release()
    distro = resolve_distro(distro, os_release)
    codename = os_release.get("VERSION_CODENAME")
    if not codename:
        raise ValueError(f"VERSION_CODENAME missing from {OS_RELEASE}")

    if dry_run:
        print(f"Would add {DOCKER_REPO_BASE}/{distro} ({codename}) to {DOCKER_SOURCES_LIST}")
        return True

    ensure_packages(DOCKER_PREREQUISITES)
    ensure_dir(APT_KEYRINGS_DIR, mode=0o755)

    print(f"Downloading Docker GPG key to {DOCKER_KEYRING}")
    subprocess.run(
        ["sudo", "curl", "-fsSL", f"{DOCKER_REPO_BASE}/{distro}/gpg", "-o", str(DOCKER_KEYRING)],
        check=True,
    )
    set_permissions(DOCKER_KEYRING, mode=0o644)

    source = render_docker_source(get_dpkg_architecture(), codename, distro)
    changed = ensure_file(DOCKER_SOURCES_LIST, source, owner="root", group="root", mode=0o644)

    update_package_lists()
    return changed


def user_in_group(user: str, group: str) -> bool:
    try:
        return user in grp.getgrnam(group).gr_mem
    except KeyError:
        return False


def install_docker_ce(user: Optional[str], dry_run: bool = False) -> bool:
    """
    Install Docker CE with its plugins and let ``user`` use it.

    Returns:
        True if packages were installed or the user was added to the group
    """
    if dry_run:
        print(f"Would install: {', '.join(DOCKER_PACKAGES)}")
        return True

    changed = bool(ensure_packages(DOCKER_PACKAGES))

    if user and not user_in_group(user, "docker"):
        print(f"Adding {user} to group 'docker'")
        subprocess.run(["sudo", "usermod", "-aG", "docker", user], check=True)
        changed = True

    return changed
