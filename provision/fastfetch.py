"""Install the latest fastfetch release from GitHub."""

import json
import platform
import shutil
import tempfile
from pathlib import Path
from typing import Optional
from urllib.request import Request, urlopen

from .packages import install

LATEST_RELEASE_URL = "https://api.github.com/repos/fastfetch-cli/fastfetch/releases/latest"

# platform.machine() -> architecture in fastfetch's .deb asset names
ARCH_MAP = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "aarch64",
    "arm64": "aarch64",
    "armv7l": "armv7l",
    "armv6l": "armv6l",
}


def get_arch() -> str:
    """Get the fastfetch asset architecture for this machine."""
    machine = platform.machine()
    return ARCH_MAP.get(machine, machine)


def fetch_latest_release(url: str = LATEST_RELEASE_URL, timeout: int = 10) -> dict:
    """Fetch the latest release description from the GitHub API."""
    request = Request(url, headers={"Accept": "application/vnd.github+json"})
    with urlopen(request, timeout=timeout) as resp:
        return json.loads(resp.read().decode("utf-8"))


def select_deb_asset(release: dict, arch: str) -> Optional[str]:
    """
    Find the download URL of the Linux .deb asset for ``arch``.

    Returns:
        The browser download URL, or None if the release has no such asset
    """
    wanted = f"linux-{arch}.deb"
    for asset in release.get("assets", []):
        if asset.get("name", "").endswith(wanted):
            return asset.get("browser_download_url")
    return None


def install_latest_fastfetch(arch: Optional[str] = None, dry_run: bool = False) -> str:
    """
    Download the newest fastfetch .deb and install it with apt-get.

    Returns:
        The release tag that was installed

    Raises:
        RuntimeError: if the release has no .deb for this architecture
        urllib.error.URLError: if GitHub cannot be reached
        subprocess.CalledProcessError: if apt-get fails
    """
    arch = arch or get_arch()
    release = fetch_latest_release()
    tag = release.get("tag_name", "unknown")
    url = select_deb_asset(release, arch)
    if not url:
        raise RuntimeError(f"fastfetch {tag} has no linux-{arch}.deb asset")

    if dry_run:
        print(f"Would install fastfetch {tag} from {url}")
        return tag

    with tempfile.TemporaryDirectory(prefix="fastfetch.") as tmpdir:
        deb_path = Path(tmpdir) / f"fastfetch_latest_{arch}.deb"
        print(f"Downloading {url}")
        with urlopen(url, timeout=60) as resp, open(deb_path, "wb") as out:
            shutil.copyfileobj(resp, out)
        # apt runs the download as _apt, which must be able to read it
        Path(tmpdir).chmod(0o755)
        deb_path.chmod(0o644)
        install([str(deb_path)])

    print(f"fastfetch {tag} installed.")
    return tag
