"""System update and upgrade, with an optional APT caching proxy."""

import re
import socket
from pathlib import Path

from .files import ensure_file, join_lines, read_file, split_lines
from .packages import dist_upgrade, update_package_lists
from .paths import APT_PROXY_CONF

PROXY_DIRECTIVE_RE = re.compile(r"^(Acquire::https?::Proxy)")


def is_proxy_reachable(host: str, port: int, timeout: float = 1.0) -> bool:
    """
    Test if the proxy accepts TCP connections.

    Uses a raw socket connection test, like ``nc -w1 -z``.
    """
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError:
        return False


def render_proxy_conf(host: str, port: int) -> str:
    return (
        f'Acquire::http::Proxy "http://{host}:{port}";\n'
        f'Acquire::https::Proxy "http://{host}:{port}";\n'
    )


def disable_proxy_conf(text: str) -> str:
    """Comment out active proxy directives, leaving everything else alone."""
    return join_lines([PROXY_DIRECTIVE_RE.sub(r"# \1", line) for line in split_lines(text)])


def configure_apt_proxy(
    host: str,
    port: int,
    path: Path = APT_PROXY_CONF,
    dry_run: bool = False,
) -> bool:
    """
    Point APT at the caching proxy when it is reachable, disable it otherwise.

    Returns:
        True if the proxy configuration file was changed
    """
    current = read_file(path) if path.exists() else None

    if is_proxy_reachable(host, port):
        print(f"Proxy server {host}:{port} is reachable. Configuring proxy for APT.")
        if current is not None and f"{host}:{port}" in current:
            print(f"Proxy configuration already exists in {path}.")
            return False
        if dry_run:
            print(f"Would write proxy configuration to {path}")
            return True
        return ensure_file(path, render_proxy_conf(host, port), owner="root", group="root", mode=0o644)

    print(f"WARNING: Proxy server {host}:{port} is not reachable. Commenting out proxy configuration.")
    if current is None:
        return False
    disabled = disable_proxy_conf(current)
    if disabled == current:
        return False
    if dry_run:
        print(f"Would comment out proxy directives in {path}")
        return True
    return ensure_file(path, disabled, backup=False)


def system_update_upgrade(dry_run: bool = False) -> None:
    """Refresh package lists and perform a full distribution upgrade."""
    if dry_run:
        print("Would run: apt-get update && apt-get dist-upgrade -y")
        return
    update_package_lists()
    dist_upgrade()
