"""Host configuration loaded from configs/host.toml."""

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from .base import log
from .paths import HOST_CONFIG

DEFAULT_FASTFETCH_REPO = "https://github.com/mews-se/update-fastfetch.git"


@dataclass
class HostConfig:
    """
    Settings for one provisioning run.

    ``aliases`` keeps the order of the [aliases] table; it is the managed
    alias set the reconciler enforces.
    """
    allow_users: List[str] = field(default_factory=list)
    sudoers_group: str = "sudo"
    apt_proxy_host: Optional[str] = None
    apt_proxy_port: int = 3142
    key_type: str = "ed25519"
    key_comment: Optional[str] = None
    bashrc: dict = field(default_factory=dict)
    snmpd: dict = field(default_factory=dict)
    docker_distro: str = "auto"
    fastfetch_repo: str = DEFAULT_FASTFETCH_REPO
    fastfetch_dir: str = "update-fastfetch"
    aliases: Dict[str, str] = field(default_factory=dict)
    source: Optional[Path] = None


def _require(table: dict, key: str, kind: type, section: str):
    value = table.get(key)
    if value is not None and not isinstance(value, kind):
        raise ValueError(f"[{section}] {key} must be a {kind.__name__}, got {type(value).__name__}")
    return value


def parse_host_config(data: dict, source: Optional[Path] = None) -> HostConfig:
    """
    Build a HostConfig from a parsed TOML document.

    Raises:
        ValueError: if a setting has the wrong type
    """
    config = HostConfig(source=source)

    ssh = data.get("ssh", {})
    allow_users = _require(ssh, "allow_users", list, "ssh")
    if allow_users is not None:
        config.allow_users = [str(u) for u in allow_users]

    sudoers = data.get("sudoers", {})
    config.sudoers_group = _require(sudoers, "group", str, "sudoers") or config.sudoers_group

    proxy = data.get("apt_proxy", {})
    config.apt_proxy_host = _require(proxy, "host", str, "apt_proxy")
    port = _require(proxy, "port", int, "apt_proxy")
    if port is not None:
        config.apt_proxy_port = port

    keys = data.get("keys", {})
    config.key_type = _require(keys, "type", str, "keys") or config.key_type
    config.key_comment = _require(keys, "comment", str, "keys")

    config.bashrc = dict(data.get("bashrc", {}))
    config.snmpd = dict(data.get("snmpd", {}))

    docker = data.get("docker", {})
    config.docker_distro = _require(docker, "distro", str, "docker") or config.docker_distro

    fastfetch = data.get("fastfetch", {})
    config.fastfetch_repo = _require(fastfetch, "repo", str, "fastfetch") or config.fastfetch_repo
    config.fastfetch_dir = _require(fastfetch, "dir", str, "fastfetch") or config.fastfetch_dir

    aliases = data.get("aliases", {})
    for name, definition in aliases.items():
        if not isinstance(definition, str):
            raise ValueError(f"[aliases] {name} must be a string")
        if not name or any(c.isspace() or c == "=" for c in name):
            raise ValueError(f"[aliases] invalid alias name {name!r}")
        config.aliases[name] = definition

    return config


def load_host_config(path: Path = HOST_CONFIG) -> HostConfig:
    """
    Load the host configuration.

    A missing file gives the built-in defaults and an empty alias set.
    """
    path = Path(path)
    if not path.exists():
        log(f"{path} not found, using defaults with no managed aliases", "WARN")
        return HostConfig()

    with open(path, "rb") as f:
        data = tomllib.load(f)

    return parse_host_config(data, source=path)
