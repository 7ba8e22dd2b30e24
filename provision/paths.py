"""Centralized path constants for startchanges.

This module provides all path constants used throughout startchanges,
ensuring consistency and making paths easy to update.
"""

import grp
import os
import pwd
from pathlib import Path
from typing import List, Optional

# Project paths (relative to this file's location)
PROJECT_ROOT = Path(__file__).parent.parent.resolve()
CONFIGS_DIR = PROJECT_ROOT / "configs"
HOST_CONFIG = CONFIGS_DIR / "host.toml"
TEMPLATES_DIR = Path(__file__).parent / "templates"

# System paths - access control
SUDOERS_FILE = Path("/etc/sudoers")
SSHD_CONFIG = Path("/etc/ssh/sshd_config")

# System paths - apt
APT_PROXY_CONF = Path("/etc/apt/apt.conf.d/02proxy")
APT_KEYRINGS_DIR = Path("/etc/apt/keyrings")
DOCKER_KEYRING = APT_KEYRINGS_DIR / "docker.asc"
DOCKER_SOURCES_LIST = Path("/etc/apt/sources.list.d/docker.list")

# System paths - services
SNMPD_CONF = Path("/etc/snmp/snmpd.conf")
DEVICE_TREE_MODEL = Path("/proc/device-tree/model")


def get_target_user(explicit: Optional[str] = None) -> Optional[str]:
    """
    Get the user the host is being provisioned for.

    An explicit name wins; otherwise the user who invoked sudo.
    """
    return explicit or os.environ.get("SUDO_USER")


def get_user_home(user: Optional[str] = None) -> Path:
    """
    Get a user's home directory.

    Without a user name this is the current user's home.

    Raises:
        ValueError: if the named user does not exist
    """
    if not user:
        return Path.home()
    try:
        return Path(pwd.getpwnam(user).pw_dir)
    except KeyError:
        raise ValueError(f"Unknown user: {user}") from None


def get_user_group(user: str) -> str:
    """Get the name of a user's primary group."""
    return grp.getgrgid(pwd.getpwnam(user).pw_gid).gr_name


def as_user(user: Optional[str]) -> List[str]:
    """
    Command prefix that runs a command as ``user``.

    Empty when we already are that user, so commands run directly.
    """
    if not user or user == pwd.getpwuid(os.geteuid()).pw_name:
        return []
    return ["sudo", "-u", user]
