"""SNMP daemon installation and configuration."""

from pathlib import Path
from typing import Optional

from .files import ensure_file, read_file, render_template
from .packages import ensure_packages
from .paths import DEVICE_TREE_MODEL, SNMPD_CONF
from .services import reload_if_active

SNMPD_PACKAGES = ["lm-sensors", "snmpd"]

SNMPD_DEFAULTS = {
    "location": "Sitting on the Dock of the Bay",
    "contact": "Me <me@example.org>",
    "community": "public",
    "agent_address": "udp:161",
    "platform": "auto",
}


def detect_platform(model_path: Path = DEVICE_TREE_MODEL) -> str:
    """Return 'pi' on a Raspberry Pi, 'pc' otherwise."""
    if model_path.exists() and "Raspberry Pi" in read_file(model_path):
        return "pi"
    return "pc"


def render_snmpd_conf(settings: Optional[dict] = None) -> str:
    """Render snmpd.conf, filling gaps from SNMPD_DEFAULTS."""
    context = dict(SNMPD_DEFAULTS)
    context.update(settings or {})
    if context["platform"] == "auto":
        context["platform"] = detect_platform()
    return render_template("snmpd.conf.j2", context)


def install_configure_snmpd(
    settings: Optional[dict] = None,
    path: Path = SNMPD_CONF,
    dry_run: bool = False,
) -> bool:
    """
    Install snmpd and lm-sensors, then write snmpd.conf.

    Returns:
        True if the service picked up the configuration (reloaded), False if
        it was not running
    """
    content = render_snmpd_conf(settings)

    if dry_run:
        print(f"Would install {', '.join(SNMPD_PACKAGES)} and write {path}")
        return True

    ensure_packages(SNMPD_PACKAGES)
    ensure_file(path, content, owner="root", group="root", mode=0o600, backup=True)
    return reload_if_active("snmpd")
