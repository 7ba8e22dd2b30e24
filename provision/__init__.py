"""startchanges - post-install provisioning for Debian-based hosts."""

from .aliases import AliasEntry, AliasReconcileConfig, parse_alias_lines, reconcile, reconcile_alias_file
from .config import HostConfig, load_host_config
from .errors import CriticalStepError, OperatorAbort, PreflightError, ProvisionError, ReconcileError
from .files import atomic_write, backup_file, ensure_dir, ensure_file, read_file, render_template, set_permissions
from .packages import ensure_commands, ensure_packages, install
from .services import reload_service, restart_service

__all__ = [
    "AliasEntry",
    "AliasReconcileConfig",
    "parse_alias_lines",
    "reconcile",
    "reconcile_alias_file",
    "HostConfig",
    "load_host_config",
    "CriticalStepError",
    "OperatorAbort",
    "PreflightError",
    "ProvisionError",
    "ReconcileError",
    "atomic_write",
    "backup_file",
    "ensure_dir",
    "ensure_file",
    "read_file",
    "render_template",
    "set_permissions",
    "ensure_commands",
    "ensure_packages",
    "install",
    "reload_service",
    "restart_service",
]
