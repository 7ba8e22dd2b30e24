"""File management with idempotent operations, dated backups and templating."""

import grp
import os
import pwd
import shutil
import subprocess
import tempfile
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Union

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from .paths import TEMPLATES_DIR

BACKUP_TIMESTAMP = "%Y-%m-%d_%H:%M:%S"


def _needs_sudo(path: Path) -> bool:
    """Check if we need sudo to write to a path."""
    # Check if path or its parent is writable
    check_path = path if path.exists() else path.parent
    return not os.access(check_path, os.W_OK)


def read_file(path: Union[str, Path]) -> str:
    """
    Read file content, using sudo if necessary.

    Returns an empty string for a missing file.
    """
    path = Path(path)
    if not path.exists():
        return ""
    if os.access(path, os.R_OK):
        return path.read_text()
    result = subprocess.run(
        ["sudo", "cat", str(path)],
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout


def backup_path_for(path: Union[str, Path], now: Optional[datetime] = None) -> Path:
    """
    Get a free timestamped backup path alongside ``path``.

    Two backups within the same second get a numeric suffix so an earlier
    copy is never overwritten.
    """
    path = Path(path)
    stamp = (now or datetime.now()).strftime(BACKUP_TIMESTAMP)
    candidate = path.parent / f"{path.name}.bak_{stamp}"
    counter = 1
    while candidate.exists():
        candidate = path.parent / f"{path.name}.bak_{stamp}.{counter}"
        counter += 1
    return candidate


def backup_file(path: Union[str, Path]) -> Optional[Path]:
    """
    Copy a file to a timestamped backup path.

    Backups are never deleted automatically.

    Returns:
        The backup path, or None if there was nothing to back up
    """
    path = Path(path)
    if not path.exists():
        return None

    backup_path = backup_path_for(path)
    print(f"Backing up {path} to {backup_path}")
    if _needs_sudo(path.parent):
        subprocess.run(["sudo", "cp", "-p", str(path), str(backup_path)], check=True)
    else:
        shutil.copy2(path, backup_path)
    return backup_path


def ensure_dir(
    path: Union[str, Path],
    owner: Optional[str] = None,
    group: Optional[str] = None,
    mode: Optional[int] = None,
) -> bool:
    """
    Idempotently ensure a directory exists with correct permissions.

    Returns:
        True if any changes were made
    """
    path = Path(path)
    changed = False

    if not path.exists():
        print(f"Creating directory: {path}")
        if _needs_sudo(path.parent):
            subprocess.run(["sudo", "mkdir", "-p", str(path)], check=True)
        else:
            path.mkdir(parents=True, exist_ok=True)
        changed = True

    if owner or group or mode is not None:
        if set_permissions(path, owner=owner, group=group, mode=mode):
            changed = True

    return changed


def set_permissions(
    path: Union[str, Path],
    owner: Optional[str] = None,
    group: Optional[str] = None,
    mode: Optional[int] = None,
) -> bool:
    """
    Set ownership and permissions on a file or directory.

    Returns:
        True if any changes were made
    """
    path = Path(path)
    changed = False
    needs_sudo = _needs_sudo(path)

    if owner or group:
        stat = path.stat()
        current_owner = pwd.getpwuid(stat.st_uid).pw_name
        current_group = grp.getgrgid(stat.st_gid).gr_name

        target_owner = owner or current_owner
        target_group = group or current_group

        if current_owner != target_owner or current_group != target_group:
            print(f"Setting ownership {target_owner}:{target_group} on {path}")
            chown_arg = f"{target_owner}:{target_group}"
            if needs_sudo:
                subprocess.run(["sudo", "chown", chown_arg, str(path)], check=True)
            else:
                shutil.chown(path, user=target_owner, group=target_group)
            changed = True

    if mode is not None:
        current_mode = path.stat().st_mode & 0o777
        if current_mode != mode:
            print(f"Setting mode {oct(mode)} on {path}")
            if needs_sudo:
                subprocess.run(["sudo", "chmod", oct(mode)[2:], str(path)], check=True)
            else:
                path.chmod(mode)
            changed = True

    return changed


def atomic_write(path: Union[str, Path], content: str, mode: Optional[int] = None) -> None:
    """
    Replace a file's content atomically.

    The content is written to a temporary file in the target directory and
    renamed into place, so readers never see a truncated file. The temporary
    file is removed if anything fails before the rename.

    A new file gets mode 0644 unless ``mode`` is given; an existing file
    keeps its mode.
    """
    path = Path(path)
    tmp_path = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            dir=path.parent,
            prefix=f"{path.name}.tmp.",
            delete=False,
        ) as tmp:
            tmp_path = tmp.name
            tmp.write(content)
            tmp.flush()
            os.fsync(tmp.fileno())
        if mode is None:
            mode = path.stat().st_mode & 0o777 if path.exists() else 0o644
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
        tmp_path = None
    finally:
        if tmp_path and Path(tmp_path).exists():
            Path(tmp_path).unlink()


def split_lines(content: str) -> List[str]:
    """Split file content into lines, keeping any carriage returns."""
    lines = content.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return lines


def join_lines(lines: List[str]) -> str:
    """Join lines back into file content with a trailing newline."""
    return "\n".join(lines) + "\n" if lines else ""


def ensure_file(
    path: Union[str, Path],
    content: str,
    owner: Optional[str] = None,
    group: Optional[str] = None,
    mode: Optional[int] = None,
    backup: bool = True,
) -> bool:
    """
    Idempotently ensure a file exists with specific content.

    Args:
        path: Target file path
        content: Desired file content
        owner: File owner
        group: File group
        mode: File permissions (e.g., 0o644)
        backup: Create timestamped backup if file changes

    Returns:
        True if any changes were made
    """
    path = Path(path)
    changed = False

    existing_content = read_file(path) if path.exists() else None

    if existing_content != content:
        if backup and existing_content is not None:
            backup_file(path)

        print(f"Writing file: {path}")
        if not path.parent.exists():
            ensure_dir(path.parent)
        atomic_write(path, content)
        changed = True

    if set_permissions(path, owner=owner, group=group, mode=mode):
        changed = True

    if not changed:
        print(f"File {path} already up to date")

    return changed


def render_template(template_name: str, context: dict) -> str:
    """
    Render a template from the package templates directory.

    Args:
        template_name: File name under provision/templates
        context: Dictionary of variables to substitute

    Returns:
        Rendered template content
    """
    env = Environment(
        loader=FileSystemLoader(str(TEMPLATES_DIR)),
        keep_trailing_newline=True,
        trim_blocks=True,
        lstrip_blocks=True,
        undefined=StrictUndefined,
    )
    return env.get_template(template_name).render(**context)
