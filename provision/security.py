"""Access hardening: sudoers and sshd_config edits."""

import re
import subprocess
import tempfile
from pathlib import Path
from typing import List, Tuple

from .files import atomic_write, ensure_file, join_lines, read_file, split_lines
from .paths import SSHD_CONFIG, SUDOERS_FILE
from .services import restart_if_active, unit_exists

PERMIT_ROOT_RE = re.compile(r"^#?\s*PermitRootLogin\b")
ALLOW_USERS_RE = re.compile(r"^AllowUsers\b")
MATCH_RE = re.compile(r"^\s*Match\s")


def _get_ssh_service_name() -> str:
    """
    Get the correct SSH service name for this distro.

    Debian/Ubuntu use 'ssh', RHEL/Fedora/Arch use 'sshd'.
    """
    if unit_exists("ssh.service"):
        return "ssh"
    return "sshd"


def _validate_candidate(check_cmd: List[str], content: str) -> Tuple[bool, str]:
    """
    Validate a candidate config file before it is installed.

    The content is written to a temporary file whose path is appended to
    ``check_cmd``.

    Returns:
        Tuple of (valid, error output)
    """
    with tempfile.NamedTemporaryFile(mode="w", suffix=".check") as tmp:
        tmp.write(content)
        tmp.flush()
        result = subprocess.run(
            check_cmd + [tmp.name],
            capture_output=True,
            text=True,
        )
    return result.returncode == 0, (result.stderr or result.stdout).strip()


def sudoers_rule(group: str = "sudo") -> str:
    return f"%{group} ALL=(ALL) NOPASSWD: ALL"


def patch_sudoers(text: str, group: str = "sudo") -> Tuple[str, bool]:
    """
    Give a group passwordless sudo.

    Every existing rule for the group collapses into the single NOPASSWD rule;
    the rule is appended when the group has none.

    Returns:
        Tuple of (new content, changed)
    """
    rule = sudoers_rule(group)
    lines = split_lines(text)
    if rule in lines:
        return text, False

    group_re = re.compile(rf"^%{re.escape(group)}\s")
    patched = []
    replaced = False
    for line in lines:
        if group_re.match(line):
            if not replaced:
                patched.append(rule)
                replaced = True
            continue
        patched.append(line)

    if not replaced:
        patched.append(rule)

    return join_lines(patched), True


def update_sudoers(group: str = "sudo", path: Path = SUDOERS_FILE, dry_run: bool = False) -> bool:
    """
    Idempotently add the passwordless sudo rule.

    The candidate file is checked with ``visudo -c`` before it replaces the
    live one, and the previous file is kept as a dated backup.

    Returns:
        True if sudoers was changed

    Raises:
        ValueError: if visudo rejects the patched file
    """
    current = read_file(path)
    patched, changed = patch_sudoers(current, group)
    if not changed:
        print("sudoers entry already exists. No changes needed.")
        return False

    if dry_run:
        print(f"Would set '{sudoers_rule(group)}' in {path}")
        return True

    valid, errors = _validate_candidate(["visudo", "-c", "-f"], patched)
    if not valid:
        raise ValueError(f"visudo rejected the patched sudoers file: {errors}")

    ensure_file(path, patched, owner="root", group="root", mode=0o440, backup=True)
    print("sudoers entry updated successfully.")
    return True


def patch_sshd_config(text: str, allow_users: List[str]) -> Tuple[str, bool]:
    """
    Disable root login and restrict SSH to ``allow_users``.

    No change is made when the exact AllowUsers line is already present.
    Otherwise every PermitRootLogin directive becomes ``PermitRootLogin no``,
    stale AllowUsers lines are dropped, and the new AllowUsers line goes right
    below the first PermitRootLogin directive. Without one, both directives are
    inserted ahead of the first Match block, or at the end.

    Returns:
        Tuple of (new content, changed)
    """
    allow_line = "AllowUsers " + " ".join(allow_users)
    lines = split_lines(text)
    if allow_line in lines:
        return text, False

    patched = []
    inserted = False
    for line in lines:
        if ALLOW_USERS_RE.match(line):
            continue
        if PERMIT_ROOT_RE.match(line):
            patched.append("PermitRootLogin no")
            if not inserted:
                patched.append(allow_line)
                inserted = True
            continue
        patched.append(line)

    if not inserted:
        index = next((i for i, line in enumerate(patched) if MATCH_RE.match(line)), len(patched))
        patched[index:index] = ["PermitRootLogin no", allow_line]

    return join_lines(patched), True


def configure_ssh(
    allow_users: List[str],
    path: Path = SSHD_CONFIG,
    dry_run: bool = False,
) -> bool:
    """
    Apply the SSH access policy and restart the daemon if it changed.

    SAFETY: the new config is checked with ``sshd -t`` after writing and the
    previous content is restored if the check fails.

    Returns:
        True if the configuration was changed

    Raises:
        ValueError: if sshd rejects the new configuration (after rollback)
    """
    current = read_file(path)
    patched, changed = patch_sshd_config(current, allow_users)
    if not changed:
        print("AllowUsers already configured. No changes needed.")
        return False

    if dry_run:
        print(f"Would set PermitRootLogin no and AllowUsers {' '.join(allow_users)} in {path}")
        return True

    ensure_file(path, patched, backup=True)

    result = subprocess.run(
        ["sudo", "sshd", "-t", "-f", str(path)],
        capture_output=True,
        text=True,
    )
    if result.returncode != 0:
        print("ROLLING BACK SSH CONFIG...")
        atomic_write(path, current)
        raise ValueError(f"SSH config syntax invalid: {result.stderr.strip()}")

    print("PermitRootLogin set to no.")
    print(f"AllowUsers set to: {' '.join(allow_users)}")

    service = _get_ssh_service_name()
    restart_if_active(service)
    return True

