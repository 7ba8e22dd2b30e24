"""SSH key pair generation for the target user."""

import socket
import subprocess
from pathlib import Path
from typing import List, Optional

import pexpect

from .files import set_permissions
from .paths import as_user, get_user_group, get_user_home


def key_paths(home: Path, key_type: str = "ed25519") -> tuple[Path, Path]:
    """Get the private and public key paths for a key type."""
    key_file = home / ".ssh" / f"id_{key_type}"
    return key_file, key_file.with_name(key_file.name + ".pub")


def _keygen_cmd(user: Optional[str], key_file: Path, key_type: str, comment: str) -> List[str]:
    return as_user(user) + ["ssh-keygen", "-t", key_type, "-f", str(key_file), "-C", comment]


def _keygen_with_passphrase(cmd: List[str], passphrase: str, timeout: int = 60) -> bool:
    """
    Run ssh-keygen and answer its passphrase prompts through a pty.

    The passphrase never appears in the process list.

    Raises:
        RuntimeError: if ssh-keygen stops answering or prompts unexpectedly
    """
    child = pexpect.spawn(cmd[0], cmd[1:], encoding="utf-8", timeout=timeout)
    try:
        child.expect("Enter passphrase")
        child.sendline(passphrase)
        child.expect("Enter same passphrase again")
        child.sendline(passphrase)
        child.expect(pexpect.EOF)
    except pexpect.ExceptionPexpect as e:
        raise RuntimeError(f"ssh-keygen did not complete: {e}") from e
    finally:
        child.close()
    return child.exitstatus == 0


def fix_key_permissions(user: Optional[str], home: Path, key_type: str = "ed25519") -> bool:
    """
    Enforce ssh's permission requirements on ~/.ssh and the key pair.

    Returns:
        True if anything changed
    """
    key_file, pub_file = key_paths(home, key_type)
    owner = user
    group = get_user_group(user) if user else None
    changed = set_permissions(key_file.parent, owner=owner, group=group, mode=0o700)
    if key_file.exists():
        changed = set_permissions(key_file, owner=owner, group=group, mode=0o600) or changed
    if pub_file.exists():
        changed = set_permissions(pub_file, owner=owner, group=group, mode=0o644) or changed
    return changed


def generate_ssh_key(
    user: Optional[str],
    home: Optional[Path] = None,
    key_type: str = "ed25519",
    comment: Optional[str] = None,
    passphrase: Optional[str] = None,
    dry_run: bool = False,
) -> bool:
    """
    Generate an SSH key pair for a user unless one already exists.

    Args:
        user: Owner of the key (commands run as this user)
        home: Home directory (looked up from the user if not given)
        key_type: ssh-keygen key type
        comment: Key comment (defaults to user@hostname)
        passphrase: Protect the key with this passphrase; empty for none

    Returns:
        True if a new key was generated

    Raises:
        subprocess.CalledProcessError: if ssh-keygen fails without a passphrase
        RuntimeError: if ssh-keygen fails while answering passphrase prompts
    """
    home = home or get_user_home(user)
    key_file, _ = key_paths(home, key_type)
    comment = comment or f"{user or 'root'}@{socket.gethostname()}"

    if key_file.exists():
        print(f"SSH key already exists for {user}. Skipping generation.")
        if not dry_run:
            fix_key_permissions(user, home, key_type)
        return False

    if dry_run:
        print(f"Would generate {key_type} key at {key_file}")
        return True

    subprocess.run(as_user(user) + ["mkdir", "-p", str(key_file.parent)], check=True)

    cmd = _keygen_cmd(user, key_file, key_type, comment)
    if passphrase:
        if not _keygen_with_passphrase(cmd, passphrase):
            raise RuntimeError(f"ssh-keygen failed for {key_file}")
    else:
        subprocess.run(cmd + ["-N", ""], check=True)

    print(f"{key_type} SSH key generated successfully at {key_file}.")
    fix_key_permissions(user, home, key_type)
    return True
