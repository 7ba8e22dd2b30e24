"""Git helpers for cloning helper repositories into the user's home."""

import subprocess
from pathlib import Path
from typing import Optional, Tuple

from .paths import as_user


def _run_git(repo_path: Path, *args: str, check: bool = True) -> subprocess.CompletedProcess:
    """Run a git command in a repository."""
    cmd = ["git", "-C", str(repo_path)] + list(args)
    return subprocess.run(cmd, capture_output=True, text=True, check=check)


def is_git_repo(path: Path) -> bool:
    """Check if a path is a git repository."""
    return (path / ".git").exists()


def get_remote_url(repo_path: Path) -> Optional[str]:
    """Get the remote URL of a repository."""
    result = _run_git(repo_path, "remote", "get-url", "origin", check=False)
    if result.returncode == 0:
        return result.stdout.strip()
    return None


def clone_repo(
    repo_url: str,
    dest_path: Path,
    user: Optional[str] = None,
    branch: Optional[str] = None,
    dry_run: bool = False,
) -> Tuple[bool, str]:
    """
    Clone a repository as ``user`` unless the destination already exists.

    Args:
        repo_url: Repository URL
        dest_path: Destination path for the clone
        user: Run git as this user so the checkout is theirs
        branch: Branch to check out (remote default if not given)
        dry_run: If True, only show what would happen

    Returns:
        Tuple of (success, message)
    """
    dest_path = Path(dest_path)

    if dest_path.exists():
        if is_git_repo(dest_path):
            remote = get_remote_url(dest_path)
            if remote and remote != repo_url:
                return True, f"{dest_path} is a clone of {remote}, leaving it alone"
        return True, f"Repository already exists at {dest_path}. Skipping cloning."

    if dry_run:
        return True, f"Would clone {repo_url} to {dest_path}"

    cmd = as_user(user) + ["git", "clone"]
    if branch:
        cmd += ["--branch", branch]
    cmd += [repo_url, str(dest_path)]

    result = subprocess.run(cmd, capture_output=True, text=True)
    if result.returncode != 0:
        return False, f"Clone failed: {result.stderr.strip()}"

    commit = _run_git(dest_path, "rev-parse", "--short", "HEAD", check=False).stdout.strip()
    return True, f"Cloned to {dest_path} at commit {commit or 'unknown'}"
