"""Shell profile installation for the target user."""

from pathlib import Path
from typing import Optional

from .files import ensure_file, render_template
from .paths import get_user_group, get_user_home

BASHRC_DEFAULTS = {
    "hist_size": 1000,
    "hist_file_size": 2000,
    "force_color_prompt": True,
    "bash_completion": True,
}


def render_bashrc(settings: Optional[dict] = None) -> str:
    """Render the .bashrc template, filling gaps from BASHRC_DEFAULTS."""
    context = dict(BASHRC_DEFAULTS)
    context.update(settings or {})
    return render_template("bashrc.j2", context)


def install_bashrc(
    user: Optional[str],
    home: Optional[Path] = None,
    settings: Optional[dict] = None,
    dry_run: bool = False,
) -> bool:
    """
    Replace the user's .bashrc with the rendered template.

    The previous file is kept as a dated backup.

    Returns:
        True if the file changed
    """
    home = home or get_user_home(user)
    bashrc = home / ".bashrc"
    content = render_bashrc(settings)

    if dry_run:
        print(f"Would write {bashrc} ({len(content.splitlines())} lines)")
        return True

    return ensure_file(
        bashrc,
        content,
        owner=user,
        group=get_user_group(user) if user else None,
        mode=0o644,
        backup=True,
    )
