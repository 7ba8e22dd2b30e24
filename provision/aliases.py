"""
Reconcile the managed alias table with a user's existing ~/.bash_aliases.

The managed aliases always win on a name collision. Any other alias found in
the file is shown to the operator, who decides whether to keep it. Lines that
are not alias declarations (comments, functions, blank lines) pass through
unchanged and are written first, followed by one declaration per alias name,
sorted by the full declaration text so the file diffs cleanly between runs.
"""

import difflib
import os
import pwd
import re
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

from .base import log
from .errors import OperatorAbort, ReconcileError
from .files import atomic_write, backup_file, join_lines, split_lines

ALIAS_RE = re.compile(r"^\s*alias\s+([^=]+)=(.*)$", re.DOTALL)
ALIAS_KEYWORD_RE = re.compile(r"^\s*alias(\s|$)")
# A second declaration chained onto the same line
CHAINED_ALIAS_RE = re.compile(r";\s*alias\s+[^\s=]+=")


@dataclass(frozen=True)
class AliasEntry:
    """A single alias declaration."""
    name: str
    definition: str
    line: str


@dataclass(frozen=True)
class ParseWarning:
    """A line that looked like an alias but could not be parsed as one."""
    lineno: int
    line: str
    message: str


@dataclass
class ParsedAliasFile:
    passthrough: List[str] = field(default_factory=list)
    entries: Dict[str, AliasEntry] = field(default_factory=dict)
    warnings: List[ParseWarning] = field(default_factory=list)


@dataclass
class ReconcileResult:
    content: str
    kept: List[str] = field(default_factory=list)
    discarded: List[str] = field(default_factory=list)
    overridden: List[str] = field(default_factory=list)
    backup_path: Optional[Path] = None
    written: bool = False


@dataclass
class AliasReconcileConfig:
    """
    Everything the reconciler needs, supplied by the caller.

    Attributes:
        path: Alias file to reconcile (may not exist yet)
        known: Managed aliases, name -> definition
        user: Owner given to a newly created file when running as root
        dry_run: Show the resulting diff instead of writing
    """
    path: Path
    known: Dict[str, str]
    user: Optional[str] = None
    dry_run: bool = False


# Answers True to keep an unrecognized alias, False to drop it
DecisionProvider = Callable[[AliasEntry], bool]


def _unquote(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    return value


def render_alias(name: str, definition: str) -> str:
    """Render a managed alias as a shell declaration."""
    if '"' not in definition:
        return f'alias {name}="{definition}"'
    if "'" not in definition:
        return f"alias {name}='{definition}'"
    escaped = definition.replace("\\", "\\\\").replace('"', '\\"')
    return f'alias {name}="{escaped}"'


def _parse_declaration(text: str) -> Optional[AliasEntry]:
    match = ALIAS_RE.match(text)
    if not match:
        return None
    name = match.group(1).strip()
    if not name or any(c.isspace() for c in name):
        return None
    return AliasEntry(name=name, definition=_unquote(match.group(2)), line=text.strip())


def parse_alias_lines(lines: Iterable[str]) -> ParsedAliasFile:
    """
    Split alias file lines into passthrough lines and alias declarations.

    A declaration ending in a backslash continues on the next line. When a
    name is declared more than once the last declaration wins, as it does
    when the shell sources the file.
    """
    parsed = ParsedAliasFile()
    pending: List[str] = []
    pending_start = 0

    def add(block: List[str], lineno: int) -> None:
        text = "\n".join(block)
        if CHAINED_ALIAS_RE.search(text):
            parsed.warnings.append(
                ParseWarning(lineno, text, "several aliases on one line kept as passthrough")
            )
            parsed.passthrough.extend(block)
            return
        entry = _parse_declaration(text)
        if entry is None:
            parsed.warnings.append(
                ParseWarning(lineno, text, "unparseable alias declaration kept as passthrough")
            )
            parsed.passthrough.extend(block)
            return
        if entry.name in parsed.entries:
            parsed.warnings.append(
                ParseWarning(lineno, text, f"duplicate alias '{entry.name}', last declaration wins")
            )
            del parsed.entries[entry.name]
        parsed.entries[entry.name] = entry

    for lineno, line in enumerate(lines, 1):
        if pending:
            pending.append(line)
            if not line.endswith("\\"):
                add(pending, pending_start)
                pending = []
            continue

        if ALIAS_RE.match(line):
            if line.endswith("\\"):
                pending = [line]
                pending_start = lineno
            else:
                add([line], lineno)
        else:
            if ALIAS_KEYWORD_RE.match(line):
                parsed.warnings.append(
                    ParseWarning(lineno, line, "alias keyword without '=' kept as passthrough")
                )
            parsed.passthrough.append(line)

    # File ended inside a continued declaration
    if pending:
        add(pending, pending_start)

    return parsed


def reconcile(
    parsed: ParsedAliasFile,
    known: Dict[str, str],
    decide: DecisionProvider,
) -> ReconcileResult:
    """
    Merge the managed aliases with the parsed file.

    ``decide`` is asked once for every alias name the managed set does not
    define. Nothing is written here.
    """
    result = ReconcileResult(content="")
    final: Dict[str, AliasEntry] = {}

    for name, entry in parsed.entries.items():
        if name in known:
            if entry.line != render_alias(name, known[name]):
                result.overridden.append(name)
            continue
        if decide(entry):
            final[name] = entry
            result.kept.append(name)
        else:
            result.discarded.append(name)

    for name, definition in known.items():
        final[name] = AliasEntry(name=name, definition=definition, line=render_alias(name, definition))

    declarations = sorted(entry.line for entry in final.values())
    result.content = join_lines(parsed.passthrough + declarations)
    return result


def _chown_to_user(path: Path, user: str) -> None:
    entry = pwd.getpwnam(user)
    shutil.chown(path, user=entry.pw_uid, group=entry.pw_gid)


def _apply_owner(path: Path, previous: Optional[os.stat_result], user: Optional[str]) -> None:
    """
    Give the rewritten file its owner back.

    An existing file keeps the uid and gid it had before the rewrite; only a
    newly created file is handed to ``user``.
    """
    if os.geteuid() != 0:
        return
    if previous is not None:
        os.chown(path, previous.st_uid, previous.st_gid)
    elif user:
        _chown_to_user(path, user)


def reconcile_alias_file(config: AliasReconcileConfig, decide: DecisionProvider) -> ReconcileResult:
    """
    Reconcile the alias file at ``config.path`` in place.

    Every decision is collected before anything touches the disk, so an
    aborted review leaves no trace. The existing file is then copied to a
    timestamped backup and replaced atomically.

    Raises:
        ReconcileError: the file could not be read, staged or renamed
        OperatorAbort: the operator cancelled the review
    """
    path = Path(config.path)

    if not path.parent.is_dir():
        raise ReconcileError(f"Directory {path.parent} does not exist")
    try:
        original = path.read_text(encoding="utf-8") if path.exists() else ""
    except (OSError, UnicodeDecodeError) as e:
        raise ReconcileError(f"Cannot read {path}: {e}") from e

    parsed = parse_alias_lines(split_lines(original))
    for warning in parsed.warnings:
        log(f"{path}:{warning.lineno}: {warning.message}", "WARN")

    try:
        result = reconcile(parsed, config.known, decide)
    except KeyboardInterrupt:
        raise OperatorAbort("Alias review interrupted") from None

    if not result.kept and not result.discarded:
        log("No custom aliases found for review.")
    for name in result.overridden:
        log(f"Replacing existing definition of '{name}' with the managed one")

    if config.dry_run:
        diff = difflib.unified_diff(
            original.splitlines(keepends=True),
            result.content.splitlines(keepends=True),
            fromfile=str(path),
            tofile=f"{path} (reconciled)",
        )
        print("".join(diff) or f"{path} already up to date")
        return result

    try:
        previous = path.stat() if path.exists() else None
        result.backup_path = backup_file(path)
        atomic_write(path, result.content)
    except (OSError, subprocess.CalledProcessError) as e:
        raise ReconcileError(f"Cannot write {path}: {e}") from e
    result.written = True

    _apply_owner(path, previous, config.user)

    log(
        f"{path} reconciled: {len(config.known)} managed, "
        f"{len(result.kept)} kept, {len(result.discarded)} removed"
    )
    return result
