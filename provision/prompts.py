"""User interaction utilities for startchanges."""

import getpass
from collections import deque
from typing import Iterable, Optional, TextIO

from .errors import OperatorAbort

TTY_PATH = "/dev/tty"

YES_ANSWERS = ("y", "yes")
NO_ANSWERS = ("n", "no")
ABORT_ANSWERS = ("q", "quit", "abort")


def pause(message: str = "Press Enter to continue...") -> None:
    """
    Pause execution until user presses Enter.

    Args:
        message: Message to display
    """
    try:
        input(message)
    except EOFError:
        print()


def prompt_new_passphrase(message: str = "SSH key passphrase") -> str:
    """
    Ask for a new passphrase twice without echoing input.

    Keeps asking until both entries match. An empty passphrase is allowed
    and means the key is not protected.

    Raises:
        OperatorAbort: if input ends before a passphrase is confirmed
    """
    while True:
        try:
            first = getpass.getpass(f"{message} (empty for none): ")
            second = getpass.getpass(f"{message} again: ")
        except EOFError:
            print()
            raise OperatorAbort("Passphrase entry cancelled") from None
        if first == second:
            return first
        print("  Passphrases do not match. Please try again.")


def parse_keep_answer(response: str, default: bool = True) -> Optional[bool]:
    """
    Interpret a keep/discard answer.

    Returns:
        True to keep, False to discard, None if the answer is not understood

    Raises:
        OperatorAbort: if the operator asked to abort
    """
    response = response.strip().lower()
    if not response:
        return default
    if response in YES_ANSWERS:
        return True
    if response in NO_ANSWERS:
        return False
    if response in ABORT_ANSWERS:
        raise OperatorAbort("Alias review aborted by operator")
    return None


class TtyDecider:
    """
    Ask the operator whether to keep an unrecognized alias.

    Reads from the controlling terminal rather than stdin, so piped standard
    input is never consumed as an answer. Empty input keeps the alias.
    """

    def __init__(self, tty: Optional[TextIO] = None):
        self._tty = tty

    def _open(self) -> TextIO:
        if self._tty is None:
            try:
                self._tty = open(TTY_PATH, "r+")
            except OSError as e:
                raise OperatorAbort(
                    f"No terminal available for alias review ({e}); "
                    "use --keep-unknown or --discard-unknown"
                ) from e
        return self._tty

    def __call__(self, entry) -> bool:
        tty = self._open()
        tty.write(f"\nFound alias not in the managed set: {entry.name}\n")
        tty.write(f"  {entry.line}\n")
        while True:
            tty.write("Keep this alias? [Y/n/q]: ")
            tty.flush()
            try:
                line = tty.readline()
            except KeyboardInterrupt:
                raise OperatorAbort("Alias review interrupted") from None
            if not line:
                raise OperatorAbort("Terminal closed during alias review")
            keep = parse_keep_answer(line)
            if keep is not None:
                tty.write(f"-> {'Keeping' if keep else 'Removed'}: {entry.name}\n")
                tty.flush()
                return keep
            tty.write("  Please answer 'y', 'n' or 'q'\n")

    def close(self) -> None:
        if self._tty is not None:
            self._tty.close()
            self._tty = None


class ScriptedDecider:
    """Answer keep/discard prompts from a fixed sequence of responses."""

    def __init__(self, answers: Iterable[str]):
        self.answers = deque(answers)
        self.asked = []

    def __call__(self, entry) -> bool:
        self.asked.append(entry.name)
        if not self.answers:
            raise OperatorAbort(f"No scripted answer left for alias '{entry.name}'")
        keep = parse_keep_answer(self.answers.popleft())
        if keep is None:
            raise ValueError(f"Unrecognized scripted answer for alias '{entry.name}'")
        return keep


class FixedDecider:
    """Give the same answer to every prompt (non-interactive runs)."""

    def __init__(self, keep: bool):
        self.keep = keep

    def __call__(self, entry) -> bool:
        return self.keep

