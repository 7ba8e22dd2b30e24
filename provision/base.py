"""Levelled logging and the task runner base class."""

import sys
import time
from typing import List

LEVELS = ("INFO", "WARN", "ERROR")


def log(msg: str, level: str = "INFO") -> None:
    """
    Print a timestamped, levelled log line.

    ERROR lines go to stderr so they survive stdout redirection.
    """
    if level not in LEVELS:
        raise ValueError(f"Unknown log level: {level}")
    timestamp = time.strftime("%Y-%m-%d %H:%M:%S")
    stream = sys.stderr if level == "ERROR" else sys.stdout
    print(f"{timestamp} - [{level}] {msg}", file=stream)


class BaseOrchestrator:
    """
    Shared state for a provisioning run.

    Tracks what changed and what failed so the run can end with a report
    of what actually happened on the host.
    """

    def __init__(self, dry_run: bool = False, verbose: bool = False):
        self.dry_run = dry_run
        self.verbose = verbose
        self.changes: List[str] = []
        self.failures: List[str] = []

    def log(self, msg: str, level: str = "INFO") -> None:
        prefix = "[DRY-RUN] " if self.dry_run else ""
        log(f"{prefix}{msg}", level)

    def warn(self, msg: str) -> None:
        self.log(msg, "WARN")

    def error(self, msg: str) -> None:
        self.log(msg, "ERROR")

    def log_verbose(self, msg: str) -> None:
        """Log a message only if verbose mode is enabled."""
        if self.verbose:
            self.log(msg)

    def record_change(self, description: str) -> None:
        self.changes.append(description)

    def record_failure(self, description: str) -> None:
        """Log a failed step at ERROR and keep it for the summary."""
        self.error(description)
        self.failures.append(description)

    def summarize(self, title: str = "Summary Report") -> None:
        """
        Print the changes and failures of this run.

        Args:
            title: Heading for the report
        """
        self.log("=" * 60)
        self.log(title)
        if self.dry_run:
            self.log("Dry-run complete - no changes were made")
        elif self.changes:
            self.log(f"Changes made: {len(self.changes)}")
            for change in self.changes:
                self.log(f"  - {change}")
        else:
            self.log("No changes needed - system is up to date")
        if self.failures:
            self.warn(f"Failed steps: {len(self.failures)}")
            for failure in self.failures:
                self.warn(f"  - {failure}")
        self.log("=" * 60)
