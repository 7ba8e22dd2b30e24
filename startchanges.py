#!/usr/bin/env python3
"""
startchanges - post-install provisioning for Debian-based hosts.

Run through sudo on a freshly installed machine. Every task can be run on its
own or from the interactive menu, and running a task twice is safe.

Usage:
    sudo ./startchanges.py                   # Interactive menu
    sudo ./startchanges.py all               # Run every task
    sudo ./startchanges.py ssh --dry-run     # Show what would change
    sudo ./startchanges.py keygen --passphrase-prompt
    sudo ./startchanges.py aliases --discard-unknown
    ./startchanges.py aliases --file ~/.bash_aliases
    ./startchanges.py info
"""

import argparse
import os
import subprocess
import sys
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple
from urllib.error import URLError

from provision.aliases import AliasReconcileConfig, DecisionProvider, reconcile_alias_file
from provision.base import BaseOrchestrator
from provision.config import HostConfig, load_host_config
from provision.docker import install_docker_ce, install_docker_repository
from provision.dotfiles import install_bashrc
from provision.errors import CriticalStepError, OperatorAbort, PreflightError, ReconcileError
from provision.fastfetch import install_latest_fastfetch
from provision.git import clone_repo
from provision.keys import generate_ssh_key
from provision.packages import ensure_commands, find_missing_commands
from provision.paths import CONFIGS_DIR, HOST_CONFIG, PROJECT_ROOT, get_target_user, get_user_home
from provision.prompts import FixedDecider, TtyDecider, pause, prompt_new_passphrase
from provision.security import configure_ssh, update_sudoers
from provision.snmpd import install_configure_snmpd
from provision.updates import configure_apt_proxy, system_update_upgrade

# Failures a task reports and survives; anything else propagates to main()
TASK_ERRORS = (
    subprocess.CalledProcessError,
    OSError,
    ValueError,
    KeyError,
    RuntimeError,
    URLError,
    ReconcileError,
    OperatorAbort,
)


class Provisioner(BaseOrchestrator):
    """Runs provisioning tasks for one target user."""

    def __init__(
        self,
        config: HostConfig,
        user: Optional[str] = None,
        home: Optional[Path] = None,
        dry_run: bool = False,
        verbose: bool = False,
    ):
        super().__init__(dry_run=dry_run, verbose=verbose)
        self.config = config
        self.user = user
        self.home = home or (get_user_home(user) if user else None)

    def _require_user(self, task: str) -> bool:
        if self.user and self.home:
            return True
        self.record_failure(f"{task} needs a target user: run through sudo or pass --user")
        return False

    def _failed(self, task: str, exc: BaseException) -> bool:
        self.record_failure(f"{task} failed: {exc}")
        return False

    # -------------------------------------------------------------------------
    # Critical path
    # -------------------------------------------------------------------------

    def preflight(self) -> None:
        """
        Make sure every command the tasks rely on is installed.

        Raises:
            PreflightError: if a command cannot be made available
        """
        self.log("=== Checking Required Commands ===")
        if self.dry_run:
            missing = find_missing_commands()
            if missing:
                self.log(f"Would install: {' '.join(missing)}")
            return
        installed = ensure_commands()
        if installed:
            self.record_change(f"Installed {', '.join(installed)}")

    def system_update(self) -> bool:
        """
        Probe the APT proxy, then update and upgrade the system.

        Raises:
            CriticalStepError: if apt-get fails
        """
        self.log("=== System Update and Upgrade ===")

        if self.config.apt_proxy_host:
            try:
                if configure_apt_proxy(
                    self.config.apt_proxy_host,
                    self.config.apt_proxy_port,
                    dry_run=self.dry_run,
                ):
                    self.record_change("Updated APT proxy configuration")
            except TASK_ERRORS as e:
                self.warn(f"Could not update APT proxy configuration: {e}")

        try:
            system_update_upgrade(dry_run=self.dry_run)
        except subprocess.CalledProcessError as e:
            raise CriticalStepError(f"System update failed: {e}") from e

        self.log("System update and upgrade completed successfully.")
        self.record_change("System updated and upgraded")
        return True

    # -------------------------------------------------------------------------
    # Access
    # -------------------------------------------------------------------------

    def update_sudoers(self) -> bool:
        self.log("=== Updating sudoers ===")
        try:
            if update_sudoers(self.config.sudoers_group, dry_run=self.dry_run):
                self.record_change(f"Passwordless sudo for %{self.config.sudoers_group}")
        except TASK_ERRORS as e:
            return self._failed("Updating sudoers", e)
        return True

    def configure_ssh(self) -> bool:
        self.log("=== Configuring SSH ===")
        if not self.config.allow_users:
            self.warn("No [ssh] allow_users configured, skipping")
            return False
        try:
            if configure_ssh(self.config.allow_users, dry_run=self.dry_run):
                self.record_change(f"SSH restricted to {' '.join(self.config.allow_users)}")
        except TASK_ERRORS as e:
            return self._failed("Configuring SSH", e)
        return True

    def generate_ssh_key(self, passphrase: Optional[str] = None) -> bool:
        self.log(f"=== Generating {self.config.key_type} SSH Key ===")
        if not self._require_user("SSH key generation"):
            return False
        try:
            if generate_ssh_key(
                self.user,
                self.home,
                key_type=self.config.key_type,
                comment=self.config.key_comment,
                passphrase=passphrase,
                dry_run=self.dry_run,
            ):
                self.record_change(f"Generated {self.config.key_type} key for {self.user}")
        except TASK_ERRORS as e:
            return self._failed("SSH key generation", e)
        return True

    # -------------------------------------------------------------------------
    # Shell
    # -------------------------------------------------------------------------

    def install_bashrc(self) -> bool:
        self.log("=== Creating/Updating .bashrc ===")
        if not self._require_user(".bashrc installation"):
            return False
        try:
            if install_bashrc(self.user, self.home, self.config.bashrc, dry_run=self.dry_run):
                self.record_change(f"Installed {self.home / '.bashrc'}")
        except TASK_ERRORS as e:
            return self._failed(".bashrc installation", e)
        return True

    def reconcile_aliases(self, decide: Optional[DecisionProvider] = None, path: Optional[Path] = None) -> bool:
        """
        Merge the managed aliases into the user's alias file.

        Args:
            decide: Keep/discard policy for unknown aliases (asks on the
                terminal if not given)
            path: Alias file (defaults to ~/.bash_aliases of the target user)
        """
        self.log("=== Creating/Updating .bash_aliases ===")
        if path is None:
            if not self._require_user("Alias reconciliation"):
                return False
            path = self.home / ".bash_aliases"

        config = AliasReconcileConfig(
            path=path,
            known=self.config.aliases,
            user=self.user,
            dry_run=self.dry_run,
        )
        decider = decide or TtyDecider()
        try:
            result = reconcile_alias_file(config, decider)
        except TASK_ERRORS as e:
            return self._failed("Alias reconciliation", e)
        finally:
            if isinstance(decider, TtyDecider):
                decider.close()

        if result.written:
            self.record_change(
                f"Reconciled {path} ({len(result.kept)} kept, {len(result.discarded)} removed)"
            )
        return True

    # -------------------------------------------------------------------------
    # Services
    # -------------------------------------------------------------------------

    def install_snmpd(self) -> bool:
        self.log("=== Installing and Configuring SNMPD ===")
        try:
            reloaded = install_configure_snmpd(self.config.snmpd, dry_run=self.dry_run)
        except TASK_ERRORS as e:
            return self._failed("SNMPD setup", e)
        if not reloaded:
            self.record_failure("SNMPD is not running; configuration not applied.")
            return False
        self.record_change("Configured snmpd")
        return True

    def install_docker_repo(self) -> bool:
        self.log("=== Adding Docker Repository ===")
        try:
            if install_docker_repository(self.config.docker_distro, dry_run=self.dry_run):
                self.record_change("Added Docker APT repository")
        except TASK_ERRORS as e:
            return self._failed("Adding the Docker repository", e)
        return True

    def install_docker(self) -> bool:
        self.log("=== Installing Docker CE ===")
        try:
            if install_docker_ce(self.user, dry_run=self.dry_run):
                self.record_change("Installed Docker CE")
        except TASK_ERRORS as e:
            return self._failed("Docker installation", e)
        if self.user:
            self.log(f"User {self.user} is in group 'docker' (log in again to use it).")
        return True

    # -------------------------------------------------------------------------
    # Fastfetch
    # -------------------------------------------------------------------------

    def clone_fastfetch_repo(self) -> bool:
        self.log("=== Cloning update-fastfetch ===")
        if not self._require_user("Cloning update-fastfetch"):
            return False
        dest = self.home / self.config.fastfetch_dir
        try:
            ok, msg = clone_repo(self.config.fastfetch_repo, dest, user=self.user, dry_run=self.dry_run)
        except TASK_ERRORS as e:
            return self._failed("Cloning update-fastfetch", e)
        if not ok:
            self.record_failure(f"{msg}. Check the URL or network connection.")
            return False
        self.log(msg)
        if msg.startswith("Cloned"):
            self.record_change(f"Cloned {self.config.fastfetch_repo}")
        return True

    def install_fastfetch(self) -> bool:
        self.log("=== Installing Latest fastfetch ===")
        try:
            tag = install_latest_fastfetch(dry_run=self.dry_run)
        except TASK_ERRORS as e:
            return self._failed("fastfetch installation", e)
        self.record_change(f"Installed fastfetch {tag}")
        return True

    # -------------------------------------------------------------------------
    # Menu
    # -------------------------------------------------------------------------

    def tasks(self) -> List[Tuple[str, Callable[[], bool]]]:
        """Menu entries in order; option N runs entry N-1."""
        return [
            ("System Update and Upgrade", self.system_update),
            ("Update sudoers", self.update_sudoers),
            ("Configure SSH", self.configure_ssh),
            ("Generate SSH Key", self.generate_ssh_key),
            ("Create/Update .bashrc", self.install_bashrc),
            ("Create/Update .bash_aliases", self.reconcile_aliases),
            ("Install and Configure SNMPD", self.install_snmpd),
            ("Install Docker official repo", self.install_docker_repo),
            ("Install Docker and relevant tools", self.install_docker),
            ("Clone the update-fastfetch repo", self.clone_fastfetch_repo),
            ("Install latest fastfetch", self.install_fastfetch),
        ]

    def run_all(self, decide: Optional[DecisionProvider] = None) -> bool:
        """
        Run every task in menu order.

        Returns:
            True if all tasks succeeded
        """
        self.log("=" * 60)
        self.log("startchanges - Full Provisioning Run")
        self.log("=" * 60)
        self.log(f"Target user: {self.user or '(none)'}")
        self.log(f"Config: {self.config.source or '(defaults)'}")
        self.log("")

        ok = True
        for _, task in self.tasks():
            if task == self.reconcile_aliases:
                task_ok = self.reconcile_aliases(decide)
            else:
                task_ok = task()
            ok = task_ok and ok

        self.summarize()
        return ok

    def print_exit_hint(self) -> None:
        self.log("Script execution completed.")
        if self.home:
            self.log("Please apply the following command manually to source both .bashrc and .bash_aliases files:")
            print(f". {self.home / '.bashrc'} && . {self.home / '.bash_aliases'}")
            print("Alternatively, log out and log back in to start a new shell session.")

    def menu(self) -> None:
        """Interactive numbered menu; returns when the operator picks Exit."""
        entries = self.tasks()
        run_all_choice = str(len(entries) + 1)
        exit_choice = str(len(entries) + 2)

        while True:
            print("#####################################")
            print("#   Automated System Configuration  #")
            print("#####################################")
            print("Please select an option:")
            for number, (title, _) in enumerate(entries, 1):
                print(f"  {number}) {title}")
            print(f"  {run_all_choice}) Run all tasks")
            print(f"  {exit_choice}) Exit")

            try:
                choice = input("Enter your choice: ").strip()
            except EOFError:
                print()
                choice = exit_choice

            if choice == exit_choice:
                self.summarize()
                self.print_exit_hint()
                return
            if choice == run_all_choice:
                self.run_all()
            elif choice.isdigit() and 1 <= int(choice) <= len(entries):
                entries[int(choice) - 1][1]()
            else:
                print("Invalid choice. Please select a valid option.")

            pause()


def build_parser() -> argparse.ArgumentParser:
    # Common flags shared by all subcommands
    common_parser = argparse.ArgumentParser(add_help=False)
    common_parser.add_argument(
        "-n", "--dry-run",
        action="store_true",
        default=argparse.SUPPRESS,
        help="Show what would be done without making changes",
    )
    common_parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        default=argparse.SUPPRESS,
        help="Enable verbose output",
    )
    common_parser.add_argument(
        "-c", "--config",
        type=Path,
        default=argparse.SUPPRESS,
        help=f"Host configuration file (default: {HOST_CONFIG})",
    )
    common_parser.add_argument(
        "-u", "--user",
        default=argparse.SUPPRESS,
        help="Target user (default: $SUDO_USER)",
    )

    parser = argparse.ArgumentParser(
        description="startchanges - post-install provisioning for Debian-based hosts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
        parents=[common_parser],
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    subparsers.add_parser("menu", help="Interactive menu (default)", parents=[common_parser])
    subparsers.add_parser("preflight", help="Install missing required commands", parents=[common_parser])
    subparsers.add_parser("update", help="System update and upgrade", parents=[common_parser])
    subparsers.add_parser("sudoers", help="Passwordless sudo for the sudo group", parents=[common_parser])
    subparsers.add_parser("ssh", help="Disable root login and restrict SSH users", parents=[common_parser])
    keygen_parser = subparsers.add_parser(
        "keygen", help="Generate an SSH key for the target user", parents=[common_parser]
    )
    keygen_parser.add_argument(
        "--passphrase-prompt",
        action="store_true",
        help="Ask for a passphrase to protect the key (default: no passphrase)",
    )
    subparsers.add_parser("bashrc", help="Install the .bashrc template", parents=[common_parser])

    aliases_parser = subparsers.add_parser(
        "aliases", help="Reconcile ~/.bash_aliases with the managed aliases", parents=[common_parser]
    )
    unknown = aliases_parser.add_mutually_exclusive_group()
    unknown.add_argument(
        "--keep-unknown",
        action="store_true",
        help="Keep every alias not in the managed set without asking",
    )
    unknown.add_argument(
        "--discard-unknown",
        action="store_true",
        help="Remove every alias not in the managed set without asking",
    )
    aliases_parser.add_argument(
        "--file",
        type=Path,
        help="Alias file to reconcile (default: ~/.bash_aliases of the target user)",
    )

    subparsers.add_parser("snmpd", help="Install and configure SNMPD", parents=[common_parser])
    subparsers.add_parser("docker-repo", help="Add the Docker APT repository", parents=[common_parser])
    subparsers.add_parser("docker", help="Install Docker CE and plugins", parents=[common_parser])
    subparsers.add_parser("fastfetch-repo", help="Clone the update-fastfetch repository", parents=[common_parser])
    subparsers.add_parser("fastfetch", help="Install the latest fastfetch release", parents=[common_parser])
    subparsers.add_parser("all", help="Run every task", parents=[common_parser])
    subparsers.add_parser("info", help="Show configuration information", parents=[common_parser])

    return parser


def _needs_root(args: argparse.Namespace) -> bool:
    if args.command == "info":
        return False
    if args.command == "aliases" and args.file is not None:
        return not os.access(args.file if args.file.exists() else args.file.parent, os.W_OK)
    return True


def _alias_decider(args: argparse.Namespace) -> Optional[DecisionProvider]:
    if getattr(args, "keep_unknown", False):
        return FixedDecider(True)
    if getattr(args, "discard_unknown", False):
        return FixedDecider(False)
    return None


def main(argv: Optional[List[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    args.command = args.command or "menu"
    dry_run = getattr(args, "dry_run", False)
    verbose = getattr(args, "verbose", False)
    config_path = getattr(args, "config", HOST_CONFIG)

    if _needs_root(args) and os.geteuid() != 0:
        print("Error: this command must be run as root (use sudo)", file=sys.stderr)
        sys.exit(1)

    try:
        config = load_host_config(config_path)
        user = get_target_user(getattr(args, "user", None))
        prov = Provisioner(config, user=user, dry_run=dry_run, verbose=verbose)
        prov.log_verbose(f"Target user: {user}, home: {prov.home}")

        actions: Dict[str, Callable[[], bool]] = {
            "update": prov.system_update,
            "sudoers": prov.update_sudoers,
            "ssh": prov.configure_ssh,
            "bashrc": prov.install_bashrc,
            "snmpd": prov.install_snmpd,
            "docker-repo": prov.install_docker_repo,
            "docker": prov.install_docker,
            "fastfetch-repo": prov.clone_fastfetch_repo,
            "fastfetch": prov.install_fastfetch,
        }

        ok = True
        if args.command == "info":
            print(f"Project Root: {PROJECT_ROOT}")
            print(f"Configs Dir: {CONFIGS_DIR}")
            print(f"Host Config: {config.source or '(defaults)'}")
            print(f"Target User: {user or '(none)'}")
            print(f"Target Home: {prov.home or '(none)'}")
            print(f"Managed Aliases: {len(config.aliases)}")
            print(f"Python: {sys.version}")

        elif args.command == "aliases":
            if args.file is None:
                prov.preflight()
            ok = prov.reconcile_aliases(_alias_decider(args), path=args.file)
            prov.summarize()

        elif args.command == "keygen":
            prov.preflight()
            passphrase = None
            if args.passphrase_prompt and not dry_run:
                passphrase = prompt_new_passphrase()
            ok = prov.generate_ssh_key(passphrase)
            prov.summarize()

        elif args.command == "preflight":
            prov.preflight()
            prov.summarize()

        elif args.command == "menu":
            prov.preflight()
            prov.menu()

        elif args.command == "all":
            prov.preflight()
            ok = prov.run_all()
            prov.print_exit_hint()

        else:
            prov.preflight()
            ok = actions[args.command]()
            prov.summarize()

        if not ok:
            sys.exit(1)

    except (PreflightError, CriticalStepError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nAborted.")
        sys.exit(1)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        if verbose:
            import traceback
            traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
