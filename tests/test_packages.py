"""Tests for preflight command checks and APT helpers."""

import subprocess
from unittest.mock import MagicMock

import pytest

from provision import packages
from provision.errors import PreflightError

REQUIRED = {"git": "git", "nc": "netcat-traditional", "ssh-keygen": "openssh-client", "ssh-add": "openssh-client"}


def _which_from(available):
    return lambda cmd: f"/usr/bin/{cmd}" if cmd in available else None


class TestFindMissingCommands:
    """Test cases for detecting missing commands."""

    def test_nothing_missing(self, monkeypatch):
        monkeypatch.setattr(packages.shutil, "which", _which_from(REQUIRED))

        assert packages.find_missing_commands(REQUIRED) == []

    def test_packages_are_deduplicated_in_order(self, monkeypatch):
        monkeypatch.setattr(packages.shutil, "which", _which_from({"git"}))

        assert packages.find_missing_commands(REQUIRED) == ["netcat-traditional", "openssh-client"]


class TestInstallParallelThenSerial:
    """Test cases for the parallel install with serial retry."""

    def test_all_succeed_in_parallel(self, monkeypatch):
        install_one = MagicMock(return_value=True)
        monkeypatch.setattr(packages, "_install_one", install_one)

        assert packages.install_parallel_then_serial(["a", "b", "c"]) == []
        assert install_one.call_count == 3

    def test_failures_are_retried_serially(self, monkeypatch):
        attempts = {}

        def install_one(package):
            attempts[package] = attempts.get(package, 0) + 1
            # "b" loses the dpkg lock the first time only
            return package != "b" or attempts[package] > 1

        monkeypatch.setattr(packages, "_install_one", install_one)

        assert packages.install_parallel_then_serial(["a", "b", "c"]) == []
        assert attempts == {"a": 1, "b": 2, "c": 1}

    def test_reports_packages_that_never_install(self, monkeypatch):
        monkeypatch.setattr(packages, "_install_one", lambda package: package != "broken")

        assert packages.install_parallel_then_serial(["ok", "broken"]) == ["broken"]

    def test_empty_list(self):
        assert packages.install_parallel_then_serial([]) == []


class TestEnsureCommands:
    """Test cases for the preflight check."""

    def test_all_present_skips_apt(self, monkeypatch):
        monkeypatch.setattr(packages.shutil, "which", _which_from(REQUIRED))
        update = MagicMock()
        monkeypatch.setattr(packages, "update_package_lists", update)

        assert packages.ensure_commands(REQUIRED) == []
        update.assert_not_called()

    def test_installs_missing_packages(self, monkeypatch):
        available = {"git", "ssh-keygen", "ssh-add"}
        monkeypatch.setattr(packages.shutil, "which", lambda cmd: cmd if cmd in available else None)
        monkeypatch.setattr(packages, "update_package_lists", MagicMock())

        def install(pkgs, workers=packages.PARALLEL_INSTALL_WORKERS):
            available.add("nc")
            return []

        monkeypatch.setattr(packages, "install_parallel_then_serial", install)

        assert packages.ensure_commands(REQUIRED) == ["netcat-traditional"]

    def test_update_failure_is_fatal(self, monkeypatch):
        monkeypatch.setattr(packages.shutil, "which", _which_from({"git"}))
        monkeypatch.setattr(
            packages,
            "update_package_lists",
            MagicMock(side_effect=subprocess.CalledProcessError(100, "apt-get update")),
        )

        with pytest.raises(PreflightError, match="package lists"):
            packages.ensure_commands(REQUIRED)

    def test_failed_install_is_fatal(self, monkeypatch):
        monkeypatch.setattr(packages.shutil, "which", _which_from({"git"}))
        monkeypatch.setattr(packages, "update_package_lists", MagicMock())
        monkeypatch.setattr(packages, "install_parallel_then_serial", lambda pkgs: ["openssh-client"])

        with pytest.raises(PreflightError, match="openssh-client"):
            packages.ensure_commands(REQUIRED)

    def test_command_still_missing_is_fatal(self, monkeypatch):
        monkeypatch.setattr(packages.shutil, "which", _which_from({"git"}))
        monkeypatch.setattr(packages, "update_package_lists", MagicMock())
        monkeypatch.setattr(packages, "install_parallel_then_serial", lambda pkgs: [])

        with pytest.raises(PreflightError, match="nc"):
            packages.ensure_commands(REQUIRED)


class TestDpkgQueries:
    """Test cases for installed-package detection."""

    def test_get_installed_packages(self, monkeypatch):
        output = (
            "curl install ok installed\n"
            "libc6:amd64 install ok installed\n"
            "snmpd deinstall ok config-files\n"
            "gone unknown ok not-installed\n"
        )
        monkeypatch.setattr(
            packages.subprocess,
            "run",
            MagicMock(return_value=subprocess.CompletedProcess([], 0, output, "")),
        )

        assert packages.get_installed_packages() == {"curl", "libc6"}

    def test_ensure_packages_installs_only_missing(self, monkeypatch):
        monkeypatch.setattr(packages, "get_installed_packages", lambda: {"curl"})
        install = MagicMock()
        monkeypatch.setattr(packages, "install", install)

        assert packages.ensure_packages(["curl", "snmpd"]) == ["snmpd"]
        install.assert_called_once_with(["snmpd"])

    def test_apt_get_runs_noninteractive(self, monkeypatch):
        run = MagicMock(return_value=subprocess.CompletedProcess([], 0))
        monkeypatch.setattr(packages.subprocess, "run", run)

        packages.dist_upgrade()

        args, kwargs = run.call_args
        assert args[0] == ["sudo", "-E", "apt-get", "dist-upgrade", "-y"]
        assert kwargs["env"]["DEBIAN_FRONTEND"] == "noninteractive"
        assert kwargs["check"] is True
