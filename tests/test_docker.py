"""Tests for the Docker repository and engine installation."""

import subprocess
from unittest.mock import MagicMock

import pytest

from provision import docker

OS_RELEASE = """\
PRETTY_NAME="Debian GNU/Linux 12 (bookworm)"
NAME="Debian GNU/Linux"
VERSION_ID="12"
VERSION_CODENAME=bookworm
ID=debian
"""


def test_parse_os_release(tmp_path):
    path = tmp_path / "os-release"
    path.write_text(OS_RELEASE + "# comment\n\n")

    values = docker.parse_os_release(path)

    assert values["VERSION_CODENAME"] == "bookworm"
    assert values["PRETTY_NAME"] == "Debian GNU/Linux 12 (bookworm)"
    assert values["ID"] == "debian"


def test_parse_missing_os_release(tmp_path):
    assert docker.parse_os_release(tmp_path / "absent") == {}


@pytest.mark.parametrize(
    "distro, detected, expected",
    [
        ("auto", "debian", "debian"),
        ("auto", "ubuntu", "ubuntu"),
        ("auto", "raspbian", "debian"),
        ("debian", "ubuntu", "debian"),
    ],
)
def test_resolve_distro(distro, detected, expected):
    assert docker.resolve_distro(distro, {"ID": detected}) == expected


def test_render_docker_source():
    assert docker.render_docker_source("amd64", "bookworm") == (
        "deb [arch=amd64 signed-by=/etc/apt/keyrings/docker.asc] "
        "https://download.docker.com/linux/debian bookworm stable\n"
    )


def test_repository_requires_codename(monkeypatch):
    monkeypatch.setattr(docker, "parse_os_release", lambda path=docker.OS_RELEASE: {"ID": "debian"})

    with pytest.raises(ValueError, match="VERSION_CODENAME"):
        docker.install_docker_repository()


class TestInstallDockerCe:
    """Test cases for the engine installation."""

    def test_adds_user_to_docker_group(self, monkeypatch):
        monkeypatch.setattr(docker, "ensure_packages", MagicMock(return_value=[]))
        monkeypatch.setattr(docker, "user_in_group", lambda user, group: False)
        run = MagicMock(return_value=subprocess.CompletedProcess([], 0))
        monkeypatch.setattr(docker.subprocess, "run", run)

        assert docker.install_docker_ce("mews") is True
        run.assert_called_once_with(["sudo", "usermod", "-aG", "docker", "mews"], check=True)

    def test_existing_member_not_re_added(self, monkeypatch):
        ensure = MagicMock(return_value=[])
        monkeypatch.setattr(docker, "ensure_packages", ensure)
        monkeypatch.setattr(docker, "user_in_group", lambda user, group: True)
        run = MagicMock()
        monkeypatch.setattr(docker.subprocess, "run", run)

        assert docker.install_docker_ce("mews") is False
        ensure.assert_called_once_with(docker.DOCKER_PACKAGES)
        run.assert_not_called()
