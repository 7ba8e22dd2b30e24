"""Tests for APT proxy probing and the system update step."""

import socket
from unittest.mock import MagicMock

from provision import files, updates
from provision.updates import disable_proxy_conf, render_proxy_conf

PROXY_CONF = 'Acquire::http::Proxy "http://10.0.0.20:3142";\nAcquire::https::Proxy "http://10.0.0.20:3142";\n'


def test_render_proxy_conf():
    assert render_proxy_conf("10.0.0.20", 3142) == PROXY_CONF


def test_disable_proxy_conf_comments_out_directives():
    text = "// keep me\n" + PROXY_CONF

    assert disable_proxy_conf(text) == (
        "// keep me\n"
        '# Acquire::http::Proxy "http://10.0.0.20:3142";\n'
        '# Acquire::https::Proxy "http://10.0.0.20:3142";\n'
    )


def test_disable_proxy_conf_is_idempotent():
    once = disable_proxy_conf(PROXY_CONF)

    assert disable_proxy_conf(once) == once


class TestProxyProbe:
    """Test cases for the TCP reachability check."""

    def test_reachable(self, monkeypatch):
        conn = MagicMock()
        create = MagicMock(return_value=conn)
        monkeypatch.setattr(updates.socket, "create_connection", create)

        assert updates.is_proxy_reachable("10.0.0.20", 3142) is True
        create.assert_called_once_with(("10.0.0.20", 3142), timeout=1.0)

    def test_unreachable(self, monkeypatch):
        monkeypatch.setattr(
            updates.socket,
            "create_connection",
            MagicMock(side_effect=socket.timeout("timed out")),
        )

        assert updates.is_proxy_reachable("10.0.0.20", 3142) is False


class TestConfigureAptProxy:
    """Test cases for writing or disabling the proxy configuration."""

    def test_reachable_proxy_is_written(self, tmp_path, monkeypatch):
        path = tmp_path / "02proxy"
        monkeypatch.setattr(updates, "is_proxy_reachable", lambda host, port: True)
        # root:root ownership cannot be applied in a temp dir
        monkeypatch.setattr(files, "set_permissions", lambda *args, **kwargs: False)

        assert updates.configure_apt_proxy("10.0.0.20", 3142, path=path) is True
        assert path.read_text() == PROXY_CONF

    def test_existing_proxy_config_left_alone(self, tmp_path, monkeypatch):
        path = tmp_path / "02proxy"
        path.write_text(PROXY_CONF)
        monkeypatch.setattr(updates, "is_proxy_reachable", lambda host, port: True)

        assert updates.configure_apt_proxy("10.0.0.20", 3142, path=path) is False
        assert [p.name for p in tmp_path.iterdir()] == ["02proxy"]

    def test_unreachable_proxy_is_commented_out(self, tmp_path, monkeypatch):
        path = tmp_path / "02proxy"
        path.write_text(PROXY_CONF)
        monkeypatch.setattr(updates, "is_proxy_reachable", lambda host, port: False)

        assert updates.configure_apt_proxy("10.0.0.20", 3142, path=path) is True
        assert all(line.startswith("# ") for line in path.read_text().splitlines())

    def test_unreachable_proxy_without_config(self, tmp_path, monkeypatch):
        path = tmp_path / "02proxy"
        monkeypatch.setattr(updates, "is_proxy_reachable", lambda host, port: False)

        assert updates.configure_apt_proxy("10.0.0.20", 3142, path=path) is False
        assert not path.exists()


def test_system_update_runs_update_then_upgrade(monkeypatch):
    calls = []
    monkeypatch.setattr(updates, "update_package_lists", lambda: calls.append("update"))
    monkeypatch.setattr(updates, "dist_upgrade", lambda: calls.append("dist-upgrade"))

    updates.system_update_upgrade()

    assert calls == ["update", "dist-upgrade"]


def test_system_update_dry_run(monkeypatch):
    update = MagicMock()
    monkeypatch.setattr(updates, "update_package_lists", update)

    updates.system_update_upgrade(dry_run=True)

    update.assert_not_called()
