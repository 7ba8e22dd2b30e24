"""Tests for the rendered .bashrc and snmpd.conf."""

from unittest.mock import MagicMock

from provision import dotfiles, files, snmpd


class TestBashrc:
    """Test cases for the shell profile."""

    def test_defaults(self):
        content = dotfiles.render_bashrc()

        assert "HISTSIZE=1000\n" in content
        assert "HISTFILESIZE=2000\n" in content
        assert "force_color_prompt=yes\n" in content
        assert ". ~/.bash_aliases" in content
        assert content.endswith("\n")
        assert "{{" not in content and "{%" not in content

    def test_settings_override_defaults(self):
        content = dotfiles.render_bashrc({"hist_size": 5000, "force_color_prompt": False})

        assert "HISTSIZE=5000\n" in content
        assert "force_color_prompt=yes" not in content

    def test_install_writes_user_bashrc(self, tmp_path):
        assert dotfiles.install_bashrc(None, home=tmp_path) is True

        assert (tmp_path / ".bashrc").read_text() == dotfiles.render_bashrc()
        assert (tmp_path / ".bashrc").stat().st_mode & 0o777 == 0o644
        assert dotfiles.install_bashrc(None, home=tmp_path) is False

    def test_install_keeps_backup_of_previous_bashrc(self, tmp_path):
        (tmp_path / ".bashrc").write_text("# mine\n")

        dotfiles.install_bashrc(None, home=tmp_path)

        backups = [p for p in tmp_path.iterdir() if p.name.startswith(".bashrc.bak_")]
        assert [p.read_text() for p in backups] == ["# mine\n"]


class TestSnmpd:
    """Test cases for the SNMP daemon configuration."""

    def test_pc_platform(self):
        content = snmpd.render_snmpd_conf({"platform": "pc", "community": "martin"})

        assert "rocommunity martin\n" in content
        assert "/sys/devices/virtual/dmi/id/product_name" in content
        assert "/proc/device-tree/model" not in content

    def test_pi_platform(self):
        content = snmpd.render_snmpd_conf({"platform": "pi"})

        assert "/proc/device-tree/serial-number" in content
        assert "dmi" not in content
        assert "rocommunity public\n" in content

    def test_detect_platform(self, tmp_path):
        model = tmp_path / "model"
        model.write_text("Raspberry Pi 4 Model B Rev 1.4\x00")

        assert snmpd.detect_platform(model) == "pi"
        assert snmpd.detect_platform(tmp_path / "absent") == "pc"

    def test_install_reloads_running_service(self, tmp_path, monkeypatch):
        conf = tmp_path / "snmpd.conf"
        ensure_packages = MagicMock(return_value=[])
        reload = MagicMock(return_value=True)
        monkeypatch.setattr(snmpd, "ensure_packages", ensure_packages)
        monkeypatch.setattr(snmpd, "reload_if_active", reload)
        monkeypatch.setattr(files, "set_permissions", lambda *args, **kwargs: False)

        assert snmpd.install_configure_snmpd({"platform": "pc"}, path=conf) is True

        ensure_packages.assert_called_once_with(["lm-sensors", "snmpd"])
        reload.assert_called_once_with("snmpd")
        assert "agentaddress  udp:161" in conf.read_text()

    def test_install_reports_stopped_service(self, tmp_path, monkeypatch):
        monkeypatch.setattr(snmpd, "ensure_packages", MagicMock(return_value=[]))
        monkeypatch.setattr(snmpd, "reload_if_active", MagicMock(return_value=False))
        monkeypatch.setattr(files, "set_permissions", lambda *args, **kwargs: False)

        assert snmpd.install_configure_snmpd({"platform": "pi"}, path=tmp_path / "snmpd.conf") is False
