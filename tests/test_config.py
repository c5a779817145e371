"""Tests for config module."""

import sys
from pathlib import Path
from unittest.mock import patch

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from config import (
    ConfigError,
    Fail2banSettings,
    FirewallRule,
    RunbookConfig,
    discover_config_path,
    load_config,
)

from conftest import TEST_SSH_KEY


class TestLoadConfig:
    """Test loading configuration from YAML."""

    def test_loads_all_fields(self, config_file, tmp_path):
        config = load_config(config_file)

        assert config.admin_user == 'alice'
        assert config.admin_user_comment == 'Alice Admin'
        assert config.admin_ssh_key == TEST_SSH_KEY
        assert config.app_user == 'app'
        assert config.ssh_port == 2222
        assert config.packages == ['jq', 'curl']
        assert config.log_dir == tmp_path / 'log'
        assert config.config_file == config_file

    def test_firewall_rules_parsed(self, config_file):
        config = load_config(config_file)
        assert [r.port_proto for r in config.firewall] == ['80/tcp', '443/tcp', '51820/udp']
        assert config.firewall[0].comment == 'HTTP'

    def test_fail2ban_partial_override(self, config_file):
        """Unset fail2ban values keep their defaults."""
        config = load_config(config_file)
        assert config.fail2ban.bantime == 7200
        assert config.fail2ban.findtime == 600
        assert config.fail2ban.maxretry == 5

    def test_defaults(self, tmp_path):
        path = tmp_path / 'runbook.yaml'
        path.write_text("admin_user: bob\n")
        config = load_config(path)

        assert config.app_user == 'app'
        assert config.ssh_port == 2222
        assert config.shell == '/usr/bin/fish'
        assert [r.port_proto for r in config.firewall] == ['80/tcp', '443/tcp']
        assert config.auto_reboot is False
        assert config.unprivileged_port_start == 80

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / 'runbook.yaml'
        path.write_text("")
        config = load_config(path)
        assert config.admin_user == ''

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match='not found'):
            load_config(tmp_path / 'absent.yaml')

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / 'runbook.yaml'
        path.write_text("admin_user: [unclosed\n")
        with pytest.raises(ConfigError, match='Invalid YAML'):
            load_config(path)

    def test_non_mapping(self, tmp_path):
        path = tmp_path / 'runbook.yaml'
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match='expected a mapping'):
            load_config(path)

    def test_unknown_key(self, tmp_path):
        path = tmp_path / 'runbook.yaml'
        path.write_text("admin_usr: typo\n")
        with pytest.raises(ConfigError, match='admin_usr'):
            load_config(path)

    def test_non_integer_port(self, tmp_path):
        path = tmp_path / 'runbook.yaml'
        path.write_text("ssh_port: twenty\n")
        with pytest.raises(ConfigError, match='ssh_port'):
            load_config(path)

    def test_bad_firewall_rule(self, tmp_path):
        path = tmp_path / 'runbook.yaml'
        path.write_text("firewall:\n  allow:\n    - {proto: tcp}\n")
        with pytest.raises(ConfigError, match='Invalid firewall rule'):
            load_config(path)

    def test_unknown_fail2ban_key(self, tmp_path):
        path = tmp_path / 'runbook.yaml'
        path.write_text("fail2ban:\n  banhammer: 1\n")
        with pytest.raises(ConfigError, match='fail2ban'):
            load_config(path)


class TestDiscoverConfigPath:
    """Test config file discovery order."""

    def test_env_var(self, tmp_path, monkeypatch):
        path = tmp_path / 'custom.yaml'
        path.write_text('')
        monkeypatch.setenv('RUNBOOK_CONFIG', str(path))
        assert discover_config_path() == path

    def test_env_var_missing_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv('RUNBOOK_CONFIG', str(tmp_path / 'nope.yaml'))
        with pytest.raises(ConfigError, match='RUNBOOK_CONFIG'):
            discover_config_path()

    def test_cwd_fallback(self, tmp_path, monkeypatch):
        monkeypatch.delenv('RUNBOOK_CONFIG', raising=False)
        monkeypatch.chdir(tmp_path)
        (tmp_path / 'runbook.yaml').write_text('')
        with patch('config.SYSTEM_CONFIG_PATH', tmp_path / 'etc' / 'runbook.yaml'):
            assert discover_config_path() == tmp_path / 'runbook.yaml'

    def test_nothing_found(self, tmp_path, monkeypatch):
        monkeypatch.delenv('RUNBOOK_CONFIG', raising=False)
        monkeypatch.chdir(tmp_path)
        with patch('config.SYSTEM_CONFIG_PATH', tmp_path / 'etc' / 'runbook.yaml'):
            with pytest.raises(ConfigError, match='Config file not found'):
                discover_config_path()


class TestValidate:
    """Test RunbookConfig.validate."""

    def test_valid_config(self, runbook_config):
        assert runbook_config.validate() == []

    def test_empty_required_fields_listed(self):
        config = RunbookConfig(app_user='')
        errors = config.validate()
        assert len(errors) >= 1
        assert 'must not be empty' in errors[0]
        for name in ('admin_user', 'admin_user_comment', 'admin_ssh_key', 'app_user'):
            assert f"- {name}" in errors[0]

    def test_port_range(self, runbook_config):
        runbook_config.ssh_port = 70000
        assert any('ssh_port' in e for e in runbook_config.validate())

    def test_bad_ssh_key(self, runbook_config):
        runbook_config.admin_ssh_key = 'not-a-key'
        assert any('OpenSSH public key' in e for e in runbook_config.validate())

    def test_same_admin_and_app_user(self, runbook_config):
        runbook_config.app_user = runbook_config.admin_user
        assert any('different accounts' in e for e in runbook_config.validate())

    def test_fail2ban_positive(self, runbook_config):
        runbook_config.fail2ban = Fail2banSettings(maxretry=0)
        assert any('fail2ban.maxretry' in e for e in runbook_config.validate())

    def test_firewall_duplicates_ssh(self, runbook_config):
        runbook_config.firewall = [FirewallRule(port=2222)]
        assert any('duplicates the SSH port' in e for e in runbook_config.validate())

    def test_firewall_bad_proto(self, runbook_config):
        runbook_config.firewall = [FirewallRule(port=53, proto='icmp')]
        assert any('tcp or udp' in e for e in runbook_config.validate())


class TestHelpers:
    """Test derived values."""

    def test_ssh_rule_comes_first(self, runbook_config):
        specs = [r.port_proto for r in runbook_config.firewall_rules()]
        assert specs == ['2222/tcp', '80/tcp', '443/tcp']

    def test_to_dict_redacts_key(self, runbook_config):
        data = runbook_config.to_dict()
        assert data['admin_ssh_key'] != TEST_SSH_KEY
        assert data['admin_ssh_key'].startswith('ssh-ed25519 AAAAC3Nz...')
        assert data['admin_ssh_key'].endswith('admin@laptop')

    def test_to_dict_unredacted(self, runbook_config):
        assert runbook_config.to_dict(redact=False)['admin_ssh_key'] == TEST_SSH_KEY
