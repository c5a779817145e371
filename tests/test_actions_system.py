"""Tests for file permission, IPv6 and sysctl actions."""

import sys
from pathlib import Path
from unittest.mock import patch

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from actions.system import CheckIPv6Action, SecurePermissionsAction, SysctlAction


class TestSecurePermissionsAction:
    """Test SecurePermissionsAction."""

    def test_sets_modes(self, tmp_path, runbook_config):
        shadow = tmp_path / 'shadow'
        shadow.write_text('root:*:19000:0:99999:7:::\n')
        shadow.chmod(0o666)

        action = SecurePermissionsAction(name='perm', permissions={str(shadow): 0o640})
        result = action.run(runbook_config, {})

        assert result.success is True
        assert shadow.stat().st_mode & 0o777 == 0o640
        assert result.changes == [f"chmod 640 {shadow}"]

    def test_plan_lists_wrong_modes_only(self, tmp_path, runbook_config):
        shadow = tmp_path / 'shadow'
        shadow.write_text('')
        shadow.chmod(0o640)
        passwd = tmp_path / 'passwd'
        passwd.write_text('')
        passwd.chmod(0o600)

        action = SecurePermissionsAction(name='perm', permissions={str(shadow): 0o640, str(passwd): 0o644})
        assert action.plan(runbook_config) == [f"chmod 644 {passwd}"]

    def test_missing_file_skipped(self, tmp_path, runbook_config):
        action = SecurePermissionsAction(name='perm', permissions={str(tmp_path / 'gshadow'): 0o640})
        result = action.run(runbook_config, {})
        assert result.success is True
        assert '0 changed' in result.message
        assert result.changes == []


class TestCheckIPv6Action:
    """Test CheckIPv6Action."""

    def test_available(self, tmp_path, runbook_config):
        inet6 = tmp_path / 'if_inet6'
        inet6.write_text('00000000000000000000000000000001 01 80 10 80       lo\n')
        result = CheckIPv6Action(name='v6', inet6_path=str(inet6)).run(runbook_config, {})
        assert result.success is True
        assert result.context_updates == {'ipv6_available': True}

    def test_unavailable_still_succeeds(self, tmp_path, runbook_config):
        result = CheckIPv6Action(name='v6', inet6_path=str(tmp_path / 'none')).run(runbook_config, {})
        assert result.success is True
        assert result.context_updates == {'ipv6_available': False}


class TestSysctlAction:
    """Test SysctlAction."""

    @patch('actions.system.run_command', return_value=(0, '', ''))
    def test_applies(self, mock_run, runbook_config):
        result = SysctlAction(name='sysctl').run(runbook_config, {})
        assert result.success is True
        mock_run.assert_called_once_with(['sysctl', '--system'], timeout=60)

    @patch('actions.system.run_command')
    def test_unchanged_skipped(self, mock_run, runbook_config):
        result = SysctlAction(name='sysctl', only_if='sysctl_changed').run(runbook_config, {'sysctl_changed': False})
        assert result.success is True
        mock_run.assert_not_called()
