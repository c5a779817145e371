"""Tests for bundled configuration templates."""

import sys
from pathlib import Path

import pytest
from jinja2 import UndefinedError

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from config import Fail2banSettings
from render import TEMPLATES_DIR, create_jinja_env, render_template


class TestRenderTemplate:
    """Test rendering with configuration values."""

    def test_sshd_config(self, runbook_config):
        content = render_template('sshd_config.j2', **runbook_config.template_vars())
        assert 'Port 2222\n' in content
        assert 'AllowUsers alice app\n' in content
        assert 'PermitRootLogin no' in content
        assert 'PasswordAuthentication no' in content

    def test_jail_local(self, runbook_config):
        runbook_config.fail2ban = Fail2banSettings(bantime=7200, maxretry=3)
        content = render_template('jail.local.j2', **runbook_config.template_vars())
        assert 'bantime = 7200\n' in content
        assert 'maxretry = 3\n' in content
        assert 'port = 2222\n' in content

    @pytest.mark.parametrize('auto_reboot,expected', [(False, '"false"'), (True, '"true"')])
    def test_automatic_reboot(self, runbook_config, auto_reboot, expected):
        runbook_config.auto_reboot = auto_reboot
        content = render_template('50unattended-upgrades.j2', **runbook_config.template_vars())
        assert f'Unattended-Upgrade::Automatic-Reboot {expected};' in content

    def test_sudoers(self):
        assert render_template('sudoers.j2', username='alice') == 'alice ALL=(ALL) NOPASSWD:ALL\n'

    def test_unprivileged_ports(self, runbook_config):
        content = render_template('99-unprivileged-ports.conf.j2', **runbook_config.template_vars())
        assert 'net.ipv4.ip_unprivileged_port_start=80\n' in content

    def test_missing_variable_raises(self):
        with pytest.raises(UndefinedError):
            render_template('sshd_config.j2')

    def test_every_template_ends_with_newline(self, runbook_config):
        env = create_jinja_env(TEMPLATES_DIR)
        variables = dict(runbook_config.template_vars(), username='alice')
        for name in env.list_templates():
            assert env.get_template(name).render(**variables).endswith('\n'), name
