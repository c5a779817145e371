"""Tests for the UFW firewall action."""

import sys
from pathlib import Path
from unittest.mock import patch

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from actions.firewall import ConfigureFirewallAction, rule_present
from config import FirewallRule

UFW_ACTIVE = """\
Status: active

To                         Action      From
--                         ------      ----
2222/tcp                   ALLOW       Anywhere                   # SSH
80/tcp                     ALLOW       Anywhere                   # HTTP
2222/tcp (v6)              ALLOW       Anywhere (v6)              # SSH
"""

UFW_ADDED = """\
Added user rules (see 'ufw status' for running firewall):
ufw allow 2222/tcp comment 'SSH'
"""


class TestRulePresent:
    """Test ufw output matching."""

    def test_matches_status_line(self):
        assert rule_present(UFW_ACTIVE, FirewallRule(port=80)) is True

    def test_matches_added_line(self):
        assert rule_present(UFW_ADDED, FirewallRule(port=2222)) is True

    def test_no_prefix_match(self):
        assert rule_present(UFW_ACTIVE, FirewallRule(port=22)) is False

    def test_protocol_matters(self):
        assert rule_present(UFW_ACTIVE, FirewallRule(port=80, proto='udp')) is False


class TestConfigureFirewallAction:
    """Test ConfigureFirewallAction."""

    RULES = [
        FirewallRule(port=2222, comment='SSH'),
        FirewallRule(port=80, comment='HTTP'),
        FirewallRule(port=443, comment='HTTPS'),
    ]

    @patch('actions.firewall._ufw_added', return_value='')
    @patch('actions.firewall.run_command')
    def test_inactive_firewall_enabled_after_rules(self, mock_run, _added, runbook_config):
        mock_run.side_effect = lambda cmd, **kw: (0, 'Status: inactive\n', '') if cmd == ['ufw', 'status'] else (0, '', '')

        result = ConfigureFirewallAction(name='fw', rules=self.RULES).run(runbook_config, {})

        assert result.success is True
        cmds = [c.args[0] for c in mock_run.call_args_list]
        assert cmds[0] == ['ufw', 'default', 'deny', 'incoming']
        assert cmds[1] == ['ufw', 'default', 'allow', 'outgoing']
        assert cmds[3] == ['ufw', 'allow', '2222/tcp', 'comment', 'SSH']
        assert cmds[-1] == ['ufw', '--force', 'enable']
        assert result.context_updates == {'firewall_rules_added': ['2222/tcp', '80/tcp', '443/tcp']}

    @patch('actions.firewall._ufw_added', return_value=UFW_ADDED)
    @patch('actions.firewall.run_command')
    def test_active_firewall_adds_missing_and_reloads(self, mock_run, _added, runbook_config):
        mock_run.side_effect = lambda cmd, **kw: (0, UFW_ACTIVE, '') if cmd == ['ufw', 'status'] else (0, '', '')

        result = ConfigureFirewallAction(name='fw', rules=self.RULES).run(runbook_config, {})

        assert result.success is True
        allow_cmds = [c.args[0] for c in mock_run.call_args_list if c.args[0][1] == 'allow' and len(c.args[0]) > 3]
        assert allow_cmds == [['ufw', 'allow', '443/tcp', 'comment', 'HTTPS']]
        assert mock_run.call_args.args[0] == ['ufw', 'reload']
        assert result.context_updates == {'firewall_rules_added': ['443/tcp']}

    @patch('actions.firewall.run_command', return_value=(1, '', 'ERROR: You need to be root'))
    def test_policy_failure(self, _mock_run, runbook_config):
        result = ConfigureFirewallAction(name='fw', rules=self.RULES).run(runbook_config, {})
        assert result.success is False
        assert 'need to be root' in result.message



    @patch('actions.firewall._ufw_added', return_value=UFW_ADDED)
    @patch('actions.firewall.run_command')
    def test_changes_list_added_rules(self, mock_run, _added, runbook_config):
        mock_run.side_effect = lambda cmd, **kw: (0, UFW_ACTIVE, '') if cmd == ['ufw', 'status'] else (0, '', '')

        result = ConfigureFirewallAction(name='fw', rules=self.RULES).run(runbook_config, {})

        assert result.changes == ['ufw allow 443/tcp']

    def test_plan(self, runbook_config):
        assert ConfigureFirewallAction(name='fw', rules=self.RULES[:2]).plan(runbook_config) == [
            'ufw default deny incoming, allow outgoing',
            'ufw allow 2222/tcp (SSH)',
            'ufw allow 80/tcp (HTTP)',
        ]
