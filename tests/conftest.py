"""Shared pytest fixtures for runbook tests."""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from config import RunbookConfig  # noqa: E402

TEST_SSH_KEY = "ssh-ed25519 AAAAC3NzaC1lZDI1NTE5AAAAIGVyZXN0aGVyZWlzbm90aGluZ2hlcmU admin@laptop"


@pytest.fixture
def runbook_config(tmp_path):
    """A valid configuration with logs kept inside tmp_path."""
    return RunbookConfig(
        admin_user='alice',
        admin_user_comment='Alice Admin',
        admin_ssh_key=TEST_SSH_KEY,
        app_user='app',
        ssh_port=2222,
        log_dir=tmp_path / 'log',
        config_file=tmp_path / 'runbook.yaml',
    )


@pytest.fixture
def config_file(tmp_path):
    """Write a complete runbook.yaml and return its path."""
    path = tmp_path / 'runbook.yaml'
    path.write_text(f"""
admin_user: alice
admin_user_comment: Alice Admin
admin_ssh_key: "{TEST_SSH_KEY}"
app_user: app
ssh_port: 2222
packages:
  - jq
  - curl
firewall:
  allow:
    - port: 80
      comment: HTTP
    - port: 443
      comment: HTTPS
    - 51820/udp
fail2ban:
  bantime: 7200
log_dir: {tmp_path / 'log'}
""")
    return path


@pytest.fixture
def no_chown():
    """Let file sync run as an unprivileged test user."""
    from unittest.mock import patch
    with patch('actions.file.shutil.chown') as mock_chown:
        yield mock_chown
