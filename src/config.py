"""Installer configuration management.

Configuration is loaded from a single YAML file:
- admin_user, admin_user_comment, admin_ssh_key: the login account
- app_user: unprivileged account that runs applications
- ssh_port, firewall, fail2ban: hardening parameters
- packages: extra packages installed alongside the essential set

Resolution order for the config file:
1. --config PATH (explicit)
2. $RUNBOOK_CONFIG
3. /etc/runbook/runbook.yaml
4. ./runbook.yaml
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml


class ConfigError(Exception):
    """Configuration error."""


SYSTEM_CONFIG_PATH = Path('/etc/runbook/runbook.yaml')

SSH_KEY_TYPES = (
    'ssh-ed25519',
    'ssh-rsa',
    'ecdsa-sha2-nistp256',
    'ecdsa-sha2-nistp384',
    'ecdsa-sha2-nistp521',
    'sk-ssh-ed25519@openssh.com',
    'sk-ecdsa-sha2-nistp256@openssh.com',
)

# Variables that must not be empty before anything is touched
REQUIRED_FIELDS = (
    'admin_user',
    'admin_user_comment',
    'admin_ssh_key',
    'app_user',
    'ssh_port',
)


@dataclass
class FirewallRule:
    """A single inbound allow rule."""
    port: int
    proto: str = 'tcp'
    comment: str = ''

    @property
    def port_proto(self) -> str:
        """Rule in ufw notation, e.g. '443/tcp'."""
        return f"{self.port}/{self.proto}"


def _default_firewall_rules() -> list:
    return [
        FirewallRule(port=80, proto='tcp', comment='HTTP'),
        FirewallRule(port=443, proto='tcp', comment='HTTPS'),
    ]


@dataclass
class Fail2banSettings:
    """Ban thresholds for the sshd jail."""
    bantime: int = 3600
    findtime: int = 600
    maxretry: int = 5
    destemail: str = 'root@localhost'


@dataclass
class RunbookConfig:
    """Settings for a server installation run."""
    admin_user: str = ''
    admin_user_comment: str = ''
    admin_ssh_key: str = ''
    app_user: str = 'app'
    ssh_port: int = 2222
    shell: str = '/usr/bin/fish'
    packages: list = field(default_factory=list)
    firewall: list = field(default_factory=_default_firewall_rules)
    fail2ban: Fail2banSettings = field(default_factory=Fail2banSettings)
    auto_reboot: bool = False
    log_dir: Path = Path('/var/log')
    unprivileged_port_start: int = 80
    config_file: Optional[Path] = None

    @classmethod
    def from_dict(cls, data: dict, config_file: Optional[Path] = None) -> 'RunbookConfig':
        """Build a config from parsed YAML.

        Raises:
            ConfigError: On unknown keys or wrongly typed sections
        """
        data = dict(data or {})
        known = {
            'admin_user', 'admin_user_comment', 'admin_ssh_key', 'app_user',
            'ssh_port', 'shell', 'packages', 'firewall', 'fail2ban',
            'auto_reboot', 'log_dir', 'unprivileged_port_start',
        }
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown configuration keys: {', '.join(unknown)}")

        config = cls(config_file=config_file)

        for key in ('admin_user', 'admin_user_comment', 'admin_ssh_key', 'app_user', 'shell'):
            if key in data and data[key] is not None:
                setattr(config, key, str(data[key]).strip())

        for key in ('ssh_port', 'unprivileged_port_start'):
            if key in data and data[key] is not None:
                try:
                    setattr(config, key, int(data[key]))
                except (TypeError, ValueError) as e:
                    raise ConfigError(f"{key} must be an integer, got {data[key]!r}") from e

        if 'auto_reboot' in data:
            config.auto_reboot = bool(data['auto_reboot'])

        if data.get('log_dir'):
            config.log_dir = Path(data['log_dir'])

        packages = data.get('packages') or []
        if not isinstance(packages, list):
            raise ConfigError("packages must be a list")
        config.packages = [str(p) for p in packages]

        if 'firewall' in data:
            config.firewall = _parse_firewall(data['firewall'])

        fail2ban = data.get('fail2ban') or {}
        if not isinstance(fail2ban, dict):
            raise ConfigError("fail2ban must be a mapping")
        try:
            config.fail2ban = Fail2banSettings(**fail2ban)
        except TypeError as e:
            raise ConfigError(f"Invalid fail2ban settings: {e}") from e

        return config

    def validate(self) -> list[str]:
        """Check the configuration for values that would break the install.

        Returns:
            List of validation error messages (empty if valid)
        """
        errors = []

        empty = [name for name in REQUIRED_FIELDS if not getattr(self, name)]
        if empty:
            lines = ["Configuration variables must not be empty:"]
            lines.extend(f"  - {name}" for name in empty)
            errors.append('\n'.join(lines))

        if self.ssh_port and not 1 <= self.ssh_port <= 65535:
            errors.append(f"ssh_port must be between 1 and 65535, got {self.ssh_port}")

        if self.admin_ssh_key and not self.admin_ssh_key.startswith(SSH_KEY_TYPES):
            errors.append(
                "admin_ssh_key does not look like an OpenSSH public key\n"
                f"  Expected one of: {', '.join(SSH_KEY_TYPES)}"
            )

        if self.admin_user and self.admin_user == self.app_user:
            errors.append("admin_user and app_user must be different accounts")

        for name in ('bantime', 'findtime', 'maxretry'):
            value = getattr(self.fail2ban, name)
            if not isinstance(value, int) or value <= 0:
                errors.append(f"fail2ban.{name} must be a positive integer, got {value!r}")

        for rule in self.firewall:
            if not 1 <= rule.port <= 65535:
                errors.append(f"Firewall port out of range: {rule.port}")
            if rule.proto not in ('tcp', 'udp'):
                errors.append(f"Firewall protocol must be tcp or udp: {rule.port_proto}")
            if rule.port == self.ssh_port and rule.proto == 'tcp':
                errors.append(f"Firewall rule {rule.port_proto} duplicates the SSH port rule")

        if not 0 <= self.unprivileged_port_start <= 65535:
            errors.append(
                f"unprivileged_port_start must be between 0 and 65535, got {self.unprivileged_port_start}"
            )

        return errors

    def firewall_rules(self) -> list[FirewallRule]:
        """All allow rules, SSH first so it exists before the firewall is enabled."""
        return [FirewallRule(port=self.ssh_port, proto='tcp', comment='SSH')] + list(self.firewall)

    def template_vars(self) -> dict:
        """Values exposed to file templates."""
        return {
            'admin_user': self.admin_user,
            'admin_user_comment': self.admin_user_comment,
            'app_user': self.app_user,
            'ssh_port': self.ssh_port,
            'fail2ban': self.fail2ban,
            'auto_reboot': self.auto_reboot,
            'unprivileged_port_start': self.unprivileged_port_start,
        }

    def to_dict(self, redact: bool = True) -> dict:
        """Return configuration as a plain dict for display."""
        key = self.admin_ssh_key
        if redact and key:
            parts = key.split()
            if len(parts) >= 2 and len(parts[1]) > 16:
                parts[1] = f"{parts[1][:8]}...{parts[1][-8:]}"
            key = ' '.join(parts)
        return {
            'config_file': str(self.config_file) if self.config_file else None,
            'admin_user': self.admin_user,
            'admin_user_comment': self.admin_user_comment,
            'admin_ssh_key': key,
            'app_user': self.app_user,
            'ssh_port': self.ssh_port,
            'shell': self.shell,
            'packages': list(self.packages),
            'firewall': [
                {'port': r.port, 'proto': r.proto, 'comment': r.comment}
                for r in self.firewall
            ],
            'fail2ban': {
                'bantime': self.fail2ban.bantime,
                'findtime': self.fail2ban.findtime,
                'maxretry': self.fail2ban.maxretry,
                'destemail': self.fail2ban.destemail,
            },
            'auto_reboot': self.auto_reboot,
            'log_dir': str(self.log_dir),
            'unprivileged_port_start': self.unprivileged_port_start,
        }


def _parse_firewall(raw) -> list[FirewallRule]:
    """Parse firewall rules from YAML.

    Accepts either {'allow': [...]} or a bare list. Each rule is a
    mapping (port/proto/comment) or a string like '8080/tcp'.
    """
    if isinstance(raw, dict):
        raw = raw.get('allow', [])
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ConfigError("firewall.allow must be a list")

    rules = []
    for item in raw:
        try:
            if isinstance(item, dict):
                rules.append(FirewallRule(
                    port=int(item['port']),
                    proto=str(item.get('proto', 'tcp')).lower(),
                    comment=str(item.get('comment', '')),
                ))
            else:
                port, _, proto = str(item).partition('/')
                rules.append(FirewallRule(port=int(port), proto=(proto or 'tcp').lower()))
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigError(f"Invalid firewall rule: {item!r}") from e
    return rules


def _parse_yaml(path: Path) -> dict:
    """Parse a YAML file and return contents."""
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid config file (expected a mapping): {path}")
    return data


def discover_config_path() -> Path:
    """Discover the installer config file.

    Resolution order:
    1. $RUNBOOK_CONFIG environment variable
    2. /etc/runbook/runbook.yaml
    3. ./runbook.yaml
    """
    if env_path := os.environ.get('RUNBOOK_CONFIG'):
        path = Path(env_path)
        if path.exists():
            return path
        raise ConfigError(f"RUNBOOK_CONFIG={env_path} does not exist")

    if SYSTEM_CONFIG_PATH.exists():
        return SYSTEM_CONFIG_PATH

    local = Path.cwd() / 'runbook.yaml'
    if local.exists():
        return local

    raise ConfigError(
        "Config file not found. "
        f"Pass --config, set RUNBOOK_CONFIG, or create {SYSTEM_CONFIG_PATH}"
    )


def load_config(path: Optional[Path] = None) -> RunbookConfig:
    """Load installer configuration from YAML.

    Args:
        path: Explicit config path (default: auto-discover)

    Raises:
        ConfigError: If the file is missing or invalid
    """
    if path is None:
        path = discover_config_path()
    elif not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    return RunbookConfig.from_dict(_parse_yaml(path), config_file=path)
