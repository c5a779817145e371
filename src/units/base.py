"""Base unit: system hardening and security configuration.

- System updates and essential packages
- User creation (admin + app users)
- SSH hardening (custom port, key-only auth)
- Firewall configuration (UFW)
- fail2ban for SSH protection
- Automatic security updates
"""

from actions import (
    AuthorizedKeyAction,
    BackupFileAction,
    CheckIPv6Action,
    ConfigureFirewallAction,
    EnsureDirectoryAction,
    EnsureUserAction,
    InstallPackagesAction,
    LockRootPasswordAction,
    SecurePermissionsAction,
    ServiceAction,
    SudoersAction,
    UpdateSystemAction,
    WriteFileAction,
)
from actions.users import home_dir
from config import RunbookConfig
from units import register_unit

ESSENTIAL_PACKAGES = [
    'apt-transport-https',
    'ca-certificates',
    'curl',
    'gnupg',
    'lsb-release',
    'ufw',
    'fail2ban',
    'rsyslog',
    'unattended-upgrades',
    'vim',
    'git',
    'htop',
    'fish',
    'tree',
    'net-tools',
]

SSHD_CONFIG = '/etc/ssh/sshd_config'
JAIL_LOCAL = '/etc/fail2ban/jail.local'
UNATTENDED_UPGRADES = '/etc/apt/apt.conf.d/50unattended-upgrades'
AUTO_UPGRADES = '/etc/apt/apt.conf.d/20auto-upgrades'


def package_list(config: RunbookConfig) -> list[str]:
    """Essential packages followed by configured extras, without duplicates."""
    return list(dict.fromkeys(ESSENTIAL_PACKAGES + list(config.packages)))


@register_unit
class BaseUnit:
    """Harden a fresh Debian/Ubuntu server."""

    name = 'base'
    description = 'System hardening, users, SSH, firewall'
    requires_root = True
    expected_runtime = 300

    def get_phases(self, config: RunbookConfig) -> list[tuple[str, object, str]]:
        """Return phases in execution order."""
        admin = config.admin_user
        admin_owner = f"{admin}:{admin}"
        admin_home = home_dir(admin)
        fish_dir = admin_home / '.config' / 'fish'

        return [
            ('update_system', UpdateSystemAction(name='update-system'),
             'Update package lists and upgrade the system'),
            ('install_packages', InstallPackagesAction(
                name='essential-packages',
                packages=package_list(config),
            ), 'Install essential packages'),
            ('create_admin_user', EnsureUserAction(
                name='admin-user',
                username=admin,
                comment=config.admin_user_comment,
                shell=config.shell,
                groups=['sudo'],
            ), f'Create admin user {admin}'),
            ('admin_sudo', SudoersAction(name='admin-sudo', username=admin),
             'Configure passwordless sudo for the admin user'),
            ('admin_ssh_key', AuthorizedKeyAction(
                name='admin-ssh-key',
                username=admin,
                key=config.admin_ssh_key,
            ), 'Install the admin SSH public key'),
            ('admin_config_dir', EnsureDirectoryAction(
                name='admin-config-dir',
                path=str(admin_home / '.config'),
                owner=admin_owner,
                mode=0o755,
            ), 'Create ~/.config for the admin user'),
            ('admin_fish_dir', EnsureDirectoryAction(
                name='admin-fish-dir',
                path=str(fish_dir),
                owner=admin_owner,
                mode=0o755,
            ), 'Create fish config directory'),
            ('admin_fish_config', WriteFileAction(
                name='admin-fish-config',
                path=str(fish_dir / 'config.fish'),
                template='config.fish.j2',
                owner=admin_owner,
                mode=0o644,
            ), 'Write fish shell configuration'),
            ('create_app_user', EnsureUserAction(
                name='app-user',
                username=config.app_user,
                comment='Application User',
                shell=config.shell,
            ), f'Create app user {config.app_user}'),
            ('backup_sshd_config', BackupFileAction(name='sshd-backup', path=SSHD_CONFIG),
             'Back up the original SSH configuration'),
            ('harden_ssh', WriteFileAction(
                name='sshd-config',
                path=SSHD_CONFIG,
                template='sshd_config.j2',
                mode=0o600,
                changed_key='sshd_config_changed',
            ), f'Deploy hardened SSH configuration (port {config.ssh_port})'),
            ('restart_ssh', ServiceAction(
                name='ssh-service',
                service='ssh',
                only_if='sshd_config_changed',
                validate_cmd=['sshd', '-t'],
            ), 'Enable and restart SSH'),
            ('configure_fail2ban', WriteFileAction(
                name='fail2ban-jail',
                path=JAIL_LOCAL,
                template='jail.local.j2',
                changed_key='fail2ban_changed',
            ), 'Configure fail2ban for SSH protection'),
            ('restart_fail2ban', ServiceAction(
                name='fail2ban-service',
                service='fail2ban',
                only_if='fail2ban_changed',
            ), 'Enable and restart fail2ban'),
            ('configure_firewall', ConfigureFirewallAction(
                name='ufw',
                rules=config.firewall_rules(),
            ), 'Configure UFW firewall'),
            ('lock_root_password', LockRootPasswordAction(name='lock-root'),
             'Lock the root password'),
            ('secure_file_permissions', SecurePermissionsAction(name='file-permissions'),
             'Set secure file permissions'),
            ('configure_unattended_upgrades', WriteFileAction(
                name='unattended-upgrades',
                path=UNATTENDED_UPGRADES,
                template='50unattended-upgrades.j2',
            ), 'Configure unattended security upgrades'),
            ('configure_auto_upgrades', WriteFileAction(
                name='auto-upgrades',
                path=AUTO_UPGRADES,
                template='20auto-upgrades.j2',
            ), 'Enable periodic APT upgrades'),
            ('check_ipv6', CheckIPv6Action(name='ipv6'),
             'Check IPv6 availability'),
        ]
