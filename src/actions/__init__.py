"""Reusable installation actions."""

from actions.file import (
    BackupFileAction,
    EnsureDirectoryAction,
    FileSyncError,
    WriteFileAction,
    backup_file,
    ensure_directory,
    sync_file,
)
from actions.packages import InstallPackagesAction, UpdateSystemAction
from actions.users import (
    AuthorizedKeyAction,
    EnsureUserAction,
    LockRootPasswordAction,
    SudoersAction,
)
from actions.services import ServiceAction
from actions.firewall import ConfigureFirewallAction
from actions.system import CheckIPv6Action, SecurePermissionsAction, SysctlAction

__all__ = [
    'BackupFileAction',
    'EnsureDirectoryAction',
    'FileSyncError',
    'WriteFileAction',
    'backup_file',
    'ensure_directory',
    'sync_file',
    'InstallPackagesAction',
    'UpdateSystemAction',
    'AuthorizedKeyAction',
    'EnsureUserAction',
    'LockRootPasswordAction',
    'SudoersAction',
    'ServiceAction',
    'ConfigureFirewallAction',
    'CheckIPv6Action',
    'SecurePermissionsAction',
    'SysctlAction',
]
