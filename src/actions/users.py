"""User account actions."""

import grp
import logging
import pwd
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from actions.file import FileSyncError, ensure_directory, needs_sync, sync_file
from common import ActionResult, run_command
from config import SSH_KEY_TYPES, RunbookConfig
from render import render_template

logger = logging.getLogger(__name__)

SUDOERS_DIR = Path('/etc/sudoers.d')


def user_exists(username: str) -> bool:
    """Check if a local account exists."""
    try:
        pwd.getpwnam(username)
        return True
    except KeyError:
        return False


def home_dir(username: str) -> Path:
    """Home directory of a user, falling back to /home/<user>."""
    try:
        return Path(pwd.getpwnam(username).pw_dir)
    except KeyError:
        return Path('/home') / username


def _in_group(username: str, group: str) -> bool:
    try:
        return username in grp.getgrnam(group).gr_mem
    except KeyError:
        return False


def key_identity(line: str) -> Optional[tuple[str, str]]:
    """(type, blob) of the public key in an authorized_keys line.

    Options before the key type and the trailing comment are ignored, so
    the same key matches however it was annotated. Returns None for
    blank lines, comments and lines without a known key type.
    """
    if line.lstrip().startswith('#'):
        return None
    fields = line.split()
    for i, token in enumerate(fields[:-1]):
        if token in SSH_KEY_TYPES:
            return token, fields[i + 1]
    return None


def key_authorized(existing: str, key: str) -> bool:
    """Check whether key is already listed in authorized_keys content."""
    wanted = key_identity(key)
    if wanted is None:
        return key.strip() in (line.strip() for line in existing.splitlines())
    return any(key_identity(line) == wanted for line in existing.splitlines())


def visudo_check(path: Path) -> Optional[str]:
    """Return visudo's complaint about a sudoers file, or None if valid."""
    rc, out, err = run_command(['visudo', '-cf', str(path)], timeout=30)
    if rc != 0:
        return (err or out).strip() or f"visudo exited with {rc}"
    return None


@dataclass
class EnsureUserAction:
    """Create a user with a home directory if missing, and add it to groups."""
    name: str
    username: str
    comment: str = ''
    shell: str = '/bin/bash'
    groups: list = field(default_factory=list)

    def plan(self, _config: RunbookConfig) -> list[str]:
        planned = [] if user_exists(self.username) else [f"useradd {self.username} (shell {self.shell})"]
        planned += [f"add {self.username} to {group}" for group in self.groups
                    if not _in_group(self.username, group)]
        return planned

    def run(self, _config: RunbookConfig, _context: dict) -> ActionResult:
        """Create the account and group memberships."""
        start = time.time()
        changes = []
        created = False

        if user_exists(self.username):
            logger.info(f"[{self.name}] User '{self.username}' already exists")
        else:
            logger.info(f"[{self.name}] Creating user: {self.username}")
            cmd = ['useradd', '-m', '-s', self.shell]
            if self.comment:
                cmd += ['-c', self.comment]
            cmd.append(self.username)
            rc, _, err = run_command(cmd, timeout=60)
            if rc != 0:
                return ActionResult(
                    success=False,
                    message=f"Failed to create user '{self.username}': {err.strip()}",
                    duration=time.time() - start
                )
            changes.append(f"created user {self.username}")
            created = True

        for group in self.groups:
            if _in_group(self.username, group):
                continue
            logger.info(f"[{self.name}] Adding {self.username} to group {group}")
            rc, _, err = run_command(['usermod', '-aG', group, self.username], timeout=60)
            if rc != 0:
                return ActionResult(
                    success=False,
                    message=f"Failed to add '{self.username}' to group '{group}': {err.strip()}",
                    duration=time.time() - start,
                    changes=changes
                )
            changes.append(f"added {self.username} to {group}")

        return ActionResult(
            success=True,
            message=f"Created user {self.username}" if created else f"User {self.username} exists",
            duration=time.time() - start,
            changes=changes
        )


@dataclass
class SudoersAction:
    """Grant passwordless sudo through a validated /etc/sudoers.d drop-in.

    The new drop-in is checked with visudo before it replaces the old
    one, so a rejected file never reaches /etc/sudoers.d.
    """
    name: str
    username: str
    sudoers_dir: Path = SUDOERS_DIR

    @property
    def path(self) -> Path:
        return Path(self.sudoers_dir) / self.username

    def _content(self) -> str:
        return render_template('sudoers.j2', username=self.username)

    def plan(self, _config: RunbookConfig) -> list[str]:
        if needs_sync(self.path, self._content()):
            return [f"write {self.path} (root:root, 440, checked by visudo)"]
        return []

    def run(self, _config: RunbookConfig, _context: dict) -> ActionResult:
        start = time.time()

        try:
            changed = sync_file(
                self.path, self._content(), owner='root:root', mode=0o440, validate=visudo_check
            )
        except FileSyncError as e:
            return ActionResult(success=False, message=str(e), duration=time.time() - start)

        if changed:
            logger.info(f"[{self.name}] Configured passwordless sudo for {self.username}")

        return ActionResult(
            success=True,
            message=f"Sudo configured for {self.username}",
            duration=time.time() - start,
            changes=[str(self.path)] if changed else []
        )


@dataclass
class AuthorizedKeyAction:
    """Make sure an SSH public key is in a user's authorized_keys."""
    name: str
    username: str
    key: str
    home: Optional[Path] = None

    def _auth_keys(self) -> Path:
        return Path(self.home or home_dir(self.username)) / '.ssh' / 'authorized_keys'

    def _existing(self) -> str:
        auth_keys = self._auth_keys()
        return auth_keys.read_text(encoding='utf-8') if auth_keys.is_file() else ''

    def plan(self, _config: RunbookConfig) -> list[str]:
        if key_authorized(self._existing(), self.key):
            return []
        return [f"add key to {self._auth_keys()}"]

    def run(self, _config: RunbookConfig, _context: dict) -> ActionResult:
        start = time.time()
        owner = f"{self.username}:{self.username}"
        auth_keys = self._auth_keys()
        key = self.key.strip()

        try:
            ensure_directory(auth_keys.parent, owner=owner, mode=0o700)

            existing = self._existing()
            if key_authorized(existing, key):
                logger.info(f"[{self.name}] SSH key already configured for {self.username}")
                return ActionResult(
                    success=True,
                    message=f"SSH key already present for {self.username}",
                    duration=time.time() - start
                )

            logger.info(f"[{self.name}] Adding SSH key for {self.username}")
            if existing and not existing.endswith('\n'):
                existing += '\n'
            sync_file(auth_keys, existing + key + '\n', owner=owner, mode=0o600)
        except (FileSyncError, OSError) as e:
            return ActionResult(success=False, message=str(e), duration=time.time() - start)

        return ActionResult(
            success=True,
            message=f"Added SSH key for {self.username}",
            duration=time.time() - start,
            changes=[str(auth_keys)]
        )


@dataclass
class LockRootPasswordAction:
    """Lock the root password. Root stays reachable through sudo."""
    name: str

    def plan(self, _config: RunbookConfig) -> list[str]:
        return ["passwd -l root"]

    def run(self, _config: RunbookConfig, _context: dict) -> ActionResult:
        start = time.time()
        rc, _, err = run_command(['passwd', '-l', 'root'], timeout=30)
        if rc != 0:
            logger.warning(f"[{self.name}] Failed to lock root password (may already be locked): {err.strip()}")
            return ActionResult(
                success=True,
                message="Root password not locked (may already be locked)",
                duration=time.time() - start
            )

        logger.info(f"[{self.name}] Root password locked (accessible via sudo only)")
        return ActionResult(
            success=True,
            message="Root password locked",
            duration=time.time() - start,
            changes=["locked root password"]
        )
