"""Idempotent file management actions.

Files are only rewritten when their content hash differs from the desired
content. New content goes to a temporary file in the target directory,
gets its owner and mode, and is then renamed over the target, so a failed
write never leaves a half-written or wrongly-owned file behind.
"""

import hashlib
import logging
import os
import shutil
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Union

from common import ActionResult
from config import RunbookConfig
from render import render_template

logger = logging.getLogger(__name__)


class FileSyncError(Exception):
    """Failed to write a managed file."""

    def __init__(self, path, message: str):
        super().__init__(f"{message}: {path}")
        self.path = path
        self.message = message


def content_hash(data: bytes) -> str:
    """Return the MD5 hex digest used for change detection."""
    return hashlib.md5(data).hexdigest()


def _parse_owner(owner: str) -> tuple[str, Optional[str]]:
    """Split 'user:group' notation. Group is None when omitted."""
    user, _, group = owner.partition(':')
    return user, group or None


def _encode(content: Union[str, bytes]) -> bytes:
    return content.encode('utf-8') if isinstance(content, str) else content


def needs_sync(path: Union[str, Path], content: Union[str, bytes]) -> bool:
    """True if path is missing or its content differs from content."""
    path = Path(path)
    if not path.is_file():
        return True
    try:
        existing = path.read_bytes()
    except OSError as e:
        raise FileSyncError(path, f"Failed to read existing file ({e})") from e
    return content_hash(existing) != content_hash(_encode(content))


def sync_file(
    path: Union[str, Path],
    content: Union[str, bytes],
    owner: str = 'root:root',
    mode: int = 0o644,
    validate: Optional[Callable[[Path], Optional[str]]] = None
) -> bool:
    """Write a file only if its content changed.

    Args:
        path: Target file
        content: Desired file content
        owner: 'user:group' or 'user'
        mode: Permission bits for the file
        validate: Called with the fully prepared temporary file before it
            replaces the target. Returns an error message to reject it.

    Returns:
        True if the file was created or updated, False if unchanged

    Raises:
        FileSyncError: On missing arguments, a rejected file, or any
            write/chown/chmod failure
    """
    if not path or not content:
        raise FileSyncError(path, "file path and content are required")

    path = Path(path)
    data = _encode(content)

    existed = path.is_file()
    if not needs_sync(path, data):
        logger.info(f"File unchanged (MD5 match): {path}")
        return False
    if existed:
        logger.info(f"File content changed, updating: {path}")
    else:
        logger.info(f"Creating new file: {path}")

    user, group = _parse_owner(owner)

    try:
        fd, tmp_name = tempfile.mkstemp(prefix=f'.{path.name}.', suffix='.tmp', dir=path.parent)
    except OSError as e:
        raise FileSyncError(path, f"Failed to write file ({e})") from e

    tmp = Path(tmp_name)
    step = "Failed to write file"
    try:
        with os.fdopen(fd, 'wb') as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())

        step = f"Failed to set ownership '{owner}'"
        shutil.chown(tmp, user=user, group=group)

        step = f"Failed to set permissions '{mode:o}'"
        os.chmod(tmp, mode)

        if validate:
            error = validate(tmp)
            if error:
                tmp.unlink(missing_ok=True)
                logger.error(f"Rejected new content for {path}: {error}")
                raise FileSyncError(path, f"Validation failed ({error})")

        step = "Failed to replace file"
        os.replace(tmp, path)
    except (OSError, LookupError) as e:
        tmp.unlink(missing_ok=True)
        logger.error(f"{step} on {path}: {e}")
        raise FileSyncError(path, f"{step} ({e})") from e

    return True


def ensure_directory(path: Union[str, Path], owner: str = 'root', mode: int = 0o755) -> bool:
    """Create a directory with owner and mode if it does not exist.

    Existing directories are left alone.

    Returns:
        True if the directory was created
    """
    path = Path(path)
    if path.is_dir():
        return False

    user, group = _parse_owner(owner)
    try:
        path.mkdir(parents=True, exist_ok=True)
        shutil.chown(path, user=user, group=group)
        os.chmod(path, mode)
    except (OSError, LookupError) as e:
        raise FileSyncError(path, f"Failed to create directory ({e})") from e

    logger.info(f"Created directory: {path}")
    return True


def backup_file(path: Union[str, Path], suffix: str = '.backup') -> bool:
    """Copy a file to <path><suffix> once. An existing backup is never overwritten.

    Returns:
        True if a backup was made
    """
    path = Path(path)
    backup = path.with_name(path.name + suffix)
    if not path.is_file() or backup.exists():
        return False
    try:
        shutil.copy2(path, backup)
    except OSError as e:
        raise FileSyncError(backup, f"Failed to back up {path} ({e})") from e
    logger.info(f"Backed up {path} to {backup}")
    return True


@dataclass
class WriteFileAction:
    """Render a template and sync it to a path."""
    name: str
    path: str
    template: str
    owner: str = 'root:root'
    mode: int = 0o644
    changed_key: Optional[str] = None  # context key set to True/False

    def _render(self, config: RunbookConfig) -> str:
        return render_template(self.template, **config.template_vars())

    def plan(self, config: RunbookConfig) -> list[str]:
        """Changes run() would make, without touching the file."""
        if not needs_sync(self.path, self._render(config)):
            return []
        verb = 'update' if Path(self.path).is_file() else 'create'
        return [f"{verb} {self.path} ({self.owner}, {self.mode:o})"]

    def run(self, config: RunbookConfig, _context: dict) -> ActionResult:
        """Render and write the file if it changed."""
        start = time.time()

        try:
            changed = sync_file(self.path, self._render(config), owner=self.owner, mode=self.mode)
        except FileSyncError as e:
            return ActionResult(
                success=False,
                message=str(e),
                duration=time.time() - start
            )

        context_updates = {}
        if self.changed_key:
            context_updates[self.changed_key] = changed

        return ActionResult(
            success=True,
            message=f"Updated {self.path}" if changed else f"{self.path} unchanged",
            duration=time.time() - start,
            context_updates=context_updates,
            changes=[self.path] if changed else []
        )


@dataclass
class EnsureDirectoryAction:
    """Create a directory if it is missing."""
    name: str
    path: str
    owner: str = 'root'
    mode: int = 0o755

    def plan(self, _config: RunbookConfig) -> list[str]:
        return [] if Path(self.path).is_dir() else [f"mkdir {self.path} ({self.owner}, {self.mode:o})"]

    def run(self, _config: RunbookConfig, _context: dict) -> ActionResult:
        start = time.time()
        try:
            created = ensure_directory(self.path, owner=self.owner, mode=self.mode)
        except FileSyncError as e:
            return ActionResult(success=False, message=str(e), duration=time.time() - start)

        return ActionResult(
            success=True,
            message=f"Created {self.path}" if created else f"{self.path} exists",
            duration=time.time() - start,
            changes=[self.path] if created else []
        )


@dataclass
class BackupFileAction:
    """Keep a one-time copy of a file before it is first replaced."""
    name: str
    path: str
    suffix: str = '.backup'

    @property
    def backup_path(self) -> str:
        return self.path + self.suffix

    def plan(self, _config: RunbookConfig) -> list[str]:
        if Path(self.path).is_file() and not Path(self.backup_path).exists():
            return [f"copy {self.path} to {self.backup_path}"]
        return []

    def run(self, _config: RunbookConfig, _context: dict) -> ActionResult:
        start = time.time()
        try:
            made = backup_file(self.path, suffix=self.suffix)
        except FileSyncError as e:
            return ActionResult(success=False, message=str(e), duration=time.time() - start)

        if made:
            message = f"Backed up {self.path}"
        else:
            message = f"No backup needed for {self.path}"
        return ActionResult(
            success=True,
            message=message,
            duration=time.time() - start,
            changes=[self.backup_path] if made else []
        )
