"""Host-level checks and settings."""

import logging
import os
import stat
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from common import ActionResult, run_command
from config import RunbookConfig

logger = logging.getLogger(__name__)

SECURE_PERMISSIONS = {
    '/etc/passwd': 0o644,
    '/etc/shadow': 0o640,
    '/etc/group': 0o644,
    '/etc/gshadow': 0o640,
    '/etc/ssh/sshd_config': 0o600,
}


@dataclass
class SecurePermissionsAction:
    """Reset modes on account and SSH files."""
    name: str
    permissions: dict = field(default_factory=lambda: dict(SECURE_PERMISSIONS))

    def _wrong_modes(self) -> dict:
        return {
            path: mode for path, mode in self.permissions.items()
            if Path(path).exists() and stat.S_IMODE(os.stat(path).st_mode) != mode
        }

    def plan(self, _config: RunbookConfig) -> list[str]:
        return [f"chmod {mode:o} {path}" for path, mode in self._wrong_modes().items()]

    def run(self, _config: RunbookConfig, _context: dict) -> ActionResult:
        start = time.time()
        for path in self.permissions:
            if not Path(path).exists():
                logger.warning(f"[{self.name}] {path} not found, skipping")

        changes = []
        for path, mode in self._wrong_modes().items():
            try:
                os.chmod(path, mode)
            except OSError as e:
                return ActionResult(
                    success=False,
                    message=f"Failed to chmod {mode:o} {path}: {e}",
                    duration=time.time() - start
                )
            changes.append(f"chmod {mode:o} {path}")

        return ActionResult(
            success=True,
            message=f"File permissions secured ({len(changes)} changed)",
            duration=time.time() - start,
            changes=changes
        )


@dataclass
class CheckIPv6Action:
    """Report whether IPv6 is available. Never fails."""
    name: str
    inet6_path: str = '/proc/net/if_inet6'

    def plan(self, _config: RunbookConfig) -> list[str]:
        return []

    def run(self, _config: RunbookConfig, _context: dict) -> ActionResult:
        start = time.time()
        available = Path(self.inet6_path).exists()
        if available:
            logger.info(f"[{self.name}] IPv6 is enabled and available")
        else:
            logger.warning(f"[{self.name}] IPv6 is not available on this system")
        return ActionResult(
            success=True,
            message="IPv6 available" if available else "IPv6 not available",
            duration=time.time() - start,
            context_updates={'ipv6_available': available}
        )


@dataclass
class SysctlAction:
    """Reload sysctl settings from /etc/sysctl.d."""
    name: str
    only_if: Optional[str] = None

    def plan(self, _config: RunbookConfig) -> list[str]:
        return ["sysctl --system" + (" (only if the drop-in changed)" if self.only_if else "")]

    def run(self, _config: RunbookConfig, context: dict) -> ActionResult:
        start = time.time()
        if self.only_if and not context.get(self.only_if, True):
            return ActionResult(
                success=True,
                message="sysctl settings unchanged",
                duration=time.time() - start
            )

        rc, _, err = run_command(['sysctl', '--system'], timeout=60)
        if rc != 0:
            return ActionResult(
                success=False,
                message=f"sysctl --system failed: {err.strip()}",
                duration=time.time() - start
            )
        return ActionResult(
            success=True,
            message="sysctl settings applied",
            duration=time.time() - start,
            changes=["sysctl --system"]
        )
