"""APT package actions."""

import logging
import os
import time
from dataclasses import dataclass, field

from common import ActionResult, run_command
from config import RunbookConfig

logger = logging.getLogger(__name__)


def _apt_env() -> dict:
    return {**os.environ, 'DEBIAN_FRONTEND': 'noninteractive'}


def package_installed(package: str) -> bool:
    """Check dpkg for an installed ('ii') entry."""
    rc, out, _ = run_command(['dpkg', '-l', package], timeout=30)
    if rc != 0:
        return False
    return any(line.startswith('ii') for line in out.splitlines())


@dataclass
class UpdateSystemAction:
    """Refresh package lists and apply all upgrades."""
    name: str
    timeout: int = 1800

    def plan(self, _config: RunbookConfig) -> list[str]:
        return ["apt update", "apt full-upgrade"]

    def run(self, _config: RunbookConfig, _context: dict) -> ActionResult:
        """Run apt update, full-upgrade and cleanup."""
        start = time.time()
        env = _apt_env()

        logger.info(f"[{self.name}] Updating package lists...")
        rc, _, err = run_command(['apt', 'update', '-qq'], timeout=300, env=env)
        if rc != 0:
            return ActionResult(
                success=False,
                message=f"apt update failed: {err.strip()}",
                duration=time.time() - start
            )

        logger.info(f"[{self.name}] Upgrading system packages (this may take several minutes)...")
        rc, _, err = run_command(['apt', 'full-upgrade', '-y', '-qq'], timeout=self.timeout, env=env)
        if rc != 0:
            return ActionResult(
                success=False,
                message=f"apt full-upgrade failed: {err.strip()}",
                duration=time.time() - start
            )

        logger.info(f"[{self.name}] Cleaning up package cache...")
        for cmd in (['apt', 'autoclean', '-y', '-qq'], ['apt', 'autoremove', '-y', '-qq']):
            rc, _, err = run_command(cmd, timeout=300, env=env)
            if rc != 0:
                logger.warning(f"[{self.name}] {' '.join(cmd[:2])} failed: {err.strip()}")

        return ActionResult(
            success=True,
            message="System update complete",
            duration=time.time() - start,
            changes=["apt full-upgrade"]
        )


@dataclass
class InstallPackagesAction:
    """Install packages that are not installed yet."""
    name: str
    packages: list = field(default_factory=list)
    timeout: int = 1200

    def plan(self, _config: RunbookConfig) -> list[str]:
        return [f"install {pkg}" for pkg in self.packages if not package_installed(pkg)]

    def run(self, _config: RunbookConfig, _context: dict) -> ActionResult:
        """Install missing packages in one apt transaction."""
        start = time.time()

        missing = [pkg for pkg in self.packages if not package_installed(pkg)]
        if not missing:
            logger.info(f"[{self.name}] All required packages already installed")
            return ActionResult(
                success=True,
                message="All required packages already installed",
                duration=time.time() - start
            )

        logger.info(f"[{self.name}] Installing packages: {' '.join(missing)}")
        rc, _, err = run_command(
            ['apt', 'install', '-y', '-qq'] + missing,
            timeout=self.timeout,
            env=_apt_env()
        )
        if rc != 0:
            return ActionResult(
                success=False,
                message=f"apt install failed: {err.strip()}",
                duration=time.time() - start
            )

        return ActionResult(
            success=True,
            message=f"Installed {len(missing)} packages",
            duration=time.time() - start,
            context_updates={'installed_packages': missing},
            changes=[f"installed {pkg}" for pkg in missing]
        )
