"""systemd service actions."""

import logging
import time
from dataclasses import dataclass
from typing import Optional

from common import ActionResult, run_command
from config import RunbookConfig

logger = logging.getLogger(__name__)


@dataclass
class ServiceAction:
    """Enable a service and restart it.

    When only_if names a context key, the restart happens only if that key
    is truthy (e.g. set by a WriteFileAction whose file changed). A missing
    key counts as changed so a skipped write phase never hides a restart.
    """
    name: str
    service: str
    restart: bool = True
    only_if: Optional[str] = None
    validate_cmd: Optional[list] = None  # e.g. ['sshd', '-t']
    timeout: int = 120

    def plan(self, _config: RunbookConfig) -> list[str]:
        planned = [f"systemctl enable {self.service}"]
        if self.restart:
            when = " (only if its configuration changed)" if self.only_if else ""
            planned.append(f"systemctl restart {self.service}{when}")
        return planned

    def run(self, _config: RunbookConfig, context: dict) -> ActionResult:
        """Enable, validate and restart the service."""
        start = time.time()

        rc, _, err = run_command(['systemctl', 'enable', self.service], timeout=self.timeout)
        if rc != 0:
            return ActionResult(
                success=False,
                message=f"Failed to enable {self.service}: {err.strip()}",
                duration=time.time() - start
            )

        if not self.restart:
            return ActionResult(
                success=True,
                message=f"Enabled {self.service}",
                duration=time.time() - start
            )

        if self.only_if and not context.get(self.only_if, True):
            logger.info(f"[{self.name}] {self.service} configuration unchanged, not restarting")
            return ActionResult(
                success=True,
                message=f"{self.service} enabled, restart not needed",
                duration=time.time() - start
            )

        if self.validate_cmd:
            rc, out, err = run_command(list(self.validate_cmd), timeout=self.timeout)
            if rc != 0:
                return ActionResult(
                    success=False,
                    message=f"{' '.join(self.validate_cmd)} failed, not restarting {self.service}: "
                            f"{(err or out).strip()}",
                    duration=time.time() - start
                )

        logger.info(f"[{self.name}] Restarting {self.service}")
        rc, _, err = run_command(['systemctl', 'restart', self.service], timeout=self.timeout)
        if rc != 0:
            return ActionResult(
                success=False,
                message=f"Failed to restart {self.service}: {err.strip()}",
                duration=time.time() - start
            )

        return ActionResult(
            success=True,
            message=f"Enabled and restarted {self.service}",
            duration=time.time() - start,
            changes=[f"restarted {self.service}"]
        )
