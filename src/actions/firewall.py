"""UFW firewall actions."""

import logging
import re
import time
from dataclasses import dataclass, field

from common import ActionResult, run_command
from config import FirewallRule, RunbookConfig

logger = logging.getLogger(__name__)


def _ufw_status() -> tuple[int, str, str]:
    return run_command(['ufw', 'status'], timeout=30)


def _ufw_added() -> str:
    """Rules added so far, listed even while ufw is inactive."""
    rc, out, _ = run_command(['ufw', 'show', 'added'], timeout=30)
    return out if rc == 0 else ''


def rule_present(status: str, rule: FirewallRule) -> bool:
    """Check whether ufw output already lists PORT/PROTO."""
    return re.search(rf'(?m)(^|\s){re.escape(rule.port_proto)}(\s|$)', status) is not None


@dataclass
class ConfigureFirewallAction:
    """Default-deny inbound firewall with explicit allow rules.

    Rules are added before the firewall is enabled, the SSH rule first,
    so enabling never cuts the current session.
    """
    name: str
    rules: list = field(default_factory=list)

    def plan(self, _config: RunbookConfig) -> list[str]:
        return ["ufw default deny incoming, allow outgoing"] + [
            f"ufw allow {rule.port_proto}" + (f" ({rule.comment})" if rule.comment else "")
            for rule in self.rules
        ]

    def run(self, _config: RunbookConfig, _context: dict) -> ActionResult:
        start = time.time()

        for policy in (['default', 'deny', 'incoming'], ['default', 'allow', 'outgoing']):
            rc, _, err = run_command(['ufw'] + policy, timeout=30)
            if rc != 0:
                return ActionResult(
                    success=False,
                    message=f"ufw {' '.join(policy)} failed: {err.strip()}",
                    duration=time.time() - start
                )

        rc, status, err = _ufw_status()
        if rc != 0:
            return ActionResult(
                success=False,
                message=f"ufw status failed: {err.strip()}",
                duration=time.time() - start
            )

        known = status + '\n' + _ufw_added()
        added = []
        for rule in self.rules:
            if rule_present(known, rule):
                continue
            logger.info(f"[{self.name}] Allowing {rule.comment or rule.port_proto} ({rule.port_proto})")
            cmd = ['ufw', 'allow', rule.port_proto]
            if rule.comment:
                cmd += ['comment', rule.comment]
            rc, _, err = run_command(cmd, timeout=30)
            if rc != 0:
                return ActionResult(
                    success=False,
                    message=f"Failed to allow {rule.port_proto}: {err.strip()}",
                    duration=time.time() - start
                )
            added.append(rule.port_proto)

        if 'Status: active' in status:
            logger.info(f"[{self.name}] Firewall already active, reloading rules")
            rc, _, err = run_command(['ufw', 'reload'], timeout=30)
        else:
            logger.info(f"[{self.name}] Enabling UFW firewall with rules in place")
            rc, _, err = run_command(['ufw', '--force', 'enable'], timeout=30)
        if rc != 0:
            return ActionResult(
                success=False,
                message=f"Failed to activate firewall: {err.strip()}",
                duration=time.time() - start
            )

        allowed = ', '.join(r.port_proto for r in self.rules)
        return ActionResult(
            success=True,
            message=f"Firewall active, allowing {allowed}",
            duration=time.time() - start,
            context_updates={'firewall_rules_added': added},
            changes=[f"ufw allow {port_proto}" for port_proto in added]
        )
