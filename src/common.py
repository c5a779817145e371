"""Common utilities and types for server installation."""

import logging
import re
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

_IPV4_RE = re.compile(r'inet (\d{1,3}(?:\.\d{1,3}){3})')


@dataclass
class ActionResult:
    """Result returned by an action.

    changes lists what the action altered on the host, one short line per
    change (e.g. '/etc/ssh/sshd_config', 'ufw allow 443/tcp'). An empty
    list means the host was already in the desired state.
    """
    success: bool
    message: str = ''
    duration: float = 0.0
    context_updates: dict = field(default_factory=dict)
    continue_on_failure: bool = False
    changes: list = field(default_factory=list)


def run_command(
    cmd: list[str],
    cwd: Optional[Path] = None,
    timeout: int = 600,
    capture: bool = True,
    env: Optional[dict] = None,
    input_text: Optional[str] = None
) -> tuple[int, str, str]:
    """Run a command and return (returncode, stdout, stderr)."""
    logger.debug(f"Running: {' '.join(cmd)}")
    try:
        result = subprocess.run(
            cmd,
            cwd=cwd,
            capture_output=capture,
            text=True,
            timeout=timeout,
            env=env,
            input=input_text,
            check=False  # We handle return codes explicitly
        )
        return result.returncode, result.stdout or '', result.stderr or ''
    except subprocess.TimeoutExpired:
        return -1, '', f'Command timed out after {timeout}s'
    except FileNotFoundError:
        return -1, '', f'Command not found: {cmd[0]}'
    except OSError as e:
        return -1, '', str(e)


def command_exists(name: str) -> bool:
    """Check whether an executable is on PATH."""
    return shutil.which(name) is not None


def _first_ipv4(output: str) -> Optional[str]:
    """Return the first non-loopback IPv4 address in `ip addr` output."""
    for ip in _IPV4_RE.findall(output):
        if not ip.startswith('127.'):
            return ip
    return None


def get_primary_ip() -> str:
    """Get the primary IPv4 address of this host.

    Resolution order:
    1. Address of the interface carrying the default route
    2. First address reported by `hostname -I`
    3. Any non-loopback IPv4 address

    Returns "unknown" when nothing is found.
    """
    if command_exists('ip'):
        rc, out, _ = run_command(['ip', 'route'], timeout=10)
        if rc == 0:
            for line in out.splitlines():
                parts = line.split()
                if parts and parts[0] == 'default' and 'dev' in parts:
                    iface = parts[parts.index('dev') + 1]
                    rc, addr_out, _ = run_command(['ip', '-4', 'addr', 'show', iface], timeout=10)
                    if rc == 0 and (ip := _first_ipv4(addr_out)):
                        return ip
                    break

    if command_exists('hostname'):
        rc, out, _ = run_command(['hostname', '-I'], timeout=10)
        if rc == 0 and out.split():
            return out.split()[0]

    rc, out, _ = run_command(['ip', '-4', 'addr', 'show'], timeout=10)
    if rc == 0 and (ip := _first_ipv4(out)):
        return ip

    return 'unknown'
