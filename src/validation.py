"""Pre-flight validation checks for units.

This module provides readiness checks that run before any unit executes,
catching configuration issues early with actionable error messages.
"""

import logging
import os
import socket
import sys
from pathlib import Path
from typing import Optional

from common import command_exists
from config import RunbookConfig

logger = logging.getLogger(__name__)

REQUIRED_PYTHON = (3, 9)

REQUIRED_COMMANDS = ('apt', 'dpkg', 'systemctl', 'useradd', 'usermod', 'passwd', 'visudo')

# Commands a minimal Debian install may lack, and the package providing them
COMMAND_PACKAGES = {'visudo': 'sudo'}


# -----------------------------------------------------------------------------
# Environment Validation
# -----------------------------------------------------------------------------

def validate_python_version(version: Optional[tuple] = None) -> list[str]:
    """Validate the interpreter is recent enough.

    Returns:
        List of validation error messages (empty if valid)
    """
    version = tuple(version or sys.version_info[:2])
    if version < REQUIRED_PYTHON:
        required = '.'.join(str(v) for v in REQUIRED_PYTHON)
        found = '.'.join(str(v) for v in version)
        return [f"Python {required}+ required, but you have {found}"]
    return []


def validate_root() -> list[str]:
    """Validate the process runs as root."""
    if os.geteuid() != 0:
        prog = Path(sys.argv[0]).name or 'runbook'
        return [
            "This installer must be run as root\n"
            f"  Try: sudo {prog} install <unit>"
        ]
    return []


def validate_required_commands(commands: tuple = REQUIRED_COMMANDS) -> list[str]:
    """Validate required system commands are on PATH."""
    errors = []
    for cmd in commands:
        if command_exists(cmd):
            continue
        error = f"Required command not found: {cmd}"
        if cmd in COMMAND_PACKAGES:
            error += f"\n  Install it with: apt install {COMMAND_PACKAGES[cmd]}"
        errors.append(error)
    return errors


def validate_config(config: RunbookConfig) -> list[str]:
    """Validate installer configuration values."""
    errors = config.validate()
    if errors and config.config_file:
        errors[-1] += f"\n  Edit: {config.config_file}"
    return errors


# -----------------------------------------------------------------------------
# Combined Checks
# -----------------------------------------------------------------------------

def validate_readiness(config: RunbookConfig, units: list) -> list[str]:
    """Run all checks needed before installing units.

    Args:
        config: Installer configuration
        units: Unit instances that are about to run

    Returns:
        List of validation error messages (empty if ready)
    """
    errors = []
    errors.extend(validate_python_version())

    if any(getattr(unit, 'requires_root', True) for unit in units):
        errors.extend(validate_root())

    errors.extend(validate_config(config))
    errors.extend(validate_required_commands())
    return errors


def run_preflight_checks(config: Optional[RunbookConfig],
                         config_error: Optional[str] = None) -> tuple[bool, dict]:
    """Run standalone preflight checks.

    Args:
        config: Loaded configuration, or None if loading failed
        config_error: Message explaining why the config could not be loaded

    Returns:
        (success, results) tuple where results contains check details
    """
    results: dict[str, dict[str, list[str]]] = {
        'environment': {'passed': [], 'failed': []},
        'configuration': {'passed': [], 'failed': []},
        'commands': {'passed': [], 'failed': []},
        'system': {'passed': [], 'failed': []},
    }

    python_errors = validate_python_version()
    if python_errors:
        results['environment']['failed'].extend(python_errors)
    else:
        results['environment']['passed'].append(
            f"Python {sys.version_info.major}.{sys.version_info.minor}"
        )

    root_errors = validate_root()
    if root_errors:
        results['environment']['failed'].extend(root_errors)
    else:
        results['environment']['passed'].append("Running as root")

    if config is None:
        results['configuration']['failed'].append(config_error or "Configuration not loaded")
    else:
        config_errors = validate_config(config)
        if config_errors:
            results['configuration']['failed'].extend(config_errors)
        else:
            results['configuration']['passed'].append(f"{config.config_file} valid")
            results['configuration']['passed'].append(
                f"Admin user: {config.admin_user}, app user: {config.app_user}, SSH port: {config.ssh_port}"
            )

    missing = validate_required_commands()
    results['commands']['failed'].extend(missing)
    present = [cmd for cmd in REQUIRED_COMMANDS if command_exists(cmd)]
    if present:
        results['commands']['passed'].append(f"Found: {', '.join(present)}")

    # Informational only
    os_release = Path('/etc/os-release')
    if os_release.exists():
        for line in os_release.read_text(encoding='utf-8').splitlines():
            if line.startswith('PRETTY_NAME='):
                results['system']['passed'].append(f"OS: {line.split('=', 1)[1].strip(chr(34))}")
                break
    if Path('/proc/net/if_inet6').exists():
        results['system']['passed'].append("IPv6 available")

    all_failed = []
    for category in results.values():
        all_failed.extend(category['failed'])

    return len(all_failed) == 0, results


def format_preflight_results(hostname: Optional[str], results: dict) -> str:
    """Format preflight check results for display.

    Args:
        hostname: Hostname that was checked
        results: Results dict from run_preflight_checks

    Returns:
        Formatted string for display
    """
    hostname = hostname or socket.gethostname()
    lines = [f"\nPreflight checks for local host '{hostname}':\n"]

    category_names = {
        'environment': 'Environment',
        'configuration': 'Configuration',
        'commands': 'Required commands',
        'system': 'System',
    }

    for key, name in category_names.items():
        category = results.get(key, {'passed': [], 'failed': []})
        if category['passed'] or category['failed']:
            lines.append(f"{name}:")
            for item in category['passed']:
                lines.append(f"✓ {item}")
            for item in category['failed']:
                first_line = item.split('\n')[0]
                lines.append(f"✗ {first_line}")
                for line in item.split('\n')[1:]:
                    lines.append(f"  {line}")
            lines.append("")

    all_passed = all(
        len(cat['failed']) == 0
        for cat in results.values()
    )

    if all_passed:
        lines.append("All checks passed. Ready to install.")
    else:
        lines.append("Some checks failed. Fix issues before installing.")

    return '\n'.join(lines)
