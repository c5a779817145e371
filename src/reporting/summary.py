"""End-of-run summary shown after all units finish."""

from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

from config import RunbookConfig

RULE = "=" * 40


def format_summary(
    config: RunbookConfig,
    units: list[str],
    log_file: Optional[Path],
    server_ip: str,
    skipped: Iterable[str] = (),
) -> list[tuple[str, str]]:
    """Build the completion summary as (level, line) pairs.

    Levels are 'info' or 'warning' so the caller can log each line at
    the right level. Notes about SSH and the firewall are left out when
    the phase that applies them was skipped.
    """
    skipped = set(skipped)
    lines = [
        ('info', RULE),
        ('info', "Installation Complete!"),
        ('info', RULE),
        ('info', f"Installed units: {', '.join(units)}"),
        ('info', f"Log file: {log_file if log_file else '(console only)'}"),
        ('info', f"Installation time: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}"),
        ('info', ""),
    ]

    if 'base' not in units:
        return lines

    ssh_hardened = 'harden_ssh' not in skipped
    notes = []
    if ssh_hardened:
        notes += [
            f"SSH is now on port {config.ssh_port}",
            "Password authentication is disabled",
            "Root login is disabled",
        ]
    if 'configure_firewall' not in skipped:
        allowed = ', '.join(r.port_proto for r in config.firewall_rules())
        notes.append(f"Firewall is active ({allowed})")

    if notes:
        lines.append(('warning', "IMPORTANT: Review the following before disconnecting:"))
        lines.extend(('info', f"  {i}. {note}") for i, note in enumerate(notes, 1))
        lines.append(('info', ""))
        lines.append(('warning', "CRITICAL: Test SSH in a new terminal before closing this session!"))
        lines.append(('info', ""))

    lines.extend([
        ('info', f"Server IP: {server_ip}"),
        ('info', ""),
        ('info', "SSH Connection Command:"),
        ('info', f"  {connection_command(config, server_ip, custom_port=ssh_hardened)}"),
        ('info', ""),
    ])
    return lines


def connection_command(config: RunbookConfig, server_ip: str, custom_port: bool = True) -> str:
    """SSH command for logging in as the admin user.

    Without custom_port the SSH daemon still listens on its old port, so
    no -p is given.
    """
    if custom_port:
        return f"ssh -p {config.ssh_port} {config.admin_user}@{server_ip}"
    return f"ssh {config.admin_user}@{server_ip}"
