#!/usr/bin/env python3
"""CLI entry point for runbook.

Commands:
- install: Apply units to this host (runbook install base)
- units: List available units
- preflight: Check readiness without changing anything
- config: Show or validate the installer configuration
"""

import argparse
import json
import logging
import socket
import subprocess
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

import yaml

from common import get_primary_ip
from config import ConfigError, RunbookConfig, load_config
from reporting import format_summary
from units import Orchestrator, get_unit, list_units
from validation import format_preflight_results, run_preflight_checks, validate_readiness

COMMANDS = {
    "install": "Apply units to this host",
    "units": "List available units",
    "preflight": "Run preflight checks only",
    "config": "Show or validate configuration (show/validate)",
}

DEFAULT_REPORT_DIR = Path('/var/log/runbook')

LOG_FORMAT = '%(asctime)s [%(levelname)s] %(message)s'
LOG_DATEFMT = '%Y-%m-%d %H:%M:%S'

# Configure logging
logging.basicConfig(level=logging.INFO, format=LOG_FORMAT, datefmt=LOG_DATEFMT)
logger = logging.getLogger(__name__)


def get_version():
    """Get version from git tags, falling back to 'dev'."""
    try:
        result = subprocess.run(
            ['git', 'describe', '--tags', '--abbrev=0'],
            capture_output=True, text=True,
            cwd=Path(__file__).parent,
            check=False,
        )
        return result.stdout.strip() if result.returncode == 0 else 'dev'
    except OSError:
        return 'dev'


def print_usage():
    """Print top-level usage."""
    print(f"runbook {get_version()}")
    print()
    print("Usage: runbook <command> [options]")
    print()
    print("Commands:")
    for command, desc in COMMANDS.items():
        print(f"  {command:<12} {desc}")
    print()
    print("Run 'runbook <command> --help' for command-specific options.")
    print()
    print("Examples:")
    print("  sudo runbook install base              # Base hardening only")
    print("  sudo runbook install --all             # Everything")
    print("  sudo runbook install base --dry-run    # Preview phases")
    print("  runbook config validate -c runbook.yaml")


def _log_to_stderr():
    """Route all log output to stderr so stdout carries only JSON."""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        if isinstance(handler, logging.StreamHandler) and not isinstance(handler, logging.FileHandler):
            root_logger.removeHandler(handler)
    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT))
    root_logger.addHandler(stderr_handler)


def add_log_file(log_dir: Path) -> Optional[Path]:
    """Tee log output to <log_dir>/server-install-<timestamp>.log.

    Returns:
        Path of the log file, or None if it could not be opened
    """
    log_file = Path(log_dir) / f"server-install-{datetime.now().strftime('%Y%m%d-%H%M%S')}.log"
    try:
        handler = logging.FileHandler(log_file, encoding='utf-8')
    except OSError as e:
        logger.warning(f"Cannot write log file {log_file}: {e}; logging to console only")
        return None
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT))
    logging.getLogger().addHandler(handler)
    return log_file


def _load_config(path: Optional[Path]) -> tuple[Optional[RunbookConfig], Optional[int]]:
    """Load configuration, printing the error on failure."""
    try:
        return load_config(path), None
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return None, 1


def resolve_units(names: list[str], install_all: bool) -> tuple[list, Optional[str]]:
    """Turn unit names into unit instances.

    Order follows the command line; repeated names are ignored.

    Returns:
        (units, error): error is None on success
    """
    available = list_units()
    if install_all:
        return [get_unit(name) for name in available], None

    if not names:
        return [], "No units specified"

    requested = []
    for name in names:
        if name not in available:
            return [], f"Unknown unit: {name}\nAvailable units: {', '.join(available)}"
        if name not in requested:
            requested.append(name)
    return [get_unit(name) for name in requested], None


def install_main(argv: list) -> int:
    """CLI entry point for 'install'.

    Returns:
        Exit code (0=success, 1=error)
    """
    parser = argparse.ArgumentParser(
        prog='runbook install',
        description='Apply installation units to this host',
    )
    parser.add_argument('units', nargs='*', metavar='UNIT',
                        help=f"Units to install (available: {', '.join(list_units())})")
    parser.add_argument('--all', action='store_true', help='Install all available units')
    parser.add_argument('--config', '-c', type=Path, help='Path to runbook.yaml')
    parser.add_argument('--skip', '-s', action='append', default=[],
                        help='Phases to skip (can be repeated)')
    parser.add_argument('--dry-run', action='store_true',
                        help='Show what would be executed without making changes')
    parser.add_argument('--list-phases', action='store_true',
                        help='List phases for the selected units and exit')
    parser.add_argument('--skip-preflight', action='store_true',
                        help='Skip preflight checks before installing')
    parser.add_argument('--report-dir', '-r', type=Path, default=DEFAULT_REPORT_DIR,
                        help=f'Directory for install reports (default: {DEFAULT_REPORT_DIR})')
    parser.add_argument('--timeout', '-t', type=int,
                        help='Per-unit timeout in seconds. Checked between phases.')
    parser.add_argument('--json-output', action='store_true',
                        help='Output structured JSON to stdout (logs go to stderr)')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable verbose logging')

    args = parser.parse_args(argv)

    if args.json_output:
        _log_to_stderr()
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    units, error = resolve_units(args.units, args.all)
    if error:
        print(f"Error: {error}", file=sys.stderr)
        print("Use --help for usage information", file=sys.stderr)
        print("Example: sudo runbook install base", file=sys.stderr)
        return 1

    config, exit_code = _load_config(args.config)
    if config is None:
        return exit_code or 1

    if args.list_phases:
        for unit in units:
            print(f"Phases for unit '{unit.name}':")
            for name, _action, desc in unit.get_phases(config):
                print(f"  {name}: {desc}")
        return 0

    known_phases = {name for unit in units for name, _a, _d in unit.get_phases(config)}
    unknown_skips = [phase for phase in args.skip if phase not in known_phases]
    if unknown_skips:
        print(f"Error: Unknown phase(s) for --skip: {', '.join(unknown_skips)}", file=sys.stderr)
        return 1

    if not args.skip_preflight and not args.dry_run:
        errors = validate_readiness(config, units)
        if errors:
            print("\nPre-flight validation failed:", file=sys.stderr)
            for error in errors:
                for i, line in enumerate(error.split('\n')):
                    prefix = "  ✗ " if i == 0 else "    "
                    print(f"{prefix}{line}", file=sys.stderr)
            print("\nUse --skip-preflight to bypass these checks\n", file=sys.stderr)
            return 1
        logger.info("Pre-flight checks passed")

    unit_names = [unit.name for unit in units]
    log_file = None if args.dry_run else add_log_file(config.log_dir)

    if not args.dry_run:
        logger.info("========================================")
        logger.info("Server Installation Starting")
        logger.info("========================================")
        logger.info(f"Hostname: {socket.gethostname()}")
        logger.info(f"Units to install: {', '.join(unit_names)}")
        logger.info(f"Log file: {log_file if log_file else '(console only)'}")

    success = True
    unit_reports = []
    for unit in units:
        orchestrator = Orchestrator(
            unit=unit,
            config=config,
            report_dir=args.report_dir,
            skip_phases=args.skip,
            timeout=args.timeout,
            dry_run=args.dry_run,
            out=sys.stderr if args.json_output else sys.stdout,
        )
        if not orchestrator.run():
            success = False
        unit_reports.append(orchestrator.report.to_dict())
        if not success:
            logger.error(f"Installation failed in unit '{unit.name}'")
            if log_file:
                logger.error(f"Check log file for details: {log_file}")
            break

    if args.json_output:
        print(json.dumps({
            'success': success,
            'dry_run': args.dry_run,
            'units': unit_reports,
            'log_file': str(log_file) if log_file else None,
        }, indent=2))

    if success and not args.dry_run:
        for level, line in format_summary(config, unit_names, log_file, get_primary_ip(), skipped=args.skip):
            getattr(logger, level)(line)

    return 0 if success else 1


def units_main(argv: list) -> int:
    """CLI entry point for 'units': list available units."""
    parser = argparse.ArgumentParser(prog='runbook units', description='List available units')
    parser.parse_args(argv)

    print("Available units:")
    for name in list_units():
        unit = get_unit(name)
        runtime = getattr(unit, 'expected_runtime', None)
        if runtime:
            # e.g. 30 -> "~30s", 540 -> "~9m"
            runtime_str = f"~{runtime // 60}m" if runtime >= 60 else f"~{runtime}s"
            print(f"  {name:12} {runtime_str:>6}  {unit.description}")
        else:
            print(f"  {name:12}         {unit.description}")
    print("\nUsage: sudo runbook install <unit>... | --all")
    return 0


def preflight_main(argv: list) -> int:
    """CLI entry point for 'preflight'."""
    parser = argparse.ArgumentParser(prog='runbook preflight', description='Run preflight checks')
    parser.add_argument('--config', '-c', type=Path, help='Path to runbook.yaml')
    args = parser.parse_args(argv)

    config = None
    config_error = None
    try:
        config = load_config(args.config)
    except ConfigError as e:
        config_error = str(e)

    success, results = run_preflight_checks(config, config_error=config_error)
    print(format_preflight_results(socket.gethostname(), results))
    return 0 if success else 1


def config_main(argv: list) -> int:
    """CLI dispatcher for 'config' (show/validate)."""
    if not argv or argv[0].startswith('-'):
        if argv and argv[0] not in ('-h', '--help'):
            print("Error: the action comes first, e.g. 'runbook config validate -c runbook.yaml'",
                  file=sys.stderr)
        print("Usage: runbook config <action> [options]")
        print()
        print("Actions:")
        print("  show      Print the resolved configuration (SSH key shortened)")
        print("  validate  Check configuration values")
        return 0 if argv and argv[0] in ('-h', '--help') else 1

    action = argv[0]
    if action not in ('show', 'validate'):
        print(f"Error: Unknown config action '{action}'")
        print("Available actions: show, validate")
        return 1

    parser = argparse.ArgumentParser(prog=f'runbook config {action}')
    parser.add_argument('--config', '-c', type=Path, help='Path to runbook.yaml')
    args = parser.parse_args(argv[1:])

    config, exit_code = _load_config(args.config)
    if config is None:
        return exit_code or 1

    if action == 'show':
        print(yaml.safe_dump(config.to_dict(), default_flow_style=False, sort_keys=False), end='')
        return 0

    errors = config.validate()
    if errors:
        print(f"Configuration invalid: {config.config_file}")
        for error in errors:
            for i, line in enumerate(error.split('\n')):
                prefix = "  ✗ " if i == 0 else "    "
                print(f"{prefix}{line}")
        return 1
    print(f"Configuration valid: {config.config_file}")
    return 0


def dispatch(command: str, argv: list) -> int:
    """Dispatch to command-specific handler."""
    if command == "install":
        return install_main(argv)
    if command == "units":
        return units_main(argv)
    if command == "preflight":
        return preflight_main(argv)
    if command == "config":
        return config_main(argv)

    print(f"Error: Unknown command '{command}'")
    print_usage()
    return 1


def main(argv: Optional[list] = None) -> int:
    """CLI entry point."""
    if argv is None:
        argv = sys.argv[1:]

    if not argv or argv[0] in ('--help', '-h'):
        print_usage()
        return 0

    if argv[0] in ('--version', '-V'):
        print(f"runbook {get_version()}")
        return 0

    try:
        return dispatch(argv[0], argv[1:])
    except KeyboardInterrupt:
        logger.error("Installation interrupted")
        return 130


if __name__ == '__main__':
    sys.exit(main())
