"""Unit definitions and orchestration.

A unit is an ordered list of phases; each phase pairs a name with an
action whose run(config, context) returns an ActionResult. Units run
phases strictly in sequence and stop at the first failure. Actions may
also offer plan(config), a read-only look at what run() would change,
which is what a dry run prints.
"""

import logging
import socket
import sys
import time
from pathlib import Path
from typing import Any, Optional, Protocol, TextIO, runtime_checkable

from actions.file import FileSyncError
from common import ActionResult
from config import RunbookConfig
from reporting import InstallReport

logger = logging.getLogger(__name__)


@runtime_checkable
class Unit(Protocol):
    """Protocol for unit definitions.

    Class attributes:
        name: Unit identifier used on the command line (e.g. 'base')
        description: One-line summary for `runbook units`
        requires_root: Preflight insists on euid 0 when True
        expected_runtime: Rough runtime in seconds for `runbook units`
    """
    name: str
    description: str
    requires_root: bool

    def get_phases(self, config: RunbookConfig) -> list[tuple[str, Any, str]]:
        """Return list of (phase_name, action, description) tuples."""
        ...


class Orchestrator:
    """Applies one unit to this host and records an InstallReport."""

    def __init__(
        self,
        unit: Unit,
        config: RunbookConfig,
        report_dir: Optional[Path],
        skip_phases: Optional[list[str]] = None,
        timeout: Optional[int] = None,
        dry_run: bool = False,
        out: Optional[TextIO] = None
    ):
        self.unit = unit
        self.config = config
        self.report_dir = Path(report_dir) if report_dir else None
        self.skip_phases = set(skip_phases or [])
        self.timeout = timeout  # seconds for the whole unit, checked between phases
        self.dry_run = dry_run
        self.out = out if out is not None else sys.stdout  # dry-run plan output
        self.report = InstallReport(unit=unit.name, host=socket.gethostname(), dry_run=dry_run)
        self.context: dict[str, Any] = {}

    def _plan(self, action) -> list[str]:
        plan = getattr(action, 'plan', None)
        if plan is None:
            return []
        try:
            return plan(self.config)
        except (OSError, FileSyncError) as e:
            return [f"(cannot inspect: {e})"]

    def preview(self) -> bool:
        """Print what each phase would change. Reads the host, writes nothing."""
        def emit(line=''):
            print(line, file=self.out)

        emit()
        emit(f"Dry run of unit '{self.unit.name}' on {self.report.host}")
        emit("-" * 60)

        for name, action, description in self.unit.get_phases(self.config):
            if name in self.skip_phases:
                emit(f"  skip  {name}: {description}")
                self.report.record_skip(name, description)
                continue

            planned = self._plan(action)
            emit(f"  {'change' if planned else 'ok':<6}{name}: {description}")
            for change in planned:
                emit(f"          + {change}")
            self.report.record_plan(name, description, planned)

        counts = self.report.counts()
        changing = sum(1 for p in self.report.phases if p.status == 'planned' and p.changes)
        emit("-" * 60)
        emit(f"{changing} phase(s) would change the host, "
             f"{counts.get('skipped', 0)} skipped. Nothing was changed.")
        if self.timeout:
            emit(f"Unit timeout: {self.timeout}s")
        emit()

        self.report.complete(True)
        return True

    def _run_phase(self, name: str, action, description: str) -> ActionResult:
        logger.info(f"Phase {name}: {description}")
        try:
            result = action.run(self.config, self.context)
        except Exception as e:  # pylint: disable=broad-except
            logger.exception(f"Phase {name} raised an exception")
            result = ActionResult(success=False, message=str(e))

        outcome = self.report.record(name, description, result)
        if result.success:
            self.context.update(result.context_updates or {})
            for change in outcome.changes:
                logger.info(f"  changed: {change}")
            logger.info(f"Phase {name} {outcome.status}: {result.message}")
        else:
            logger.error(f"Phase {name} failed: {result.message}")
        return result

    def _prepare_report_dir(self):
        if self.report_dir is None:
            return
        try:
            self.report_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning(f"Cannot create report directory {self.report_dir}: {e}; no report files")
            self.report_dir = None

    def _save_report(self):
        if self.report_dir is None:
            return
        try:
            paths = self.report.write(self.report_dir)
        except OSError as e:
            logger.warning(f"Cannot write report to {self.report_dir}: {e}")
            return
        logger.info(f"Report: {paths[0]}")

    def run(self) -> bool:
        """Apply all phases. Returns True if none failed."""
        if self.dry_run:
            return self.preview()

        deadline = time.monotonic() + self.timeout if self.timeout else None
        logger.info(f"Installing unit '{self.unit.name}'"
                    + (f" (timeout: {self.timeout}s)" if self.timeout else ""))
        self._prepare_report_dir()
        self.report.begin()

        ok = True
        for name, action, description in self.unit.get_phases(self.config):
            if name in self.skip_phases:
                logger.info(f"Skipping phase: {name}")
                self.report.record_skip(name, description)
                continue

            if deadline is not None and time.monotonic() >= deadline:
                message = f"Unit timeout of {self.timeout}s reached before this phase"
                logger.error(f"Phase {name} not started: {message}")
                self.report.record_failure(name, description, message)
                ok = False
                break

            result = self._run_phase(name, action, description)
            if not result.success:
                ok = False
                if not result.continue_on_failure:
                    break

        self.report.complete(ok)
        changed = len(self.report.changes)
        if ok:
            logger.info(f"✓ Unit '{self.unit.name}' done in {self.report.duration:.1f}s, {changed} change(s)")
        else:
            logger.error(f"✗ Unit '{self.unit.name}' failed after {self.report.duration:.1f}s, "
                         f"{changed} change(s) made before the failure")
        self._save_report()
        return ok


# name -> unit class, in registration order (= --all install order)
_registry: dict[str, type] = {}


def register_unit(cls: type) -> type:
    """Class decorator making a unit available on the command line."""
    if cls.name in _registry:
        raise ValueError(f"Unit name already registered: {cls.name}")
    _registry[cls.name] = cls
    return cls


def list_units() -> list[str]:
    return list(_registry)


def get_unit(name: str) -> Unit:
    """Instantiate a registered unit by name."""
    try:
        return _registry[name]()
    except KeyError:
        raise ValueError(f"Unknown unit: {name}. Available: {list_units()}") from None


from units import base  # noqa: E402, F401
from units import podman  # noqa: E402, F401
