"""Install reports: what each unit changed on the host.

Every phase ends in one of these states:

    changed   the action altered the host (result.changes is non-empty)
    ok        the host was already in the desired state
    failed    the action failed, raised, or the unit ran out of time
    skipped   left out with --skip
    planned   dry run; changes holds what a real run would do
"""

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

from common import ActionResult

STATUS_MARKS = {
    'changed': '🔧',
    'ok': '✅',
    'failed': '❌',
    'skipped': '⏭️',
    'planned': '📝',
}


@dataclass
class PhaseOutcome:
    """How one phase went and what it changed."""
    name: str
    description: str
    status: str
    message: str = ''
    duration: float = 0.0
    changes: list = field(default_factory=list)


@dataclass
class InstallReport:
    """Outcome of one unit on one host."""
    unit: str
    host: str
    dry_run: bool = False
    phases: list[PhaseOutcome] = field(default_factory=list)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    success: bool = False

    def begin(self):
        self.started_at = datetime.now()

    def record(self, name: str, description: str, result: ActionResult) -> PhaseOutcome:
        """Record a finished phase from its ActionResult."""
        if not result.success:
            status = 'failed'
        elif result.changes:
            status = 'changed'
        else:
            status = 'ok'
        outcome = PhaseOutcome(
            name=name,
            description=description,
            status=status,
            message=result.message,
            duration=result.duration,
            changes=list(result.changes),
        )
        self.phases.append(outcome)
        return outcome

    def record_skip(self, name: str, description: str):
        self.phases.append(PhaseOutcome(name=name, description=description, status='skipped'))

    def record_failure(self, name: str, description: str, message: str):
        """Record a phase that failed without producing a result."""
        self.phases.append(PhaseOutcome(name=name, description=description, status='failed', message=message))

    def record_plan(self, name: str, description: str, planned: list[str]):
        self.phases.append(PhaseOutcome(name=name, description=description, status='planned', changes=list(planned)))

    def complete(self, success: bool):
        self.finished_at = datetime.now()
        self.success = success

    @property
    def duration(self) -> float:
        if self.finished_at and self.started_at:
            return (self.finished_at - self.started_at).total_seconds()
        return 0.0

    @property
    def changes(self) -> list[str]:
        """Every change made (or planned) in phase order."""
        return [change for phase in self.phases for change in phase.changes]

    @property
    def error(self) -> Optional[str]:
        for phase in self.phases:
            if phase.status == 'failed':
                return phase.message
        return None

    def counts(self) -> dict[str, int]:
        totals = {status: 0 for status in STATUS_MARKS}
        for phase in self.phases:
            totals[phase.status] += 1
        return {status: n for status, n in totals.items() if n}

    def to_dict(self) -> dict:
        """Report as a JSON-serializable dict (report file and --json-output)."""
        data = {
            'unit': self.unit,
            'host': self.host,
            'dry_run': self.dry_run,
            'success': self.success,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'duration_seconds': round(self.duration, 1),
            'counts': self.counts(),
            'changes': self.changes,
            'phases': [asdict(phase) for phase in self.phases],
        }
        if self.error is not None:
            data['error'] = self.error
        return data

    def to_markdown(self) -> str:
        verdict = 'PASSED' if self.success else 'FAILED'
        when = self.started_at.strftime('%Y-%m-%d %H:%M:%S') if self.started_at else 'N/A'
        lines = [
            f"# {self.unit} on {self.host}: {verdict}",
            "",
            f"Started {when}, took {self.duration:.1f}s.",
            "",
            "## Changes",
            "",
        ]
        if self.changes:
            lines.extend(f"- {change}" for change in self.changes)
        else:
            lines.append("None. The host was already in the desired state.")

        lines.extend([
            "",
            "## Phases",
            "",
            "| Phase | Result | Duration | Message |",
            "|-------|--------|----------|---------|",
        ])
        for phase in self.phases:
            message = phase.message.replace('|', '\\|').replace('\n', ' ')
            mark = STATUS_MARKS.get(phase.status, '')
            lines.append(f"| {phase.name} | {mark} {phase.status} | {phase.duration:.1f}s | {message} |")
        return '\n'.join(lines) + '\n'

    def filename(self, ext: str) -> str:
        """<timestamp>.<unit>.<passed|failed>.<ext>"""
        stamp = self.started_at.strftime('%Y%m%d-%H%M%S') if self.started_at else 'unknown'
        return f"{stamp}.{self.unit}.{'passed' if self.success else 'failed'}.{ext}"

    def write(self, report_dir: Path) -> list[Path]:
        """Write JSON and Markdown reports into report_dir.

        Raises:
            OSError: If the directory or files cannot be written
        """
        report_dir = Path(report_dir)
        report_dir.mkdir(parents=True, exist_ok=True)
        json_path = report_dir / self.filename('json')
        md_path = report_dir / self.filename('md')
        json_path.write_text(json.dumps(self.to_dict(), indent=2) + '\n', encoding='utf-8')
        md_path.write_text(self.to_markdown(), encoding='utf-8')
        return [json_path, md_path]
