"""Installation reports and summaries."""

from reporting.report import InstallReport, PhaseOutcome
from reporting.summary import connection_command, format_summary

__all__ = ['InstallReport', 'PhaseOutcome', 'connection_command', 'format_summary']
