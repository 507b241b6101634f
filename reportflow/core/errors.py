"""
Named failures of the report lifecycle engine.

The machine and the flow controller never hide these; the HTTP layer maps
them to status codes (see reportflow.main).
"""
from typing import Optional


class ReportFlowError(Exception):
    """Base class for every error raised by reportflow."""


class InvalidTransition(ReportFlowError):
    """Lifecycle event not allowed from the report's current status."""

    def __init__(self, status: str, event: str, reason: Optional[str] = None):
        self.status = status
        self.event = event
        self.reason = reason or "no_transition"
        super().__init__(f"Invalid transition: {status} -> {event} ({self.reason})")


class GuardFailed(InvalidTransition):
    """The (status, event) row exists but its guard rejected the report."""

    def __init__(self, status: str, event: str, guard: str):
        self.guard = guard
        super().__init__(status, event, reason=f"guard_failed:{guard}")


class UnknownReportType(ReportFlowError):
    def __init__(self, report_type: Optional[str]):
        self.report_type = report_type
        super().__init__(f"No wizard flow for report type {report_type!r}")


class InvalidStepForType(ReportFlowError):
    def __init__(self, report_type: Optional[str], step: Optional[str]):
        self.report_type = report_type
        self.step = step
        super().__init__(f"Step {step!r} is not part of the {report_type!r} flow")


class InvalidEvidenceKey(ReportFlowError):
    def __init__(self, report_type: Optional[str], key: str):
        self.report_type = report_type
        self.key = key
        super().__init__(f"Evidence key {key!r} is not collected by the {report_type!r} flow")


class ReportNotFound(ReportFlowError):
    def __init__(self, report_id: str):
        self.report_id = report_id
        super().__init__(f"Report {report_id} not found")


class ReportNotEditable(ReportFlowError):
    """Write attempted on a report whose status no longer accepts it."""

    def __init__(self, report_id: str, status: str, action: str):
        self.report_id = report_id
        self.status = status
        self.action = action
        super().__init__(f"Cannot {action} report {report_id} in status {status}")


class ConcurrentModification(ReportFlowError):
    """Stored version moved between load and save."""

    def __init__(self, report_id: str, expected_version: int):
        self.report_id = report_id
        self.expected_version = expected_version
        super().__init__(f"Report {report_id} changed since version {expected_version}")
