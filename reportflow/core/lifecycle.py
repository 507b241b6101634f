"""
Report Lifecycle Machine
------------------------
Single source of truth for report status changes.

INVARIANTS:
- status only changes through a row of TRANSITIONS.
- transition() never mutates its input; it returns the next ReportState.
- can_transition() and transition() share one check, so the predicate and
  the action cannot disagree.
- timeoutAt is written by the SUBMIT effect only.
- Knowing a report is overdue (is_timed_out) never changes it; TIMEOUT must
  be applied explicitly so the recorded transition time is auditable.
"""
import copy
from typing import Callable, Dict, List, Optional

from reportflow.core.errors import GuardFailed, InvalidTransition
from reportflow.core.state_machine import (
    ADMIN_COMPLETES,
    ARCHIVE,
    ARCHIVED,
    COMPLETED,
    DRAFT,
    DRIVER_CONFIRMS_RESOLUTION,
    RESOLVED_BY_DRIVER,
    SUBMIT,
    SUBMITTED,
    TIMED_OUT,
    TIMEOUT,
)
from reportflow.settings import settings
from reportflow.store.models import ReportState
from reportflow.utils.time import MINUTE_MS, now_ms as _clock_ms


def requires_ticket(report_type: Optional[str]) -> bool:
    return (report_type or "") not in settings.ticket_exempt_types()


def support_window_ms() -> int:
    return int(settings.REPORT_TIMEOUT_MINUTES) * MINUTE_MS


# ---------------------------------------------------------------------------
# Guards: (report, now) -> bool
# ---------------------------------------------------------------------------

def _guard_ticket_confirmed(report: ReportState, now: int) -> bool:
    return bool(report.ticketExtractionConfirmed) or not requires_ticket(report.reportType)


def _guard_support_window_expired(report: ReportState, now: int) -> bool:
    return is_timed_out(report, now)


# ---------------------------------------------------------------------------
# Effects: applied to the copy that becomes the next state
# ---------------------------------------------------------------------------

def _effect_open_support_window(report: ReportState, now: int) -> None:
    report.submittedAt = now
    report.timeoutAt = now + support_window_ms()


def _effect_mark_resolved(report: ReportState, now: int) -> None:
    report.resolvedAt = now


TRANSITIONS: List[Dict] = [
    {
        "event": SUBMIT,
        "from": (DRAFT,),
        "to": SUBMITTED,
        "guard": ("ticket_confirmation", _guard_ticket_confirmed),
        "effect": _effect_open_support_window,
    },
    {
        "event": DRIVER_CONFIRMS_RESOLUTION,
        "from": (SUBMITTED,),
        "to": RESOLVED_BY_DRIVER,
        "effect": _effect_mark_resolved,
    },
    {
        "event": TIMEOUT,
        "from": (SUBMITTED,),
        "to": TIMED_OUT,
        "guard": ("timeout_not_reached", _guard_support_window_expired),
    },
    {
        "event": ADMIN_COMPLETES,
        "from": (RESOLVED_BY_DRIVER, TIMED_OUT),
        "to": COMPLETED,
    },
    {
        "event": ARCHIVE,
        "from": (COMPLETED,),
        "to": ARCHIVED,
    },
]


def _find_row(status: str, event: str) -> Optional[Dict]:
    for row in TRANSITIONS:
        if row["event"] == event and status in row["from"]:
            return row
    return None


def _check(report: ReportState, event: str, now: int) -> Dict:
    row = _find_row(report.status, event)
    if row is None:
        raise InvalidTransition(report.status, event)
    guard = row.get("guard")
    if guard is not None:
        name, fn = guard
        if not fn(report, now):
            raise GuardFailed(report.status, event, name)
    return row


def can_transition(report: ReportState, event: str, now_ms: Optional[int] = None) -> bool:
    """Pure legality check; safe to call before offering an action to a user."""
    try:
        _check(report, event, _clock_ms() if now_ms is None else int(now_ms))
    except InvalidTransition:
        return False
    return True


def transition(report: ReportState, event: str, now_ms: Optional[int] = None) -> ReportState:
    """
    Apply `event` and return the next state.
    Raises InvalidTransition (GuardFailed when a guard rejects) and leaves
    `report` untouched. Callers must hold the report lock for the whole
    load-check-save sequence.
    """
    now = _clock_ms() if now_ms is None else int(now_ms)
    row = _check(report, event, now)

    nxt = copy.deepcopy(report)
    nxt.status = row["to"]
    effect: Optional[Callable[[ReportState, int], None]] = row.get("effect")
    if effect is not None:
        effect(nxt, now)
    return nxt


def is_timed_out(report: ReportState, now_ms: Optional[int] = None) -> bool:
    """True iff timeoutAt is set and now is strictly past it."""
    if report.timeoutAt is None:
        return False
    now = _clock_ms() if now_ms is None else int(now_ms)
    return now > int(report.timeoutAt)


def valid_events(report: ReportState, now_ms: Optional[int] = None) -> List[str]:
    now = _clock_ms() if now_ms is None else int(now_ms)
    out = []
    for row in TRANSITIONS:
        if report.status in row["from"] and can_transition(report, row["event"], now):
            out.append(row["event"])
    return out
