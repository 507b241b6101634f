"""
Timeout Watcher
---------------
Read-only expiry checks for the presentation layer, plus the recurring sweep
that turns expiry into recorded TIMEOUT transitions.

The closed-store auto-resolution is a tienda_cerrada policy applied on top of
the lifecycle machine, not a lifecycle rule.
"""
from typing import List, Optional

import reportflow.observability.metrics as metrics
from reportflow.core import lifecycle
from reportflow.core.errors import ConcurrentModification, InvalidTransition, ReportNotFound
from reportflow.core.flow_constants import STEP_FINISH
from reportflow.core.state_machine import RESOLUTION_NO, TIENDA_CERRADA, TIMEOUT
from reportflow.observability.logging import log
from reportflow.settings import settings
from reportflow.store import report_repo
from reportflow.store.models import ReportState
from reportflow.utils.lock import LockNotAcquired, report_lock
from reportflow.utils.time import format_duration_ms, now_ms as _clock_ms


def is_expired(report: ReportState, now_ms: Optional[int] = None) -> bool:
    """UI lock signal: same truth as lifecycle.is_timed_out, never transitions."""
    return lifecycle.is_timed_out(report, now_ms)


def time_remaining_ms(report: ReportState, now_ms: Optional[int] = None) -> Optional[int]:
    """None before SUBMIT; otherwise milliseconds left, floored at 0."""
    if report.timeoutAt is None:
        return None
    now = _clock_ms() if now_ms is None else int(now_ms)
    return max(0, int(report.timeoutAt) - now)


def format_time_remaining(report: ReportState, now_ms: Optional[int] = None) -> Optional[str]:
    """UI countdown: None before SUBMIT, "0m" once expired."""
    remaining = time_remaining_ms(report, now_ms)
    if remaining is None:
        return None
    return format_duration_ms(remaining)


def auto_resolve_closed_store(report: ReportState) -> ReportState:
    """
    Unresolved closed-store reports are treated as resolved "no" and the
    wizard is sent to finish without driver input. Mutates and returns `report`.
    """
    report.resolution = RESOLUTION_NO
    report.metadata.should_return_to_step = STEP_FINISH
    return report


def apply_timeout_policy(report: ReportState, now_ms: Optional[int] = None) -> ReportState:
    """
    TIMEOUT through the machine, then the per-type policy.
    Raises InvalidTransition/GuardFailed exactly like lifecycle.transition.
    """
    nxt = lifecycle.transition(report, TIMEOUT, now_ms)
    if nxt.reportType == TIENDA_CERRADA:
        auto_resolve_closed_store(nxt)
    return nxt


def sweep_expired_reports(now_ms: Optional[int] = None, limit: Optional[int] = None) -> List[str]:
    """
    Applies the timeout policy to every submitted report past timeoutAt.
    Each report is re-read and re-checked under its lock; a report that a
    driver resolved first is skipped (the race is documented, not hidden).
    Returns the ids that were timed out by this run.
    """
    now = _clock_ms() if now_ms is None else int(now_ms)
    batch = int(limit or settings.SWEEP_BATCH_LIMIT)
    timed_out: List[str] = []
    auto_resolved = 0

    for report_id in report_repo.list_due_report_ids(now, batch):
        try:
            with report_lock(report_id):
                report = report_repo.load_report(report_id)
                nxt = apply_timeout_policy(report, now)
                report_repo.save_report(nxt)
        except ReportNotFound:
            report_repo.unindex_report(report_id)
            log(event="sweep_report_missing", reportId=report_id)
            continue
        except InvalidTransition as e:
            # Lost the race (driver resolved first) or index lagging behind status
            log(event="sweep_report_skipped", reportId=report_id, status=e.status, reason=e.reason)
            continue
        except (ConcurrentModification, LockNotAcquired) as e:
            log(event="sweep_report_busy", reportId=report_id, error=str(e))
            continue

        timed_out.append(report_id)
        if nxt.resolution == RESOLUTION_NO and nxt.reportType == TIENDA_CERRADA:
            auto_resolved += 1
        metrics.safe(metrics.increment_transition, TIMEOUT)
        log(
            event="report_timed_out",
            reportId=report_id,
            reportType=nxt.reportType,
            timeoutAt=nxt.timeoutAt,
            autoResolved=nxt.reportType == TIENDA_CERRADA,
        )

    metrics.safe(metrics.record_sweep, len(timed_out), auto_resolved)
    log(event="sweep_done", timedOut=len(timed_out), autoResolved=auto_resolved)
    return timed_out
