from typing import Any, Dict, List

import reportflow.observability.metrics as metrics
from reportflow.core.timeout_watcher import sweep_expired_reports
from reportflow.notify.client import send_notification_http
from reportflow.observability.logging import log
from reportflow.settings import settings


def send_notification_job(payload: Dict[str, Any]) -> bool:
    """
    Background delivery of one agent notification.
    Raises on failure so RQ's Retry policy (set by the notifier) re-runs it;
    4xx other than 429 is terminal and is not retried.
    """
    report_id = str(payload.get("reportId") or "")
    log(event="notify_job_start", reportId=report_id, kind=payload.get("kind"))

    metrics.safe(metrics.increment_notify_attempt)
    ok, status_code, error = send_notification_http(
        payload,
        headers={"Idempotency-Key": f"{report_id}:{payload.get('kind')}"},
        timeout=float(settings.NOTIFY_TIMEOUT_SEC),
    )
    if ok:
        metrics.safe(metrics.increment_notify_delivered)
        return True

    metrics.safe(metrics.record_failed_notification, report_id)
    if 400 <= status_code < 500 and status_code != 429:
        log(event="notify_terminal_error", reportId=report_id, code=status_code)
        return False
    raise RuntimeError(f"Notification failed: {status_code} {error}")


def sweep_timeouts_job() -> List[str]:
    """Recurring job: apply TIMEOUT (and closed-store auto-resolution) to overdue reports."""
    log(event="sweep_job_start")
    try:
        return sweep_expired_reports(limit=int(settings.SWEEP_BATCH_LIMIT))
    except Exception as e:
        log(event="sweep_job_exception", error=str(e)[:500])
        raise
