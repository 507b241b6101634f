from typing import Optional

from rq import Retry

from reportflow.notify.payloads import build_notification_payload
from reportflow.observability.logging import log
from reportflow.settings import settings
from reportflow.store.models import ReportState

# Seconds between RQ retries of a failed delivery
RETRY_INTERVALS = [10, 30, 60]


def notify(kind: str, report: ReportState, *, text: Optional[str] = None) -> bool:
    """
    Fire-and-forget agent notification.
    Enqueues delivery on RQ and returns whether it was enqueued. Never raises:
    a notification problem must not fail the transition that triggered it.
    """
    if not settings.ENABLE_NOTIFICATIONS:
        return False
    if not settings.NOTIFY_WEBHOOK_URL:
        log(event="notify_skipped_no_url", reportId=report.reportId, kind=kind)
        return False

    # Lazy imports to break cycle: service -> notifier -> jobs -> timeout_watcher
    from reportflow.queue.jobs import send_notification_job
    from reportflow.queue.rq_conn import get_queue

    try:
        payload = build_notification_payload(kind, report, text=text)
        q = get_queue()
        job = q.enqueue(
            send_notification_job,
            payload,
            retry=Retry(max=int(settings.NOTIFY_MAX_RETRIES), interval=RETRY_INTERVALS),
        )
        log(
            event="notify_enqueued",
            reportId=report.reportId,
            kind=kind,
            rq_job_id=getattr(job, "id", "") or "",
        )
        return True
    except Exception as e:
        log(
            event="notify_enqueue_failed",
            reportId=report.reportId,
            kind=kind,
            errorType=type(e).__name__,
            error=str(e)[:500],
        )
        return False
