from typing import Any, Dict, Optional

from reportflow.store.models import ReportState
from reportflow.utils.time import format_duration_ms, now_ms as _clock_ms, to_iso

REPORT_SUBMITTED = "report_submitted"
CHAT_STARTED = "chat_started"
CHAT_MESSAGE = "chat_message"

NOTIFICATION_KINDS = (REPORT_SUBMITTED, CHAT_STARTED, CHAT_MESSAGE)

# Shown when the report has no open support window to count down
DEFAULT_TIME_REMAINING = "20m"


def time_remaining_label(report: ReportState, now_ms: Optional[int] = None) -> str:
    now = _clock_ms() if now_ms is None else int(now_ms)
    if report.timeoutAt is None or int(report.timeoutAt) <= now:
        return DEFAULT_TIME_REMAINING
    return format_duration_ms(int(report.timeoutAt) - now)


def build_notification_payload(
    kind: str,
    report: ReportState,
    *,
    text: Optional[str] = None,
    now_ms: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Payload posted to the agents' webhook. Zone is included so the receiver
    can route to the store's commercial agents.
    """
    if kind not in NOTIFICATION_KINDS:
        raise ValueError(f"Unknown notification kind: {kind}")
    payload: Dict[str, Any] = {
        "kind": kind,
        "reportId": report.reportId,
        "reportType": report.reportType,
        "status": report.status,
        "storeCode": report.storeCode,
        "storeName": report.storeName,
        "storeZone": report.storeZone,
        "driverName": report.driverName,
        "timeoutAt": to_iso(report.timeoutAt),
        "timeRemaining": time_remaining_label(report, now_ms),
    }
    if text is not None:
        payload["text"] = text
    return payload
