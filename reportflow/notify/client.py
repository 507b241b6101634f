import time
from typing import Any, Dict, Optional, Tuple

import httpx

from reportflow.observability.logging import log
from reportflow.settings import settings


def send_notification_http(
    payload: Dict[str, Any],
    headers: Optional[Dict[str, str]] = None,
    timeout: Optional[float] = None,
) -> Tuple[bool, int, Optional[str]]:
    """
    POST one notification to the agents' webhook.
    Returns (success, status_code, error). Transport errors report status 0.
    """
    url = settings.NOTIFY_WEBHOOK_URL
    if not url:
        return False, 0, "NOTIFY_WEBHOOK_URL is not set"

    report_id = str(payload.get("reportId") or "")
    start = time.time()
    try:
        with httpx.Client(timeout=float(timeout or settings.NOTIFY_TIMEOUT_SEC)) as client:
            resp = client.post(url, json=payload, headers=headers or {})
    except httpx.HTTPError as e:
        elapsed_ms = int((time.time() - start) * 1000)
        log(
            event="notify_send_exception",
            reportId=report_id,
            kind=payload.get("kind"),
            elapsedMs=elapsed_ms,
            errorType=type(e).__name__,
            error=str(e)[:500],
        )
        return False, 0, str(e)[:500]

    elapsed_ms = int((time.time() - start) * 1000)
    if 200 <= resp.status_code < 300:
        log(
            event="notify_send_success",
            reportId=report_id,
            kind=payload.get("kind"),
            statusCode=int(resp.status_code),
            elapsedMs=elapsed_ms,
        )
        return True, int(resp.status_code), None

    log(
        event="notify_send_failed",
        reportId=report_id,
        kind=payload.get("kind"),
        statusCode=int(resp.status_code),
        elapsedMs=elapsed_ms,
        responseText=(resp.text or "")[:500],
    )
    return False, int(resp.status_code), (resp.text or "")[:500]
