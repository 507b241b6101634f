"""
Lifecycle counters
------------------
Lightweight Redis counters consumed by GET /admin/metrics. Counting never
decides anything; callers treat a metrics failure as non-fatal.
"""
from __future__ import annotations
import time
from typing import Dict, List
from reportflow.core.state_machine import ALL_EVENTS
from reportflow.observability.logging import log
from reportflow.store.redis_conn import get_redis

K_TRANSITION = "metrics:transition:"                  # INCR per event
K_TRANSITION_REJECTED = "metrics:transition:rejected"  # INCR
K_SWEEP_TIMEOUTS = "metrics:sweep:timeouts"           # INCRBY
K_SWEEP_AUTO_RESOLVED = "metrics:sweep:auto_resolved" # INCRBY
K_SWEEP_LAST_RUN = "metrics:sweep:last_run"           # SET epoch s
K_NOTIFY_ATT = "metrics:notify:attempts"              # INCR
K_NOTIFY_OK = "metrics:notify:delivered"              # INCR
K_NOTIFY_FAIL_RECENT = "metrics:notify:failed_recent" # LPUSH reportId (trim window)

_RECENT_FAILURES = 50

def _now_s() -> int:
    return int(time.time())

def increment_transition(event: str) -> None:
    r = get_redis()
    r.incr(f"{K_TRANSITION}{event}", 1)

def increment_transition_rejected() -> None:
    r = get_redis()
    r.incr(K_TRANSITION_REJECTED, 1)

def record_sweep(timed_out: int, auto_resolved: int) -> None:
    r = get_redis()
    r.incrby(K_SWEEP_TIMEOUTS, int(timed_out))
    r.incrby(K_SWEEP_AUTO_RESOLVED, int(auto_resolved))
    r.set(K_SWEEP_LAST_RUN, _now_s())

def increment_notify_attempt() -> None:
    r = get_redis()
    r.incr(K_NOTIFY_ATT, 1)

def increment_notify_delivered() -> None:
    r = get_redis()
    r.incr(K_NOTIFY_OK, 1)

def record_failed_notification(report_id: str) -> None:
    """Track recent failures for follow-up."""
    if not report_id:
        return
    r = get_redis()
    r.lpush(K_NOTIFY_FAIL_RECENT, report_id)
    r.ltrim(K_NOTIFY_FAIL_RECENT, 0, _RECENT_FAILURES - 1)

def _int(v) -> int:
    try:
        return int(v or 0)
    except (TypeError, ValueError):
        return 0

def get_metrics_snapshot() -> dict:
    r = get_redis()
    transitions: Dict[str, int] = {ev: _int(r.get(f"{K_TRANSITION}{ev}")) for ev in ALL_EVENTS}

    attempts = _int(r.get(K_NOTIFY_ATT))
    delivered = _int(r.get(K_NOTIFY_OK))
    rate = (delivered / attempts) * 100.0 if attempts > 0 else 0.0
    recent_failed: List[str] = [str(x) for x in (r.lrange(K_NOTIFY_FAIL_RECENT, 0, 19) or [])]

    last_run = r.get(K_SWEEP_LAST_RUN)
    return {
        "transitions": transitions,
        "transitions_rejected": _int(r.get(K_TRANSITION_REJECTED)),
        "sweep_timeouts": _int(r.get(K_SWEEP_TIMEOUTS)),
        "sweep_auto_resolved": _int(r.get(K_SWEEP_AUTO_RESOLVED)),
        "sweep_last_run": _int(last_run) if last_run else None,
        "notification_attempts": attempts,
        "notification_delivery_rate": round(rate, 3),
        "recent_failed_notifications": recent_failed,
        "snapshot_at": _now_s(),
    }

def safe(fn, *args) -> None:
    """Run a counter update; a metrics outage is logged, never raised."""
    try:
        fn(*args)
    except Exception as e:
        log(event="metrics_write_failed", metric=getattr(fn, "__name__", "?"), error=str(e)[:200])
