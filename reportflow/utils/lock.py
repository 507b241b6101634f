from contextlib import contextmanager
import time
import uuid
from typing import Optional
from reportflow.observability.logging import log
from reportflow.settings import settings
from reportflow.store.redis_conn import get_redis

# Release only if we still own the key
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class LockNotAcquired(RuntimeError):
    def __init__(self, report_id: str):
        self.report_id = report_id
        super().__init__(f"Could not acquire lock for report {report_id}")


def lock_key(report_id: str) -> str:
    return f"lock:report:{report_id}"


@contextmanager
def report_lock(report_id: str, ttl_ms: Optional[int] = None):
    """
    Distributed lock to ensure single-writer per report.

    Every check-then-write on a report (transition, evidence upload, sweep)
    runs inside this block. Spins briefly, then raises LockNotAcquired.
    """
    r = get_redis()
    key = lock_key(report_id)
    token = uuid.uuid4().hex
    ttl = int(ttl_ms or settings.LOCK_TTL_MS)
    acquired = r.set(key, token, px=ttl, nx=True)

    try:
        if not acquired:
            for _ in range(int(settings.LOCK_RETRY_COUNT)):
                time.sleep(float(settings.LOCK_RETRY_DELAY_SEC))
                if r.set(key, token, px=ttl, nx=True):
                    acquired = True
                    break

            if not acquired:
                raise LockNotAcquired(report_id)

        yield
    finally:
        if acquired:
            # The key carries a TTL, so a failed release only delays the next writer.
            try:
                r.eval(_RELEASE_SCRIPT, 1, key, token)
            except Exception as e:
                log(event="report_lock_release_failed", reportId=report_id, error=str(e)[:200])
