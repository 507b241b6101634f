#!/usr/bin/env python3
"""
Enqueue one timeout sweep on the RQ queue. Run from cron (every minute is
enough; the sweep is idempotent and skips reports already moved on):

    * * * * * cd /srv/reportflow && python scripts/enqueue_sweep.py

An `rq worker reports` process picks the job up.
"""
import sys

from reportflow.observability.logging import log
from reportflow.queue.jobs import sweep_timeouts_job
from reportflow.queue.rq_conn import get_queue


def main() -> int:
    try:
        job = get_queue().enqueue(sweep_timeouts_job)
    except Exception as e:
        log(event="sweep_enqueue_failed", errorType=type(e).__name__, error=str(e)[:500])
        return 1
    log(event="sweep_enqueued", rq_job_id=getattr(job, "id", "") or "", trigger="cron")
    print(f"OK: enqueued sweep job {getattr(job, 'id', '')}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
