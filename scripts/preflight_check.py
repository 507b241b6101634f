#!/usr/bin/env python3
import sys
import os

print("Running preflight import check...")
try:
    # Set dummy env vars so settings load without a .env file
    os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")

    import reportflow.main
    print("Import reportflow.main: OK")

    import reportflow.queue.jobs
    print("Import reportflow.queue.jobs: OK")

    from reportflow.core.lifecycle import TRANSITIONS
    from reportflow.core.state_machine import ALL_EVENTS
    missing = [ev for ev in ALL_EVENTS if not any(row["event"] == ev for row in TRANSITIONS)]
    if missing:
        raise RuntimeError(f"events without a transition row: {missing}")
    print("Transition table: OK")

    print("Preflight check passed.")
    sys.exit(0)
except Exception as e:
    print(f"Preflight check FAILED: {e}")
    import traceback
    traceback.print_exc()
    sys.exit(1)
