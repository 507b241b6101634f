import time
from datetime import datetime, timezone
from typing import Optional

MINUTE_MS = 60 * 1000

def now_ms() -> int:
    return int(time.time() * 1000)

def parse_timestamp_ms(ts) -> Optional[int]:
    """
    Normalize a stored timestamp to epoch milliseconds (int).
    Accepts:
    - None / empty string: returns None (timestamp not set)
    - int/float: treated as epoch ms (or seconds if suspiciously small)
    - ISO-8601 string: parsed via datetime.fromisoformat (supports trailing 'Z')
    Raises ValueError for anything else, so corrupt records surface on load.
    """
    if ts is None:
        return None
    if isinstance(ts, bool):
        raise ValueError(f"Not a timestamp: {ts!r}")
    if isinstance(ts, (int, float)):
        v = int(ts)
        # Heuristic: if looks like seconds (< 10^12), convert to ms.
        return v * 1000 if 0 < v < 10**12 else v
    if isinstance(ts, str):
        s = ts.strip()
        if not s:
            return None
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        dt = datetime.fromisoformat(s)
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return int(dt.timestamp() * 1000)
    raise ValueError(f"Not a timestamp: {ts!r}")

def to_iso(ms: Optional[int]) -> Optional[str]:
    if ms is None:
        return None
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).isoformat().replace("+00:00", "Z")

def format_duration_ms(duration_ms: int) -> str:
    """'1h 5m' above an hour, '12m' below; whole minutes, floored."""
    minutes = max(0, int(duration_ms)) // MINUTE_MS
    hours, mins = divmod(minutes, 60)
    if hours > 0:
        return f"{hours}h {mins}m"
    return f"{mins}m"
