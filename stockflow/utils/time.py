"""Timezone helpers – provide a single UTC-aware *now()* function.

Entity timestamps are UTC-aware datetimes; queue entries carry integer epoch
milliseconds.  Import these helpers instead of calling the stdlib directly.
"""

import time
from datetime import datetime
from datetime import timezone


def utc_now() -> datetime:  # noqa: D401 – simple utility
    """Return *aware* current time in UTC."""

    return datetime.now(timezone.utc)


def now_ms() -> int:  # noqa: D401 – simple utility
    """Return the current wall-clock time as epoch milliseconds."""

    return time.time_ns() // 1_000_000


__all__ = ["utc_now", "now_ms"]
