from __future__ import annotations

import time
from datetime import datetime, timezone

DAY_SECONDS = 24 * 3600


def now_ts() -> int:
    return int(time.time())


def days(n: float) -> int:
    return int(n * DAY_SECONDS)


def month_start_ts(ts: int) -> int:
    dt = datetime.fromtimestamp(ts, tz=timezone.utc)
    return int(datetime(dt.year, dt.month, 1, tzinfo=timezone.utc).timestamp())
