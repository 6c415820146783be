from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def iso_timestamp(clock: Clock = utc_now) -> str:
    """Return ``clock()`` as an ISO-8601 UTC string with millisecond precision."""

    moment = clock().astimezone(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")
