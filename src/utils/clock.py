"""Clock and identifier source.

Every timestamp and generated identifier in the service comes from a Clock so
tests can freeze and advance time.
"""

import secrets
import time
from datetime import datetime
from typing import Optional

import pytz


def to_iso(value: datetime) -> str:
    """Format an aware datetime as a fixed-width UTC ISO-8601 string.

    Fixed width keeps stored strings ordered the same way as the instants
    they represent.
    """
    return value.astimezone(pytz.utc).isoformat(timespec="microseconds")


def parse_iso(value: str) -> datetime:
    """Parse an ISO-8601 string into an aware UTC datetime.

    Naive values are taken as UTC.
    """
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        return pytz.utc.localize(parsed)
    return parsed.astimezone(pytz.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return pytz.utc.localize(value)
    return value.astimezone(pytz.utc)


class Clock:
    """System clock."""

    def now(self) -> datetime:
        return datetime.now(pytz.utc)

    def now_iso(self) -> str:
        return to_iso(self.now())

    def monotonic(self) -> float:
        return time.monotonic()

    def new_id(self) -> str:
        return secrets.token_hex(8)


SYSTEM_CLOCK = Clock()
