import time
from datetime import datetime, timezone
from typing import Optional, Union

TZ_UTC = timezone.utc

def now_utc() -> datetime:
    return datetime.now(TZ_UTC)

def now_ms() -> int:
    """Wall clock in epoch milliseconds (the unit of persisted cache timestamps)."""
    return int(time.time() * 1000)

def parse_timestamp(value: Union[str, int, float, datetime, None]) -> Optional[datetime]:
    """
    Parse an inserted-at value into an aware UTC datetime.
    Accepts ISO strings (naive ones are taken as UTC, a trailing 'Z' is allowed),
    epoch milliseconds, or datetimes. Anything else returns None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=TZ_UTC)
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(float(value) / 1000.0, tz=TZ_UTC)
        except (OverflowError, OSError, ValueError):
            return None
    s = str(value).strip()
    if not s:
        return None
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        return None
    return dt if dt.tzinfo else dt.replace(tzinfo=TZ_UTC)
