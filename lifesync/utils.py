from datetime import datetime
import pytz

from lifesync.config import LOCAL_TIMEZONE, HEALTHY_HOUR_START, HEALTHY_HOUR_END

LOCAL_TZ = pytz.timezone(LOCAL_TIMEZONE)


def to_local(dt: datetime) -> datetime:
    """Convert a naive or aware datetime to the local timezone.
    If naive, assume it's already local time.
    """
    if dt.tzinfo is None:
        return LOCAL_TZ.localize(dt)
    return dt.astimezone(LOCAL_TZ)


def now_local() -> datetime:
    """Get current time in the local timezone."""
    return datetime.now(pytz.UTC).astimezone(LOCAL_TZ)


def is_healthy_hour(dt: datetime) -> bool:
    return HEALTHY_HOUR_START <= dt.hour < HEALTHY_HOUR_END


def local_midnight(dt: datetime) -> datetime:
    """Start of the local day containing dt."""
    local = to_local(dt)
    return LOCAL_TZ.localize(datetime(local.year, local.month, local.day))


def parse_iso(value: str) -> datetime:
    """Parse GitHub style timestamps such as 2024-05-01T10:00:00Z."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


def relative_label(then: datetime, now: datetime) -> str:
    """Human label for how long ago something happened."""
    diff_minutes = int((now - then).total_seconds() // 60)
    if diff_minutes < 1:
        return "Now"
    if diff_minutes < 60:
        return f"{diff_minutes} min ago"
    if diff_minutes < 24 * 60:
        return f"{diff_minutes // 60}h ago"
    return to_local(then).strftime("%d %b %H:%M")
