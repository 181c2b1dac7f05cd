import os
from datetime import datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo


def _timezone() -> ZoneInfo:
    name = os.environ.get("APP_TIMEZONE", "UTC")
    return ZoneInfo(name)


def now_tz() -> datetime:
    return datetime.now(_timezone())


def ensure_timezone(dt: datetime) -> datetime:
    tz = _timezone()
    if dt.tzinfo is None:
        return dt.replace(tzinfo=tz)
    return dt.astimezone(tz)


def is_past(dt: Optional[datetime]) -> bool:
    if dt is None:
        return False
    return ensure_timezone(dt) < now_tz()


def days_ago(days: int) -> datetime:
    return now_tz() - timedelta(days=days)
