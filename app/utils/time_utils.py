"""
Timezone helpers
"""
from datetime import date, datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from app.core.config import settings


def utcnow() -> datetime:
    """Current time as an aware UTC datetime"""
    return datetime.now(timezone.utc)


def ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes read back from the database as UTC"""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def business_today(now: Optional[datetime] = None) -> date:
    """Calendar date in the marketplace's business timezone"""
    now = ensure_aware(now) if now is not None else utcnow()
    return now.astimezone(ZoneInfo(settings.BUSINESS_TIMEZONE)).date()
