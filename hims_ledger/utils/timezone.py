# FILE: hims_ledger/utils/timezone.py
from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from hims_ledger.core.config import settings


def hospital_tz() -> ZoneInfo:
    return ZoneInfo(getattr(settings, "TIMEZONE", "Asia/Kolkata"))


def ist_correction() -> timedelta:
    """The fixed +5:30 display correction, as a policy value (not tzdata)."""
    return timedelta(minutes=int(settings.IST_CORRECTION_MINUTES))


def now_ist() -> datetime:
    """
    Returns a *naive* datetime representing hospital wall-clock time.
    """
    return datetime.now(hospital_tz()).replace(tzinfo=None)


def today_ist() -> date:
    return now_ist().date()


def as_local(dt: datetime) -> datetime:
    """Aware datetime in the hospital zone; naive input is treated as UTC."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(hospital_tz())


def local_date(dt: datetime) -> date:
    return as_local(dt).date()
