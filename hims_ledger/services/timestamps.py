# hims_ledger/services/timestamps.py
"""
Timestamp normalization for ledger records.

The data layer writes dates in several shapes: ISO-8601 from the API, naive
``YYYY-MM-DD HH:MM:SS`` from our own storage, bare dates, epoch numbers and
whatever a user typed. ``normalize`` turns any of them into one aware UTC
instant plus a display string, and never raises.

Naive values (SQL-style, date-only, ISO without offset) are hospital
wall-clock time. Reading them as UTC would shift them by the server offset.
"""
from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

from hims_ledger.core.config import settings
from hims_ledger.utils.timezone import hospital_tz, ist_correction

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# seconds vs milliseconds cut-over for numeric timestamps
EPOCH_MS_THRESHOLD = 10**12

_ISO_OFFSET_RE = re.compile(r"T.*(Z|[+-]\d{2}:?\d{2})$", re.IGNORECASE)
_ISO_BARE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}")
_SQL_RE = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2}) (\d{2}):(\d{2})(?::(\d{2})(?:\.\d+)?)?$")
_DATE_ONLY_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_NUMERIC_RE = re.compile(r"^\d+(?:\.\d+)?$")

# ad-hoc shapes seen in manual entry, tried in order
_FALLBACK_FORMATS = (
    "%d-%m-%Y %H:%M:%S",
    "%d-%m-%Y %H:%M",
    "%d/%m/%Y %H:%M:%S",
    "%d/%m/%Y %H:%M",
    "%d-%m-%Y %I:%M %p",
    "%d/%m/%Y %I:%M %p",
    "%b %d, %Y %I:%M %p",
    "%b %d, %Y, %I:%M %p",
    "%b %d, %Y at %I:%M %p",
    "%d %b %Y %H:%M",
    "%d %b %Y, %I:%M %p",
    "%Y/%m/%d %H:%M:%S",
    "%Y/%m/%d %H:%M",
    "%d-%m-%Y",
    "%d/%m/%Y",
    "%Y/%m/%d",
    "%b %d, %Y",
    "%B %d, %Y",
    "%d %b %Y",
    "%d %B %Y",
    "%d-%b-%Y",
)


@dataclass(frozen=True)
class ParsedTimestamp:
    has_time: bool
    instant: Optional[datetime]  # aware, UTC
    display: str

    @property
    def instant_ms(self) -> Optional[int]:
        if self.instant is None:
            return None
        return (self.instant - EPOCH) // timedelta(milliseconds=1)


NOT_AVAILABLE = ParsedTimestamp(has_time=False, instant=None, display="N/A")


# -----------------------------
# Parsers (one per shape)
# -----------------------------
def _local(dt: datetime) -> datetime:
    return dt.replace(tzinfo=hospital_tz())


def _parse_iso(s: str) -> datetime:
    txt = s.strip()
    if txt[-1:] in ("Z", "z"):
        txt = txt[:-1] + "+00:00"
    # "+0530" -> "+05:30" for older fromisoformat
    txt = re.sub(r"([+-]\d{2})(\d{2})$", r"\1:\2", txt)
    dt = datetime.fromisoformat(txt)
    return dt if dt.tzinfo is not None else _local(dt)


def _parse_sql(m: re.Match) -> datetime:
    y, mo, d, h, mi, sec = m.groups()
    return _local(datetime(int(y), int(mo), int(d), int(h), int(mi),
                           int(sec or 0)))


def _parse_date_only(m: re.Match) -> datetime:
    y, mo, d = m.groups()
    return _local(datetime(int(y), int(mo), int(d)))


def _parse_epoch(num: float) -> datetime:
    ms = num if num > EPOCH_MS_THRESHOLD else num * 1000
    return EPOCH + timedelta(milliseconds=ms)


def _parse_fallback(s: str) -> Optional[datetime]:
    for fmt in _FALLBACK_FORMATS:
        try:
            return _local(datetime.strptime(s, fmt))
        except ValueError:
            continue
    return None


# -----------------------------
# Display
# -----------------------------
def uses_ist_correction(timezone_hint: Optional[str]) -> bool:
    if not timezone_hint:
        return False
    zones = {z.lower() for z in settings.IST_CORRECTION_ZONES}
    return timezone_hint.strip().lower() in zones


def format_display(instant: datetime,
                   has_time: bool,
                   timezone_hint: Optional[str] = None) -> str:
    """
    "Mar 5, 2024" or "Mar 5, 2024 at 2:30 PM".
    """
    if has_time and uses_ist_correction(timezone_hint):
        local = instant.astimezone(timezone(ist_correction()))
    else:
        local = instant.astimezone(hospital_tz())

    out = f"{local:%b} {local.day}, {local.year}"
    if has_time:
        h12 = local.hour % 12 or 12
        meridiem = "AM" if local.hour < 12 else "PM"
        out += f" at {h12}:{local.minute:02d} {meridiem}"
    return out


def _result(instant: datetime, has_time: bool,
            timezone_hint: Optional[str]) -> ParsedTimestamp:
    instant = instant.astimezone(timezone.utc)
    return ParsedTimestamp(
        has_time=has_time,
        instant=instant,
        display=format_display(instant, has_time, timezone_hint),
    )


# -----------------------------
# Public API
# -----------------------------
def normalize(raw: Any, timezone_hint: Optional[str] = None) -> ParsedTimestamp:
    """
    Parse ``raw`` of unknown shape. First matching rule wins:

    1. ISO-8601 with ``T`` and an offset, or a bare ``T`` date-time
    2. SQL-style ``YYYY-MM-DD HH:MM[:SS]`` (hospital wall-clock)
    3. ``YYYY-MM-DD`` (hospital midnight, no time)
    4. digits: epoch seconds up to 1e12, milliseconds above
    5. known ad-hoc formats; has_time if the text has ``:`` or ``T``
    """
    if raw is None or raw == "" or isinstance(raw, bool):
        return NOT_AVAILABLE

    try:
        if isinstance(raw, datetime):
            dt = raw if raw.tzinfo is not None else _local(raw)
            return _result(dt, True, timezone_hint)
        if isinstance(raw, date):
            return _result(_local(datetime(raw.year, raw.month, raw.day)),
                           False, timezone_hint)
        if isinstance(raw, (int, float)):
            if isinstance(raw, float) and not math.isfinite(raw):
                return NOT_AVAILABLE
            if raw < 0:
                return NOT_AVAILABLE
            return _result(_parse_epoch(float(raw)), True, timezone_hint)
        if not isinstance(raw, str):
            return NOT_AVAILABLE

        s = raw.strip()
        if not s:
            return NOT_AVAILABLE

        if _ISO_OFFSET_RE.search(s) or _ISO_BARE_RE.match(s):
            return _result(_parse_iso(s), True, timezone_hint)

        m = _SQL_RE.match(s)
        if m:
            return _result(_parse_sql(m), True, timezone_hint)

        m = _DATE_ONLY_RE.match(s)
        if m:
            return _result(_parse_date_only(m), False, timezone_hint)

        if _NUMERIC_RE.match(s):
            return _result(_parse_epoch(float(s)), True, timezone_hint)

        dt = _parse_fallback(s)
        if dt is None:
            return NOT_AVAILABLE
        return _result(dt, (":" in s or "T" in s), timezone_hint)
    except (ValueError, OverflowError, OSError):
        return NOT_AVAILABLE


def first_timestamp(*candidates: Any,
                    timezone_hint: Optional[str] = None) -> ParsedTimestamp:
    """First candidate that parses; candidates are in authority order."""
    for c in candidates:
        parsed = normalize(c, timezone_hint)
        if parsed.instant is not None:
            return parsed
    return NOT_AVAILABLE


def calc_stay_days(start: Any,
                   end: Any = None,
                   *,
                   now: Optional[datetime] = None) -> int:
    """
    Billable days between admission and discharge (or now).
    Any started 24h period counts as a full day; minimum 1.
    """
    s = normalize(start).instant
    if end is None or end == "":
        e = (now or datetime.now(timezone.utc))
        e = e if e.tzinfo is not None else _local(e)
    else:
        e = normalize(end).instant
    if s is None or e is None:
        return 1
    secs = (e - s).total_seconds()
    return max(1, math.ceil(secs / 86400))
