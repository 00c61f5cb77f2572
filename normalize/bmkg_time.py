from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta, timezone


LOGGER = logging.getLogger(__name__)

# BMKG reports every event in Western Indonesian Time.
WIB = timezone(timedelta(hours=7), "WIB")

_MONTHS = {
    "jan": 1,
    "feb": 2,
    "mar": 3,
    "apr": 4,
    "mei": 5,
    "may": 5,
    "jun": 6,
    "jul": 7,
    "agu": 8,
    "aug": 8,
    "sep": 9,
    "okt": 10,
    "oct": 10,
    "nov": 11,
    "des": 12,
    "dec": 12,
}

_ISO_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T")

_LOCAL_RE = re.compile(
    r"^(?P<day>\d{1,2})\s+(?P<month>[A-Za-z]{3})\s+(?P<year>\d{4})"
    r"(?:\s*,\s*(?P<hour>\d{1,2}):(?P<minute>\d{2}):(?P<second>\d{2}))?"
    r"(?:\s+(?:WIB|WITA|WIT))?$",
    flags=re.IGNORECASE,
)


@dataclass(frozen=True)
class ParsedDateTime:
    date: str
    time: str
    fell_back: bool = False


def _from_datetime(dt: datetime) -> ParsedDateTime:
    return ParsedDateTime(date=dt.strftime("%Y-%m-%d"), time=dt.strftime("%H:%M:%S"))


def _parse_iso(value: str) -> datetime:
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(WIB)


def _parse_local(value: str) -> datetime:
    match = _LOCAL_RE.match(value.strip())
    if match is None:
        raise ValueError(f"unrecognised BMKG datetime: {value!r}")
    month = _MONTHS.get(match.group("month").casefold())
    if month is None:
        raise ValueError(f"unknown month abbreviation: {match.group('month')!r}")
    return datetime(
        int(match.group("year")),
        month,
        int(match.group("day")),
        int(match.group("hour") or 0),
        int(match.group("minute") or 0),
        int(match.group("second") or 0),
    )


def _fallback(value: str | None, now: datetime | None) -> ParsedDateTime:
    LOGGER.warning("BMKG datetime fallback to current time for %r", value)
    current = now if now is not None else datetime.now(tz=WIB)
    parsed = _from_datetime(current)
    return ParsedDateTime(date=parsed.date, time=parsed.time, fell_back=True)


def parse_bmkg_datetime(
    value: str | None, *, now: datetime | None = None
) -> ParsedDateTime:
    """Split a BMKG timestamp such as ``"21 Okt 2025, 15:57:01 WIB"``.

    ISO-8601 values are converted to WIB. Anything unparseable yields the
    current date and time with ``fell_back`` set instead of raising.
    """
    if not value or not value.strip():
        return _fallback(value, now)
    text = value.strip()
    try:
        if _ISO_RE.match(text):
            return _from_datetime(_parse_iso(text))
        return _from_datetime(_parse_local(text))
    except ValueError:
        return _fallback(value, now)


def resolve_event_datetime(
    datetime_utc: str | None,
    datetime_local: str | None,
    *,
    now: datetime | None = None,
) -> ParsedDateTime:
    if datetime_utc:
        try:
            return _from_datetime(_parse_iso(datetime_utc.strip()))
        except ValueError:
            LOGGER.warning("invalid BMKG DateTime %r, using local timestamp", datetime_utc)
    return parse_bmkg_datetime(datetime_local, now=now)
