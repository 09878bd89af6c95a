"""Date recognition for upstream string values.

The ferries API serialises dates four different ways depending on the
endpoint (and on which decade the endpoint was written in). There is no
schema on the wire, so every string is tested against an ordered list of
detectors and the first one that parses wins.

Order matters:

1. ``/Date(1703123456789)/`` legacy .NET epoch wrapper. Unambiguous.
2. ``2024-12-25T14:30:00`` local date-time without offset.
3. ``2024-12-25`` bare calendar date.
4. ``12/25/2024`` US month/day/year. Most permissive, so last.

Every pattern is anchored to the whole string and accepts ASCII digits
only. Detectors never raise: a candidate that matches but fails
validation simply yields ``None``.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)

_EPOCH_WRAPPER_RE = re.compile(r"^/Date\((-?\d{1,15})(?:[+-]\d{4})?\)/\Z", re.ASCII)
_LOCAL_DATETIME_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})\Z", re.ASCII)
_ISO_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})\Z", re.ASCII)
_US_DATE_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})\Z", re.ASCII)

# Years below this are treated as garbage in slash dates.
_MIN_US_YEAR = 1900


def _parse_epoch_wrapper(match: re.Match[str]) -> datetime | None:
    # The optional offset is informational only; the millisecond count is
    # already UTC.
    try:
        return _EPOCH + timedelta(milliseconds=int(match.group(1)))
    except (OverflowError, ValueError):
        return None


def _parse_local_datetime(match: re.Match[str]) -> datetime | None:
    try:
        return datetime(*(int(part) for part in match.groups()))
    except ValueError:
        return None


def _parse_iso_date(match: re.Match[str]) -> datetime | None:
    year, month, day = (int(part) for part in match.groups())
    try:
        return datetime(year, month, day)
    except ValueError:
        return None


def _parse_us_date(match: re.Match[str]) -> datetime | None:
    month, day, year = (int(part) for part in match.groups())
    if year < _MIN_US_YEAR:
        return None
    try:
        parsed = datetime(year, month, day)
    except ValueError:
        return None
    # Round-trip the components so e.g. 13/40/2024 can never be coerced.
    if (parsed.month, parsed.day, parsed.year) != (month, day, year):
        return None
    return parsed


@dataclass(frozen=True, slots=True)
class DateFormat:
    """One detector: an anchored pattern plus the parser applied to its match."""

    name: str
    pattern: re.Pattern[str]
    parser: Callable[[re.Match[str]], datetime | None]

    def parse(self, text: str) -> datetime | None:
        match = self.pattern.match(text)
        if match is None:
            return None
        return self.parser(match)


#: Detectors in precedence order. Append new formats deliberately; the
#: position of each entry is part of the contract.
DATE_FORMATS: tuple[DateFormat, ...] = (
    DateFormat("epoch_wrapper", _EPOCH_WRAPPER_RE, _parse_epoch_wrapper),
    DateFormat("local_datetime", _LOCAL_DATETIME_RE, _parse_local_datetime),
    DateFormat("iso_date", _ISO_DATE_RE, _parse_iso_date),
    DateFormat("us_date", _US_DATE_RE, _parse_us_date),
)


def match_date_format(text: str) -> DateFormat | None:
    """Return the first detector whose pattern matches *text*, if any."""
    for fmt in DATE_FORMATS:
        if fmt.pattern.match(text):
            return fmt
    return None


def parse_date_string(text: str) -> datetime | None:
    """Parse *text* as one of the upstream date encodings.

    Stops at the first detector whose pattern matches. Returns ``None`` when
    nothing matches or the matching detector rejects the value.
    """
    fmt = match_date_format(text)
    if fmt is None:
        return None
    return fmt.parse(text)


def format_path_date(value: date | datetime) -> str:
    """Render a date for URL path templates (``YYYY-MM-DD``)."""
    if isinstance(value, datetime):
        value = value.date()
    return value.isoformat()


def to_epoch_wrapper(value: datetime) -> str:
    """Render *value* in the legacy ``/Date(ms)/`` encoding.

    Naive datetimes are taken as UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    millis = (value - _EPOCH) // timedelta(milliseconds=1)
    return f"/Date({millis})/"
