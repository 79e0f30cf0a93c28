"""
Date and Time utilities

This module handles XMLTV timestamp parsing and the EPG retention window.
Centralizes all date parsing logic to maintain consistency across the application.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import logging
import re

logger = logging.getLogger(__name__)

# YYYYMMDDHHMMSS, a single space, then a ±HHMM offset
XMLTV_TIME_PATTERN = re.compile(
    r'^\s*(\d{4})(\d{2})(\d{2})(\d{2})(\d{2})(\d{2}) ([+-])(\d{2})(\d{2})\s*$'
)


class TimestampParseError(ValueError):
    """Raised when an XMLTV timestamp is invalid"""
    pass


def parse_xmltv_time(time_str: str | None) -> datetime:
    """
    Parse an XMLTV timestamp into a UTC datetime

    Args:
        time_str: XMLTV time like '20080715003000 -0600' (the offset is required)

    Returns:
        Timezone-aware datetime in UTC

    Raises:
        TimestampParseError: If the value does not follow the XMLTV format
    """
    if not time_str:
        raise TimestampParseError("Missing XMLTV timestamp")

    match = XMLTV_TIME_PATTERN.match(time_str)
    if match is None:
        raise TimestampParseError(f"Invalid XMLTV timestamp: '{time_str}'")

    year, month, day, hour, minute, second, sign, tz_hours, tz_mins = match.groups()
    offset = timedelta(hours=int(tz_hours), minutes=int(tz_mins))
    if sign == '-':
        offset = -offset

    try:
        dt = datetime(
            int(year), int(month), int(day), int(hour), int(minute), int(second),
            tzinfo=timezone(offset),
        )
    except ValueError as e:
        raise TimestampParseError(f"Invalid XMLTV timestamp: '{time_str}' ({e})") from e

    return dt.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class TimeWindow:
    """Programmes overlapping [start, end) are kept."""
    start: datetime
    end: datetime

    def overlaps(self, programme_start: datetime, programme_stop: datetime) -> bool:
        """Starts before the window ends and stops no earlier than it begins"""
        return programme_start < self.end and programme_stop >= self.start


def build_time_window(now: datetime, past_hours: int = 1, future_hours: int = 48) -> TimeWindow:
    """
    Calculate the EPG retention window around ``now``

    Args:
        now: Reference instant (naive values are taken as UTC)
        past_hours: How long after stopping a programme is still kept
        future_hours: How far ahead programmes may start

    Returns:
        TimeWindow fixed for one filter pass
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return TimeWindow(
        start=now - timedelta(hours=past_hours),
        end=now + timedelta(hours=future_hours),
    )
