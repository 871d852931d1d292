"""
Date and Time utilities

Clock-time parsing for provider listings, day anchoring and XMLTV
timestamp formatting. All guide datetimes are timezone-aware in the
configured service timezone.
"""
from datetime import date, datetime, time, timedelta, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
import logging

from iptv_service.errors import ConfigurationError, ParseError

logger = logging.getLogger(__name__)

XMLTV_TIME_FORMAT = "%Y%m%d%H%M%S %z"


def load_timezone(name: str) -> ZoneInfo:
    """
    Resolve an IANA timezone name

    Raises:
        ConfigurationError: If the timezone is unknown
    """
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigurationError(f"Invalid timezone: '{name}'") from e


def today_in(tz: tzinfo) -> date:
    """Current calendar date in the given timezone"""
    return datetime.now(tz).date()


def parse_clock_time(value: str) -> time:
    """
    Parse a provider clock time like '23:30' or '00:12:00'

    Seconds, when present, are truncated.

    Raises:
        ParseError: If the value is not a valid HH:MM time
    """
    clock = (value or "").strip()[:5]
    try:
        parsed = datetime.strptime(clock, "%H:%M")
    except ValueError as e:
        raise ParseError(f"Invalid clock time: '{value}'") from e
    return parsed.time()


def anchor_times(day: date, start: str, end: str, tz: tzinfo) -> tuple[datetime, datetime]:
    """
    Anchor a program's clock times to its listing day

    An end time earlier than the start time means the program crosses
    midnight, so the end moves to the next calendar day.

    Raises:
        ParseError: If either time fails to parse, or both are equal
    """
    start_at = datetime.combine(day, parse_clock_time(start), tzinfo=tz)
    end_at = datetime.combine(day, parse_clock_time(end), tzinfo=tz)
    if end_at == start_at:
        raise ParseError(f"Zero-length program: {start}-{end}")
    if end_at < start_at:
        end_at += timedelta(days=1)
    return start_at, end_at


def format_xmltv_time(value: datetime) -> str:
    """
    Format a datetime as an XMLTV timestamp

    Returns:
        String like '20250115233000 +0800'
    """
    return value.strftime(XMLTV_TIME_FORMAT)
