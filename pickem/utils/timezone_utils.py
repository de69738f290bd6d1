"""
Timezone utility functions for the pick'em engine

All kickoff date math lives here. Upstream schedules publish kickoffs as a
compact date token plus a loose US Eastern wall-clock string, so every other
module goes through parse_kickoff() instead of re-implementing the conversion.
"""

import re
from datetime import date, datetime, timedelta, timezone

import pytz
from flask import current_app, has_app_context

from pickem.errors import UpstreamDataError

EDT_OFFSET = timedelta(hours=-4)
EST_OFFSET = timedelta(hours=-5)

DEFAULT_KICKOFF_HOUR = 12
DEFAULT_KICKOFF_MINUTE = 0

_TIME_PATTERN = re.compile(r"^(\d{1,2})(?::(\d{2}))?\s*([ap])\.?(?:m\.?)?$", re.IGNORECASE)


def utc_now():
    """Get current time in UTC"""
    return datetime.now(timezone.utc)


def _nth_sunday(year, month, n):
    first = date(year, month, 1)
    # weekday(): Monday=0 ... Sunday=6
    first_sunday = first + timedelta(days=(6 - first.weekday()) % 7)
    return first_sunday + timedelta(weeks=n - 1)


def eastern_utc_offset(local_date):
    """
    UTC offset for a US Eastern calendar date.

    Daylight time runs from the second Sunday of March (inclusive, from local
    midnight) until the first Sunday of November (exclusive).
    """
    dst_start = _nth_sunday(local_date.year, 3, 2)
    dst_end = _nth_sunday(local_date.year, 11, 1)
    if dst_start <= local_date < dst_end:
        return EDT_OFFSET
    return EST_OFFSET


def parse_time_token(time_token):
    """
    Parse a loose wall-clock string such as "1:00p", "8:15 PM" or "01pm".

    Returns (hour, minute) on a 24h clock; falls back to noon when the token
    cannot be parsed.
    """
    if not time_token:
        return DEFAULT_KICKOFF_HOUR, DEFAULT_KICKOFF_MINUTE

    match = _TIME_PATTERN.match(str(time_token).strip())
    if not match:
        return DEFAULT_KICKOFF_HOUR, DEFAULT_KICKOFF_MINUTE

    hours = int(match.group(1))
    minutes = int(match.group(2)) if match.group(2) else 0
    if hours < 1 or hours > 12 or minutes > 59:
        return DEFAULT_KICKOFF_HOUR, DEFAULT_KICKOFF_MINUTE

    meridiem = match.group(3).lower()
    if meridiem == "p" and hours != 12:
        hours += 12
    if meridiem == "a" and hours == 12:
        hours = 0
    return hours, minutes


def parse_date_token(date_token):
    """Parse a compact YYYYMMDD token into a date"""
    token = str(date_token or "").strip()
    if len(token) != 8 or not token.isdigit():
        raise UpstreamDataError(f"Malformed game date: {date_token!r}")
    try:
        return date(int(token[0:4]), int(token[4:6]), int(token[6:8]))
    except ValueError as e:
        raise UpstreamDataError(f"Invalid game date {date_token!r}: {e}")


def parse_kickoff(date_token, time_token):
    """
    Combine an Eastern date token and time token into an aware UTC datetime.

    Raises UpstreamDataError when the date token is unusable; a bad time token
    only degrades to a noon kickoff.
    """
    local_date = parse_date_token(date_token)
    hours, minutes = parse_time_token(time_token)
    offset = eastern_utc_offset(local_date)
    local_wall_clock = datetime(
        local_date.year, local_date.month, local_date.day, hours, minutes
    )
    return (local_wall_clock - offset).replace(tzinfo=timezone.utc)


def get_app_timezone():
    """Get the application's configured display timezone"""
    timezone_name = "America/New_York"
    if has_app_context():
        timezone_name = current_app.config.get("TIMEZONE", timezone_name)
    try:
        return pytz.timezone(timezone_name)
    except pytz.UnknownTimeZoneError:
        # Fallback to UTC if timezone is invalid
        return pytz.UTC


def convert_to_app_timezone(dt):
    """Convert a datetime to the application's timezone"""
    if dt is None:
        return None

    # If datetime is naive, assume it's UTC
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(get_app_timezone())


def format_game_time(dt, format_str="%a %m/%d at %I:%M %p"):
    """Format a game time in the application's timezone"""
    if dt is None:
        return "TBD"

    return convert_to_app_timezone(dt).strftime(format_str)


def get_current_season():
    """Season year the application is currently serving"""
    if has_app_context():
        return current_app.config["CURRENT_SEASON"]
    now = utc_now()
    return now.year if now.month >= 9 else now.year - 1
