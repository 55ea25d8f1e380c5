import os
from datetime import datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
from taskcal.core import config


def format_iso_for_api(dt):
    """Format datetime as ISO format for Google API."""
    return dt.isoformat().replace('+00:00', 'Z')


def parse_iso_from_api(iso_str):
    """Parse ISO datetime string from Google API."""
    return datetime.fromisoformat(iso_str.replace('Z', '+00:00'))


def to_local(dt):
    """Return dt as an aware datetime in the local zone.

    Naive values are taken to already be local wall-clock time.
    """
    return dt.astimezone()


def to_utc(dt):
    """Convert a datetime (naive means local) to UTC."""
    return to_local(dt).astimezone(timezone.utc)


def local_date(dt):
    """Calendar day of dt in the local zone."""
    return to_local(dt).date()


def local_today():
    return datetime.now().astimezone().date()


def utc_now_iso():
    return format_iso_for_api(datetime.now(timezone.utc).replace(microsecond=0))


def _is_zone(name):
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


def local_timezone_name():
    """Return the IANA name of the local time zone, falling back to UTC."""
    candidates = [config.TIMEZONE, os.getenv('TZ', '')]
    try:
        link = os.readlink('/etc/localtime')
    except OSError:
        link = ''
    if 'zoneinfo/' in link:
        candidates.append(link.split('zoneinfo/', 1)[1])

    for name in candidates:
        name = (name or '').lstrip(':').strip()
        if name and _is_zone(name):
            return name
    return config.FALLBACK_TIMEZONE
