"""Time helpers for the Jarvis WhatsApp assistant.

Jarvis works on Abidjan time (GMT+0, no daylight saving). This module gives
the current local time, French date formatting, business-hours checks and the
parser behind ``/remind`` and ``/schedule`` that turns expressions such as
``2h``, ``dans 30 minutes``, ``demain 10h30`` or ``25/12/2025 09:00`` into a
datetime.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Tuple
from zoneinfo import ZoneInfo

from src.config.jarvis import BusinessHours


logger = logging.getLogger("jarvis.time_service")

DEFAULT_TIMEZONE = "Africa/Abidjan"

_DAYS_FR = ["lundi", "mardi", "mercredi", "jeudi", "vendredi", "samedi", "dimanche"]
_MONTHS_FR = [
    "janvier", "février", "mars", "avril", "mai", "juin",
    "juillet", "août", "septembre", "octobre", "novembre", "décembre",
]


def now_local(timezone_name: str = DEFAULT_TIMEZONE) -> datetime:
    return datetime.now(ZoneInfo(timezone_name))


def to_local(value: datetime, timezone_name: str = DEFAULT_TIMEZONE) -> datetime:
    return value.astimezone(ZoneInfo(timezone_name))


def parse_iso(value: str) -> datetime:
    """Parse an ISO timestamp as stored by the persistence layer."""

    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def format_date_fr(value: datetime) -> str:
    """``lundi 3 mars 2025``"""

    return f"{_DAYS_FR[value.weekday()]} {value.day} {_MONTHS_FR[value.month - 1]} {value.year}"


def format_time(value: datetime) -> str:
    return value.strftime("%H:%M")


def format_datetime_fr(value: datetime) -> str:
    return f"{format_date_fr(value)} à {format_time(value)}"


def format_date_short(value: datetime) -> str:
    return value.strftime("%d/%m/%Y")


def relative_time_fr(value: datetime, now: Optional[datetime] = None) -> str:
    """Past timestamps as ``il y a 5 minutes``; older than 30 days as a date."""

    current = now or now_local()
    minutes = int((current - value).total_seconds() // 60)
    hours = minutes // 60
    days = hours // 24

    if minutes < 1:
        return "à l'instant"
    if minutes < 60:
        return f"il y a {minutes} minute{'s' if minutes > 1 else ''}"
    if hours < 24:
        return f"il y a {hours} heure{'s' if hours > 1 else ''}"
    if days < 30:
        return f"il y a {days} jour{'s' if days > 1 else ''}"
    return format_date_short(value)


def is_within_business_hours(value: Optional[datetime] = None, hours: Optional[BusinessHours] = None) -> bool:
    config = hours or BusinessHours()
    current = to_local(value, config.timezone) if value else now_local(config.timezone)
    window = config.hours.get(current.weekday())
    if not window:
        return False
    start, end = window
    return start <= current.hour < end


# ---------------------------------------------------------------------------
# Time expression parsing
# ---------------------------------------------------------------------------

_UNIT_SECONDS = {
    "m": 60, "min": 60, "mn": 60, "minute": 60, "minutes": 60,
    "h": 3600, "heure": 3600, "heures": 3600, "hour": 3600, "hours": 3600,
    "j": 86400, "d": 86400, "jour": 86400, "jours": 86400, "day": 86400, "days": 86400,
    "semaine": 604800, "semaines": 604800, "week": 604800, "weeks": 604800,
}

_UNITS = "|".join(sorted(_UNIT_SECONDS, key=len, reverse=True))
_CLOCK = r"(\d{1,2})\s*(?:[h:])\s*(\d{2})?"

_RELATIVE_RE = re.compile(rf"^(?:dans|in)\s+(\d+)\s*({_UNITS})\b", re.IGNORECASE)
_COMPACT_RE = re.compile(rf"^(\d+)\s*({_UNITS})(?=\s|$)", re.IGNORECASE)
_DAY_WORD_RE = re.compile(
    rf"^(demain|tomorrow|aujourd'hui|today)(?:\s+(?:à|a|at))?(?:\s+{_CLOCK})?(?=\s|$)",
    re.IGNORECASE,
)
_DATE_RE = re.compile(
    rf"^(\d{{1,2}})/(\d{{1,2}})(?:/(\d{{2,4}}))?(?:\s+(?:à|a|at))?(?:\s+{_CLOCK})?(?=\s|$)",
    re.IGNORECASE,
)
_CLOCK_ONLY_RE = re.compile(rf"^(?:à|a|at)?\s*{_CLOCK}(?=\s|$)", re.IGNORECASE)


def _at(day: datetime, hour: Optional[str], minute: Optional[str], default_hour: int = 9) -> datetime:
    h = int(hour) if hour else default_hour
    m = int(minute) if minute else 0
    return day.replace(hour=h, minute=m, second=0, microsecond=0)


def _relative(match: re.Match, now: datetime) -> datetime:
    amount = int(match.group(1))
    return now + timedelta(seconds=amount * _UNIT_SECONDS[match.group(2).lower()])


def _day_word(match: re.Match, now: datetime) -> datetime:
    word = match.group(1).lower()
    day = now + timedelta(days=1) if word in ("demain", "tomorrow") else now
    return _at(day, match.group(2), match.group(3))


def _date(match: re.Match, now: datetime) -> datetime:
    day, month, year = int(match.group(1)), int(match.group(2)), match.group(3)
    if year is None:
        full_year = now.year
    else:
        full_year = int(year) + 2000 if len(year) == 2 else int(year)
    base = now.replace(year=full_year, month=month, day=day)
    return _at(base, match.group(4), match.group(5))


def _clock_only(match: re.Match, now: datetime) -> datetime:
    candidate = _at(now, match.group(1), match.group(2))
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


_PARSERS: List[Tuple[re.Pattern, Callable[[re.Match, datetime], datetime]]] = [
    (_RELATIVE_RE, _relative),
    (_DAY_WORD_RE, _day_word),
    (_DATE_RE, _date),
    (_COMPACT_RE, _relative),
    (_CLOCK_ONLY_RE, _clock_only),
]


def parse_time_prefix(text: str, now: Optional[datetime] = None) -> Optional[Tuple[datetime, str]]:
    """Parse a time expression at the start of ``text``.

    Returns ``(when, rest)`` where ``rest`` is the text that follows the
    expression, or ``None`` if ``text`` does not start with a time.

    Examples:
        >>> from datetime import datetime, timezone
        >>> now = datetime(2025, 3, 3, 8, 0, tzinfo=timezone.utc)
        >>> parse_time_prefix("2h appeler le client", now)
        (datetime.datetime(2025, 3, 3, 10, 0, tzinfo=datetime.timezone.utc), 'appeler le client')
        >>> parse_time_prefix("demain 10h30 réunion", now)[0].hour
        10
    """

    current = now or now_local()
    stripped = text.strip()

    for pattern, build in _PARSERS:
        match = pattern.match(stripped)
        if not match:
            continue
        try:
            when = build(match, current)
        except ValueError:
            # 31/02, 25h70 and friends
            logger.info("Rejected invalid time expression: %r", match.group(0))
            return None
        return when, stripped[match.end():].strip()

    return None
