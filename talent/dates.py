"""Date helpers: parsing stored ISO strings, display formats and deadlines."""
import datetime
from typing import Optional, Union

DateLike = Union[datetime.date, datetime.datetime, str]


def parse_date(value: Optional[DateLike]) -> Optional[datetime.date]:
    """Return *value* as a :class:`datetime.date`, or ``None`` if it cannot
    be interpreted.

    Accepts ``date``/``datetime`` objects and ISO-8601 strings (either a plain
    ``YYYY-MM-DD`` date or a full timestamp).
    """
    if value is None or value == '':
        return None
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip()
    try:
        return datetime.date.fromisoformat(text[:10])
    except ValueError:
        return None


def parse_datetime(value: Optional[DateLike]) -> Optional[datetime.datetime]:
    if value is None or value == '':
        return None
    if isinstance(value, datetime.datetime):
        return value
    if isinstance(value, datetime.date):
        return datetime.datetime(value.year, value.month, value.day)
    try:
        return datetime.datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        return None


def to_iso_date(value: Optional[DateLike]) -> Optional[str]:
    parsed = parse_date(value)
    return parsed.isoformat() if parsed else None


def now_iso() -> str:
    return datetime.datetime.now().isoformat()


def format_date(value: DateLike) -> str:
    """Format as ``dd/mm/yyyy``; unparseable input yields ``''``."""
    parsed = parse_date(value)
    return parsed.strftime('%d/%m/%Y') if parsed else ''


def format_datetime(value: DateLike) -> str:
    """Format as ``dd/mm/yyyy HH:MM``; unparseable input yields ``''``."""
    parsed = parse_datetime(value)
    return parsed.strftime('%d/%m/%Y %H:%M') if parsed else ''


def days_until_deadline(deadline: DateLike,
                        today: Optional[datetime.date] = None) -> int:
    """Calendar days from *today* until *deadline* (negative once overdue).

    Raises:
        ValueError: If *deadline* is not a valid date.
    """
    deadline_date = parse_date(deadline)
    if deadline_date is None:
        raise ValueError(f"Invalid deadline: {deadline!r}")
    today = today or datetime.date.today()
    return (deadline_date - today).days


def is_overdue(deadline: DateLike, today: Optional[datetime.date] = None) -> bool:
    return days_until_deadline(deadline, today) < 0


def current_quarter(today: Optional[datetime.date] = None) -> str:
    """Return the calendar quarter label (``Q1``..``Q4``) for *today*."""
    today = today or datetime.date.today()
    return f'Q{(today.month - 1) // 3 + 1}'
