"""Payload validation for analysts, rounds and reviews.

Every validator is a pure function that returns a (possibly empty) list of
human-readable error strings; the services turn a non-empty list into a
:class:`~talent.errors.ValidationError`.  JSON payloads arrive untyped, so
text fields and concern sections are type-checked here before the services
strip or read them.
"""
import datetime
import re
from typing import Any, Dict, List, Optional

from .constants import BA_LEVELS, MAX_ROUND_YEAR, MIN_ROUND_YEAR, PROMOTION_READINESS
from .dates import parse_date

_EMAIL_RE = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')

_SECTION_FLAGS = (
    ('wellbeing_concerns', 'has_issues', 'Wellbeing concerns',
     'Wellbeing concerns details are required when issues are indicated'),
    ('performance_concerns', 'has_issues', 'Performance concerns',
     'Performance concerns details are required when issues are indicated'),
    ('development_opportunities', 'has_opportunities', 'Development opportunities',
     'Development opportunities details are required when opportunities are indicated'),
)


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL_RE.match(email or ''))


def _blank(value: Any) -> bool:
    return value is None or not str(value).strip()


def _required_text(data: Dict, key: str, label: str, errors: List[str]) -> None:
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        errors.append(f'{label} must be text')
    elif _blank(value):
        errors.append(f'{label} is required')


def _optional_text(data: Dict, key: str, label: str, errors: List[str]) -> None:
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        errors.append(f'{label} must be text')


def validate_analyst_data(data: Dict) -> List[str]:
    errors: List[str] = []

    _required_text(data, 'first_name', 'First name', errors)
    _required_text(data, 'last_name', 'Last name', errors)

    if data.get('level') not in BA_LEVELS:
        errors.append('Valid level is required')

    email = data.get('email')
    if email and not is_valid_email(str(email).strip()):
        errors.append('Valid email address is required')

    if data.get('start_date') and parse_date(data['start_date']) is None:
        errors.append('Start date must be a valid date')

    return errors


def validate_round_data(data: Dict,
                        today: Optional[datetime.date] = None,
                        allow_past_deadline: bool = False) -> List[str]:
    """Validate a round payload.

    The deadline is compared by calendar date only, so a round may be due
    today but not yesterday.  Edits that keep an existing deadline pass
    *allow_past_deadline* so an overdue round can still be renamed.
    """
    errors: List[str] = []

    _required_text(data, 'name', 'Round name', errors)

    if _blank(data.get('quarter')):
        errors.append('Quarter is required')

    year = data.get('year')
    try:
        year = int(year)
    except (TypeError, ValueError):
        year = None
    if not year or year < MIN_ROUND_YEAR or year > MAX_ROUND_YEAR:
        errors.append('Valid year is required')

    deadline = data.get('deadline')
    if not deadline:
        errors.append('Deadline is required')
    else:
        deadline_date = parse_date(deadline)
        if deadline_date is None:
            errors.append('Deadline must be a valid date')
        elif not allow_past_deadline and deadline_date < (today or datetime.date.today()):
            errors.append('Deadline cannot be in the past')

    _optional_text(data, 'description', 'Description', errors)

    return errors


def _section_errors(section: Any, flag: str, label: str, missing_details: str) -> List[str]:
    if section is None:
        return []
    if not isinstance(section, dict):
        return [f'{label} must be an object']
    details = section.get('details')
    if details is not None and not isinstance(details, str):
        return [f'{label} details must be text']
    if section.get(flag) and _blank(details):
        return [missing_details]
    return []


def validate_review_data(data: Dict) -> List[str]:
    errors: List[str] = []

    if not data.get('round_id'):
        errors.append('Round ID is required')

    if not data.get('business_analyst_id'):
        errors.append('Business Analyst ID is required')

    for key, flag, label, missing_details in _SECTION_FLAGS:
        errors.extend(_section_errors(data.get(key), flag, label, missing_details))

    readiness = data.get('promotion_readiness')
    if readiness and readiness not in PROMOTION_READINESS:
        errors.append('Valid promotion readiness is required')

    actions = data.get('actions')
    if actions is not None and not isinstance(actions, list):
        errors.append('Actions must be a list')

    _optional_text(data, 'general_notes', 'General notes', errors)

    return errors
