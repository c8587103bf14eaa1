"""Demo dataset: a small BA org chart and a draft round for this quarter."""
import datetime
import logging
from typing import Dict, Optional

from .constants import (
    LEVEL_CONSULTANT,
    LEVEL_INTERMEDIATE,
    LEVEL_LEAD,
    LEVEL_PRINCIPAL,
    LEVEL_SENIOR,
)
from .dates import current_quarter
from .errors import TalentError
from .services.analyst_service import AnalystService
from .services.round_service import RoundService

logger = logging.getLogger('talent.sample_data')

# (key, first, last, level, manager key, department, start date)
SAMPLE_ANALYSTS = [
    ('sarah', 'Sarah', 'Johnson', LEVEL_PRINCIPAL, None, 'Digital Transformation', '2020-01-15'),
    ('mike', 'Mike', 'Chen', LEVEL_LEAD, 'sarah', 'Digital Transformation', '2021-03-10'),
    ('emma', 'Emma', 'Davis', LEVEL_LEAD, 'sarah', 'Operations', '2021-07-20'),
    ('james', 'James', 'Wilson', LEVEL_SENIOR, 'mike', 'Digital Transformation', '2022-02-01'),
    ('lisa', 'Lisa', 'Brown', LEVEL_SENIOR, 'mike', 'Digital Transformation', '2022-05-15'),
    ('alex', 'Alex', 'Taylor', LEVEL_INTERMEDIATE, 'emma', 'Operations', '2023-01-10'),
    ('jordan', 'Jordan', 'Miller', LEVEL_INTERMEDIATE, 'emma', 'Operations', '2023-03-20'),
    ('casey', 'Casey', 'Anderson', LEVEL_CONSULTANT, 'mike', 'Digital Transformation', '2023-09-01'),
]


def create_sample_data(analyst_service: AnalystService, round_service: RoundService,
                       today: Optional[datetime.date] = None) -> Dict:
    """Seed the sample org chart and a draft round for the current quarter.

    Returns:
        ``{"success": bool, "message": str}``.
    """
    today = today or datetime.date.today()
    created: Dict[str, str] = {}
    try:
        for key, first, last, level, manager, department, start in SAMPLE_ANALYSTS:
            ba = analyst_service.create({
                'first_name': first,
                'last_name': last,
                'email': f'{first.lower()}.{last.lower()}@company.com',
                'level': level,
                'line_manager_id': created.get(manager) if manager else None,
                'department': department,
                'start_date': start,
            })
            created[key] = ba['id']

        quarter = current_quarter(today)
        round_service.create({
            'name': f'{quarter} {today.year} Talking Talent',
            'quarter': quarter,
            'year': today.year,
            'deadline': (today + datetime.timedelta(days=90)).isoformat(),
            'description': ('Quarterly review focusing on career development '
                            'and promotion readiness'),
        })
    except TalentError as exc:
        logger.warning("Sample data creation stopped: %s", exc)
        return {'success': False, 'message': str(exc)}

    logger.info("Sample data created (%d BAs)", len(created))
    return {'success': True, 'message': 'Sample data created successfully'}
