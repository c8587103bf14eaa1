"""Enumerated values shared by validation and the services."""

# Ordered from most to least senior.
LEVEL_PRINCIPAL = 'Principal'
LEVEL_LEAD = 'Lead'
LEVEL_SENIOR = 'Senior'
LEVEL_INTERMEDIATE = 'Intermediate'
LEVEL_CONSULTANT = 'Consultant'

BA_LEVELS = (
    LEVEL_PRINCIPAL,
    LEVEL_LEAD,
    LEVEL_SENIOR,
    LEVEL_INTERMEDIATE,
    LEVEL_CONSULTANT,
)

STATUS_DRAFT = 'Draft'
STATUS_ACTIVE = 'Active'
STATUS_COMPLETED = 'Completed'

ROUND_STATUSES = (STATUS_DRAFT, STATUS_ACTIVE, STATUS_COMPLETED)

READINESS_READY = 'Ready'
READINESS_NEAR_READY = 'Near Ready'
READINESS_NOT_READY = 'Not Ready'

PROMOTION_READINESS = (READINESS_READY, READINESS_NEAR_READY, READINESS_NOT_READY)

READINESS_SCORES = {
    READINESS_READY: 3,
    READINESS_NEAR_READY: 2,
    READINESS_NOT_READY: 1,
}

TREND_IMPROVING = 'Improving'
TREND_STABLE = 'Stable'
TREND_DECLINING = 'Declining'
TREND_NEW = 'New'

TRENDS = (TREND_IMPROVING, TREND_STABLE, TREND_DECLINING, TREND_NEW)

MIN_ROUND_YEAR = 2020
MAX_ROUND_YEAR = 2050


def level_rank(level: str) -> int:
    """Return a seniority rank for *level* (higher is more senior, 0 if unknown)."""
    if level not in BA_LEVELS:
        return 0
    return len(BA_LEVELS) - BA_LEVELS.index(level)
