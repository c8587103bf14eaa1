"""Business logic for per-round BA reviews and historical trends."""
import logging
from typing import Dict, List, Optional

from ..constants import (
    PROMOTION_READINESS,
    READINESS_SCORES,
    STATUS_ACTIVE,
    STATUS_COMPLETED,
    TREND_DECLINING,
    TREND_IMPROVING,
    TREND_NEW,
    TREND_STABLE,
    TRENDS,
)
from ..dates import now_iso
from ..errors import ConflictError, NotFoundError, StateError, ValidationError
from ..repositories.analyst_repository import AnalystRepository
from ..repositories.review_repository import ReviewRepository
from ..repositories.round_repository import RoundRepository
from ..repositories.storage import generate_id
from ..validation import validate_review_data

_SECTIONS = (
    ('wellbeing_concerns', 'has_issues'),
    ('performance_concerns', 'has_issues'),
    ('development_opportunities', 'has_opportunities'),
)

_EDITABLE_FIELDS = ('reviewer_id', 'wellbeing_concerns', 'performance_concerns',
                    'development_opportunities', 'promotion_readiness', 'actions',
                    'general_notes')


def _clean_section(section: Optional[Dict], flag: str) -> Dict:
    section = section or {}
    details = section.get('details')
    details = str(details).strip() if details is not None else ''
    return {flag: bool(section.get(flag)), 'details': details or None}


def _clean_actions(actions: Optional[List]) -> List[str]:
    return [str(a).strip() for a in (actions or []) if str(a).strip()]


def is_review_complete(data: Dict) -> bool:
    """A review is complete once promotion readiness is set and every flagged
    section carries details."""
    if data.get('promotion_readiness') not in PROMOTION_READINESS:
        return False
    for key, flag in _SECTIONS:
        section = data.get(key) or {}
        if section.get(flag) and not (section.get('details') or '').strip():
            return False
    return True


def calculate_trend(entries: List[Dict]) -> str:
    """Compare the two most recent trend entries.

    Higher readiness, or fewer actions with unchanged concerns, is
    ``Improving``; lower readiness or any change in concerns is
    ``Declining``; anything else is ``Stable``.  Fewer than two entries is
    ``New``.
    """
    if len(entries) < 2:
        return TREND_NEW

    previous, current = entries[-2], entries[-1]
    previous_score = READINESS_SCORES.get(previous['promotion_readiness'], 1)
    current_score = READINESS_SCORES.get(current['promotion_readiness'], 1)
    concerns_changed = previous['concerns'] != current['concerns']

    if current_score > previous_score or (
            not concerns_changed and current['action_count'] < previous['action_count']):
        return TREND_IMPROVING
    if current_score < previous_score or concerns_changed:
        return TREND_DECLINING
    return TREND_STABLE


class ReviewService:
    """Captures one review per BA per round, delegating persistence to
    :class:`~talent.repositories.review_repository.ReviewRepository`.

    When wired to the analyst and round repositories the service also checks
    that the BA and round exist, that new reviews go into **Active** rounds
    only, and that reviews in **Completed** rounds are never changed.

    Rules
    -----
    * At most one review per (BA, round).
    * A flagged concern or opportunity needs details.
    * ``is_complete`` is derived, never supplied by the caller.
    """

    def __init__(self, repository: ReviewRepository,
                 analyst_repository: Optional[AnalystRepository] = None,
                 round_repository: Optional[RoundRepository] = None) -> None:
        self._repo = repository
        self._analysts = analyst_repository
        self._rounds = round_repository
        self._log = logging.getLogger('talent.service.reviews')

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_all(self) -> List[Dict]:
        return self._repo.all()

    def get_by_id(self, review_id: str) -> Optional[Dict]:
        return self._repo.find(review_id)

    def get_by_round(self, round_id: str) -> List[Dict]:
        return self._repo.find_by_round(round_id)

    def get_by_analyst(self, ba_id: str) -> List[Dict]:
        return self._repo.find_by_analyst(ba_id)

    def get_by_analyst_and_round(self, ba_id: str, round_id: str) -> Optional[Dict]:
        return self._repo.find_by_analyst_and_round(ba_id, round_id)

    def get_previous_review(self, ba_id: str,
                            exclude_round_id: Optional[str] = None) -> Optional[Dict]:
        """Most recent complete review for *ba_id* outside *exclude_round_id*."""
        candidates = [r for r in self._repo.find_by_analyst(ba_id)
                      if r.get('is_complete') and r.get('round_id') != exclude_round_id]
        if not candidates:
            return None
        return max(candidates, key=lambda r: r.get('created_at') or '')

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def _round_status(self, round_id: str) -> Optional[str]:
        if self._rounds is None:
            return None
        rnd = self._rounds.find(round_id)
        if rnd is None:
            raise NotFoundError('Round not found')
        return rnd.get('status')

    def create(self, data: Dict) -> Dict:
        """Validate and store a new review.

        Raises:
            ValidationError: If the payload is invalid.
            NotFoundError:   If the BA or round does not exist.
            StateError:      If the round is not active.
            ConflictError:   If the BA already has a review in the round.
        """
        errors = validate_review_data(data)
        if errors:
            raise ValidationError(errors)

        round_id = data['round_id']
        ba_id = data['business_analyst_id']
        if self._analysts is not None and self._analysts.find(ba_id) is None:
            raise NotFoundError('Business analyst not found')
        status = self._round_status(round_id)
        if status is not None and status != STATUS_ACTIVE:
            raise StateError('Reviews can only be recorded for active rounds')

        if self._repo.find_by_analyst_and_round(ba_id, round_id) is not None:
            raise ConflictError('Review already exists for this BA and round')

        now = now_iso()
        review: Dict = {
            'id': generate_id(),
            'round_id': round_id,
            'business_analyst_id': ba_id,
            'reviewer_id': data.get('reviewer_id') or None,
            'promotion_readiness': data.get('promotion_readiness') or None,
            'actions': _clean_actions(data.get('actions')),
            'general_notes': (data.get('general_notes') or '').strip() or None,
            'created_at': now,
            'updated_at': now,
        }
        for key, flag in _SECTIONS:
            review[key] = _clean_section(data.get(key), flag)
        review['is_complete'] = is_review_complete(review)
        review['completed_at'] = now if review['is_complete'] else None

        self._repo.add(review)
        self._log.info("Created review %s for BA %s in round %s (complete=%s)",
                       review['id'], ba_id, round_id, review['is_complete'])
        return review

    def update(self, review_id: str, data: Dict) -> Optional[Dict]:
        """Apply a partial update to review *review_id*.

        The BA and round a review belongs to never change.

        Returns:
            The updated review, or ``None`` if *review_id* is unknown.

        Raises:
            ValidationError: If the merged review is invalid.
            StateError:      If the review's round is completed.
        """
        existing = self._repo.find(review_id)
        if existing is None:
            return None
        if self._round_status(existing['round_id']) == STATUS_COMPLETED:
            raise StateError('Cannot edit reviews in completed rounds')

        changes = {key: data[key] for key in _EDITABLE_FIELDS if key in data}
        merged = dict(existing)
        merged.update(changes)

        errors = validate_review_data(merged)
        if errors:
            raise ValidationError(errors)

        for key, flag in _SECTIONS:
            merged[key] = _clean_section(merged.get(key), flag)
        merged['actions'] = _clean_actions(merged.get('actions'))
        merged['general_notes'] = (merged.get('general_notes') or '').strip() or None
        merged['promotion_readiness'] = merged.get('promotion_readiness') or None
        merged['reviewer_id'] = merged.get('reviewer_id') or None

        now = now_iso()
        merged['is_complete'] = is_review_complete(merged)
        if not merged['is_complete']:
            merged['completed_at'] = None
        elif not existing.get('is_complete'):
            merged['completed_at'] = now
        merged['updated_at'] = now

        self._repo.replace(merged)
        return merged

    def delete(self, review_id: str) -> bool:
        """Delete a review.  Returns ``False`` if *review_id* is unknown.

        Raises:
            StateError: If the review's round is completed.
        """
        existing = self._repo.find(review_id)
        if existing is None:
            return False
        if self._round_status(existing['round_id']) == STATUS_COMPLETED:
            raise StateError('Cannot delete reviews in completed rounds')
        return self._repo.delete(review_id)

    # ------------------------------------------------------------------
    # Trends
    # ------------------------------------------------------------------

    def _round_name(self, round_id: str) -> str:
        if self._rounds is not None:
            rnd = self._rounds.find(round_id)
            if rnd and rnd.get('name'):
                return rnd['name']
        return f'Round {round_id}'

    def get_historical_trend(self, ba_id: str) -> Dict:
        """Summarise the BA's complete reviews in creation order.

        Returns:
            ``{"ba_id", "reviews": [...], "trend"}`` where each entry carries
            ``round_id``, ``round_name``, ``date``, ``promotion_readiness``,
            ``concerns`` (``wellbeing``/``performance`` flags) and
            ``action_count``.
        """
        complete = sorted(
            (r for r in self._repo.find_by_analyst(ba_id) if r.get('is_complete')),
            key=lambda r: r.get('created_at') or '',
        )
        entries = [{
            'round_id': r['round_id'],
            'round_name': self._round_name(r['round_id']),
            'date': r.get('created_at'),
            'promotion_readiness': r.get('promotion_readiness'),
            'concerns': {
                'wellbeing': bool((r.get('wellbeing_concerns') or {}).get('has_issues')),
                'performance': bool((r.get('performance_concerns') or {}).get('has_issues')),
            },
            'action_count': len(r.get('actions') or []),
        } for r in complete]

        return {'ba_id': ba_id, 'reviews': entries, 'trend': calculate_trend(entries)}

    @staticmethod
    def get_trend_summary(trends: List[Dict]) -> Dict[str, int]:
        """Count trends by kind: ``{"total", "Improving", "Stable", ...}``."""
        summary = {trend: 0 for trend in TRENDS}
        for item in trends:
            summary[item['trend']] = summary.get(item['trend'], 0) + 1
        summary['total'] = len(trends)
        return summary
