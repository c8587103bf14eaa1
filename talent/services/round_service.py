"""Business logic for quarterly Talent Rounds and their lifecycle."""
import datetime
import logging
import math
from typing import Dict, List, Optional

from ..constants import BA_LEVELS, STATUS_ACTIVE, STATUS_COMPLETED, STATUS_DRAFT
from ..dates import days_until_deadline, now_iso, to_iso_date
from ..errors import ConflictError, NotFoundError, StateError, StorageError, ValidationError
from ..repositories.analyst_repository import AnalystRepository
from ..repositories.review_repository import ReviewRepository
from ..repositories.round_repository import RoundRepository
from ..repositories.storage import generate_id
from ..validation import validate_round_data

_EDITABLE_FIELDS = ('name', 'quarter', 'year', 'deadline', 'description')


def _percentage(part: int, whole: int) -> int:
    """Whole-number percentage, rounding halves up."""
    if whole <= 0:
        return 0
    return int(math.floor(part * 100 / whole + 0.5))


class RoundService:
    """Creates rounds and drives them through Draft → Active → Completed,
    delegating persistence to
    :class:`~talent.repositories.round_repository.RoundRepository`.

    Rules
    -----
    * Only one round may exist per ``quarter``/``year``.
    * Only **Draft** rounds can be activated or deleted.
    * Only **Active** rounds can be completed, and only once every active BA
      has a complete review in the round.
    * **Completed** rounds are read-only.
    """

    def __init__(self, repository: RoundRepository,
                 analyst_repository: AnalystRepository,
                 review_repository: ReviewRepository,
                 created_by: str = 'system') -> None:
        self._repo = repository
        self._analysts = analyst_repository
        self._reviews = review_repository
        self._created_by = created_by
        self._log = logging.getLogger('talent.service.rounds')

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_all(self) -> List[Dict]:
        return self._repo.all()

    def get_by_id(self, round_id: str) -> Optional[Dict]:
        return self._repo.find(round_id)

    def get_active(self) -> List[Dict]:
        return [r for r in self._repo.all() if r.get('status') == STATUS_ACTIVE]

    def get_round_summary(self, round_id: str) -> Dict:
        """Completion statistics for *round_id* over the active BAs.

        Returns:
            ``{"round_id", "total_bas", "completed_reviews", "pending_reviews",
            "completion_percentage", "reviews_by_level"}`` where
            ``reviews_by_level`` maps every level to ``{"total", "completed"}``.

        Raises:
            NotFoundError: If the round does not exist.
        """
        if self._repo.find(round_id) is None:
            raise NotFoundError('Round not found')

        active = self._analysts.active()
        completed_for = {
            r['business_analyst_id'] for r in self._reviews.find_by_round(round_id)
            if r.get('is_complete')
        }

        by_level: Dict[str, Dict[str, int]] = {
            level: {'total': 0, 'completed': 0} for level in BA_LEVELS
        }
        completed = 0
        for ba in active:
            bucket = by_level.setdefault(ba.get('level'), {'total': 0, 'completed': 0})
            bucket['total'] += 1
            if ba['id'] in completed_for:
                bucket['completed'] += 1
                completed += 1

        total = len(active)
        return {
            'round_id': round_id,
            'total_bas': total,
            'completed_reviews': completed,
            'pending_reviews': total - completed,
            'completion_percentage': _percentage(completed, total),
            'reviews_by_level': by_level,
        }

    def get_upcoming_deadlines(self, today: Optional[datetime.date] = None) -> List[Dict]:
        """Active rounds that are not yet overdue, soonest first."""
        upcoming = []
        for item in self._deadlines(today):
            if item['days_remaining'] >= 0:
                upcoming.append(item)
        return sorted(upcoming, key=lambda d: d['days_remaining'])

    def get_overdue(self, today: Optional[datetime.date] = None) -> List[Dict]:
        """Active rounds whose deadline has passed, most overdue first."""
        overdue = [d for d in self._deadlines(today) if d['days_remaining'] < 0]
        return sorted(overdue, key=lambda d: d['days_remaining'])

    def _deadlines(self, today: Optional[datetime.date]) -> List[Dict]:
        items = []
        for rnd in self.get_active():
            try:
                days = days_until_deadline(rnd.get('deadline'), today)
            except ValueError:
                self._log.warning("Round %s has an invalid deadline %r",
                                  rnd.get('id'), rnd.get('deadline'))
                continue
            items.append({
                'round_id': rnd['id'],
                'round_name': rnd.get('name', ''),
                'deadline': rnd.get('deadline'),
                'days_remaining': days,
            })
        return items

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(self, data: Dict) -> Dict:
        """Validate and store a new Draft round.

        Raises:
            ValidationError: If the payload is invalid.
            ConflictError:   If a round already exists for the quarter/year.
        """
        errors = validate_round_data(data)
        if errors:
            raise ValidationError(errors)

        quarter = str(data['quarter']).strip()
        year = int(data['year'])
        if self._repo.find_by_period(quarter, year) is not None:
            raise ConflictError('A round already exists for this quarter and year')

        rnd: Dict = {
            'id': generate_id(),
            'name': data['name'].strip(),
            'quarter': quarter,
            'year': year,
            'deadline': to_iso_date(data['deadline']),
            'status': STATUS_DRAFT,
            'created_by': self._created_by,
            'created_at': now_iso(),
            'completed_at': None,
            'description': (data.get('description') or '').strip() or None,
        }
        self._repo.add(rnd)
        self._log.info("Created round %s (%s %s %s)", rnd['id'], rnd['name'], quarter, year)
        return rnd

    def update(self, round_id: str, data: Dict) -> Optional[Dict]:
        """Apply a partial update to a Draft or Active round.

        Returns:
            The updated round, or ``None`` if *round_id* is unknown.

        Raises:
            StateError:      If the round is completed.
            ValidationError: If the merged round is invalid.
            ConflictError:   If the new quarter/year clashes with another round.
        """
        existing = self._repo.find(round_id)
        if existing is None:
            return None
        if existing.get('status') == STATUS_COMPLETED:
            raise StateError('Cannot edit completed rounds')

        changes = {key: data[key] for key in _EDITABLE_FIELDS if key in data}
        merged = dict(existing)
        merged.update(changes)

        deadline_changed = (
            'deadline' in changes
            and to_iso_date(changes['deadline']) != existing.get('deadline')
        )
        errors = validate_round_data(merged, allow_past_deadline=not deadline_changed)
        if errors:
            raise ValidationError(errors)

        merged['name'] = str(merged['name']).strip()
        merged['quarter'] = str(merged['quarter']).strip()
        merged['year'] = int(merged['year'])
        merged['deadline'] = to_iso_date(merged['deadline'])
        merged['description'] = (merged.get('description') or '').strip() or None

        clash = self._repo.find_by_period(merged['quarter'], merged['year'])
        if clash is not None and clash['id'] != round_id:
            raise ConflictError('A round already exists for this quarter and year')

        self._repo.replace(merged)
        return merged

    def activate(self, round_id: str) -> Optional[Dict]:
        """Move a Draft round to Active.  ``None`` if *round_id* is unknown.

        Raises:
            StateError: If the round is not a draft.
        """
        rnd = self._repo.find(round_id)
        if rnd is None:
            return None
        if rnd.get('status') != STATUS_DRAFT:
            raise StateError('Only draft rounds can be activated')

        rnd['status'] = STATUS_ACTIVE
        self._repo.replace(rnd)
        self._log.info("Activated round %s", round_id)
        return rnd

    def complete(self, round_id: str) -> Optional[Dict]:
        """Move an Active round to Completed.  ``None`` if *round_id* is unknown.

        Raises:
            StateError: If the round is not active or still has pending reviews.
        """
        rnd = self._repo.find(round_id)
        if rnd is None:
            return None
        if rnd.get('status') != STATUS_ACTIVE:
            raise StateError('Only active rounds can be completed')

        summary = self.get_round_summary(round_id)
        # The percentage is rounded for display; gate on the raw counts.
        if summary['total_bas'] == 0 or summary['pending_reviews'] > 0:
            raise StateError('Cannot complete round with incomplete reviews')

        rnd['status'] = STATUS_COMPLETED
        rnd['completed_at'] = now_iso()
        self._repo.replace(rnd)
        self._log.info("Completed round %s", round_id)
        return rnd

    def delete(self, round_id: str) -> bool:
        """Delete a Draft round and any reviews recorded against it.

        Returns ``False`` if *round_id* is unknown.  The round is removed
        first; if the review cascade cannot be written the round is put back.

        Raises:
            StateError:   If the round has already been activated.
            StorageError: If either write fails.
        """
        rnd = self._repo.find(round_id)
        if rnd is None:
            return False
        if rnd.get('status') != STATUS_DRAFT:
            raise StateError('Only draft rounds can be deleted')

        rounds_before = self._repo.all()
        self._repo.delete(round_id)
        if self._reviews.find_by_round(round_id):
            try:
                self._reviews.replace_all(
                    [r for r in self._reviews.all() if r.get('round_id') != round_id])
            except StorageError:
                self._log.error("Could not remove reviews of round %s; restoring it", round_id)
                self._repo.replace_all(rounds_before)
                raise
        self._log.info("Deleted draft round %s", round_id)
        return True
