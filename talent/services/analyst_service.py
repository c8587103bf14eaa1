"""Business logic for Business Analyst records and the reporting hierarchy."""
import datetime
import logging
from typing import Dict, List, Optional, Set

from ..constants import level_rank
from ..dates import now_iso, to_iso_date
from ..errors import ConflictError, NotFoundError, TalentError, ValidationError
from ..repositories.analyst_repository import AnalystRepository
from ..repositories.storage import generate_id
from ..validation import validate_analyst_data
from .csv_import import parse_csv, resolve_line_managers

_EDITABLE_FIELDS = ('first_name', 'last_name', 'email', 'level', 'line_manager_id',
                    'department', 'start_date', 'last_promotion_date')
_OPTIONAL_TEXT_FIELDS = ('email', 'department')


def _clean_text(value) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _sort_key(ba: Dict):
    return (ba.get('last_name', '').lower(), ba.get('first_name', '').lower())


class AnalystService:
    """Manages BA records and their line-manager hierarchy, delegating
    persistence to
    :class:`~talent.repositories.analyst_repository.AnalystRepository`.

    Rules
    -----
    * A line manager must be an existing, active BA.
    * Reporting lines may never form a cycle (a BA cannot manage themselves,
      directly or through their reports).
    * Moving a BA to a more senior level records ``last_promotion_date``.
    * Deactivating a BA re-parents their direct reports onto the BA's own
      manager, so nobody drops out of the org chart.
    * Records are never deleted; deactivated BAs simply stop appearing in
      hierarchy queries.
    """

    def __init__(self, repository: AnalystRepository) -> None:
        self._repo = repository
        self._log = logging.getLogger('talent.service.analysts')

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_all(self) -> List[Dict]:
        """Return a copy of every BA record, active or not."""
        return self._repo.all()

    def get_active(self) -> List[Dict]:
        return self._repo.active()

    def get_by_id(self, ba_id: str) -> Optional[Dict]:
        """Return the BA with *ba_id*, or ``None``."""
        return self._repo.find(ba_id)

    def get_by_level(self, level: str) -> List[Dict]:
        """Return active BAs at *level*."""
        return [ba for ba in self._repo.active() if ba.get('level') == level]

    def get_direct_reports(self, manager_id: str) -> List[Dict]:
        """Return active BAs whose line manager is *manager_id*."""
        return [ba for ba in self._repo.active()
                if manager_id and ba.get('line_manager_id') == manager_id]

    def search(self, term: str = '', level: Optional[str] = None) -> List[Dict]:
        """Case-insensitive match on name, email or department among active BAs."""
        needle = (term or '').strip().lower()
        results = []
        for ba in self._repo.active():
            if level and ba.get('level') != level:
                continue
            haystack = ' '.join(filter(None, (
                f"{ba.get('first_name', '')} {ba.get('last_name', '')}",
                ba.get('email'),
                ba.get('department'),
            ))).lower()
            if needle and needle not in haystack:
                continue
            results.append(ba)
        return sorted(results, key=_sort_key)

    def full_name(self, ba_id: Optional[str]) -> str:
        ba = self._repo.find(ba_id)
        if ba is None:
            return ''
        return f"{ba.get('first_name', '')} {ba.get('last_name', '')}".strip()

    # ------------------------------------------------------------------
    # Hierarchy
    # ------------------------------------------------------------------

    def would_create_circular_reference(self, ba_id: str,
                                        new_manager_id: Optional[str]) -> bool:
        """Return ``True`` if making *new_manager_id* the manager of *ba_id*
        would close a loop in the reporting chain."""
        if not new_manager_id:
            return False
        if new_manager_id == ba_id:
            return True

        visited: Set[str] = set()
        current_id: Optional[str] = new_manager_id
        while current_id and current_id not in visited:
            if current_id == ba_id:
                return True
            visited.add(current_id)
            manager = self._repo.find(current_id)
            current_id = manager.get('line_manager_id') if manager else None
        return False

    def get_org_chart(self) -> List[Dict]:
        """Build the reporting tree of active BAs.

        Returns:
            A list of root nodes, each ``{"ba": <record>, "children": [...],
            "depth": <int>}``.  A BA whose manager is missing or inactive is
            shown as a root.  Every active BA appears exactly once, even if the
            stored data contains a reporting loop.
        """
        active = sorted(self._repo.active(), key=_sort_key)
        active_ids = {ba['id'] for ba in active}
        children: Dict[str, List[Dict]] = {}
        for ba in active:
            manager_id = ba.get('line_manager_id')
            if manager_id in active_ids:
                children.setdefault(manager_id, []).append(ba)

        visited: Set[str] = set()

        def build(ba: Dict, depth: int) -> Dict:
            visited.add(ba['id'])
            return {
                'ba': ba,
                'children': [build(child, depth + 1)
                             for child in children.get(ba['id'], [])
                             if child['id'] not in visited],
                'depth': depth,
            }

        roots = [build(ba, 0) for ba in active
                 if ba.get('line_manager_id') not in active_ids]
        for ba in active:
            if ba['id'] not in visited:
                self._log.warning("Reporting loop detected at BA %s", ba['id'])
                roots.append(build(ba, 0))
        return roots

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def _check_manager(self, manager_id: str) -> None:
        manager = self._repo.find(manager_id)
        if manager is None:
            raise NotFoundError('Line manager not found')
        if not manager.get('is_active', True):
            raise ConflictError('Line manager is not active')

    def create(self, data: Dict) -> Dict:
        """Validate and store a new BA.

        Raises:
            ValidationError: If the payload is invalid.
            NotFoundError:   If ``line_manager_id`` does not exist.
            ConflictError:   If the line manager is inactive.
        """
        errors = validate_analyst_data(data)
        if errors:
            raise ValidationError(errors)

        manager_id = _clean_text(data.get('line_manager_id'))
        if manager_id:
            self._check_manager(manager_id)

        now = now_iso()
        ba: Dict = {
            'id': generate_id(),
            'first_name': data['first_name'].strip(),
            'last_name': data['last_name'].strip(),
            'email': _clean_text(data.get('email')),
            'level': data['level'],
            'line_manager_id': manager_id,
            'department': _clean_text(data.get('department')),
            'start_date': to_iso_date(data.get('start_date')),
            'last_promotion_date': None,
            'is_active': True,
            'created_at': now,
            'updated_at': now,
        }
        self._repo.add(ba)
        self._log.info("Created BA %s (%s %s)", ba['id'], ba['first_name'], ba['last_name'])
        return ba

    def update(self, ba_id: str, data: Dict) -> Optional[Dict]:
        """Apply a partial update to BA *ba_id*.

        A present-but-empty ``line_manager_id`` removes the manager.

        Returns:
            The updated record, or ``None`` if *ba_id* is unknown.

        Raises:
            ValidationError: If the merged record is invalid.
            NotFoundError:   If the new line manager does not exist.
            ConflictError:   If the new reporting line would form a cycle.
        """
        existing = self._repo.find(ba_id)
        if existing is None:
            return None

        changes = {key: data[key] for key in _EDITABLE_FIELDS if key in data}
        merged = dict(existing)
        merged.update(changes)

        errors = validate_analyst_data(merged)
        if errors:
            raise ValidationError(errors)

        if 'line_manager_id' in changes:
            new_manager_id = _clean_text(changes['line_manager_id'])
            changes['line_manager_id'] = new_manager_id
            if new_manager_id and new_manager_id != existing.get('line_manager_id'):
                if new_manager_id == ba_id:
                    raise ConflictError('A business analyst cannot be their own line manager')
                self._check_manager(new_manager_id)
                if self.would_create_circular_reference(ba_id, new_manager_id):
                    raise ConflictError('Cannot create circular reporting relationship')

        updated = dict(existing)
        for key, value in changes.items():
            if key in ('first_name', 'last_name'):
                value = str(value).strip()
            elif key in _OPTIONAL_TEXT_FIELDS:
                value = _clean_text(value)
            elif key in ('start_date', 'last_promotion_date'):
                value = to_iso_date(value)
            updated[key] = value

        if (level_rank(updated['level']) > level_rank(existing.get('level', ''))
                and 'last_promotion_date' not in changes):
            updated['last_promotion_date'] = datetime.date.today().isoformat()
            self._log.info("BA %s promoted from %s to %s",
                           ba_id, existing.get('level'), updated['level'])

        updated['updated_at'] = now_iso()
        self._repo.replace(updated)
        return updated

    def deactivate(self, ba_id: str) -> bool:
        """Mark BA *ba_id* inactive and re-parent their active direct reports.

        Returns:
            ``True`` if the BA exists; ``False`` otherwise.
        """
        existing = self._repo.find(ba_id)
        if existing is None:
            return False
        if not existing.get('is_active', True):
            return True

        now = now_iso()
        successor = existing.get('line_manager_id')
        if successor and self._repo.find_active(successor) is None:
            successor = None

        records = self._repo.all()
        moved = 0
        for record in records:
            if record['id'] == ba_id:
                record['is_active'] = False
                record['updated_at'] = now
            elif record.get('is_active', True) and record.get('line_manager_id') == ba_id:
                record['line_manager_id'] = successor
                record['updated_at'] = now
                moved += 1
        self._repo.replace_all(records)
        self._log.info("Deactivated BA %s; %d direct report(s) re-parented to %s",
                       ba_id, moved, successor or 'no manager')
        return True

    # ------------------------------------------------------------------
    # Bulk upload
    # ------------------------------------------------------------------

    def bulk_create(self, csv_content: str) -> Dict:
        """Create BAs from CSV text (see :mod:`talent.services.csv_import`).

        Rows are created first and in-batch line managers assigned in a second
        pass, so a manager may appear anywhere in the file.

        Returns:
            ``{"success", "created", "errors", "warnings"}``.
        """
        parsed = parse_csv(csv_content)
        if not parsed['success']:
            return {
                'success': False,
                'created': 0,
                'errors': parsed['errors'],
                'warnings': parsed['warnings'],
            }

        errors: List[str] = list(parsed['errors'])
        warnings: List[str] = list(parsed['warnings'])
        resolved, resolve_errors = resolve_line_managers(parsed['data'], self._repo.active())
        errors.extend(resolve_errors)

        created_ids: Dict[int, str] = {}
        for index, row in enumerate(resolved):
            try:
                ba = self.create(row)
            except TalentError as exc:
                errors.append(f"Row {row['row_number']}: {exc}")
                continue
            created_ids[index] = ba['id']

        for index, row in enumerate(resolved):
            manager_index = row.get('deferred_manager_index')
            if manager_index is None or index not in created_ids:
                continue
            name = f"{row['first_name']} {row['last_name']}"
            manager_id = created_ids.get(manager_index)
            if manager_id is None:
                warnings.append(f"Could not assign line manager for {name}: "
                                "line manager was not created")
                continue
            try:
                self.update(created_ids[index], {'line_manager_id': manager_id})
            except TalentError as exc:
                warnings.append(f"Could not assign line manager for {name}: {exc}")

        self._log.info("Bulk upload created %d BA(s) with %d error(s)",
                       len(created_ids), len(errors))
        return {
            'success': not errors,
            'created': len(created_ids),
            'errors': errors,
            'warnings': warnings,
        }
