"""Whole-dataset JSON export/import and storage housekeeping."""
import datetime
import json
import logging
from typing import Dict, List, Tuple

from ..errors import StorageError
from ..repositories.analyst_repository import AnalystRepository
from ..repositories.base import RecordRepository
from ..repositories.review_repository import ReviewRepository
from ..repositories.round_repository import RoundRepository

EXPORT_VERSION = '1.0'

# (document key, label used in error messages)
_SECTIONS: Tuple[Tuple[str, str], ...] = (
    ('business_analysts', 'business analysts'),
    ('talent_rounds', 'talent rounds'),
    ('reviews', 'reviews'),
)


class ExportService:
    """Serialises the three record arrays into one JSON document and restores
    them again.

    Export document::

        {
            "business_analysts": [...],
            "talent_rounds":     [...],
            "reviews":           [...],
            "exported_at":       "<ISO-8601>",
            "version":           "1.0"
        }

    Import replaces each array that is present in the document; arrays that
    are absent are left untouched.
    """

    def __init__(self, analyst_repository: AnalystRepository,
                 round_repository: RoundRepository,
                 review_repository: ReviewRepository) -> None:
        self._repos: Dict[str, RecordRepository] = {
            'business_analysts': analyst_repository,
            'talent_rounds': round_repository,
            'reviews': review_repository,
        }
        self._log = logging.getLogger('talent.service.export')

    # ------------------------------------------------------------------
    # Export / import
    # ------------------------------------------------------------------

    def export_all(self) -> Dict:
        """Return ``{"success", "data", "filename", "error"}``."""
        now = datetime.datetime.now()
        try:
            document = {key: repo.all() for key, repo in self._repos.items()}
            document['exported_at'] = now.isoformat()
            document['version'] = EXPORT_VERSION
            data = json.dumps(document, indent=2)
        except (TypeError, ValueError) as exc:
            self._log.error("Export failed: %s", exc)
            return {'success': False, 'data': None, 'filename': '', 'error': str(exc)}

        filename = f"talking-talent-export_{now.strftime('%Y-%m-%d_%H-%M-%S')}.json"
        self._log.info("Exported %s", ', '.join(
            f'{len(repo.data)} {key}' for key, repo in self._repos.items()))
        return {'success': True, 'data': data, 'filename': filename, 'error': None}

    @staticmethod
    def _valid_records(items: List) -> bool:
        return all(isinstance(item, dict) and item.get('id') for item in items)

    def import_data(self, json_string: str) -> Dict:
        """Restore records from an export document.

        Returns:
            ``{"success", "imported", "errors"}`` where ``imported`` counts the
            records written across all arrays.
        """
        errors: List[str] = []
        imported = 0

        try:
            document = json.loads(json_string)
        except (TypeError, ValueError):
            return {'success': False, 'imported': 0, 'errors': ['Invalid JSON format']}

        if not isinstance(document, dict) or not any(
                isinstance(document.get(key), list) for key, _ in _SECTIONS):
            return {'success': False, 'imported': 0, 'errors': ['Invalid import data format']}

        for key, label in _SECTIONS:
            items = document.get(key)
            if not isinstance(items, list):
                continue
            if not self._valid_records(items):
                errors.append(f'Failed to import {label}: every record needs an id')
                continue
            try:
                self._repos[key].replace_all(items)
            except StorageError as exc:
                self._log.error("Import of %s failed: %s", key, exc)
                errors.append(f'Failed to import {label}')
                continue
            imported += len(items)

        self._log.info("Imported %d record(s) with %d error(s)", imported, len(errors))
        return {'success': not errors, 'imported': imported, 'errors': errors}

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    def clear_all(self) -> None:
        """Remove every stored record."""
        for repo in self._repos.values():
            repo.clear()
        self._log.warning("All stored data cleared")

    def get_data_counts(self) -> Dict[str, int]:
        return {key: len(repo.data) for key, repo in self._repos.items()}

    def get_storage_size(self) -> Dict[str, int]:
        """Bytes used per storage key plus a ``total``."""
        sizes = {repo.key: repo.size_bytes() for repo in self._repos.values()}
        sizes['total'] = sum(sizes.values())
        return sizes
