"""Repository for Business Analyst staff records."""
from typing import Dict, List, Optional

from .base import RecordRepository
from .storage import STORAGE_KEYS


class AnalystRepository(RecordRepository):
    """Persists BA records to ``tt_business_analysts.json``.

    Schema::

        [
            {
                "id":                  "<str>",
                "first_name":          "<str>",
                "last_name":           "<str>",
                "email":               "<str> | null",
                "level":               "Principal|Lead|Senior|Intermediate|Consultant",
                "line_manager_id":     "<str> | null",
                "department":          "<str> | null",
                "start_date":          "<YYYY-MM-DD> | null",
                "last_promotion_date": "<YYYY-MM-DD> | null",
                "is_active":           <bool>,
                "created_at":          "<ISO-8601>",
                "updated_at":          "<ISO-8601>"
            }
        ]
    """

    def __init__(self, data_dir: str) -> None:
        super().__init__(data_dir, STORAGE_KEYS['business_analysts'])

    def find_active(self, ba_id: Optional[str]) -> Optional[Dict]:
        record = self.find(ba_id)
        if record is None or not record.get('is_active', True):
            return None
        return record

    def active(self) -> List[Dict]:
        return [r for r in self.all() if r.get('is_active', True)]
