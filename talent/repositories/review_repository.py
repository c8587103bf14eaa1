"""Repository for per-(BA, round) review records."""
import copy
from typing import Dict, List, Optional

from .base import RecordRepository
from .storage import STORAGE_KEYS


class ReviewRepository(RecordRepository):
    """Persists reviews to ``tt_reviews.json``.

    Schema::

        [
            {
                "id":                   "<str>",
                "round_id":             "<str>",
                "business_analyst_id":  "<str>",
                "reviewer_id":          "<str> | null",
                "wellbeing_concerns":   {"has_issues": <bool>, "details": "<str> | null"},
                "performance_concerns": {"has_issues": <bool>, "details": "<str> | null"},
                "development_opportunities":
                                        {"has_opportunities": <bool>, "details": "<str> | null"},
                "promotion_readiness":  "Ready|Near Ready|Not Ready | null",
                "actions":              ["<str>", ...],
                "general_notes":        "<str> | null",
                "is_complete":          <bool>,
                "completed_at":         "<ISO-8601> | null",
                "created_at":           "<ISO-8601>",
                "updated_at":           "<ISO-8601>"
            }
        ]
    """

    def __init__(self, data_dir: str) -> None:
        super().__init__(data_dir, STORAGE_KEYS['reviews'])

    def find_by_round(self, round_id: str) -> List[Dict]:
        return [r for r in self.all() if r.get('round_id') == round_id]

    def find_by_analyst(self, ba_id: str) -> List[Dict]:
        return [r for r in self.all() if r.get('business_analyst_id') == ba_id]

    def find_by_analyst_and_round(self, ba_id: str, round_id: str) -> Optional[Dict]:
        for record in self.data:
            if (record.get('business_analyst_id') == ba_id
                    and record.get('round_id') == round_id):
                return copy.deepcopy(record)
        return None
