"""Repository for quarterly Talent Rounds."""
import copy
from typing import Dict, Optional

from .base import RecordRepository
from .storage import STORAGE_KEYS


class RoundRepository(RecordRepository):
    """Persists Talent Rounds to ``tt_talent_rounds.json``.

    Schema::

        [
            {
                "id":           "<str>",
                "name":         "<str>",
                "quarter":      "<str, e.g. Q1>",
                "year":         <int>,
                "deadline":     "<YYYY-MM-DD>",
                "status":       "Draft|Active|Completed",
                "created_by":   "<str>",
                "created_at":   "<ISO-8601>",
                "completed_at": "<ISO-8601> | null",
                "description":  "<str> | null"
            }
        ]
    """

    def __init__(self, data_dir: str) -> None:
        super().__init__(data_dir, STORAGE_KEYS['talent_rounds'])

    def find_by_period(self, quarter: str, year: int) -> Optional[Dict]:
        """Return the round scheduled for *quarter* of *year*, or ``None``."""
        for record in self.data:
            if record.get('quarter') == quarter and record.get('year') == year:
                return copy.deepcopy(record)
        return None
