"""Repository base classes used by all concrete repositories."""
import copy
import json
import logging
import os
import tempfile
from typing import Any, Dict, List, Optional

from ..errors import StorageError
from .storage import storage_path


class BaseRepository:
    """Provides JSON-backed persistence for a single storage key.

    Each storage key lives in its own file, ``<data_dir>/<key>.json``, and
    always holds a JSON array.  Reads never raise: a missing, unreadable or
    corrupt file (or one that does not hold an array) loads as ``[]``.
    Writes use a write-then-rename strategy so the file is never left in a
    partially-written state, and any failure is raised as
    :class:`~talent.errors.StorageError`.
    """

    def __init__(self, data_dir: str, key: str) -> None:
        self.key = key
        self._data_dir = data_dir
        self._path = storage_path(data_dir, key)
        self._log = logging.getLogger(f'talent.repository.{type(self).__name__}')

    @property
    def path(self) -> str:
        return self._path

    def _load(self) -> List[Any]:
        """Load the JSON array stored under this key, or ``[]``."""
        if not os.path.exists(self._path):
            return []
        try:
            with open(self._path, 'r', encoding='utf-8') as fh:
                data = json.load(fh)
        except (json.JSONDecodeError, OSError, UnicodeDecodeError) as exc:
            self._log.warning("Could not load %s: %s", self._path, exc)
            return []
        if not isinstance(data, list):
            self._log.warning("Ignoring %s: expected a JSON array", self._path)
            return []
        return data

    def _save(self, data: List[Any]) -> None:
        """Atomically write *data* as JSON to this key's file."""
        try:
            os.makedirs(self._data_dir, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self._data_dir, suffix='.tmp')
        except OSError as exc:
            self._log.error("Failed to save %s: %s", self._path, exc)
            raise StorageError() from exc
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as fh:
                json.dump(data, fh, indent=2)
            os.replace(tmp_path, self._path)
        except (OSError, TypeError, ValueError) as exc:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            self._log.error("Failed to save %s: %s", self._path, exc)
            raise StorageError() from exc

    def _remove(self) -> None:
        """Delete this key's file; a missing file is not an error."""
        try:
            os.remove(self._path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            self._log.error("Failed to remove %s: %s", self._path, exc)
            raise StorageError() from exc

    def size_bytes(self) -> int:
        """Return the on-disk size of this key's file (0 when absent)."""
        try:
            return os.path.getsize(self._path)
        except OSError:
            return 0


class RecordRepository(BaseRepository):
    """Keeps an in-memory list of record dicts (keyed by ``id``) synced to disk.

    Callers get deep copies back from the query helpers so that mutating a
    returned record never changes the stored state without going through
    :meth:`replace`.
    """

    def __init__(self, data_dir: str, key: str) -> None:
        super().__init__(data_dir, key)
        self.data: List[Dict] = []
        self.reload()

    def reload(self) -> None:
        """Re-read the stored array, discarding anything that is not a record."""
        self.data = [r for r in self._load() if isinstance(r, dict)]

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def all(self) -> List[Dict]:
        return copy.deepcopy(self.data)

    def find(self, record_id: Optional[str]) -> Optional[Dict]:
        """Return a copy of the record with *record_id*, or ``None``."""
        if not record_id:
            return None
        index = self._index_of(record_id)
        if index is None:
            return None
        return copy.deepcopy(self.data[index])

    def add(self, record: Dict) -> Dict:
        """Append *record*, then persist."""
        previous = list(self.data)
        self.data.append(copy.deepcopy(record))
        self._commit(previous)
        return record

    def replace(self, record: Dict) -> bool:
        """Replace the stored record with the same ``id``.  Returns ``False``
        if no such record exists."""
        index = self._index_of(record.get('id'))
        if index is None:
            return False
        previous = list(self.data)
        self.data[index] = copy.deepcopy(record)
        self._commit(previous)
        return True

    def delete(self, record_id: str) -> bool:
        """Remove the record with *record_id*.  Returns ``True`` if it existed."""
        index = self._index_of(record_id)
        if index is None:
            return False
        previous = list(self.data)
        del self.data[index]
        self._commit(previous)
        return True

    def replace_all(self, records: List[Dict]) -> None:
        """Swap the whole stored array for *records*, then persist."""
        previous = self.data
        self.data = copy.deepcopy(records)
        self._commit(previous)

    def clear(self) -> None:
        """Drop every record and remove the backing file."""
        self._remove()
        self.data = []

    def save(self) -> None:
        """Persist the current in-memory data to disk."""
        self._save(self.data)

    def _commit(self, previous: List[Dict]) -> None:
        # Memory must not drift ahead of disk when a write fails.
        try:
            self.save()
        except StorageError:
            self.data = previous
            raise

    def _index_of(self, record_id: Optional[str]) -> Optional[int]:
        for index, record in enumerate(self.data):
            if record.get('id') == record_id:
                return index
        return None
