"""Repository package: expose all concrete repositories from one import."""
from .base import BaseRepository, RecordRepository
from .storage import STORAGE_KEYS, generate_id, storage_path
from .analyst_repository import AnalystRepository
from .round_repository import RoundRepository
from .review_repository import ReviewRepository

__all__ = [
    'BaseRepository',
    'RecordRepository',
    'STORAGE_KEYS',
    'generate_id',
    'storage_path',
    'AnalystRepository',
    'RoundRepository',
    'ReviewRepository',
]
