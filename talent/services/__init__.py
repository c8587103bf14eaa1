"""Services package: expose all concrete services from one import."""
from .analyst_service import AnalystService
from .round_service import RoundService
from .review_service import ReviewService, calculate_trend, is_review_complete
from .export_service import ExportService
from .csv_import import CSV_TEMPLATE, parse_csv, resolve_line_managers

__all__ = [
    'AnalystService',
    'RoundService',
    'ReviewService',
    'ExportService',
    'calculate_trend',
    'is_review_complete',
    'CSV_TEMPLATE',
    'parse_csv',
    'resolve_line_managers',
]
