"""
Services package for the results engine.
"""

from .base import BaseService
from .stat_ingest import StatIngestService
from .result_cache import ResultCacheService
from .public_results import PublicResultsService

__all__ = ['BaseService', 'StatIngestService', 'ResultCacheService', 'PublicResultsService']
