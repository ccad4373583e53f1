"""
Progress Tracker
not_started -> processing -> completed, derived from two cache facts:
a short-lived processing lease and a long-lived result entry.
"""
import logging
from datetime import datetime
from typing import Any, Dict

from app.models.analytics import AnalysisState, AnalysisStatus
from app.utils.cache import CacheCategory, CacheCoordinator, processing_key, spending_patterns_key

logger = logging.getLogger(__name__)


class ProgressTracker:
    def __init__(self, cache: CacheCoordinator) -> None:
        self._cache = cache

    def begin(self, user_id: str) -> bool:
        """Take the processing lease. False if another trigger already holds it."""
        acquired = self._cache.set_if_absent(
            processing_key(user_id),
            {"started_at": datetime.utcnow().isoformat()},
            self._cache.ttl_for(CacheCategory.PROCESSING),
        )
        if acquired:
            logger.info(f"Processing lease acquired for user {user_id}")
        return acquired

    def release(self, user_id: str) -> None:
        self._cache.delete(processing_key(user_id))

    def complete(self, user_id: str, result: Dict[str, Any]) -> bool:
        """Store the result and drop the lease in one step."""
        stored = self._cache.commit(
            spending_patterns_key(user_id),
            result,
            self._cache.ttl_for(CacheCategory.SPENDING_PATTERNS),
            release=processing_key(user_id),
        )
        if stored:
            logger.info(f"Spending patterns completed for user {user_id}")
        return stored

    def reset(self, user_id: str) -> None:
        """Forget the stored result so a new cycle can start."""
        self._cache.delete(spending_patterns_key(user_id))

    def result(self, user_id: str):
        return self._cache.get(spending_patterns_key(user_id))

    def status(self, user_id: str) -> AnalysisStatus:
        data = self.result(user_id)
        if data is not None:
            return AnalysisStatus(status=AnalysisState.COMPLETED, data=data)
        if self._cache.exists(processing_key(user_id)):
            return AnalysisStatus(status=AnalysisState.PROCESSING, message="Analysis is in progress")
        return AnalysisStatus(status=AnalysisState.NOT_STARTED, message="Pattern analysis has not been requested")
