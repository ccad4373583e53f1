"""
Spending Pattern Service
Enqueue-and-poll analysis: `request` runs in the API process, `compute` in a worker.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from app.core.errors import QueueError
from app.models.analytics import AnalysisState, AnalysisStatus, DateRange, GroupBy
from app.models.jobs import Job, JobType
from app.utils.analyzer import TrendAnalyzer
from app.utils.job_queue import JobQueue
from app.utils.progress import ProgressTracker

logger = logging.getLogger(__name__)


class SpendingPatternService:
    def __init__(
        self,
        store,
        analyzer: TrendAnalyzer,
        tracker: ProgressTracker,
        queue: JobQueue,
        queue_name: str,
    ) -> None:
        self._store = store
        self._analyzer = analyzer
        self._tracker = tracker
        self._queue = queue
        self._queue_name = queue_name

    def status(self, user_id: str) -> AnalysisStatus:
        return self._tracker.status(user_id)

    def request(self, user_id: str, force: bool = False) -> AnalysisStatus:
        """
        Return the cached analysis, or start one.
        Only the caller that acquires the processing lease publishes a job.
        """
        if force:
            self._tracker.reset(user_id)
        else:
            cached = self._tracker.result(user_id)
            if cached is not None:
                return AnalysisStatus(status=AnalysisState.COMPLETED, data=cached)

        if not self._tracker.begin(user_id):
            # Lease already held, or the cache is down and no lease could be taken.
            return self._tracker.status(user_id)

        try:
            self._queue.publish(self._queue_name, Job(type=JobType.COMPUTE_TRENDS, user_id=user_id))
        except QueueError as e:
            logger.error(f"Could not queue pattern analysis for user {user_id}: {str(e)}")
            self._tracker.release(user_id)
            return AnalysisStatus(
                status=AnalysisState.NOT_STARTED,
                message="Pattern analysis could not be queued, please retry",
            )

        return AnalysisStatus(
            status=AnalysisState.PROCESSING,
            message="Spending pattern analysis has been queued",
        )

    def compute(self, user_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Recompute and store the analysis for a user. Store errors propagate and
        the lease is left to expire.
        """
        date_range = DateRange.trailing_months(self._analyzer.window_months, now)
        rows = self._store.aggregate(user_id, date_range, GroupBy.CATEGORY_MONTH)
        result = self._analyzer.analyze(user_id, rows).to_dict()
        if not self._tracker.complete(user_id, result):
            logger.warning(f"Spending patterns for user {user_id} computed but not cached")
        return result
