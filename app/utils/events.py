"""
Record Event Publisher
Producer side of the analytics pipeline, called after a record mutation succeeded.

Cached summaries are always invalidated before the job is published.
"""
import logging
from typing import Optional

from app.core.errors import QueueError
from app.models.jobs import Job, JobType
from app.utils.cache import CacheCoordinator
from app.utils.job_queue import JobQueue

logger = logging.getLogger(__name__)


class RecordEventPublisher:
    def __init__(self, cache: CacheCoordinator, queue: JobQueue, queue_name: str) -> None:
        self._cache = cache
        self._queue = queue
        self._queue_name = queue_name

    def record_created(self, user_id: str, expense_id: Optional[str] = None) -> bool:
        return self._emit(JobType.NEW_RECORD, user_id, expense_id)

    def record_updated(self, user_id: str, expense_id: Optional[str] = None) -> bool:
        return self._emit(JobType.UPDATE_RECORD, user_id, expense_id)

    def record_deleted(self, user_id: str, expense_id: Optional[str] = None) -> bool:
        return self._emit(JobType.DELETE_RECORD, user_id, expense_id)

    def _emit(self, job_type: JobType, user_id: str, expense_id: Optional[str]) -> bool:
        """Never raises: the mutation that triggered this already succeeded."""
        self._cache.invalidate_user_summaries(user_id)
        try:
            self._queue.publish(self._queue_name, Job(type=job_type, user_id=user_id, expense_id=expense_id))
            return True
        except QueueError as e:
            logger.error(f"Failed to queue {job_type.value} event for user {user_id}: {str(e)}")
            return False
