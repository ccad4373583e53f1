"""
Job Handlers
One handler per logical queue. Each handler returns True when the job is done
(ack) and False or raises when it should be retried (nack). Every handler is
safe to run more than once for the same job.
"""
import logging
from typing import Callable, Dict

from app.models.jobs import MUTATION_JOB_TYPES, Job, JobType
from app.utils.cache import CacheCoordinator
from app.utils.email_service import EmailReportDelivery
from app.utils.patterns import SpendingPatternService
from app.utils.report_generator import ReportGenerator, date_range_for_period

logger = logging.getLogger(__name__)


class JobHandler:
    """Dispatches a job to the method registered for its type."""

    def __init__(self) -> None:
        self._routes: Dict[JobType, Callable[[Job], bool]] = {}

    def __call__(self, job: Job) -> bool:
        route = self._routes.get(job.type)
        if route is None:
            logger.warning(f"{type(self).__name__} cannot handle {job.type.value} job {job.job_id}, skipping")
            return True
        return route(job)


class AnalyticsJobHandler(JobHandler):
    def __init__(self, cache: CacheCoordinator, patterns: SpendingPatternService) -> None:
        super().__init__()
        self._cache = cache
        self._patterns = patterns
        self._routes = {job_type: self.handle_record_event for job_type in MUTATION_JOB_TYPES}
        self._routes[JobType.COMPUTE_TRENDS] = self.handle_compute_trends

    def handle_record_event(self, job: Job) -> bool:
        # Invalidate and let the next read recompute; no delta is applied,
        # so arrival order of mutation events does not matter.
        self._cache.invalidate_user_summaries(job.user_id)
        logger.info(f"Invalidated cache for user {job.user_id} after {job.type.value}")
        return True

    def handle_compute_trends(self, job: Job) -> bool:
        logger.info(f"Calculating spending patterns for user {job.user_id}")
        self._patterns.compute(job.user_id)
        logger.info(f"Successfully calculated patterns for user {job.user_id}")
        return True


class ReportJobHandler(JobHandler):
    def __init__(self, generator: ReportGenerator, delivery: EmailReportDelivery) -> None:
        super().__init__()
        self._generator = generator
        self._delivery = delivery
        self._routes = {JobType.SEND_REPORT: self.handle_send_report}

    def handle_send_report(self, job: Job) -> bool:
        try:
            start_date, end_date = date_range_for_period(job.period or "monthly", job.start_date, job.end_date)
        except ValueError as e:
            # Retrying cannot fix a bad period
            logger.error(f"Dropping report job {job.job_id} for user {job.user_id}: {str(e)}")
            return True

        payload = self._generator.build(
            job.user_id,
            job.period or "monthly",
            start_date,
            end_date,
            email=job.email,
            name=job.name,
        )
        delivered = self._delivery.deliver(payload)
        if not delivered:
            logger.warning(f"Report delivery failed for user {job.user_id}, job {job.job_id} will be retried")
        return delivered
