"""
Scheduler Service
Enqueues monthly expense summary reports using APScheduler.
"""
import logging
from typing import Optional, Tuple

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from app.core.errors import QueueError
from app.models.jobs import Job, JobType
from app.utils.job_queue import JobQueue

logger = logging.getLogger(__name__)

MONTHLY_REPORTS_JOB_ID = "monthly_expense_reports"


def parse_schedule(cron_schedule: str) -> Tuple[int, int, int]:
    """Parse "day hour minute" into a tuple, defaulting to the 1st at 06:00."""
    parts = cron_schedule.split()
    if len(parts) >= 3:
        try:
            return int(parts[0]), int(parts[1]), int(parts[2])
        except ValueError:
            logger.warning(f"Invalid report schedule {cron_schedule!r}, using default")
    return 1, 6, 0


class ReportScheduler:
    def __init__(self, store, queue: JobQueue, queue_name: str, cron_schedule: str = "1 6 0") -> None:
        self._store = store
        self._queue = queue
        self._queue_name = queue_name
        self._schedule = parse_schedule(cron_schedule)
        self._scheduler: Optional[BackgroundScheduler] = None

    def enqueue_monthly_reports(self) -> int:
        """Job function: queue one monthly report per subscribed user."""
        queued = 0
        for user in self._store.list_report_subscribers():
            job = Job(
                type=JobType.SEND_REPORT,
                user_id=user["user_id"],
                period="monthly",
                email=user.get("email"),
                name=user.get("name"),
            )
            try:
                self._queue.publish(self._queue_name, job)
                queued += 1
            except QueueError as e:
                logger.error(f"Could not queue monthly report for user {user['user_id']}: {str(e)}")
        logger.info(f"Monthly reports job queued {queued} reports")
        return queued

    def start(self) -> None:
        if self._scheduler is not None:
            logger.warning("Scheduler is already running")
            return

        day, hour, minute = self._schedule
        self._scheduler = BackgroundScheduler()
        self._scheduler.add_job(
            self.enqueue_monthly_reports,
            trigger=CronTrigger(day=day, hour=hour, minute=minute),
            id=MONTHLY_REPORTS_JOB_ID,
            name="Monthly Expense Reports",
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info(f"Scheduler started: day={day}, hour={hour}, minute={minute}")

    def stop(self) -> None:
        if self._scheduler is not None:
            self._scheduler.shutdown()
            self._scheduler = None
            logger.info("Scheduler stopped")

