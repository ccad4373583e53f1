"""
Queue Worker
Blocking receive loop against one queue. Jobs are processed one at a time and
settled explicitly: ack on success, nack with a retry delay on failure,
ack-and-skip for messages that cannot be decoded.
"""
import logging
import threading
from typing import Callable, Optional

from app.core.errors import JobDecodeError, QueueError, UnknownJobTypeError
from app.models.jobs import Job
from app.utils.job_queue import Delivery, JobQueue

logger = logging.getLogger(__name__)


class QueueWorker:
    def __init__(
        self,
        queue: JobQueue,
        queue_name: str,
        handler: Callable[[Job], bool],
        retry_delay: int = 30,
        wait_seconds: Optional[int] = None,
        stop_event: Optional[threading.Event] = None,
        name: str = "worker",
    ) -> None:
        self._queue = queue
        self._queue_name = queue_name
        self._handler = handler
        self._retry_delay = retry_delay
        self._wait_seconds = wait_seconds
        self._stop = stop_event or threading.Event()
        self.name = name
        self.processed = 0
        self.failed = 0

    def stop(self) -> None:
        self._stop.set()

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def run(self) -> None:
        """Receive and process until stopped. The in-flight job always finishes."""
        logger.info(f"{self.name} started and waiting for messages on {self._queue_name}...")
        while not self._stop.is_set():
            self.run_once()
        logger.info(f"{self.name} stopped ({self.processed} processed, {self.failed} failed)")

    def run_once(self) -> int:
        """One receive round. Returns the number of messages handled."""
        try:
            deliveries = self._queue.receive(self._queue_name, max_messages=1, wait_seconds=self._wait_seconds)
        except QueueError as e:
            logger.error(f"{self.name} receive failed: {str(e)}")
            # Back off before polling again; wakes early on stop
            self._stop.wait(self._retry_delay)
            return 0

        for delivery in deliveries:
            self.process(delivery)
        return len(deliveries)

    def process(self, delivery: Delivery) -> bool:
        """Handle one delivery and settle it. Returns True if it was acked."""
        try:
            job = delivery.job()
        except UnknownJobTypeError as e:
            logger.warning(f"Skipping message {delivery.message_id}: {str(e)}")
            return self._ack(delivery)
        except JobDecodeError as e:
            logger.warning(f"Skipping malformed message {delivery.message_id}: {str(e)}")
            return self._ack(delivery)
        except Exception as e:
            logger.error(f"Skipping undecodable message {delivery.message_id}: {str(e)}", exc_info=True)
            return self._ack(delivery)

        logger.info(
            f"Received {job.type.value} job {job.job_id} for user {job.user_id} "
            f"(delivery {delivery.receive_count})"
        )
        try:
            succeeded = bool(self._handler(job))
        except Exception as e:
            logger.error(f"Error processing {job.type.value} job {job.job_id}: {str(e)}", exc_info=True)
            succeeded = False

        if not succeeded:
            self.failed += 1
            self._queue.nack(delivery, self._retry_delay)
            return False

        self.processed += 1
        return self._ack(delivery)

    def _ack(self, delivery: Delivery) -> bool:
        try:
            self._queue.ack(delivery)
            return True
        except QueueError as e:
            logger.error(f"{self.name}: {str(e)}")
            return False
