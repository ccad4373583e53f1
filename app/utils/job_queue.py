"""
Job Queue
Durable, at-least-once job delivery over Amazon SQS.

Producers publish a Job; SendMessage only returns once SQS has stored the
message. Consumers receive Deliveries and settle each one explicitly:
ack deletes the message, nack makes it visible again after a delay. A
message that keeps failing is moved to the "<queue>-dlq" dead-letter queue
by the SQS redrive policy after `max_receive_count` receives.
"""
import json
import logging
import threading
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from app.core.errors import QueueError
from app.models.jobs import Job

logger = logging.getLogger(__name__)

DEAD_LETTER_SUFFIX = "-dlq"


@dataclass(frozen=True)
class Delivery:
    """One received message. `receipt_handle` is needed to settle it."""

    queue_name: str
    message_id: str
    receipt_handle: str
    body: str
    receive_count: int = 1

    def job(self) -> Job:
        return Job.from_message(self.body)


class JobQueue:
    def __init__(
        self,
        sqs_client,
        visibility_timeout: int = 120,
        wait_seconds: int = 20,
        max_receive_count: int = 5,
    ) -> None:
        self._sqs = sqs_client
        self._visibility_timeout = visibility_timeout
        self._wait_seconds = wait_seconds
        self._max_receive_count = max_receive_count
        self._urls: Dict[str, str] = {}
        self._lock = threading.Lock()

    def queue_url(self, queue_name: str) -> str:
        with self._lock:
            url = self._urls.get(queue_name)
        if url:
            return url
        try:
            url = self._sqs.get_queue_url(QueueName=queue_name)["QueueUrl"]
        except (ClientError, BotoCoreError) as e:
            raise QueueError(f"Queue {queue_name} is not reachable: {e}") from e
        with self._lock:
            self._urls[queue_name] = url
        return url

    def ensure_queues(self, queue_names: Iterable[str]) -> None:
        """Create each queue with a dead-letter queue and redrive policy. Idempotent."""
        for name in queue_names:
            fifo = name.endswith(".fifo")
            dlq_name = f"{name[:-5]}{DEAD_LETTER_SUFFIX}.fifo" if fifo else f"{name}{DEAD_LETTER_SUFFIX}"
            fifo_attrs = {"FifoQueue": "true"} if fifo else {}
            try:
                dlq_url = self._sqs.create_queue(QueueName=dlq_name, Attributes=dict(fifo_attrs))["QueueUrl"]
                dlq_arn = self._sqs.get_queue_attributes(QueueUrl=dlq_url, AttributeNames=["QueueArn"])[
                    "Attributes"
                ]["QueueArn"]
                attributes = {
                    "VisibilityTimeout": str(self._visibility_timeout),
                    "RedrivePolicy": json.dumps(
                        {"deadLetterTargetArn": dlq_arn, "maxReceiveCount": str(self._max_receive_count)}
                    ),
                    **fifo_attrs,
                }
                url = self._sqs.create_queue(QueueName=name, Attributes=attributes)["QueueUrl"]
            except (ClientError, BotoCoreError) as e:
                raise QueueError(f"Could not create queue {name}: {e}") from e
            with self._lock:
                self._urls[name] = url
            logger.info(f"Queue {name} ready (dead-letter queue {dlq_name}, max receives {self._max_receive_count})")

    def publish(self, queue_name: str, job: Job) -> str:
        """Durably enqueue a job. Returns the SQS message id."""
        params = {
            "QueueUrl": self.queue_url(queue_name),
            "MessageBody": job.to_message(),
            "MessageAttributes": {"type": {"DataType": "String", "StringValue": job.type.value}},
        }
        if queue_name.endswith(".fifo"):
            params["MessageGroupId"] = job.user_id
            params["MessageDeduplicationId"] = job.job_id
        try:
            response = self._sqs.send_message(**params)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to publish {job.type.value} job for user {job.user_id} to {queue_name}: {str(e)}")
            raise QueueError(f"Publish to {queue_name} failed: {e}") from e
        message_id = response["MessageId"]
        logger.info(f"Published {job.type.value} job {job.job_id} for user {job.user_id} to {queue_name} ({message_id})")
        return message_id

    def receive(
        self,
        queue_name: str,
        max_messages: int = 1,
        wait_seconds: Optional[int] = None,
    ) -> List[Delivery]:
        """Long-poll for messages. Blocks up to `wait_seconds`; returns [] when none arrived."""
        try:
            response = self._sqs.receive_message(
                QueueUrl=self.queue_url(queue_name),
                MaxNumberOfMessages=max_messages,
                WaitTimeSeconds=self._wait_seconds if wait_seconds is None else wait_seconds,
                VisibilityTimeout=self._visibility_timeout,
                AttributeNames=["ApproximateReceiveCount"],
            )
        except (ClientError, BotoCoreError) as e:
            raise QueueError(f"Receive from {queue_name} failed: {e}") from e

        return [
            Delivery(
                queue_name=queue_name,
                message_id=message["MessageId"],
                receipt_handle=message["ReceiptHandle"],
                body=message["Body"],
                receive_count=int(message.get("Attributes", {}).get("ApproximateReceiveCount", 1)),
            )
            for message in response.get("Messages", [])
        ]

    def ack(self, delivery: Delivery) -> None:
        """Remove a successfully processed message."""
        try:
            self._sqs.delete_message(QueueUrl=self.queue_url(delivery.queue_name), ReceiptHandle=delivery.receipt_handle)
        except (ClientError, BotoCoreError) as e:
            # The message becomes visible again and is redelivered; handlers are idempotent.
            raise QueueError(f"Ack of {delivery.message_id} failed: {e}") from e

    def nack(self, delivery: Delivery, delay_seconds: int = 0) -> None:
        """Return a message to the queue, visible again after `delay_seconds`."""
        try:
            self._sqs.change_message_visibility(
                QueueUrl=self.queue_url(delivery.queue_name),
                ReceiptHandle=delivery.receipt_handle,
                VisibilityTimeout=delay_seconds,
            )
        except (ClientError, BotoCoreError) as e:
            # Visibility timeout will expire on its own.
            logger.warning(f"Nack of {delivery.message_id} failed, waiting for visibility timeout: {str(e)}")
