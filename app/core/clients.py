"""
Client Handles
Explicitly constructed connections to Redis, SQS and DynamoDB.

One ServiceClients instance is created by the process root (API lifespan or
worker entrypoint) and passed to every component that needs it.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict

import boto3
import redis
from botocore.exceptions import BotoCoreError, ClientError

from app.core.config import Settings

logger = logging.getLogger(__name__)


@dataclass
class ServiceClients:
    redis: Any
    sqs: Any
    dynamodb: Any
    settings: Settings

    @classmethod
    def connect(cls, settings: Settings) -> "ServiceClients":
        """Build the shared client handles. Connections are opened lazily by each library."""
        redis_client = redis.Redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
            socket_connect_timeout=settings.REDIS_SOCKET_TIMEOUT,
        )
        sqs_client = boto3.client(
            "sqs",
            region_name=settings.AWS_REGION,
            endpoint_url=settings.SQS_ENDPOINT_URL,
        )
        dynamodb = boto3.resource(
            "dynamodb",
            region_name=settings.AWS_REGION,
            endpoint_url=settings.DYNAMO_ENDPOINT_URL,
        )
        logger.info(f"Client handles created (redis={settings.REDIS_URL}, region={settings.AWS_REGION})")
        return cls(redis=redis_client, sqs=sqs_client, dynamodb=dynamodb, settings=settings)

    def health_check(self) -> Dict[str, Dict[str, Any]]:
        """Check connectivity of every substrate. Never raises."""
        services: Dict[str, Dict[str, Any]] = {}

        redis_status: Dict[str, Any] = {"connected": False, "error": None}
        try:
            redis_status["connected"] = bool(self.redis.ping())
        except redis.RedisError as e:
            redis_status["error"] = str(e)
            logger.error(f"Redis check failed: {str(e)}")
        services["redis"] = redis_status

        sqs_status: Dict[str, Any] = {"connected": False, "queues": {}, "error": None}
        try:
            for name in (self.settings.ANALYTICS_QUEUE, self.settings.REPORT_QUEUE):
                url = self.sqs.get_queue_url(QueueName=name)["QueueUrl"]
                sqs_status["queues"][name] = url
            sqs_status["connected"] = True
        except (ClientError, BotoCoreError) as e:
            sqs_status["error"] = str(e)
            logger.error(f"SQS check failed: {str(e)}")
        services["sqs"] = sqs_status

        dynamo_status: Dict[str, Any] = {"connected": False, "tables": {}, "error": None}
        try:
            for name in (self.settings.DYNAMO_USERS_TABLE, self.settings.DYNAMO_EXPENSES_TABLE):
                self.dynamodb.Table(name).scan(Limit=1)
                dynamo_status["tables"][name] = "accessible"
            dynamo_status["connected"] = True
        except (ClientError, BotoCoreError) as e:
            dynamo_status["error"] = str(e)
            logger.error(f"DynamoDB check failed: {str(e)}")
        services["dynamodb"] = dynamo_status

        return services

    def close(self) -> None:
        try:
            self.redis.close()
        except redis.RedisError as e:
            logger.warning(f"Error closing Redis client: {str(e)}")
        logger.info("Client handles closed")
