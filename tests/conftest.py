import itertools
import json
import re
from datetime import datetime

import pytest
import redis
from botocore.exceptions import ClientError

from app.core.config import Settings
from app.core.errors import StoreUnavailableError
from app.core.wiring import build_services
from app.db.dynamo import aggregate_rows
from app.models.analytics import GroupBy


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def advance(self, seconds: float):
        self.now += seconds


def _glob_to_regex(pattern: str):
    parts = []
    chars = iter(pattern)
    for ch in chars:
        if ch == "\\":
            parts.append(re.escape(next(chars, "\\")))
        elif ch == "*":
            parts.append(".*")
        elif ch == "?":
            parts.append(".")
        else:
            parts.append(re.escape(ch))
    return re.compile("".join(parts))


class FakeRedis:
    """In-process Redis double with TTLs driven by a FakeClock."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.data = {}
        self.fail = False

    def _check(self):
        if self.fail:
            raise redis.exceptions.ConnectionError("redis unavailable")

    def _alive(self, key):
        item = self.data.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at is not None and expires_at <= self.clock.now:
            del self.data[key]
            return None
        return value

    def ping(self):
        self._check()
        return True

    def get(self, key):
        self._check()
        return self._alive(key)

    def exists(self, *keys):
        self._check()
        return sum(1 for key in keys if self._alive(key) is not None)

    def set(self, key, value, ex=None, nx=False):
        self._check()
        if nx and self._alive(key) is not None:
            return None
        self.data[key] = (value, self.clock.now + ex if ex else None)
        return True

    def delete(self, *keys):
        self._check()
        deleted = 0
        for key in keys:
            if self._alive(key) is not None:
                del self.data[key]
                deleted += 1
        return deleted

    def scan_iter(self, match=None, count=None):
        self._check()
        regex = _glob_to_regex(match or "*")
        for key in list(self.data):
            if self._alive(key) is not None and regex.fullmatch(key):
                yield key

    def pipeline(self, transaction=True):
        return FakePipeline(self)

    def close(self):
        pass


class FakePipeline:
    def __init__(self, client: FakeRedis):
        self._client = client
        self._ops = []

    def set(self, *args, **kwargs):
        self._ops.append(("set", args, kwargs))
        return self

    def delete(self, *args):
        self._ops.append(("delete", args, {}))
        return self

    def execute(self):
        self._client._check()
        return [getattr(self._client, name)(*args, **kwargs) for name, args, kwargs in self._ops]


class FakeSQS:
    """In-process SQS double: visibility timeouts, receive counts and redrive to a DLQ."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.queues = {}
        self.fail = False
        self._ids = itertools.count(1)

    @staticmethod
    def _error(code, operation):
        return ClientError({"Error": {"Code": code, "Message": code}}, operation)

    def _check(self, operation):
        if self.fail:
            raise self._error("ServiceUnavailable", operation)

    def _queue(self, url, operation):
        if url not in self.queues:
            raise self._error("AWS.SimpleQueueService.NonExistentQueue", operation)
        return self.queues[url]

    def _url_for(self, name):
        return f"https://sqs.local/000000000000/{name}"

    def create_queue(self, QueueName, Attributes=None):
        self._check("CreateQueue")
        url = self._url_for(QueueName)
        queue = self.queues.setdefault(url, {"name": QueueName, "attributes": {}, "messages": []})
        queue["attributes"].update(Attributes or {})
        return {"QueueUrl": url}

    def get_queue_url(self, QueueName):
        self._check("GetQueueUrl")
        url = self._url_for(QueueName)
        self._queue(url, "GetQueueUrl")
        return {"QueueUrl": url}

    def get_queue_attributes(self, QueueUrl, AttributeNames=None):
        queue = self._queue(QueueUrl, "GetQueueAttributes")
        return {"Attributes": {"QueueArn": f"arn:aws:sqs:local:000000000000:{queue['name']}", **queue["attributes"]}}

    def send_message(self, QueueUrl, MessageBody, MessageAttributes=None, MessageGroupId=None,
                     MessageDeduplicationId=None):
        self._check("SendMessage")
        queue = self._queue(QueueUrl, "SendMessage")
        message_id = f"msg-{next(self._ids)}"
        queue["messages"].append({
            "MessageId": message_id,
            "Body": MessageBody,
            "group": MessageGroupId,
            "visible_at": self.clock.now,
            "receive_count": 0,
            "receipt": None,
        })
        return {"MessageId": message_id}

    def receive_message(self, QueueUrl, MaxNumberOfMessages=1, WaitTimeSeconds=0, VisibilityTimeout=30,
                        AttributeNames=None):
        self._check("ReceiveMessage")
        queue = self._queue(QueueUrl, "ReceiveMessage")
        redrive = queue["attributes"].get("RedrivePolicy")
        out = []
        for message in list(queue["messages"]):
            if len(out) >= MaxNumberOfMessages:
                break
            if message["visible_at"] > self.clock.now:
                continue
            if redrive:
                policy = json.loads(redrive)
                if message["receive_count"] >= int(policy["maxReceiveCount"]):
                    dlq_name = policy["deadLetterTargetArn"].rsplit(":", 1)[1]
                    queue["messages"].remove(message)
                    self.queues[self._url_for(dlq_name)]["messages"].append(message)
                    continue
            message["receive_count"] += 1
            message["receipt"] = f"rh-{next(self._ids)}"
            message["visible_at"] = self.clock.now + VisibilityTimeout
            out.append({
                "MessageId": message["MessageId"],
                "ReceiptHandle": message["receipt"],
                "Body": message["Body"],
                "Attributes": {"ApproximateReceiveCount": str(message["receive_count"])},
            })
        return {"Messages": out} if out else {}

    def _by_receipt(self, queue, receipt, operation):
        for message in queue["messages"]:
            if message["receipt"] == receipt:
                return message
        raise self._error("ReceiptHandleIsInvalid", operation)

    def delete_message(self, QueueUrl, ReceiptHandle):
        self._check("DeleteMessage")
        queue = self._queue(QueueUrl, "DeleteMessage")
        queue["messages"].remove(self._by_receipt(queue, ReceiptHandle, "DeleteMessage"))
        return {}

    def change_message_visibility(self, QueueUrl, ReceiptHandle, VisibilityTimeout):
        self._check("ChangeMessageVisibility")
        queue = self._queue(QueueUrl, "ChangeMessageVisibility")
        message = self._by_receipt(queue, ReceiptHandle, "ChangeMessageVisibility")
        message["visible_at"] = self.clock.now + VisibilityTimeout
        return {}

    # helpers for assertions
    def messages(self, queue_name):
        return self.queues[self._url_for(queue_name)]["messages"]

    def bodies(self, queue_name):
        return [json.loads(m["Body"]) for m in self.messages(queue_name)]


class InMemoryExpenseStore:
    def __init__(self):
        self.expenses = []
        self.users = {}
        self.fail = False
        self.aggregate_calls = 0

    def add(self, user_id, category, amount, timestamp, expense_id=None):
        expense = {
            "user_id": user_id,
            "expense_id": expense_id or f"e{len(self.expenses) + 1}",
            "category": category,
            "amount": amount,
            "description": "",
            "timestamp": timestamp,
        }
        self.expenses.append(expense)
        return expense

    def aggregate(self, user_id, date_range=None, group_by=GroupBy.CATEGORY):
        self.aggregate_calls += 1
        if self.fail:
            raise StoreUnavailableError("Expense store unavailable")
        return aggregate_rows(self.list_expenses(user_id, date_range), group_by)

    def list_expenses(self, user_id, date_range=None):
        expenses = [
            dict(e) for e in self.expenses
            if e["user_id"] == user_id and (date_range is None or date_range.contains(e["timestamp"]))
        ]
        return sorted(expenses, key=lambda e: e["timestamp"], reverse=True)

    def put_expense(self, item):
        self.expenses.append(dict(item))
        return True

    def update_expense(self, user_id, expense_id, updates):
        for e in self.expenses:
            if e["user_id"] == user_id and e["expense_id"] == expense_id:
                e.update(updates)
                return dict(e)
        return None

    def delete_expense(self, user_id, expense_id):
        before = len(self.expenses)
        self.expenses = [
            e for e in self.expenses if not (e["user_id"] == user_id and e["expense_id"] == expense_id)
        ]
        return len(self.expenses) < before

    def get_user(self, user_id):
        return self.users.get(user_id)

    def list_report_subscribers(self):
        return [u for u in self.users.values() if u.get("monthly_report")]


class FakeDelivery:
    def __init__(self, result=True):
        self.result = result
        self.delivered = []

    def deliver(self, payload):
        self.delivered.append(payload)
        return self.result


def months_ago(count: int, day: int = 15) -> str:
    """ISO timestamp inside the calendar month `count` months before the current one."""
    now = datetime.utcnow()
    index = now.year * 12 + now.month - 1 - count
    return datetime(index // 12, index % 12 + 1, day, 12, 0, 0).isoformat()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_redis(clock):
    return FakeRedis(clock)


@pytest.fixture
def test_settings():
    return Settings(
        ANALYTICS_QUEUE="analytics-test",
        REPORT_QUEUE="reports-test",
        SQS_WAIT_SECONDS=0,
        SQS_VISIBILITY_TIMEOUT=60,
        JOB_RETRY_DELAY=10,
    )


@pytest.fixture
def fake_sqs(clock, test_settings):
    sqs = FakeSQS(clock)
    sqs.create_queue(QueueName=test_settings.ANALYTICS_QUEUE)
    sqs.create_queue(QueueName=test_settings.REPORT_QUEUE)
    return sqs


@pytest.fixture
def store():
    return InMemoryExpenseStore()


@pytest.fixture
def delivery():
    return FakeDelivery()


@pytest.fixture
def services(test_settings, fake_redis, fake_sqs, store, delivery):
    return build_services(test_settings, fake_redis, fake_sqs, store, delivery=delivery)
