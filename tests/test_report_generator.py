import threading
from datetime import datetime, timedelta, timezone

import pytest

from app.models.jobs import Job, JobType
from app.utils.email_service import EmailReportDelivery, render_report_text
from app.utils.report_generator import date_range_for_period
from app.utils.scheduler import ReportScheduler, parse_schedule
from app.workers.handlers import ReportJobHandler
from app.workers.main import build_handler, queue_name_for, run_workers
from app.workers.worker import QueueWorker

NOW = datetime(2025, 6, 30, 12, 0, 0)


def test_fixed_periods():
    assert date_range_for_period("weekly", now=NOW) == (datetime(2025, 6, 23, 12), NOW)
    assert date_range_for_period("monthly", now=NOW) == (datetime(2025, 5, 31, 12), NOW)
    assert date_range_for_period("yearly", now=NOW)[0] == datetime(2024, 6, 30, 12)


def test_custom_period():
    start, end = datetime(2025, 1, 1), datetime(2025, 1, 31)
    assert date_range_for_period("custom", start, end) == (start, end)


@pytest.mark.parametrize(
    "period, start, end",
    [
        ("daily", None, None),
        ("custom", None, None),
        ("custom", datetime(2025, 2, 1), datetime(2025, 1, 1)),
    ],
)
def test_invalid_periods(period, start, end):
    with pytest.raises(ValueError):
        date_range_for_period(period, start, end)


def test_build_report(services, store):
    store.add("u1", "food", 40, "2025-06-10T00:00:00")
    store.add("u1", "rent", 60, "2025-06-30T12:00:00")
    store.add("u1", "rent", 500, "2025-04-01T00:00:00")

    payload = services.reports.build(
        "u1", "custom", datetime(2025, 6, 1), NOW, email="a@example.com", name="Ana"
    )

    assert payload["total_spent"] == 100.0
    assert payload["expense_count"] == 2
    assert [c["category"] for c in payload["category_breakdown"]] == ["rent", "food"]
    assert payload["email"] == "a@example.com"
    assert payload["insights"] == []
    assert payload["message"].startswith("Expense summary for custom period from 2025-06-01")


def test_build_report_without_expenses(services):
    payload = services.reports.build("u1", "weekly", datetime(2025, 6, 1), NOW)
    assert payload["total_spent"] == 0
    assert payload["category_breakdown"] == []
    assert payload["message"] == "No expenses found for this period."


def test_report_includes_cached_insights(services):
    insights = [{"type": "overall", "message": "Your overall spending is stable."}]
    services.tracker.complete("u1", {"no_data": False, "insights": insights})

    payload = services.reports.build("u1", "monthly", datetime(2025, 6, 1), NOW)

    assert payload["insights"] == insights


def test_render_report_text():
    payload = {
        "period": "monthly",
        "name": "Ana",
        "message": "Expense summary for monthly period from 2025-06-01 to 2025-06-30.",
        "total_spent": 1234.5,
        "category_breakdown": [{"category": "rent", "total": 1234.5, "count": 1, "percentage": 100.0}],
        "insights": [{"type": "overall", "message": "Your overall spending is stable."}],
    }

    text = render_report_text(payload)

    assert "Hello Ana," in text
    assert "Total Spent: $1,234.50" in text
    assert "- Rent: $1,234.50 (1 expenses, 100.0%)" in text
    assert "- Your overall spending is stable." in text


class RecordingMailer:
    def __init__(self, result=True):
        self.result = result
        self.sent = []

    def send_email(self, to_email, subject, body_text):
        self.sent.append((to_email, subject, body_text))
        return self.result


def test_email_delivery():
    mailer = RecordingMailer()
    delivery = EmailReportDelivery(mailer)
    payload = {
        "user_id": "u1", "email": "a@example.com", "name": None, "period": "weekly",
        "message": "No expenses found for this period.", "total_spent": 0,
        "category_breakdown": [], "insights": [],
    }

    assert delivery.deliver(payload) is True
    assert mailer.sent[0][:2] == ("a@example.com", "Expense Summary: Weekly")

    assert delivery.deliver({**payload, "email": None}) is True
    assert len(mailer.sent) == 1


def test_report_handler_delivers(services, store, delivery):
    store.add("u1", "food", 25, datetime.utcnow().isoformat())
    handler = ReportJobHandler(services.reports, delivery)

    assert handler(Job(type=JobType.SEND_REPORT, user_id="u1", period="weekly", email="a@example.com")) is True
    assert delivery.delivered[0]["total_spent"] == 25.0
    assert delivery.delivered[0]["email"] == "a@example.com"


def test_report_handler_drops_bad_period(services, delivery):
    handler = ReportJobHandler(services.reports, delivery)
    assert handler(Job(type=JobType.SEND_REPORT, user_id="u1", period="hourly")) is True
    assert delivery.delivered == []


def test_failed_delivery_is_retried(services, fake_sqs, clock, delivery):
    delivery.result = False
    services.queue.publish("reports-test", Job(type=JobType.SEND_REPORT, user_id="u1", period="monthly"))
    worker = QueueWorker(
        services.queue, "reports-test", ReportJobHandler(services.reports, delivery), retry_delay=10, wait_seconds=0
    )

    worker.run_once()
    assert worker.failed == 1

    delivery.result = True
    clock.advance(10)
    worker.run_once()
    assert worker.processed == 1
    assert len(delivery.delivered) == 2
    assert fake_sqs.messages("reports-test") == []


def test_parse_schedule():
    assert parse_schedule("15 8 30") == (15, 8, 30)
    assert parse_schedule("bad") == (1, 6, 0)
    assert parse_schedule("a b c") == (1, 6, 0)


def test_scheduler_enqueues_subscribed_users(services, store, fake_sqs):
    store.users = {
        "u1": {"user_id": "u1", "email": "a@example.com", "name": "Ana", "monthly_report": True},
        "u2": {"user_id": "u2", "email": "b@example.com", "monthly_report": False},
    }
    scheduler = ReportScheduler(store, services.queue, "reports-test")

    assert scheduler.enqueue_monthly_reports() == 1

    body = fake_sqs.bodies("reports-test")[0]
    assert body["type"] == "EXPENSE_SUMMARY_EMAIL"
    assert body["user_id"] == "u1"
    assert body["period"] == "monthly"


def test_worker_entrypoint_helpers(services):
    assert isinstance(build_handler("reports", services), ReportJobHandler)
    assert queue_name_for("analytics", services.settings) == "analytics-test"
    assert queue_name_for("reports", services.settings) == "reports-test"
    with pytest.raises(ValueError):
        build_handler("emails", services)


def test_run_workers_returns_when_stopped(services):
    stop = threading.Event()
    stop.set()
    workers = run_workers("analytics", services, 2, stop)
    assert [w.name for w in workers] == ["analytics-worker-1", "analytics-worker-2"]


def test_custom_period_mixes_aware_and_naive_dates():
    start = datetime(2025, 1, 1, 2, 0, tzinfo=timezone(timedelta(hours=2)))
    end = datetime(2025, 1, 31)

    assert date_range_for_period("custom", start, end) == (datetime(2025, 1, 1), end)

    with pytest.raises(ValueError):
        date_range_for_period("custom", datetime(2025, 2, 1, tzinfo=timezone.utc), end)
