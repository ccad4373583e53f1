"""
Service wiring
Builds every analytics component from settings and the shared client handles.
Used by both the API process and the worker processes.
"""
from dataclasses import dataclass
from typing import Optional

from app.core.clients import ServiceClients
from app.core.config import Settings
from app.db.dynamo import ExpenseStore
from app.utils.analyzer import TrendAnalyzer
from app.utils.cache import CacheCoordinator
from app.utils.email_service import EmailReportDelivery, SmtpMailer
from app.utils.events import RecordEventPublisher
from app.utils.job_queue import JobQueue
from app.utils.patterns import SpendingPatternService
from app.utils.progress import ProgressTracker
from app.utils.report_generator import ReportGenerator
from app.utils.summaries import SummaryService


@dataclass
class Services:
    settings: Settings
    store: ExpenseStore
    cache: CacheCoordinator
    queue: JobQueue
    tracker: ProgressTracker
    analyzer: TrendAnalyzer
    patterns: SpendingPatternService
    summaries: SummaryService
    events: RecordEventPublisher
    reports: ReportGenerator
    delivery: EmailReportDelivery
    clients: Optional[ServiceClients] = None


def build_services(
    settings: Settings,
    redis_client,
    sqs_client,
    store: ExpenseStore,
    clients: Optional[ServiceClients] = None,
    delivery: Optional[EmailReportDelivery] = None,
) -> Services:
    cache = CacheCoordinator.from_settings(redis_client, settings)
    queue = JobQueue(
        sqs_client,
        visibility_timeout=settings.SQS_VISIBILITY_TIMEOUT,
        wait_seconds=settings.SQS_WAIT_SECONDS,
        max_receive_count=settings.SQS_MAX_RECEIVE_COUNT,
    )
    tracker = ProgressTracker(cache)
    analyzer = TrendAnalyzer(
        window_months=settings.TREND_WINDOW_MONTHS,
        comparison_months=settings.TREND_COMPARISON_MONTHS,
        threshold_percent=settings.TREND_THRESHOLD_PERCENT,
        top_n=settings.TREND_TOP_CATEGORIES,
    )
    return Services(
        settings=settings,
        store=store,
        cache=cache,
        queue=queue,
        tracker=tracker,
        analyzer=analyzer,
        patterns=SpendingPatternService(store, analyzer, tracker, queue, settings.ANALYTICS_QUEUE),
        summaries=SummaryService(store, cache, window_months=settings.TREND_WINDOW_MONTHS),
        events=RecordEventPublisher(cache, queue, settings.ANALYTICS_QUEUE),
        reports=ReportGenerator(store, tracker),
        delivery=delivery or EmailReportDelivery(SmtpMailer.from_settings(settings)),
        clients=clients,
    )


def build_services_from_clients(clients: ServiceClients) -> Services:
    settings = clients.settings
    store = ExpenseStore.from_resource(
        clients.dynamodb, settings.DYNAMO_EXPENSES_TABLE, settings.DYNAMO_USERS_TABLE
    )
    return build_services(settings, clients.redis, clients.sqs, store, clients=clients)
