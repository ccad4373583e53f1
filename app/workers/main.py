"""
Worker entrypoint

    python -m app.workers.main analytics --concurrency 2
    python -m app.workers.main reports

Each worker thread runs its own blocking receive loop against the same queue.
SIGINT/SIGTERM let in-flight jobs finish, then close the client handles.
"""
import argparse
import logging
import signal
import threading
from typing import List, Optional

from app.core.clients import ServiceClients
from app.core.config import Settings, settings as default_settings
from app.core.wiring import Services, build_services_from_clients
from app.workers.handlers import AnalyticsJobHandler, JobHandler, ReportJobHandler
from app.workers.worker import QueueWorker

logger = logging.getLogger(__name__)

QUEUE_KINDS = ("analytics", "reports")


def build_handler(kind: str, services: Services) -> JobHandler:
    if kind == "analytics":
        return AnalyticsJobHandler(services.cache, services.patterns)
    if kind == "reports":
        return ReportJobHandler(services.reports, services.delivery)
    raise ValueError(f"Unknown worker kind: {kind}")


def queue_name_for(kind: str, settings: Settings) -> str:
    return settings.ANALYTICS_QUEUE if kind == "analytics" else settings.REPORT_QUEUE


def run_workers(kind: str, services: Services, concurrency: int, stop_event: threading.Event) -> List[QueueWorker]:
    settings = services.settings
    handler = build_handler(kind, services)
    workers = [
        QueueWorker(
            services.queue,
            queue_name_for(kind, settings),
            handler,
            retry_delay=settings.JOB_RETRY_DELAY,
            stop_event=stop_event,
            name=f"{kind}-worker-{i + 1}",
        )
        for i in range(concurrency)
    ]
    threads = [threading.Thread(target=worker.run, name=worker.name) for worker in workers]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    return workers


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Run background analytics workers")
    parser.add_argument("kind", choices=QUEUE_KINDS, help="which queue to consume")
    parser.add_argument("--concurrency", type=int, default=default_settings.WORKER_CONCURRENCY)
    parser.add_argument("--create-queues", action="store_true", default=default_settings.SQS_CREATE_QUEUES)
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=default_settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s [%(threadName)s] %(name)s: %(message)s",
    )

    clients = ServiceClients.connect(default_settings)
    services = build_services_from_clients(clients)
    if args.create_queues:
        services.queue.ensure_queues([default_settings.ANALYTICS_QUEUE, default_settings.REPORT_QUEUE])

    stop_event = threading.Event()

    def _shutdown(signum, frame):
        logger.info(f"Received signal {signum}, shutting down {args.kind} workers...")
        stop_event.set()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    try:
        run_workers(args.kind, services, max(1, args.concurrency), stop_event)
    finally:
        clients.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
