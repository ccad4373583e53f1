from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from typing import Optional
import logging

from app.core.clients import ServiceClients
from app.core.config import settings
from app.core.wiring import Services, build_services_from_clients
from app.routers import analytics, expenses, health
from app.utils.scheduler import ReportScheduler

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


def create_app(services: Optional[Services] = None) -> FastAPI:
    """
    Build the API. When `services` is given (tests) no client handles are
    created and no scheduler is started.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        clients = None
        scheduler = None
        if services is None:
            logger.info("Connecting client handles...")
            clients = ServiceClients.connect(settings)
            app.state.services = build_services_from_clients(clients)
            if settings.SQS_CREATE_QUEUES:
                app.state.services.queue.ensure_queues([settings.ANALYTICS_QUEUE, settings.REPORT_QUEUE])
            if settings.REPORT_SCHEDULER_ENABLED:
                # Startup: Start the scheduler
                logger.info("Starting scheduler...")
                scheduler = ReportScheduler(
                    app.state.services.store,
                    app.state.services.queue,
                    settings.REPORT_QUEUE,
                    settings.REPORT_SCHEDULE_CRON,
                )
                scheduler.start()
        yield
        # Shutdown: Stop the scheduler and close connections
        if scheduler is not None:
            logger.info("Stopping scheduler...")
            scheduler.stop()
        if clients is not None:
            clients.close()

    app = FastAPI(
        title=settings.PROJECT_NAME,
        debug=settings.DEBUG,
        lifespan=lifespan
    )
    if services is not None:
        app.state.services = services

    # CORS configuration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:3000",
            "http://localhost:8000",
        ],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
        allow_headers=["*"],
        max_age=3600,
    )

    # Root endpoint
    @app.get("/")
    def root():
        return {"message": f"Welcome to {settings.PROJECT_NAME} API"}

    # Register routers
    app.include_router(health.router, prefix=f"{settings.API_PREFIX}", tags=["Health"])  # /api/health
    app.include_router(expenses.router, prefix=f"{settings.API_PREFIX}/expenses", tags=["Expenses"])
    app.include_router(analytics.router, prefix=f"{settings.API_PREFIX}/analytics", tags=["Analytics"])

    return app


app = create_app()
