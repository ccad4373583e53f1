"""
Analytics Router
Cached summaries, asynchronous spending-pattern analysis and report requests.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException

from app.core.errors import QueueError, StoreUnavailableError
from app.core.wiring import Services
from app.models.analytics import AnalysisStatus, EmailSummaryRequest
from app.models.jobs import Job, JobType
from app.routers.deps import get_current_user_id, get_services, parse_month
from app.utils.report_generator import date_range_for_period

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/summary")
def get_summary(user_id: str = Depends(get_current_user_id), services: Services = Depends(get_services)):
    """Overall spending summary, cached for an hour."""
    try:
        return services.summaries.overall_summary(user_id)
    except StoreUnavailableError as e:
        logger.error(f"Analytics summary error: {str(e)}")
        raise HTTPException(status_code=503, detail="Expense store unavailable")


@router.get("/monthly/{month}")
def get_monthly_summary(
    month: str,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    year, mon = parse_month(month)
    try:
        return services.summaries.monthly_summary(user_id, year, mon)
    except StoreUnavailableError as e:
        logger.error(f"Monthly summary error: {str(e)}")
        raise HTTPException(status_code=503, detail="Expense store unavailable")


@router.get("/patterns", response_model=AnalysisStatus, response_model_exclude_none=True)
def get_patterns(user_id: str = Depends(get_current_user_id), services: Services = Depends(get_services)):
    """Return the cached analysis, or queue one and answer with its status."""
    return services.patterns.request(user_id)


@router.post("/patterns/refresh", response_model=AnalysisStatus, response_model_exclude_none=True)
def refresh_patterns(user_id: str = Depends(get_current_user_id), services: Services = Depends(get_services)):
    """Discard the cached analysis and start a new one."""
    return services.patterns.request(user_id, force=True)


@router.get("/patterns/status", response_model=AnalysisStatus, response_model_exclude_none=True)
def get_patterns_status(user_id: str = Depends(get_current_user_id), services: Services = Depends(get_services)):
    return services.patterns.status(user_id)


@router.post("/email-summary")
def request_email_summary(
    body: EmailSummaryRequest,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    try:
        start_date, end_date = date_range_for_period(body.period, body.start_date, body.end_date)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    user = services.store.get_user(user_id)
    if not user or not user.get("email"):
        raise HTTPException(status_code=404, detail="No email address on file for this user")

    job = Job(
        type=JobType.SEND_REPORT,
        user_id=user_id,
        period=body.period,
        start_date=start_date,
        end_date=end_date,
        email=user["email"],
        name=user.get("name"),
    )
    try:
        services.queue.publish(services.settings.REPORT_QUEUE, job)
    except QueueError as e:
        logger.error(f"Email summary request error: {str(e)}")
        raise HTTPException(status_code=503, detail="Report queue unavailable, please retry")

    return {"message": "Email summary has been queued", "status": "queued"}
