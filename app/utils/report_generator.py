"""
Report Generator
Builds a point-in-time expense summary for a period.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

from app.models.analytics import DateRange, GroupBy
from app.utils.progress import ProgressTracker
from app.utils.summaries import category_breakdown

logger = logging.getLogger(__name__)

PERIOD_DAYS = {"weekly": 7, "monthly": 30, "yearly": 365}
PERIODS = (*PERIOD_DAYS, "custom")


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def date_range_for_period(
    period: str,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> Tuple[datetime, datetime]:
    """Resolve a report period to (start, end). Raises ValueError for bad input."""
    if period in PERIOD_DAYS:
        end = now or datetime.utcnow()
        return end - timedelta(days=PERIOD_DAYS[period]), end

    if period == "custom":
        if not start_date or not end_date:
            raise ValueError("Custom period requires start_date and end_date")
        start_date, end_date = _naive_utc(start_date), _naive_utc(end_date)
        if start_date > end_date:
            raise ValueError("start_date must not be after end_date")
        return start_date, end_date

    raise ValueError(f"Invalid period {period!r}. Must be one of: {', '.join(PERIODS)}")


class ReportGenerator:
    def __init__(self, store, tracker: Optional[ProgressTracker] = None) -> None:
        self._store = store
        self._tracker = tracker

    def build(
        self,
        user_id: str,
        period: str,
        start_date: datetime,
        end_date: datetime,
        email: Optional[str] = None,
        name: Optional[str] = None,
    ) -> Dict[str, Any]:
        # end_date is inclusive for the reader; the store range is half-open
        rows = self._store.aggregate(
            user_id, DateRange(start_date, end_date + timedelta(microseconds=1)), GroupBy.CATEGORY
        )

        payload: Dict[str, Any] = {
            "user_id": user_id,
            "name": name,
            "email": email,
            "period": period,
            "start_date": start_date.isoformat(),
            "end_date": end_date.isoformat(),
            "total_spent": round(sum(row.total for row in rows), 2),
            "expense_count": sum(row.count for row in rows),
            "category_breakdown": category_breakdown(rows),
            "insights": self._cached_insights(user_id),
        }

        if not rows:
            payload["message"] = "No expenses found for this period."
        else:
            payload["message"] = (
                f"Expense summary for {period} period from {start_date.date().isoformat()} "
                f"to {end_date.date().isoformat()}."
            )

        logger.info(f"Built {period} report for user {user_id}: total={payload['total_spent']}")
        return payload

    def _cached_insights(self, user_id: str):
        if self._tracker is None:
            return []
        result = self._tracker.result(user_id)
        if not result or result.get("no_data"):
            return []
        return result.get("insights", [])
