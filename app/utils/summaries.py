"""
Summary Service
Cheap aggregates served cache-first with a synchronous fallback.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from app.models.analytics import AggregateRow, DateRange, GroupBy
from app.utils.cache import CacheCategory, CacheCoordinator, analytics_summary_key, monthly_summary_key

logger = logging.getLogger(__name__)

MONTH_NAMES = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]


def _percentage(part: float, whole: float) -> float:
    return round(part / whole * 100, 2) if whole else 0.0


def category_breakdown(rows: List[AggregateRow], with_count: bool = True) -> List[Dict[str, Any]]:
    total = sum(row.total for row in rows)
    breakdown = []
    for row in sorted(rows, key=lambda r: (-r.total, r.category)):
        item: Dict[str, Any] = {"category": row.category, "total": row.total}
        if with_count:
            item["count"] = row.count
        item["percentage"] = _percentage(row.total, total)
        breakdown.append(item)
    return breakdown


class SummaryService:
    def __init__(self, store, cache: CacheCoordinator, window_months: int = 6) -> None:
        self._store = store
        self._cache = cache
        self._window_months = window_months

    def monthly_summary(self, user_id: str, year: int, month: int) -> Dict[str, Any]:
        key = monthly_summary_key(user_id, year, month)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        rows = self._store.aggregate(user_id, DateRange.for_month(year, month), GroupBy.CATEGORY)
        summary = {
            "year": year,
            "month": month,
            "total_amount": round(sum(row.total for row in rows), 2),
            "categories": category_breakdown(rows),
        }
        self._cache.set(key, summary, self._cache.ttl_for(CacheCategory.MONTHLY_SUMMARY))
        return summary

    def overall_summary(self, user_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        key = analytics_summary_key(user_id)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        category_rows = self._store.aggregate(user_id, None, GroupBy.CATEGORY)
        window = DateRange.trailing_months(self._window_months, now)
        month_rows = self._store.aggregate(user_id, window, GroupBy.CATEGORY_MONTH)

        month_totals: Dict[str, float] = {}
        for row in month_rows:
            month_totals[row.month] = month_totals.get(row.month, 0.0) + row.total

        monthly_spending = []
        for month_key in sorted(month_totals):
            year, month = (int(part) for part in month_key.split("-"))
            name = MONTH_NAMES[month - 1]
            monthly_spending.append(
                {"month": name, "year": year, "total": round(month_totals[month_key], 2), "label": f"{name} {year}"}
            )

        summary = {
            "total_spent": round(sum(row.total for row in category_rows), 2),
            "category_breakdown": category_breakdown(category_rows, with_count=False),
            "monthly_spending": monthly_spending,
        }
        self._cache.set(key, summary, self._cache.ttl_for(CacheCategory.ANALYTICS_SUMMARY))
        return summary
