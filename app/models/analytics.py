from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel


class GroupBy(str, Enum):
    CATEGORY = "category"
    CATEGORY_MONTH = "category_month"


class AnalysisState(str, Enum):
    NOT_STARTED = "not_started"
    PROCESSING = "processing"
    COMPLETED = "completed"


def _shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


@dataclass(frozen=True)
class DateRange:
    """Half-open [start, end) window over expense timestamps."""

    start: datetime
    end: datetime

    @classmethod
    def for_month(cls, year: int, month: int) -> "DateRange":
        next_year, next_month = _shift_month(year, month, 1)
        return cls(datetime(year, month, 1), datetime(next_year, next_month, 1))

    @classmethod
    def trailing_months(cls, count: int, now: Optional[datetime] = None) -> "DateRange":
        """The last `count` calendar months, including the month of `now`."""
        now = now or datetime.utcnow()
        start_year, start_month = _shift_month(now.year, now.month, -(count - 1))
        end_year, end_month = _shift_month(now.year, now.month, 1)
        return cls(datetime(start_year, start_month, 1), datetime(end_year, end_month, 1))

    @property
    def start_iso(self) -> str:
        return self.start.isoformat()

    @property
    def end_iso(self) -> str:
        return self.end.isoformat()

    def contains(self, timestamp: str) -> bool:
        # ISO-8601 strings order lexicographically
        return self.start_iso <= timestamp < self.end_iso


@dataclass(frozen=True)
class AggregateRow:
    """One {group-key, sum, count} row returned by the aggregate store."""

    category: str
    total: float
    count: int
    month: Optional[str] = None  # "YYYY-MM" when grouped by category and month

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        return {k: v for k, v in data.items() if v is not None}


class AnalysisStatus(BaseModel):
    status: AnalysisState
    data: Optional[Dict[str, Any]] = None
    message: Optional[str] = None


class EmailSummaryRequest(BaseModel):
    period: str
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
