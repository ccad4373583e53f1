from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from app.models.analytics import AggregateRow

INCREASING = "increasing"
DECREASING = "decreasing"
STABLE = "stable"
INSUFFICIENT_DATA = "insufficient-data"

# Reported when spending appears in a category that had none before.
NEW_SPENDING_CHANGE = 100.0


def classify_change(recent_avg: float, previous_avg: float, threshold: float = 10.0) -> Tuple[str, float]:
    """
    Compare the recent average against the previous one.
    Returns (trend, percentage_change). A zero previous average is special-cased:
    0 -> 0 is stable, anything else is "new spending" (increasing, 100%).
    """
    if previous_avg == 0:
        if recent_avg == 0:
            return STABLE, 0.0
        return INCREASING, NEW_SPENDING_CHANGE

    change = (recent_avg - previous_avg) / previous_avg * 100
    if change > threshold:
        return INCREASING, change
    if change < -threshold:
        return DECREASING, change
    return STABLE, change


@dataclass
class CategoryTrend:
    """Directional trend for a single expense category over the window."""

    category: str
    trend: str
    percentage_change: float
    average_monthly: float
    data: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Insight:
    type: str
    message: str
    category: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        return {k: v for k, v in data.items() if v is not None}


@dataclass
class TrendResult:
    user_id: str
    overall_trend: str
    overall_percentage_change: float
    category_trends: List[CategoryTrend]
    monthly_totals: List[Dict[str, Any]]
    insights: List[Insight]
    has_enough_data: bool
    no_data: bool = False
    analyzed_at: Optional[str] = field(default=None, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "overall_trend": self.overall_trend,
            "overall_percentage_change": self.overall_percentage_change,
            "category_trends": [trend.to_dict() for trend in self.category_trends],
            "monthly_totals": self.monthly_totals,
            "insights": [insight.to_dict() for insight in self.insights],
            "has_enough_data": self.has_enough_data,
            "no_data": self.no_data,
            "analyzed_at": self.analyzed_at,
        }


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values)


def _split_month(month: str) -> Tuple[int, int]:
    year, mon = month.split("-")[:2]
    return int(year), int(mon)


class TrendAnalyzer:
    """
    Turns per-month, per-category totals into classified spending trends.

    Pure computation: the same rows always produce the same TrendResult
    (apart from `analyzed_at`), so recomputing after a redelivered job is safe.
    """

    def __init__(
        self,
        window_months: int = 6,
        comparison_months: int = 3,
        threshold_percent: float = 10.0,
        top_n: int = 3,
    ) -> None:
        if comparison_months < 1 or window_months < comparison_months:
            raise ValueError("window_months must be >= comparison_months >= 1")
        self._window_months = window_months
        self._comparison_months = comparison_months
        self._threshold = threshold_percent
        self._top_n = top_n

    @property
    def window_months(self) -> int:
        return self._window_months

    def build_matrix(self, rows: Sequence[AggregateRow]) -> Tuple[List[str], Dict[str, List[float]]]:
        """
        Dense month x category matrix. Months are the active months of the window,
        oldest first; a category without spending in a month gets an explicit 0.
        """
        months = sorted({row.month for row in rows if row.month})[-self._window_months:]
        index = {month: i for i, month in enumerate(months)}
        matrix: Dict[str, List[float]] = {}
        for row in rows:
            if row.month not in index:
                continue
            amounts = matrix.setdefault(row.category, [0.0] * len(months))
            amounts[index[row.month]] += row.total
        return months, dict(sorted(matrix.items()))

    def compare(self, series: Sequence[float]) -> Tuple[str, float]:
        """Recent `comparison_months` against the same number of months before them."""
        k = self._comparison_months
        if len(series) < 2:
            return INSUFFICIENT_DATA, 0.0
        recent = series[-k:]
        previous = series[-2 * k:-k]
        if not previous:
            return INSUFFICIENT_DATA, 0.0
        return classify_change(_mean(recent), _mean(previous), self._threshold)

    def analyze(self, user_id: str, rows: Sequence[AggregateRow]) -> TrendResult:
        months, matrix = self.build_matrix(rows)
        analyzed_at = datetime.utcnow().isoformat()

        if not months:
            return TrendResult(
                user_id=user_id,
                overall_trend=INSUFFICIENT_DATA,
                overall_percentage_change=0.0,
                category_trends=[],
                monthly_totals=[],
                insights=[
                    Insight(
                        type="overall",
                        message=f"No expenses recorded in the last {self._window_months} months.",
                    )
                ],
                has_enough_data=False,
                no_data=True,
                analyzed_at=analyzed_at,
            )

        category_trends = [self._category_trend(category, months, amounts) for category, amounts in matrix.items()]

        totals = [round(sum(amounts[i] for amounts in matrix.values()), 2) for i in range(len(months))]
        overall_trend, overall_change = self.compare(totals)
        overall_change = round(overall_change, 2)

        monthly_totals = []
        for month, total in zip(months, totals):
            year, mon = _split_month(month)
            monthly_totals.append({"year": year, "month": mon, "total": total})

        return TrendResult(
            user_id=user_id,
            overall_trend=overall_trend,
            overall_percentage_change=overall_change,
            category_trends=category_trends,
            monthly_totals=monthly_totals,
            insights=self._insights(overall_trend, overall_change, category_trends),
            has_enough_data=len(months) >= self._comparison_months,
            analyzed_at=analyzed_at,
        )

    def _category_trend(self, category: str, months: List[str], amounts: List[float]) -> CategoryTrend:
        data = []
        for month, amount in zip(months, amounts):
            year, mon = _split_month(month)
            data.append({"year": year, "month": mon, "amount": round(amount, 2)})

        trend, change = self.compare(amounts)
        return CategoryTrend(
            category=category,
            trend=trend,
            percentage_change=round(change, 2),
            average_monthly=round(sum(amounts) / max(1, len(amounts)), 2),
            data=data,
        )

    def _insights(self, overall_trend: str, overall_change: float, trends: List[CategoryTrend]) -> List[Insight]:
        if overall_trend == INSUFFICIENT_DATA:
            insights = [
                Insight(
                    type="overall",
                    message="There is not enough spending history yet to identify an overall trend.",
                )
            ]
        else:
            direction = "increase" if overall_change >= 0 else "decrease"
            insights = [
                Insight(
                    type="overall",
                    message=(
                        f"Your overall spending is {overall_trend} with a {abs(overall_change):.1f}% "
                        f"{direction} compared to the previous period."
                    ),
                )
            ]

        increasing = sorted(
            (t for t in trends if t.trend == INCREASING),
            key=lambda t: (-t.percentage_change, t.category),
        )[: self._top_n]
        decreasing = sorted(
            (t for t in trends if t.trend == DECREASING),
            key=lambda t: (t.percentage_change, t.category),
        )[: self._top_n]

        for trend in increasing:
            insights.append(
                Insight(
                    type=INCREASING,
                    category=trend.category,
                    message=(
                        f"Your {trend.category} spending has increased by "
                        f"{abs(trend.percentage_change):.1f}% compared to the previous period."
                    ),
                )
            )
        for trend in decreasing:
            insights.append(
                Insight(
                    type=DECREASING,
                    category=trend.category,
                    message=(
                        f"Your {trend.category} spending has decreased by "
                        f"{abs(trend.percentage_change):.1f}% compared to the previous period."
                    ),
                )
            )
        return insights
