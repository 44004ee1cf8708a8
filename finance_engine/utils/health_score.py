from __future__ import annotations

import statistics
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional

from finance_engine.utils.aggregation import AnalyticsSnapshot
from finance_engine.utils.forecasting import Forecast

BASE_SCORE = 50

GRADES = (
    (90, "A+"),
    (80, "A"),
    (75, "B+"),
    (70, "B"),
    (65, "C+"),
    (60, "C"),
    (50, "D"),
)


@dataclass
class HealthScore:
    score: int
    grade: str
    breakdown: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def grade_for(score: float) -> str:
    for floor, grade in GRADES:
        if score >= floor:
            return grade
    return "F"


def _savings_points(savings_rate: float) -> int:
    if savings_rate >= 0.2:
        return 25
    if savings_rate >= 0.1:
        return 15
    if savings_rate >= 0.05:
        return 10
    if savings_rate >= 0:
        return 5
    return -10


def _stability(snapshot: AnalyticsSnapshot):
    if snapshot.month_count < 3:
        return 0, "insufficient_data"
    expenses = [m.expense for m in snapshot.monthly_trends]
    mean = statistics.fmean(expenses)
    cov = statistics.pstdev(expenses) / mean if mean > 0 else 0.0
    if cov < 0.1:
        return 15, "very_stable"
    if cov < 0.2:
        return 10, "stable"
    if cov < 0.3:
        return 5, "moderate"
    return 0, "volatile"


def _emergency_points(months_of_expenses: float) -> int:
    if months_of_expenses >= 6:
        return 20
    if months_of_expenses >= 3:
        return 15
    if months_of_expenses >= 1:
        return 10
    if months_of_expenses >= 0:
        return 5
    return 0


def _velocity_points(ratio: float) -> int:
    if ratio < 1.1:
        return 15
    if ratio < 1.2:
        return 10
    if ratio < 1.3:
        return 5
    return -5


def _outlook_points(future_net: float, monthly_expense: float) -> int:
    if future_net > 0:
        return 15
    if future_net > -monthly_expense * 0.1:
        return 10
    if future_net > -monthly_expense * 0.2:
        return 5
    return -10


def calculate_health_score(snapshot: AnalyticsSnapshot, forecast: Optional[Forecast] = None) -> HealthScore:
    """Score financial health 0-100 from a base of 50 plus independent factors."""
    points: Dict[str, int] = {}

    savings_rate = snapshot.net_balance / snapshot.total_income if snapshot.total_income > 0 else 0.0
    points["savings_rate"] = _savings_points(savings_rate)

    points["expense_stability"], stability_label = _stability(snapshot)

    monthly_expense = snapshot.total_expense / max(1, snapshot.month_count)
    months_of_expenses = snapshot.net_balance / monthly_expense if monthly_expense > 0 else 0.0
    points["emergency_fund"] = _emergency_points(months_of_expenses)

    monthly_projection = snapshot.daily_averages.get("expense", 0.0) * 30
    velocity_ratio = monthly_projection / monthly_expense if monthly_expense > 0 else 1.0
    points["spending_velocity"] = _velocity_points(velocity_ratio)

    if snapshot.net_balance < 0:
        points["negative_balance"] = -20

    future_net = None
    if forecast is not None:
        future_net = forecast.next_month.net
        points["future_outlook"] = _outlook_points(future_net, monthly_expense)

    score = max(0, min(100, BASE_SCORE + sum(points.values())))

    return HealthScore(
        score=score,
        grade=grade_for(score),
        breakdown={
            "savings_rate": round(savings_rate * 100),
            "months_of_expenses": round(months_of_expenses, 1),
            "expense_stability": stability_label,
            "spending_velocity": "stable" if velocity_ratio < 1.1 else "accelerating",
            "future_outlook": "positive" if future_net is not None and future_net > 0 else "negative",
            "points": points,
        },
    )
