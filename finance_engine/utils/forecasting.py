"""
Forecasting Engine
Projects income and expense from the monthly trend series of an
AnalyticsSnapshot: exponential smoothing blended with a least-squares
slope, 95% confidence bands, best/likely/worst scenarios and a 12-month
cash-flow projection.
"""
from __future__ import annotations

import math
import statistics
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from finance_engine.models.transaction import EXPENSE
from finance_engine.utils.aggregation import AnalyticsSnapshot

DISCRETIONARY_CATEGORIES = ("Food", "Shopping", "Entertainment", "Wheels", "Personal", "Transport")


@dataclass(frozen=True)
class ForecastParameters:
    smoothing_alpha: float = 0.3
    smoothing_weight: float = 0.4
    regression_weight: float = 0.6
    confidence_z: float = 1.96
    max_history_months: int = 6
    weeks_per_month: float = 4.33
    savings_potential_rate: float = 0.18
    discretionary_categories: Tuple[str, ...] = DISCRETIONARY_CATEGORIES
    category_prediction_count: int = 5


@dataclass
class Projection:
    income: float = 0.0
    expense: float = 0.0
    net: float = 0.0

    @classmethod
    def of(cls, income: float, expense: float) -> "Projection":
        return cls(income=income, expense=expense, net=income - expense)


@dataclass
class MonthProjection(Projection):
    income_min: float = 0.0
    income_max: float = 0.0
    expense_min: float = 0.0
    expense_max: float = 0.0
    confidence: str = "low"


@dataclass
class CashFlowPoint:
    month: int
    income: float
    expense: float
    net: float
    projected_balance: float


@dataclass
class CategoryPrediction:
    next_month: float
    trend: str
    confidence: str


@dataclass
class Forecast:
    next_week: Projection = field(default_factory=Projection)
    next_month: MonthProjection = field(default_factory=MonthProjection)
    next_3_months: Projection = field(default_factory=Projection)
    next_year: Projection = field(default_factory=Projection)
    scenarios: Dict[str, Projection] = field(
        default_factory=lambda: {"best": Projection(), "likely": Projection(), "worst": Projection()}
    )
    category_predictions: Dict[str, CategoryPrediction] = field(default_factory=dict)
    cash_flow_projection: List[CashFlowPoint] = field(default_factory=list)
    savings_potential: float = 0.0
    months_until_zero: Optional[int] = None
    months_until_zero_worst: Optional[int] = None
    data_quality: str = "insufficient"

    @property
    def confidence(self) -> str:
        return self.next_month.confidence

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SeriesTrend:
    mean: float
    std_dev: float
    smoothing_trend: float
    regression_trend: float
    combined_trend: float


def population_std_dev(values: Sequence[float]) -> float:
    if len(values) < 2:
        return 0.0
    return statistics.pstdev(values)


def exponential_smoothing(values: Sequence[float], alpha: float = 0.3) -> Tuple[List[float], float]:
    """Return the smoothed series and the last step of it as the trend."""
    if not values:
        return [], 0.0
    smoothed = [float(values[0])]
    for value in values[1:]:
        smoothed.append(alpha * value + (1 - alpha) * smoothed[-1])
    trend = smoothed[-1] - smoothed[-2] if len(smoothed) >= 2 else 0.0
    return smoothed, trend


def regression_slope(values: Sequence[float]) -> float:
    """Ordinary least-squares slope of value against its index."""
    n = len(values)
    if n < 2:
        return 0.0
    x_mean = (n - 1) / 2
    y_mean = sum(values) / n
    numerator = sum((i - x_mean) * (v - y_mean) for i, v in enumerate(values))
    denominator = sum((i - x_mean) ** 2 for i in range(n))
    return numerator / denominator if denominator else 0.0


def analyze_series(values: Sequence[float], params: ForecastParameters) -> SeriesTrend:
    _, smoothing_trend = exponential_smoothing(values, params.smoothing_alpha)
    slope = regression_slope(values)
    return SeriesTrend(
        mean=statistics.fmean(values) if values else 0.0,
        std_dev=population_std_dev(values),
        smoothing_trend=smoothing_trend,
        regression_trend=slope,
        combined_trend=params.smoothing_weight * smoothing_trend + params.regression_weight * slope,
    )


def classify_data_quality(month_count: int) -> str:
    if month_count >= 6:
        return "excellent"
    if month_count >= 3:
        return "good"
    return "fair"


CONFIDENCE_BY_QUALITY = {"excellent": "high", "good": "medium", "fair": "low"}


def _months_until_zero(balance: float, monthly_expense: float) -> Optional[int]:
    if balance > 0 and monthly_expense > 0:
        return math.ceil(balance / monthly_expense)
    return None


def _category_predictions(snapshot: AnalyticsSnapshot, params: ForecastParameters) -> Dict[str, CategoryPrediction]:
    months = [trend.month for trend in snapshot.monthly_trends]
    if not months:
        return {}

    per_category: Dict[str, Dict[str, float]] = defaultdict(lambda: defaultdict(float))
    for tx in snapshot.transactions:
        if tx.type == EXPENSE and tx.category:
            per_category[tx.category][tx.month_key] += tx.converted_amount

    predictions = {}
    for category, _total in snapshot.top_expense_categories[: params.category_prediction_count]:
        series = [per_category[category].get(month, 0.0) for month in months]
        mean = statistics.fmean(series)
        slope = regression_slope(series)
        if mean > 0 and slope > 0.05 * mean:
            trend = "increasing"
        elif mean > 0 and slope < -0.05 * mean:
            trend = "decreasing"
        else:
            trend = "stable"
        predictions[category] = CategoryPrediction(
            next_month=max(0.0, mean + slope),
            trend=trend,
            confidence="medium" if len(months) >= 3 else "low",
        )
    return predictions


def _savings_potential(snapshot: AnalyticsSnapshot, params: ForecastParameters) -> float:
    months = snapshot.month_count
    if not months:
        return 0.0
    totals = dict(snapshot.top_expense_categories)
    return sum(
        totals[category] / months * params.savings_potential_rate
        for category in params.discretionary_categories
        if category in totals
    )


def generate_forecast(snapshot: AnalyticsSnapshot, params: Optional[ForecastParameters] = None) -> Forecast:
    """
    Build a Forecast from an AnalyticsSnapshot.

    No regular transactions gives an all-zero "insufficient" forecast. Fewer
    than two distinct months falls back to a daily-rate projection flagged
    "limited". Otherwise up to the last six months drive the projection.
    """
    params = params or ForecastParameters()
    forecast = Forecast()
    trends = snapshot.monthly_trends

    if len(trends) < 2:
        if not snapshot.transactions:
            return forecast

        daily_income = snapshot.daily_averages.get("income", 0.0)
        daily_expense = snapshot.daily_averages.get("expense", 0.0)
        forecast.next_week = Projection.of(daily_income * 7, daily_expense * 7)
        month = Projection.of(daily_income * 30, daily_expense * 30)
        forecast.next_month = MonthProjection(
            income=month.income,
            expense=month.expense,
            net=month.net,
            income_min=month.income,
            income_max=month.income,
            expense_min=month.expense,
            expense_max=month.expense,
            confidence="low",
        )
        forecast.data_quality = "limited"
        forecast.months_until_zero = _months_until_zero(snapshot.net_balance, month.expense)
        return forecast

    forecast.data_quality = classify_data_quality(len(trends))

    recent = trends[-params.max_history_months :]
    income = analyze_series([m.income for m in recent], params)
    expense = analyze_series([m.expense for m in recent], params)

    base_income = income.mean + income.combined_trend
    base_expense = expense.mean + expense.combined_trend
    z = params.confidence_z

    next_month = MonthProjection(
        income=max(0.0, base_income),
        expense=max(0.0, base_expense),
        income_min=max(0.0, base_income - income.std_dev * z),
        income_max=base_income + income.std_dev * z,
        expense_min=max(0.0, base_expense - expense.std_dev * z),
        expense_max=base_expense + expense.std_dev * z,
        confidence=CONFIDENCE_BY_QUALITY[forecast.data_quality],
    )
    next_month.net = next_month.income - next_month.expense
    forecast.next_month = next_month

    forecast.scenarios = {
        "best": Projection.of(next_month.income_max, next_month.expense_min),
        "likely": Projection.of(next_month.income, next_month.expense),
        "worst": Projection.of(next_month.income_min, next_month.expense_max),
    }

    forecast.next_3_months = Projection.of(next_month.income * 3, next_month.expense * 3)
    forecast.next_year = Projection.of(next_month.income * 12, next_month.expense * 12)
    forecast.next_week = Projection.of(
        next_month.income / params.weeks_per_month, next_month.expense / params.weeks_per_month
    )

    forecast.category_predictions = _category_predictions(snapshot, params)

    balance = snapshot.net_balance
    for i in range(1, 13):
        month_income = base_income + income.combined_trend * i
        month_expense = base_expense + expense.combined_trend * i
        balance += month_income - month_expense
        forecast.cash_flow_projection.append(
            CashFlowPoint(
                month=i,
                income=month_income,
                expense=month_expense,
                net=month_income - month_expense,
                projected_balance=balance,
            )
        )

    forecast.savings_potential = _savings_potential(snapshot, params)

    forecast.months_until_zero = _months_until_zero(snapshot.net_balance, next_month.expense)
    if forecast.months_until_zero is not None:
        forecast.months_until_zero_worst = _months_until_zero(
            snapshot.net_balance, forecast.scenarios["worst"].expense
        )

    return forecast
