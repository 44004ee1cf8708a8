from __future__ import annotations

from collections import defaultdict
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, List, Optional

from finance_engine.models.transaction import EXPENSE, Transaction
from finance_engine.utils.aggregation import AnalyticsSnapshot, calculate_analytics, filter_transactions
from finance_engine.utils.counterparties import (
    calculate_debt_by_person,
    calculate_expenses_by_person,
    calculate_loans_and_debts,
)
from finance_engine.utils.forecasting import Forecast, ForecastParameters, generate_forecast
from finance_engine.utils.health_score import HealthScore, calculate_health_score
from finance_engine.utils.insights import (
    Insight,
    SavingsTip,
    SavingsTipRates,
    analyze_merchants,
    calculate_spending_patterns,
    generate_insights,
    generate_savings_tips,
)
from finance_engine.utils.normalizer import DEFAULT_CURRENCY, normalize_records
from finance_engine.utils.recurring import RecurringPattern, detect_recurring_transactions
from finance_engine.utils.trends import (
    calculate_cash_flow_calendar,
    calculate_category_trends,
    calculate_spending_trends,
    calculate_spending_velocity,
    calculate_year_over_year,
)


@dataclass
class CategoryInsight:
    """Expense totals for a single category."""

    category: str
    total: float
    average: float
    transaction_count: int
    share: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class FinanceAnalyzer:
    """
    Entry point used by the FastAPI routes and the scheduler. Raw records
    are normalized once per call; every computation underneath is a pure
    function of the resulting transaction list.
    """

    def __init__(
        self,
        currency: str = DEFAULT_CURRENCY,
        forecast_params: Optional[ForecastParameters] = None,
        tip_rates: Optional[SavingsTipRates] = None,
    ) -> None:
        self.currency = currency
        self.forecast_params = forecast_params or ForecastParameters()
        self.tip_rates = tip_rates or SavingsTipRates()

    @classmethod
    def from_settings(cls, config) -> "FinanceAnalyzer":
        return cls(
            currency=config.REPORTING_CURRENCY,
            forecast_params=ForecastParameters(
                smoothing_alpha=config.SMOOTHING_ALPHA,
                savings_potential_rate=config.SAVINGS_POTENTIAL_RATE,
            ),
            tip_rates=SavingsTipRates(
                food=config.FOOD_TIP_RATE,
                transport=config.TRANSPORT_TIP_RATE,
                shopping=config.SHOPPING_TIP_RATE,
                daily_habits=config.DAILY_HABITS_TIP_RATE,
                top_category=config.TOP_CATEGORY_TIP_RATE,
            ),
        )

    def normalize(self, records: Iterable[Any]) -> List[Transaction]:
        return normalize_records(records, self.currency)

    def analytics(
        self,
        records: Iterable[Any],
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> AnalyticsSnapshot:
        return calculate_analytics(self.normalize(records), start_date, end_date)

    def filter(self, records: Iterable[Any], filters: Dict[str, Any]) -> List[Transaction]:
        return filter_transactions(self.normalize(records), filters)

    def forecast(self, records: Iterable[Any], start_date: str = None, end_date: str = None) -> Forecast:
        return generate_forecast(self.analytics(records, start_date, end_date), self.forecast_params)

    def recurring(self, records: Iterable[Any]) -> List[RecurringPattern]:
        return detect_recurring_transactions(t for t in self.normalize(records) if not t.exclude_from_reports)

    def health_score(self, records: Iterable[Any], start_date: str = None, end_date: str = None) -> HealthScore:
        snapshot = self.analytics(records, start_date, end_date)
        return calculate_health_score(snapshot, generate_forecast(snapshot, self.forecast_params))

    def insights(self, records: Iterable[Any], start_date: str = None, end_date: str = None) -> List[Insight]:
        snapshot = self.analytics(records, start_date, end_date)
        return generate_insights(
            snapshot,
            generate_forecast(snapshot, self.forecast_params),
            calculate_spending_patterns(snapshot.transactions),
            analyze_merchants(snapshot.transactions),
            self.currency,
        )

    def savings_tips(self, records: Iterable[Any], start_date: str = None, end_date: str = None) -> List[SavingsTip]:
        return generate_savings_tips(self.analytics(records, start_date, end_date), self.tip_rates, self.currency)

    def advanced(
        self,
        records: Iterable[Any],
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        current_year: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Everything the dashboard shows, computed from a single snapshot."""
        snapshot = self.analytics(records, start_date, end_date)
        regular = snapshot.transactions
        forecast = generate_forecast(snapshot, self.forecast_params)
        patterns = calculate_spending_patterns(regular)
        merchants = analyze_merchants(regular)

        return {
            "analytics": snapshot.to_dict(),
            "forecast": forecast.to_dict(),
            "health_score": calculate_health_score(snapshot, forecast).to_dict(),
            "insights": [i.to_dict() for i in generate_insights(snapshot, forecast, patterns, merchants, self.currency)],
            "savings_tips": [t.to_dict() for t in generate_savings_tips(snapshot, self.tip_rates, self.currency)],
            "recurring": [p.to_dict() for p in detect_recurring_transactions(regular)],
            "spending_trends": calculate_spending_trends(snapshot),
            "category_trends": calculate_category_trends(snapshot),
            "year_over_year": calculate_year_over_year(snapshot, current_year),
            "spending_patterns": patterns,
            "merchants": [m.to_dict() for m in merchants],
            "cash_flow_calendar": calculate_cash_flow_calendar(regular, start_date, end_date),
            "spending_velocity": calculate_spending_velocity(snapshot),
            "loans": calculate_loans_and_debts(regular),
            "expenses_by_person": calculate_expenses_by_person(regular),
            "debt_by_person": calculate_debt_by_person(regular),
        }

    def category_insights(self, snapshot: AnalyticsSnapshot) -> List[CategoryInsight]:
        counts: Dict[str, int] = defaultdict(int)
        for tx in snapshot.transactions:
            if tx.type == EXPENSE and tx.category:
                counts[tx.category] += 1

        return [
            CategoryInsight(
                category=category,
                total=round(total, 2),
                average=round(total / counts[category], 2) if counts[category] else 0.0,
                transaction_count=counts[category],
                share=round(total / snapshot.total_expense * 100, 1) if snapshot.total_expense > 0 else 0.0,
            )
            for category, total in snapshot.top_expense_categories
        ]

    def summarize(self, records: Iterable[Any], start_date: str = None, end_date: str = None) -> Dict[str, Any]:
        snapshot = self.analytics(records, start_date, end_date)
        if not snapshot.total_transactions:
            return {
                "total_income": 0.0,
                "total_expense": 0.0,
                "net_balance": 0.0,
                "categories": [],
                "health_score": None,
                "data_quality": "insufficient",
            }

        forecast = generate_forecast(snapshot, self.forecast_params)
        return {
            "total_income": round(snapshot.total_income, 2),
            "total_expense": round(snapshot.total_expense, 2),
            "net_balance": round(snapshot.net_balance, 2),
            "categories": [c.to_dict() for c in self.category_insights(snapshot)],
            "health_score": calculate_health_score(snapshot, forecast).to_dict(),
            "data_quality": forecast.data_quality,
        }
