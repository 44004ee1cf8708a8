"""
Insight and anomaly generation.

Rule-based findings from day/time spending buckets and merchant rollups,
plus a z-score check of the latest month's spend against the monthly
series. Savings tips live here too since they read the same aggregates.
"""
from __future__ import annotations

import re
import statistics
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from finance_engine.models.transaction import EXPENSE, INCOME, TRANSFER, Transaction
from finance_engine.utils.aggregation import AnalyticsSnapshot
from finance_engine.utils.forecasting import Forecast
from finance_engine.utils.normalizer import parse_timestamp

WEEKDAYS = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")
MONTH_PERIODS = ("1-7", "8-14", "15-21", "22-31")
PERIOD_LABELS = {"1-7": "first", "8-14": "second", "15-21": "third", "22-31": "last"}

IMPACT_ORDER = {"high": 3, "medium": 2, "low": 1}

MERCHANT_PATTERNS = (
    re.compile(r"^([A-Z][A-Z\s&]+?)\s", re.IGNORECASE),
    re.compile(r"at\s+([A-Z][A-Z\s&]+?)(?:\s|$)", re.IGNORECASE),
    re.compile(r"from\s+([A-Z][A-Z\s&]+?)(?:\s|$)", re.IGNORECASE),
)


@dataclass
class Insight:
    type: str
    title: str
    message: str
    impact: str
    category: str
    severity: Optional[str] = None
    action: Optional[str] = None
    data: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class SavingsTip:
    category: str
    title: str
    message: str
    impact: str
    potential_savings: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class SavingsTipRates:
    food: float = 0.15
    transport: float = 0.10
    shopping: float = 0.20
    daily_habits: float = 0.15
    top_category: float = 0.10


@dataclass
class MerchantSummary:
    name: str
    total_spent: float = 0.0
    total_received: float = 0.0
    transaction_count: int = 0
    avg_amount: float = 0.0
    categories: Dict[str, float] = field(default_factory=dict)
    last_transaction: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _bucket() -> Dict[str, float]:
    return {"income": 0.0, "expense": 0.0, "count": 0}


def _month_period(day: int) -> str:
    if day <= 7:
        return "1-7"
    if day <= 14:
        return "8-14"
    if day <= 21:
        return "15-21"
    return "22-31"


def calculate_spending_patterns(transactions: Iterable[Transaction]) -> Dict[str, Any]:
    """Income/expense/count by day of week, part of month and hour of day."""
    patterns: Dict[str, Any] = {
        "by_day_of_week": {day: _bucket() for day in WEEKDAYS},
        "by_time_of_month": {period: _bucket() for period in MONTH_PERIODS},
        "by_hour": [_bucket() for _ in range(24)],
    }

    for tx in transactions:
        if tx.type == TRANSFER:
            continue
        moment = parse_timestamp(tx.date_iso)
        if moment is None:
            continue

        # isoweekday(): Monday=1 .. Sunday=7
        buckets = (
            patterns["by_day_of_week"][WEEKDAYS[moment.isoweekday() % 7]],
            patterns["by_time_of_month"][_month_period(moment.day)],
            patterns["by_hour"][moment.hour],
        )
        for bucket in buckets:
            if tx.type == INCOME:
                bucket["income"] += tx.converted_amount
            elif tx.type == EXPENSE:
                bucket["expense"] += tx.converted_amount
            bucket["count"] += 1

    return patterns


def merchant_name(tx: Transaction) -> str:
    for pattern in MERCHANT_PATTERNS:
        match = pattern.search(tx.description or "")
        if match and match.group(1):
            return match.group(1).strip()
    return tx.person_company or tx.description or ""


def analyze_merchants(transactions: Iterable[Transaction], limit: int = 50) -> List[MerchantSummary]:
    merchants: Dict[str, MerchantSummary] = {}

    for tx in transactions:
        if tx.type == TRANSFER or not tx.description:
            continue

        name = merchant_name(tx)
        merchant = merchants.setdefault(name, MerchantSummary(name=name))
        amount = abs(tx.converted_amount)

        if tx.type == EXPENSE:
            merchant.total_spent += amount
        elif tx.type == INCOME:
            merchant.total_received += amount
        merchant.transaction_count += 1

        category = tx.category or "Uncategorized"
        merchant.categories[category] = merchant.categories.get(category, 0.0) + amount

        if tx.date_iso and (merchant.last_transaction is None or tx.date_iso > merchant.last_transaction):
            merchant.last_transaction = tx.date_iso

    for merchant in merchants.values():
        if merchant.transaction_count:
            merchant.avg_amount = (merchant.total_spent + merchant.total_received) / merchant.transaction_count

    ranked = sorted(merchants.values(), key=lambda m: m.total_spent + m.total_received, reverse=True)
    return ranked[:limit]


def _rank(items: List[Any]) -> List[Any]:
    return sorted(items, key=lambda item: IMPACT_ORDER.get(item.impact.lower(), 0), reverse=True)


def generate_insights(
    snapshot: AnalyticsSnapshot,
    forecast: Optional[Forecast],
    patterns: Optional[Dict[str, Any]],
    merchants: Optional[List[MerchantSummary]],
    currency: str = "ILS",
) -> List[Insight]:
    """Build the ranked (high > medium > low impact) list of findings."""
    insights: List[Insight] = []

    if patterns and patterns.get("by_day_of_week"):
        days = patterns["by_day_of_week"]
        average = sum(d["expense"] for d in days.values()) / len(days)
        top_day, top = max(days.items(), key=lambda item: item[1]["expense"])
        if average > 0 and top["expense"] > average * 1.2:
            insights.append(
                Insight(
                    type="spending_pattern",
                    title=f"You spend {(top['expense'] / average - 1) * 100:.0f}% more on {top_day}s",
                    message=(
                        f"Your spending on {top_day} is {top['expense'] / average * 100:.0f}% of your "
                        f"weekly daily average. Consider reviewing your {top_day} spending habits."
                    ),
                    impact="medium",
                    category="Spending Patterns",
                )
            )

    if patterns and patterns.get("by_time_of_month"):
        periods = patterns["by_time_of_month"]
        average = sum(p["expense"] for p in periods.values()) / len(periods)
        top_period, top = max(periods.items(), key=lambda item: item[1]["expense"])
        if average > 0 and top["expense"] > average * 1.15:
            insights.append(
                Insight(
                    type="time_pattern",
                    title=f"Higher spending in days {top_period} of the month",
                    message=f"You tend to spend more during the {PERIOD_LABELS[top_period]} week of the month.",
                    impact="low",
                    category="Spending Patterns",
                )
            )

    if merchants:
        top_merchant = merchants[0]
        if top_merchant.total_spent > 0:
            monthly = top_merchant.total_spent / max(1, snapshot.month_count)
            insights.append(
                Insight(
                    type="merchant",
                    title=f"Top merchant: {top_merchant.name}",
                    message=(
                        f"You've spent an average of {monthly:.0f} {currency}/month at {top_merchant.name} "
                        f"across {top_merchant.transaction_count} transactions."
                    ),
                    impact="low",
                    category="Merchant Analysis",
                    data={
                        "merchant": top_merchant.name,
                        "total_spent": top_merchant.total_spent,
                        "transaction_count": top_merchant.transaction_count,
                    },
                )
            )

    if snapshot.month_count >= 3:
        expenses = [m.expense for m in snapshot.monthly_trends]
        mean = statistics.fmean(expenses)
        std_dev = statistics.pstdev(expenses)
        z_score = (expenses[-1] - mean) / std_dev if std_dev > 0 else 0.0
        if abs(z_score) > 2:
            above = (expenses[-1] / mean - 1) * 100 if mean > 0 else 0.0
            insights.append(
                Insight(
                    type="anomaly",
                    title="Unusually high spending detected" if z_score > 0 else "Unusually low spending detected",
                    message=(
                        f"Your last month's spending was {above:.0f}% above your monthly average. "
                        "Review your transactions to identify the cause."
                        if z_score > 0
                        else "Your last month's spending was significantly lower than average. Great job!"
                    ),
                    impact="high" if z_score > 0 else "low",
                    category="Anomaly Detection",
                    severity="high" if abs(z_score) > 3 else "medium",
                    data={"z_score": z_score, "month": snapshot.monthly_trends[-1].month},
                )
            )

    savings_rate = snapshot.net_balance / snapshot.total_income if snapshot.total_income > 0 else 0.0
    if savings_rate < 0.1:
        insights.append(
            Insight(
                type="recommendation",
                title="Increase your savings rate",
                message=(
                    f"Your current savings rate is {savings_rate * 100:.1f}%. "
                    "Aim for at least 20% to build a strong financial foundation."
                ),
                impact="high",
                category="Recommendations",
                action="Review your top expense categories and identify areas to reduce spending.",
            )
        )

    if snapshot.top_expense_categories and snapshot.total_expense > 0:
        name, amount = snapshot.top_expense_categories[0]
        share = amount / snapshot.total_expense * 100
        if share > 30:
            insights.append(
                Insight(
                    type="recommendation",
                    title=f"Focus on {name} spending",
                    message=(
                        f"{name} accounts for {share:.1f}% of your expenses. "
                        "Consider reviewing this category for optimization opportunities."
                    ),
                    impact="high",
                    category="Recommendations",
                    action=f"Review your {name} transactions and identify ways to reduce spending.",
                )
            )

    if forecast is not None and forecast.months_until_zero is not None and forecast.months_until_zero <= 3:
        insights.append(
            Insight(
                type="runway",
                title="Short cash runway",
                message=(
                    f"At the projected spending rate your balance covers about "
                    f"{forecast.months_until_zero} month(s) of expenses."
                ),
                impact="high",
                category="Forecast",
            )
        )

    return _rank(insights)


def generate_savings_tips(
    snapshot: AnalyticsSnapshot,
    rates: Optional[SavingsTipRates] = None,
    currency: str = "ILS",
) -> List[SavingsTip]:
    rates = rates or SavingsTipRates()
    tips: List[SavingsTip] = []
    totals = dict(snapshot.top_expense_categories)
    months = snapshot.month_count or 1
    daily_expense = snapshot.daily_averages.get("expense", 0.0)
    savings_rate = snapshot.net_balance / snapshot.total_income if snapshot.total_income > 0 else 0.0

    if savings_rate < 0.2:
        tips.append(
            SavingsTip(
                category="General",
                title="Increase Your Savings Rate",
                message=(
                    f"You're currently saving {savings_rate * 100:.1f}% of your income. "
                    "Aim for at least 20% to build a strong financial foundation."
                ),
                impact="High",
                potential_savings=max(0.0, snapshot.total_income * 0.2 - snapshot.net_balance),
            )
        )

    food = totals.get("Food", 0.0)
    if food > 0 and food / months > 500:
        tips.append(
            SavingsTip(
                category="Food",
                title="Optimize Food Spending",
                message=(
                    f"You're spending {food / months:.0f} {currency}/month on food. Consider meal planning, "
                    "buying in bulk, and reducing restaurant visits."
                ),
                impact="Medium",
                potential_savings=food * rates.food,
            )
        )

    wheels = totals.get("Wheels", 0.0)
    if wheels > 0 and wheels / months > 200:
        tips.append(
            SavingsTip(
                category="Transportation",
                title="Review Transportation Costs",
                message=(
                    f"Transportation costs are {wheels / months:.0f} {currency}/month. Consider carpooling, "
                    "public transport, or walking for short distances."
                ),
                impact="Medium",
                potential_savings=wheels * rates.transport,
            )
        )

    shopping = totals.get("Shopping", 0.0)
    if shopping > 0:
        tips.append(
            SavingsTip(
                category="Shopping",
                title="Reduce Impulse Purchases",
                message=(
                    f"You've spent {shopping:.0f} {currency} on shopping. Try the 24-hour rule: wait a day "
                    "before making non-essential purchases."
                ),
                impact="Low",
                potential_savings=shopping * rates.shopping,
            )
        )

    if daily_expense > 100:
        tips.append(
            SavingsTip(
                category="Daily Habits",
                title="Track Daily Spending",
                message=(
                    f"Your average daily expense is {daily_expense:.0f} {currency}. Track every purchase "
                    "for a week to identify unnecessary spending."
                ),
                impact="Medium",
                potential_savings=daily_expense * rates.daily_habits * 30,
            )
        )

    if snapshot.top_expense_categories and snapshot.total_expense > 0:
        name, amount = snapshot.top_expense_categories[0]
        if amount > snapshot.total_expense * 0.3:
            tips.append(
                SavingsTip(
                    category=name,
                    title=f"Focus on {name} Spending",
                    message=(
                        f"{name} accounts for {amount / snapshot.total_expense * 100:.1f}% of your expenses. "
                        "Review this category for optimization opportunities."
                    ),
                    impact="High",
                    potential_savings=amount * rates.top_category,
                )
            )

    if snapshot.net_balance > 0 and snapshot.total_expense > 0:
        months_of_expenses = snapshot.net_balance / (snapshot.total_expense / months)
        if months_of_expenses < 3:
            tips.append(
                SavingsTip(
                    category="Emergency Fund",
                    title="Build Emergency Fund",
                    message=(
                        f"You have {months_of_expenses:.1f} months of expenses saved. "
                        "Aim for 3-6 months of expenses as an emergency fund."
                    ),
                    impact="High",
                    potential_savings=0.0,
                )
            )

    return _rank(tips)
