from __future__ import annotations

import math
from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from finance_engine.models.transaction import EXPENSE, INCOME, TRANSFER, Transaction
from finance_engine.utils.aggregation import AnalyticsSnapshot
from finance_engine.utils.normalizer import parse_timestamp

TRANSFER_CATEGORY = "Transfer"


def _burn_rate(balance: float, daily_expense: float) -> Optional[int]:
    if daily_expense > 0 and balance > 0:
        return math.ceil(balance / daily_expense)
    return None


def calculate_spending_trends(snapshot: AnalyticsSnapshot) -> Dict[str, Any]:
    daily = dict(snapshot.daily_averages)
    monthly = {"income": 0.0, "expense": 0.0}
    if snapshot.month_count:
        monthly = {
            "income": snapshot.total_income / snapshot.month_count,
            "expense": snapshot.total_expense / snapshot.month_count,
        }

    velocity = daily.get("expense", 0.0)
    return {
        "daily_average": daily,
        "weekly_average": {"income": daily.get("income", 0.0) * 7, "expense": velocity * 7},
        "monthly_average": monthly,
        "spending_velocity": velocity,
        "burn_rate": _burn_rate(snapshot.net_balance, velocity) or 0,
    }


def calculate_category_trends(snapshot: AnalyticsSnapshot) -> List[Dict[str, Any]]:
    """Month-sorted expense series per category, transfers left out."""
    series: Dict[str, Dict[str, float]] = defaultdict(lambda: defaultdict(float))
    for tx in snapshot.transactions:
        if tx.type == EXPENSE and tx.category and tx.category != TRANSFER_CATEGORY and tx.date_iso:
            series[tx.category][tx.month_key] += tx.converted_amount

    return [
        {
            "category": category,
            "monthly_data": [{"month": month, "amount": amount} for month, amount in sorted(months.items())],
        }
        for category, months in series.items()
    ]


def calculate_year_over_year(snapshot: AnalyticsSnapshot, current_year: Optional[int] = None) -> Dict[str, Any]:
    current_year = current_year or datetime.utcnow().year
    years = {
        current_year: {"income": 0.0, "expense": 0.0, "transactions": 0},
        current_year - 1: {"income": 0.0, "expense": 0.0, "transactions": 0},
    }

    for tx in snapshot.transactions:
        if not tx.date_iso[:4].isdigit():
            continue
        bucket = years.get(int(tx.date_iso[:4]))
        if bucket is None:
            continue
        if tx.category != TRANSFER_CATEGORY:
            if tx.type == INCOME:
                bucket["income"] += tx.converted_amount
            elif tx.type == EXPENSE:
                bucket["expense"] += tx.converted_amount
        bucket["transactions"] += 1

    current, last = years[current_year], years[current_year - 1]
    return {
        "current_year": current,
        "last_year": last,
        "income_change": (current["income"] - last["income"]) / last["income"] * 100 if last["income"] > 0 else 0.0,
        "expense_change": (
            (current["expense"] - last["expense"]) / last["expense"] * 100 if last["expense"] > 0 else 0.0
        ),
        "net_change": (current["income"] - current["expense"]) - (last["income"] - last["expense"]),
    }


def _as_date(value: Optional[str]) -> Optional[date]:
    moment = parse_timestamp(value)
    return moment.date() if moment else None


def calculate_cash_flow_calendar(
    transactions: Iterable[Transaction],
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """One entry per day of the range; the observed range is used unless both ends are given."""
    transactions = list(transactions)
    start, end = _as_date(start_date), _as_date(end_date)

    if start is None or end is None:
        for tx in transactions:
            day = _as_date(tx.date_iso)
            if day is None:
                continue
            if start is None or day < start:
                start = day
            if end is None or day > end:
                end = day

    if start is None or end is None:
        return []

    calendar: Dict[str, Dict[str, Any]] = {}
    current = start
    while current <= end:
        key = current.isoformat()
        calendar[key] = {
            "date": key,
            "income": 0.0,
            "expense": 0.0,
            "net": 0.0,
            "transaction_count": 0,
            "transactions": [],
        }
        current += timedelta(days=1)

    for tx in transactions:
        if not tx.date_iso or tx.type == TRANSFER:
            continue
        day = calendar.get(tx.date_key)
        if day is None:
            continue
        if tx.type == INCOME:
            day["income"] += tx.converted_amount
        elif tx.type == EXPENSE:
            day["expense"] += tx.converted_amount
        day["net"] = day["income"] - day["expense"]
        day["transaction_count"] += 1
        day["transactions"].append(
            {
                "id": tx.id,
                "description": tx.description,
                "amount": tx.converted_amount,
                "type": tx.type,
                "category": tx.category,
            }
        )

    return list(calendar.values())


VELOCITY_SCORES = {"stable": 75, "decelerating": 85, "accelerating": 60}


def calculate_spending_velocity(snapshot: AnalyticsSnapshot) -> Dict[str, Any]:
    daily = snapshot.daily_averages.get("expense", 0.0)
    trend, acceleration = "stable", 0.0

    if snapshot.month_count >= 3:
        recent = [m.expense for m in snapshot.monthly_trends[-3:]]
        if recent[0] > 0:
            acceleration = (recent[-1] - recent[0]) / recent[0] * 100
        if acceleration > 5:
            trend = "accelerating"
        elif acceleration < -5:
            trend = "decelerating"

    return {
        "daily": daily,
        "weekly": daily * 7,
        "monthly": daily * 30,
        "trend": trend,
        "acceleration": acceleration,
        "burn_rate": _burn_rate(snapshot.net_balance, daily),
        "velocity_score": VELOCITY_SCORES[trend],
    }
