"""
Aggregation Engine
Single-pass reducer from canonical transactions to an AnalyticsSnapshot.
"""
from __future__ import annotations

import math
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from finance_engine.models.transaction import EXPENSE, INCOME, TRANSFER, Transaction
from finance_engine.utils.normalizer import parse_timestamp


@dataclass
class DateRange:
    start: Optional[str] = None
    end: Optional[str] = None


@dataclass
class MonthlyTrend:
    month: str
    income: float
    expense: float
    transfers: float
    net: float
    transaction_count: int


@dataclass
class AnalyticsSnapshot:
    total_transactions: int = 0
    total_income: float = 0.0
    total_expense: float = 0.0
    total_transfers: float = 0.0
    net_balance: float = 0.0
    excluded_income: float = 0.0
    excluded_expenses: float = 0.0
    excluded_transactions: int = 0
    by_category: Dict[str, Dict[str, float]] = field(default_factory=dict)
    by_account: Dict[str, Dict[str, float]] = field(default_factory=dict)
    account_balances: Dict[str, float] = field(default_factory=dict)
    by_month: Dict[str, Dict[str, float]] = field(default_factory=dict)
    by_currency: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    currency_breakdown: Dict[str, Dict[str, float]] = field(default_factory=dict)
    account_currencies: Dict[str, Dict[str, Dict[str, float]]] = field(default_factory=dict)
    top_expense_categories: List[Tuple[str, float]] = field(default_factory=list)
    top_income_categories: List[Tuple[str, float]] = field(default_factory=list)
    monthly_trends: List[MonthlyTrend] = field(default_factory=list)
    date_range: DateRange = field(default_factory=DateRange)
    filtered_date_range: DateRange = field(default_factory=DateRange)
    daily_averages: Dict[str, float] = field(default_factory=lambda: {"income": 0.0, "expense": 0.0})
    transactions: List[Transaction] = field(default_factory=list)

    @property
    def month_count(self) -> int:
        return len(self.monthly_trends)

    def to_dict(self, include_transactions: bool = False) -> Dict[str, Any]:
        data = asdict(self)
        data["top_expense_categories"] = [list(pair) for pair in self.top_expense_categories]
        data["top_income_categories"] = [list(pair) for pair in self.top_income_categories]
        if not include_transactions:
            data.pop("transactions")
        return data


def filter_by_date_range(
    transactions: Iterable[Transaction],
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
) -> List[Transaction]:
    """Inclusive filter on the YYYY-MM-DD portion of each timestamp."""
    if not start_date and not end_date:
        return list(transactions)

    filtered = []
    for tx in transactions:
        if not tx.date_iso:
            continue
        day = tx.date_key
        if start_date and day < start_date[:10]:
            continue
        if end_date and day > end_date[:10]:
            continue
        filtered.append(tx)
    return filtered


def filter_transactions(transactions: Iterable[Transaction], filters: Dict[str, Any]) -> List[Transaction]:
    """Apply search/category/account/type/amount/date filters. ``"all"`` disables a filter."""
    filtered = list(transactions)

    search = filters.get("search")
    if search:
        needle = search.lower()
        filtered = [
            t
            for t in filtered
            if any(
                value and needle in value.lower()
                for value in (t.description, t.category, t.account, t.subcategory)
            )
        ]

    for key in ("category", "account", "type"):
        wanted = filters.get(key)
        if wanted and wanted != "all":
            filtered = [t for t in filtered if getattr(t, key) == wanted]

    min_amount = filters.get("min_amount")
    if min_amount is not None:
        filtered = [t for t in filtered if t.converted_amount >= min_amount]

    max_amount = filters.get("max_amount")
    if max_amount is not None:
        filtered = [t for t in filtered if t.converted_amount <= max_amount]

    return filter_by_date_range(filtered, filters.get("start_date"), filters.get("end_date"))


def account_balance(transactions: Iterable[Transaction], account: str) -> float:
    """
    Current balance of one account from its full history.

    Unlike ``AnalyticsSnapshot.account_balances`` this includes excluded
    transactions, which still move money in and out of the account.
    """
    balance = 0.0
    for tx in transactions:
        if tx.account != account:
            continue
        if tx.type in (INCOME, TRANSFER):
            balance += tx.converted_amount
        elif tx.type == EXPENSE:
            balance -= tx.converted_amount
    return balance


def _days_between(start: str, end: str) -> int:
    start_dt = parse_timestamp(start)
    end_dt = parse_timestamp(end)
    if start_dt is None or end_dt is None:
        return 1
    seconds = (end_dt - start_dt).total_seconds()
    return max(1, math.ceil(seconds / 86400))


def _top_pairs(totals: Dict[str, float]) -> List[Tuple[str, float]]:
    return sorted(totals.items(), key=lambda pair: pair[1], reverse=True)


def calculate_analytics(
    transactions: Sequence[Transaction],
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
) -> AnalyticsSnapshot:
    """
    Aggregate a transaction set into an AnalyticsSnapshot.

    Excluded (logging-only) transactions are split off first and only feed
    ``excluded_income`` / ``excluded_expenses``. Transfers move account
    balances but never count as income or expense. Transactions whose type is
    not Income, Expense or Transfer are counted and otherwise ignored.
    """
    filtered = filter_by_date_range(transactions, start_date, end_date)
    excluded = [t for t in filtered if t.exclude_from_reports]
    regular = [t for t in filtered if not t.exclude_from_reports]

    snapshot = AnalyticsSnapshot(
        total_transactions=len(filtered),
        excluded_transactions=len(excluded),
        filtered_date_range=DateRange(start_date, end_date),
        transactions=regular,
    )

    for tx in filtered:
        if not tx.date_iso:
            continue
        if snapshot.date_range.start is None or tx.date_iso < snapshot.date_range.start:
            snapshot.date_range.start = tx.date_iso
        if snapshot.date_range.end is None or tx.date_iso > snapshot.date_range.end:
            snapshot.date_range.end = tx.date_iso

    for tx in excluded:
        if tx.type == INCOME:
            snapshot.excluded_income += tx.converted_amount
        elif tx.type == EXPENSE:
            snapshot.excluded_expenses += tx.converted_amount

    top_expense: Dict[str, float] = defaultdict(float)
    top_income: Dict[str, float] = defaultdict(float)
    by_currency: Dict[str, Dict[str, Any]] = {}

    for tx in regular:
        if tx.type not in (INCOME, EXPENSE, TRANSFER):
            continue

        amount = tx.converted_amount
        is_transfer = tx.type == TRANSFER

        if is_transfer:
            snapshot.total_transfers += amount
        elif tx.type == INCOME:
            snapshot.total_income += amount
        else:
            snapshot.total_expense += amount

        if tx.category:
            key = f"{tx.category} - {tx.subcategory}" if tx.subcategory else tx.category
            bucket = snapshot.by_category.setdefault(key, {"income": 0.0, "expense": 0.0})
            if tx.type == INCOME:
                bucket["income"] += amount
                top_income[tx.category] += amount
            elif tx.type == EXPENSE:
                bucket["expense"] += amount
                top_expense[tx.category] += amount

        if tx.account:
            account = snapshot.by_account.setdefault(
                tx.account, {"income": 0.0, "expense": 0.0, "transfers": 0.0, "transaction_count": 0}
            )
            balance = snapshot.account_balances.get(tx.account, 0.0)
            if is_transfer:
                account["transfers"] += abs(amount)
                # Transfers carry their own sign: negative outgoing, positive incoming
                balance += amount
            elif tx.type == INCOME:
                account["income"] += amount
                balance += amount
            else:
                account["expense"] += amount
                balance -= amount
            account["transaction_count"] += 1
            snapshot.account_balances[tx.account] = balance

        if tx.date_iso:
            month = snapshot.by_month.setdefault(
                tx.month_key, {"income": 0.0, "expense": 0.0, "transfers": 0.0, "transaction_count": 0}
            )
            if is_transfer:
                month["transfers"] += abs(amount)
            elif tx.type == INCOME:
                month["income"] += amount
            else:
                month["expense"] += amount
            month["transaction_count"] += 1

        if tx.currency:
            kind = "transfers" if is_transfer else ("income" if tx.type == INCOME else "expense")

            currency = by_currency.setdefault(
                tx.currency,
                {
                    "income": 0.0,
                    "expense": 0.0,
                    "transfers": 0.0,
                    "income_converted": 0.0,
                    "expense_converted": 0.0,
                    "transfers_converted": 0.0,
                },
            )
            currency[kind] += tx.amount
            currency[f"{kind}_converted"] += tx.converted_amount

            breakdown = snapshot.currency_breakdown.setdefault(
                tx.currency, {"income": 0.0, "expense": 0.0, "transfers": 0.0, "transaction_count": 0}
            )
            breakdown[kind] += tx.amount
            breakdown["transaction_count"] += 1

            if tx.account:
                per_account = snapshot.account_currencies.setdefault(tx.account, {})
                sub = per_account.setdefault(
                    tx.currency, {"balance": 0.0, "income": 0.0, "expense": 0.0, "transfers": 0.0}
                )
                sub[kind] += tx.amount
                if kind == "income":
                    sub["balance"] += tx.amount
                elif kind == "expense":
                    sub["balance"] -= tx.amount

    snapshot.net_balance = snapshot.total_income - snapshot.total_expense

    if snapshot.date_range.start and snapshot.date_range.end:
        days = _days_between(snapshot.date_range.start, snapshot.date_range.end)
        snapshot.daily_averages = {
            "income": snapshot.total_income / days,
            "expense": snapshot.total_expense / days,
        }

    for data in by_currency.values():
        original_total = data["income"] + data["expense"] + data["transfers"]
        converted_total = data["income_converted"] + data["expense_converted"] + data["transfers_converted"]
        data["conversion_rate"] = converted_total / original_total if original_total > 0 else None
    snapshot.by_currency = by_currency

    snapshot.top_expense_categories = _top_pairs(top_expense)
    snapshot.top_income_categories = _top_pairs(top_income)

    snapshot.monthly_trends = [
        MonthlyTrend(
            month=month,
            income=data["income"],
            expense=data["expense"],
            transfers=data["transfers"],
            net=data["income"] - data["expense"],
            transaction_count=int(data["transaction_count"]),
        )
        for month, data in sorted(snapshot.by_month.items())
    ]

    return snapshot
