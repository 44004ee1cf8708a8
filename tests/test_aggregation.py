import pytest

from conftest import build_transaction
from finance_engine.models.transaction import EXPENSE, INCOME, TRANSFER
from finance_engine.utils.aggregation import (
    account_balance,
    calculate_analytics,
    filter_by_date_range,
    filter_transactions,
)

sample_transactions = [
    build_transaction(id="salary", date_iso="2024-05-01T09:00:00", category="Salary", amount=5000.0, type=INCOME),
    build_transaction(id="food", date_iso="2024-05-03T12:00:00", category="Food", subcategory="Groceries",
                      amount=300.0, description="SUPERMARKET weekly"),
    build_transaction(id="move", date_iso="2024-05-04T08:00:00", category="Transfer", amount=-500.0, type=TRANSFER),
    build_transaction(id="rent", date_iso="2024-06-01T08:00:00", category="Rent", amount=2000.0),
    build_transaction(id="insurance", date_iso="2024-06-02T08:00:00", category="Insurance", amount=1000.0,
                      exclude_from_reports=True),
]


def test_totals_and_exclusions():
    snapshot = calculate_analytics(sample_transactions)
    assert snapshot.total_transactions == 5
    assert snapshot.excluded_transactions == 1
    assert snapshot.total_income == 5000.0
    assert snapshot.total_expense == 2300.0
    assert snapshot.total_transfers == -500.0
    assert snapshot.net_balance == 2700.0
    assert snapshot.excluded_expenses == 1000.0
    assert snapshot.excluded_income == 0.0
    assert all(t.id != "insurance" for t in snapshot.transactions)


def test_category_sums_reconcile_with_totals():
    snapshot = calculate_analytics(sample_transactions)
    by_category = sum(b["income"] + b["expense"] for b in snapshot.by_category.values())
    assert by_category == pytest.approx(snapshot.total_income + snapshot.total_expense)
    assert "Food - Groceries" in snapshot.by_category
    assert not any(key.startswith("Insurance") for key in snapshot.by_category)
    assert "Insurance" not in dict(snapshot.top_expense_categories)


def test_top_categories_sorted_descending():
    snapshot = calculate_analytics(sample_transactions)
    assert snapshot.top_expense_categories == [("Rent", 2000.0), ("Food", 300.0)]
    assert snapshot.top_income_categories == [("Salary", 5000.0)]


def test_monthly_trends_sorted_and_complete():
    snapshot = calculate_analytics(sample_transactions)
    assert [m.month for m in snapshot.monthly_trends] == ["2024-05", "2024-06"]
    may = snapshot.monthly_trends[0]
    assert may.income == 5000.0
    assert may.expense == 300.0
    assert may.transfers == 500.0
    assert may.net == 4700.0
    assert may.transaction_count == 3


def test_account_balance_follows_transfer_sign():
    snapshot = calculate_analytics(sample_transactions)
    assert snapshot.account_balances["Checking"] == 5000.0 - 300.0 - 500.0 - 2000.0
    assert snapshot.by_account["Checking"]["transfers"] == 500.0


def test_unknown_type_is_counted_but_not_summed(make_tx):
    snapshot = calculate_analytics([make_tx(type="Adjustment", amount=70.0), make_tx(amount=30.0)])
    assert snapshot.total_transactions == 2
    assert snapshot.total_expense == 30.0
    assert snapshot.total_income == 0.0


def test_currency_conversion_rate(make_tx):
    snapshot = calculate_analytics([make_tx(currency="USD", amount=10.0, converted_amount=37.0)])
    assert snapshot.by_currency["USD"]["conversion_rate"] == pytest.approx(3.7)
    assert snapshot.currency_breakdown["USD"]["expense"] == 10.0
    assert snapshot.account_currencies["Checking"]["USD"]["balance"] == -10.0


def test_daily_averages_use_whole_days(make_tx):
    snapshot = calculate_analytics(
        [
            make_tx(date_iso="2024-05-01T00:00:00", type=INCOME, amount=3000.0),
            make_tx(date_iso="2024-05-31T00:00:00", amount=600.0),
        ]
    )
    assert snapshot.daily_averages == {"income": 100.0, "expense": 20.0}


def test_date_range_filter_is_inclusive():
    filtered = filter_by_date_range(sample_transactions, "2024-05-03", "2024-06-01")
    assert [t.id for t in filtered] == ["food", "move", "rent"]
    snapshot = calculate_analytics(sample_transactions, "2024-06-01", "2024-06-30")
    assert snapshot.total_expense == 2000.0
    assert snapshot.filtered_date_range.start == "2024-06-01"


def test_filter_transactions():
    assert [t.id for t in filter_transactions(sample_transactions, {"search": "supermarket"})] == ["food"]
    assert [t.id for t in filter_transactions(sample_transactions, {"type": INCOME})] == ["salary"]
    assert len(filter_transactions(sample_transactions, {"category": "all"})) == 5
    big = filter_transactions(sample_transactions, {"min_amount": 1000, "type": EXPENSE})
    assert {t.id for t in big} == {"rent", "insurance"}
    assert [t.id for t in filter_transactions(sample_transactions, {"max_amount": 0})] == ["move"]


def test_empty_input():
    snapshot = calculate_analytics([])
    assert snapshot.total_transactions == 0
    assert snapshot.monthly_trends == []
    assert snapshot.daily_averages == {"income": 0.0, "expense": 0.0}


def test_account_balance_includes_excluded_transactions(make_tx):
    history = [
        make_tx(type="Income", amount=5000.0),
        make_tx(amount=4950.0, exclude_from_reports=True),
        make_tx(type="Transfer", amount=-20.0),
        make_tx(account="Savings", type="Income", amount=900.0),
    ]
    assert account_balance(history, "Checking") == 30.0
    assert calculate_analytics(history).account_balances["Checking"] == 4980.0
