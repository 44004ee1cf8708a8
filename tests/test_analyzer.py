from types import SimpleNamespace

import pytest

from finance_engine import FinanceAnalyzer

sample_records = [
    {"id": "1", "category": "Food", "amount": 250.0, "type": "Expense", "timestamp": "2025-11-01T12:00:00Z",
     "description": "Market"},
    {"id": "2", "category": "Rent", "amount": 1000.0, "type": "Expense", "timestamp": "2025-11-02T12:00:00Z"},
    {"id": "3", "category": "Food", "amount": 150.0, "type": "Expense", "timestamp": "2025-11-03T12:00:00Z"},
    {"id": "4", "category": "Shopping", "amount": 1200.0, "type": "Expense", "timestamp": "2025-11-04T12:00:00Z"},
    {"id": "5", "category": "Salary", "amount": "4,000", "type": "Income", "timestamp": "2025-11-01T08:00:00Z"},
    {"id": "6", "category": {"name": "Car loan", "excludeFromReports": True}, "amount": 3000.0, "type": "Expense",
     "timestamp": "2025-11-05T12:00:00Z"},
]


def test_calculate_totals():
    analyzer = FinanceAnalyzer()
    snapshot = analyzer.analytics(sample_records)
    assert snapshot.total_expense == 2600.0
    assert snapshot.total_income == 4000.0
    assert snapshot.excluded_expenses == 3000.0


def test_summarize_categories():
    analyzer = FinanceAnalyzer()
    summary = analyzer.summarize(sample_records)
    categories = {c["category"]: c for c in summary["categories"]}

    assert summary["net_balance"] == 1400.0
    assert categories["Food"]["total"] == 400.0
    assert categories["Food"]["average"] == 200.0  # (250 + 150) / 2
    assert categories["Food"]["transaction_count"] == 2
    assert categories["Shopping"]["share"] == pytest.approx(46.2)
    assert summary["data_quality"] == "limited"
    assert 0 <= summary["health_score"]["score"] <= 100


def test_summarize_empty():
    summary = FinanceAnalyzer().summarize([])
    assert summary["categories"] == []
    assert summary["data_quality"] == "insufficient"


def test_from_settings_applies_heuristic_rates():
    config = SimpleNamespace(
        REPORTING_CURRENCY="EUR",
        SMOOTHING_ALPHA=0.5,
        SAVINGS_POTENTIAL_RATE=0.25,
        FOOD_TIP_RATE=0.3,
        TRANSPORT_TIP_RATE=0.1,
        SHOPPING_TIP_RATE=0.5,
        DAILY_HABITS_TIP_RATE=0.15,
        TOP_CATEGORY_TIP_RATE=0.1,
    )
    analyzer = FinanceAnalyzer.from_settings(config)
    assert analyzer.currency == "EUR"
    assert analyzer.forecast_params.smoothing_alpha == 0.5
    assert analyzer.forecast_params.savings_potential_rate == 0.25

    tips = analyzer.savings_tips(sample_records)
    impulse = next(tip for tip in tips if tip.title == "Reduce Impulse Purchases")
    assert impulse.potential_savings == pytest.approx(600.0)


def test_filter_and_normalize_raw_records():
    analyzer = FinanceAnalyzer()
    food = analyzer.filter(sample_records, {"category": "Food"})
    assert [t.id for t in food] == ["1", "3"]
    assert analyzer.normalize(sample_records)[4].amount == 4000.0


def test_advanced_bundle():
    result = FinanceAnalyzer().advanced(sample_records, current_year=2025)
    assert set(result) >= {
        "analytics",
        "forecast",
        "health_score",
        "insights",
        "savings_tips",
        "recurring",
        "spending_trends",
        "category_trends",
        "year_over_year",
        "spending_patterns",
        "merchants",
        "cash_flow_calendar",
        "spending_velocity",
        "loans",
        "expenses_by_person",
        "debt_by_person",
    }
    assert result["year_over_year"]["current_year"]["expense"] == 2600.0
    assert "transactions" not in result["analytics"]
    assert len(result["cash_flow_calendar"]) == 4
