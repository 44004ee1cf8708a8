from finance_engine.utils.aggregation import AnalyticsSnapshot, MonthlyTrend
from finance_engine.utils.forecasting import Forecast, MonthProjection
from finance_engine.utils.health_score import calculate_health_score, grade_for


def snapshot_with(total_income, total_expense=3000.0, net_balance=1000.0, expenses=(3000.0,)):
    trends = [
        MonthlyTrend(month=f"2024-{i + 1:02d}", income=0.0, expense=e, transfers=0.0, net=-e, transaction_count=1)
        for i, e in enumerate(expenses)
    ]
    return AnalyticsSnapshot(
        total_income=total_income,
        total_expense=total_expense,
        net_balance=net_balance,
        monthly_trends=trends,
        daily_averages={"income": 0.0, "expense": total_expense / len(trends) / 30},
    )


def test_grades():
    assert grade_for(95) == "A+"
    assert grade_for(80) == "A"
    assert grade_for(50) == "D"
    assert grade_for(49) == "F"


def test_score_is_monotonic_in_savings_rate():
    # Same net balance and expenses, so only the savings rate changes
    scores = [calculate_health_score(snapshot_with(income)).score for income in (100000.0, 20000.0, 8000.0, 5000.0)]
    assert scores == sorted(scores)
    assert scores[0] < scores[-1]


def test_negative_balance_is_penalised_and_clamped():
    health = calculate_health_score(snapshot_with(1000.0, total_expense=5000.0, net_balance=-4000.0, expenses=(5000.0,)))
    assert health.breakdown["points"]["negative_balance"] == -20
    assert health.breakdown["points"]["savings_rate"] == -10
    assert 0 <= health.score <= 100
    assert health.grade == "F"


def test_breakdown_labels():
    snapshot = snapshot_with(10000.0, total_expense=9000.0, net_balance=18000.0, expenses=(3000.0, 3000.0, 3000.0))
    forecast = Forecast(next_month=MonthProjection(income=5000.0, expense=3000.0, net=2000.0))
    health = calculate_health_score(snapshot, forecast)

    assert health.breakdown["expense_stability"] == "very_stable"
    assert health.breakdown["months_of_expenses"] == 6.0
    assert health.breakdown["spending_velocity"] == "stable"
    assert health.breakdown["future_outlook"] == "positive"
    # 50 + 25 savings + 15 stability + 20 emergency + 15 velocity + 15 outlook
    assert health.score == 100
    assert health.grade == "A+"


def test_score_never_exceeds_bounds():
    for income in (0.0, 1.0, 1e9):
        for net in (-1e9, 0.0, 1e9):
            score = calculate_health_score(snapshot_with(income, net_balance=net)).score
            assert 0 <= score <= 100
