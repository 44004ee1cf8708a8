from datetime import datetime

from finance_engine.models.transaction import UNKNOWN_ACCOUNT
from finance_engine.utils.aggregation import calculate_analytics
from finance_engine.utils.forecasting import generate_forecast
from finance_engine.utils.normalizer import (
    normalize_record,
    normalize_records,
    parse_amount,
    parse_flag,
    parse_timestamp,
)

nested_record = {
    "id": 7,
    "dateIso": "2024-05-01T10:00:00Z",
    "account": {"id": "acc-1", "name": "Checking"},
    "category": {"id": "cat-1", "name": "Insurance", "excludeFromReports": "1"},
    "amount": "50",
    "currency": "USD",
    "convertedAmount": "185.5",
    "type": "Expense",
    "personCompany": "Harel",
}


def test_parse_flag_truthy_values():
    assert all(parse_flag(v) for v in (True, 1, "true", "1", " true "))
    assert not any(parse_flag(v) for v in (False, 0, 2, "yes", "false", None, []))


def test_parse_amount_degrades_to_zero():
    assert parse_amount("1,234.50") == 1234.5
    assert parse_amount(42) == 42.0
    assert parse_amount("abc") == 0.0
    assert parse_amount(None) == 0.0
    assert parse_amount(float("nan")) == 0.0


def test_parse_timestamp_variants():
    assert parse_timestamp("2024-05-01T10:00:00Z") == datetime(2024, 5, 1, 10, 0)
    assert parse_timestamp("2024-05-01") == datetime(2024, 5, 1)
    assert parse_timestamp("2024-05-01T25:99") == datetime(2024, 5, 1)
    assert parse_timestamp("garbage") is None
    assert parse_timestamp("") is None


def test_nested_record_with_excluded_category():
    tx = normalize_record(nested_record)
    assert tx.id == "7"
    assert tx.account == "Checking"
    assert tx.account_id == "acc-1"
    assert tx.category == "Insurance"
    assert tx.category_id == "cat-1"
    assert tx.amount == 50.0
    assert tx.converted_amount == 185.5
    assert tx.currency == "USD"
    assert tx.person_company == "Harel"
    assert tx.exclude_from_reports is True


def test_flat_record_defaults():
    tx = normalize_record({"amount": "20", "type": "Expense", "timestamp": "2024-05-02"}, "EUR")
    assert tx.account == UNKNOWN_ACCOUNT
    assert tx.currency == "EUR"
    assert tx.converted_amount == 20.0
    assert tx.date_iso == "2024-05-02T00:00:00"
    assert tx.category is None
    assert tx.exclude_from_reports is False


def test_own_flag_excludes_transaction():
    tx = normalize_record({"amount": 5, "type": "Expense", "exclude_from_reports": "true", "category": "Food"})
    assert tx.exclude_from_reports is True


def test_normalize_records_passes_transactions_through(make_tx):
    existing = make_tx()
    result = normalize_records([existing, {"amount": 1, "type": "Income"}])
    assert result[0] is existing
    assert result[1].type == "Income"


def test_unparseable_dates_become_empty():
    garbage = normalize_record({"date_iso": "not a date", "amount": "12", "type": "Expense"})
    epoch = normalize_record({"timestamp": 1715335200000, "amount": "12", "type": "Expense"})
    assert garbage.date_iso == ""
    assert epoch.date_iso == ""
    assert parse_timestamp(20240510) is None


def test_undated_records_do_not_invent_months():
    records = [
        {"date_iso": "not a date", "amount": "12", "type": "Expense"},
        {"timestamp": 1715335200000, "amount": "8", "type": "Expense"},
        {"date_iso": "2024-05-10T12:00:00", "amount": "30", "type": "Expense"},
    ]
    snapshot = calculate_analytics(normalize_records(records))
    assert [trend.month for trend in snapshot.monthly_trends] == ["2024-05"]
    assert snapshot.total_expense == 50.0
    assert generate_forecast(snapshot).data_quality == "limited"


def test_offset_timestamps_are_stored_in_utc():
    tx = normalize_record({"date_iso": "2024-05-31T22:00:00-05:00", "amount": "10", "type": "Expense"})
    assert tx.date_iso == "2024-06-01T03:00:00"
    assert tx.month_key == "2024-06"
    assert calculate_analytics([tx]).monthly_trends[0].month == "2024-06"
