"""
Transaction Normalizer
Turns stored or imported records into canonical Transaction objects.

Every coercion happens here, once. Downstream analytics trust the shape
they receive and never re-validate.
"""
from __future__ import annotations

import math
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, List, Mapping, Optional

from finance_engine.models.transaction import UNKNOWN_ACCOUNT, Transaction

DEFAULT_CURRENCY = "ILS"


def parse_flag(value: Any) -> bool:
    """True only for True, 1, "true" or "1"."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float, Decimal)):
        return value == 1
    if isinstance(value, str):
        return value.strip() in ("true", "1")
    return False


def parse_amount(value: Any) -> float:
    """Coerce a numeric-ish value to float; anything unparseable becomes 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        if isinstance(value, str):
            value = value.replace(",", "").strip()
            if not value:
                return 0.0
        result = float(Decimal(str(value)))
    except (InvalidOperation, ValueError, TypeError):
        return 0.0
    if math.isnan(result) or math.isinf(result):
        return 0.0
    return result


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO timestamp into a naive UTC datetime, or None."""
    if value is None or value == "" or isinstance(value, (bool, int, float, Decimal)):
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            try:
                parsed = datetime.strptime(text[:10], "%Y-%m-%d")
            except ValueError:
                return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def to_date_iso(value: Any) -> str:
    """Canonical naive-UTC ISO timestamp, or "" when the value does not parse."""
    parsed = parse_timestamp(value)
    return parsed.isoformat() if parsed is not None else ""


def _get(record: Any, *names: str) -> Any:
    for name in names:
        if isinstance(record, Mapping):
            value = record.get(name)
        else:
            value = getattr(record, name, None)
        if value is not None:
            return value
    return None


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value)
    return text if text != "" else None


def normalize_record(record: Any, default_currency: str = DEFAULT_CURRENCY) -> Transaction:
    """
    Build a canonical Transaction from a raw record.

    Accepts camelCase or snake_case keys, and either flat names
    (``account_name``, ``category_name``) or nested ``account`` / ``category``
    mappings as returned by a relational include. A transaction is excluded
    from reports when either its own flag or its category's flag is truthy.
    """
    if record is None:
        record = {}

    account = _get(record, "account")
    category = _get(record, "category")

    if account is not None and not isinstance(account, str):
        account_name = _get(account, "name")
        account_id = _get(account, "id") or _get(record, "account_id", "accountId")
    else:
        account_name = account or _get(record, "account_name")
        account_id = _get(record, "account_id", "accountId")

    category_flag: Any = None
    if category is not None and not isinstance(category, str):
        category_name = _get(category, "name")
        category_id = _get(category, "id") or _get(record, "category_id", "categoryId")
        category_flag = _get(category, "exclude_from_reports", "excludeFromReports")
    else:
        category_name = category or _get(record, "category_name")
        category_id = _get(record, "category_id", "categoryId")
        category_flag = _get(record, "category_exclude_from_reports")

    amount = parse_amount(_get(record, "amount"))
    converted_raw = _get(record, "converted_amount", "convertedAmount")
    converted = parse_amount(converted_raw) if converted_raw not in (None, "") else amount

    excluded = parse_flag(_get(record, "exclude_from_reports", "excludeFromReports")) or parse_flag(
        category_flag
    )

    tx_type = _get(record, "type")

    return Transaction(
        id=str(_get(record, "id", "transaction_id", "expense_id") or ""),
        date_iso=to_date_iso(_get(record, "date_iso", "dateIso", "timestamp")),
        account=_text(account_name) or UNKNOWN_ACCOUNT,
        category=_text(category_name),
        subcategory=_text(_get(record, "subcategory")),
        amount=amount,
        currency=_text(_get(record, "currency")) or default_currency,
        converted_amount=converted,
        type=str(tx_type).strip() if tx_type is not None else "",
        person_company=_text(_get(record, "person_company", "personCompany", "person")),
        description=_text(_get(record, "description")),
        exclude_from_reports=excluded,
        account_id=_text(account_id),
        category_id=_text(category_id),
    )


def normalize_records(records: Iterable[Any], default_currency: str = DEFAULT_CURRENCY) -> List[Transaction]:
    return [
        record if isinstance(record, Transaction) else normalize_record(record, default_currency)
        for record in records
    ]
