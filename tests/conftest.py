import itertools

import pytest

from finance_engine.models.transaction import EXPENSE, Transaction

_ids = itertools.count(1)


def build_transaction(**overrides) -> Transaction:
    values = {
        "id": f"tx-{next(_ids)}",
        "date_iso": "2024-05-10T12:00:00",
        "account": "Checking",
        "category": "Food",
        "subcategory": None,
        "amount": 100.0,
        "currency": "ILS",
        "type": EXPENSE,
    }
    values.update(overrides)
    values.setdefault("converted_amount", values["amount"])
    return Transaction(**values)


@pytest.fixture
def make_tx():
    return build_transaction
