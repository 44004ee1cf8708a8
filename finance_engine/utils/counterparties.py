"""
Per-counterparty ledgers keyed on the transaction's person/company field.
"""
from __future__ import annotations

from typing import Any, Dict, Iterable, List

from finance_engine.models.transaction import EXPENSE, INCOME, TRANSFER, Transaction


def _entry(tx: Transaction, **extra: Any) -> Dict[str, Any]:
    return {
        "id": tx.id,
        "date": tx.date_iso,
        "amount": tx.converted_amount,
        "description": tx.description,
        "currency": tx.currency,
        **extra,
    }


def _touch_last(record: Dict[str, Any], tx: Transaction) -> None:
    if tx.date_iso and (record["last_transaction"] is None or tx.date_iso > record["last_transaction"]):
        record["last_transaction"] = tx.date_iso


def calculate_loans_and_debts(transactions: Iterable[Transaction]) -> Dict[str, Any]:
    """Expenses to a counterparty count as lent, income from them as repaid."""
    loans: Dict[str, Dict[str, Any]] = {}

    for tx in transactions:
        if not tx.person_company or tx.type == TRANSFER:
            continue
        person = tx.person_company.strip()
        loan = loans.setdefault(
            person,
            {
                "person": person,
                "total_lent": 0.0,
                "total_repaid": 0.0,
                "outstanding": 0.0,
                "transactions": [],
                "last_transaction": None,
            },
        )
        if tx.type == EXPENSE:
            loan["total_lent"] += tx.converted_amount
            loan["outstanding"] += tx.converted_amount
        elif tx.type == INCOME:
            loan["total_repaid"] += tx.converted_amount
            loan["outstanding"] -= tx.converted_amount
        loan["transactions"].append(_entry(tx, type=tx.type))
        _touch_last(loan, tx)

    for loan in loans.values():
        loan["is_repaid"] = loan["outstanding"] <= 0
        loan["outstanding"] = max(0.0, loan["outstanding"])
        loan["repayment_rate"] = loan["total_repaid"] / loan["total_lent"] * 100 if loan["total_lent"] > 0 else 0.0

    ranked = sorted(loans.values(), key=lambda loan: loan["outstanding"], reverse=True)
    return {
        "loans": ranked,
        "summary": {
            "total_lent": sum(loan["total_lent"] for loan in ranked),
            "total_repaid": sum(loan["total_repaid"] for loan in ranked),
            "total_outstanding": sum(loan["outstanding"] for loan in ranked),
            "active_loans": sum(1 for loan in ranked if loan["outstanding"] > 0),
            "repaid_loans": sum(1 for loan in ranked if loan["outstanding"] <= 0),
            "total_people": len(ranked),
        },
    }


def calculate_expenses_by_person(transactions: Iterable[Transaction]) -> List[Dict[str, Any]]:
    people: Dict[str, Dict[str, Any]] = {}

    for tx in transactions:
        if not tx.person_company or tx.type != EXPENSE:
            continue
        person = tx.person_company.strip()
        record = people.setdefault(
            person,
            {
                "person": person,
                "total_expense": 0.0,
                "transaction_count": 0,
                "categories": {},
                "transactions": [],
                "last_transaction": None,
            },
        )
        category = tx.category or "Uncategorized"
        record["total_expense"] += tx.converted_amount
        record["transaction_count"] += 1
        record["categories"][category] = record["categories"].get(category, 0.0) + tx.converted_amount
        record["transactions"].append(_entry(tx, category=category))
        _touch_last(record, tx)

    return sorted(people.values(), key=lambda record: record["total_expense"], reverse=True)


def calculate_debt_by_person(transactions: Iterable[Transaction]) -> List[Dict[str, Any]]:
    """Balances over transactions whose category name contains "debt"."""
    debts: Dict[str, Dict[str, Any]] = {}

    for tx in transactions:
        if not tx.person_company or not tx.category or "debt" not in tx.category.lower():
            continue
        person = tx.person_company.strip()
        debt = debts.setdefault(
            person,
            {
                "person": person,
                "income_debt": 0.0,
                "expense_debt": 0.0,
                "net_debt": 0.0,
                "transaction_count": 0,
                "transactions": [],
                "last_transaction": None,
            },
        )
        if tx.type == INCOME:
            debt["income_debt"] += tx.converted_amount
            debt["net_debt"] -= tx.converted_amount
        elif tx.type == EXPENSE:
            debt["expense_debt"] += tx.converted_amount
            debt["net_debt"] += tx.converted_amount
        debt["transaction_count"] += 1
        debt["transactions"].append(_entry(tx, type=tx.type))
        _touch_last(debt, tx)

    for debt in debts.values():
        debt["is_repaid"] = debt["net_debt"] <= 0
        debt["net_debt"] = max(0.0, debt["net_debt"])

    return sorted(debts.values(), key=lambda debt: debt["net_debt"], reverse=True)
