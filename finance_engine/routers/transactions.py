import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status

from finance_engine.core.config import settings
from finance_engine.core.dependencies import get_alert_evaluator, get_analyzer, get_transaction_store
from finance_engine.models.transaction import (
    TRANSACTION_TYPES,
    AccountInfo,
    TransactionCreate,
    TransactionPublic,
)
from finance_engine.utils.aggregation import account_balance
from finance_engine.utils.alerts import AlertRuleEvaluator
from finance_engine.utils.analyzer import FinanceAnalyzer

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/")
def list_transactions(
    search: Optional[str] = None,
    category: Optional[str] = None,
    account: Optional[str] = None,
    type: Optional[str] = None,
    min_amount: Optional[float] = None,
    max_amount: Optional[float] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    store=Depends(get_transaction_store),
    analyzer: FinanceAnalyzer = Depends(get_analyzer),
):
    filters = {
        "search": search,
        "category": category,
        "account": account,
        "type": type,
        "min_amount": min_amount,
        "max_amount": max_amount,
        "start_date": start_date,
        "end_date": end_date,
    }
    transactions = analyzer.filter(store.list_transactions(settings.OWNER_ID), filters)
    transactions.sort(key=lambda t: t.date_iso, reverse=True)
    return [TransactionPublic(**t.to_dict()) for t in transactions]


@router.post("/", status_code=status.HTTP_201_CREATED)
def create_transaction(
    payload: TransactionCreate,
    store=Depends(get_transaction_store),
    analyzer: FinanceAnalyzer = Depends(get_analyzer),
    evaluator: AlertRuleEvaluator = Depends(get_alert_evaluator),
):
    """Store a transaction, then evaluate alert rules against it."""
    if payload.type not in TRANSACTION_TYPES:
        raise HTTPException(status_code=400, detail=f"type must be one of {', '.join(TRANSACTION_TYPES)}")

    record = payload.model_dump(exclude={"account_balance"})
    record["id"] = str(uuid.uuid4())
    transaction = analyzer.normalize([record])[0]

    if not store.add_transaction(settings.OWNER_ID, transaction):
        raise HTTPException(status_code=500, detail="Failed to save transaction")

    balance = payload.account_balance
    if balance is None:
        balance = account_balance(store.list_transactions(settings.OWNER_ID), transaction.account)
    account = AccountInfo(
        id=transaction.account_id,
        name=transaction.account,
        balance=balance,
        currency=transaction.currency,
    )

    try:
        alerts = evaluator.evaluate(transaction, account)
    except Exception as e:
        logger.error(f"Alert evaluation failed for transaction {transaction.id}: {str(e)}", exc_info=True)
        alerts = []

    return {
        "transaction": TransactionPublic(**transaction.to_dict()),
        "alerts": [alert.to_dict() for alert in alerts],
    }
