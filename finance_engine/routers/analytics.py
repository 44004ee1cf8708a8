from typing import Optional

from fastapi import APIRouter, Depends

from finance_engine.core.config import settings
from finance_engine.core.dependencies import get_analyzer, get_transaction_store
from finance_engine.utils.analyzer import FinanceAnalyzer

router = APIRouter()


def owner_transactions(store=Depends(get_transaction_store)):
    return store.list_transactions(settings.OWNER_ID)


@router.get("/")
def get_analytics(
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    transactions=Depends(owner_transactions),
    analyzer: FinanceAnalyzer = Depends(get_analyzer),
):
    """Aggregated totals for the optional inclusive YYYY-MM-DD range."""
    return analyzer.analytics(transactions, start_date, end_date).to_dict()


@router.get("/summary")
def get_summary(
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    transactions=Depends(owner_transactions),
    analyzer: FinanceAnalyzer = Depends(get_analyzer),
):
    """Per-category totals with the health score, in one payload."""
    return analyzer.summarize(transactions, start_date, end_date)


@router.get("/forecast")
def get_forecast(
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    transactions=Depends(owner_transactions),
    analyzer: FinanceAnalyzer = Depends(get_analyzer),
):
    return analyzer.forecast(transactions, start_date, end_date).to_dict()


@router.get("/recurring")
def get_recurring(
    transactions=Depends(owner_transactions),
    analyzer: FinanceAnalyzer = Depends(get_analyzer),
):
    return [pattern.to_dict() for pattern in analyzer.recurring(transactions)]


@router.get("/health-score")
def get_health_score(
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    transactions=Depends(owner_transactions),
    analyzer: FinanceAnalyzer = Depends(get_analyzer),
):
    return analyzer.health_score(transactions, start_date, end_date).to_dict()


@router.get("/insights")
def get_insights(
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    transactions=Depends(owner_transactions),
    analyzer: FinanceAnalyzer = Depends(get_analyzer),
):
    return [insight.to_dict() for insight in analyzer.insights(transactions, start_date, end_date)]


@router.get("/tips")
def get_savings_tips(
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    transactions=Depends(owner_transactions),
    analyzer: FinanceAnalyzer = Depends(get_analyzer),
):
    return [tip.to_dict() for tip in analyzer.savings_tips(transactions, start_date, end_date)]


@router.get("/advanced")
def get_advanced_analytics(
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    transactions=Depends(owner_transactions),
    analyzer: FinanceAnalyzer = Depends(get_analyzer),
):
    return analyzer.advanced(transactions, start_date, end_date)
