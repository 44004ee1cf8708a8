"""
finance_engine
~~~~~~~~~~~~~~

Analytics and alerting engine for a personal finance ledger. The
FinanceAnalyzer class turns one owner's transaction set into aggregated
statistics, forecasts, recurring-charge detection, a health score and
insights, while the AlertRuleEvaluator decides which threshold alerts to
emit whenever a new transaction is stored.
"""

from .utils.alerts import AlertRuleEvaluator
from .utils.analyzer import FinanceAnalyzer

__all__ = ["AlertRuleEvaluator", "FinanceAnalyzer"]
