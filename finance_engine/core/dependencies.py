"""
Process-wide collaborators, built once from settings and shared by the
routers and the scheduler.
"""
from functools import lru_cache

from finance_engine.core.config import settings
from finance_engine.utils import scheduler
from finance_engine.utils.alerts import AlertRuleEvaluator
from finance_engine.utils.analyzer import FinanceAnalyzer
from finance_engine.utils.notifications import NotificationDispatcher, build_notifier


def _use_dynamo() -> bool:
    return settings.STORE_BACKEND.lower() == "dynamo"


@lru_cache()
def get_alert_store():
    if _use_dynamo():
        from finance_engine.db.dynamo import DynamoAlertStore

        return DynamoAlertStore()
    from finance_engine.db.memory import InMemoryAlertStore

    return InMemoryAlertStore()


@lru_cache()
def get_transaction_store():
    if _use_dynamo():
        from finance_engine.db.dynamo import DynamoTransactionStore

        return DynamoTransactionStore()
    from finance_engine.db.memory import InMemoryTransactionStore

    return InMemoryTransactionStore()


@lru_cache()
def get_analyzer() -> FinanceAnalyzer:
    return FinanceAnalyzer.from_settings(settings)


@lru_cache()
def get_dispatcher() -> NotificationDispatcher:
    return NotificationDispatcher(build_notifier(settings), submit=scheduler.submit)


@lru_cache()
def get_alert_evaluator() -> AlertRuleEvaluator:
    return AlertRuleEvaluator(
        store=get_alert_store(),
        transactions=get_transaction_store(),
        dispatcher=get_dispatcher(),
        owner_id=settings.OWNER_ID,
    )
