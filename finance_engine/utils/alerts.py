"""
Alert Rule Evaluator
Decides which alerts a newly stored transaction triggers.

BUDGET_LIMIT and MONTHLY_LIMIT rules carry a suppression pair
``(percentage, period_id)``. A rule is armed for a level in period P while
the stored period differs from P or the stored percentage is below the
level, so a new period re-arms both levels without anyone resetting the
stored value. The pair is claimed with a compare-and-set before any
notification goes out, which makes delivery at-most-once per crossing even
when several transactions are evaluated concurrently.
"""
import logging
from datetime import datetime
from typing import Iterable, List, Optional

from finance_engine.models import alert_event
from finance_engine.models.alert_event import AlertEvent
from finance_engine.models.alert_rule import (
    EXCEEDED_LEVEL,
    WARNING_LEVEL,
    AlertRule,
    RuleType,
    Suppression,
)
from finance_engine.models.transaction import EXPENSE, AccountInfo, Transaction
from finance_engine.utils.aggregation import calculate_analytics
from finance_engine.utils.normalizer import normalize_records
from finance_engine.utils.periods import period_id, period_start
from finance_engine.utils.recurring import detect_recurring_transactions

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 5


def decide_level(suppression: Suppression, percentage: float, current_period_id: str) -> Optional[int]:
    """Level to emit for ``percentage`` given the stored suppression, or None."""
    if percentage >= EXCEEDED_LEVEL:
        return EXCEEDED_LEVEL if suppression.is_armed(EXCEEDED_LEVEL, current_period_id) else None
    if percentage >= WARNING_LEVEL and suppression.is_armed(WARNING_LEVEL, current_period_id):
        return WARNING_LEVEL
    return None


def spend_percentage(spend: float, threshold: float) -> float:
    if threshold > 0:
        return spend / threshold * 100
    # A zero limit is exceeded by any spend at all
    return float(EXCEEDED_LEVEL) if spend > 0 else 0.0


class AlertRuleEvaluator:
    """
    Evaluates enabled alert rules against new transactions.

    ``store`` provides ``list_enabled_rules``, ``get_rule`` and
    ``update_rule_suppression``; ``transactions`` provides
    ``list_transactions(owner_id, since)``; ``dispatcher`` provides
    ``dispatch(event)`` and may be None to only collect events.
    """

    def __init__(
        self,
        store,
        transactions,
        dispatcher=None,
        owner_id: str = "owner",
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ):
        self.store = store
        self.transactions = transactions
        self.dispatcher = dispatcher
        self.owner_id = owner_id
        self.max_attempts = max(1, max_attempts)

    def evaluate(
        self,
        transaction: Transaction,
        account: Optional[AccountInfo] = None,
        now: Optional[datetime] = None,
    ) -> List[AlertEvent]:
        """Evaluate every applicable rule; one failing rule never stops the rest."""
        now = now or datetime.utcnow()
        account_id = transaction.account_id or (account.id if account else None)

        try:
            rules = self.store.list_enabled_rules()
        except Exception as e:
            logger.error(f"Could not load alert rules: {str(e)}", exc_info=True)
            return []

        events = []
        for rule in rules:
            if not rule.applies_to(transaction.category_id, account_id):
                continue
            try:
                event = self._evaluate_rule(rule, transaction, account, now)
            except Exception as e:
                logger.error(f"Error checking rule {rule.id}: {str(e)}", exc_info=True)
                continue
            if event is not None:
                events.append(event)
                self._dispatch(event)
        return events

    def _evaluate_rule(
        self,
        rule: AlertRule,
        transaction: Transaction,
        account: Optional[AccountInfo],
        now: datetime,
    ) -> Optional[AlertEvent]:
        if rule.rule_type == RuleType.LARGE_TRANSACTION:
            return self._check_large_transaction(rule, transaction)
        if rule.rule_type in (RuleType.BUDGET_LIMIT, RuleType.MONTHLY_LIMIT):
            if transaction.type != EXPENSE:
                return None
            return self._check_spend_limit(rule, transaction, now)
        if rule.rule_type == RuleType.ACCOUNT_BALANCE:
            return self._check_account_balance(rule, transaction, account)
        if rule.rule_type == RuleType.RECURRING_DETECTION:
            # Evaluated by the scheduled job, not per transaction
            return None
        logger.warning(f"Unknown rule type: {rule.rule_type}")
        return None

    def _check_large_transaction(self, rule: AlertRule, transaction: Transaction) -> Optional[AlertEvent]:
        if transaction.type != EXPENSE or abs(transaction.amount) < rule.threshold:
            return None
        logger.info(f"Large transaction alert for transaction {transaction.id} (rule {rule.id})")
        return AlertEvent(
            kind=alert_event.LARGE_TRANSACTION,
            rule_id=rule.id,
            rule_name=rule.name,
            title="Large Transaction Detected",
            message=(
                f"A large transaction was detected that exceeds your threshold of "
                f"{rule.threshold} {transaction.currency}"
            ),
            threshold=rule.threshold,
            current_value=abs(transaction.amount),
            currency=transaction.currency,
            category_name=transaction.category,
            transaction=transaction.to_dict(),
        )

    def _check_account_balance(
        self, rule: AlertRule, transaction: Transaction, account: Optional[AccountInfo]
    ) -> Optional[AlertEvent]:
        if account is None:
            logger.debug(f"No account supplied for transaction {transaction.id}, skipping rule {rule.id}")
            return None
        if account.balance > rule.threshold:
            return None
        logger.info(f"Account balance alert for account {account.name} (rule {rule.id})")
        return AlertEvent(
            kind=alert_event.ACCOUNT_BALANCE,
            rule_id=rule.id,
            rule_name=rule.name,
            title="Low Account Balance",
            message=f"The balance of {account.name} dropped to {account.balance:.2f} {account.currency}",
            threshold=rule.threshold,
            current_value=account.balance,
            currency=account.currency,
            transaction=transaction.to_dict(),
            details={"account": account.name},
        )

    def period_spend(self, rule: AlertRule, now: datetime, transaction: Optional[Transaction] = None) -> float:
        """Regular expense spend since the start of the rule's current period."""
        since = period_start(rule.period, now).date().isoformat()
        scoped = self.transactions.list_transactions(self.owner_id, since=since)
        if transaction is not None and transaction.date_iso >= since:
            if all(t.id != transaction.id for t in scoped):
                scoped.append(transaction)
        scoped = [t for t in scoped if rule.category_filter.matches(t.category_id)]
        return abs(calculate_analytics(scoped).total_expense)

    def _check_spend_limit(self, rule: AlertRule, transaction: Transaction, now: datetime) -> Optional[AlertEvent]:
        current_period = period_id(rule.period, now)
        spend = self.period_spend(rule, now, transaction)
        percentage = spend_percentage(spend, rule.threshold)

        level = self._claim(rule, percentage, current_period)
        if level is None:
            return None

        monthly = rule.rule_type == RuleType.MONTHLY_LIMIT
        exceeded = level >= EXCEEDED_LEVEL
        if monthly:
            kind = alert_event.MONTHLY_LIMIT_EXCEEDED if exceeded else alert_event.MONTHLY_LIMIT_WARNING
            title = "Monthly Limit Exceeded (100%+)" if exceeded else "Monthly Limit Warning (90%)"
            subject = "your spending limit"
        else:
            kind = alert_event.BUDGET_EXCEEDED if exceeded else alert_event.BUDGET_WARNING
            title = "Budget Exceeded (100%+)" if exceeded else "Budget Warning (90%)"
            subject = f"your budget limit for {rule.display_category}"

        message = f"You've exceeded {subject}" if exceeded else f"You've reached 90% of {subject}"
        logger.info(f"{kind} alert for rule {rule.id} in {current_period}: {spend:.2f}/{rule.threshold:.2f}")
        return AlertEvent(
            kind=kind,
            rule_id=rule.id,
            rule_name=rule.name,
            title=title,
            message=message,
            threshold=rule.threshold,
            current_value=spend,
            currency=rule.currency,
            level=level,
            period_id=current_period,
            category_name=rule.display_category,
            transaction=transaction.to_dict(),
            details={"percentage": round(percentage, 1), "remaining": max(0.0, rule.threshold - spend)},
        )

    def _claim(self, rule: AlertRule, percentage: float, current_period: str) -> Optional[int]:
        """
        Decide the level to emit and claim it with a compare-and-set on the
        rule's suppression pair. A lost race re-reads the rule and decides
        again, so the caller only sees a level it alone has claimed.
        """
        for _ in range(self.max_attempts):
            level = decide_level(rule.suppression, percentage, current_period)
            if level is None:
                return None
            if self.store.update_rule_suppression(rule.id, rule.suppression, Suppression(level, current_period)):
                return level

            logger.warning(f"Suppression state of rule {rule.id} changed concurrently, re-checking")
            fresh = self.store.get_rule(rule.id)
            if fresh is None or not fresh.enabled:
                return None
            rule = fresh

        logger.warning(f"Gave up claiming alert for rule {rule.id} after {self.max_attempts} attempts")
        return None

    def evaluate_recurring_rules(self, transactions: Iterable, now: Optional[datetime] = None) -> List[AlertEvent]:
        """
        Run recurring-charge detection for every enabled RECURRING_DETECTION
        rule. A rule fires at most once per period when at least one pattern
        in its scope averages at or above its threshold.
        """
        now = now or datetime.utcnow()
        transactions = normalize_records(transactions)

        try:
            rules = [r for r in self.store.list_enabled_rules() if r.rule_type == RuleType.RECURRING_DETECTION]
        except Exception as e:
            logger.error(f"Could not load alert rules: {str(e)}", exc_info=True)
            return []

        events = []
        for rule in rules:
            try:
                event = self._check_recurring(rule, transactions, now)
            except Exception as e:
                logger.error(f"Error checking rule {rule.id}: {str(e)}", exc_info=True)
                continue
            if event is not None:
                events.append(event)
                self._dispatch(event)
        return events

    def _check_recurring(self, rule: AlertRule, transactions: List[Transaction], now: datetime) -> Optional[AlertEvent]:
        scoped = [
            t for t in transactions if not t.exclude_from_reports and rule.applies_to(t.category_id, t.account_id)
        ]
        patterns = [p for p in detect_recurring_transactions(scoped) if p.amount >= rule.threshold]
        if not patterns:
            return None

        current_period = period_id(rule.period, now)
        if self._claim(rule, float(EXCEEDED_LEVEL), current_period) is None:
            return None

        top = patterns[0]
        logger.info(f"Recurring transaction alert for rule {rule.id}: {len(patterns)} pattern(s)")
        return AlertEvent(
            kind=alert_event.RECURRING_DETECTED,
            rule_id=rule.id,
            rule_name=rule.name,
            title="Recurring Transaction Detected",
            message=(
                f"{len(patterns)} recurring charge(s) at or above {rule.threshold} {rule.currency}; "
                f"largest is {top.description} ({top.amount:.2f} every {top.frequency} days)"
            ),
            threshold=rule.threshold,
            current_value=top.amount,
            currency=rule.currency,
            period_id=current_period,
            category_name=rule.display_category,
            details={"patterns": [p.to_dict() for p in patterns]},
        )

    def _dispatch(self, event: AlertEvent) -> None:
        if self.dispatcher is None:
            return
        try:
            self.dispatcher.dispatch(event)
        except Exception as e:
            logger.error(f"Could not hand off alert for rule {event.rule_id}: {str(e)}", exc_info=True)
