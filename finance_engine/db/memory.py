"""
In-process stores used for local runs and tests.
"""
import threading
from dataclasses import replace
from typing import Dict, List, Optional

from finance_engine.models.alert_rule import AlertRule, Suppression
from finance_engine.models.transaction import Transaction


class InMemoryAlertStore:
    """Alert rules keyed by id; suppression updates are compare-and-set under a lock."""

    def __init__(self, rules: Optional[List[AlertRule]] = None):
        self._lock = threading.Lock()
        self._rules: Dict[str, AlertRule] = {}
        for rule in rules or []:
            self.put_rule(rule)

    def put_rule(self, rule: AlertRule) -> bool:
        with self._lock:
            self._rules[rule.id] = rule
        return True

    def get_rule(self, rule_id: str) -> Optional[AlertRule]:
        with self._lock:
            return self._rules.get(rule_id)

    def list_enabled_rules(self, category_id: str = None, account_id: str = None) -> List[AlertRule]:
        with self._lock:
            rules = [rule for rule in self._rules.values() if rule.enabled]
        if category_id is None and account_id is None:
            return rules
        return [rule for rule in rules if rule.applies_to(category_id, account_id)]

    def update_rule_suppression(self, rule_id: str, expected: Suppression, new: Suppression) -> bool:
        with self._lock:
            rule = self._rules.get(rule_id)
            if rule is None or rule.suppression != expected:
                return False
            self._rules[rule_id] = replace(rule, suppression=new)
            return True


class InMemoryTransactionStore:
    def __init__(self):
        self._lock = threading.Lock()
        self._transactions: Dict[str, List[Transaction]] = {}

    def add_transaction(self, owner_id: str, transaction: Transaction) -> bool:
        with self._lock:
            self._transactions.setdefault(owner_id, []).append(transaction)
        return True

    def list_transactions(self, owner_id: str, since: Optional[str] = None) -> List[Transaction]:
        """Transactions of ``owner_id``, optionally only those dated on/after ``since``."""
        with self._lock:
            transactions = list(self._transactions.get(owner_id, []))
        if since:
            transactions = [t for t in transactions if t.date_iso and t.date_iso >= since]
        return transactions
