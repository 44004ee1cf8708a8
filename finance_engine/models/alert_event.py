from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

BUDGET_WARNING = "budget_warning"
BUDGET_EXCEEDED = "budget_exceeded"
MONTHLY_LIMIT_WARNING = "monthly_limit_warning"
MONTHLY_LIMIT_EXCEEDED = "monthly_limit_exceeded"
LARGE_TRANSACTION = "large_transaction"
ACCOUNT_BALANCE = "account_balance"
RECURRING_DETECTED = "recurring_detected"


@dataclass
class AlertEvent:
    """One alert emitted by the evaluator, handed to the notification sink."""

    kind: str
    rule_id: str
    rule_name: str
    title: str
    message: str
    threshold: float
    current_value: float
    currency: str
    level: Optional[int] = None
    period_id: Optional[str] = None
    category_name: Optional[str] = None
    transaction: Optional[Dict[str, Any]] = None
    details: Dict[str, Any] = field(default_factory=dict)
    created_at: str = field(default_factory=lambda: datetime.utcnow().isoformat())

    @property
    def is_exceeded(self) -> bool:
        return self.level is not None and self.level >= 100

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
