from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional

from finance_engine.utils.normalizer import parse_flag


class RuleType(str, Enum):
    LARGE_TRANSACTION = "LARGE_TRANSACTION"
    BUDGET_LIMIT = "BUDGET_LIMIT"
    MONTHLY_LIMIT = "MONTHLY_LIMIT"
    ACCOUNT_BALANCE = "ACCOUNT_BALANCE"
    RECURRING_DETECTION = "RECURRING_DETECTION"


class AlertPeriod(str, Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


WARNING_LEVEL = 90
EXCEEDED_LEVEL = 100


@dataclass(frozen=True)
class CategoryFilter:
    """Either matches any category (``category_ids is None``) or one of a set."""

    category_ids: Optional[FrozenSet[str]] = None

    @classmethod
    def any(cls) -> "CategoryFilter":
        return cls(None)

    @classmethod
    def one_of(cls, category_ids: Iterable[str]) -> "CategoryFilter":
        ids = frozenset(str(c) for c in category_ids if c is not None and c != "")
        return cls(ids) if ids else cls(None)

    @classmethod
    def from_legacy(cls, category_id: Any = None, category_ids: Any = None) -> "CategoryFilter":
        # A non-empty id list takes precedence over the single-id field
        if isinstance(category_ids, (list, tuple, set, frozenset)) and category_ids:
            return cls.one_of(category_ids)
        if category_id:
            return cls.one_of([category_id])
        return cls.any()

    @property
    def is_any(self) -> bool:
        return self.category_ids is None

    def matches(self, category_id: Optional[str]) -> bool:
        if self.category_ids is None:
            return True
        return category_id is not None and str(category_id) in self.category_ids


@dataclass(frozen=True)
class Suppression:
    """Last alert level emitted for a rule and the period it was emitted in.

    A rule is armed for a level whenever the stored period differs from the
    current one, whatever percentage is stored; rollover never rewrites the
    stored value.
    """

    percentage: int = 0
    period_id: str = ""

    def is_armed(self, level: int, current_period_id: str) -> bool:
        return self.period_id != current_period_id or self.percentage < level


@dataclass(frozen=True)
class AlertRule:
    id: str
    rule_type: RuleType
    threshold: float
    currency: str = "ILS"
    name: str = ""
    category_filter: CategoryFilter = field(default_factory=CategoryFilter.any)
    category_name: Optional[str] = None
    account_id: Optional[str] = None
    period: AlertPeriod = AlertPeriod.MONTHLY
    enabled: bool = True
    suppression: Suppression = field(default_factory=Suppression)

    def __post_init__(self) -> None:
        if not isinstance(self.rule_type, RuleType):
            object.__setattr__(self, "rule_type", RuleType(self.rule_type))
        if not isinstance(self.period, AlertPeriod):
            object.__setattr__(self, "period", AlertPeriod(self.period or AlertPeriod.MONTHLY.value))
        if self.threshold is None or float(self.threshold) < 0:
            raise ValueError(f"Alert rule {self.id} has an invalid threshold: {self.threshold!r}")
        object.__setattr__(self, "threshold", float(self.threshold))

    def applies_to(self, category_id: Optional[str], account_id: Optional[str]) -> bool:
        if not self.category_filter.matches(category_id):
            return False
        if self.account_id and self.account_id != account_id:
            return False
        return True

    @property
    def display_category(self) -> str:
        return self.category_name or "Overall"

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "AlertRule":
        """Build a rule from a persisted record (camelCase or snake_case keys)."""

        def pick(*names: str, default: Any = None) -> Any:
            for name in names:
                if name in record and record[name] is not None:
                    return record[name]
            return default

        return cls(
            id=str(pick("id", "rule_id")),
            rule_type=RuleType(pick("rule_type", "ruleType")),
            threshold=float(pick("threshold", default=0)),
            currency=pick("currency", default="ILS"),
            name=pick("name", default=""),
            category_filter=CategoryFilter.from_legacy(
                pick("category_id", "categoryId"), pick("category_ids", "categoryIds")
            ),
            category_name=pick("category_name", "categoryName"),
            account_id=pick("account_id", "accountId"),
            period=AlertPeriod(pick("period", default=AlertPeriod.MONTHLY.value)),
            enabled=parse_flag(pick("enabled", "is_enabled", "isEnabled", default=True)),
            suppression=Suppression(
                percentage=int(float(pick("last_alert_percentage", "lastAlertPercentage", default=0))),
                period_id=str(pick("last_alert_period", "lastAlertPeriod", default="")),
            ),
        )

    def to_record(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {
            "rule_id": self.id,
            "rule_type": self.rule_type.value,
            "threshold": self.threshold,
            "currency": self.currency,
            "name": self.name,
            "period": self.period.value,
            "enabled": self.enabled,
            "last_alert_percentage": self.suppression.percentage,
            "last_alert_period": self.suppression.period_id,
        }
        if self.category_filter.category_ids is not None:
            record["category_ids"] = sorted(self.category_filter.category_ids)
        if self.category_name:
            record["category_name"] = self.category_name
        if self.account_id:
            record["account_id"] = self.account_id
        return record
