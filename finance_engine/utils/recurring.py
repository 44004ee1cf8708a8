from __future__ import annotations

import math
from collections import defaultdict
from dataclasses import asdict, dataclass
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Tuple

from finance_engine.models.transaction import Transaction
from finance_engine.utils.normalizer import parse_timestamp

TRANSFER_CATEGORY = "Transfer"


@dataclass
class RecurringPattern:
    """A charge that repeats with a stable amount and a stable interval."""

    category: str
    description: str
    description_key: str
    amount: float
    original_amount: float
    currency: str
    frequency: int
    frequency_type: str
    count: int
    last_date: str
    next_expected: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def frequency_type(mean_gap_days: float) -> str:
    if mean_gap_days <= 7:
        return "weekly"
    if mean_gap_days <= 35:
        return "monthly"
    return "other"


def detect_recurring_transactions(
    transactions: Iterable[Transaction],
    amount_tolerance: float = 0.10,
    interval_tolerance_days: float = 5,
) -> List[RecurringPattern]:
    """
    Group transactions by (category, lower-cased trimmed description) and
    keep the groups whose amounts all sit within ``amount_tolerance`` of the
    group mean and whose day gaps all sit within ``interval_tolerance_days``
    of the mean gap. Results are sorted by mean converted amount, largest
    first.
    """
    if amount_tolerance < 0 or interval_tolerance_days < 0:
        raise ValueError("Recurring-detection tolerances must be non-negative")

    groups: Dict[Tuple[Any, str], List[Transaction]] = defaultdict(list)
    for tx in transactions:
        if tx.category == TRANSFER_CATEGORY or not tx.description:
            continue
        key = tx.description.lower().strip()
        if not key or not tx.date_iso:
            continue
        groups[(tx.category, key)].append(tx)

    patterns: List[RecurringPattern] = []
    for (category, key), group in groups.items():
        if len(group) < 2:
            continue

        amounts = [t.converted_amount for t in group]
        mean_amount = sum(amounts) / len(amounts)
        if mean_amount == 0:
            continue
        if not all(abs(a - mean_amount) / abs(mean_amount) < amount_tolerance for a in amounts):
            continue

        group = sorted(group, key=lambda t: t.date_iso)
        dates = [parse_timestamp(t.date_iso) for t in group]
        gaps = [
            _round_half_up((later - earlier).total_seconds() / 86400)
            for earlier, later in zip(dates, dates[1:])
        ]
        mean_gap = sum(gaps) / len(gaps)
        if not all(abs(gap - mean_gap) <= interval_tolerance_days for gap in gaps):
            continue

        latest = group[-1]
        patterns.append(
            RecurringPattern(
                category=category,
                description=latest.description,
                description_key=key,
                amount=mean_amount,
                original_amount=latest.amount,
                currency=latest.currency,
                frequency=_round_half_up(mean_gap),
                frequency_type=frequency_type(mean_gap),
                count=len(group),
                last_date=latest.date_iso,
                next_expected=(dates[-1] + timedelta(days=mean_gap)).date().isoformat(),
            )
        )

    return sorted(patterns, key=lambda p: p.amount, reverse=True)
