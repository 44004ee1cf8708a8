from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

INCOME = "Income"
EXPENSE = "Expense"
TRANSFER = "Transfer"
TRANSACTION_TYPES = (INCOME, EXPENSE, TRANSFER)

UNKNOWN_ACCOUNT = "Unknown"


@dataclass(frozen=True)
class Transaction:
    """Canonical, immutable transaction consumed by every analytics step.

    ``amount`` is in the original ``currency``; ``converted_amount`` is the
    same value in the reporting currency. ``type`` is kept as given so that
    records with an unexpected type can still be counted.
    """

    id: str
    date_iso: str
    account: str
    category: Optional[str]
    subcategory: Optional[str]
    amount: float
    currency: str
    converted_amount: float
    type: str
    person_company: Optional[str] = None
    description: Optional[str] = None
    exclude_from_reports: bool = False
    account_id: Optional[str] = None
    category_id: Optional[str] = None

    @property
    def date_key(self) -> str:
        return self.date_iso[:10]

    @property
    def month_key(self) -> str:
        return self.date_iso[:7] if self.date_iso else "Unknown"

    @property
    def is_transfer(self) -> bool:
        return self.type == TRANSFER

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class AccountInfo:
    """Owning account of a newly stored transaction, as supplied by the caller."""

    id: Optional[str]
    name: str
    balance: float
    currency: str


class TransactionCreate(BaseModel):
    account: str
    account_id: Optional[str] = None
    account_balance: Optional[float] = None
    category: Optional[str] = None
    category_id: Optional[str] = None
    subcategory: Optional[str] = None
    exclude_from_reports: bool = False
    amount: float
    currency: Optional[str] = None
    converted_amount: Optional[float] = None
    type: str = EXPENSE
    person_company: Optional[str] = None
    description: Optional[str] = None
    date_iso: str = Field(default_factory=lambda: datetime.utcnow().isoformat())


class TransactionPublic(BaseModel):
    id: str
    date_iso: str
    account: str
    category: Optional[str] = None
    subcategory: Optional[str] = None
    amount: float
    currency: str
    converted_amount: float
    type: str
    person_company: Optional[str] = None
    description: Optional[str] = None
    exclude_from_reports: bool = False
