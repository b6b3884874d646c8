"""
Ledger Models for Dompetku

The records the domain services read and write: expenses, income,
budgets, the coin wallet, vouchers, categories and user memories.

Amounts are plain floats in Rupiah. Rupiah has no minor unit in daily
use, and these are personal records, not bookkeeping.
"""

from datetime import date, datetime, timedelta
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


DEFAULT_CATEGORIES = [
    "makanan-minuman",
    "transportasi",
    "tagihan",
    "belanja",
    "hiburan",
    "kesehatan",
    "lainnya",
]

FALLBACK_CATEGORY = "lainnya"


def new_transaction_id() -> str:
    """Short id shown to users as the transaction token (8 hex chars)."""
    return uuid4().hex[:8]


class ExpenseItem(BaseModel):
    """A line item inside an expense."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=200)
    quantity: float = Field(default=1, gt=0)
    unit_price: float = Field(..., ge=0)

    @property
    def total(self) -> float:
        return self.quantity * self.unit_price


class Expense(BaseModel):
    """A recorded expense."""

    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_transaction_id)
    user_id: str
    amount: float = Field(..., gt=0)
    description: str = Field(..., min_length=1, max_length=500)
    category: str = Field(default=FALLBACK_CATEGORY)
    items: list[ExpenseItem] = Field(default_factory=list)
    calculation_expression: Optional[str] = None
    spent_at: date = Field(default_factory=date.today)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator('category')
    @classmethod
    def normalize_category(cls, v: str) -> str:
        return v.strip().lower() or FALLBACK_CATEGORY

    @property
    def items_total(self) -> float:
        return sum(item.total for item in self.items)


class Income(BaseModel):
    """A recorded income."""

    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_transaction_id)
    user_id: str
    amount: float = Field(..., gt=0)
    description: str = Field(..., min_length=1, max_length=500)
    source: str = Field(default="lainnya")
    received_at: date = Field(default_factory=date.today)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class BudgetPeriod(str, Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"

    def date_range(self, today: Optional[date] = None) -> tuple[date, date]:
        """Calendar range of the period containing today (inclusive)."""
        today = today or date.today()
        if self is BudgetPeriod.DAILY:
            return today, today
        if self is BudgetPeriod.WEEKLY:
            start = today - timedelta(days=today.weekday())
            return start, start + timedelta(days=6)
        if self is BudgetPeriod.MONTHLY:
            start = today.replace(day=1)
            next_month = (start + timedelta(days=32)).replace(day=1)
            return start, next_month - timedelta(days=1)
        return today.replace(month=1, day=1), today.replace(month=12, day=31)


class ReportPeriod(str, Enum):
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"

    def date_range(self, today: Optional[date] = None) -> tuple[date, date]:
        return BudgetPeriod(self.value).date_range(today)


class Budget(BaseModel):
    """Spending limit for one category over one period."""

    id: str = Field(default_factory=new_transaction_id)
    user_id: str
    category: str
    amount: float = Field(..., gt=0)
    period: BudgetPeriod = BudgetPeriod.MONTHLY
    start_date: date
    end_date: date

    @model_validator(mode='after')
    def validate_range(self) -> 'Budget':
        if self.end_date < self.start_date:
            raise ValueError("Budget end_date cannot be before start_date")
        return self


class BudgetStatusLevel(str, Enum):
    UNDER_BUDGET = "UNDER_BUDGET"
    WARNING = "WARNING"
    OVER_BUDGET = "OVER_BUDGET"

    @classmethod
    def for_usage(cls, spent: float, limit: float) -> "BudgetStatusLevel":
        ratio = spent / limit if limit > 0 else 0.0
        if ratio > 1.0:
            return cls.OVER_BUDGET
        if ratio > 0.8:
            return cls.WARNING
        return cls.UNDER_BUDGET


class Wallet(BaseModel):
    """Balance (Rupiah) and coins spent on paid features."""

    user_id: str
    balance: float = Field(default=0.0, ge=0)
    coins: float = Field(default=0.0, ge=0)


class VoucherType(str, Enum):
    COINS = "COINS"
    BALANCE = "BALANCE"


class Voucher(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    code: str = Field(..., min_length=1)
    voucher_type: VoucherType
    value: float = Field(..., gt=0)
    expires_at: Optional[datetime] = None
    redeemed_by: list[str] = Field(default_factory=list)

    @field_validator('code')
    @classmethod
    def normalize_code(cls, v: str) -> str:
        return v.upper()

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return (now or datetime.utcnow()) > self.expires_at


class Category(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    user_id: str
    name: str = Field(..., min_length=1, max_length=50)

    @field_validator('name')
    @classmethod
    def normalize_name(cls, v: str) -> str:
        return v.lower()


class MemoryItem(BaseModel):
    """A fact the assistant remembers about a user (e.g. "kopi" -> "kopi susu 18rb")."""

    model_config = ConfigDict(str_strip_whitespace=True)

    user_id: str
    key: str = Field(..., min_length=1, max_length=100)
    value: str = Field(..., max_length=1000)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator('key')
    @classmethod
    def normalize_key(cls, v: str) -> str:
        return v.lower()
