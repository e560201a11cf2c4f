"""Ledger domain types: fee schedule, transaction log entries, allocation rows, workflow draft."""

import re
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from feeledger.core.enums import (
    AllocationStatus,
    CategoryTag,
    PaymentMode,
    TransactionStatus,
)
from feeledger.fees.receipts import ReceiptIdentifier

_FEE_SUFFIX = re.compile(r"[\s_-]*fees?$")


def parse_category_tag(raw: Union[str, CategoryTag, None]) -> Optional[CategoryTag]:
    """
    Map a stored tag onto CategoryTag. Returns None for anything unrecognised.

    Older rows were written with display strings ("Tuition Fee", "Full Fee"), so the
    match is case-insensitive and ignores a trailing "fee"/"fees".
    """
    if raw is None:
        return None
    if isinstance(raw, CategoryTag):
        return raw
    key = _FEE_SUFFIX.sub("", str(raw).strip().lower())
    try:
        return CategoryTag(key)
    except ValueError:
        return None


class FeeCategory(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: CategoryTag
    due_amount: Decimal = Field(..., ge=0)

    @field_validator("name")
    @classmethod
    def _schedulable(cls, v: CategoryTag) -> CategoryTag:
        if not v.is_schedulable:
            raise ValueError(f"'{v.value}' is a payment tag, not a fee category")
        return v


class FeeSchedule(BaseModel):
    """Ordered fee categories owed by one class. Order drives allocation output order."""

    model_config = ConfigDict(frozen=True)

    class_id: Optional[str] = None
    categories: List[FeeCategory]

    @model_validator(mode="after")
    def _unique_names(self) -> "FeeSchedule":
        names = [c.name for c in self.categories]
        if len(names) != len(set(names)):
            raise ValueError("Fee category names must be unique within a schedule")
        return self

    @property
    def total_due(self) -> Decimal:
        return sum((c.due_amount for c in self.categories), Decimal("0"))

    def get(self, name: CategoryTag) -> Optional[FeeCategory]:
        for c in self.categories:
            if c.name == name:
                return c
        return None


class Transaction(BaseModel):
    """A persisted payment. Immutable; receipt_number is set by the store."""

    model_config = ConfigDict(frozen=True)

    id: UUID
    student_id: UUID
    category_tag: str
    amount: Decimal = Field(..., gt=0)
    # None for legacy rows whose mode is blank or outside PaymentMode.
    mode: Optional[PaymentMode] = None
    timestamp: datetime
    status: TransactionStatus
    receipt_number: Optional[str] = None
    academic_year: Optional[str] = None
    remarks: Optional[str] = None
    idempotency_key: Optional[UUID] = None

    @property
    def tag(self) -> Optional[CategoryTag]:
        return parse_category_tag(self.category_tag)


class AllocationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    category: CategoryTag
    due: Decimal
    paid: Decimal
    pending: Decimal
    status: AllocationStatus


class StudentRef(BaseModel):
    """The selected student, as needed to collect a payment."""

    model_config = ConfigDict(frozen=True)

    id: UUID
    admission_no: str
    name: Optional[str] = None
    class_id: Optional[str] = None
    conveyance_slab: int = 0


class WorkflowDraft(BaseModel):
    """In-memory payment awaiting confirmation. Never persisted as-is."""

    model_config = ConfigDict(frozen=True)

    student_id: UUID
    admission_no: str
    category_tag: CategoryTag
    amount: Decimal
    mode: PaymentMode
    created_at: datetime
    provisional_receipt: ReceiptIdentifier
    idempotency_key: UUID
    academic_year: str
    remarks: Optional[str] = None
