"""Fees schemas."""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from feeledger.core.enums import (
    AllocationStatus,
    CategoryTag,
    PaymentMode,
    StudentFeeStatus,
    TransactionStatus,
)
from feeledger.fees.summary import CollectionStats, FeeSummary


# --- Class Fee Structure ---
class FeeCategoryItem(BaseModel):
    name: CategoryTag
    due_amount: Decimal


class FeeScheduleResponse(BaseModel):
    class_id: Optional[str] = None
    categories: List[FeeCategoryItem]
    total_due: Decimal


class ClassFeeStructureCreate(BaseModel):
    class_name: str = Field(..., max_length=50)
    category: CategoryTag
    amount: Decimal = Field(..., ge=0)
    display_order: int = 0


class ClassFeeStructureResponse(BaseModel):
    id: UUID
    class_name: str
    category: str
    amount: Decimal
    display_order: int
    is_active: bool

    class Config:
        from_attributes = True


# --- Breakdown ---
class AllocationItem(BaseModel):
    category: CategoryTag
    due: Decimal
    paid: Decimal
    pending: Decimal
    status: AllocationStatus


class StudentFeeBreakdownResponse(BaseModel):
    student_id: UUID
    admission_no: str
    student_name: Optional[str] = None
    class_id: Optional[str] = None
    categories: List[AllocationItem]
    summary: FeeSummary
    status: StudentFeeStatus


# --- Payment ---
class PaymentPreviewRequest(BaseModel):
    student_id: UUID
    category: str = Field(..., description="tuition, materials, transport, library, sports, full, custom")
    amount: Decimal
    payment_mode: str = Field(..., description="Cash, UPI, Cheque, BankTransfer")
    remarks: Optional[str] = Field(None, max_length=255)


class PaymentConfirmRequest(PaymentPreviewRequest):
    idempotency_key: UUID


class PaymentPreviewResponse(BaseModel):
    student_id: UUID
    admission_no: str
    category: CategoryTag
    amount: Decimal
    payment_mode: PaymentMode
    provisional_receipt_no: str
    receipt_display: str
    idempotency_key: UUID
    created_at: datetime


class PaymentResponse(BaseModel):
    id: UUID
    student_id: UUID
    category: str
    amount: Decimal
    payment_mode: Optional[PaymentMode] = None
    status: TransactionStatus
    receipt_no: Optional[str] = None
    academic_year: Optional[str] = None
    remarks: Optional[str] = None
    paid_at: datetime


class CollectionStatsResponse(CollectionStats):
    pass
