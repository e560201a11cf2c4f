"""Fees service: schedules, per-student breakdown, history, stats, and payment preview/confirm."""

import logging
from datetime import date
from decimal import Decimal
from functools import lru_cache
from typing import List
from uuid import UUID

from fastapi import status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.core.exceptions import ServiceError
from feeledger.core.models import ClassFeeStructure, Student
from feeledger.fees.allocation import allocate
from feeledger.fees.catalog import DatabaseFeeScheduleCatalog, StaticFeeScheduleCatalog
from feeledger.fees.store import SqlAlchemyTransactionStore
from feeledger.fees.summary import collection_stats, overall_status, summarize
from feeledger.fees.types import FeeSchedule, StudentRef, Transaction
from feeledger.fees.workflow import PaymentWorkflow

from .schemas import (
    AllocationItem,
    ClassFeeStructureCreate,
    ClassFeeStructureResponse,
    CollectionStatsResponse,
    FeeCategoryItem,
    FeeScheduleResponse,
    PaymentConfirmRequest,
    PaymentPreviewRequest,
    PaymentPreviewResponse,
    PaymentResponse,
    StudentFeeBreakdownResponse,
)

logger = logging.getLogger(__name__)


@lru_cache
def _default_catalog() -> StaticFeeScheduleCatalog:
    return StaticFeeScheduleCatalog.from_settings()


def get_catalog(db: AsyncSession) -> DatabaseFeeScheduleCatalog:
    return DatabaseFeeScheduleCatalog(db, _default_catalog())


def _schedule_to_response(schedule: FeeSchedule) -> FeeScheduleResponse:
    return FeeScheduleResponse(
        class_id=schedule.class_id,
        categories=[FeeCategoryItem(name=c.name, due_amount=c.due_amount) for c in schedule.categories],
        total_due=schedule.total_due,
    )


def _txn_to_response(txn: Transaction) -> PaymentResponse:
    return PaymentResponse(
        id=txn.id,
        student_id=txn.student_id,
        category=txn.category_tag,
        amount=txn.amount,
        payment_mode=txn.mode,
        status=txn.status,
        receipt_no=txn.receipt_number,
        academic_year=txn.academic_year,
        remarks=txn.remarks,
        paid_at=txn.timestamp,
    )


# --- Class Fee Structure ---
async def get_class_schedule(db: AsyncSession, class_id: str) -> FeeScheduleResponse:
    schedule = await get_catalog(db).lookup(class_id)
    return _schedule_to_response(schedule)


async def create_class_fee_structure(
    db: AsyncSession,
    payload: ClassFeeStructureCreate,
) -> ClassFeeStructureResponse:
    if not payload.category.is_schedulable:
        raise ServiceError(f"'{payload.category.value}' is not a fee category", status.HTTP_400_BAD_REQUEST)
    try:
        cfs = ClassFeeStructure(
            class_name=payload.class_name.strip(),
            category=payload.category.value,
            amount=payload.amount,
            display_order=payload.display_order,
            is_active=True,
        )
        db.add(cfs)
        await db.commit()
        await db.refresh(cfs)
    except IntegrityError:
        await db.rollback()
        raise ServiceError(
            "This class already has an amount for this fee category",
            status.HTTP_409_CONFLICT,
        )
    logger.info("Fee structure %s/%s set to %s", cfs.class_name, cfs.category, cfs.amount)
    return ClassFeeStructureResponse(
        id=cfs.id,
        class_name=cfs.class_name,
        category=cfs.category,
        amount=Decimal(str(cfs.amount)),
        display_order=cfs.display_order,
        is_active=cfs.is_active,
    )


# --- Student ---
async def get_student(db: AsyncSession, student_id: UUID) -> StudentRef:
    student = await db.get(Student, student_id)
    if not student:
        raise ServiceError("Student not found", status.HTTP_404_NOT_FOUND)
    return StudentRef(
        id=student.id,
        admission_no=student.admission_no,
        name=student.name,
        class_id=student.class_name,
        conveyance_slab=student.conveyance_slab or 0,
    )


async def get_student_breakdown(db: AsyncSession, student_id: UUID) -> StudentFeeBreakdownResponse:
    """Replay the student's full log against their class schedule."""
    student = await get_student(db, student_id)
    schedule = await get_catalog(db).lookup_for_student(student.class_id, student.conveyance_slab)
    transactions = await SqlAlchemyTransactionStore(db).list_for_student(student_id)
    results = allocate(schedule, transactions)
    return StudentFeeBreakdownResponse(
        student_id=student.id,
        admission_no=student.admission_no,
        student_name=student.name,
        class_id=student.class_id,
        categories=[AllocationItem(**r.model_dump()) for r in results],
        summary=summarize(results),
        status=overall_status(results, transactions),
    )


async def get_student_history(db: AsyncSession, student_id: UUID) -> List[PaymentResponse]:
    await get_student(db, student_id)
    transactions = await SqlAlchemyTransactionStore(db).list_for_student(student_id)
    return [_txn_to_response(t) for t in transactions]


async def list_transactions(db: AsyncSession) -> List[PaymentResponse]:
    return [_txn_to_response(t) for t in await SqlAlchemyTransactionStore(db).list_all()]


async def get_collection_stats(db: AsyncSession, today: date) -> CollectionStatsResponse:
    stats = collection_stats(await SqlAlchemyTransactionStore(db).list_all(), today)
    return CollectionStatsResponse(**stats.model_dump())


# --- Payment ---
async def preview_payment(db: AsyncSession, payload: PaymentPreviewRequest) -> PaymentPreviewResponse:
    student = await get_student(db, payload.student_id)
    workflow = PaymentWorkflow(SqlAlchemyTransactionStore(db))
    draft = workflow.preview(student, payload.category, payload.amount, payload.payment_mode, remarks=payload.remarks)
    return PaymentPreviewResponse(
        student_id=draft.student_id,
        admission_no=draft.admission_no,
        category=draft.category_tag,
        amount=draft.amount,
        payment_mode=draft.mode,
        provisional_receipt_no=draft.provisional_receipt.value,
        receipt_display=str(draft.provisional_receipt),
        idempotency_key=draft.idempotency_key,
        created_at=draft.created_at,
    )


async def confirm_payment(db: AsyncSession, payload: PaymentConfirmRequest) -> PaymentResponse:
    """
    Rebuild the previewed draft and record it.

    The idempotency key from the preview travels with the request, so a client that
    retries after a timeout gets the original transaction back.
    """
    student = await get_student(db, payload.student_id)
    workflow = PaymentWorkflow(SqlAlchemyTransactionStore(db))
    workflow.preview(
        student,
        payload.category,
        payload.amount,
        payload.payment_mode,
        remarks=payload.remarks,
        idempotency_key=payload.idempotency_key,
    )
    txn = await workflow.confirm()
    return _txn_to_response(txn)
