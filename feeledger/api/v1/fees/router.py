"""Fees router: class schedules, student breakdown and history, collection stats, payments."""

from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.core.clock import local_today
from feeledger.core.exceptions import ServiceError
from feeledger.db.session import get_db

from .schemas import (
    ClassFeeStructureCreate,
    ClassFeeStructureResponse,
    CollectionStatsResponse,
    FeeScheduleResponse,
    PaymentConfirmRequest,
    PaymentPreviewRequest,
    PaymentPreviewResponse,
    PaymentResponse,
    StudentFeeBreakdownResponse,
)
from . import service

router = APIRouter(prefix="/api/v1/fees", tags=["fees"])


# --- Class Fee Structure ---
@router.get("/class/{class_id}", response_model=FeeScheduleResponse)
async def get_class_schedule(
    class_id: str,
    db: AsyncSession = Depends(get_db),
) -> FeeScheduleResponse:
    return await service.get_class_schedule(db, class_id)


@router.post(
    "/class",
    response_model=ClassFeeStructureResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_class_fee_structure(
    payload: ClassFeeStructureCreate,
    db: AsyncSession = Depends(get_db),
) -> ClassFeeStructureResponse:
    try:
        return await service.create_class_fee_structure(db, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


# --- Student ---
@router.get("/students/{student_id}", response_model=StudentFeeBreakdownResponse)
async def get_student_breakdown(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> StudentFeeBreakdownResponse:
    try:
        return await service.get_student_breakdown(db, student_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/students/{student_id}/history", response_model=List[PaymentResponse])
async def get_student_history(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> List[PaymentResponse]:
    try:
        return await service.get_student_history(db, student_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


# --- Collection ---
@router.get("/transactions", response_model=List[PaymentResponse])
async def list_transactions(
    db: AsyncSession = Depends(get_db),
) -> List[PaymentResponse]:
    try:
        return await service.list_transactions(db)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/stats", response_model=CollectionStatsResponse)
async def get_collection_stats(
    on: Optional[date] = Query(None, description="Day for the 'collected today' figure; defaults to today"),
    db: AsyncSession = Depends(get_db),
) -> CollectionStatsResponse:
    try:
        return await service.get_collection_stats(db, on or local_today())
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


# --- Payment ---
@router.post("/payments/preview", response_model=PaymentPreviewResponse)
async def preview_payment(
    payload: PaymentPreviewRequest,
    db: AsyncSession = Depends(get_db),
) -> PaymentPreviewResponse:
    try:
        return await service.preview_payment(db, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/payments/confirm",
    response_model=PaymentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def confirm_payment(
    payload: PaymentConfirmRequest,
    db: AsyncSession = Depends(get_db),
) -> PaymentResponse:
    try:
        return await service.confirm_payment(db, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
