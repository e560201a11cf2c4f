"""Transaction store: append-only persistence for payments. Owns authoritative receipt numbers."""

import abc
import logging
from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.core.clock import local_now
from feeledger.core.enums import PaymentMode, TransactionStatus
from feeledger.core.exceptions import ConflictError, PersistenceError
from feeledger.core.models import FeeTransaction, Student
from feeledger.fees.receipts import provisional_receipt_number
from feeledger.fees.types import Transaction, WorkflowDraft

logger = logging.getLogger(__name__)


class TransactionStore(abc.ABC):
    @abc.abstractmethod
    async def add(self, draft: WorkflowDraft) -> Transaction:
        """Persist a draft and return it with an authoritative receipt number. Raises PersistenceError."""

    @abc.abstractmethod
    async def list_for_student(self, student_id: UUID) -> List[Transaction]:
        ...

    @abc.abstractmethod
    async def list_all(self) -> List[Transaction]:
        ...


# Modes written by older clients.
_LEGACY_MODES = {
    "online": PaymentMode.UPI,
    "upi / online": PaymentMode.UPI,
    "bank": PaymentMode.BANK_TRANSFER,
    "bank transfer": PaymentMode.BANK_TRANSFER,
}


def _parse_mode(raw: Optional[str]) -> Optional[PaymentMode]:
    try:
        return PaymentMode(raw)
    except ValueError:
        mode = _LEGACY_MODES.get((raw or "").strip().lower())
        if mode is None:
            logger.debug("Unrecognised payment mode %r in store, reading it as unknown", raw)
        return mode


def _to_transaction(row: FeeTransaction) -> Transaction:
    return Transaction(
        id=row.id,
        student_id=row.student_id,
        category_tag=row.fee_type,
        amount=row.amount if isinstance(row.amount, Decimal) else Decimal(str(row.amount)),
        mode=_parse_mode(row.payment_mode),
        timestamp=row.paid_at,
        status=TransactionStatus(row.status),
        receipt_number=row.receipt_no,
        academic_year=row.academic_year,
        remarks=row.remarks,
        idempotency_key=row.idempotency_key,
    )


_STATUSES = {s.value for s in TransactionStatus}


def _readable(row: FeeTransaction) -> bool:
    """Rows older writers left without a positive amount or a known status are not payments."""
    if row.amount is None or Decimal(str(row.amount)) <= 0:
        logger.warning("Skipping transaction %s with non-positive amount %r", row.id, row.amount)
        return False
    if row.status not in _STATUSES:
        logger.warning("Skipping transaction %s with unknown status %r", row.id, row.status)
        return False
    return True


def _same_payment(row: FeeTransaction, draft: WorkflowDraft) -> bool:
    return (
        row.student_id == draft.student_id
        and row.fee_type == draft.category_tag.value
        and Decimal(str(row.amount)) == draft.amount
        and row.payment_mode == draft.mode.value
    )


# A receipt number read as free can be taken before our insert commits; re-read once.
_INSERT_ATTEMPTS = 2


class SqlAlchemyTransactionStore(TransactionStore):
    """
    FeeTransaction-backed store.

    Receipt numbers are YYYYMMDDHHMMSS-<admission_no> taken from the school-local
    clock at write time; a second payment for the same student in the same second
    gets a -2, -3, ... suffix. A draft whose idempotency key was already written
    returns the existing row instead of inserting again, provided it describes the
    same payment; a key reused for a different payment is a ConflictError.
    """

    def __init__(self, db: AsyncSession, clock: Callable[[], datetime] = local_now) -> None:
        self._db = db
        self._clock = clock

    async def _find_by_key(self, key: UUID) -> Optional[FeeTransaction]:
        return (
            await self._db.execute(select(FeeTransaction).where(FeeTransaction.idempotency_key == key))
        ).scalar_one_or_none()

    async def _unique_receipt_no(self, base: str) -> str:
        taken = set(
            (
                await self._db.execute(
                    select(FeeTransaction.receipt_no).where(FeeTransaction.receipt_no.like(f"{base}%"))
                )
            ).scalars().all()
        )
        candidate = base
        n = 1
        while candidate in taken:
            n += 1
            candidate = f"{base}-{n}"
        return candidate

    def _replay(self, existing: FeeTransaction, draft: WorkflowDraft) -> Transaction:
        if not _same_payment(existing, draft):
            logger.warning(
                "Idempotency key %s reused for a different payment (stored receipt %s)",
                draft.idempotency_key,
                existing.receipt_no,
            )
            raise ConflictError("This idempotency key was already used for a different payment")
        logger.info("Idempotent replay for key %s, returning receipt %s", draft.idempotency_key, existing.receipt_no)
        return _to_transaction(existing)

    async def _insert(self, draft: WorkflowDraft, admission_no: str) -> FeeTransaction:
        paid_at = self._clock()
        receipt_no = await self._unique_receipt_no(provisional_receipt_number(paid_at, admission_no))
        row = FeeTransaction(
            student_id=draft.student_id,
            fee_type=draft.category_tag.value,
            amount=draft.amount,
            academic_year=draft.academic_year,
            payment_mode=draft.mode.value,
            status=TransactionStatus.PAID.value,
            paid_at=paid_at,
            receipt_no=receipt_no,
            idempotency_key=draft.idempotency_key,
            remarks=draft.remarks,
        )
        self._db.add(row)
        await self._db.commit()
        await self._db.refresh(row)
        return row

    async def add(self, draft: WorkflowDraft) -> Transaction:
        try:
            existing = await self._find_by_key(draft.idempotency_key)
            if existing is not None:
                return self._replay(existing, draft)
            student = await self._db.get(Student, draft.student_id)
            if student is None:
                raise PersistenceError("Student not found")
            admission_no = student.admission_no
        except SQLAlchemyError as e:
            await self._db.rollback()
            logger.error("Failed to record payment for student %s: %s", draft.student_id, e)
            raise PersistenceError("Could not record payment") from e

        for attempt in range(1, _INSERT_ATTEMPTS + 1):
            try:
                row = await self._insert(draft, admission_no)
            except IntegrityError as e:
                await self._db.rollback()
                try:
                    existing = await self._find_by_key(draft.idempotency_key)
                except SQLAlchemyError as lookup_error:
                    logger.error("Failed to re-read key %s: %s", draft.idempotency_key, lookup_error)
                    raise PersistenceError("Could not record payment") from lookup_error
                if existing is not None:
                    # Lost a race with a concurrent add carrying the same key.
                    return self._replay(existing, draft)
                if attempt < _INSERT_ATTEMPTS:
                    logger.info("Receipt number taken for student %s, retrying", draft.student_id)
                    continue
                logger.error("Rejected payment for student %s: %s", draft.student_id, e)
                raise PersistenceError("Payment was rejected by the transaction store") from e
            except SQLAlchemyError as e:
                await self._db.rollback()
                logger.error("Failed to record payment for student %s: %s", draft.student_id, e)
                raise PersistenceError("Could not record payment") from e

            logger.info(
                "Recorded payment %s for student %s: %s %s", row.receipt_no, row.student_id, row.fee_type, row.amount
            )
            return _to_transaction(row)

    async def list_for_student(self, student_id: UUID) -> List[Transaction]:
        try:
            rows = (
                await self._db.execute(
                    select(FeeTransaction)
                    .where(FeeTransaction.student_id == student_id)
                    .order_by(FeeTransaction.paid_at.desc())
                )
            ).scalars().all()
        except SQLAlchemyError as e:
            raise PersistenceError("Could not load payment history") from e
        return [_to_transaction(r) for r in rows if _readable(r)]

    async def list_all(self) -> List[Transaction]:
        try:
            rows = (
                await self._db.execute(select(FeeTransaction).order_by(FeeTransaction.created_at.desc()))
            ).scalars().all()
        except SQLAlchemyError as e:
            raise PersistenceError("Could not load transactions") from e
        return [_to_transaction(r) for r in rows if _readable(r)]
