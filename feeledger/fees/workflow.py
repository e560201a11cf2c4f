"""
Payment recording workflow: preview -> confirm -> reset.

    Idle --preview--> Previewing --confirm--> Confirmed --reset--> Idle
                      Previewing --cancel---> Idle

One instance per collection interaction. The store has no cancel, so once confirm()
has called it the workflow waits for the result; a failure does not prove the write
did not happen. Retrying confirm() re-sends the same draft with the same idempotency
key, so a store that honours the key records it once.
"""

import logging
import uuid
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Callable, List, Optional, Union
from uuid import UUID

from feeledger.core.clock import local_now
from feeledger.core.config import settings
from feeledger.core.enums import CategoryTag, PaymentMode
from feeledger.core.exceptions import ConflictError, InvalidStateTransitionError, ValidationError
from feeledger.fees.receipts import ReceiptIdentifier
from feeledger.fees.store import TransactionStore
from feeledger.fees.types import StudentRef, Transaction, WorkflowDraft, parse_category_tag

logger = logging.getLogger(__name__)


class WorkflowState(str, Enum):
    IDLE = "Idle"
    PREVIEWING = "Previewing"
    CONFIRMED = "Confirmed"


class WorkflowEvent(str, Enum):
    PREVIEW = "preview"
    CONFIRM = "confirm"
    CANCEL = "cancel"
    RESET = "reset"


_TRANSITIONS = {
    (WorkflowState.IDLE, WorkflowEvent.PREVIEW): WorkflowState.PREVIEWING,
    (WorkflowState.PREVIEWING, WorkflowEvent.CONFIRM): WorkflowState.CONFIRMED,
    (WorkflowState.PREVIEWING, WorkflowEvent.CANCEL): WorkflowState.IDLE,
    (WorkflowState.CONFIRMED, WorkflowEvent.RESET): WorkflowState.IDLE,
}


def transition(state: WorkflowState, event: WorkflowEvent) -> WorkflowState:
    """Next state for an event. Raises InvalidStateTransitionError for pairs the machine does not allow."""
    try:
        return _TRANSITIONS[(state, event)]
    except KeyError:
        raise InvalidStateTransitionError(f"Cannot {event.value} while {state.value}") from None


Listener = Callable[[WorkflowState, WorkflowState], None]


def _to_amount(amount) -> Decimal:
    if isinstance(amount, float):
        amount = str(amount)
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(amount)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError("Amount must be a number") from None
    if not value.is_finite() or value <= 0:
        raise ValidationError("Amount must be greater than zero")
    return value


def _to_mode(mode) -> PaymentMode:
    if isinstance(mode, PaymentMode):
        return mode
    try:
        return PaymentMode(mode)
    except ValueError:
        raise ValidationError(f"Unsupported payment mode: {mode!r}") from None


class PaymentWorkflow:
    """State machine for recording one payment. Rendering subscribes to it; it does not own state."""

    def __init__(self, store: TransactionStore, academic_year: Optional[str] = None) -> None:
        self._store = store
        self._academic_year = academic_year or settings.academic_year
        self._state = WorkflowState.IDLE
        self._draft: Optional[WorkflowDraft] = None
        self._transaction: Optional[Transaction] = None
        self._receipt: Optional[ReceiptIdentifier] = None
        self._in_flight = False
        self._listeners: List[Listener] = []

    @property
    def state(self) -> WorkflowState:
        return self._state

    @property
    def draft(self) -> Optional[WorkflowDraft]:
        return self._draft

    @property
    def transaction(self) -> Optional[Transaction]:
        return self._transaction

    @property
    def receipt(self) -> Optional[ReceiptIdentifier]:
        """Provisional while previewing, store-issued once confirmed."""
        return self._receipt

    @property
    def is_busy(self) -> bool:
        return self._in_flight

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _move(self, event: WorkflowEvent) -> None:
        old = self._state
        self._state = transition(old, event)
        logger.info("Payment workflow %s: %s -> %s", event.value, old.value, self._state.value)
        for listener in list(self._listeners):
            listener(old, self._state)

    def preview(
        self,
        student: Optional[StudentRef],
        category_tag: Union[CategoryTag, str, None],
        amount: Union[Decimal, int, str, float, None],
        mode: Union[PaymentMode, str],
        *,
        remarks: Optional[str] = None,
        idempotency_key: Optional[UUID] = None,
        now: Optional[datetime] = None,
    ) -> WorkflowDraft:
        """Validate inputs and build a draft with a provisional receipt. Nothing is persisted."""
        transition(self._state, WorkflowEvent.PREVIEW)
        if student is None:
            raise ValidationError("Select a student before collecting a fee")
        tag = parse_category_tag(category_tag)
        if tag is None:
            raise ValidationError("Select a fee category")
        value = _to_amount(amount)
        payment_mode = _to_mode(mode)

        created_at = now or local_now()
        draft = WorkflowDraft(
            student_id=student.id,
            admission_no=student.admission_no,
            category_tag=tag,
            amount=value,
            mode=payment_mode,
            created_at=created_at,
            provisional_receipt=ReceiptIdentifier.provisional(created_at, student.admission_no),
            idempotency_key=idempotency_key or uuid.uuid4(),
            academic_year=self._academic_year,
            remarks=(remarks or "").strip() or None,
        )
        self._draft = draft
        self._receipt = draft.provisional_receipt
        self._move(WorkflowEvent.PREVIEW)
        return draft

    async def confirm(self) -> Transaction:
        """
        Persist the draft. Exactly one store.add() per call.

        On failure the workflow stays Previewing with the draft intact and the error
        propagates; the caller decides whether to retry or cancel.
        """
        if self._in_flight:
            raise ConflictError()
        transition(self._state, WorkflowEvent.CONFIRM)
        draft = self._draft

        self._in_flight = True
        try:
            txn = await self._store.add(draft)
            receipt = ReceiptIdentifier.authoritative(txn.receipt_number)
        except Exception as e:
            logger.warning(
                "Payment confirm failed for student %s (key %s): %s", draft.student_id, draft.idempotency_key, e
            )
            raise
        finally:
            self._in_flight = False

        self._transaction = txn
        self._receipt = receipt
        self._draft = None
        self._move(WorkflowEvent.CONFIRM)
        return txn

    def cancel(self) -> None:
        if self._in_flight:
            raise ConflictError("Cannot cancel while the payment is being recorded")
        transition(self._state, WorkflowEvent.CANCEL)
        self._draft = None
        self._receipt = None
        self._move(WorkflowEvent.CANCEL)

    def reset(self) -> None:
        transition(self._state, WorkflowEvent.RESET)
        self._draft = None
        self._transaction = None
        self._receipt = None
        self._move(WorkflowEvent.RESET)
