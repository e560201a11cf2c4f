"""Payment workflow state machine: preview, confirm, cancel, reset, retry and in-flight guard."""

import asyncio
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import List

import pytest

from feeledger.core.config import settings
from feeledger.core.enums import CategoryTag, PaymentMode, TransactionStatus
from feeledger.core.exceptions import (
    ConflictError,
    InvalidStateTransitionError,
    PersistenceError,
    ValidationError,
)
from feeledger.fees.store import TransactionStore
from feeledger.fees.types import StudentRef, Transaction, WorkflowDraft
from feeledger.fees.workflow import (
    PaymentWorkflow,
    WorkflowEvent,
    WorkflowState,
    transition,
)

NOW = datetime(2025, 1, 30, 10, 30, 45, tzinfo=timezone.utc)


class FakeStore(TransactionStore):
    """Records add() calls; fails the first `failures` of them."""

    def __init__(self, failures: int = 0, receipt: str = "R-0001") -> None:
        self.failures = failures
        self.receipt = receipt
        self.calls: List[WorkflowDraft] = []

    async def add(self, draft: WorkflowDraft) -> Transaction:
        self.calls.append(draft)
        if self.failures:
            self.failures -= 1
            raise PersistenceError("store unavailable")
        return Transaction(
            id=uuid.uuid4(),
            student_id=draft.student_id,
            category_tag=draft.category_tag.value,
            amount=draft.amount,
            mode=draft.mode,
            timestamp=NOW,
            status=TransactionStatus.PAID,
            receipt_number=self.receipt,
            idempotency_key=draft.idempotency_key,
        )

    async def list_for_student(self, student_id):
        return []

    async def list_all(self):
        return []


class GatedStore(FakeStore):
    """add() blocks until the test opens the gate."""

    def __init__(self) -> None:
        super().__init__()
        self.entered = asyncio.Event()
        self.gate = asyncio.Event()

    async def add(self, draft: WorkflowDraft) -> Transaction:
        self.entered.set()
        await self.gate.wait()
        return await super().add(draft)


@pytest.fixture()
def student_ref() -> StudentRef:
    return StudentRef(id=uuid.uuid4(), admission_no="1234", name="Asha Verma", class_id="Class 5")


def _preview(workflow: PaymentWorkflow, student_ref: StudentRef, **kwargs) -> WorkflowDraft:
    args = dict(category_tag="tuition", amount="12000", mode="Cash", now=NOW)
    args.update(kwargs)
    return workflow.preview(student_ref, args.pop("category_tag"), args.pop("amount"), args.pop("mode"), **args)


# --- transition table ---
def test_transition_table() -> None:
    assert transition(WorkflowState.IDLE, WorkflowEvent.PREVIEW) == WorkflowState.PREVIEWING
    assert transition(WorkflowState.PREVIEWING, WorkflowEvent.CONFIRM) == WorkflowState.CONFIRMED
    assert transition(WorkflowState.PREVIEWING, WorkflowEvent.CANCEL) == WorkflowState.IDLE
    assert transition(WorkflowState.CONFIRMED, WorkflowEvent.RESET) == WorkflowState.IDLE


@pytest.mark.parametrize(
    "state, event",
    [
        (WorkflowState.IDLE, WorkflowEvent.CONFIRM),
        (WorkflowState.IDLE, WorkflowEvent.CANCEL),
        (WorkflowState.IDLE, WorkflowEvent.RESET),
        (WorkflowState.PREVIEWING, WorkflowEvent.PREVIEW),
        (WorkflowState.PREVIEWING, WorkflowEvent.RESET),
        (WorkflowState.CONFIRMED, WorkflowEvent.PREVIEW),
        (WorkflowState.CONFIRMED, WorkflowEvent.CANCEL),
        (WorkflowState.CONFIRMED, WorkflowEvent.CONFIRM),
    ],
)
def test_invalid_transitions_are_rejected(state: WorkflowState, event: WorkflowEvent) -> None:
    with pytest.raises(InvalidStateTransitionError):
        transition(state, event)


# --- preview ---
def test_preview_builds_draft_without_persisting(student_ref: StudentRef) -> None:
    store = FakeStore()
    workflow = PaymentWorkflow(store, academic_year="2025-2026")
    draft = _preview(workflow, student_ref, remarks="  Collected via Portal ")

    assert workflow.state == WorkflowState.PREVIEWING
    assert store.calls == []
    assert draft.category_tag == CategoryTag.TUITION
    assert draft.amount == Decimal("12000")
    assert draft.mode == PaymentMode.CASH
    assert draft.academic_year == "2025-2026"
    assert draft.remarks == "Collected via Portal"
    assert draft.provisional_receipt.value == "20250130103045-1234"
    assert workflow.receipt.is_provisional


def test_preview_stamps_school_local_time(student_ref: StudentRef, monkeypatch) -> None:
    monkeypatch.setattr(settings, "timezone", "Asia/Kolkata")
    draft = PaymentWorkflow(FakeStore()).preview(student_ref, "tuition", "100", "Cash")
    assert draft.created_at.utcoffset() == timedelta(hours=5, minutes=30)


def test_preview_keeps_supplied_idempotency_key(student_ref: StudentRef) -> None:
    key = uuid.uuid4()
    draft = _preview(PaymentWorkflow(FakeStore()), student_ref, idempotency_key=key)
    assert draft.idempotency_key == key


@pytest.mark.parametrize(
    "overrides",
    [
        {"amount": "0"},
        {"amount": "-50"},
        {"amount": "abc"},
        {"amount": None},
        {"amount": "NaN"},
        {"category_tag": None},
        {"category_tag": "canteen"},
        {"mode": "Barter"},
    ],
)
def test_preview_validation_errors_leave_workflow_idle(student_ref: StudentRef, overrides) -> None:
    store = FakeStore()
    workflow = PaymentWorkflow(store)
    with pytest.raises(ValidationError):
        _preview(workflow, student_ref, **overrides)
    assert workflow.state == WorkflowState.IDLE
    assert workflow.draft is None
    assert store.calls == []


def test_preview_requires_student() -> None:
    workflow = PaymentWorkflow(FakeStore())
    with pytest.raises(ValidationError):
        workflow.preview(None, "tuition", "100", "Cash")
    assert workflow.state == WorkflowState.IDLE


# --- confirm ---
@pytest.mark.asyncio
async def test_confirm_replaces_provisional_receipt(student_ref: StudentRef) -> None:
    store = FakeStore(receipt="20250130103046-1234")
    workflow = PaymentWorkflow(store)
    _preview(workflow, student_ref)

    txn = await workflow.confirm()

    assert workflow.state == WorkflowState.CONFIRMED
    assert len(store.calls) == 1
    assert workflow.transaction == txn
    assert workflow.draft is None
    assert workflow.receipt.value == "20250130103046-1234"
    assert not workflow.receipt.is_provisional


@pytest.mark.asyncio
async def test_failed_confirm_stays_previewing_and_can_retry(student_ref: StudentRef) -> None:
    store = FakeStore(failures=1, receipt="AUTH-42")
    workflow = PaymentWorkflow(store)
    draft = _preview(workflow, student_ref)

    with pytest.raises(PersistenceError):
        await workflow.confirm()

    assert workflow.state == WorkflowState.PREVIEWING
    assert workflow.draft == draft
    assert workflow.receipt.is_provisional
    assert workflow.transaction is None
    assert not workflow.is_busy

    txn = await workflow.confirm()

    assert workflow.state == WorkflowState.CONFIRMED
    assert txn.receipt_number == "AUTH-42"
    assert str(workflow.receipt) == "AUTH-42"
    # Both attempts carried the same draft, so a key-aware store can dedupe them.
    assert [d.idempotency_key for d in store.calls] == [draft.idempotency_key, draft.idempotency_key]


@pytest.mark.asyncio
async def test_store_without_receipt_is_a_persistence_error(student_ref: StudentRef) -> None:
    workflow = PaymentWorkflow(FakeStore(receipt=""))
    _preview(workflow, student_ref)
    with pytest.raises(PersistenceError):
        await workflow.confirm()
    assert workflow.state == WorkflowState.PREVIEWING


@pytest.mark.asyncio
async def test_confirm_from_idle_is_rejected() -> None:
    store = FakeStore()
    with pytest.raises(InvalidStateTransitionError):
        await PaymentWorkflow(store).confirm()
    assert store.calls == []


@pytest.mark.asyncio
async def test_reentrant_confirm_is_rejected_while_in_flight(student_ref: StudentRef) -> None:
    store = GatedStore()
    workflow = PaymentWorkflow(store)
    _preview(workflow, student_ref)

    first = asyncio.create_task(workflow.confirm())
    await store.entered.wait()

    assert workflow.is_busy
    assert workflow.state == WorkflowState.PREVIEWING
    with pytest.raises(ConflictError):
        await workflow.confirm()
    with pytest.raises(ConflictError):
        workflow.cancel()

    store.gate.set()
    await first

    assert len(store.calls) == 1
    assert workflow.state == WorkflowState.CONFIRMED
    assert not workflow.is_busy


# --- cancel / reset ---
def test_cancel_discards_draft(student_ref: StudentRef) -> None:
    store = FakeStore()
    workflow = PaymentWorkflow(store)
    _preview(workflow, student_ref)

    workflow.cancel()

    assert workflow.state == WorkflowState.IDLE
    assert workflow.draft is None
    assert workflow.receipt is None
    assert store.calls == []


@pytest.mark.asyncio
async def test_reset_after_confirm_allows_next_collection(student_ref: StudentRef) -> None:
    workflow = PaymentWorkflow(FakeStore())
    _preview(workflow, student_ref)
    await workflow.confirm()

    workflow.reset()

    assert workflow.state == WorkflowState.IDLE
    assert workflow.transaction is None
    assert workflow.receipt is None
    _preview(workflow, student_ref, category_tag="materials", amount="6500")
    assert workflow.state == WorkflowState.PREVIEWING


def test_reset_from_previewing_is_rejected(student_ref: StudentRef) -> None:
    workflow = PaymentWorkflow(FakeStore())
    _preview(workflow, student_ref)
    with pytest.raises(InvalidStateTransitionError):
        workflow.reset()


# --- listeners ---
@pytest.mark.asyncio
async def test_listeners_see_each_transition(student_ref: StudentRef) -> None:
    workflow = PaymentWorkflow(FakeStore())
    seen = []
    unsubscribe = workflow.subscribe(lambda old, new: seen.append((old, new)))

    _preview(workflow, student_ref)
    await workflow.confirm()
    unsubscribe()
    workflow.reset()

    assert seen == [
        (WorkflowState.IDLE, WorkflowState.PREVIEWING),
        (WorkflowState.PREVIEWING, WorkflowState.CONFIRMED),
    ]


@pytest.mark.asyncio
async def test_listener_never_sees_confirmed_before_store_resolves(student_ref: StudentRef) -> None:
    store = GatedStore()
    workflow = PaymentWorkflow(store)
    seen = []
    workflow.subscribe(lambda old, new: seen.append(new))
    _preview(workflow, student_ref)

    task = asyncio.create_task(workflow.confirm())
    await store.entered.wait()
    assert WorkflowState.CONFIRMED not in seen

    store.gate.set()
    await task
    assert seen[-1] == WorkflowState.CONFIRMED
