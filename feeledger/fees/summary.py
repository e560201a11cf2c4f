"""Student totals, overall fee status and collection statistics derived from allocation rows and the log."""

from datetime import date
from decimal import Decimal
from typing import Iterable, List, Sequence

from pydantic import BaseModel

from feeledger.core.clock import local_date
from feeledger.core.enums import AllocationStatus, StudentFeeStatus, TransactionStatus
from feeledger.fees.types import AllocationResult, Transaction

ZERO = Decimal("0")


class FeeSummary(BaseModel):
    total_due: Decimal
    total_paid: Decimal
    total_pending: Decimal


class CollectionStats(BaseModel):
    total_collected: Decimal
    total_outstanding: Decimal
    collected_today: Decimal
    count: int


def summarize(results: Sequence[AllocationResult]) -> FeeSummary:
    total_due = sum((r.due for r in results), ZERO)
    total_paid = sum((r.paid for r in results), ZERO)
    return FeeSummary(total_due=total_due, total_paid=total_paid, total_pending=total_due - total_paid)


def overall_status(results: Sequence[AllocationResult], transactions: Iterable[Transaction]) -> StudentFeeStatus:
    """
    Single status for a student.

    Paid needs something to be owed: an empty or all-zero schedule reads as Pending,
    not Paid. Overdue only wins when nothing has been paid at all.
    """
    summary = summarize(results)
    if summary.total_due > 0 and all(r.status == AllocationStatus.PAID for r in results):
        return StudentFeeStatus.PAID
    if summary.total_paid > 0:
        return StudentFeeStatus.PARTIALLY_PAID
    if any(t.status == TransactionStatus.OVERDUE for t in transactions):
        return StudentFeeStatus.OVERDUE
    return StudentFeeStatus.PENDING


def collection_stats(transactions: Iterable[Transaction], today: date) -> CollectionStats:
    txns: List[Transaction] = list(transactions)
    collected = ZERO
    outstanding = ZERO
    today_total = ZERO
    for t in txns:
        if t.status == TransactionStatus.PAID:
            collected += t.amount
            if local_date(t.timestamp) == today:
                today_total += t.amount
        else:
            outstanding += t.amount
    return CollectionStats(
        total_collected=collected,
        total_outstanding=outstanding,
        collected_today=today_total,
        count=len(txns),
    )
