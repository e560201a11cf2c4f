"""
Fee allocation: derive per-category paid/pending/status from the transaction log.

The breakdown is always recomputed from the full log; there is no stored running
balance to drift from it. Everything here is pure: no I/O, no clock.
"""

import logging
from decimal import Decimal
from typing import Dict, Iterable, List

from feeledger.core.enums import AllocationStatus, CategoryTag, TransactionStatus
from feeledger.fees.types import AllocationResult, FeeSchedule, Transaction

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def allocation_status(paid: Decimal, due: Decimal) -> AllocationStatus:
    if paid >= due:
        return AllocationStatus.PAID
    if paid > 0:
        return AllocationStatus.PARTIAL
    return AllocationStatus.PENDING


def allocate(schedule: FeeSchedule, transactions: Iterable[Transaction]) -> List[AllocationResult]:
    """
    Allocate Paid transactions against each category of the schedule.

    - Only status=Paid transactions count; Pending/Overdue are liabilities, not receipts.
    - A category-tagged payment adds its amount to that category.
    - Any 'full' payment marks every category as paid up to its due amount, whatever
      the payment's own amount. This overstates paid when a short full-fee payment
      was recorded; kept as-is until the business rule is confirmed.
    - Paid is clipped to due, so pending never goes negative.
    - 'custom', unknown legacy tags and categories outside this schedule are skipped.

    Results follow schedule order.
    """
    raw_paid: Dict[CategoryTag, Decimal] = {c.name: ZERO for c in schedule.categories}
    has_full = False

    for txn in transactions:
        if txn.status != TransactionStatus.PAID:
            continue
        tag = txn.tag
        if tag is None:
            logger.debug("Skipping transaction %s with unrecognised tag %r", txn.id, txn.category_tag)
            continue
        if tag == CategoryTag.FULL:
            has_full = True
            continue
        if tag not in raw_paid:
            logger.debug("Skipping transaction %s: '%s' not in schedule for %s", txn.id, tag.value, schedule.class_id)
            continue
        raw_paid[tag] += txn.amount

    results: List[AllocationResult] = []
    for category in schedule.categories:
        due = category.due_amount
        effective = raw_paid[category.name]
        if has_full:
            effective = max(effective, due)
        effective = min(effective, due)
        results.append(
            AllocationResult(
                category=category.name,
                due=due,
                paid=effective,
                pending=due - effective,
                status=allocation_status(effective, due),
            )
        )
    return results
