from enum import Enum


class CategoryTag(str, Enum):
    """Fee category names plus the two payment-only tags (FULL, CUSTOM)."""

    TUITION = "tuition"
    MATERIALS = "materials"
    TRANSPORT = "transport"
    LIBRARY = "library"
    SPORTS = "sports"
    FULL = "full"
    CUSTOM = "custom"

    @property
    def is_schedulable(self) -> bool:
        return self not in (CategoryTag.FULL, CategoryTag.CUSTOM)


class PaymentMode(str, Enum):
    CASH = "Cash"
    UPI = "UPI"
    CHEQUE = "Cheque"
    BANK_TRANSFER = "BankTransfer"


class TransactionStatus(str, Enum):
    PAID = "Paid"
    PENDING = "Pending"
    OVERDUE = "Overdue"


class AllocationStatus(str, Enum):
    PAID = "Paid"
    PARTIAL = "Partial"
    PENDING = "Pending"


class StudentFeeStatus(str, Enum):
    PAID = "Paid"
    PARTIALLY_PAID = "Partially Paid"
    PENDING = "Pending"
    OVERDUE = "Overdue"
