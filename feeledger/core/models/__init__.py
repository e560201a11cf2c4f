from feeledger.core.models.student import Student
from feeledger.core.models.class_fee_structure import ClassFeeStructure
from feeledger.core.models.fee_transaction import FeeTransaction

__all__ = [
    "Student",
    "ClassFeeStructure",
    "FeeTransaction",
]
