"""
Receipt identifiers.

A provisional identifier is built on the client for the preview screen and is never
written to the transaction log. The authoritative identifier comes back from the
store once the payment is persisted; its format belongs to the store.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from feeledger.core.exceptions import PersistenceError, ValidationError

TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"


def provisional_receipt_number(timestamp: datetime, admission_no: str) -> str:
    """
    Build a receipt number from a timestamp and the student's admission number.

    Format: YYYYMMDDHHMMSS-<admission_no>, e.g. 20250130103045-1234.
    Same inputs always give the same string.
    """
    admission_no = (admission_no or "").strip()
    if not admission_no:
        raise ValidationError("Student admission number is required for a receipt")
    return f"{timestamp.strftime(TIMESTAMP_FORMAT)}-{admission_no}"


class ReceiptIdentifier(BaseModel):
    """Receipt number flagged as provisional (preview only) or authoritative (store-issued)."""

    model_config = ConfigDict(frozen=True)

    value: str
    is_provisional: bool

    @classmethod
    def provisional(cls, timestamp: datetime, admission_no: str) -> "ReceiptIdentifier":
        return cls(value=provisional_receipt_number(timestamp, admission_no), is_provisional=True)

    @classmethod
    def authoritative(cls, value) -> "ReceiptIdentifier":
        """Accept a receipt number returned by the store. Missing or blank values are a store fault."""
        if value is None or not str(value).strip():
            raise PersistenceError("Transaction store did not return a receipt number")
        return cls(value=str(value).strip(), is_provisional=False)

    def __str__(self) -> str:
        if self.is_provisional:
            return f"{self.value} (provisional)"
        return self.value
