"""Fee transaction: append-only payment log. Rows are never updated or deleted by the ledger."""

import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Numeric, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from feeledger.db.session import Base


class FeeTransaction(Base):
    """A payment against a student's fees, tagged with a category or 'full'."""

    __tablename__ = "fee_transactions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    student_id = Column(UUID(as_uuid=True), ForeignKey("students.id", ondelete="RESTRICT"), nullable=False, index=True)
    # Raw tag as stored; older rows carry strings like "Tuition Fee" or "Full Fee".
    fee_type = Column(String(50), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    academic_year = Column(String(20), nullable=False)
    payment_mode = Column(String(30), nullable=False)  # Cash, UPI, Cheque, BankTransfer
    status = Column(String(20), nullable=False, default="Pending")  # Paid, Pending, Overdue
    paid_at = Column(DateTime(timezone=True), nullable=False)
    receipt_no = Column(String(80), nullable=True, unique=True)
    idempotency_key = Column(UUID(as_uuid=True), nullable=True, unique=True)
    remarks = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    student = relationship("Student", backref="fee_transactions")
