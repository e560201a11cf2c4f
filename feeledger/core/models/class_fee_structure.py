"""Class fee structure: amount owed per fee category per class."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID

from feeledger.db.session import Base


class ClassFeeStructure(Base):
    """One category amount for one class. A class with no active rows uses the configured default."""

    __tablename__ = "class_fee_structures"
    __table_args__ = (
        UniqueConstraint("class_name", "category", name="uq_class_fee_structure_class_category"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    class_name = Column(String(50), nullable=False, index=True)
    category = Column(String(30), nullable=False)  # tuition, materials, transport, library, sports
    amount = Column(Numeric(12, 2), nullable=False)
    display_order = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
