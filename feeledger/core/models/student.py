"""Student: the minimal profile the ledger needs (admission number, class, conveyance slab)."""

import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.dialects.postgresql import UUID

from feeledger.db.session import Base


class Student(Base):
    """Student profile. Admission data capture lives elsewhere; this row is read-only to the ledger."""

    __tablename__ = "students"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    admission_no = Column(String(50), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=False)
    class_name = Column(String(50), nullable=True)
    section = Column(String(20), nullable=True)
    conveyance_slab = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
