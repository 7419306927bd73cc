"""Class movements: promotions (to_class_id set) and graduations (to_class_id null)."""
import uuid
from datetime import datetime

from sqlalchemy import Column, Date, DateTime, ForeignKey, String, Text, Uuid

from schoolrecords.db.session import Base


class Transfer(Base):
    __tablename__ = "transfers"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id = Column(Uuid, ForeignKey("students.id", ondelete="CASCADE"), nullable=False)
    from_class_id = Column(Uuid, ForeignKey("classes.id"), nullable=True)
    to_class_id = Column(Uuid, ForeignKey("classes.id"), nullable=True)
    reason = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="pending")  # pending | completed
    academic_year = Column(String(20), nullable=True)
    request_date = Column(Date, nullable=True)
    completed_date = Column(Date, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
