"""Grade bands per department/term/year. A null term/year band is the department-wide default."""
import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, Float, ForeignKey, String, Uuid

from schoolrecords.db.session import Base


class GradingScale(Base):
    __tablename__ = "grading_scales"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    department_id = Column(Uuid, ForeignKey("departments.id"), nullable=True)
    term = Column(String(10), nullable=True)
    academic_year = Column(String(20), nullable=True)
    from_percentage = Column(Float, nullable=False)
    to_percentage = Column(Float, nullable=False)
    grade = Column(String(10), nullable=False)
    remark = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
