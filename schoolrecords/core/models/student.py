"""Students. `student_id` is the school-issued identifier used by spreadsheets; `id` is internal."""
import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import relationship

from schoolrecords.db.session import Base


class Student(Base):
    __tablename__ = "students"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id = Column(String(50), nullable=False, unique=True)
    full_name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    date_of_birth = Column(Date, nullable=True)
    gender = Column(String(10), nullable=True)
    class_id = Column(Uuid, ForeignKey("classes.id"), nullable=True)
    department_id = Column(Uuid, ForeignKey("departments.id"), nullable=True)
    guardian_name = Column(String(255), nullable=True)
    guardian_phone = Column(Text, nullable=True)
    guardian_email = Column(String(255), nullable=True)
    address = Column(Text, nullable=True)
    academic_year = Column(String(20), nullable=True)
    has_left = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    school_class = relationship("SchoolClass", backref="students")
