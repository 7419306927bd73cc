"""Term results per student and the per-subject marks hanging off them."""
import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from schoolrecords.db.session import Base


class Result(Base):
    """One result sheet per (student, term, academic_year)."""

    __tablename__ = "results"
    __table_args__ = (
        UniqueConstraint("student_id", "term", "academic_year", name="uq_result_student_term_year"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id = Column(Uuid, ForeignKey("students.id", ondelete="CASCADE"), nullable=False)
    class_id = Column(Uuid, ForeignKey("classes.id"), nullable=False)
    term = Column(String(10), nullable=False)  # first | second | third
    academic_year = Column(String(20), nullable=False)
    ca_type_id = Column(Uuid, ForeignKey("ca_types.id"), nullable=True)
    days_school_opened = Column(Integer, nullable=True)
    days_present = Column(Integer, nullable=True)
    days_absent = Column(Integer, nullable=True)
    admin_approved = Column(Boolean, nullable=False, default=False)
    teacher_approved = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    marks = relationship("SubjectMark", backref="result", cascade="all, delete-orphan")


class SubjectMark(Base):
    __tablename__ = "subject_marks"
    __table_args__ = (
        UniqueConstraint("result_id", "subject_id", name="uq_subject_mark_result_subject"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    result_id = Column(Uuid, ForeignKey("results.id", ondelete="CASCADE"), nullable=False)
    subject_id = Column(Uuid, ForeignKey("subjects.id"), nullable=False)
    ca1_score = Column(Float, nullable=True)
    ca2_score = Column(Float, nullable=True)
    ca3_score = Column(Float, nullable=True)
    ca4_score = Column(Float, nullable=True)
    exam_score = Column(Float, nullable=True)
    total_score = Column(Integer, nullable=True)
    grade = Column(String(10), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
