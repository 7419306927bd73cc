import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, String, Text, Uuid

from schoolrecords.db.session import Base


class Department(Base):
    """Department master data (e.g. Primary, JHS, SHS Science)."""

    __tablename__ = "departments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
