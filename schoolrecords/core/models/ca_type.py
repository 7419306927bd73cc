"""Assessment schemas (CA types): named component -> weight-percentage maps, e.g. {"ca": 30, "exam": 70}."""
import uuid
from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, String, Text, Uuid

from schoolrecords.db.session import Base


class CAType(Base):
    __tablename__ = "ca_types"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    configuration = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
