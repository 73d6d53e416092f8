"""
Defines the declarative base and a timestamped base model for SQLAlchemy ORM.

Every table gets ``created_at`` / ``updated_at`` columns managed
automatically. Primary keys are declared by the concrete models, since chat
identifiers are derived from their creation time rather than generated UUIDs.
"""

from datetime import datetime

from sqlalchemy import Column, DateTime
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class BaseModel(Base):
    """
    Base model class for database entities.

    :ivar created_at: Timestamp representing when the record was created.
    :type created_at: datetime
    :ivar updated_at: Timestamp representing when the record was last updated.
    :type updated_at: datetime
    """
    __abstract__ = True

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
