from sqlalchemy import JSON, Column, DateTime, Integer, String
from sqlalchemy.sql import func

from .db import Base


class Document(Base):
    """One JSON document in a named collection, versioned for compare-and-swap writes."""

    __tablename__ = "documents"

    collection = Column(String, primary_key=True)
    doc_id = Column(String, primary_key=True)
    data = Column(JSON, nullable=False)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )
