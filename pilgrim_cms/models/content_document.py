"""Generic document-store table for the local backend."""

from sqlalchemy import Column, String, DateTime, JSON, PrimaryKeyConstraint
from sqlalchemy.sql import func
from ..database import Base


class ContentDocument(Base):
    """One record addressed by (collection, doc_id)."""

    __tablename__ = "content_documents"
    __table_args__ = (
        PrimaryKeyConstraint("collection", "doc_id"),
    )

    collection = Column(String(255), nullable=False)
    doc_id = Column(String(255), nullable=False)  # folder id as a string

    # Whole record as written by the commit protocol
    data = Column(JSON, nullable=False, default=dict)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
