##### START OF FILE ######
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, DateTime, JSON, Index

from coursetrack.database import Base


def utcnow():
    return datetime.now(timezone.utc)


class Document(Base):
    """One JSON record of a collection (courses, enrollments, attendance_sessions, ...)"""
    __tablename__ = 'documents'
    collection = Column(String(64), primary_key=True)
    doc_id = Column(String(255), primary_key=True)
    data = Column(JSON, nullable=False)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (Index('ix_documents_collection', 'collection'),)
###### END OF FILE ########
