"""
Task model: lifecycle record for one worker invocation.

pending → running → {completed | failed}; completed_at is set exactly when the
status becomes terminal.
"""
import uuid

from sqlalchemy import Column, Text, DateTime, JSON
from sqlalchemy.sql import func

from leadpipe.database import Base


class Task(Base):
    __tablename__ = 'tasks'

    id = Column(Text, primary_key=True, default=lambda: str(uuid.uuid4()))
    type = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default='pending')
    batch_ref = Column(Text, nullable=True)
    external_handle = Column(Text, nullable=True)
    error_message = Column(Text, nullable=True)
    # "metadata" is reserved on declarative classes
    meta = Column('metadata', JSON, nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'type': self.type,
            'status': self.status,
            'batchRef': self.batch_ref,
            'externalHandle': self.external_handle,
            'errorMessage': self.error_message,
            'metadata': self.meta or {},
            'startedAt': self.started_at.isoformat() if self.started_at else None,
            'completedAt': self.completed_at.isoformat() if self.completed_at else None,
        }
