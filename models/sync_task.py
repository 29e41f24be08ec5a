# models/sync_task.py
from sqlalchemy import Column, String, Text, Integer, DateTime, ForeignKey, UniqueConstraint, CheckConstraint, Uuid
import uuid

from models.database import Base, JSONType, utc_now

class SyncTask(Base):
    __tablename__ = "sync_tasks"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    entity_type = Column(String(20), nullable=False)
    entity_id = Column(String(200), nullable=False)
    status = Column(String(20), nullable=False, default="pending")
    priority = Column(Integer, nullable=False, default=0)
    attempts = Column(Integer, nullable=False, default=0)
    error = Column(Text)
    result = Column(JSONType)
    worker_id = Column(String(100))
    parent_task_id = Column(Uuid(as_uuid=True), ForeignKey("sync_tasks.id", ondelete="SET NULL"))
    claimed_at = Column(DateTime(timezone=True))
    completed_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    __table_args__ = (
        UniqueConstraint("entity_type", "entity_id", name="unique_sync_task_entity"),
        CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed')",
            name="valid_sync_task_status"
        ),
        CheckConstraint(
            "entity_type IN ('artist', 'venue', 'show', 'setlist', 'song')",
            name="valid_sync_task_entity_type"
        ),
    )

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "status": self.status,
            "priority": self.priority,
            "attempts": self.attempts,
            "error": self.error,
            "result": self.result,
            "worker_id": self.worker_id,
            "parent_task_id": str(self.parent_task_id) if self.parent_task_id else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }
