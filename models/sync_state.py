# models/sync_state.py
from sqlalchemy import Column, String, Integer, DateTime, UniqueConstraint, Uuid
import uuid

from models.database import Base, utc_now

class SyncState(Base):
    __tablename__ = "sync_states"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    entity_type = Column(String(20), nullable=False)
    external_id = Column(String(200), nullable=False)
    last_synced = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    sync_version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        UniqueConstraint("entity_type", "external_id", name="unique_sync_state_entity"),
    )
