# models/vote.py
from sqlalchemy import Column, String, DateTime, ForeignKey, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship
import uuid

from models.database import Base, utc_now

class Vote(Base):
    __tablename__ = "votes"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    setlist_song_id = Column(Uuid(as_uuid=True), ForeignKey("setlist_songs.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(100))
    # Set instead of user_id for unauthenticated visitors
    anonymous_key = Column(String(100))
    created_at = Column(DateTime(timezone=True), default=utc_now)

    song = relationship("SetlistSong", back_populates="votes")

    __table_args__ = (
        UniqueConstraint("user_id", "setlist_song_id", name="unique_user_song_vote"),
        UniqueConstraint("anonymous_key", "setlist_song_id", name="unique_anonymous_song_vote"),
    )
