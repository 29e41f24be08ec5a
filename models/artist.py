# models/artist.py
from sqlalchemy import Column, String, Text, DateTime, Uuid
from sqlalchemy.orm import relationship
import uuid

from models.database import Base, JSONType, utc_now

class Artist(Base):
    __tablename__ = "artists"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    ticketmaster_id = Column(String(100), unique=True)
    spotify_id = Column(String(100), unique=True)
    name = Column(String(300), nullable=False)
    image_url = Column(Text)
    genres = Column(JSONType, default=list)
    # Cached track summaries: [{"spotify_id", "name", "duration_ms", "popularity"}]
    stored_songs = Column(JSONType, default=list)
    last_updated = Column(DateTime(timezone=True), default=utc_now)
    created_at = Column(DateTime(timezone=True), default=utc_now)

    shows = relationship("Show", back_populates="artist")
    setlists = relationship("Setlist", back_populates="artist")

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "ticketmaster_id": self.ticketmaster_id,
            "spotify_id": self.spotify_id,
            "name": self.name,
            "image_url": self.image_url,
            "genres": self.genres or [],
            "stored_songs": self.stored_songs or [],
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
        }
