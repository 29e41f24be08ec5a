# models/show.py
from sqlalchemy import Column, String, Text, Integer, DateTime, ForeignKey, Uuid
from sqlalchemy.orm import relationship
import uuid

from models.database import Base, JSONType, utc_now

class Show(Base):
    __tablename__ = "shows"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    ticketmaster_id = Column(String(100), unique=True)
    name = Column(String(500))
    date = Column(DateTime(timezone=True))
    ticket_url = Column(Text)
    artist_id = Column(Uuid(as_uuid=True), ForeignKey("artists.id"), nullable=False)
    venue_id = Column(Uuid(as_uuid=True), ForeignKey("venues.id"))
    popularity = Column(Integer, default=0)
    genre_ids = Column(JSONType, default=list)
    updated_at = Column(DateTime(timezone=True), default=utc_now)

    # Relacionamentos
    artist = relationship("Artist", back_populates="shows")
    venue = relationship("Venue", back_populates="shows")
    setlist = relationship("Setlist", back_populates="show", uselist=False)

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "ticketmaster_id": self.ticketmaster_id,
            "name": self.name,
            "date": self.date.isoformat() if self.date else None,
            "ticket_url": self.ticket_url,
            "artist_id": str(self.artist_id),
            "venue_id": str(self.venue_id) if self.venue_id else None,
            "popularity": self.popularity,
            "genre_ids": self.genre_ids or [],
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
