# models/venue.py
from sqlalchemy import Column, String, Text, DateTime, Uuid
from sqlalchemy.orm import relationship
import uuid

from models.database import Base, utc_now

class Venue(Base):
    __tablename__ = "venues"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    ticketmaster_id = Column(String(100), unique=True)
    name = Column(String(300), nullable=False)
    city = Column(String(200))
    state = Column(String(200))
    country = Column(String(200))
    address = Column(Text)
    updated_at = Column(DateTime(timezone=True), default=utc_now)

    shows = relationship("Show", back_populates="venue")

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "ticketmaster_id": self.ticketmaster_id,
            "name": self.name,
            "city": self.city,
            "state": self.state,
            "country": self.country,
            "address": self.address,
        }
