# models/setlist.py
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, UniqueConstraint, CheckConstraint, Uuid
from sqlalchemy.orm import relationship
import uuid

from models.database import Base, utc_now

class Setlist(Base):
    __tablename__ = "setlists"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    show_id = Column(Uuid(as_uuid=True), ForeignKey("shows.id", ondelete="CASCADE"), unique=True, nullable=False)
    artist_id = Column(Uuid(as_uuid=True), ForeignKey("artists.id"), nullable=False)
    setlist_fm_id = Column(String(100), unique=True)
    updated_at = Column(DateTime(timezone=True), default=utc_now)

    show = relationship("Show", back_populates="setlist")
    artist = relationship("Artist", back_populates="setlists")
    songs = relationship(
        "SetlistSong",
        back_populates="setlist",
        cascade="all, delete-orphan",
        order_by="SetlistSong.position",
    )

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "show_id": str(self.show_id),
            "artist_id": str(self.artist_id),
            "setlist_fm_id": self.setlist_fm_id,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class SetlistSong(Base):
    __tablename__ = "setlist_songs"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    setlist_id = Column(Uuid(as_uuid=True), ForeignKey("setlists.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(500), nullable=False)
    position = Column(Integer, nullable=False, default=0)
    # Only changed through atomic UPDATE ... SET vote_count = vote_count +/- 1
    vote_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utc_now)

    setlist = relationship("Setlist", back_populates="songs")
    votes = relationship("Vote", back_populates="song", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("setlist_id", "name", name="unique_setlist_song_name"),
        CheckConstraint("vote_count >= 0", name="non_negative_votes"),
    )

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "setlist_id": str(self.setlist_id),
            "name": self.name,
            "position": self.position,
            "vote_count": self.vote_count,
        }
