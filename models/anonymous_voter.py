# models/anonymous_voter.py
from sqlalchemy import Column, String, Integer, DateTime, CheckConstraint

from models.database import Base, utc_now

class AnonymousVoter(Base):
    __tablename__ = "anonymous_voters"

    # Client key (IP) of an unauthenticated visitor
    anonymous_key = Column(String(100), primary_key=True)
    vote_total = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    __table_args__ = (
        CheckConstraint("vote_total >= 0", name="non_negative_anonymous_votes"),
    )
