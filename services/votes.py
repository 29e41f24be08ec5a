"""
Song voting.

Vote rows are unique per (user, song) and per (anonymous key, song).
Anonymous keys also hold a row in ``anonymous_voters`` whose vote_total is
claimed with one conditional upsert, so the cap holds under concurrency.
vote_count only moves through single UPDATE statements computed in SQL, in
the same transaction as the vote row, so concurrent voters can't lose
updates.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from models.anonymous_voter import AnonymousVoter
from models.database import utc_now
from models.setlist import SetlistSong
from models.vote import Vote
from services.errors import ConflictError, NotFoundError, ValidationError, VoteLimitError

logger = logging.getLogger(__name__)

ALREADY_VOTED = "Already voted for this song"
SONG_NOT_FOUND = "Song not found in setlist"


@dataclass
class VoteResult:
    song_id: uuid.UUID
    vote_count: int


def parse_song_id(song_id) -> uuid.UUID:
    if not song_id:
        raise ValidationError("Song ID is required")
    try:
        return uuid.UUID(str(song_id))
    except ValueError:
        # Not one of our ids, so there is no such song
        raise NotFoundError(SONG_NOT_FOUND)


async def _get_song(session: AsyncSession, song_id: uuid.UUID) -> SetlistSong:
    song = await session.get(SetlistSong, song_id)
    if song is None:
        raise NotFoundError(SONG_NOT_FOUND)
    return song


async def _bump(session: AsyncSession, song_id: uuid.UUID, delta: int) -> int:
    stmt = (
        update(SetlistSong)
        .where(SetlistSong.id == song_id)
        .values(vote_count=SetlistSong.vote_count + delta)
        .returning(SetlistSong.vote_count)
        .execution_options(synchronize_session=False)
    )
    if delta < 0:
        stmt = stmt.where(SetlistSong.vote_count > 0)
    result = await session.execute(stmt)
    count = result.scalar_one_or_none()
    if count is None:
        # Decrement at zero: nothing changed
        count = (await session.execute(
            select(SetlistSong.vote_count).where(SetlistSong.id == song_id)
        )).scalar_one()
    return count


async def _has_voted(
    session: AsyncSession,
    song_id: uuid.UUID,
    user_id: Optional[str] = None,
    anonymous_key: Optional[str] = None,
) -> bool:
    voter = Vote.user_id == user_id if user_id else Vote.anonymous_key == anonymous_key
    existing = await session.execute(select(Vote.id).where(voter, Vote.setlist_song_id == song_id))
    return existing.first() is not None


def _insert_for(session: AsyncSession):
    if session.get_bind().dialect.name == "postgresql":
        return postgresql.insert
    return sqlite.insert


async def _claim_anonymous_slot(session: AsyncSession, anonymous_key: str, limit: int) -> bool:
    """Count one more vote against ``anonymous_key`` unless it already has ``limit``.

    Concurrent claims for one key wait on its row lock, and the WHERE is
    re-checked against the committed total, so vote_total never passes limit.
    """
    if limit <= 0:
        return False
    stmt = _insert_for(session)(AnonymousVoter).values(anonymous_key=anonymous_key, vote_total=1)
    stmt = stmt.on_conflict_do_update(
        index_elements=[AnonymousVoter.anonymous_key],
        set_={"vote_total": AnonymousVoter.vote_total + 1, "updated_at": utc_now()},
        where=AnonymousVoter.vote_total < limit,
    ).returning(AnonymousVoter.vote_total)
    result = await session.execute(stmt)
    return result.scalar_one_or_none() is not None


async def cast_vote(
    session: AsyncSession,
    song_id,
    user_id: Optional[str] = None,
    anonymous_key: Optional[str] = None,
    anonymous_limit: int = 3,
) -> VoteResult:
    song_uuid = parse_song_id(song_id)
    await _get_song(session, song_uuid)

    if not user_id and not anonymous_key:
        raise ValidationError("Unable to identify anonymous voter")
    if await _has_voted(session, song_uuid, user_id=user_id, anonymous_key=anonymous_key):
        raise ConflictError(ALREADY_VOTED)

    if user_id:
        vote = Vote(setlist_song_id=song_uuid, user_id=user_id)
    else:
        if not await _claim_anonymous_slot(session, anonymous_key, anonymous_limit):
            await session.rollback()
            raise VoteLimitError(
                f"Anonymous voters can cast up to {anonymous_limit} votes. Sign in to keep voting.",
                extra={"limit": anonymous_limit},
            )
        vote = Vote(setlist_song_id=song_uuid, anonymous_key=anonymous_key)

    try:
        session.add(vote)
        await session.flush()
        count = await _bump(session, song_uuid, 1)
        await session.commit()
    except IntegrityError:
        # Unique constraint caught a concurrent duplicate
        await session.rollback()
        raise ConflictError(ALREADY_VOTED)

    logger.info(f"Vote recorded for song {song_uuid} ({'user ' + user_id if user_id else 'anonymous'})")
    return VoteResult(song_id=song_uuid, vote_count=count)


async def remove_vote(session: AsyncSession, song_id, user_id: str) -> VoteResult:
    song_uuid = parse_song_id(song_id)
    await _get_song(session, song_uuid)

    result = await session.execute(
        delete(Vote)
        .where(Vote.user_id == user_id, Vote.setlist_song_id == song_uuid)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await session.rollback()
        raise NotFoundError("No vote to remove for this song")

    count = await _bump(session, song_uuid, -1)
    await session.commit()
    logger.info(f"Vote removed for song {song_uuid} by user {user_id}")
    return VoteResult(song_id=song_uuid, vote_count=count)
