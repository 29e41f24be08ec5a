"""
Freshness decisions for cached rows.

A row is stale when it is missing, has no timestamp, is older than the
freshness window (24 hours), or lacks fields the pages need.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from models.sync_state import SyncState
from sync.requests import EntityType

logger = logging.getLogger(__name__)

STALE_AFTER = timedelta(hours=24)

# Bump when the reconcile logic changes enough that old rows should be resynced
CURRENT_SYNC_VERSION = 1

REQUIRED_FIELDS = {
    EntityType.ARTIST: ("image_url", "genres"),
    EntityType.VENUE: ("city", "country"),
    EntityType.SHOW: ("date", "venue_id"),
    EntityType.SETLIST: ("songs",),
    EntityType.SONG: ("name",),
}


@dataclass(frozen=True)
class Staleness:
    stale: bool
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.stale


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def last_updated_of(entity: Any) -> Optional[datetime]:
    for attr in ("last_updated", "updated_at"):
        value = getattr(entity, attr, None)
        if value is not None:
            return _as_utc(value)
    return None


def missing_fields(entity_type: EntityType, entity: Any) -> list[str]:
    missing = []
    for field in REQUIRED_FIELDS.get(entity_type, ()):
        if field == "songs" and field not in getattr(entity, "__dict__", {}):
            # Relationship not loaded; don't trigger a lazy load from here
            continue
        value = getattr(entity, field, None)
        if value is None or value == "" or value == [] or value == {}:
            missing.append(field)
    return missing


def is_stale(entity: Any, now: Optional[datetime] = None, max_age: timedelta = STALE_AFTER) -> bool:
    if entity is None:
        return True
    updated = last_updated_of(entity)
    if updated is None:
        return True
    now = _as_utc(now) if now else datetime.now(timezone.utc)
    return now - updated > max_age


def evaluate(
    entity_type: EntityType,
    entity: Any,
    now: Optional[datetime] = None,
    max_age: timedelta = STALE_AFTER,
) -> Staleness:
    if entity is None:
        return Staleness(True, "missing")
    if last_updated_of(entity) is None:
        return Staleness(True, "no timestamp")
    if is_stale(entity, now=now, max_age=max_age):
        return Staleness(True, "expired")
    missing = missing_fields(entity_type, entity)
    if missing:
        return Staleness(True, f"incomplete: {', '.join(missing)}")
    return Staleness(False)


class SyncStateTracker:
    """Records when an external id was last synced, keyed by entity type."""

    def __init__(self, session: AsyncSession, max_age: timedelta = STALE_AFTER):
        self.session = session
        self.max_age = max_age

    async def _get(self, entity_type: EntityType, external_id: str) -> Optional[SyncState]:
        stmt = select(SyncState).where(
            SyncState.entity_type == entity_type.value,
            SyncState.external_id == external_id,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_status(
        self,
        entity_type: EntityType,
        external_id: str,
        force: bool = False,
        now: Optional[datetime] = None,
    ) -> Staleness:
        if force:
            return Staleness(True, "forced")

        state = await self._get(entity_type, external_id)
        if state is None:
            return Staleness(True, "never synced")
        if state.sync_version < CURRENT_SYNC_VERSION:
            return Staleness(True, "sync version outdated")

        now = _as_utc(now) if now else datetime.now(timezone.utc)
        if now - _as_utc(state.last_synced) > self.max_age:
            return Staleness(True, "expired")
        return Staleness(False)

    async def mark_synced(self, entity_type: EntityType, external_id: str, now: Optional[datetime] = None) -> None:
        """Flush only; the caller owns the transaction."""
        now = now or datetime.now(timezone.utc)
        state = await self._get(entity_type, external_id)
        if state is None:
            state = SyncState(entity_type=entity_type.value, external_id=external_id)
            self.session.add(state)
        state.last_synced = now
        state.sync_version = CURRENT_SYNC_VERSION
        await self.session.flush()

    async def clear(self, entity_type: EntityType, external_id: str) -> None:
        await self.session.execute(
            delete(SyncState).where(
                SyncState.entity_type == entity_type.value,
                SyncState.external_id == external_id,
            )
        )
        await self.session.flush()
        logger.info(f"Cleared sync state for {entity_type.value} {external_id}")
