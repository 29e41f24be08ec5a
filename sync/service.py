"""
Sync orchestration: staleness check, request, invoke, reconcile.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, Optional

import httpx
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from models.artist import Artist
from models.setlist import Setlist
from models.show import Show
from models.venue import Venue
from services.errors import ConfigurationError, TheSetError
from services.ticketmaster import TicketmasterClient
from sync.invoker import SyncInvoker
from sync.reconciler import Reconciler, event_to_show_data
from sync.requests import EntityType, SyncRequest, build_sync_request
from sync.staleness import STALE_AFTER, SyncStateTracker, evaluate

logger = logging.getLogger(__name__)

LOCAL_MODELS = {
    EntityType.ARTIST: Artist,
    EntityType.VENUE: Venue,
    EntityType.SHOW: Show,
    EntityType.SETLIST: Setlist,
}


@dataclass
class SyncOutcome:
    success: bool
    entity_type: EntityType
    data: Dict[str, Any] = field(default_factory=dict)
    created: bool = False
    skipped: bool = False
    related: Dict[str, int] = field(default_factory=dict)
    # Raw function result, used by the queue to find dependents
    raw: Dict[str, Any] = field(default_factory=dict)
    row: Any = None

    def to_response(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "data": self.data,
            "created": self.created,
            "skipped": self.skipped,
            "related": self.related,
        }


def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(str(value))
        return True
    except ValueError:
        return False


# Which provider's id a non-UUID identifier belongs to
EXTERNAL_ID_KEYS = {
    EntityType.ARTIST: "ticketmaster_id",
    EntityType.VENUE: "ticketmaster_id",
    EntityType.SHOW: "ticketmaster_id",
    EntityType.SETLIST: "setlist_fm_id",
    EntityType.SONG: "spotify_id",
}


def request_for_identifier(
    entity_type: EntityType,
    identifier: str,
    force_refresh: bool = False,
    skip_dependencies: bool = False,
    artist_id: Any = None,
) -> SyncRequest:
    """Internal UUIDs go out as entityId, anything else under its provider's key."""
    key = "entity_id" if _is_uuid(identifier) else EXTERNAL_ID_KEYS[entity_type]
    return build_sync_request(
        entity_type,
        force_refresh=force_refresh,
        skip_dependencies=skip_dependencies,
        artist_id=artist_id,
        **{key: identifier},
    )


class SyncService:
    def __init__(
        self,
        session: AsyncSession,
        invoker: SyncInvoker,
        ticketmaster: Optional[TicketmasterClient] = None,
        max_age: timedelta = STALE_AFTER,
    ):
        self.session = session
        self.invoker = invoker
        self.ticketmaster = ticketmaster
        self.max_age = max_age
        self.reconciler = Reconciler(session)
        self.tracker = SyncStateTracker(session, max_age=max_age)

    async def find_local(self, request: SyncRequest) -> Optional[Any]:
        model = LOCAL_MODELS.get(request.entity_type)
        if model is None:
            return None
        if request.entity_id and _is_uuid(request.entity_id):
            row = await self.session.get(model, uuid.UUID(request.entity_id))
            if row is not None:
                return row
        if request.ticketmaster_id and hasattr(model, "ticketmaster_id"):
            result = await self.session.execute(
                select(model).where(model.ticketmaster_id == request.ticketmaster_id)
            )
            row = result.scalar_one_or_none()
            if row is not None:
                return row
        if request.spotify_id and model is Artist:
            result = await self.session.execute(select(Artist).where(Artist.spotify_id == request.spotify_id))
            return result.scalar_one_or_none()
        if request.setlist_fm_id and model is Setlist:
            result = await self.session.execute(select(Setlist).where(Setlist.setlist_fm_id == request.setlist_fm_id))
            return result.scalar_one_or_none()
        return None

    async def sync_entity(self, request: SyncRequest) -> SyncOutcome:
        kind = request.entity_type

        if not request.force_refresh:
            status = await self.tracker.get_status(kind, request.identifier)
            if not status.stale:
                local = await self.find_local(request)
                if local is not None:
                    logger.info(f"{kind.value} {request.identifier} is fresh, skipping sync")
                    return SyncOutcome(True, kind, data=local.to_dict(), skipped=True, row=local)

        result = await self.invoker.invoke(request)
        row, created, related = await self.reconciler.reconcile(
            kind,
            result.data,
            known_id=request.entity_id,
            skip_dependencies=request.skip_dependencies,
            owner_id=request.artist_id,
        )

        await self.tracker.mark_synced(kind, request.identifier)
        await self.session.commit()

        logger.info(f"Synced {kind.value} {request.identifier} ({'created' if created else 'updated'})")
        return SyncOutcome(
            True,
            kind,
            data=row.to_dict(),
            created=created,
            related=related,
            raw=result.data,
            row=row,
        )

    async def refresh_artist(self, artist: Artist) -> Artist:
        """Return ``artist`` refreshed through the sync function when stale."""
        staleness = evaluate(EntityType.ARTIST, artist, max_age=self.max_age)
        if not staleness.stale:
            return artist

        logger.info(f"Artist {artist.id} is stale ({staleness.reason}), refreshing")
        request = build_sync_request(
            EntityType.ARTIST,
            entity_id=str(artist.id),
            ticketmaster_id=artist.ticketmaster_id,
            spotify_id=artist.spotify_id,
            force_refresh=True,
        )
        try:
            outcome = await self.sync_entity(request)
        except (TheSetError, httpx.HTTPError, SQLAlchemyError) as e:
            logger.warning(f"Refresh of artist {artist.id} failed, serving cached row: {e}")
            # A rolled-back reconcile expires loaded rows
            await self.session.refresh(artist)
            return artist
        return outcome.row

    async def refresh_show(self, show: Show) -> Show:
        """Return ``show`` refreshed straight from Ticketmaster when stale."""
        staleness = evaluate(EntityType.SHOW, show, max_age=self.max_age)
        if not staleness.stale:
            return show
        if not show.ticketmaster_id or self.ticketmaster is None:
            return show

        logger.info(f"Show {show.id} is stale ({staleness.reason}), refreshing from Ticketmaster")
        try:
            event = await self.ticketmaster.get_event(show.ticketmaster_id)
            data = event_to_show_data(event)
            # Keep the show's artist; only event-level fields and venue are refreshed
            data.pop("artist", None)
            row, _, _ = await self.reconciler.reconcile(EntityType.SHOW, data, known_id=show.id)
        except (TheSetError, httpx.HTTPError, SQLAlchemyError) as e:
            logger.warning(f"Refresh of show {show.id} failed, serving cached row: {e}")
            await self.session.refresh(show)
            return show
        return row

    async def import_show(self, ticketmaster_id: str) -> SyncOutcome:
        """Fetch one event directly from Ticketmaster and reconcile it."""
        if self.ticketmaster is None:
            raise ConfigurationError("Ticketmaster client is not configured")

        event = await self.ticketmaster.get_event(ticketmaster_id)
        row, created, related = await self.reconciler.reconcile(EntityType.SHOW, event_to_show_data(event))
        await self.tracker.mark_synced(EntityType.SHOW, ticketmaster_id)
        await self.session.commit()
        return SyncOutcome(True, EntityType.SHOW, data=row.to_dict(), created=created, related=related, row=row)
