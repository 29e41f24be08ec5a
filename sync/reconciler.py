"""
Local upsert reconciler.

Writes sync data into the local tables by natural key: look the row up,
overwrite it when present, insert it otherwise. Nested relations go through
the same rule in dependency order (artist -> venue -> show -> setlist ->
songs). ``reconcile`` runs the whole chain in one transaction.
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from models.artist import Artist
from models.database import utc_now
from models.setlist import Setlist, SetlistSong
from models.show import Show
from models.venue import Venue
from services.errors import NotFoundError, SyncFailure
from sync.requests import EntityType

logger = logging.getLogger(__name__)


# =============================================================================
# PAYLOADS
# =============================================================================

class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class ArtistData(_Payload):
    ticketmaster_id: Optional[str] = None
    spotify_id: Optional[str] = None
    name: str
    image_url: Optional[str] = None
    genres: List[str] = Field(default_factory=list)
    stored_songs: Optional[List[Dict[str, Any]]] = Field(
        default=None, validation_alias=AliasChoices("stored_songs", "stored_tracks")
    )


class VenueData(_Payload):
    ticketmaster_id: Optional[str] = None
    name: str
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    address: Optional[str] = None


class ShowData(_Payload):
    ticketmaster_id: Optional[str] = None
    name: Optional[str] = None
    date: Optional[datetime] = None
    ticket_url: Optional[str] = None
    popularity: Optional[int] = None
    genre_ids: List[str] = Field(default_factory=list)
    artist: Optional[ArtistData] = None
    artist_id: Optional[uuid.UUID] = None
    venue: Optional[VenueData] = None
    venue_id: Optional[uuid.UUID] = None


class SetlistSongData(_Payload):
    name: str
    position: Optional[int] = None


class SetlistData(_Payload):
    setlist_fm_id: Optional[str] = None
    show: Optional[ShowData] = None
    show_id: Optional[uuid.UUID] = None
    songs: List[SetlistSongData] = Field(default_factory=list)

    @field_validator("songs", mode="before")
    @classmethod
    def _names_as_songs(cls, value):
        if isinstance(value, list):
            return [{"name": item} if isinstance(item, str) else item for item in value]
        return value


class SongData(_Payload):
    """A catalog track, cached on its artist's stored_songs."""
    spotify_id: Optional[str] = None
    name: str
    duration_ms: Optional[int] = None
    popularity: Optional[int] = None
    artist: Optional[ArtistData] = None
    artist_id: Optional[uuid.UUID] = None


# =============================================================================
# RECONCILER
# =============================================================================

def _as_uuid(value: Any) -> Optional[uuid.UUID]:
    if value is None or isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


class Reconciler:
    """Lookup-then-write against the local tables. Methods flush, never commit."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.logger = logging.getLogger("reconciler")

    # -- lookups --------------------------------------------------------------

    async def _find_one(self, model, *criteria):
        result = await self.session.execute(select(model).where(*criteria))
        return result.scalar_one_or_none()

    async def find_artist(self, data: ArtistData, known_id: Any = None) -> Optional[Artist]:
        if data.ticketmaster_id:
            artist = await self._find_one(Artist, Artist.ticketmaster_id == data.ticketmaster_id)
            if artist:
                return artist
        if data.spotify_id:
            artist = await self._find_one(Artist, Artist.spotify_id == data.spotify_id)
            if artist:
                return artist
        known_id = _as_uuid(known_id)
        if known_id:
            return await self.session.get(Artist, known_id)
        return None

    # -- upserts --------------------------------------------------------------

    async def upsert_artist(self, data: ArtistData, known_id: Any = None) -> Tuple[Artist, bool]:
        artist = await self.find_artist(data, known_id)
        created = artist is None
        if created:
            artist = Artist(name=data.name)
            self.session.add(artist)

        artist.name = data.name
        # Never drop a natural key we already hold
        if data.ticketmaster_id:
            artist.ticketmaster_id = data.ticketmaster_id
        if data.spotify_id:
            artist.spotify_id = data.spotify_id
        if data.image_url is not None:
            artist.image_url = data.image_url
        if data.genres or created:
            artist.genres = list(data.genres)
        if data.stored_songs is not None:
            artist.stored_songs = list(data.stored_songs)
        elif created:
            artist.stored_songs = []
        artist.last_updated = utc_now()

        await self.session.flush()
        self.logger.info(f"{'Created' if created else 'Updated'} artist {artist.name} ({artist.id})")
        return artist, created

    async def upsert_venue(self, data: VenueData, known_id: Any = None) -> Tuple[Venue, bool]:
        venue = None
        if data.ticketmaster_id:
            venue = await self._find_one(Venue, Venue.ticketmaster_id == data.ticketmaster_id)
        if venue is None and _as_uuid(known_id):
            venue = await self.session.get(Venue, _as_uuid(known_id))

        created = venue is None
        if created:
            venue = Venue(name=data.name)
            self.session.add(venue)

        venue.name = data.name
        if data.ticketmaster_id:
            venue.ticketmaster_id = data.ticketmaster_id
        for attr in ("city", "state", "country", "address"):
            value = getattr(data, attr)
            if value is not None:
                setattr(venue, attr, value)
        venue.updated_at = utc_now()

        await self.session.flush()
        self.logger.info(f"{'Created' if created else 'Updated'} venue {venue.name} ({venue.id})")
        return venue, created

    async def upsert_show(
        self,
        data: ShowData,
        known_id: Any = None,
        artist: Optional[Artist] = None,
        venue: Optional[Venue] = None,
    ) -> Tuple[Show, bool]:
        show = None
        if data.ticketmaster_id:
            show = await self._find_one(Show, Show.ticketmaster_id == data.ticketmaster_id)
        if show is None and _as_uuid(known_id):
            show = await self.session.get(Show, _as_uuid(known_id))

        # Dependencies first
        if data.artist is not None:
            artist, _ = await self.upsert_artist(data.artist)
        if artist is None:
            artist_id = data.artist_id or (show.artist_id if show else None)
            if artist_id is None:
                raise SyncFailure(f"Show {data.ticketmaster_id or known_id} has no artist")
            artist = await self.session.get(Artist, artist_id)
            if artist is None:
                raise NotFoundError(f"Artist {artist_id} not found")

        if data.venue is not None:
            venue, _ = await self.upsert_venue(data.venue)
        elif venue is None and data.venue_id is not None:
            venue = await self.session.get(Venue, data.venue_id)

        created = show is None
        if created:
            show = Show(artist_id=artist.id)
            self.session.add(show)

        show.artist_id = artist.id
        if venue is not None:
            show.venue_id = venue.id
        if data.ticketmaster_id:
            show.ticketmaster_id = data.ticketmaster_id
        for attr in ("name", "date", "ticket_url", "popularity"):
            value = getattr(data, attr)
            if value is not None:
                setattr(show, attr, value)
        if data.genre_ids or created:
            show.genre_ids = list(data.genre_ids)
        show.updated_at = utc_now()

        await self.session.flush()
        self.logger.info(f"{'Created' if created else 'Updated'} show {show.ticketmaster_id or show.id}")
        return show, created

    async def upsert_setlist(
        self,
        data: SetlistData,
        known_id: Any = None,
        show: Optional[Show] = None,
    ) -> Tuple[Setlist, bool]:
        if data.show is not None:
            show, _ = await self.upsert_show(data.show)
        elif show is None and data.show_id is not None:
            show = await self.session.get(Show, data.show_id)

        setlist = None
        if data.setlist_fm_id:
            setlist = await self._find_one(Setlist, Setlist.setlist_fm_id == data.setlist_fm_id)
        if setlist is None and _as_uuid(known_id):
            setlist = await self.session.get(Setlist, _as_uuid(known_id))
        if setlist is None and show is not None:
            setlist = await self._find_one(Setlist, Setlist.show_id == show.id)

        if setlist is None and show is None:
            raise SyncFailure(f"Setlist {data.setlist_fm_id or known_id} has no show")

        created = setlist is None
        if created:
            setlist = Setlist(show_id=show.id, artist_id=show.artist_id)
            self.session.add(setlist)
        elif show is not None:
            setlist.show_id = show.id
            setlist.artist_id = show.artist_id
        if data.setlist_fm_id:
            setlist.setlist_fm_id = data.setlist_fm_id
        setlist.updated_at = utc_now()
        await self.session.flush()

        await self._reconcile_setlist_songs(setlist, data.songs)
        self.logger.info(
            f"{'Created' if created else 'Updated'} setlist {setlist.id} with {len(data.songs)} songs"
        )
        return setlist, created

    async def _reconcile_setlist_songs(self, setlist: Setlist, songs: List[SetlistSongData]) -> None:
        result = await self.session.execute(
            select(SetlistSong).where(SetlistSong.setlist_id == setlist.id)
        )
        existing = {song.name: song for song in result.scalars().all()}

        seen = set()
        for index, item in enumerate(songs):
            if item.name in seen:
                continue
            seen.add(item.name)
            position = item.position if item.position is not None else index + 1
            song = existing.get(item.name)
            if song is None:
                self.session.add(SetlistSong(setlist_id=setlist.id, name=item.name, position=position, vote_count=0))
            else:
                # vote_count is left alone
                song.position = position
        await self.session.flush()

    async def upsert_song(
        self,
        data: SongData,
        known_id: Any = None,
        owner_id: Any = None,
    ) -> Tuple[Artist, bool]:
        """Merge a track into its artist's stored_songs; returns the artist."""
        if data.artist is not None:
            artist, _ = await self.upsert_artist(data.artist)
        else:
            artist_id = data.artist_id or _as_uuid(owner_id) or _as_uuid(known_id)
            artist = await self.session.get(Artist, artist_id) if artist_id else None
            if artist is None:
                raise SyncFailure(f"Song {data.spotify_id or data.name} has no known artist")

        summary = {
            "spotify_id": data.spotify_id,
            "name": data.name,
            "duration_ms": data.duration_ms,
            "popularity": data.popularity,
        }
        songs = list(artist.stored_songs or [])
        key = data.spotify_id or data.name
        created = True
        for i, song in enumerate(songs):
            if (song.get("spotify_id") or song.get("name")) == key:
                songs[i] = summary
                created = False
                break
        else:
            songs.append(summary)

        # Reassign so the JSON column is marked dirty
        artist.stored_songs = songs
        artist.last_updated = utc_now()
        await self.session.flush()
        return artist, created

    # -- entry point ----------------------------------------------------------

    async def _reconcile_entity(
        self,
        entity_type: EntityType,
        data: Dict[str, Any],
        known_id: Any,
        skip_dependencies: bool,
        owner_id: Any = None,
    ) -> Tuple[Any, bool, Dict[str, int]]:
        related: Dict[str, int] = {}

        if entity_type is EntityType.ARTIST:
            row, created = await self.upsert_artist(ArtistData.model_validate(data), known_id)
            if not skip_dependencies:
                for show_data in data.get("shows") or []:
                    show_payload = ShowData.model_validate(show_data)
                    show_payload.artist = None
                    await self.upsert_show(show_payload, artist=row)
                    related["shows"] = related.get("shows", 0) + 1

        elif entity_type is EntityType.VENUE:
            row, created = await self.upsert_venue(VenueData.model_validate(data), known_id)
            if not skip_dependencies:
                for show_data in data.get("shows") or []:
                    show_payload = ShowData.model_validate(show_data)
                    show_payload.venue = None
                    await self.upsert_show(show_payload, venue=row)
                    related["shows"] = related.get("shows", 0) + 1

        elif entity_type is EntityType.SHOW:
            row, created = await self.upsert_show(ShowData.model_validate(data), known_id)
            setlist = data.get("setlist")
            if not skip_dependencies and isinstance(setlist, dict):
                setlist_payload = SetlistData.model_validate(setlist)
                setlist_payload.show = None
                await self.upsert_setlist(setlist_payload, show=row)
                related["setlists"] = 1

        elif entity_type is EntityType.SETLIST:
            row, created = await self.upsert_setlist(SetlistData.model_validate(data), known_id)
            related["songs"] = len(data.get("songs") or [])

        else:
            row, created = await self.upsert_song(SongData.model_validate(data), known_id, owner_id)

        return row, created, related

    async def reconcile(
        self,
        entity_type: EntityType,
        data: Dict[str, Any],
        known_id: Any = None,
        skip_dependencies: bool = False,
        owner_id: Any = None,
    ) -> Tuple[Any, bool, Dict[str, int]]:
        """Upsert ``data`` and its dependencies atomically. Returns (row, created, related counts).

        ``owner_id`` names the artist a song belongs to when the data doesn't.
        """
        data = unwrap(entity_type, data)
        try:
            row, created, related = await self._reconcile_entity(
                entity_type, data, known_id, skip_dependencies, owner_id
            )
            await self.session.commit()
        except PydanticValidationError as e:
            await self.session.rollback()
            self.logger.error(f"Malformed {entity_type.value} data: {e}")
            raise SyncFailure(f"Malformed {entity_type.value} data: {e.errors()[0]['msg']}")
        except Exception as e:
            await self.session.rollback()
            self.logger.error(f"Reconcile of {entity_type.value} {known_id} rolled back: {e}")
            raise
        return row, created, related


def unwrap(entity_type: EntityType, data: Dict[str, Any]) -> Dict[str, Any]:
    """Accept both ``{...entity}`` and ``{"<type>": {...entity}, "shows": [...]}``."""
    inner = data.get(entity_type.value)
    if isinstance(inner, dict):
        merged = dict(inner)
        for key, value in data.items():
            if key != entity_type.value and key not in merged:
                merged[key] = value
        return merged
    return data


# =============================================================================
# TICKETMASTER ADAPTER
# =============================================================================

def _first(items: Any) -> Dict[str, Any]:
    if isinstance(items, list) and items:
        return items[0] or {}
    return {}


def event_to_show_data(event: Dict[str, Any]) -> Dict[str, Any]:
    """Convert a Discovery API event into show data for ``Reconciler.reconcile``."""
    embedded = event.get("_embedded") or {}
    start = (event.get("dates") or {}).get("start") or {}

    date = start.get("dateTime")
    if not date and start.get("localDate"):
        date = start["localDate"] + "T" + (start.get("localTime") or "00:00:00")

    data: Dict[str, Any] = {
        "ticketmaster_id": event.get("id"),
        "name": event.get("name"),
        "date": date,
        "ticket_url": event.get("url"),
        "genre_ids": [
            c["genre"]["id"]
            for c in event.get("classifications") or []
            if (c.get("genre") or {}).get("id")
        ],
    }

    venue = _first(embedded.get("venues"))
    if venue.get("name"):
        data["venue"] = {
            "ticketmaster_id": venue.get("id"),
            "name": venue["name"],
            "city": (venue.get("city") or {}).get("name"),
            "state": (venue.get("state") or {}).get("name") or (venue.get("state") or {}).get("stateCode"),
            "country": (venue.get("country") or {}).get("name") or (venue.get("country") or {}).get("countryCode"),
            "address": (venue.get("address") or {}).get("line1"),
        }

    attraction = _first(embedded.get("attractions"))
    if attraction.get("name"):
        images = attraction.get("images") or []
        data["artist"] = {
            "ticketmaster_id": attraction.get("id"),
            "name": attraction["name"],
            "image_url": images[0].get("url") if images else None,
            "genres": [
                c["genre"]["name"]
                for c in attraction.get("classifications") or []
                if (c.get("genre") or {}).get("name")
            ],
        }

    return data
