# api/routes/entities.py
import uuid

from fastapi import APIRouter, Depends
from sqlalchemy import select

from api.dependencies import get_sync_service, read_json_body
from models.artist import Artist
from models.setlist import Setlist, SetlistSong
from models.show import Show
from services.errors import NotFoundError, ValidationError
from sync.service import SyncService

router = APIRouter()


async def _load(service: SyncService, model, identifier: str, label: str):
    """Find a row by internal UUID or Ticketmaster id."""
    try:
        row = await service.session.get(model, uuid.UUID(identifier))
    except ValueError:
        result = await service.session.execute(select(model).where(model.ticketmaster_id == identifier))
        row = result.scalar_one_or_none()
    if row is None:
        raise NotFoundError(f"{label} not found")
    return row


@router.get("/artists/{artist_id}")
async def get_artist(artist_id: str, service: SyncService = Depends(get_sync_service)):
    artist = await _load(service, Artist, artist_id, "Artist")
    artist = await service.refresh_artist(artist)
    return {"artist": artist.to_dict()}


@router.get("/shows/{show_id}")
async def get_show(show_id: str, service: SyncService = Depends(get_sync_service)):
    show = await _load(service, Show, show_id, "Show")
    show = await service.refresh_show(show)
    return {"show": show.to_dict()}


@router.get("/shows/{show_id}/setlist")
async def get_show_setlist(show_id: str, service: SyncService = Depends(get_sync_service)):
    """Setlist songs, most voted first."""
    show = await _load(service, Show, show_id, "Show")
    result = await service.session.execute(select(Setlist).where(Setlist.show_id == show.id))
    setlist = result.scalar_one_or_none()
    if setlist is None:
        return {"show_id": str(show.id), "setlist": None, "songs": []}

    songs = await service.session.execute(
        select(SetlistSong)
        .where(SetlistSong.setlist_id == setlist.id)
        .order_by(SetlistSong.vote_count.desc(), SetlistSong.position.asc())
        .execution_options(populate_existing=True)
    )
    return {
        "show_id": str(show.id),
        "setlist": setlist.to_dict(),
        "songs": [song.to_dict() for song in songs.scalars().all()],
    }


@router.post("/shows/import")
async def import_show(body: dict = Depends(read_json_body), service: SyncService = Depends(get_sync_service)):
    ticketmaster_id = body.get("ticketmasterId")
    if not ticketmaster_id:
        raise ValidationError("Missing required field: ticketmasterId")
    outcome = await service.import_show(str(ticketmaster_id))
    return {"success": True, "show": outcome.data, "created": outcome.created}
