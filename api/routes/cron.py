# api/routes/cron.py
import logging
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends
from sqlalchemy import or_, select

from agents.sync_worker.agent import SyncWorkerAgent
from api.dependencies import get_sync_service, require_cron_token
from config.settings import Settings, get_settings
from models.artist import Artist
from models.show import Show
from sync.queue import SyncQueue
from sync.requests import EntityType
from sync.service import SyncService

router = APIRouter(dependencies=[Depends(require_cron_token)])
logger = logging.getLogger("api.cron")

REFRESH_BATCH = 50


@router.get("/process-queue")
async def process_queue(service: SyncService = Depends(get_sync_service), settings: Settings = Depends(get_settings)):
    agent = SyncWorkerAgent(service.session, service, max_attempts=settings.sync_task_max_attempts)
    results = await agent.process_pending_tasks(settings.sync_queue_batch_size)
    return {
        "success": True,
        "processed": len(results),
        "succeeded": sum(1 for r in results if r["success"]),
        "results": results,
    }


@router.get("/refresh-stale")
async def refresh_stale(service: SyncService = Depends(get_sync_service), settings: Settings = Depends(get_settings)):
    """Queue artists and shows whose cached rows have expired."""
    cutoff = datetime.now(timezone.utc) - timedelta(hours=settings.stale_after_hours)
    queue = SyncQueue(service.session)

    artists = (await service.session.execute(
        select(Artist)
        .where(or_(Artist.last_updated.is_(None), Artist.last_updated < cutoff))
        .order_by(Artist.last_updated.asc())
        .limit(REFRESH_BATCH)
    )).scalars().all()
    shows = (await service.session.execute(
        select(Show)
        .where(or_(Show.updated_at.is_(None), Show.updated_at < cutoff))
        .order_by(Show.updated_at.asc())
        .limit(REFRESH_BATCH)
    )).scalars().all()

    for artist in artists:
        await queue.enqueue(EntityType.ARTIST, artist.ticketmaster_id or str(artist.id))
    for show in shows:
        await queue.enqueue(EntityType.SHOW, show.ticketmaster_id or str(show.id))

    logger.info(f"Queued {len(artists)} stale artists and {len(shows)} stale shows")
    return {"success": True, "queued": {"artists": len(artists), "shows": len(shows)}}


@router.get("/retry-failed")
async def retry_failed(service: SyncService = Depends(get_sync_service)):
    reset = await SyncQueue(service.session).retry_failed()
    return {"success": True, "reset": len(reset)}
