# api/routes/sync.py
import logging

from fastapi import APIRouter, Depends
from sqlalchemy import func, select

from agents.sync_worker.agent import SyncWorkerAgent
from api.dependencies import get_sync_service, read_json_body, require_cron_token
from config.settings import Settings, get_settings
from models.setlist import Setlist
from models.show import Show
from services.errors import ValidationError
from sync.requests import EntityType, SyncRequest, build_sync_request
from sync.service import SyncService

router = APIRouter()
logger = logging.getLogger("api.sync")

BACKGROUND_OPERATIONS = ("start", "process", "status", "retry_failed")


@router.post("/sync")
async def sync_entity(body: dict = Depends(read_json_body), service: SyncService = Depends(get_sync_service)):
    request = SyncRequest.from_payload(body)
    logger.info(f"Sync requested: {request.entity_type.value} {request.identifier}")
    outcome = await service.sync_entity(request)
    return {"success": True, "data": outcome.data, "skipped": outcome.skipped}


@router.post("/admin/sync-test", dependencies=[Depends(require_cron_token)])
async def admin_sync_test(body: dict = Depends(read_json_body), service: SyncService = Depends(get_sync_service)):
    """Force a sync of one entity and report what was written."""
    request = SyncRequest.from_payload({**body, "options": {**(body.get("options") or {}), "forceRefresh": True}})
    outcome = await service.sync_entity(request)

    response = {"success": True, "data": outcome.data, "created": outcome.created, "related": outcome.related}
    if request.entity_type is EntityType.ARTIST:
        artist_id = outcome.row.id
        shows = (await service.session.execute(
            select(func.count()).select_from(Show).where(Show.artist_id == artist_id)
        )).scalar_one()
        setlists = (await service.session.execute(
            select(func.count()).select_from(Setlist).where(Setlist.artist_id == artist_id)
        )).scalar_one()
        response["counts"] = {"shows": shows, "setlists": setlists}
    return response


@router.post("/background-sync", dependencies=[Depends(require_cron_token)])
async def background_sync(
    body: dict = Depends(read_json_body),
    service: SyncService = Depends(get_sync_service),
    settings: Settings = Depends(get_settings),
):
    operation = body.get("operation")
    if operation not in BACKGROUND_OPERATIONS:
        raise ValidationError("Invalid operation", extra={"validOperations": list(BACKGROUND_OPERATIONS)})

    agent = SyncWorkerAgent(service.session, service, max_attempts=settings.sync_task_max_attempts)

    if operation == "start":
        request = build_sync_request(
            body.get("entityType"),
            entity_id=body.get("entityId"),
            ticketmaster_id=body.get("ticketmasterId"),
        )
        result = await agent.start(request.entity_type, request.identifier)
        return {"success": True, "operation": operation, "result": result}

    if operation == "process":
        limit = body.get("limit") or settings.sync_queue_batch_size
        if not isinstance(limit, int) or limit < 1:
            raise ValidationError("limit must be a positive integer")
        results = await agent.process_pending_tasks(limit)
        return {"success": True, "operation": operation, "processed": len(results), "results": results}

    if operation == "status":
        entity_type = EntityType.parse(body["entityType"]) if body.get("entityType") else None
        status = await agent.queue.status(entity_type, body.get("entityId"))
        return {"success": True, "operation": operation, **status}

    reset = await agent.queue.retry_failed()
    return {"success": True, "operation": operation, "reset": len(reset)}
