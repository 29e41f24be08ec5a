"""
Database-backed background sync queue.

Rows in ``sync_tasks`` move pending -> processing -> completed | failed.
Workers claim rows with ``FOR UPDATE SKIP LOCKED`` and a conditional status
update, so two overlapping cron runs never process the same task.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from models.setlist import Setlist
from models.sync_task import SyncTask
from sync.requests import EntityType

logger = logging.getLogger(__name__)

PENDING = "pending"
PROCESSING = "processing"
COMPLETED = "completed"
FAILED = "failed"

ENTITY_PRIORITIES = {
    EntityType.ARTIST: 100,
    EntityType.VENUE: 90,
    EntityType.SHOW: 80,
    EntityType.SETLIST: 70,
    EntityType.SONG: 60,
}

# Subtracted from a task's priority each time it is sent back for retry
RETRY_PRIORITY_PENALTY = 50

# Which lists in a sync result name the children of each entity type
DEPENDENTS = {
    EntityType.ARTIST: (("shows", EntityType.SHOW),),
    EntityType.VENUE: (("shows", EntityType.SHOW),),
    EntityType.SHOW: (("setlists", EntityType.SETLIST), ("setlist", EntityType.SETLIST)),
    EntityType.SETLIST: (("songs", EntityType.SONG),),
    EntityType.SONG: (),
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _dependent_id(entity_type: EntityType, item: Any) -> Optional[str]:
    if not isinstance(item, dict):
        return None
    if entity_type is EntityType.SETLIST:
        keys = ("setlist_fm_id", "id")
    elif entity_type is EntityType.SONG:
        keys = ("spotify_id", "id")
    else:
        keys = ("ticketmaster_id", "id")
    for key in keys:
        if item.get(key):
            return str(item[key])
    return None


class SyncQueue:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def _find(self, entity_type: EntityType, entity_id: str) -> Optional[SyncTask]:
        result = await self.session.execute(
            select(SyncTask).where(
                SyncTask.entity_type == entity_type.value,
                SyncTask.entity_id == entity_id,
            )
        )
        return result.scalar_one_or_none()

    async def _upsert(
        self,
        entity_type: EntityType,
        entity_id: str,
        priority: Optional[int],
        parent_task_id: Optional[uuid.UUID],
    ) -> SyncTask:
        if priority is None:
            priority = ENTITY_PRIORITIES[entity_type]

        task = await self._find(entity_type, entity_id)
        if task is None:
            task = SyncTask(
                entity_type=entity_type.value,
                entity_id=entity_id,
                status=PENDING,
                priority=priority,
                attempts=0,
                parent_task_id=parent_task_id,
            )
            self.session.add(task)
        elif task.status != PROCESSING:
            task.status = PENDING
            task.priority = priority
            task.attempts = 0
            task.error = None
            task.worker_id = None
            if parent_task_id is not None:
                task.parent_task_id = parent_task_id
        await self.session.flush()
        return task

    async def enqueue(
        self,
        entity_type: EntityType,
        entity_id: str,
        priority: Optional[int] = None,
        parent_task_id: Optional[uuid.UUID] = None,
    ) -> SyncTask:
        """Add a task, or reset the existing one for this entity back to pending."""
        try:
            task = await self._upsert(entity_type, entity_id, priority, parent_task_id)
            await self.session.commit()
        except IntegrityError:
            # Lost an insert race with another enqueue; the row exists now
            await self.session.rollback()
            task = await self._upsert(entity_type, entity_id, priority, parent_task_id)
            await self.session.commit()
        logger.info(f"Queued {entity_type.value} {entity_id} (priority {task.priority})")
        return task

    async def claim(self, limit: int, worker_id: str) -> List[SyncTask]:
        """Claim up to ``limit`` pending tasks, highest priority then oldest first."""
        stmt = (
            select(SyncTask.id)
            .where(SyncTask.status == PENDING)
            .order_by(SyncTask.priority.desc(), SyncTask.created_at.asc())
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        candidate_ids = (await self.session.execute(stmt)).scalars().all()

        now = _now()
        claimed = []
        for task_id in candidate_ids:
            result = await self.session.execute(
                update(SyncTask)
                .where(SyncTask.id == task_id, SyncTask.status == PENDING)
                .values(status=PROCESSING, worker_id=worker_id, claimed_at=now, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                claimed.append(task_id)
        await self.session.commit()

        if not claimed:
            return []

        result = await self.session.execute(
            select(SyncTask)
            .where(SyncTask.id.in_(claimed))
            .order_by(SyncTask.priority.desc(), SyncTask.created_at.asc())
            .execution_options(populate_existing=True)
        )
        tasks = list(result.scalars().all())
        logger.info(f"Worker {worker_id} claimed {len(tasks)} tasks")
        return tasks

    async def complete(self, task: SyncTask, result: Optional[Dict[str, Any]] = None) -> None:
        now = _now()
        task.status = COMPLETED
        task.result = result
        task.error = None
        task.completed_at = now
        task.updated_at = now
        await self.session.commit()

    async def fail(self, task: SyncTask, error: str, max_attempts: int = 3) -> None:
        """Send the task back to pending with lower priority, or mark it failed."""
        # The failed sync may have rolled the session back
        await self.session.refresh(task)
        task.attempts = (task.attempts or 0) + 1
        task.error = error
        task.worker_id = None
        task.updated_at = _now()
        if task.attempts < max_attempts:
            task.status = PENDING
            task.priority = max(0, task.priority - RETRY_PRIORITY_PENALTY)
            logger.warning(
                f"Task {task.entity_type} {task.entity_id} failed (attempt {task.attempts}/{max_attempts}), requeued: {error}"
            )
        else:
            task.status = FAILED
            logger.error(f"Giving up on task {task.entity_type} {task.entity_id} after {task.attempts} attempts: {error}")
        await self.session.commit()

    async def retry_failed(self) -> List[SyncTask]:
        result = await self.session.execute(
            select(SyncTask).where(SyncTask.status == FAILED).order_by(SyncTask.updated_at.asc())
        )
        tasks = list(result.scalars().all())
        now = _now()
        for task in tasks:
            task.status = PENDING
            task.attempts = 0
            task.error = None
            task.priority = ENTITY_PRIORITIES.get(EntityType(task.entity_type), 0)
            task.updated_at = now
        await self.session.commit()
        logger.info(f"Reset {len(tasks)} failed tasks to pending")
        return tasks

    async def status(
        self,
        entity_type: Optional[EntityType] = None,
        entity_id: Optional[str] = None,
        limit: int = 100,
    ) -> Dict[str, Any]:
        stmt = select(SyncTask)
        if entity_type is not None:
            stmt = stmt.where(SyncTask.entity_type == entity_type.value)
        if entity_id is not None:
            stmt = stmt.where(SyncTask.entity_id == entity_id)
        result = await self.session.execute(stmt.order_by(SyncTask.updated_at.desc()).limit(limit))
        tasks = result.scalars().all()

        counts_result = await self.session.execute(
            select(SyncTask.status, func.count()).group_by(SyncTask.status)
        )
        counts = {PENDING: 0, PROCESSING: 0, COMPLETED: 0, FAILED: 0}
        counts.update({row[0]: row[1] for row in counts_result.all()})

        return {"counts": counts, "tasks": [task.to_dict() for task in tasks]}

    async def song_owner(self, task: SyncTask) -> Optional[uuid.UUID]:
        """Artist id of the setlist a song task was queued from, if it is known locally."""
        if task.parent_task_id is None:
            return None
        parent = await self.session.get(SyncTask, task.parent_task_id)
        if parent is None or parent.entity_type != EntityType.SETLIST.value:
            return None
        try:
            criteria = Setlist.id == uuid.UUID(parent.entity_id)
        except ValueError:
            criteria = Setlist.setlist_fm_id == parent.entity_id
        result = await self.session.execute(select(Setlist.artist_id).where(criteria))
        return result.scalar_one_or_none()

    async def queue_dependents(self, task: SyncTask, data: Dict[str, Any]) -> int:
        """Queue the children named in a task's sync result."""
        queued = 0
        for key, child_type in DEPENDENTS[EntityType(task.entity_type)]:
            items = data.get(key)
            if isinstance(items, dict):
                items = [items]
            for item in items or []:
                child_id = _dependent_id(child_type, item)
                if child_id is None:
                    continue
                await self._upsert(child_type, child_id, None, task.id)
                queued += 1
        if queued:
            await self.session.commit()
            logger.info(f"Queued {queued} dependent entities of {task.entity_type} {task.entity_id}")
        return queued
