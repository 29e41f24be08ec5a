"""
The Sync Worker - drains the background sync queue
"""

import asyncio
import logging
import socket
import uuid
from typing import Any, Dict, List

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from models.sync_task import SyncTask
from sync.queue import SyncQueue
from sync.requests import EntityType
from sync.service import SyncService, request_for_identifier

logger = logging.getLogger(__name__)


# =============================================================================
# SYNC WORKER
# =============================================================================

class SyncWorkerAgent:
    """Claims pending sync tasks and runs them through the sync service"""

    def __init__(self, session: AsyncSession, sync_service: SyncService, max_attempts: int = None):
        self.session = session
        self.sync_service = sync_service
        self.queue = SyncQueue(session)
        self.logger = logging.getLogger("sync_worker")
        self.worker_id = f"{socket.gethostname()}-{uuid.uuid4().hex[:8]}"
        self.max_attempts = max_attempts or settings.sync_task_max_attempts

    async def process_pending_tasks(self, max_tasks: int = 5) -> List[Dict[str, Any]]:
        """Claim and process up to max_tasks pending tasks, in priority order"""
        self.logger.info(f"Processing up to {max_tasks} pending tasks...")

        tasks = await self.queue.claim(max_tasks, self.worker_id)
        self.logger.info(f"Found {len(tasks)} tasks to process")

        results = []
        for task in tasks:
            results.append(await self.process_task(task))

        succeeded = sum(1 for r in results if r["success"])
        self.logger.info(f"Processed {succeeded}/{len(tasks)} tasks")
        return results

    async def process_task(self, task: SyncTask) -> Dict[str, Any]:
        """Sync one claimed task; dependents are queued rather than synced inline"""
        # Read before the sync runs; a rollback expires the task
        task_id = str(task.id)
        entity_id = task.entity_id
        entity_type = EntityType(task.entity_type)
        self.logger.info(f"Processing task: {entity_type.value} {entity_id}")

        try:
            owner_id = None
            if entity_type is EntityType.SONG:
                owner_id = await self.queue.song_owner(task)
            request = request_for_identifier(
                entity_type,
                entity_id,
                force_refresh=True,
                skip_dependencies=True,
                artist_id=owner_id,
            )
            outcome = await self.sync_service.sync_entity(request)
            # Children first, so a task is only completed once they are queued
            queued = await self.queue.queue_dependents(task, outcome.raw)
            await self.queue.complete(task, outcome.to_response())
        except Exception as e:
            self.logger.error(f"Error processing task {task_id}: {e}")
            await self.session.rollback()
            await self.queue.fail(task, str(e), max_attempts=self.max_attempts)
            return {"taskId": task_id, "success": False, "error": str(e)}

        self.logger.info(f"✅ Synced {entity_type.value} {entity_id}, queued {queued} dependents")
        return {"taskId": task_id, "success": True, "result": outcome.to_response(), "queued": queued}

    async def start(self, entity_type: EntityType, entity_id: str) -> Dict[str, Any]:
        """Queue a task for one entity and process it right away"""
        task = await self.queue.enqueue(entity_type, entity_id)
        claimed = [t for t in await self.queue.claim(1, self.worker_id) if t.id == task.id]
        if not claimed:
            # A higher-priority task was claimed instead; leave ours queued
            return {"taskId": str(task.id), "success": True, "queued": True}
        return await self.process_task(claimed[0])


# =============================================================================
# CLI
# =============================================================================

async def main():
    """CLI entry point"""
    import argparse

    import httpx

    from models.database import AsyncSessionLocal
    from services.ticketmaster import TicketmasterClient
    from sync.invoker import SyncInvoker

    parser = argparse.ArgumentParser(description="Sync Worker - background sync queue")
    parser.add_argument('--max-tasks', type=int, default=settings.sync_queue_batch_size, help='Maximum tasks to process')
    parser.add_argument('--retry-failed', action='store_true', help='Reset failed tasks to pending first')
    parser.add_argument('--log-level', default=settings.log_level)

    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    async with httpx.AsyncClient() as http_client, AsyncSessionLocal() as session:
        invoker = SyncInvoker(
            http_client,
            settings.supabase_url,
            settings.supabase_service_role_key,
            function_name=settings.sync_function_name,
            timeout=settings.sync_timeout_seconds,
        )
        ticketmaster = TicketmasterClient(
            http_client,
            settings.ticketmaster_api_key,
            timeout=settings.ticketmaster_timeout_seconds,
        )
        agent = SyncWorkerAgent(session, SyncService(session, invoker, ticketmaster))

        if args.retry_failed:
            reset = await agent.queue.retry_failed()
            print(f"↩️  Reset {len(reset)} failed tasks")

        results = await agent.process_pending_tasks(args.max_tasks)
        succeeded = sum(1 for r in results if r["success"])
        print(f"✅ Processed {succeeded}/{len(results)} tasks")


if __name__ == "__main__":
    asyncio.run(main())
