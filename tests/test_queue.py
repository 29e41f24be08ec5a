from sqlalchemy import select

from models import SyncTask
from sync.queue import COMPLETED, FAILED, PENDING, PROCESSING, SyncQueue
from sync.requests import EntityType


class TestEnqueue:
    async def test_default_priorities(self, session):
        queue = SyncQueue(session)
        artist = await queue.enqueue(EntityType.ARTIST, "K1")
        song = await queue.enqueue(EntityType.SONG, "t1")
        assert artist.priority == 100
        assert song.priority == 60
        assert artist.status == PENDING

    async def test_requeue_resets_existing_task(self, session):
        queue = SyncQueue(session)
        task = await queue.enqueue(EntityType.SHOW, "G1")
        task.status = FAILED
        task.attempts = 3
        task.error = "boom"
        await session.commit()

        again = await queue.enqueue(EntityType.SHOW, "G1")

        assert again.id == task.id
        assert again.status == PENDING
        assert again.attempts == 0
        assert again.error is None
        rows = (await session.execute(select(SyncTask))).scalars().all()
        assert len(rows) == 1


class TestClaim:
    async def test_claims_highest_priority_first(self, session):
        queue = SyncQueue(session)
        await queue.enqueue(EntityType.SONG, "t1")
        await queue.enqueue(EntityType.ARTIST, "K1")
        await queue.enqueue(EntityType.SHOW, "G1")

        claimed = await queue.claim(2, "worker-a")

        assert [(t.entity_type, t.entity_id) for t in claimed] == [("artist", "K1"), ("show", "G1")]
        assert all(t.status == PROCESSING and t.worker_id == "worker-a" for t in claimed)

    async def test_claimed_tasks_are_not_claimed_again(self, session):
        queue = SyncQueue(session)
        await queue.enqueue(EntityType.ARTIST, "K1")

        assert len(await queue.claim(5, "worker-a")) == 1
        assert await queue.claim(5, "worker-b") == []

    async def test_enqueue_leaves_processing_task_alone(self, session):
        queue = SyncQueue(session)
        await queue.enqueue(EntityType.ARTIST, "K1")
        (task,) = await queue.claim(1, "worker-a")

        again = await queue.enqueue(EntityType.ARTIST, "K1")
        assert again.id == task.id
        assert again.status == PROCESSING


class TestCompletionAndRetry:
    async def test_complete(self, session):
        queue = SyncQueue(session)
        await queue.enqueue(EntityType.VENUE, "V1")
        (task,) = await queue.claim(1, "w")

        await queue.complete(task, {"success": True})

        assert task.status == COMPLETED
        assert task.result == {"success": True}
        assert task.completed_at is not None

    async def test_fail_requeues_with_lower_priority_until_max_attempts(self, session):
        queue = SyncQueue(session)
        await queue.enqueue(EntityType.ARTIST, "K1")

        (task,) = await queue.claim(1, "w")
        await queue.fail(task, "timeout", max_attempts=2)
        assert task.status == PENDING
        assert task.attempts == 1
        assert task.priority == 50
        assert task.error == "timeout"

        (task,) = await queue.claim(1, "w")
        await queue.fail(task, "timeout again", max_attempts=2)
        assert task.status == FAILED
        assert task.attempts == 2
        assert await queue.claim(1, "w") == []

    async def test_retry_failed_restores_priority(self, session):
        queue = SyncQueue(session)
        await queue.enqueue(EntityType.SHOW, "G1")
        (task,) = await queue.claim(1, "w")
        await queue.fail(task, "boom", max_attempts=1)

        reset = await queue.retry_failed()

        assert [t.id for t in reset] == [task.id]
        assert task.status == PENDING
        assert task.priority == 80
        assert task.attempts == 0

    async def test_status_counts(self, session):
        queue = SyncQueue(session)
        await queue.enqueue(EntityType.ARTIST, "K1")
        await queue.enqueue(EntityType.SHOW, "G1")
        (task,) = await queue.claim(1, "w")
        await queue.complete(task, {})

        status = await queue.status()
        assert status["counts"] == {PENDING: 1, PROCESSING: 0, COMPLETED: 1, FAILED: 0}
        assert len(status["tasks"]) == 2

        only_shows = await queue.status(entity_type=EntityType.SHOW)
        assert [t["entity_id"] for t in only_shows["tasks"]] == ["G1"]


class TestDependents:
    async def test_queues_children_from_sync_result(self, session):
        queue = SyncQueue(session)
        parent = await queue.enqueue(EntityType.ARTIST, "K1")

        queued = await queue.queue_dependents(parent, {
            "shows": [{"ticketmaster_id": "G1"}, {"id": "local-2"}, {"name": "no id"}, "junk"],
        })

        assert queued == 2
        children = (await session.execute(
            select(SyncTask).where(SyncTask.entity_type == "show").order_by(SyncTask.entity_id)
        )).scalars().all()
        assert [c.entity_id for c in children] == ["G1", "local-2"]
        assert all(c.parent_task_id == parent.id and c.priority == 80 for c in children)

    async def test_show_setlist_and_setlist_songs(self, session):
        queue = SyncQueue(session)
        show = await queue.enqueue(EntityType.SHOW, "G1")
        assert await queue.queue_dependents(show, {"setlist": {"setlist_fm_id": "fm1"}}) == 1

        setlist = await queue.enqueue(EntityType.SETLIST, "fm1")
        assert await queue.queue_dependents(setlist, {"songs": [{"spotify_id": "t1"}, {"spotify_id": "t2"}]}) == 2

    async def test_songs_have_no_dependents(self, session):
        queue = SyncQueue(session)
        song = await queue.enqueue(EntityType.SONG, "t1")
        assert await queue.queue_dependents(song, {"shows": [{"id": "x"}]}) == 0
