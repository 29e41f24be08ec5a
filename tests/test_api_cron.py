from datetime import timedelta

from sqlalchemy import select, update

from conftest import sync_response
from models import Artist, Show, SyncTask, utc_now


class TestCronAuth:
    async def test_missing_token(self, client):
        response = await client.get("/api/cron/process-queue")
        assert response.status_code == 401
        assert response.json() == {"success": False, "error": "Unauthorized"}

    async def test_wrong_token(self, client):
        response = await client.get("/api/cron/retry-failed", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401

    async def test_near_miss_tokens(self, client):
        for value in ("Bearer cron-secre", "Bearer cron-secret2", "cron-secret", "bearer cron-secret"):
            response = await client.get("/api/cron/retry-failed", headers={"Authorization": value})
            assert response.status_code == 401, value

    async def test_non_ascii_token_is_rejected_not_an_error(self, client):
        headers = {"Authorization": "Bearer cron-secr\u00e9t".encode("latin-1")}
        response = await client.get("/api/cron/retry-failed", headers=headers)
        assert response.status_code == 401

    async def test_unset_secret_rejects_everyone(self, client, test_settings):
        test_settings.cron_secret_token = None
        response = await client.get("/api/cron/refresh-stale", headers={"Authorization": "Bearer None"})
        assert response.status_code == 401


class TestCronJobs:
    async def test_refresh_stale_queues_expired_rows(self, client, session, songs, cron_headers):
        await session.execute(update(Artist).values(last_updated=utc_now() - timedelta(days=2)))
        await session.commit()

        response = await client.get("/api/cron/refresh-stale", headers=cron_headers)

        assert response.status_code == 200
        # The show was just created, only the artist is stale
        assert response.json()["queued"] == {"artists": 1, "shows": 0}
        task = (await session.execute(select(SyncTask))).scalar_one()
        assert (task.entity_type, task.entity_id, task.priority) == ("artist", "K1", 100)

    async def test_process_queue(self, client, session, songs, cron_headers, upstream):
        await session.execute(update(Show).values(updated_at=utc_now() - timedelta(days=2)))
        await session.commit()
        await client.get("/api/cron/refresh-stale", headers=cron_headers)
        upstream.handler = lambda request: sync_response({"ticketmaster_id": "G1", "name": "Radiohead Live (updated)"})

        response = await client.get("/api/cron/process-queue", headers=cron_headers)

        assert response.status_code == 200
        assert response.json()["processed"] == 1
        assert response.json()["succeeded"] == 1
        name = (await session.execute(select(Show.name).where(Show.ticketmaster_id == "G1"))).scalar_one()
        assert name == "Radiohead Live (updated)"

    async def test_retry_failed(self, client, session, cron_headers):
        session.add(SyncTask(entity_type="venue", entity_id="V1", status="failed", priority=40, attempts=3))
        await session.commit()

        response = await client.get("/api/cron/retry-failed", headers=cron_headers)

        assert response.json() == {"success": True, "reset": 1}
        status = (await session.execute(select(SyncTask.status))).scalar_one()
        assert status == "pending"
