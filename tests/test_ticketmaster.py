import httpx
import pytest

from services.errors import UpstreamError
from services.ticketmaster import TicketmasterClient


@pytest.fixture
def ticketmaster(http_client):
    return TicketmasterClient(http_client, "tm-key", retries=3, retry_delay=0)


class TestGetEvent:
    """Single-event fetches retry transient failures only."""

    async def test_not_found_is_not_retried(self, ticketmaster, upstream):
        upstream.handler = lambda request: httpx.Response(404, json={"fault": "not found"})

        with pytest.raises(UpstreamError) as exc:
            await ticketmaster.get_event("deleted")

        assert exc.value.status_code == 404
        assert len(upstream.requests) == 1

    async def test_server_error_is_retried_until_success(self, ticketmaster, upstream):
        answers = [httpx.Response(503, json={"fault": "busy"}), httpx.Response(200, json={"id": "G1"})]
        upstream.handler = lambda request: answers.pop(0)

        event = await ticketmaster.get_event("G1")

        assert event == {"id": "G1"}
        assert len(upstream.requests) == 2

    async def test_rate_limit_is_retried(self, ticketmaster, upstream):
        answers = [httpx.Response(429, json={"fault": "slow down"}), httpx.Response(200, json={"id": "G1"})]
        upstream.handler = lambda request: answers.pop(0)

        assert (await ticketmaster.get_event("G1"))["id"] == "G1"

    async def test_gives_up_after_retries(self, ticketmaster, upstream):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        upstream.handler = handler

        with pytest.raises(httpx.ConnectError):
            await ticketmaster.get_event("G1")

        assert len(upstream.requests) == 4

    async def test_non_json_body_is_an_upstream_error(self, ticketmaster, upstream):
        upstream.handler = lambda request: httpx.Response(200, text="<html>maintenance</html>")

        with pytest.raises(UpstreamError) as exc:
            await ticketmaster.get_event("G1")

        assert exc.value.message == "Ticketmaster API returned an invalid response"
        assert "maintenance" in exc.value.extra["details"]
