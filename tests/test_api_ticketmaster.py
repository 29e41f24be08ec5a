import httpx


class TestTicketmasterProxy:
    """GET /api/ticketmaster forwards to the Discovery API with the server key."""

    async def test_missing_key(self, client, test_settings, upstream):
        test_settings.ticketmaster_api_key = None

        response = await client.get("/api/ticketmaster", params={"endpoint": "events.json"})

        assert response.status_code == 500
        assert response.json() == {"error": "Ticketmaster API key is not configured"}
        assert upstream.requests == []

    async def test_missing_endpoint(self, client):
        response = await client.get("/api/ticketmaster", params={"keyword": "radiohead"})
        assert response.status_code == 400
        assert "endpoint" in response.json()["error"]

    async def test_forwards_params_and_injects_key(self, client, upstream):
        upstream.handler = lambda request: httpx.Response(200, json={"_embedded": {"events": []}})

        response = await client.get(
            "/api/ticketmaster",
            params={"endpoint": "events.json", "keyword": "radiohead", "size": "5", "apikey": "client-supplied"},
        )

        assert response.status_code == 200
        assert response.json() == {"_embedded": {"events": []}}
        assert response.headers["cache-control"] == "public, max-age=300, stale-while-revalidate=60"

        sent = upstream.requests[0].url
        assert sent.host == "app.ticketmaster.com"
        assert sent.path == "/discovery/v2/events.json"
        assert sent.params.get_list("apikey") == ["tm-key"]
        assert sent.params["keyword"] == "radiohead"
        assert sent.params["size"] == "5"
        assert "endpoint" not in sent.params

    async def test_upstream_error_is_passed_through(self, client, upstream):
        upstream.handler = lambda request: httpx.Response(404, json={"fault": "Resource not found"})

        response = await client.get("/api/ticketmaster", params={"endpoint": "events/nope.json"})

        assert response.status_code == 404
        body = response.json()
        assert body["error"] == "Ticketmaster API Error: Not Found"
        assert "Resource not found" in body["details"]
        assert "cache-control" not in response.headers

    async def test_unreachable_upstream(self, client, upstream):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        upstream.handler = handler
        response = await client.get("/api/ticketmaster", params={"endpoint": "events.json"})
        assert response.status_code == 502
