# api/routes/ticketmaster.py
import logging

import httpx
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.dependencies import get_ticketmaster_client
from services.errors import ValidationError
from services.ticketmaster import TicketmasterClient

router = APIRouter()
logger = logging.getLogger("api.ticketmaster")

CACHE_CONTROL = "public, max-age=300, stale-while-revalidate=60"


@router.get("/ticketmaster")
async def ticketmaster_proxy(request: Request, client: TicketmasterClient = Depends(get_ticketmaster_client)):
    """Forward a Discovery API call with the server-held key; the key never reaches the browser."""
    # Checked before the endpoint so a missing key is reported first
    client.require_key()

    params = dict(request.query_params)
    endpoint = params.get("endpoint")
    if not endpoint:
        raise ValidationError("Missing required parameter: endpoint")

    try:
        response = await client.proxy(endpoint, params)
    except httpx.HTTPError as e:
        logger.error(f"Ticketmaster request failed: {e}")
        return JSONResponse(status_code=502, content={"error": "Failed to reach Ticketmaster API", "details": str(e)})

    if response.status_code >= 400:
        logger.error(f"Ticketmaster API error: {response.status_code} {response.reason_phrase}")
        return JSONResponse(
            status_code=response.status_code,
            content={"error": f"Ticketmaster API Error: {response.reason_phrase}", "details": response.text},
        )

    return JSONResponse(content=response.json(), headers={"Cache-Control": CACHE_CONTROL})
