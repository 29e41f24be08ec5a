# api/dependencies.py
import secrets
from datetime import timedelta
from typing import Optional

import httpx
from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import Settings, get_settings
from models.database import get_session
from services.errors import UnauthorizedError, ValidationError
from services.ticketmaster import TicketmasterClient
from sync.invoker import SyncInvoker
from sync.service import SyncService


def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http_client


def get_sync_invoker(
    client: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_settings),
) -> SyncInvoker:
    return SyncInvoker(
        client,
        settings.supabase_url,
        settings.supabase_service_role_key,
        function_name=settings.sync_function_name,
        timeout=settings.sync_timeout_seconds,
    )


def get_ticketmaster_client(
    client: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_settings),
) -> TicketmasterClient:
    return TicketmasterClient(client, settings.ticketmaster_api_key, timeout=settings.ticketmaster_timeout_seconds)


def get_sync_service(
    session: AsyncSession = Depends(get_session),
    invoker: SyncInvoker = Depends(get_sync_invoker),
    ticketmaster: TicketmasterClient = Depends(get_ticketmaster_client),
    settings: Settings = Depends(get_settings),
) -> SyncService:
    return SyncService(session, invoker, ticketmaster, max_age=timedelta(hours=settings.stale_after_hours))


def get_current_user_id(x_user_id: Optional[str] = Header(default=None)) -> Optional[str]:
    """User id forwarded by the auth layer in front of the API; None for anonymous callers."""
    return x_user_id or None


def get_client_key(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def require_cron_token(
    authorization: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> None:
    expected = settings.cron_secret_token
    if not expected:
        raise UnauthorizedError("Unauthorized")
    if not secrets.compare_digest((authorization or "").encode(), f"Bearer {expected}".encode()):
        raise UnauthorizedError("Unauthorized")


async def read_json_body(request: Request) -> dict:
    try:
        body = await request.json()
    except ValueError:
        raise ValidationError("Request body must be valid JSON")
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body
