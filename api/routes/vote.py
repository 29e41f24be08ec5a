# api/routes/vote.py
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_client_key, get_current_user_id, read_json_body
from config.settings import Settings, get_settings
from models.database import get_session
from services.errors import UnauthorizedError
from services.votes import cast_vote, remove_vote

router = APIRouter()


@router.post("/vote")
async def vote(
    body: dict = Depends(read_json_body),
    session: AsyncSession = Depends(get_session),
    user_id: Optional[str] = Depends(get_current_user_id),
    client_key: Optional[str] = Depends(get_client_key),
    settings: Settings = Depends(get_settings),
):
    result = await cast_vote(
        session,
        body.get("songId"),
        user_id=user_id,
        anonymous_key=None if user_id else client_key,
        anonymous_limit=settings.anonymous_vote_limit,
    )
    return {"success": True, "message": "Vote recorded", "votes": result.vote_count}


@router.delete("/vote")
async def unvote(
    body: dict = Depends(read_json_body),
    session: AsyncSession = Depends(get_session),
    user_id: Optional[str] = Depends(get_current_user_id),
):
    if not user_id:
        raise UnauthorizedError("Sign in to remove a vote")
    result = await remove_vote(session, body.get("songId"), user_id)
    return {"success": True, "message": "Vote removed", "votes": result.vote_count}
