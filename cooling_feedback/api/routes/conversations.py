"""Conversation history REST API route."""

from typing import Any

from fastapi import APIRouter, Depends, Query

from cooling_feedback.api.dependencies import get_chat_store
from cooling_feedback.exceptions import InvalidRequestError
from cooling_feedback.models.conversation import MAX_SESSION_ID, MAX_ZONE_ID
from cooling_feedback.storage.chat_store import ChatStore

router = APIRouter(prefix="/conversations", tags=["conversations"])

MAX_LIMIT = 200


@router.get("")
async def get_conversation(
    zone_id: str = Query("", alias="zoneId"),
    session_id: str = Query("", alias="sessionId"),
    limit: int = 50,
    chat_store: ChatStore = Depends(get_chat_store),
) -> dict[str, Any]:
    """Turns of one session, newest first."""
    zone_id = zone_id.strip()[:MAX_ZONE_ID]
    session_id = session_id.strip()[:MAX_SESSION_ID]
    if not zone_id or not session_id:
        raise InvalidRequestError("zoneId and sessionId are required")

    limit = max(1, min(limit, MAX_LIMIT))
    turns = await chat_store.get_turns(zone_id, session_id, limit=limit)
    return {
        "zoneId": zone_id,
        "sessionId": session_id,
        "count": len(turns),
        "messages": [t.to_dict() for t in turns],
    }
