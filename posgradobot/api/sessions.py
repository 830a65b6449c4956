# posgradobot/api/sessions.py
import logging

from fastapi import APIRouter, Depends, HTTPException

from posgradobot.api.deps import get_orchestrator
from posgradobot.core.orchestrator import Orchestrator
from posgradobot.models.schemas import UserStateOut
from posgradobot.state import session_store

logger = logging.getLogger("posgradobot.api.sessions")
router = APIRouter()


@router.get("/", summary="List active conversations")
async def list_sessions():
    sessions = await session_store.list_sessions()
    return {"sessions": sessions}


@router.get("/{user_id}", response_model=UserStateOut, summary="Get a user's conversation state")
async def get_session(user_id: str, bot: Orchestrator = Depends(get_orchestrator)):
    """
    Returns the node the user is parked on, the ephemeral form answers and the
    durable state (selected faculty).
    """
    session = await session_store.get_session(user_id)
    state = await bot.store.get(user_id)
    if not session and not state:
        raise HTTPException(status_code=404, detail="session not found")

    session = session or {}
    return UserStateOut(user_id=user_id, node=session.get("node"), session=session.get("data") or {}, state=state)
