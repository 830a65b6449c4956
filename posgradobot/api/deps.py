# posgradobot/api/deps.py
from fastapi import HTTPException, Request

from posgradobot.core.orchestrator import Orchestrator


def get_orchestrator(request: Request) -> Orchestrator:
    """FastAPI dependency: the orchestrator built on startup."""
    bot = getattr(request.app.state, "orchestrator", None)
    if bot is None:
        raise HTTPException(status_code=503, detail="bot not ready")
    return bot
