# posgradobot/api/contacts.py
import logging

from fastapi import APIRouter, Depends, Query

from posgradobot.api.deps import get_orchestrator
from posgradobot.core.orchestrator import Orchestrator

logger = logging.getLogger("posgradobot.api.contacts")
router = APIRouter()


@router.get("/", summary="Latest contact requests")
async def list_contacts(
    limit: int = Query(50, ge=1, le=1000),
    bot: Orchestrator = Depends(get_orchestrator),
):
    """Newest first."""
    contacts = await bot.store.list_contacts(limit)
    return {"contacts": contacts}
