# posgradobot/api/webhooks.py
import logging

from fastapi import APIRouter, BackgroundTasks, Depends

from posgradobot.api.deps import get_orchestrator
from posgradobot.core.orchestrator import Orchestrator
from posgradobot.models.schemas import InboundMessage

logger = logging.getLogger("posgradobot.api.webhooks")
router = APIRouter()


@router.post("/message")
async def inbound_message(
    payload: InboundMessage,
    background_tasks: BackgroundTasks,
    bot: Orchestrator = Depends(get_orchestrator),
):
    """
    Receive an inbound chat message from the transport and run the turn in the
    background. The orchestrator serializes turns per user and never raises.
    """
    logger.info("Received message from=%s name=%s body=%r", payload.from_number, payload.name, payload.body[:80])
    background_tasks.add_task(bot.handle_message, payload.from_number, payload.body, payload.name)
    return {"status": "accepted", "from": payload.from_number}
