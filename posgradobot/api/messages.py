# posgradobot/api/messages.py
"""
Provider-compatible endpoints (mounted under /v1):

 - POST /messages         raw outbound message, optional media
 - POST /register         start the contact form for a number
 - POST /programas        start the programs browse for a number
 - POST /blacklist        add / remove a number
 - GET  /blacklist/list
 - POST /enviar-mensaje   promotional sequence with the matched brochure
"""
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, PlainTextResponse

from posgradobot.api.deps import get_orchestrator
from posgradobot.core.orchestrator import Orchestrator
from posgradobot.models.schemas import (
    BlacklistOut,
    BlacklistRequest,
    OutboundMessage,
    ProgramasRequest,
    PromotionRequest,
    RegisterRequest,
)

logger = logging.getLogger("posgradobot.api.messages")
router = APIRouter()


@router.post("/messages", response_class=PlainTextResponse, summary="Send a message")
async def send_message(payload: OutboundMessage, bot: Orchestrator = Depends(get_orchestrator)):
    await bot.send_message(payload.number, payload.message, payload.url_media)
    return "sended"


@router.post("/register", response_class=PlainTextResponse, summary="Trigger the contact flow")
async def register(payload: RegisterRequest, bot: Orchestrator = Depends(get_orchestrator)):
    await bot.dispatch("CONTACTO_FLOW", payload.number, name=payload.name)
    return "trigger"


@router.post("/programas", response_class=PlainTextResponse, summary="Trigger the programs flow")
async def programas(payload: ProgramasRequest, bot: Orchestrator = Depends(get_orchestrator)):
    await bot.dispatch("PROGRAMAS_FLOW", payload.number)
    return "trigger"


@router.post("/blacklist", summary="Add or remove a number from the blacklist")
async def blacklist(payload: BlacklistRequest, bot: Orchestrator = Depends(get_orchestrator)):
    if payload.intent == "remove":
        bot.blacklist_remove(payload.number)
    if payload.intent == "add":
        bot.blacklist_add(payload.number)
    return {"status": "ok", "number": payload.number, "intent": payload.intent}


@router.get("/blacklist/list", response_model=BlacklistOut, summary="List blacklisted numbers")
async def blacklist_list(bot: Orchestrator = Depends(get_orchestrator)):
    return BlacklistOut(blacklist=bot.blacklist_list())


@router.post("/enviar-mensaje", summary="Send the promotional message with the program brochure")
async def enviar_mensaje(payload: PromotionRequest, bot: Orchestrator = Depends(get_orchestrator)):
    if not (payload.numero and payload.mensaje and payload.facultad and payload.programa):
        return JSONResponse({"error": "Faltan datos"}, status_code=400)

    try:
        sent = await bot.promote(payload.numero, payload.mensaje, payload.facultad, payload.programa)
    except Exception as exc:
        logger.exception("Error sending promotion to %s: %s", payload.numero, exc)
        return JSONResponse({"error": "Error interno al enviar mensaje"}, status_code=500)

    return {"status": "Mensaje y PDF enviados", "brochureEnviado": sent}
