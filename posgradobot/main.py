# posgradobot/main.py
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from posgradobot.api.contacts import router as contacts_router
from posgradobot.api.messages import router as messages_router
from posgradobot.api.sessions import router as sessions_router
from posgradobot.api.webhooks import router as webhooks_router
from posgradobot.config import get_settings
from posgradobot.core.orchestrator import build_orchestrator
from posgradobot.state import session_store

settings = get_settings()

# Basic logger setup (can be extended)
logging.basicConfig(level=settings.LOG_LEVEL.upper())
logger = logging.getLogger("posgradobot")

app = FastAPI(
    title="Posgrado UNAC assistant",
    version="0.1.0",
    description="Menu-based WhatsApp assistant: programs, admission, contact requests and brochure follow-ups",
)

# CORS - relaxed for dev
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.ENV == "dev" else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(messages_router, prefix="/v1", tags=["v1"])
app.include_router(webhooks_router, prefix="/webhook", tags=["webhook"])
app.include_router(sessions_router, prefix="/api/sessions", tags=["sessions"])
app.include_router(contacts_router, prefix="/api/contacts", tags=["contacts"])


@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse({"error": "internal error"}, status_code=500)


# Simple health endpoints
@app.get("/", tags=["health"])
async def root():
    return JSONResponse({"status": "ok", "service": "posgradobot", "env": settings.ENV})


@app.get("/health", tags=["health"])
async def health():
    bot = getattr(app.state, "orchestrator", None)
    return JSONResponse(
        {
            "status": "ok",
            "ready": bot is not None,
            "delivery": bot.adapter.mode if bot else None,
            "redis": bool(getattr(app.state, "redis_connected", False)),
        }
    )


@app.on_event("startup")
async def on_startup():
    logger.info("Starting posgradobot (env=%s)", settings.ENV)
    app.state.redis_connected = await session_store.connect_redis(settings.REDIS_URL)

    # tests may install their own orchestrator before startup
    if getattr(app.state, "orchestrator", None) is None:
        app.state.orchestrator = build_orchestrator(settings)
    logger.info("Bot ready (delivery=%s)", app.state.orchestrator.adapter.mode)


@app.on_event("shutdown")
async def on_shutdown():
    logger.info("Shutting down posgradobot")
    bot = getattr(app.state, "orchestrator", None)
    if bot is not None:
        await bot.close()
        app.state.orchestrator = None
    await session_store.disconnect_redis()


# If run directly: start uvicorn programmatically (handy for `python -m posgradobot.main`)
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "posgradobot.main:app",
        host=settings.APP_HOST,
        port=settings.APP_PORT,
        reload=settings.ENV == "dev",
        log_level=settings.LOG_LEVEL,
    )
