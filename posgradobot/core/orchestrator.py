# posgradobot/core/orchestrator.py
"""
Orchestrator: runs one conversation turn per inbound message.

Entry points used by the routers:
 - `handle_message(user_id, text, name=None)`  inbound text from the transport
 - `dispatch(event, user_id, **extra)`          enter a flow by event name
 - `send_message(number, message, url_media)`   raw outbound message
 - `promote(...)`                               promotional sequence

Per turn:
 - blacklisted users are ignored
 - exit keywords jump to the goodbye node from anywhere
 - a user with no parked node is welcomed; otherwise the reply goes to the node
   the user is parked on (session_store)
 - outbound segments are delivered in order, and only then the node pointer
   moves; when delivery fails the user stays where they were
 - a terminal turn clears the pointer and the ephemeral form data

Turns for the same user never overlap (per-user asyncio.Lock); different users
run in parallel. No exception leaves `handle_message` / `dispatch`.
"""
import asyncio
import contextlib
import logging
from typing import Any, Dict, List, Optional

from posgradobot.core.catalog import load_brochure_catalog, load_catalog
from posgradobot.core.delivery import DeliveryAdapter, build_adapter, deliver, send_media
from posgradobot.core.errors import DeliveryFailure
from posgradobot.core.flow_engine import FlowEngine, Turn
from posgradobot.core.flows import EVENTS, EXIT_KEYWORDS, GOODBYE, build_graph
from posgradobot.core.matching import MatchingEngine
from posgradobot.core.messages import Messages
from posgradobot.core.normalizer import normalize
from posgradobot.core.promotion import send_promotion
from posgradobot.state import session_store
from posgradobot.storage.state_store import StateStore

logger = logging.getLogger("posgradobot.core.orchestrator")


class Orchestrator:
    def __init__(self, engine: FlowEngine, adapter: DeliveryAdapter, matcher: MatchingEngine, settings):
        self.engine = engine
        self.adapter = adapter
        self.matcher = matcher
        self.settings = settings
        self._blacklist = set()
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    @contextlib.asynccontextmanager
    async def _user_turn(self, user_id: str):
        """Serialize turns per user; the lock is dropped once nobody holds or awaits it."""
        lock = self._locks.setdefault(user_id, asyncio.Lock())
        self._lock_users[user_id] = self._lock_users.get(user_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[user_id] -= 1
            if not self._lock_users[user_id]:
                del self._lock_users[user_id]
                del self._locks[user_id]

    @property
    def store(self) -> StateStore:
        return self.engine.store

    # -- blacklist ------------------------------------------------------------

    def blacklist_add(self, number: str) -> None:
        self._blacklist.add(number.strip())
        logger.info("Blacklisted %s", number)

    def blacklist_remove(self, number: str) -> None:
        self._blacklist.discard(number.strip())
        logger.info("Removed %s from blacklist", number)

    def blacklist_list(self) -> List[str]:
        return sorted(self._blacklist)

    def is_blacklisted(self, number: str) -> bool:
        return number.strip() in self._blacklist

    # -- turns ----------------------------------------------------------------

    async def handle_message(self, user_id: str, text: str, name: Optional[str] = None) -> Dict[str, Any]:
        if self.is_blacklisted(user_id):
            logger.info("Ignoring message from blacklisted %s", user_id)
            return {"user_id": user_id, "ignored": True}

        async with self._user_turn(user_id):
            try:
                session = await session_store.get_session(user_id) or {}
                parked = session.get("node")
                data = session.get("data") or {}
                extra = {"name": name or session.get("name")}

                if normalize(text) in EXIT_KEYWORDS:
                    logger.info("Exit keyword from %s at %s", user_id, parked)
                    turn = await self.engine.enter(GOODBYE, user_id, session=data, extra=extra)
                elif not parked:
                    turn = await self.engine.enter(self.engine.graph.entry, user_id, session=data, extra=extra)
                else:
                    turn = await self.engine.advance(parked, user_id, text, session=data, extra=extra)
                return await self._finish(user_id, parked, turn, name)
            except Exception as exc:
                logger.exception("Turn failed for %s: %s", user_id, exc)
                return {"user_id": user_id, "error": str(exc)}

    async def dispatch(self, event: str, user_id: str, **extra: Any) -> Dict[str, Any]:
        node_id = EVENTS.get(event)
        if node_id is None:
            raise ValueError(f"unknown event {event!r}")

        async with self._user_turn(user_id):
            try:
                session = await session_store.get_session(user_id) or {}
                # a flow entered by event starts with a clean form
                turn = await self.engine.enter(node_id, user_id, session={}, extra=extra)
                return await self._finish(user_id, session.get("node"), turn, extra.get("name"), keep_data=False)
            except Exception as exc:
                logger.exception("Dispatch %s failed for %s: %s", event, user_id, exc)
                return {"user_id": user_id, "error": str(exc)}

    async def _finish(
        self, user_id: str, previous: Optional[str], turn: Turn, name: Optional[str], keep_data: bool = True
    ) -> Dict[str, Any]:
        try:
            await deliver(
                self.adapter,
                user_id,
                turn.segments,
                attempts=self.settings.MEDIA_RETRY_ATTEMPTS,
                delay=self.settings.MEDIA_RETRY_DELAY,
            )
        except DeliveryFailure as exc:
            logger.error("Delivery to %s failed; keeping node %s: %s", user_id, previous, exc)
            if keep_data and previous:
                # a resent reply must see what this turn already stored (e.g. the contact request id)
                await session_store.update_session(user_id, {"node": previous, "data": turn.session})
            return {"user_id": user_id, "node": previous, "replies": turn.texts, "delivered": False}

        if turn.terminal:
            await session_store.clear_session(user_id)
        else:
            patch = {"node": turn.next_node, "data": turn.session}
            if name:
                patch["name"] = name
            await session_store.update_session(user_id, patch)

        logger.debug("Turn for %s: %s -> %s (%s)", user_id, previous, turn.next_node, ", ".join(turn.side_effects))
        return {"user_id": user_id, "node": turn.next_node, "replies": turn.texts, "delivered": True}

    # -- outbound only ----------------------------------------------------------

    async def send_message(self, number: str, message: str, url_media: Optional[str] = None) -> None:
        if url_media:
            await send_media(
                self.adapter,
                number,
                message,
                url_media,
                attempts=self.settings.MEDIA_RETRY_ATTEMPTS,
                delay=self.settings.MEDIA_RETRY_DELAY,
            )
        else:
            await self.adapter.send(number, message)

    async def promote(self, numero: str, mensaje: str, facultad: str, programa: str) -> str:
        return await send_promotion(self.adapter, self.matcher, self.settings, numero, mensaje, facultad, programa)

    async def close(self) -> None:
        await self.adapter.close()


def build_orchestrator(settings, adapter: Optional[DeliveryAdapter] = None) -> Orchestrator:
    """Load catalogs and copy, validate the graph and wire everything together."""
    catalog = load_catalog(settings.catalog_path, descriptions_dir=settings.messages_dir)
    if catalog.is_empty:
        logger.warning("Browse catalog is empty (%s)", settings.catalog_path)
    brochures = load_brochure_catalog(settings.brochures_path)
    if brochures.is_empty:
        logger.warning("Brochure catalog is empty (%s)", settings.brochures_path)

    messages = Messages(settings.messages_dir)
    store = StateStore(settings.db_path)
    graph = build_graph(catalog, messages)
    engine = FlowEngine(graph, store, services={"catalog": catalog, "messages": messages})
    return Orchestrator(engine, adapter or build_adapter(settings), MatchingEngine(brochures), settings)
