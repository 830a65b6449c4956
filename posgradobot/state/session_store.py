# posgradobot/state/session_store.py
"""
Conversation sessions: the node each user is parked on in the conversation
graph, plus the answers collected so far by a multi-step form.

A session looks like:
    {"user_id": "...", "node": "contacto_correo", "data": {"nombre": "Ana"},
     "name": "Ana", "last_update": "..."}

Sessions live in Redis when REDIS_URL is reachable and in a process-local dict
otherwise. Losing them only restarts the conversation at the welcome node; the
selected faculty and the contact log live in the StateStore.
"""
from typing import Optional, Any, Dict, List
import datetime
import json
import logging

import redis.asyncio as redis

logger = logging.getLogger("posgradobot.state.session_store")

KEY_PREFIX = "posgradobot:session:"

_redis_client = None
_local: Dict[str, Dict[str, Any]] = {}


async def connect_redis(redis_url: Optional[str]) -> bool:
    """Returns True when sessions will be kept in Redis."""
    global _redis_client
    if not redis_url:
        logger.info("REDIS_URL not set; conversation sessions are kept in memory")
        return False

    client = redis.from_url(redis_url, decode_responses=True)
    try:
        await client.ping()
    except Exception as exc:
        logger.error("Redis at %s unreachable, keeping sessions in memory: %s", redis_url, exc)
        await client.aclose()
        return False

    _redis_client = client
    logger.info("Conversation sessions stored in Redis at %s", redis_url)
    return True


async def disconnect_redis() -> None:
    global _redis_client
    client, _redis_client = _redis_client, None
    if client is not None:
        try:
            await client.aclose()
        except Exception as exc:
            logger.debug("Error closing Redis client: %s", exc)


def reset_memory() -> None:
    _local.clear()


def _key(user_id: str) -> str:
    return KEY_PREFIX + user_id


async def get_session(user_id: str) -> Optional[Dict[str, Any]]:
    if _redis_client is not None:
        try:
            raw = await _redis_client.get(_key(user_id))
        except Exception as exc:
            logger.warning("Redis read failed for %s, using local sessions: %s", user_id, exc)
        else:
            return json.loads(raw) if raw else _local.get(user_id)
    return _local.get(user_id)


async def _save(user_id: str, session: Dict[str, Any]) -> None:
    if _redis_client is not None:
        try:
            await _redis_client.set(_key(user_id), json.dumps(session, ensure_ascii=False))
            _local.pop(user_id, None)
            return
        except Exception as exc:
            logger.warning("Redis write failed for %s, keeping the session locally: %s", user_id, exc)
    _local[user_id] = session


async def update_session(user_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
    """Shallow-merge `patch` into the user's session, creating it if needed."""
    session = await get_session(user_id) or {"user_id": user_id}
    session.update(patch)
    session["last_update"] = datetime.datetime.utcnow().isoformat()
    await _save(user_id, session)
    return session


async def clear_session(user_id: str) -> None:
    _local.pop(user_id, None)
    if _redis_client is not None:
        try:
            await _redis_client.delete(_key(user_id))
        except Exception as exc:
            logger.warning("Redis delete failed for %s: %s", user_id, exc)


async def list_sessions() -> List[Dict[str, Any]]:
    """Every active session; Redis entries first, then local ones."""
    sessions: List[Dict[str, Any]] = []
    if _redis_client is not None:
        try:
            keys = [key async for key in _redis_client.scan_iter(match=KEY_PREFIX + "*")]
            values = await _redis_client.mget(keys) if keys else []
            sessions.extend(json.loads(raw) for raw in values if raw)
        except Exception as exc:
            logger.warning("Redis scan failed, listing local sessions only: %s", exc)
    sessions.extend(_local.values())
    return sessions
