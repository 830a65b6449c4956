# posgradobot/core/delivery.py
"""
Delivery adapters: the outbound side of the messaging transport.

Provides `send(destination, text, media=None, file_name=None)` in two modes:
 - stub: logs and keeps the messages in memory (dev / tests)
 - http: posts to a messaging gateway (e.g. a WPPConnect server) with httpx

`send_media()` wraps a media send in a bounded linear retry (fixed attempt
count, fixed delay, no backoff) and degrades to a text-only message when the
URL is unusable or every attempt failed. `deliver()` sends a list of segments
in order.
"""
import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from posgradobot.core.catalog import valid_brochure
from posgradobot.core.errors import DeliveryFailure
from posgradobot.core.flow_engine import Segment

logger = logging.getLogger("posgradobot.core.delivery")

MEDIA_UNAVAILABLE = "(Documento no disponible)"
MEDIA_FAILED = "(Error al cargar documento)"


class DeliveryAdapter:
    mode = "base"

    async def send(self, destination: str, text: str, media: Optional[str] = None, file_name: Optional[str] = None) -> None:
        raise NotImplementedError

    async def close(self) -> None:
        return None


class StubDeliveryAdapter(DeliveryAdapter):
    mode = "stub"

    def __init__(self):
        self.sent: List[Dict[str, Any]] = []

    async def send(self, destination, text, media=None, file_name=None):
        logger.info("[stub] -> %s: %s%s", destination, (text or "")[:80], f" [media={media}]" if media else "")
        self.sent.append({"to": destination, "text": text, "media": media, "file_name": file_name})

    def messages_to(self, destination: str) -> List[Dict[str, Any]]:
        return [m for m in self.sent if m["to"] == destination]


class HttpDeliveryAdapter(DeliveryAdapter):
    """
    Posts JSON to `{DELIVERY_API_URL}/send-message`:
        {"phone": ..., "message": ..., "media": ..., "fileName": ...}
    Non-2xx responses raise DeliveryFailure.
    """

    mode = "http"

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not base_url:
            raise ValueError("DELIVERY_API_URL is required for http delivery")
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"), headers=headers, timeout=httpx.Timeout(timeout), transport=transport
        )

    async def send(self, destination, text, media=None, file_name=None):
        payload = {"phone": destination, "message": text}
        if media:
            payload["media"] = media
        if file_name:
            payload["fileName"] = file_name
        try:
            resp = await self._client.post("/send-message", json=payload)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise DeliveryFailure(f"send to {destination} failed: {exc}") from exc

    async def close(self):
        await self._client.aclose()


def build_adapter(settings) -> DeliveryAdapter:
    mode = (settings.DELIVERY_MODE or "stub").lower()
    if mode == "http":
        return HttpDeliveryAdapter(settings.DELIVERY_API_URL, settings.DELIVERY_API_TOKEN, settings.DELIVERY_TIMEOUT)
    if mode != "stub":
        logger.warning("Unknown DELIVERY_MODE %r; using stub delivery", mode)
    return StubDeliveryAdapter()


async def send_media(
    adapter: DeliveryAdapter,
    destination: str,
    text: str,
    media_url: Optional[str],
    file_name: Optional[str] = None,
    attempts: int = 3,
    delay: float = 2.0,
) -> bool:
    """
    Send `text` with `media_url` attached. Returns True when the media went out,
    False when a text-only fallback was sent instead. Only a failure of the
    fallback itself raises.
    """
    url = valid_brochure(media_url)
    if url is None:
        logger.warning("Invalid media URL for %s: %r", destination, media_url)
        await adapter.send(destination, f"{text}\n{MEDIA_UNAVAILABLE}")
        return False

    try:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(max(1, attempts)),
            wait=wait_fixed(delay),
            retry=retry_if_exception_type(Exception),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.info("Retrying media send to %s (attempt %d)", destination, attempt.retry_state.attempt_number)
                await adapter.send(destination, text, media=url, file_name=file_name)
        return True
    except Exception as exc:
        logger.error("Media send to %s failed after %d attempts: %s", destination, attempts, exc)
        await adapter.send(destination, f"{text}\n{MEDIA_FAILED}")
        return False


async def deliver(
    adapter: DeliveryAdapter,
    destination: str,
    segments: Sequence[Segment],
    attempts: int = 3,
    delay: float = 2.0,
) -> None:
    """Send segments in order. A send that fails (after the media fallback) raises DeliveryFailure."""
    for segment in segments:
        if not segment.text and not segment.media:
            continue
        try:
            if segment.media:
                await send_media(adapter, destination, segment.text, segment.media, segment.file_name, attempts, delay)
            else:
                await adapter.send(destination, segment.text)
        except DeliveryFailure:
            raise
        except Exception as exc:
            raise DeliveryFailure(f"send to {destination} failed: {exc}") from exc
