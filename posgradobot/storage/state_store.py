# posgradobot/storage/state_store.py
"""
Durable state store backed by a single JSON document.

Document layout:
    {
      "user_state": {"<user_id>": {"facultadId": "3", "updatedAt": "..."}},
      "solicitudes_contacto": [{"id": 1, "usuarioId": "...", ...}],
      "contador_solicitudes": 1
    }

Exposes:
 - get(user_id) -> dict | None
 - merge(user_id, partial) -> dict     (shallow merge, refreshes updatedAt)
 - delete(user_id)
 - append_contact(record) -> ContactRequest
 - list_contacts(limit)

Every call reads the whole document, mutates it and writes it back. File I/O
runs in the default executor; writers hold one store-wide lock from read to
write, so a state merge cannot overwrite a contact appended meanwhile. There
is no per-user lock.
A missing or corrupt document reads as empty; write errors are logged and
swallowed so storage trouble never reaches the conversation.
"""
import asyncio
import datetime
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from posgradobot.core.errors import StorageFailure
from posgradobot.models.schemas import ContactRequest

logger = logging.getLogger("posgradobot.storage.state_store")


def _empty_document() -> Dict[str, Any]:
    return {"user_state": {}, "solicitudes_contacto": [], "contador_solicitudes": 0}


class StateStore:
    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = asyncio.Lock()

    # -- document I/O -------------------------------------------------------

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return _empty_document()
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("State document %s unreadable, starting empty: %s", self.path, exc)
            return _empty_document()
        if not isinstance(data, dict):
            logger.warning("State document %s is not an object, starting empty", self.path)
            return _empty_document()

        if not isinstance(data.get("user_state"), dict):
            data["user_state"] = {}
        if not isinstance(data.get("solicitudes_contacto"), list):
            data["solicitudes_contacto"] = []
        if not isinstance(data.get("contador_solicitudes"), int):
            # documents written before the counter was persisted
            ids = [c.get("id") for c in data["solicitudes_contacto"] if isinstance(c, dict)]
            numeric = [i for i in ids if isinstance(i, int)]
            data["contador_solicitudes"] = max(numeric + [len(data["solicitudes_contacto"])])
        return data

    def _write(self, data: Dict[str, Any]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_name(self.path.name + ".tmp")
            tmp_path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
            os.replace(tmp_path, self.path)
        except OSError as exc:
            raise StorageFailure(f"could not write {self.path}: {exc}") from exc

    # -- async access -------------------------------------------------------

    async def _in_thread(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, *args)

    async def _save(self, data: Dict[str, Any], what: str) -> bool:
        try:
            await self._in_thread(self._write, data)
            return True
        except StorageFailure as exc:
            logger.error("Error saving %s: %s", what, exc)
            return False

    # -- user state ---------------------------------------------------------

    async def get(self, user_id: str) -> Optional[Dict[str, Any]]:
        data = await self._in_thread(self._read)
        state = data["user_state"].get(user_id)
        return dict(state) if isinstance(state, dict) else None

    async def merge(self, user_id: str, partial: Dict[str, Any]) -> Dict[str, Any]:
        """
        Shallow-merge `partial` into the user's state (creating it if absent).
        Returns the merged state even if it could not be persisted.
        """
        async with self._lock:
            data = await self._in_thread(self._read)
            current = data["user_state"].get(user_id)
            merged = dict(current) if isinstance(current, dict) else {}
            merged.update(partial)
            merged["updatedAt"] = datetime.datetime.utcnow().isoformat()
            data["user_state"][user_id] = merged
            await self._save(data, f"state for {user_id}")
        return merged

    async def delete(self, user_id: str) -> None:
        async with self._lock:
            data = await self._in_thread(self._read)
            if user_id not in data["user_state"]:
                return
            del data["user_state"][user_id]
            await self._save(data, f"deletion of state for {user_id}")

    # -- contact log --------------------------------------------------------

    async def append_contact(self, record: Dict[str, Any]) -> ContactRequest:
        """
        Append a contact request and assign it the next request id. The counter
        lives in the same document, so ids keep increasing across restarts.
        """
        async with self._lock:
            data = await self._in_thread(self._read)
            request_id = data["contador_solicitudes"] + 1
            contact = ContactRequest(
                id=request_id,
                createdAt=datetime.datetime.utcnow().isoformat(),
                **{k: v for k, v in record.items() if k not in ("id", "createdAt", "created_at")},
            )
            data["solicitudes_contacto"].append(contact.model_dump(by_alias=True))
            data["contador_solicitudes"] = request_id
            if await self._save(data, f"contact request {request_id}"):
                logger.info("Saved contact request %s for %s", request_id, contact.usuario_id)
            return contact

    async def get_contact(self, request_id: int) -> Optional[ContactRequest]:
        data = await self._in_thread(self._read)
        for raw in data["solicitudes_contacto"]:
            if not isinstance(raw, dict) or raw.get("id") != request_id:
                continue
            try:
                return ContactRequest.model_validate(raw)
            except ValidationError as exc:
                logger.warning("Stored contact request %s is malformed: %s", request_id, exc)
                return None
        return None

    async def list_contacts(self, limit: int = 50) -> List[Dict[str, Any]]:
        data = await self._in_thread(self._read)
        contacts = data["solicitudes_contacto"]
        return list(reversed(contacts[-limit:])) if limit else []
