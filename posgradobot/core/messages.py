# posgradobot/core/messages.py
"""
Menu copy.

Every text has a built-in default; a .txt file under MESSAGES_DIR with the
relative path listed in MESSAGE_FILES overrides it, so the copy can be edited
without touching the code.
"""
import logging
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger("posgradobot.core.messages")

MESSAGE_FILES = {
    "menu": "mensajes/menu.txt",
    "programas": "mensajes/programas.txt",
    "admision": "mensajes/admision.txt",
    "requisitos": "mensajes/requisitos.txt",
    "costos": "mensajes/costos.txt",
    "info": "desc/info.txt",
}

DEFAULT_MESSAGES = {
    "menu": (
        "📋 *MENÚ PRINCIPAL*\n1️⃣ Programas de Posgrado\n2️⃣ Admisión\n"
        "3️⃣ Calendario Académico\n4️⃣ Taller de Tesis\n5️⃣ Contacto"
    ),
    "programas": "📚 *PROGRAMAS DE POSGRADO*\n1️⃣ Maestrías\n2️⃣ Doctorados\n0️⃣ Volver al menú",
    "admision": (
        "📝 *ADMISIÓN*\n1️⃣ Requisitos\n2️⃣ Fechas\n3️⃣ Guía del Postulante\n4️⃣ Costos\n0️⃣ Volver al menú"
    ),
    "requisitos": "Requisitos no disponibles.",
    "costos": "Costos no disponibles.",
    "info": "",
}


def read_text(path: Path, default: str = "No disponible.") -> str:
    """Read a UTF-8 text file, returning `default` when it is missing or unreadable."""
    path = Path(path)
    try:
        if not path.exists():
            logger.warning("File not found: %s", path)
            return default
        if path.is_dir():
            logger.warning("Path is a directory: %s", path)
            return default
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        logger.error("Error reading %s: %s", path, exc)
        return default


class Messages:
    def __init__(self, base_dir: Optional[Path] = None, overrides: Optional[Dict[str, str]] = None):
        self.base_dir = Path(base_dir) if base_dir else None
        self._texts: Dict[str, str] = dict(DEFAULT_MESSAGES)
        if self.base_dir is not None:
            for key, rel_path in MESSAGE_FILES.items():
                target = self.base_dir / rel_path
                if target.is_file():
                    text = read_text(target, DEFAULT_MESSAGES[key]).strip()
                    if text:
                        self._texts[key] = text
        self._texts.update(overrides or {})

    def get(self, key: str) -> str:
        return self._texts.get(key, "")
