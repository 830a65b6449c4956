# posgradobot/config.py
from pathlib import Path
from typing import Optional
from pydantic_settings import BaseSettings
from pydantic import Field

BASE_DIR = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    # App
    APP_HOST: str = Field("0.0.0.0", description="Host to bind the app")
    APP_PORT: int = Field(3008, description="Port to run the app")
    ENV: str = Field("dev", description="Environment (dev|prod)")

    # Data files
    DATA_DIR: Path = Field(BASE_DIR / "data", description="Folder with catalogs and message copy")
    DB_PATH: Optional[Path] = Field(None, description="JSON document used as durable state store")
    CATALOG_PATH: Optional[Path] = Field(None, description="Hierarchical catalog (faculty -> kind -> program)")
    BROCHURES_PATH: Optional[Path] = Field(None, description="Flat brochure catalog used for matching")
    MESSAGES_DIR: Optional[Path] = Field(None, description="Folder with overridable menu copy (.txt)")

    # Transport session (node pointer + ephemeral form data)
    REDIS_URL: Optional[str] = Field(None, description="Redis URL (if used)")

    # Delivery
    DELIVERY_MODE: str = Field("stub", description="delivery mode: stub | http")
    DELIVERY_API_URL: Optional[str] = Field(None, description="Messaging gateway base URL")
    DELIVERY_API_TOKEN: Optional[str] = Field(None, description="Bearer token for the messaging gateway")
    DELIVERY_TIMEOUT: float = Field(30.0, description="HTTP timeout (seconds) for the messaging gateway")
    MEDIA_RETRY_ATTEMPTS: int = Field(3, description="Attempts for a media send before text-only fallback")
    MEDIA_RETRY_DELAY: float = Field(2.0, description="Fixed delay (seconds) between media attempts")

    # Promotion copy
    PROMO_GROUP_LINK: str = Field("https://chat.whatsapp.com/IKNzlJiO6El6Ns8k4bixjF")
    PROMO_EMAIL: str = Field("posgrado.admision@unac.edu.pe")
    PROMO_PHONE: str = Field("900969591")
    PROMO_DEADLINE: str = Field("Hasta el 18 de marzo del 2026")
    PROMO_INTERVIEW: str = Field("última semana de Marzo del 2026")
    PROMO_CLASSES_START: str = Field("Primera semana de Abril")
    PROMO_GROUP_NAME: str = Field("POSGRADO UNAC 2026-A")

    # Logging / misc
    LOG_LEVEL: str = Field("info", description="Logging level")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False

    @property
    def db_path(self) -> Path:
        return self.DB_PATH or self.DATA_DIR / "local_db.json"

    @property
    def catalog_path(self) -> Path:
        return self.CATALOG_PATH or self.DATA_DIR / "facultades.json"

    @property
    def brochures_path(self) -> Path:
        return self.BROCHURES_PATH or self.DATA_DIR / "programas.json"

    @property
    def messages_dir(self) -> Path:
        return self.MESSAGES_DIR or self.DATA_DIR


# Singleton settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Return a singleton Settings instance (loads from .env automatically).
    Use `get_settings()` instead of importing Settings() directly so other modules
    share the same instance.
    """
    global _settings
    if _settings is None:
        _settings = Settings()  # loads from environment / .env
    return _settings
