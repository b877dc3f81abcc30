from decimal import Decimal
from enum import Enum
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class PersistenceMode(str, Enum):
    """Where workflow writes go besides the in-memory store."""
    OFFLINE = "offline"
    HOSTED = "hosted"


class Settings(BaseSettings):
    """
    Application settings.

    Values come from environment variables prefixed with ``HOSPITAL_POS_``
    or from a local ``.env`` file.
    """

    model_config = SettingsConfigDict(
        env_prefix="HOSPITAL_POS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ==================== APPLICATION ====================
    PROJECT_NAME: str = "Hospital POS"
    VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    API_PREFIX: str = "/api/v1"
    CORS_ORIGINS: List[str] = Field(default_factory=lambda: ["http://localhost:5173"])
    LOG_LEVEL: str = "INFO"

    # ==================== HOSTED BACKEND ====================
    PERSISTENCE_MODE: PersistenceMode = PersistenceMode.OFFLINE
    HOSTED_BACKEND_URL: Optional[str] = None
    HOSTED_BACKEND_ANON_KEY: Optional[str] = None
    HOSTED_TIMEOUT_SECONDS: float = 10.0

    # ==================== BILLING ====================
    CONSULTATION_FEE: Decimal = Decimal("2000")
    RECEIPT_START: int = 1000

    # ==================== DEMO MODE ====================
    DEMO_PASSWORD: str = "demo123"

    @field_validator("CONSULTATION_FEE")
    @classmethod
    def validate_consultation_fee(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("Consultation fee must be greater than zero")
        return v

    @field_validator("HOSTED_BACKEND_URL")
    @classmethod
    def strip_trailing_slash(cls, v: Optional[str]) -> Optional[str]:
        return v.rstrip("/") if v else v

    @property
    def is_hosted(self) -> bool:
        return self.PERSISTENCE_MODE == PersistenceMode.HOSTED


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
