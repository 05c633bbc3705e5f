# consult_booking/core/config.py
import os
from pydantic_settings import BaseSettings
from pydantic import Field
from pydantic_settings import SettingsConfigDict
from typing import Optional, List
from functools import lru_cache

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore", populate_by_name=True)

    # Application Settings
    APP_NAME: str = "Consultation Booking API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    DOCS_ENABLED: bool = True

    # Database Settings
    DATABASE_URL: str = os.environ.get("DATABASE_URL", "sqlite:///./consult_booking.db")

    # Security Settings
    SECRET_KEY: str = Field(default="change-me-in-prod", alias="JWT_SECRET_KEY")
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    PASSWORD_HASH_ROUNDS: int = 12

    # CORS Settings
    ALLOWED_ORIGINS: str = os.environ.get("ALLOWED_ORIGINS", "*")
    ALLOWED_METHODS: str = os.environ.get("ALLOWED_METHODS", "GET,POST,PUT,DELETE,OPTIONS")
    ALLOWED_HEADERS: str = os.environ.get("ALLOWED_HEADERS", "*")
    CORS_ALLOW_CREDENTIALS: bool = True

    # Booking Settings
    SLOT_DURATION_MINUTES: int = 30
    BOOKING_HORIZON_DAYS: int = 60
    PAYMENT_TTL_MINUTES: int = 15
    SWEEP_INTERVAL_SECONDS: int = 60
    SUPERVISOR_ENABLED: bool = True

    # Payment Gateway Settings
    CURRENCY: str = "INR"
    GATEWAY_BASE_URL: str = os.environ.get("GATEWAY_BASE_URL", "https://api.gateway.example/v1")
    GATEWAY_KEY_ID: str = os.environ.get("GATEWAY_KEY_ID", "")
    GATEWAY_KEY_SECRET: str = os.environ.get("GATEWAY_KEY_SECRET", "")
    GATEWAY_TIMEOUT_SECONDS: float = 10.0
    PAYMENT_WEBHOOK_SECRET: str = os.environ.get("PAYMENT_WEBHOOK_SECRET", "")

    # Reconciliation
    AUTO_REFUND_ENABLED: bool = True
    RECONCILIATION_MAX_ATTEMPTS: int = 5

    # Tamper alerting (repeated signature/amount failures per appointment)
    TRUST_ALERT_THRESHOLD: int = 3
    TRUST_ALERT_WINDOW_SECONDS: int = 3600
    REDIS_URL: Optional[str] = os.environ.get("REDIS_URL", None)

    # Logging Settings
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    # Helper methods for list envs
    def _split_csv(self, value: str) -> List[str]:
        if value is None:
            return []
        value = value.strip()
        if value == "":
            return []
        return [item.strip() for item in value.split(",")]

    @property
    def allowed_origins_list(self) -> List[str]:
        return self._split_csv(self.ALLOWED_ORIGINS)

    @property
    def allowed_methods_list(self) -> List[str]:
        return self._split_csv(self.ALLOWED_METHODS)

    @property
    def allowed_headers_list(self) -> List[str]:
        return self._split_csv(self.ALLOWED_HEADERS)

@lru_cache()
def get_settings() -> Settings:
    s = Settings()
    # Normalize ALLOWED_ORIGINS if provided as comma-separated string env var CORS_ORIGINS
    cors_env = os.environ.get("CORS_ORIGINS")
    if cors_env:
        s.ALLOWED_ORIGINS = cors_env
    return s

settings: Settings = get_settings()
