# restaurant_verification/core/config.py
import logging
from typing import List, Optional

from pydantic import SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

DEVELOPMENT = "development"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    ENVIRONMENT: str = "production"
    LOG_LEVEL: str = "INFO"
    PLATFORM_NAME: str = "FoodyePay"

    # Relational store
    DATABASE_URL: str = "sqlite:///./verification.db"
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_TIMEOUT_SECONDS: float = 2.0
    DB_STATEMENT_TIMEOUT_SECONDS: float = 5.0

    # Telephony (Twilio)
    TWILIO_ACCOUNT_SID: Optional[str] = None
    TWILIO_AUTH_TOKEN: Optional[SecretStr] = None
    TWILIO_FROM_NUMBER: Optional[str] = None
    TELEPHONY_TIMEOUT_SECONDS: float = 15.0

    # CAPTCHA (Cloudflare Turnstile)
    TURNSTILE_SECRET_KEY: Optional[SecretStr] = None
    TURNSTILE_VERIFY_URL: str = "https://challenges.cloudflare.com/turnstile/v0/siteverify"
    CAPTCHA_TIMEOUT_SECONDS: float = 3.0

    # Business-listing oracle (Google Places)
    GOOGLE_MAPS_API_KEY: Optional[SecretStr] = None
    GOOGLE_PLACES_DETAILS_URL: str = "https://maps.googleapis.com/maps/api/place/details/json"
    LISTING_TIMEOUT_SECONDS: float = 10.0

    ADMIN_API_KEY: Optional[SecretStr] = None

    # Only honoured in development; the validator below clears it everywhere else
    DEV_ECHO_MODE: bool = False

    # Comma separated IPs or CIDRs allowed to set X-Forwarded-For
    TRUSTED_PROXIES: str = "127.0.0.1,::1"

    @field_validator("ENVIRONMENT")
    @classmethod
    def _normalize_environment(cls, value: str) -> str:
        return (value or "production").strip().lower()

    @model_validator(mode="after")
    def _disarm_dev_echo(self) -> "Settings":
        if self.DEV_ECHO_MODE and self.ENVIRONMENT != DEVELOPMENT:
            logger.warning("DEV_ECHO_MODE ignored outside development (ENVIRONMENT=%s)", self.ENVIRONMENT)
            self.DEV_ECHO_MODE = False
        return self

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == DEVELOPMENT

    @property
    def dev_echo_enabled(self) -> bool:
        return self.ENVIRONMENT == DEVELOPMENT and self.DEV_ECHO_MODE

    @property
    def telephony_configured(self) -> bool:
        return bool(self.TWILIO_ACCOUNT_SID and self.TWILIO_AUTH_TOKEN and self.TWILIO_FROM_NUMBER)

    @property
    def captcha_configured(self) -> bool:
        return bool(self.TURNSTILE_SECRET_KEY and self.TURNSTILE_SECRET_KEY.get_secret_value())

    @property
    def trusted_proxies(self) -> List[str]:
        return [p.strip() for p in self.TRUSTED_PROXIES.split(",") if p.strip()]


settings = Settings()
