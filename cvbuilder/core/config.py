import logging

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import Optional

class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    CONFIG_STRICT: bool = False

    # Database
    DATABASE_URL: Optional[str] = None
    TEST_DATABASE_URL: Optional[str] = None

    # Clerk Auth
    CLERK_SECRET_KEY: Optional[str] = None

    # Paystack
    PAYSTACK_SECRET_KEY: Optional[str] = None
    PAYSTACK_BASE_URL: str = "https://api.paystack.co"
    DEFAULT_CURRENCY: str = "GHS"

    # AI text generation
    GROQ_API_KEY: Optional[str] = None
    GROQ_MODEL: str = "llama-3.1-8b-instant"

    # Pricing (JSON file overriding the built-in plan table)
    PRICING_CONFIG_PATH: Optional[str] = None
    UPGRADE_URL: str = "/pricing"

    # App URLs
    CORS_ORIGINS: str = "http://localhost:5173"  # comma-separated

    # Observability feature flags
    LOG_LEVEL: str = "info"  # debug | info | warn | error
    ENABLE_AUDIT_LOGGING: bool = False
    ENABLE_PERFORMANCE_MONITORING: bool = False
    ENABLE_ERROR_TRACKING: bool = False
    ENABLE_REQUEST_LOGGING: bool = False

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )
settings = Settings()


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Validate required configuration.

    In strict mode raise RuntimeError; otherwise emit warnings only.
    Secrets are not logged, only missing keys.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("cvbuilder")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    required_keys = [
        "DATABASE_URL",
        "CLERK_SECRET_KEY",
        "PAYSTACK_SECRET_KEY",
    ]

    missing = [key for key in required_keys if not getattr(cfg, key, None)]
    if missing:
        message = f"Missing required configuration: {', '.join(missing)}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    return True
