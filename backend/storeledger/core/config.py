from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    APP_NAME: str = "storeledger"
    version: str = "0.1.0"
    DEBUG: bool = False
    APP_DATABASE_DSN: str = "sqlite:////tmp/storeledger.db"
    LOG_LEVEL: str = "INFO"
    SQLITE_BUSY_TIMEOUT: float = 30.0

    # Ledger
    CURRENCY: str = "MAD"
    DEFAULT_PAYMENT_TERM_DAYS: int = 30
    # In-process cache; only safe with a single API worker
    ACCOUNT_CACHE_ENABLED: bool = False
    IDEMPOTENCY_MAX_AGE_HOURS: int = 24

    # CORS
    CORS_ORIGINS: str = "http://localhost:8081,http://localhost:19006"


settings = Settings()
