from __future__ import annotations
import os
from pydantic import BaseModel

class Settings(BaseModel):
    environment: str = os.getenv("ENVIRONMENT", "dev")
    app_name: str = os.getenv("APP_NAME", "credit-ledger-api")
    app_display_name: str = os.getenv("APP_DISPLAY_NAME", "Credit Ledger")
    app_version: str = os.getenv("APP_VERSION", "0.1.0")
    git_sha: str = os.getenv("GIT_SHA", "dev")
    api_host: str = os.getenv("API_HOST", "0.0.0.0")
    api_port: int = int(os.getenv("API_PORT", "8000"))
    cors_origins: list[str] = os.getenv("CORS_ORIGINS", "*").split(",")
    database_url: str = os.getenv("DATABASE_URL", "postgresql+asyncpg://postgres:postgres@db:5432/credit_ledger_dev")
    redis_url: str = os.getenv("REDIS_URL", "redis://redis:6379/0")

    # Auth (tokens are issued by the identity service; we only verify)
    jwt_secret: str = os.getenv("JWT_SECRET", "dev-secret-change-me")
    internal_api_token: str = os.getenv("INTERNAL_API_TOKEN", "dev-internal-token")

    # Stripe configuration
    stripe_secret_key: str = os.getenv("STRIPE_SECRET_KEY", "")
    stripe_webhook_secret: str = os.getenv("STRIPE_WEBHOOK_SECRET", "")
    credit_value_usd_cents: int = int(os.getenv("CREDIT_VALUE_USD_CENTS", "1"))  # 1 Earned Credit = 1 cent

    # Ledger
    genesis_initial_grant: int = int(os.getenv("GENESIS_INITIAL_GRANT", "100"))
    ledger_retry_attempts: int = int(os.getenv("LEDGER_RETRY_ATTEMPTS", "5"))
    ledger_retry_base_delay_ms: int = int(os.getenv("LEDGER_RETRY_BASE_DELAY_MS", "20"))
    ledger_page_max: int = int(os.getenv("LEDGER_PAGE_MAX", "200"))

    # Payout reconciliation
    payout_processing_timeout_minutes: int = int(os.getenv("PAYOUT_PROCESSING_TIMEOUT_MINUTES", "4320"))  # 3d
    payout_pending_timeout_minutes: int = int(os.getenv("PAYOUT_PENDING_TIMEOUT_MINUTES", "1440"))  # 1d

    # Contribution earning caps
    contribution_daily_cap: int = int(os.getenv("CONTRIBUTION_DAILY_CAP", "200"))
    contribution_weekly_cap: int = int(os.getenv("CONTRIBUTION_WEEKLY_CAP", "1000"))

settings = Settings()
