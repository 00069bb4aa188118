from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(env_file=".env")

    app_name: str = "StickerSwap"
    debug: bool = False

    database_url: str = "postgresql+asyncpg://localhost:5432/stickerswap"

    # Provider A (Asaas)
    asaas_webhook_secret: str = ""
    asaas_api_url: str = "https://www.asaas.com/api/v3"
    asaas_api_key: str = ""

    # Provider B (Stripe)
    stripe_webhook_secret: str = ""
    stripe_signature_tolerance_seconds: int = 300

    # Refuse an accept when either side no longer holds the stickers it gives
    enforce_stock_on_accept: bool = True


settings = Settings()


# =============================================================================
# FREE TIER LIMITS
# =============================================================================

# Concurrent pending trades a free user may have sent
FREE_PENDING_TRADE_LIMIT = 3

# Album instances a free user may keep on the dashboard
FREE_ALBUM_LIMIT = 3

# Access granted by a one-off payment confirmation
PREMIUM_PERIOD_DAYS = 30
