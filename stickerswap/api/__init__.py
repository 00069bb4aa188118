from stickerswap.api.albums import router as albums_router
from stickerswap.api.health import router as health_router
from stickerswap.api.matches import router as matches_router
from stickerswap.api.profiles import router as profiles_router
from stickerswap.api.subscriptions import router as subscriptions_router
from stickerswap.api.templates import router as templates_router
from stickerswap.api.trades import router as trades_router
from stickerswap.api.webhooks import router as webhooks_router

__all__ = [
    "albums_router",
    "health_router",
    "matches_router",
    "profiles_router",
    "subscriptions_router",
    "templates_router",
    "trades_router",
    "webhooks_router",
]
