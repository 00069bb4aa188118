from stickerswap.db.database import get_session, init_db
from stickerswap.db.operations import (
    adjust_sticker_count,
    apply_subscription_update,
    count_albums,
    count_pending_sent,
    create_album,
    create_profile,
    create_template,
    create_trade,
    execute_trade,
    get_album,
    get_profile,
    get_profiles,
    get_template,
    get_trade,
    list_albums,
    list_public_albums,
    list_templates,
    list_trades,
    locked_stickers,
    profile_to_subscription,
    read_snapshot,
    read_snapshots,
    reset_album,
    search_profiles,
    set_sticker_count,
    trade_to_model,
    transition_trade,
)

__all__ = [
    "adjust_sticker_count",
    "apply_subscription_update",
    "count_albums",
    "count_pending_sent",
    "create_album",
    "create_profile",
    "create_template",
    "create_trade",
    "execute_trade",
    "get_album",
    "get_profile",
    "get_profiles",
    "get_session",
    "get_template",
    "get_trade",
    "init_db",
    "list_albums",
    "list_public_albums",
    "list_templates",
    "list_trades",
    "locked_stickers",
    "profile_to_subscription",
    "read_snapshot",
    "read_snapshots",
    "reset_album",
    "search_profiles",
    "set_sticker_count",
    "trade_to_model",
    "transition_trade",
]
