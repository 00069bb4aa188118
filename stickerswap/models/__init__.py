from stickerswap.models.failure import (
    STANDARD_MESSAGES,
    STANDARD_SUGGESTIONS,
    ApiResponse,
    FailureDetail,
    FailureKind,
    KnownError,
    OutcomeType,
    RefusalError,
    create_unknown_failure,
    finalize_response,
)
from stickerswap.models.ownership import (
    AlbumProgress,
    OwnershipSnapshot,
    StickerFilter,
    album_progress,
    filter_numbers,
)
from stickerswap.models.subscription import (
    PaymentProvider,
    SubscriptionState,
    SubscriptionStatus,
    SubscriptionUpdate,
)
from stickerswap.models.trade import TradeAction, TradeProposal, TradeStatus

__all__ = [
    "AlbumProgress",
    "ApiResponse",
    "FailureDetail",
    "FailureKind",
    "KnownError",
    "OutcomeType",
    "OwnershipSnapshot",
    "PaymentProvider",
    "RefusalError",
    "STANDARD_MESSAGES",
    "STANDARD_SUGGESTIONS",
    "StickerFilter",
    "SubscriptionState",
    "SubscriptionStatus",
    "SubscriptionUpdate",
    "TradeAction",
    "TradeProposal",
    "TradeStatus",
    "album_progress",
    "create_unknown_failure",
    "filter_numbers",
    "finalize_response",
]
