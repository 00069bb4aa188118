"""
StickerSwap services.

Business logic for albums, matching, trades and premium subscriptions.
"""

from stickerswap.services.matching import (
    MatchResult,
    TradePartner,
    compute_matches,
    find_trade_partners,
    match_albums,
    rank_partners,
    select_for_proposal,
)
from stickerswap.services.reconciler import (
    ReconcileOutcome,
    asaas_update,
    reconcile_asaas,
    reconcile_stripe,
    stripe_update,
)
from stickerswap.services.trades import (
    accept_trade,
    cancel_trade,
    propose_from_match,
    propose_trade,
    reject_trade,
)

__all__ = [
    "MatchResult",
    "ReconcileOutcome",
    "TradePartner",
    "accept_trade",
    "asaas_update",
    "cancel_trade",
    "compute_matches",
    "find_trade_partners",
    "match_albums",
    "propose_from_match",
    "propose_trade",
    "rank_partners",
    "reconcile_asaas",
    "reconcile_stripe",
    "reject_trade",
    "select_for_proposal",
    "stripe_update",
]
