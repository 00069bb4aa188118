"""
Free-tier limits and premium access.

Every limit check reads the profile's stored subscription state and asks it
for effective premium access; nothing here caches entitlement.
"""

import logging
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from stickerswap.config import FREE_ALBUM_LIMIT, FREE_PENDING_TRADE_LIMIT
from stickerswap.db import operations
from stickerswap.models.failure import (
    AlbumLimitExceededError,
    NotFoundError,
    TradeLimitExceededError,
)

logger = logging.getLogger(__name__)


async def has_premium_access(
    session: AsyncSession, user_id: str, now: datetime | None = None
) -> bool:
    """
    True if the user currently holds premium access.

    Raises:
        NotFoundError: If the user does not exist
    """
    profile = await operations.get_profile(session, user_id)
    if profile is None:
        raise NotFoundError("User", user_id)
    return operations.profile_to_subscription(profile).has_premium_access(now)


async def check_trade_limit(
    session: AsyncSession, user_id: str, now: datetime | None = None
) -> None:
    """
    Refuse a new proposal from a free user at the pending-trade cap.

    Raises:
        TradeLimitExceededError: If the cap is reached
    """
    if await has_premium_access(session, user_id, now):
        return
    pending = await operations.count_pending_sent(session, user_id)
    if pending >= FREE_PENDING_TRADE_LIMIT:
        logger.info(
            "User %s refused new trade: %d pending on free tier", user_id, pending
        )
        raise TradeLimitExceededError(FREE_PENDING_TRADE_LIMIT)


async def check_album_limit(
    session: AsyncSession, user_id: str, now: datetime | None = None
) -> None:
    """
    Refuse a new album instance for a free user at the album cap.

    Raises:
        AlbumLimitExceededError: If the cap is reached
    """
    if await has_premium_access(session, user_id, now):
        return
    albums = await operations.count_albums(session, user_id)
    if albums >= FREE_ALBUM_LIMIT:
        logger.info("User %s refused new album: %d albums on free tier", user_id, albums)
        raise AlbumLimitExceededError(FREE_ALBUM_LIMIT)
