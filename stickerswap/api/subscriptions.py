"""
Subscription endpoints.

Read a user's premium state and ask the payment provider to stop future
charges. State itself changes only through the webhooks.
"""

from datetime import UTC, datetime
from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from stickerswap.config import FREE_ALBUM_LIMIT, FREE_PENDING_TRADE_LIMIT
from stickerswap.db import count_albums, count_pending_sent, get_profile, profile_to_subscription
from stickerswap.db.database import get_session
from stickerswap.models.failure import FailureKind, KnownError, NotFoundError
from stickerswap.models.subscription import SubscriptionStatus
from stickerswap.services.asaas_client import cancel_active_subscription

router = APIRouter(prefix="/users/{user_id}/subscription", tags=["subscriptions"])


class UsageResponse(BaseModel):
    """Free-tier usage; limits are None for premium users."""

    albums: int
    album_limit: int | None = None
    pending_trades: int
    pending_trade_limit: int | None = None


class SubscriptionResponse(BaseModel):
    user_id: str
    is_premium: bool
    status: SubscriptionStatus
    valid_until: datetime | None = None
    has_premium_access: bool = Field(
        ..., description="Effective access, including the grace period after cancelling"
    )
    usage: UsageResponse


class CancelResponse(BaseModel):
    user_id: str
    cancelled: bool
    message: str


@router.get("", response_model=SubscriptionResponse)
async def read_subscription(
    user_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> SubscriptionResponse:
    profile = await get_profile(session, user_id)
    if profile is None:
        raise NotFoundError("User", user_id)

    state = profile_to_subscription(profile)
    premium = state.has_premium_access(datetime.now(UTC))
    usage = UsageResponse(
        albums=await count_albums(session, user_id),
        album_limit=None if premium else FREE_ALBUM_LIMIT,
        pending_trades=await count_pending_sent(session, user_id),
        pending_trade_limit=None if premium else FREE_PENDING_TRADE_LIMIT,
    )
    return SubscriptionResponse(
        user_id=user_id,
        is_premium=state.is_premium,
        status=state.status,
        valid_until=state.valid_until,
        has_premium_access=premium,
        usage=usage,
    )


@router.post("/cancel", response_model=CancelResponse)
async def cancel_subscription(
    user_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> CancelResponse:
    """
    Cancel the user's Asaas subscription.

    Paid access continues until it expires. The local status turns
    ``canceled`` when Asaas delivers the ``SUBSCRIPTION_DELETED`` webhook.
    """
    profile = await get_profile(session, user_id)
    if profile is None:
        raise NotFoundError("User", user_id)
    if not profile.asaas_customer_id:
        raise KnownError(
            kind=FailureKind.NOT_FOUND,
            message="No Asaas subscription is linked to this account.",
            status_code=404,
        )

    result = await cancel_active_subscription(profile.asaas_customer_id)
    if not result.had_active_subscription:
        return CancelResponse(
            user_id=user_id, cancelled=False, message="No active subscription found."
        )
    return CancelResponse(
        user_id=user_id,
        cancelled=True,
        message="Subscription cancelled. Premium stays active until the paid period ends.",
    )
