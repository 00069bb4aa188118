"""
Trade endpoints.

Propose, list, accept, reject and cancel trades. The acting user is the
``user_id`` in the path; the service checks they are the right party.
"""

from datetime import datetime
from typing import Annotated, Literal

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field, model_validator
from sqlalchemy.ext.asyncio import AsyncSession

from stickerswap.db.database import get_session
from stickerswap.models.failure import FailureKind, KnownError
from stickerswap.models.trade import TradeProposal, TradeStatus
from stickerswap.services import trades as trade_service

router = APIRouter(prefix="/users/{user_id}/trades", tags=["trades"])


class TradeCreateRequest(BaseModel):
    """
    Request model for a new proposal.

    Either name the other album (``their_album_id``) and optionally narrow
    the match sets, or name the receiver and give both lists explicitly.
    """

    sender_album_id: int
    their_album_id: int | None = None
    receiver_id: str | None = None
    offer: list[int] | None = Field(default=None, description="Stickers you give")
    request: list[int] | None = Field(default=None, description="Stickers you receive")

    @model_validator(mode="after")
    def _require_counterpart(self) -> "TradeCreateRequest":
        if self.their_album_id is None and self.receiver_id is None:
            raise ValueError("their_album_id or receiver_id is required")
        return self


class TradeAcceptRequest(BaseModel):
    receiver_album_id: int = Field(..., description="Your album that receives the stickers")


class TradeResponse(BaseModel):
    id: int
    sender_id: str
    receiver_id: str
    sender_album_id: int
    receiver_album_id: int | None = None
    offer: list[int]
    request: list[int]
    status: TradeStatus
    created_at: datetime | None = None


class TradeListResponse(BaseModel):
    user_id: str
    direction: Literal["received", "sent"]
    trades: list[TradeResponse]
    count: int


def _to_response(trade: TradeProposal) -> TradeResponse:
    return TradeResponse(
        id=trade.id,
        sender_id=trade.sender_id,
        receiver_id=trade.receiver_id,
        sender_album_id=trade.sender_album_id,
        receiver_album_id=trade.receiver_album_id,
        offer=trade.offer,
        request=trade.request,
        status=trade.status,
        created_at=trade.created_at,
    )


@router.post("", response_model=TradeResponse, status_code=status.HTTP_201_CREATED)
async def propose(
    user_id: str,
    request: TradeCreateRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> TradeResponse:
    """
    Propose a trade.

    Refusals: 409 when an offered sticker is already in a pending offer,
    403 when a free account is at its pending-trade limit.
    """
    if request.their_album_id is not None:
        trade = await trade_service.propose_from_match(
            session,
            sender_id=user_id,
            sender_album_id=request.sender_album_id,
            their_album_id=request.their_album_id,
            offer=request.offer,
            request=request.request,
        )
    elif request.receiver_id is None:
        raise KnownError(
            kind=FailureKind.INVALID_INPUT,
            message="Name the receiver or the album you want to trade with.",
        )
    elif request.offer is None and request.request is None:
        raise KnownError(
            kind=FailureKind.INVALID_INPUT,
            message="List the stickers to offer or request.",
        )
    else:
        trade = await trade_service.propose_trade(
            session,
            sender_id=user_id,
            receiver_id=request.receiver_id,
            sender_album_id=request.sender_album_id,
            offer=request.offer or [],
            request=request.request or [],
        )
    return _to_response(trade)


@router.get("", response_model=TradeListResponse)
async def list_trades(
    user_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
    direction: Literal["received", "sent"] = "received",
    trade_status: Annotated[TradeStatus | None, Query(alias="status")] = None,
) -> TradeListResponse:
    """Trades received or sent by the user, newest first."""
    trades = await trade_service.list_user_trades(session, user_id, direction, trade_status)
    return TradeListResponse(
        user_id=user_id,
        direction=direction,
        trades=[_to_response(t) for t in trades],
        count=len(trades),
    )


@router.get("/{trade_id}", response_model=TradeResponse)
async def read_trade(
    user_id: str,
    trade_id: int,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> TradeResponse:
    trade = await trade_service.get_trade_for_party(session, trade_id, user_id)
    return _to_response(trade)


@router.post("/{trade_id}/accept", response_model=TradeResponse)
async def accept(
    user_id: str,
    trade_id: int,
    request: TradeAcceptRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> TradeResponse:
    """
    Accept a trade and move the stickers.

    Returns 409 if the trade was already processed or a sticker is no
    longer available; the trade then stays as it was.
    """
    trade = await trade_service.accept_trade(
        session, trade_id, user_id, request.receiver_album_id
    )
    return _to_response(trade)


@router.post("/{trade_id}/reject", response_model=TradeResponse)
async def reject(
    user_id: str,
    trade_id: int,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> TradeResponse:
    trade = await trade_service.reject_trade(session, trade_id, user_id)
    return _to_response(trade)


@router.post("/{trade_id}/cancel", response_model=TradeResponse)
async def cancel(
    user_id: str,
    trade_id: int,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> TradeResponse:
    """Withdraw a pending trade you sent."""
    trade = await trade_service.cancel_trade(session, trade_id, user_id)
    return _to_response(trade)
