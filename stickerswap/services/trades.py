"""
Trade proposal lifecycle.

pending -> accepted | rejected | cancelled, each transition applied once.

Every transition is a compare-and-swap on the stored status, so two
concurrent actions on the same trade cannot both succeed: the loser gets
``TradeAlreadyProcessedError`` with the status the winner left behind.
Accept additionally moves stock in the same transaction as the status flip.
"""

import logging
from collections.abc import Iterable
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from stickerswap.config import settings
from stickerswap.db import operations
from stickerswap.db.operations import TradeDirection
from stickerswap.models.db import TradeDB
from stickerswap.models.failure import (
    FailureKind,
    ForbiddenError,
    InsufficientStockError,
    InvalidStickerError,
    KnownError,
    NotFoundError,
    StickerLockedError,
    TemplateMismatchError,
    TradeAlreadyProcessedError,
    TradeTransferError,
)
from stickerswap.models.trade import TradeAction, TradeProposal, TradeStatus, next_status
from stickerswap.services.entitlements import check_trade_limit
from stickerswap.services.matching import match_albums, select_for_proposal

logger = logging.getLogger(__name__)


def validate_sticker_lists(offer: list[int], request: list[int], total_stickers: int) -> None:
    """
    Check the two sticker lists of a proposal against the template.

    Raises:
        InvalidStickerError: On duplicates, out-of-range numbers, overlap
            between the lists, or two empty lists
    """
    if not offer and not request:
        raise InvalidStickerError("A trade must offer or request at least one sticker.")

    for numbers in (offer, request):
        duplicates = sorted({n for n in numbers if numbers.count(n) > 1})
        if duplicates:
            raise InvalidStickerError("Sticker numbers must not repeat.", duplicates)

    out_of_range = sorted(n for n in {*offer, *request} if not 1 <= n <= total_stickers)
    if out_of_range:
        raise InvalidStickerError(
            f"Sticker numbers must be between 1 and {total_stickers}.", out_of_range
        )

    overlap = sorted(set(offer) & set(request))
    if overlap:
        raise InvalidStickerError("A sticker cannot be both offered and requested.", overlap)


async def propose_trade(
    session: AsyncSession,
    sender_id: str,
    receiver_id: str,
    sender_album_id: int,
    offer: Iterable[int],
    request: Iterable[int],
    now: datetime | None = None,
) -> TradeProposal:
    """
    Create a pending trade.

    Raises:
        KnownError: If the sender proposes to themselves
        NotFoundError: If the receiver or album does not exist
        ForbiddenError: If the album is not the sender's
        InvalidStickerError: If the sticker lists are malformed
        StickerLockedError: If an offered sticker is promised elsewhere
        TradeLimitExceededError: If a free sender is at the pending cap
    """
    offer_list = [int(n) for n in offer]
    request_list = [int(n) for n in request]

    if sender_id == receiver_id:
        raise KnownError(
            kind=FailureKind.INVALID_INPUT,
            message="You cannot propose a trade to yourself.",
        )
    if await operations.get_profile(session, receiver_id) is None:
        raise NotFoundError("User", receiver_id)

    album = await operations.get_album(session, sender_album_id)
    if album is None:
        raise NotFoundError("Album", sender_album_id)
    if album.user_id != sender_id:
        raise ForbiddenError(
            "You can only trade from your own albums.",
            detail=f"album {sender_album_id} belongs to another user",
        )

    template = await operations.get_template(session, album.template_id)
    if template is None:
        raise NotFoundError("Album template", album.template_id)
    validate_sticker_lists(offer_list, request_list, template.total_stickers)

    locked = await operations.locked_stickers(session, sender_id, sender_album_id)
    already_promised = sorted(set(offer_list) & locked)
    if already_promised:
        raise StickerLockedError(already_promised)

    await check_trade_limit(session, sender_id, now)

    trade = await operations.create_trade(
        session,
        sender_id=sender_id,
        receiver_id=receiver_id,
        sender_album_id=sender_album_id,
        offer=offer_list,
        request=request_list,
    )
    logger.info(
        "Trade %d proposed by %s to %s (offer=%s, request=%s)",
        trade.id,
        sender_id,
        receiver_id,
        trade.offer_stickers,
        trade.request_stickers,
    )
    return operations.trade_to_model(trade)


async def _load_for_action(
    session: AsyncSession, trade_id: int, user_id: str, action: TradeAction
) -> TradeDB:
    trade = await operations.get_trade(session, trade_id)
    if trade is None:
        raise NotFoundError("Trade", trade_id)

    proposal = operations.trade_to_model(trade)
    if not proposal.may_act(user_id, action):
        raise ForbiddenError(
            f"You cannot {action.value} this trade.",
            detail=f"user {user_id} is not the party allowed to {action.value}",
        )
    if next_status(proposal.status, action) is None:
        raise TradeAlreadyProcessedError(trade_id, proposal.status.value)
    return trade


async def _already_processed(session: AsyncSession, trade_id: int) -> TradeAlreadyProcessedError:
    current = await operations.get_trade(session, trade_id)
    status = current.status if current is not None else "missing"
    return TradeAlreadyProcessedError(trade_id, status)


async def accept_trade(
    session: AsyncSession,
    trade_id: int,
    user_id: str,
    receiver_album_id: int,
) -> TradeProposal:
    """
    Accept a pending trade into one of the receiver's albums.

    The destination album is chosen explicitly by the receiver. Status and
    stock move together: on any failure the transaction is rolled back and
    the trade stays pending.

    Raises:
        NotFoundError: If the trade or destination album does not exist
        ForbiddenError: If the user is not the receiver or the destination
            album is not theirs
        TemplateMismatchError: If the destination is another edition
        TradeAlreadyProcessedError: If the trade is no longer pending
        InsufficientStockError: If a side no longer holds a sticker it gives
        TradeTransferError: If the transfer failed for any other reason
    """
    trade = await _load_for_action(session, trade_id, user_id, TradeAction.ACCEPT)

    destination = await operations.get_album(session, receiver_album_id)
    if destination is None:
        raise NotFoundError("Album", receiver_album_id)
    if destination.user_id != user_id:
        raise ForbiddenError(
            "Stickers can only be received into your own album.",
            detail=f"album {receiver_album_id} belongs to another user",
        )

    source = await operations.get_album(session, trade.sender_album_id)
    if source is None:
        raise NotFoundError("Album", trade.sender_album_id)
    if source.template_id != destination.template_id:
        raise TemplateMismatchError(source.template_id, destination.template_id)

    try:
        moved = await operations.execute_trade(
            session,
            trade,
            destination,
            check_stock=settings.enforce_stock_on_accept,
        )
    except InsufficientStockError as e:
        await session.rollback()
        logger.info("Trade %d not accepted: %s", trade_id, e.detail)
        raise
    except Exception as e:
        await session.rollback()
        logger.exception("Transfer for trade %d failed, rolled back", trade_id)
        raise TradeTransferError(trade_id) from e

    if not moved:
        raise await _already_processed(session, trade_id)

    logger.info("Trade %d accepted by %s into album %d", trade_id, user_id, receiver_album_id)
    accepted = await operations.get_trade(session, trade_id)
    assert accepted is not None
    return operations.trade_to_model(accepted)


async def _close_trade(
    session: AsyncSession, trade_id: int, user_id: str, action: TradeAction
) -> TradeProposal:
    """Move a pending trade to rejected or cancelled. No stock moves."""
    await _load_for_action(session, trade_id, user_id, action)
    target = next_status(TradeStatus.PENDING, action)
    assert target is not None

    swapped = await operations.transition_trade(
        session, trade_id, expected=TradeStatus.PENDING, new=target
    )
    if not swapped:
        raise await _already_processed(session, trade_id)

    logger.info("Trade %d %s by %s", trade_id, target.value, user_id)
    closed = await operations.get_trade(session, trade_id)
    assert closed is not None
    return operations.trade_to_model(closed)


async def reject_trade(session: AsyncSession, trade_id: int, user_id: str) -> TradeProposal:
    """
    Reject a pending trade (receiver only).

    Raises:
        NotFoundError, ForbiddenError, TradeAlreadyProcessedError
    """
    return await _close_trade(session, trade_id, user_id, TradeAction.REJECT)


async def cancel_trade(session: AsyncSession, trade_id: int, user_id: str) -> TradeProposal:
    """
    Withdraw a pending trade (sender only).

    Losing a race against accept or reject raises
    ``TradeAlreadyProcessedError`` carrying the status now stored.
    """
    return await _close_trade(session, trade_id, user_id, TradeAction.CANCEL)


async def get_trade_for_party(
    session: AsyncSession, trade_id: int, user_id: str
) -> TradeProposal:
    """Read one trade; only its sender or receiver may see it."""
    trade = await operations.get_trade(session, trade_id)
    if trade is None:
        raise NotFoundError("Trade", trade_id)
    proposal = operations.trade_to_model(trade)
    if proposal.party_of(user_id) is None:
        raise ForbiddenError("You are not part of this trade.")
    return proposal


async def list_user_trades(
    session: AsyncSession,
    user_id: str,
    direction: TradeDirection,
    status: TradeStatus | None = None,
) -> list[TradeProposal]:
    trades = await operations.list_trades(session, user_id, direction, status)
    return [operations.trade_to_model(t) for t in trades]


async def propose_from_match(
    session: AsyncSession,
    sender_id: str,
    sender_album_id: int,
    their_album_id: int,
    offer: Iterable[int] | None = None,
    request: Iterable[int] | None = None,
    now: datetime | None = None,
) -> TradeProposal:
    """
    Propose a trade against another user's album using the match sets.

    Omitted lists default to the full candidate sets; given lists must be
    subsets of them. The receiver is the owner of ``their_album_id``.
    """
    their_album = await operations.get_album(session, their_album_id)
    if their_album is None:
        raise NotFoundError("Album", their_album_id)

    result = await match_albums(session, sender_id, their_album_id, sender_album_id)
    chosen_offer, chosen_request = select_for_proposal(result, offer, request)
    return await propose_trade(
        session,
        sender_id=sender_id,
        receiver_id=their_album.user_id,
        sender_album_id=sender_album_id,
        offer=chosen_offer,
        request=chosen_request,
        now=now,
    )
