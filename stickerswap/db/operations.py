"""
Database CRUD operations.

Provides async functions for profiles, album templates, album instances,
sticker ownership, trades and subscription state. Functions flush but never
commit; the caller's session owns the transaction.
"""

import logging
from collections.abc import Iterable
from typing import Literal

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from stickerswap.models.db import (
    AlbumTemplateDB,
    ProfileDB,
    StickerOwnershipDB,
    TemplateStickerDB,
    TradeDB,
    UserAlbumDB,
)
from stickerswap.models.failure import InsufficientStockError
from stickerswap.models.ownership import OwnershipSnapshot
from stickerswap.models.subscription import (
    PaymentProvider,
    SubscriptionState,
    SubscriptionStatus,
    SubscriptionUpdate,
    as_utc,
)
from stickerswap.models.trade import TradeProposal, TradeStatus

logger = logging.getLogger(__name__)

TradeDirection = Literal["received", "sent"]

# --- Profile Operations ---


async def get_profile(session: AsyncSession, user_id: str) -> ProfileDB | None:
    """
    Get a profile by user id, re-reading subscription fields from the store.

    Returns None if the user does not exist.
    """
    result = await session.execute(
        select(ProfileDB)
        .where(ProfileDB.id == user_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_profiles(session: AsyncSession, user_ids: Iterable[str]) -> dict[str, ProfileDB]:
    """Get several profiles keyed by id. Unknown ids are left out."""
    ids = set(user_ids)
    if not ids:
        return {}
    result = await session.execute(select(ProfileDB).where(ProfileDB.id.in_(ids)))
    return {p.id: p for p in result.scalars().all()}


async def create_profile(
    session: AsyncSession,
    user_id: str,
    username: str,
    avatar_url: str | None = None,
    asaas_customer_id: str | None = None,
    stripe_customer_id: str | None = None,
) -> ProfileDB:
    """
    Create a profile.

    Raises IntegrityError if the id, username or a customer id is taken.
    """
    profile = ProfileDB(
        id=user_id,
        username=username,
        avatar_url=avatar_url,
        is_premium=False,
        subscription_status=SubscriptionStatus.INACTIVE.value,
        asaas_customer_id=asaas_customer_id,
        stripe_customer_id=stripe_customer_id,
    )
    session.add(profile)
    await session.flush()
    return profile


async def search_profiles(
    session: AsyncSession, term: str, exclude_user_id: str | None = None, limit: int = 50
) -> list[ProfileDB]:
    """Profiles whose username contains ``term`` (case-insensitive)."""
    stmt = select(ProfileDB).where(func.lower(ProfileDB.username).contains(term.lower()))
    if exclude_user_id is not None:
        stmt = stmt.where(ProfileDB.id != exclude_user_id)
    result = await session.execute(stmt.order_by(ProfileDB.username).limit(limit))
    return list(result.scalars().all())


def profile_to_subscription(profile: ProfileDB) -> SubscriptionState:
    """Convert a profile row to its subscription state."""
    return SubscriptionState(
        is_premium=bool(profile.is_premium),
        status=SubscriptionStatus(profile.subscription_status),
        valid_until=as_utc(profile.premium_valid_until),
        asaas_customer_id=profile.asaas_customer_id,
        stripe_customer_id=profile.stripe_customer_id,
    )


async def apply_subscription_update(
    session: AsyncSession,
    provider: PaymentProvider,
    customer_id: str,
    subscription_update: SubscriptionUpdate,
) -> bool:
    """
    Overwrite subscription fields of the profile owning ``customer_id``.

    Issued as a single UPDATE keyed by the customer id: no read-modify-write,
    so concurrent or re-delivered events cannot interleave a stale read.

    Returns False when no profile carries the customer id.
    """
    values = subscription_update.values()
    if not values:
        return False

    column = getattr(ProfileDB, provider.customer_column)
    result = await session.execute(
        update(ProfileDB)
        .where(column == customer_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return int(result.rowcount) > 0  # type: ignore[attr-defined]


# --- Album Template Operations ---


async def create_template(
    session: AsyncSession,
    name: str,
    total_stickers: int,
    stickers: Iterable[tuple[int, str, str | None]] = (),
    cover_image: str | None = None,
) -> AlbumTemplateDB:
    """
    Create an album template.

    Args:
        stickers: Optional (number, code, section) rows for display
    """
    template = AlbumTemplateDB(name=name, total_stickers=total_stickers, cover_image=cover_image)
    template.stickers = [
        TemplateStickerDB(number=number, code=code, section=section)
        for number, code, section in stickers
    ]
    session.add(template)
    await session.flush()
    return template


async def get_template(session: AsyncSession, template_id: int) -> AlbumTemplateDB | None:
    """Get a template with its sticker codes loaded."""
    result = await session.execute(
        select(AlbumTemplateDB)
        .where(AlbumTemplateDB.id == template_id)
        .options(selectinload(AlbumTemplateDB.stickers))
    )
    return result.scalar_one_or_none()


async def list_templates(session: AsyncSession) -> list[AlbumTemplateDB]:
    result = await session.execute(select(AlbumTemplateDB).order_by(AlbumTemplateDB.name))
    return list(result.scalars().all())


# --- Album Instance Operations ---


async def create_album(
    session: AsyncSession,
    user_id: str,
    template_id: int,
    nickname: str | None = None,
    is_public: bool = True,
) -> UserAlbumDB:
    """Create an album instance for a user. No ownership rows are created."""
    album = UserAlbumDB(
        user_id=user_id,
        template_id=template_id,
        nickname=nickname,
        is_public=is_public,
    )
    session.add(album)
    await session.flush()
    return album


async def get_album(session: AsyncSession, album_id: int) -> UserAlbumDB | None:
    result = await session.execute(select(UserAlbumDB).where(UserAlbumDB.id == album_id))
    return result.scalar_one_or_none()


async def list_albums(
    session: AsyncSession, user_id: str, template_id: int | None = None
) -> list[UserAlbumDB]:
    """A user's album instances, optionally restricted to one template."""
    stmt = select(UserAlbumDB).where(UserAlbumDB.user_id == user_id)
    if template_id is not None:
        stmt = stmt.where(UserAlbumDB.template_id == template_id)
    result = await session.execute(stmt.order_by(UserAlbumDB.id))
    return list(result.scalars().all())


async def count_albums(session: AsyncSession, user_id: str) -> int:
    result = await session.execute(
        select(func.count(UserAlbumDB.id)).where(UserAlbumDB.user_id == user_id)
    )
    return int(result.scalar_one())


async def list_public_albums(
    session: AsyncSession, template_id: int, exclude_user_id: str | None = None
) -> list[UserAlbumDB]:
    """Public album instances of a template, other than ``exclude_user_id``'s."""
    stmt = select(UserAlbumDB).where(
        UserAlbumDB.template_id == template_id,
        UserAlbumDB.is_public.is_(True),
    )
    if exclude_user_id is not None:
        stmt = stmt.where(UserAlbumDB.user_id != exclude_user_id)
    result = await session.execute(stmt.order_by(UserAlbumDB.id))
    return list(result.scalars().all())


# --- Sticker Ownership Operations ---


async def read_snapshot(session: AsyncSession, album_id: int) -> OwnershipSnapshot:
    """Read every ownership row of an album into a snapshot."""
    result = await session.execute(
        select(StickerOwnershipDB.sticker_number, StickerOwnershipDB.count).where(
            StickerOwnershipDB.user_album_id == album_id
        )
    )
    return OwnershipSnapshot(counts={number: count for number, count in result.all()})


async def read_snapshots(
    session: AsyncSession, album_ids: Iterable[int]
) -> dict[int, OwnershipSnapshot]:
    """Read several albums at once. Albums without rows get an empty snapshot."""
    ids = list(album_ids)
    snapshots = {album_id: OwnershipSnapshot() for album_id in ids}
    if not ids:
        return snapshots
    result = await session.execute(
        select(
            StickerOwnershipDB.user_album_id,
            StickerOwnershipDB.sticker_number,
            StickerOwnershipDB.count,
        ).where(StickerOwnershipDB.user_album_id.in_(ids))
    )
    for album_id, number, count in result.all():
        snapshots[album_id].counts[number] = count
    return snapshots


async def _shift_count(
    session: AsyncSession, user_id: str, album_id: int, number: int, delta: int
) -> None:
    """
    Add ``delta`` to one ownership row, flooring at zero.

    The arithmetic happens in the UPDATE itself so concurrent writers never
    overwrite each other with a stale count. A missing row is created.
    """
    shifted = StickerOwnershipDB.count + delta
    result = await session.execute(
        update(StickerOwnershipDB)
        .where(
            StickerOwnershipDB.user_album_id == album_id,
            StickerOwnershipDB.sticker_number == number,
        )
        .values(count=case((shifted < 0, 0), else_=shifted))
        .execution_options(synchronize_session=False)
    )
    if int(result.rowcount) == 0:  # type: ignore[attr-defined]
        session.add(
            StickerOwnershipDB(
                user_id=user_id,
                user_album_id=album_id,
                sticker_number=number,
                count=max(delta, 0),
            )
        )
        await session.flush()


async def get_sticker_count(session: AsyncSession, album_id: int, number: int) -> int:
    result = await session.execute(
        select(StickerOwnershipDB.count).where(
            StickerOwnershipDB.user_album_id == album_id,
            StickerOwnershipDB.sticker_number == number,
        )
    )
    return int(result.scalar_one_or_none() or 0)


async def adjust_sticker_count(
    session: AsyncSession, album: UserAlbumDB, number: int, delta: int
) -> int:
    """
    Increment or decrement one sticker of an album.

    Returns the new count (never negative).
    """
    await _shift_count(session, album.user_id, album.id, number, delta)
    return await get_sticker_count(session, album.id, number)


async def set_sticker_count(
    session: AsyncSession, album: UserAlbumDB, number: int, count: int
) -> int:
    """Overwrite one sticker's count (upsert by album + number)."""
    result = await session.execute(
        update(StickerOwnershipDB)
        .where(
            StickerOwnershipDB.user_album_id == album.id,
            StickerOwnershipDB.sticker_number == number,
        )
        .values(count=count)
        .execution_options(synchronize_session=False)
    )
    if int(result.rowcount) == 0:  # type: ignore[attr-defined]
        session.add(
            StickerOwnershipDB(
                user_id=album.user_id,
                user_album_id=album.id,
                sticker_number=number,
                count=count,
            )
        )
        await session.flush()
    return count


async def reset_album(session: AsyncSession, album_id: int) -> int:
    """
    Zero every sticker count of an album, keeping the album itself.

    Returns the number of rows that held stickers.
    """
    result = await session.execute(
        update(StickerOwnershipDB)
        .where(StickerOwnershipDB.user_album_id == album_id, StickerOwnershipDB.count > 0)
        .values(count=0)
        .execution_options(synchronize_session=False)
    )
    return int(result.rowcount)  # type: ignore[attr-defined]


# --- Trade Operations ---


async def create_trade(
    session: AsyncSession,
    sender_id: str,
    receiver_id: str,
    sender_album_id: int,
    offer: list[int],
    request: list[int],
) -> TradeDB:
    """Record a new pending trade."""
    trade = TradeDB(
        sender_id=sender_id,
        receiver_id=receiver_id,
        sender_album_id=sender_album_id,
        offer_stickers=sorted(offer),
        request_stickers=sorted(request),
        status=TradeStatus.PENDING.value,
    )
    session.add(trade)
    await session.flush()
    return trade


async def get_trade(session: AsyncSession, trade_id: int) -> TradeDB | None:
    """Get a trade, always re-reading its current status from the store."""
    result = await session.execute(
        select(TradeDB).where(TradeDB.id == trade_id).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def list_trades(
    session: AsyncSession,
    user_id: str,
    direction: TradeDirection,
    status: TradeStatus | None = None,
) -> list[TradeDB]:
    """Trades a user received or sent, newest first."""
    party = TradeDB.receiver_id if direction == "received" else TradeDB.sender_id
    stmt = select(TradeDB).where(party == user_id)
    if status is not None:
        stmt = stmt.where(TradeDB.status == status.value)
    result = await session.execute(
        stmt.order_by(TradeDB.created_at.desc(), TradeDB.id.desc()).execution_options(
            populate_existing=True
        )
    )
    return list(result.scalars().all())


async def count_pending_sent(session: AsyncSession, user_id: str) -> int:
    """Pending trades a user has sent, across all of their albums."""
    result = await session.execute(
        select(func.count(TradeDB.id)).where(
            TradeDB.sender_id == user_id,
            TradeDB.status == TradeStatus.PENDING.value,
        )
    )
    return int(result.scalar_one())


async def locked_stickers(session: AsyncSession, user_id: str, album_id: int) -> set[int]:
    """
    Sticker numbers promised in the user's own pending trades from an album.

    Union of the ``offer`` lists of every pending trade the user sent from
    ``album_id``.
    """
    result = await session.execute(
        select(TradeDB.offer_stickers).where(
            TradeDB.sender_id == user_id,
            TradeDB.sender_album_id == album_id,
            TradeDB.status == TradeStatus.PENDING.value,
        )
    )
    locked: set[int] = set()
    for (offer,) in result.all():
        locked.update(int(n) for n in offer or [])
    return locked


async def transition_trade(
    session: AsyncSession,
    trade_id: int,
    expected: TradeStatus,
    new: TradeStatus,
    receiver_album_id: int | None = None,
) -> bool:
    """
    Compare-and-swap a trade's status.

    Sets ``new`` only where the stored status still equals ``expected``.
    Returns False when zero rows matched: someone else moved the trade first.
    """
    values: dict[str, object] = {"status": new.value}
    if receiver_album_id is not None:
        values["receiver_album_id"] = receiver_album_id

    result = await session.execute(
        update(TradeDB)
        .where(TradeDB.id == trade_id, TradeDB.status == expected.value)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return int(result.rowcount) == 1  # type: ignore[attr-defined]


async def _missing_stock(
    session: AsyncSession, album_id: int, numbers: list[int]
) -> list[int]:
    """Numbers of ``numbers`` the album holds no copy of. Locks the rows read."""
    if not numbers:
        return []
    result = await session.execute(
        select(StickerOwnershipDB.sticker_number, StickerOwnershipDB.count)
        .where(
            StickerOwnershipDB.user_album_id == album_id,
            StickerOwnershipDB.sticker_number.in_(numbers),
        )
        .with_for_update()
    )
    held = {number: count for number, count in result.all()}
    return [n for n in numbers if held.get(n, 0) < 1]


async def execute_trade(
    session: AsyncSession,
    trade: TradeDB,
    receiver_album: UserAlbumDB,
    check_stock: bool = True,
) -> bool:
    """
    Move stock for an accepted trade and flip it to ``accepted``.

    Sender album: -1 per offered sticker (floor 0), +1 per requested sticker.
    Receiver album: +1 per offered sticker, -1 per requested sticker (floor 0).

    All writes share the caller's transaction; the caller rolls back on any
    exception so status and stock move together or not at all.

    Returns False when the trade was no longer pending (nothing written).

    Raises:
        InsufficientStockError: If ``check_stock`` and a side lacks a sticker
    """
    offer = [int(n) for n in trade.offer_stickers]
    request = [int(n) for n in trade.request_stickers]

    if check_stock:
        sender_missing = await _missing_stock(session, trade.sender_album_id, offer)
        if sender_missing:
            raise InsufficientStockError(trade.sender_id, sender_missing)
        receiver_missing = await _missing_stock(session, receiver_album.id, request)
        if receiver_missing:
            raise InsufficientStockError(trade.receiver_id, receiver_missing)

    swapped = await transition_trade(
        session,
        trade.id,
        expected=TradeStatus.PENDING,
        new=TradeStatus.ACCEPTED,
        receiver_album_id=receiver_album.id,
    )
    if not swapped:
        return False

    for number in offer:
        await _shift_count(session, trade.sender_id, trade.sender_album_id, number, -1)
        await _shift_count(session, trade.receiver_id, receiver_album.id, number, +1)
    for number in request:
        await _shift_count(session, trade.sender_id, trade.sender_album_id, number, +1)
        await _shift_count(session, trade.receiver_id, receiver_album.id, number, -1)

    await session.flush()
    logger.debug(
        "Moved %d offered and %d requested stickers for trade %d",
        len(offer),
        len(request),
        trade.id,
    )
    return True


def trade_to_model(trade: TradeDB) -> TradeProposal:
    """Convert a database trade to a domain model."""
    return TradeProposal(
        id=trade.id,
        sender_id=trade.sender_id,
        receiver_id=trade.receiver_id,
        sender_album_id=trade.sender_album_id,
        offer=[int(n) for n in trade.offer_stickers],
        request=[int(n) for n in trade.request_stickers],
        status=TradeStatus(trade.status),
        receiver_album_id=trade.receiver_album_id,
        created_at=as_utc(trade.created_at),
    )
