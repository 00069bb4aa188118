"""Tests for the trade proposal lifecycle."""

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from stickerswap.config import FREE_PENDING_TRADE_LIMIT
from stickerswap.db import (
    apply_subscription_update,
    count_pending_sent,
    create_album,
    create_template,
    get_trade,
    locked_stickers,
    read_snapshot,
    transition_trade,
)
from stickerswap.db import operations
from stickerswap.models.failure import (
    ForbiddenError,
    InsufficientStockError,
    InvalidStickerError,
    KnownError,
    NotFoundError,
    StickerLockedError,
    TemplateMismatchError,
    TradeAlreadyProcessedError,
    TradeLimitExceededError,
    TradeTransferError,
)
from stickerswap.models.subscription import PaymentProvider, SubscriptionStatus, SubscriptionUpdate
from stickerswap.models.trade import TradeStatus
from stickerswap.services.trades import (
    accept_trade,
    cancel_trade,
    propose_from_match,
    propose_trade,
    reject_trade,
    validate_sticker_lists,
)


async def _propose(session: AsyncSession, world, offer, request, sender="alice", receiver="bob"):
    album = world.alice_album if sender == "alice" else world.bob_album
    trade = await propose_trade(session, sender, receiver, album, offer, request)
    await session.commit()
    return trade


async def _make_premium(session: AsyncSession, **fields) -> None:
    await apply_subscription_update(
        session, PaymentProvider.STRIPE, "cus_stripe_alice", SubscriptionUpdate(**fields)
    )
    await session.commit()


class TestValidateStickerLists:
    def test_valid_lists(self) -> None:
        validate_sticker_lists([1, 2], [3], total_stickers=10)

    def test_both_empty(self) -> None:
        with pytest.raises(InvalidStickerError):
            validate_sticker_lists([], [], total_stickers=10)

    def test_out_of_range(self) -> None:
        with pytest.raises(InvalidStickerError) as exc_info:
            validate_sticker_lists([0, 5], [11], total_stickers=10)
        assert exc_info.value.numbers == [0, 11]

    def test_overlap(self) -> None:
        with pytest.raises(InvalidStickerError) as exc_info:
            validate_sticker_lists([1, 2], [2], total_stickers=10)
        assert exc_info.value.numbers == [2]

    def test_duplicates(self) -> None:
        with pytest.raises(InvalidStickerError):
            validate_sticker_lists([4, 4], [], total_stickers=10)


class TestProposeTrade:
    async def test_creates_pending_trade(self, session: AsyncSession, world, stock) -> None:
        await stock(world.alice_album, {5: 2})

        trade = await _propose(session, world, [5], [7])

        assert trade.status is TradeStatus.PENDING
        assert trade.offer == [5]
        assert trade.request == [7]
        assert trade.receiver_album_id is None

    async def test_offer_locks_stickers(self, session: AsyncSession, world) -> None:
        await _propose(session, world, [5, 6], [7])
        assert await locked_stickers(session, "alice", world.alice_album) == {5, 6}

    async def test_locked_sticker_refused(self, session: AsyncSession, world) -> None:
        """The same sticker cannot be promised in two pending trades."""
        await _propose(session, world, [5], [])

        with pytest.raises(StickerLockedError) as exc_info:
            await propose_trade(session, "alice", "carol", world.alice_album, [5, 6], [])

        assert exc_info.value.numbers == [5]
        assert await count_pending_sent(session, "alice") == 1

    async def test_requested_stickers_are_not_locked(self, session: AsyncSession, world) -> None:
        await _propose(session, world, [], [7])
        await _propose(session, world, [], [7], receiver="carol")
        assert await count_pending_sent(session, "alice") == 2

    async def test_cancel_releases_lock(self, session: AsyncSession, world) -> None:
        trade = await _propose(session, world, [5], [])
        await cancel_trade(session, trade.id, "alice")
        await session.commit()

        again = await _propose(session, world, [5], [], receiver="carol")

        assert again.status is TradeStatus.PENDING

    async def test_trade_with_self_refused(self, session: AsyncSession, world) -> None:
        with pytest.raises(KnownError):
            await propose_trade(session, "alice", "alice", world.alice_album, [1], [])

    async def test_unknown_receiver(self, session: AsyncSession, world) -> None:
        with pytest.raises(NotFoundError):
            await propose_trade(session, "alice", "nobody", world.alice_album, [1], [])

    async def test_foreign_album_refused(self, session: AsyncSession, world) -> None:
        with pytest.raises(ForbiddenError):
            await propose_trade(session, "alice", "carol", world.bob_album, [1], [])

    async def test_out_of_template_range(self, session: AsyncSession, world) -> None:
        with pytest.raises(InvalidStickerError):
            await propose_trade(session, "alice", "bob", world.alice_album, [21], [])

    async def test_from_match_defaults_to_full_sets(
        self, session: AsyncSession, world, stock
    ) -> None:
        await stock(world.alice_album, {1: 2, 2: 3})
        await stock(world.bob_album, {9: 2})

        trade = await propose_from_match(session, "alice", world.alice_album, world.bob_album)

        assert trade.receiver_id == "bob"
        assert trade.offer == [1, 2]
        assert trade.request == [9]

    async def test_from_match_rejects_non_candidates(
        self, session: AsyncSession, world, stock
    ) -> None:
        await stock(world.alice_album, {1: 2})
        await stock(world.bob_album, {9: 2})

        with pytest.raises(InvalidStickerError):
            await propose_from_match(
                session, "alice", world.alice_album, world.bob_album, offer=[3]
            )


class TestFreeTierTradeCap:
    async def _fill_cap(self, session: AsyncSession, world) -> None:
        for number in range(1, FREE_PENDING_TRADE_LIMIT + 1):
            await _propose(session, world, [], [number])

    async def test_free_user_refused_at_cap(self, session: AsyncSession, world) -> None:
        """The fourth pending trade of a free user is refused and not stored."""
        await self._fill_cap(session, world)

        with pytest.raises(TradeLimitExceededError) as exc_info:
            await propose_trade(session, "alice", "bob", world.alice_album, [], [10])

        assert "Premium" in (exc_info.value.suggestion or "")
        assert await count_pending_sent(session, "alice") == FREE_PENDING_TRADE_LIMIT

    async def test_closed_trades_do_not_count(self, session: AsyncSession, world) -> None:
        await self._fill_cap(session, world)
        first = (await operations.list_trades(session, "alice", "sent"))[-1]
        await cancel_trade(session, first.id, "alice")
        await session.commit()

        trade = await _propose(session, world, [], [10])

        assert trade.status is TradeStatus.PENDING

    async def test_premium_user_exempt(self, session: AsyncSession, world) -> None:
        await _make_premium(session, is_premium=True, status=SubscriptionStatus.ACTIVE)
        await self._fill_cap(session, world)

        trade = await _propose(session, world, [], [10])

        assert trade.status is TradeStatus.PENDING
        assert await count_pending_sent(session, "alice") == FREE_PENDING_TRADE_LIMIT + 1

    async def test_canceled_premium_within_paid_period(
        self, session: AsyncSession, world
    ) -> None:
        """Cancelling keeps access until the paid period ends."""
        await _make_premium(
            session,
            is_premium=True,
            status=SubscriptionStatus.CANCELED,
            valid_until=datetime.now(UTC) + timedelta(days=5),
        )
        await self._fill_cap(session, world)

        trade = await _propose(session, world, [], [10])

        assert trade.status is TradeStatus.PENDING

    async def test_canceled_premium_after_paid_period(
        self, session: AsyncSession, world
    ) -> None:
        await _make_premium(
            session,
            is_premium=True,
            status=SubscriptionStatus.CANCELED,
            valid_until=datetime.now(UTC) - timedelta(days=1),
        )
        await self._fill_cap(session, world)

        with pytest.raises(TradeLimitExceededError):
            await propose_trade(session, "alice", "bob", world.alice_album, [], [10])


class TestAcceptTrade:
    async def test_accept_moves_stock(self, session: AsyncSession, world, stock) -> None:
        """Alice gives her spare 5 and receives Bob's spare 7."""
        await stock(world.alice_album, {5: 2, 7: 0})
        await stock(world.bob_album, {5: 0, 7: 2})
        trade = await _propose(session, world, [5], [7])

        accepted = await accept_trade(session, trade.id, "bob", world.bob_album)
        await session.commit()

        assert accepted.status is TradeStatus.ACCEPTED
        assert accepted.receiver_album_id == world.bob_album
        alice = await read_snapshot(session, world.alice_album)
        bob = await read_snapshot(session, world.bob_album)
        assert (alice.count(5), alice.count(7)) == (1, 1)
        assert (bob.count(5), bob.count(7)) == (1, 1)

    async def test_only_receiver_may_accept(self, session: AsyncSession, world, stock) -> None:
        await stock(world.alice_album, {5: 2})
        trade = await _propose(session, world, [5], [])

        with pytest.raises(ForbiddenError):
            await accept_trade(session, trade.id, "alice", world.alice_album)

    async def test_destination_must_be_receivers(
        self, session: AsyncSession, world, stock
    ) -> None:
        await stock(world.alice_album, {5: 2})
        trade = await _propose(session, world, [5], [])

        with pytest.raises(ForbiddenError):
            await accept_trade(session, trade.id, "bob", world.alice_album)

    async def test_destination_must_share_template(
        self, session: AsyncSession, world, stock
    ) -> None:
        other = await create_template(session, "Other Edition", 30)
        bob_other = await create_album(session, "bob", other.id)
        await session.commit()
        await stock(world.alice_album, {5: 2})
        trade = await _propose(session, world, [5], [])

        with pytest.raises(TemplateMismatchError):
            await accept_trade(session, trade.id, "bob", bob_other.id)

    async def test_missing_trade(self, session: AsyncSession, world) -> None:
        with pytest.raises(NotFoundError):
            await accept_trade(session, 9999, "bob", world.bob_album)

    async def test_insufficient_stock_leaves_trade_pending(
        self, session: AsyncSession, world, stock
    ) -> None:
        """Alice gave away her copies after proposing; nothing moves."""
        await stock(world.alice_album, {5: 2})
        trade = await _propose(session, world, [5], [])
        await stock(world.alice_album, {5: 0})

        with pytest.raises(InsufficientStockError) as exc_info:
            await accept_trade(session, trade.id, "bob", world.bob_album)

        assert exc_info.value.user_id == "alice"
        stored = await get_trade(session, trade.id)
        assert stored is not None and stored.status == "pending"
        assert (await read_snapshot(session, world.bob_album)).count(5) == 0

    async def test_receiver_stock_checked(self, session: AsyncSession, world, stock) -> None:
        await stock(world.alice_album, {5: 2})
        trade = await _propose(session, world, [5], [7])

        with pytest.raises(InsufficientStockError) as exc_info:
            await accept_trade(session, trade.id, "bob", world.bob_album)

        assert exc_info.value.user_id == "bob"
        assert exc_info.value.numbers == [7]

    async def test_stock_check_can_be_disabled(
        self, session: AsyncSession, world, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Without the check, decrements floor at zero."""
        monkeypatch.setattr("stickerswap.services.trades.settings.enforce_stock_on_accept", False)
        trade = await _propose(session, world, [5], [7])

        await accept_trade(session, trade.id, "bob", world.bob_album)
        await session.commit()

        alice = await read_snapshot(session, world.alice_album)
        bob = await read_snapshot(session, world.bob_album)
        assert (alice.count(5), alice.count(7)) == (0, 1)
        assert (bob.count(5), bob.count(7)) == (1, 0)

    async def test_failed_transfer_rolls_back(
        self, session: AsyncSession, world, stock, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """A failure midway leaves counts and status as before."""
        await stock(world.alice_album, {5: 2, 6: 2})
        await stock(world.bob_album, {7: 2})
        trade = await _propose(session, world, [5, 6], [7])

        original = operations._shift_count
        calls = 0

        async def flaky_shift(*args, **kwargs):
            nonlocal calls
            calls += 1
            if calls > 2:
                raise RuntimeError("connection lost")
            await original(*args, **kwargs)

        monkeypatch.setattr(operations, "_shift_count", flaky_shift)

        with pytest.raises(TradeTransferError):
            await accept_trade(session, trade.id, "bob", world.bob_album)

        stored = await get_trade(session, trade.id)
        assert stored is not None and stored.status == "pending"
        assert (await read_snapshot(session, world.alice_album)).counts == {5: 2, 6: 2}
        assert (await read_snapshot(session, world.bob_album)).counts == {7: 2}

    async def test_retry_after_failed_transfer(
        self, session: AsyncSession, world, stock, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        await stock(world.alice_album, {5: 2})
        trade = await _propose(session, world, [5], [])

        async def broken_shift(*args, **kwargs):
            raise RuntimeError("connection lost")

        monkeypatch.setattr(operations, "_shift_count", broken_shift)
        with pytest.raises(TradeTransferError):
            await accept_trade(session, trade.id, "bob", world.bob_album)
        monkeypatch.undo()

        accepted = await accept_trade(session, trade.id, "bob", world.bob_album)

        assert accepted.status is TradeStatus.ACCEPTED


class TestTerminalStates:
    async def test_cancel_after_accept(self, session: AsyncSession, world, stock) -> None:
        """The sender loses the race: cancel reports the stored status."""
        await stock(world.alice_album, {5: 2})
        trade = await _propose(session, world, [5], [])
        await accept_trade(session, trade.id, "bob", world.bob_album)
        await session.commit()

        with pytest.raises(TradeAlreadyProcessedError) as exc_info:
            await cancel_trade(session, trade.id, "alice")

        assert exc_info.value.current_status == "accepted"
        assert (await read_snapshot(session, world.alice_album)).count(5) == 1

    async def test_accept_after_cancel(self, session: AsyncSession, world, stock) -> None:
        await stock(world.alice_album, {5: 2})
        trade = await _propose(session, world, [5], [])
        await cancel_trade(session, trade.id, "alice")
        await session.commit()

        with pytest.raises(TradeAlreadyProcessedError) as exc_info:
            await accept_trade(session, trade.id, "bob", world.bob_album)

        assert exc_info.value.current_status == "cancelled"
        assert (await read_snapshot(session, world.alice_album)).count(5) == 2
        assert (await read_snapshot(session, world.bob_album)).count(5) == 0

    async def test_reject_is_final(self, session: AsyncSession, world) -> None:
        trade = await _propose(session, world, [], [7])
        rejected = await reject_trade(session, trade.id, "bob")
        await session.commit()

        assert rejected.status is TradeStatus.REJECTED
        with pytest.raises(TradeAlreadyProcessedError):
            await reject_trade(session, trade.id, "bob")
        with pytest.raises(TradeAlreadyProcessedError):
            await cancel_trade(session, trade.id, "alice")

    async def test_only_sender_may_cancel(self, session: AsyncSession, world) -> None:
        trade = await _propose(session, world, [], [7])
        with pytest.raises(ForbiddenError):
            await cancel_trade(session, trade.id, "bob")

    async def test_only_receiver_may_reject(self, session: AsyncSession, world) -> None:
        trade = await _propose(session, world, [], [7])
        with pytest.raises(ForbiddenError):
            await reject_trade(session, trade.id, "alice")

    async def test_status_swap_needs_expected_status(
        self, session: AsyncSession, world
    ) -> None:
        """A stale writer that still believes the trade is pending changes nothing."""
        trade = await _propose(session, world, [], [7])
        assert await transition_trade(
            session, trade.id, TradeStatus.PENDING, TradeStatus.CANCELLED
        )

        swapped = await transition_trade(
            session, trade.id, TradeStatus.PENDING, TradeStatus.ACCEPTED
        )

        assert swapped is False
        stored = await get_trade(session, trade.id)
        assert stored is not None and stored.status == "cancelled"
