"""Tests for sticker matching and partner discovery."""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from stickerswap.db import create_album, create_template, create_trade
from stickerswap.models.failure import AlbumNotVisibleError, InvalidStickerError, NotFoundError
from stickerswap.models.ownership import OwnershipSnapshot
from stickerswap.services.matching import (
    MatchResult,
    TradePartner,
    compute_matches,
    find_trade_partners,
    match_albums,
    rank_partners,
    select_for_proposal,
)


class TestComputeMatches:
    def test_spare_against_missing(self) -> None:
        """A duplicate I hold and they lack is givable, and vice versa."""
        mine = OwnershipSnapshot(counts={5: 2, 7: 0})
        theirs = OwnershipSnapshot(counts={5: 0, 7: 2})

        result = compute_matches(mine, theirs)

        assert result.can_give == [5]
        assert result.can_receive == [7]
        assert result.is_perfect_match

    def test_single_copy_is_not_givable(self) -> None:
        """Giving away the only copy would lose it."""
        result = compute_matches(OwnershipSnapshot(counts={3: 1}), OwnershipSnapshot())
        assert result.can_give == []

    def test_they_already_own_it(self) -> None:
        result = compute_matches(
            OwnershipSnapshot(counts={3: 4}), OwnershipSnapshot(counts={3: 1})
        )
        assert result.is_empty

    def test_unlisted_numbers_count_as_zero(self) -> None:
        """Numbers absent from a snapshot are missing, not unknown."""
        result = compute_matches(OwnershipSnapshot(counts={9: 3}), OwnershipSnapshot(counts={}))
        assert result.can_give == [9]

    def test_locked_stickers_are_not_givable(self) -> None:
        """Stickers promised in a pending offer are excluded."""
        mine = OwnershipSnapshot(counts={1: 2, 2: 2, 3: 2})
        result = compute_matches(mine, OwnershipSnapshot(), locked={2})
        assert result.can_give == [1, 3]

    def test_lock_does_not_affect_receiving(self) -> None:
        theirs = OwnershipSnapshot(counts={4: 2})
        result = compute_matches(OwnershipSnapshot(), theirs, locked={4})
        assert result.can_receive == [4]

    def test_sets_are_disjoint(self) -> None:
        """A number can never be both given and received."""
        mine = OwnershipSnapshot(counts={n: (n % 3) for n in range(1, 40)})
        theirs = OwnershipSnapshot(counts={n: ((n + 1) % 3) for n in range(1, 40)})

        result = compute_matches(mine, theirs)

        assert set(result.can_give).isdisjoint(result.can_receive)
        for n in result.can_give:
            assert mine.count(n) > 1 and theirs.count(n) == 0
        for n in result.can_receive:
            assert theirs.count(n) > 1 and mine.count(n) == 0

    def test_results_are_sorted(self) -> None:
        mine = OwnershipSnapshot(counts={30: 2, 4: 2, 12: 3})
        assert compute_matches(mine, OwnershipSnapshot()).can_give == [4, 12, 30]

    def test_one_sided_match_is_not_perfect(self) -> None:
        result = compute_matches(OwnershipSnapshot(counts={1: 2}), OwnershipSnapshot())
        assert not result.is_perfect_match
        assert result.total == 1


class TestSelectForProposal:
    def test_defaults_to_full_sets(self) -> None:
        result = MatchResult(can_give=[1, 2], can_receive=[8])
        assert select_for_proposal(result) == ([1, 2], [8])

    def test_subset_is_accepted(self) -> None:
        result = MatchResult(can_give=[1, 2], can_receive=[8, 9])
        assert select_for_proposal(result, offer=[2], request=[9]) == ([2], [9])

    def test_selection_outside_candidates_rejected(self) -> None:
        result = MatchResult(can_give=[1], can_receive=[8])
        with pytest.raises(InvalidStickerError) as exc_info:
            select_for_proposal(result, offer=[1, 5])
        assert exc_info.value.numbers == [5]

    def test_empty_selection_rejected(self) -> None:
        result = MatchResult(can_give=[1], can_receive=[8])
        with pytest.raises(InvalidStickerError):
            select_for_proposal(result, offer=[], request=[])


class TestRankPartners:
    def test_perfect_matches_first(self) -> None:
        one_sided = TradePartner("u1", 1, MatchResult(can_give=[1, 2, 3, 4]))
        perfect = TradePartner("u2", 2, MatchResult(can_give=[1], can_receive=[2]))

        assert [p.album_id for p in rank_partners([one_sided, perfect])] == [2, 1]

    def test_larger_exchange_breaks_ties(self) -> None:
        small = TradePartner("u1", 1, MatchResult(can_give=[1], can_receive=[2]))
        large = TradePartner("u2", 2, MatchResult(can_give=[1, 3], can_receive=[2]))

        assert [p.album_id for p in rank_partners([small, large])] == [2, 1]


class TestMatchAlbums:
    async def test_match_between_albums(self, session: AsyncSession, world, stock) -> None:
        """Reads both albums from the store and compares them."""
        await stock(world.alice_album, {5: 2, 7: 0})
        await stock(world.bob_album, {5: 0, 7: 2})

        result = await match_albums(session, "alice", world.bob_album, world.alice_album)

        assert result.can_give == [5]
        assert result.can_receive == [7]

    async def test_pending_offer_locks_sticker(
        self, session: AsyncSession, world, stock
    ) -> None:
        """A sticker already offered to Carol is not offered to Bob."""
        await stock(world.alice_album, {5: 2, 6: 2})
        await create_trade(session, "alice", "carol", world.alice_album, [5], [])
        await session.commit()

        result = await match_albums(session, "alice", world.bob_album, world.alice_album)

        assert result.can_give == [6]

    async def test_first_album_of_template_is_default(
        self, session: AsyncSession, world, stock
    ) -> None:
        await stock(world.alice_album, {1: 3})
        result = await match_albums(session, "alice", world.bob_album)
        assert result.can_give == [1]

    async def test_viewer_without_template_gets_empty(
        self, session: AsyncSession, world, stock
    ) -> None:
        """Carol has no album of this edition."""
        await stock(world.bob_album, {1: 3})
        result = await match_albums(session, "carol", world.bob_album)
        assert result.is_empty

    async def test_template_mismatch_gets_empty(
        self, session: AsyncSession, world, stock
    ) -> None:
        other = await create_template(session, "Other Edition", 10)
        other_album = await create_album(session, "alice", other.id)
        await session.commit()
        await stock(other_album.id, {1: 3})

        result = await match_albums(session, "alice", world.bob_album, other_album.id)

        assert result.is_empty

    async def test_private_album_not_visible(self, session: AsyncSession, world) -> None:
        private = await create_album(session, "bob", world.template_id, is_public=False)
        await session.commit()

        with pytest.raises(AlbumNotVisibleError):
            await match_albums(session, "alice", private.id)

    async def test_missing_album(self, session: AsyncSession, world) -> None:
        with pytest.raises(NotFoundError):
            await match_albums(session, "alice", 9999)


class TestFindTradePartners:
    async def test_ranks_public_albums(self, session: AsyncSession, world, stock) -> None:
        """A perfect match ranks above a one-sided exchange of the same size."""
        carol_album = await create_album(session, "carol", world.template_id)
        await session.commit()
        await stock(world.alice_album, {1: 2, 2: 2, 3: 2})
        await stock(world.bob_album, {1: 1, 9: 2})
        await stock(carol_album.id, {4: 1})

        partners = await find_trade_partners(session, "alice", world.alice_album)

        assert [p.album_id for p in partners] == [world.bob_album, carol_album.id]
        assert partners[0].is_perfect_match
        assert partners[0].match.can_give == [2, 3]
        assert partners[0].match.can_receive == [9]
        assert partners[1].match.can_give == [1, 2, 3]

    async def test_private_albums_are_skipped(self, session: AsyncSession, world, stock) -> None:
        private = await create_album(session, "carol", world.template_id, is_public=False)
        await session.commit()
        await stock(world.alice_album, {1: 2})

        partners = await find_trade_partners(session, "alice", world.alice_album)

        assert private.id not in [p.album_id for p in partners]

    async def test_own_album_required(self, session: AsyncSession, world) -> None:
        with pytest.raises(NotFoundError):
            await find_trade_partners(session, "alice", world.bob_album)
