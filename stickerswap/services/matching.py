"""
Sticker matching between two album instances.

Computes what each side can exchange without loss: a sticker moves only
from a holder of a duplicate to someone missing it. Partner discovery runs
the same computation against every other public album of a template and
ranks the results.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncSession

from stickerswap.db import operations
from stickerswap.models.db import UserAlbumDB
from stickerswap.models.failure import (
    AlbumNotVisibleError,
    InvalidStickerError,
    NotFoundError,
)
from stickerswap.models.ownership import OwnershipSnapshot

logger = logging.getLogger(__name__)


@dataclass
class MatchResult:
    """
    Exchangeable stickers between my album and theirs.

    Attributes:
        can_give: Numbers I hold spares of, they miss, and I have not
            already promised elsewhere
        can_receive: Numbers they hold spares of and I miss
    """

    can_give: list[int] = field(default_factory=list)
    can_receive: list[int] = field(default_factory=list)

    @property
    def is_perfect_match(self) -> bool:
        """Both sides have something to offer the other."""
        return bool(self.can_give) and bool(self.can_receive)

    @property
    def total(self) -> int:
        return len(self.can_give) + len(self.can_receive)

    @property
    def is_empty(self) -> bool:
        return self.total == 0


def compute_matches(
    mine: OwnershipSnapshot,
    theirs: OwnershipSnapshot,
    locked: Iterable[int] = (),
) -> MatchResult:
    """
    Compute the two exchange sets.

    can_give    = { n : mine[n] > 1 and theirs[n] == 0 and n not locked }
    can_receive = { n : theirs[n] > 1 and mine[n] == 0 }

    The sets are disjoint: a number in can_give has mine[n] > 1 while one
    in can_receive needs mine[n] == 0.
    """
    locked_set = set(locked)
    can_give = sorted(
        n for n in mine.spare_numbers() if not theirs.has(n) and n not in locked_set
    )
    can_receive = sorted(n for n in theirs.spare_numbers() if not mine.has(n))
    return MatchResult(can_give=can_give, can_receive=can_receive)


def select_for_proposal(
    result: MatchResult,
    offer: Iterable[int] | None = None,
    request: Iterable[int] | None = None,
) -> tuple[list[int], list[int]]:
    """
    Narrow a match result to the stickers the user kept selected.

    None means "everything": proposals default to the full sets.

    Raises:
        InvalidStickerError: If a selection leaves the candidate sets or
            nothing at all is selected
    """
    chosen_offer = sorted(set(result.can_give if offer is None else offer))
    chosen_request = sorted(set(result.can_receive if request is None else request))

    stray = sorted(
        set(chosen_offer) - set(result.can_give) | set(chosen_request) - set(result.can_receive)
    )
    if stray:
        raise InvalidStickerError("Some selected stickers cannot be exchanged.", stray)
    if not chosen_offer and not chosen_request:
        raise InvalidStickerError("Select at least one sticker to trade.")
    return chosen_offer, chosen_request


@dataclass
class TradePartner:
    """Another user's public album ranked against one of mine."""

    user_id: str
    album_id: int
    match: MatchResult

    @property
    def is_perfect_match(self) -> bool:
        return self.match.is_perfect_match


def rank_partners(partners: list[TradePartner]) -> list[TradePartner]:
    """
    Order partners best first.

    Perfect matches lead, then the larger exchange, then album id so the
    order is stable between calls.
    """
    return sorted(
        partners,
        key=lambda p: (not p.is_perfect_match, -p.match.total, p.album_id),
    )


async def _load_visible_album(
    session: AsyncSession, viewer_id: str, album_id: int
) -> UserAlbumDB:
    album = await operations.get_album(session, album_id)
    if album is None:
        raise NotFoundError("Album", album_id)
    if album.user_id != viewer_id and not album.is_public:
        raise AlbumNotVisibleError(album_id)
    return album


async def match_albums(
    session: AsyncSession,
    viewer_id: str,
    their_album_id: int,
    my_album_id: int | None = None,
) -> MatchResult:
    """
    Compare the viewer's album with another user's album.

    When ``my_album_id`` is omitted the viewer's first album of the same
    template is used. A viewer without such an album, or an explicit album of
    another template, gets an empty result.

    Raises:
        NotFoundError: If an album does not exist
        AlbumNotVisibleError: If their album is private
    """
    theirs = await _load_visible_album(session, viewer_id, their_album_id)

    if my_album_id is None:
        candidates = await operations.list_albums(session, viewer_id, theirs.template_id)
        if not candidates:
            return MatchResult()
        mine = candidates[0]
    else:
        found = await operations.get_album(session, my_album_id)
        if found is None or found.user_id != viewer_id:
            raise NotFoundError("Album", my_album_id)
        mine = found

    if mine.template_id != theirs.template_id:
        logger.debug(
            "Albums %d and %d use different templates, nothing to compare",
            mine.id,
            theirs.id,
        )
        return MatchResult()

    snapshots = await operations.read_snapshots(session, [mine.id, theirs.id])
    locked = await operations.locked_stickers(session, viewer_id, mine.id)
    return compute_matches(snapshots[mine.id], snapshots[theirs.id], locked)


async def find_trade_partners(
    session: AsyncSession, viewer_id: str, my_album_id: int
) -> list[TradePartner]:
    """
    Rank every other user's public album of the same template.

    Albums with nothing to exchange are left out.

    Raises:
        NotFoundError: If the album does not exist or is not the viewer's
    """
    mine = await operations.get_album(session, my_album_id)
    if mine is None or mine.user_id != viewer_id:
        raise NotFoundError("Album", my_album_id)

    others = await operations.list_public_albums(session, mine.template_id, viewer_id)
    snapshots = await operations.read_snapshots(session, [mine.id, *(a.id for a in others)])
    locked = await operations.locked_stickers(session, viewer_id, mine.id)

    partners: list[TradePartner] = []
    for album in others:
        match = compute_matches(snapshots[mine.id], snapshots[album.id], locked)
        if match.is_empty:
            continue
        partners.append(TradePartner(user_id=album.user_id, album_id=album.id, match=match))

    logger.debug("Album %d has %d trade partners", my_album_id, len(partners))
    return rank_partners(partners)
