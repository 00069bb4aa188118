"""
Album instances and sticker counts.

Owners mutate their own albums; anyone may read a public album.
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from stickerswap.db import operations
from stickerswap.models.db import AlbumTemplateDB, UserAlbumDB
from stickerswap.models.failure import (
    AlbumNotVisibleError,
    ForbiddenError,
    InvalidStickerError,
    NotFoundError,
)
from stickerswap.models.ownership import (
    AlbumProgress,
    OwnershipSnapshot,
    StickerFilter,
    album_progress,
    filter_numbers,
)
from stickerswap.services.entitlements import check_album_limit

logger = logging.getLogger(__name__)


@dataclass
class AlbumView:
    """An album instance as one viewer sees it."""

    album: UserAlbumDB
    template: AlbumTemplateDB
    snapshot: OwnershipSnapshot
    progress: AlbumProgress
    numbers: list[int]


async def create_album(
    session: AsyncSession,
    user_id: str,
    template_id: int,
    nickname: str | None = None,
    is_public: bool = True,
    now: datetime | None = None,
) -> UserAlbumDB:
    """
    Add an album instance to a user's dashboard.

    Raises:
        NotFoundError: If the user or template does not exist
        AlbumLimitExceededError: If a free user is at the album cap
    """
    if await operations.get_template(session, template_id) is None:
        raise NotFoundError("Album template", template_id)
    await check_album_limit(session, user_id, now)

    album = await operations.create_album(session, user_id, template_id, nickname, is_public)
    logger.info("User %s created album %d of template %d", user_id, album.id, template_id)
    return album


async def _owned_album(
    session: AsyncSession, user_id: str, album_id: int
) -> tuple[UserAlbumDB, AlbumTemplateDB]:
    album = await operations.get_album(session, album_id)
    if album is None:
        raise NotFoundError("Album", album_id)
    if album.user_id != user_id:
        raise ForbiddenError(
            "Only the owner can change this album.",
            detail=f"album {album_id} belongs to another user",
        )
    template = await operations.get_template(session, album.template_id)
    if template is None:
        raise NotFoundError("Album template", album.template_id)
    return album, template


def _check_number(template: AlbumTemplateDB, number: int) -> None:
    if not 1 <= number <= template.total_stickers:
        raise InvalidStickerError(
            f"Sticker numbers must be between 1 and {template.total_stickers}.", [number]
        )


async def adjust_sticker(
    session: AsyncSession, user_id: str, album_id: int, number: int, delta: int
) -> int:
    """
    Add or remove copies of one sticker. Counts never drop below zero.

    Returns the new count.
    """
    album, template = await _owned_album(session, user_id, album_id)
    _check_number(template, number)
    return await operations.adjust_sticker_count(session, album, number, delta)


async def set_sticker(
    session: AsyncSession, user_id: str, album_id: int, number: int, count: int
) -> int:
    """Overwrite one sticker's count."""
    album, template = await _owned_album(session, user_id, album_id)
    _check_number(template, number)
    if count < 0:
        raise InvalidStickerError("Sticker counts cannot be negative.", [number])
    return await operations.set_sticker_count(session, album, number, count)


async def reset_album(session: AsyncSession, user_id: str, album_id: int) -> int:
    """Zero every count of an album, keeping the album. Returns rows cleared."""
    album, _ = await _owned_album(session, user_id, album_id)
    cleared = await operations.reset_album(session, album.id)
    logger.info("User %s reset album %d (%d stickers cleared)", user_id, album_id, cleared)
    return cleared


async def view_album(
    session: AsyncSession,
    viewer_id: str,
    album_id: int,
    sticker_filter: StickerFilter = "all",
) -> AlbumView:
    """
    Read an album with its progress figures.

    Raises:
        NotFoundError: If the album does not exist
        AlbumNotVisibleError: If another user's album is private
    """
    album = await operations.get_album(session, album_id)
    if album is None:
        raise NotFoundError("Album", album_id)
    if album.user_id != viewer_id and not album.is_public:
        raise AlbumNotVisibleError(album_id)

    template = await operations.get_template(session, album.template_id)
    if template is None:
        raise NotFoundError("Album template", album.template_id)

    snapshot = await operations.read_snapshot(session, album.id)
    return AlbumView(
        album=album,
        template=template,
        snapshot=snapshot,
        progress=album_progress(snapshot, template.total_stickers),
        numbers=filter_numbers(snapshot, template.total_stickers, sticker_filter),
    )
