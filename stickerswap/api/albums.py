"""
Album endpoints.

Dashboard albums of a user, sticker count changes, and album views with
progress figures. The acting user is the ``user_id`` in the path.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from stickerswap.db import list_albums
from stickerswap.db.database import get_session
from stickerswap.models.db import UserAlbumDB
from stickerswap.models.ownership import StickerFilter
from stickerswap.services import albums as album_service

router = APIRouter(tags=["albums"])


class AlbumCreateRequest(BaseModel):
    """Request model for adding an album to the dashboard."""

    template_id: int
    nickname: str | None = Field(default=None, max_length=255)
    is_public: bool = True


class AlbumResponse(BaseModel):
    id: int
    user_id: str
    template_id: int
    nickname: str | None = None
    is_public: bool = True


class AlbumListResponse(BaseModel):
    user_id: str
    albums: list[AlbumResponse]
    count: int


class AlbumProgressResponse(BaseModel):
    """Completion figures of an album."""

    total_stickers: int
    owned: int
    missing: int
    repeated: int = Field(..., description="Surplus copies across all stickers")
    completion_percentage: int


class AlbumDetailResponse(BaseModel):
    """An album as the viewer sees it."""

    album: AlbumResponse
    template_name: str
    counts: dict[int, int] = Field(
        default_factory=dict,
        description="Sticker number to copies held; absent numbers are not owned",
    )
    progress: AlbumProgressResponse
    filter: StickerFilter = "all"
    numbers: list[int] = Field(
        default_factory=list,
        description="Template numbers matching the filter",
    )


class StickerAdjustRequest(BaseModel):
    delta: int = Field(..., description="+1 to add a copy, -1 to remove one")


class StickerSetRequest(BaseModel):
    count: int = Field(..., ge=0)


class StickerCountResponse(BaseModel):
    album_id: int
    number: int
    count: int


class ResetResponse(BaseModel):
    album_id: int
    cleared: int


def _to_response(album: UserAlbumDB) -> AlbumResponse:
    return AlbumResponse(
        id=album.id,
        user_id=album.user_id,
        template_id=album.template_id,
        nickname=album.nickname,
        is_public=album.is_public,
    )


@router.post(
    "/users/{user_id}/albums",
    response_model=AlbumResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_user_album(
    user_id: str,
    request: AlbumCreateRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> AlbumResponse:
    """
    Add an album instance to the user's dashboard.

    Free accounts are refused (403) once they hold the maximum number of
    albums.
    """
    album = await album_service.create_album(
        session,
        user_id,
        request.template_id,
        nickname=request.nickname,
        is_public=request.is_public,
    )
    return _to_response(album)


@router.get("/users/{user_id}/albums", response_model=AlbumListResponse)
async def list_user_albums(
    user_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
    template_id: int | None = None,
) -> AlbumListResponse:
    albums = await list_albums(session, user_id, template_id)
    return AlbumListResponse(
        user_id=user_id,
        albums=[_to_response(a) for a in albums],
        count=len(albums),
    )


@router.get("/albums/{album_id}", response_model=AlbumDetailResponse)
async def view_album(
    album_id: int,
    viewer_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
    sticker_filter: Annotated[StickerFilter, Query(alias="filter")] = "all",
) -> AlbumDetailResponse:
    """
    Read an album's counts and progress.

    Other users' private albums return 403.
    """
    view = await album_service.view_album(session, viewer_id, album_id, sticker_filter)
    progress = view.progress
    return AlbumDetailResponse(
        album=_to_response(view.album),
        template_name=view.template.name,
        counts={n: c for n, c in sorted(view.snapshot.counts.items()) if c > 0},
        progress=AlbumProgressResponse(
            total_stickers=progress.total_stickers,
            owned=progress.owned,
            missing=progress.missing,
            repeated=progress.repeated,
            completion_percentage=progress.completion_percentage,
        ),
        filter=sticker_filter,
        numbers=view.numbers,
    )


@router.post(
    "/users/{user_id}/albums/{album_id}/stickers/{number}/adjust",
    response_model=StickerCountResponse,
)
async def adjust_sticker(
    user_id: str,
    album_id: int,
    number: int,
    request: StickerAdjustRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> StickerCountResponse:
    """Add or remove copies of a sticker. The count stops at zero."""
    count = await album_service.adjust_sticker(session, user_id, album_id, number, request.delta)
    return StickerCountResponse(album_id=album_id, number=number, count=count)


@router.put(
    "/users/{user_id}/albums/{album_id}/stickers/{number}",
    response_model=StickerCountResponse,
)
async def set_sticker(
    user_id: str,
    album_id: int,
    number: int,
    request: StickerSetRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> StickerCountResponse:
    count = await album_service.set_sticker(session, user_id, album_id, number, request.count)
    return StickerCountResponse(album_id=album_id, number=number, count=count)


@router.post("/users/{user_id}/albums/{album_id}/reset", response_model=ResetResponse)
async def reset_album(
    user_id: str,
    album_id: int,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> ResetResponse:
    """Zero every sticker count of the album. The album itself is kept."""
    cleared = await album_service.reset_album(session, user_id, album_id)
    return ResetResponse(album_id=album_id, cleared=cleared)
