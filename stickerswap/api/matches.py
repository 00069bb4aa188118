"""
Matching endpoints.

What the viewer can exchange with one other album, and which collectors
are the best partners for one of the viewer's albums.
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from stickerswap.db import get_profiles
from stickerswap.db.database import get_session
from stickerswap.services.matching import find_trade_partners, match_albums

router = APIRouter(tags=["matches"])


class MatchResponse(BaseModel):
    """Exchangeable stickers between the viewer's album and another."""

    their_album_id: int
    can_give: list[int] = Field(
        default_factory=list,
        description="Your spares they are missing, excluding stickers in your pending offers",
    )
    can_receive: list[int] = Field(
        default_factory=list,
        description="Their spares you are missing",
    )
    is_perfect_match: bool = False


class PartnerResponse(BaseModel):
    user_id: str
    username: str | None = None
    album_id: int
    can_give: list[int]
    can_receive: list[int]
    is_perfect_match: bool


class PartnerListResponse(BaseModel):
    album_id: int
    partners: list[PartnerResponse]
    count: int


@router.get("/users/{user_id}/matches/{their_album_id}", response_model=MatchResponse)
async def get_matches(
    user_id: str,
    their_album_id: int,
    session: Annotated[AsyncSession, Depends(get_session)],
    my_album_id: int | None = None,
) -> MatchResponse:
    """
    Compare one of the user's albums with another album.

    Without ``my_album_id`` the user's first album of the same edition is
    used; a user without one gets empty lists.
    """
    result = await match_albums(session, user_id, their_album_id, my_album_id)
    return MatchResponse(
        their_album_id=their_album_id,
        can_give=result.can_give,
        can_receive=result.can_receive,
        is_perfect_match=result.is_perfect_match,
    )


@router.get("/users/{user_id}/albums/{album_id}/partners", response_model=PartnerListResponse)
async def get_partners(
    user_id: str,
    album_id: int,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> PartnerListResponse:
    """Public albums of the same edition ranked by exchange potential."""
    partners = await find_trade_partners(session, user_id, album_id)
    profiles = await get_profiles(session, (p.user_id for p in partners))

    items = [
        PartnerResponse(
            user_id=p.user_id,
            username=profiles[p.user_id].username if p.user_id in profiles else None,
            album_id=p.album_id,
            can_give=p.match.can_give,
            can_receive=p.match.can_receive,
            is_perfect_match=p.is_perfect_match,
        )
        for p in partners
    ]
    return PartnerListResponse(album_id=album_id, partners=items, count=len(items))
