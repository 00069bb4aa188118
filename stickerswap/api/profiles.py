"""
Profile endpoints.

Registers users with their payment customer ids and lets collectors find
each other by username.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from stickerswap.db import create_profile, get_profile, search_profiles
from stickerswap.db.database import get_session
from stickerswap.models.db import ProfileDB
from stickerswap.models.failure import FailureKind, KnownError, NotFoundError

router = APIRouter(prefix="/users", tags=["users"])


class ProfileCreateRequest(BaseModel):
    """Request model for registering a profile."""

    id: str = Field(..., min_length=1, max_length=64)
    username: str = Field(..., min_length=1, max_length=64)
    avatar_url: str | None = None
    asaas_customer_id: str | None = None
    stripe_customer_id: str | None = None


class ProfileResponse(BaseModel):
    """Public profile data."""

    id: str
    username: str
    avatar_url: str | None = None
    is_premium: bool = False


class ProfileListResponse(BaseModel):
    profiles: list[ProfileResponse]
    count: int


def _to_response(profile: ProfileDB) -> ProfileResponse:
    return ProfileResponse(
        id=profile.id,
        username=profile.username,
        avatar_url=profile.avatar_url,
        is_premium=bool(profile.is_premium),
    )


@router.post("", response_model=ProfileResponse, status_code=status.HTTP_201_CREATED)
async def register_profile(
    request: ProfileCreateRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> ProfileResponse:
    """
    Register a profile.

    Returns 409 when the id, username or a customer id is already taken.
    """
    try:
        profile = await create_profile(
            session,
            user_id=request.id,
            username=request.username,
            avatar_url=request.avatar_url,
            asaas_customer_id=request.asaas_customer_id,
            stripe_customer_id=request.stripe_customer_id,
        )
    except IntegrityError as e:
        raise KnownError(
            kind=FailureKind.INVALID_INPUT,
            message="This user or username is already registered.",
            detail=type(e.orig).__name__ if e.orig is not None else None,
            status_code=status.HTTP_409_CONFLICT,
        ) from e
    return _to_response(profile)


@router.get("", response_model=ProfileListResponse)
async def find_profiles(
    session: Annotated[AsyncSession, Depends(get_session)],
    search: Annotated[str, Query(min_length=1, max_length=64)],
    exclude: str | None = None,
    limit: Annotated[int, Query(ge=1, le=100)] = 50,
) -> ProfileListResponse:
    """Search collectors by username."""
    found = await search_profiles(session, search, exclude_user_id=exclude, limit=limit)
    return ProfileListResponse(profiles=[_to_response(p) for p in found], count=len(found))


@router.get("/{user_id}", response_model=ProfileResponse)
async def read_profile(
    user_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> ProfileResponse:
    profile = await get_profile(session, user_id)
    if profile is None:
        raise NotFoundError("User", user_id)
    return _to_response(profile)
