"""
Album template endpoints.

Templates define an edition: its name, how many stickers it has, and the
printed code of each number.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from stickerswap.db import create_template, get_template, list_templates
from stickerswap.db.database import get_session
from stickerswap.models.db import AlbumTemplateDB
from stickerswap.models.failure import (
    FailureKind,
    InvalidStickerError,
    KnownError,
    NotFoundError,
)

router = APIRouter(prefix="/templates", tags=["templates"])


class TemplateSticker(BaseModel):
    number: int = Field(..., ge=1)
    code: str = Field(..., min_length=1, max_length=32)
    section: str | None = None


class TemplateCreateRequest(BaseModel):
    """Request model for a new album edition."""

    name: str = Field(..., min_length=1, max_length=200)
    total_stickers: int = Field(..., ge=1, le=10000)
    cover_image: str | None = None
    stickers: list[TemplateSticker] = Field(
        default_factory=list,
        description="Optional printed codes; numbers without one are still valid",
    )


class TemplateResponse(BaseModel):
    id: int
    name: str
    total_stickers: int
    cover_image: str | None = None
    stickers: list[TemplateSticker] = Field(default_factory=list)


class TemplateListResponse(BaseModel):
    templates: list[TemplateResponse]
    count: int


def _to_response(template: AlbumTemplateDB, with_stickers: bool = True) -> TemplateResponse:
    stickers = (
        [
            TemplateSticker(number=s.number, code=s.code, section=s.section)
            for s in sorted(template.stickers, key=lambda s: s.number)
        ]
        if with_stickers
        else []
    )
    return TemplateResponse(
        id=template.id,
        name=template.name,
        total_stickers=template.total_stickers,
        cover_image=template.cover_image,
        stickers=stickers,
    )


@router.post("", response_model=TemplateResponse, status_code=status.HTTP_201_CREATED)
async def register_template(
    request: TemplateCreateRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> TemplateResponse:
    """Create an album edition."""
    numbers = [s.number for s in request.stickers]
    invalid = sorted({n for n in numbers if n > request.total_stickers or numbers.count(n) > 1})
    if invalid:
        raise InvalidStickerError("Sticker codes must use distinct numbers in range.", invalid)

    try:
        template = await create_template(
            session,
            name=request.name,
            total_stickers=request.total_stickers,
            stickers=[(s.number, s.code, s.section) for s in request.stickers],
            cover_image=request.cover_image,
        )
    except IntegrityError as e:
        raise KnownError(
            kind=FailureKind.INVALID_INPUT,
            message=f"A template named {request.name!r} already exists.",
            status_code=status.HTTP_409_CONFLICT,
        ) from e
    return _to_response(template)


@router.get("", response_model=TemplateListResponse)
async def read_templates(
    session: Annotated[AsyncSession, Depends(get_session)],
) -> TemplateListResponse:
    """List album editions without their sticker codes."""
    templates = await list_templates(session)
    return TemplateListResponse(
        templates=[_to_response(t, with_stickers=False) for t in templates],
        count=len(templates),
    )


@router.get("/{template_id}", response_model=TemplateResponse)
async def read_template(
    template_id: int,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> TemplateResponse:
    template = await get_template(session, template_id)
    if template is None:
        raise NotFoundError("Album template", template_id)
    return _to_response(template)
