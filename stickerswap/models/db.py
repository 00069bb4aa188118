"""
SQLAlchemy ORM models for persistent storage.

Models mirror the dataclass models but add database persistence.
"""

from datetime import UTC, datetime

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class ProfileDB(Base):
    """
    A collector's profile.

    Subscription fields are written only by the payment webhook handlers.
    At most one provider customer id is authoritative per user at a time.
    """

    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    username: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    avatar_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    is_premium: Mapped[bool] = mapped_column(Boolean, default=False)
    subscription_status: Mapped[str] = mapped_column(String(20), default="inactive")
    premium_valid_until: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    asaas_customer_id: Mapped[str | None] = mapped_column(
        String(255), unique=True, index=True, nullable=True
    )
    stripe_customer_id: Mapped[str | None] = mapped_column(
        String(255), unique=True, index=True, nullable=True
    )
    stripe_subscription_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    def __repr__(self) -> str:
        return f"<ProfileDB(id={self.id}, username={self.username})>"


class AlbumTemplateDB(Base):
    """
    A sticker-album edition shared by many users' album instances.

    Sticker numbers run from 1 to ``total_stickers``.
    """

    __tablename__ = "album_templates"
    __table_args__ = (CheckConstraint("total_stickers > 0", name="ck_template_total_positive"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    total_stickers: Mapped[int] = mapped_column(Integer)
    cover_image: Mapped[str | None] = mapped_column(Text, nullable=True)

    stickers: Mapped[list["TemplateStickerDB"]] = relationship(
        back_populates="template", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<AlbumTemplateDB(id={self.id}, name={self.name})>"


class TemplateStickerDB(Base):
    """Display code and section of one sticker number within a template."""

    __tablename__ = "template_stickers"
    __table_args__ = (UniqueConstraint("template_id", "number", name="uq_template_number"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    template_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("album_templates.id", ondelete="CASCADE"), index=True
    )
    number: Mapped[int] = mapped_column(Integer)
    code: Mapped[str] = mapped_column(String(32))
    section: Mapped[str | None] = mapped_column(String(255), nullable=True)

    template: Mapped["AlbumTemplateDB"] = relationship(back_populates="stickers")


class UserAlbumDB(Base):
    """
    A user's personal instance of an album template.

    Visibility gates whether other users may read its sticker counts.
    """

    __tablename__ = "user_albums"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("profiles.id", ondelete="CASCADE"), index=True
    )
    template_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("album_templates.id"), index=True
    )
    nickname: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_public: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    def __repr__(self) -> str:
        return f"<UserAlbumDB(id={self.id}, user_id={self.user_id})>"


class StickerOwnershipDB(Base):
    """
    How many copies of one sticker number a user holds in one album.

    A missing row means zero copies.
    """

    __tablename__ = "user_stickers"
    __table_args__ = (
        UniqueConstraint("user_album_id", "sticker_number", name="uq_album_sticker"),
        CheckConstraint("count >= 0", name="ck_sticker_count_non_negative"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    user_album_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("user_albums.id", ondelete="CASCADE"), index=True
    )
    sticker_number: Mapped[int] = mapped_column(Integer)
    count: Mapped[int] = mapped_column(Integer, default=0)

    def __repr__(self) -> str:
        return (
            f"<StickerOwnershipDB(album={self.user_album_id}, "
            f"n={self.sticker_number}, count={self.count})>"
        )


class TradeDB(Base):
    """
    A trade proposal between two collectors.

    Rows are never deleted; terminal rows serve as the audit trail.
    """

    __tablename__ = "trades"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sender_id: Mapped[str] = mapped_column(String(64), ForeignKey("profiles.id"), index=True)
    receiver_id: Mapped[str] = mapped_column(String(64), ForeignKey("profiles.id"), index=True)
    sender_album_id: Mapped[int] = mapped_column(Integer, ForeignKey("user_albums.id"), index=True)
    receiver_album_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("user_albums.id"), nullable=True
    )

    # Sticker numbers the sender gives / receives
    offer_stickers: Mapped[list[int]] = mapped_column(JSON, default=list)
    request_stickers: Mapped[list[int]] = mapped_column(JSON, default=list)

    status: Mapped[str] = mapped_column(String(20), default="pending", index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    def __repr__(self) -> str:
        return f"<TradeDB(id={self.id}, status={self.status})>"
