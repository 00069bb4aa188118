from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from stickerswap.db import create_album, create_profile, create_template, get_album
from stickerswap.db.database import get_session
from stickerswap.db.operations import set_sticker_count
from stickerswap.main import app
from stickerswap.models.db import Base

ALICE = "alice"
BOB = "bob"
CAROL = "carol"

StockFn = Callable[[int, dict[int, int]], Awaitable[None]]


@pytest.fixture
async def async_engine():
    """Create an in-memory SQLite engine for testing."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def session(async_engine) -> AsyncSession:
    """Provide a database session for tests."""
    async_session = async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)
    async with async_session() as session:
        yield session


@pytest.fixture
async def client(async_engine):
    """Provide an async test client with overridden database session."""
    async_session = async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_session():
        async with async_session() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = override_get_session

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@dataclass
class World:
    """Two collectors with one album each of a 20-sticker edition, plus a third user."""

    template_id: int
    alice_album: int
    bob_album: int


@pytest.fixture
async def world(session: AsyncSession) -> World:
    template = await create_template(session, "Copa 2026", 20)
    await create_profile(
        session,
        ALICE,
        "alice",
        asaas_customer_id="cus_asaas_alice",
        stripe_customer_id="cus_stripe_alice",
    )
    await create_profile(session, BOB, "bob", stripe_customer_id="cus_stripe_bob")
    await create_profile(session, CAROL, "carol")
    alice_album = await create_album(session, ALICE, template.id)
    bob_album = await create_album(session, BOB, template.id)
    await session.commit()
    return World(template_id=template.id, alice_album=alice_album.id, bob_album=bob_album.id)


@pytest.fixture
def stock(session: AsyncSession) -> StockFn:
    """Set sticker counts of an album and commit."""

    async def _stock(album_id: int, counts: dict[int, int]) -> None:
        album = await get_album(session, album_id)
        assert album is not None
        for number, count in counts.items():
            await set_sticker_count(session, album, number, count)
        await session.commit()

    return _stock
