import os

# Settings are read at import time; point them at test values first.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("CRON_AUTH_KEY", "test-cron-key")
os.environ.setdefault("SOURCE_PROVIDER", "mock")
os.environ.setdefault("CLEANUP_REQUEST_DELAY_S", "0")

from collections.abc import AsyncGenerator  # noqa: E402
from datetime import datetime, timedelta  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.api.schemas import TrackItem  # noqa: E402
from app.domain.models import Base, Interaction, JudgmentKind  # noqa: E402

TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest.fixture
async def engine():
    """A fresh in-memory database per test."""
    eng = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as s:
        yield s


def make_track(track_id: int | str, artist: str = "Artist", **overrides) -> TrackItem:
    fields = {
        "track_id": str(track_id),
        "track_name": f"Track {track_id}",
        "artist_name": artist,
        "preview_url": f"https://audio.example/{track_id}.m4a",
        "metadata": {"source": "test"},
    }
    fields.update(overrides)
    return TrackItem(**fields)


async def add_interaction(
    session: AsyncSession,
    actor_id: str,
    track_id: str,
    kind: JudgmentKind,
    created_at: datetime,
) -> None:
    session.add(
        Interaction(actor_id=actor_id, track_id=track_id, kind=kind, created_at=created_at)
    )
    await session.flush()


def days_ago(now: datetime, days: float) -> datetime:
    return now - timedelta(days=days)
