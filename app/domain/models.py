"""SQLAlchemy ORM models."""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Enum,
    Index,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase


def utcnow() -> datetime:
    """Naive UTC timestamp, the representation stored in every DateTime column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    pass


class JudgmentKind(str, enum.Enum):
    LIKE = "like"
    DISLIKE = "dislike"

    @property
    def opposite(self) -> "JudgmentKind":
        return JudgmentKind.DISLIKE if self is JudgmentKind.LIKE else JudgmentKind.LIKE


class PoolTrack(Base):
    __tablename__ = "track_pool"

    track_id = Column(String(64), primary_key=True)
    track_name = Column(String(500), nullable=False)
    artist_name = Column(String(300), nullable=False, index=True)
    collection_name = Column(String(500), nullable=True)
    preview_url = Column(Text, nullable=False)
    artwork_url = Column(Text, nullable=True)
    track_view_url = Column(Text, nullable=True)
    genre = Column(String(100), nullable=True)
    release_date = Column(String(40), nullable=True)
    # `metadata` is reserved on declarative classes
    source_metadata = Column("metadata", JSON().with_variant(JSONB(), "postgresql"), nullable=True)
    fetched_at = Column(DateTime, nullable=False, default=utcnow, index=True)


class Interaction(Base):
    __tablename__ = "interactions"
    __table_args__ = (
        UniqueConstraint("actor_id", "track_id", "kind", name="uq_interactions_actor_track_kind"),
        Index("ix_interactions_actor_kind_created", "actor_id", "kind", "created_at"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    actor_id = Column(String(64), nullable=False, index=True)
    track_id = Column(String(64), nullable=False)
    kind = Column(
        Enum(JudgmentKind, name="judgment_kind_enum", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
