"""Like/dislike recording with opposite-judgment removal."""

import logging
import uuid

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.errors import PoolStoreError
from app.domain.models import Interaction, JudgmentKind, utcnow
from app.services.pool import dialect_insert

logger = logging.getLogger(__name__)


class JudgmentService:
    """Writes interaction records consulted by the sampler's exclusion logic."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def record(self, actor_id: str, track_id: str, kind: JudgmentKind) -> None:
        """
        Store `kind` for (actor, track).

        Any opposite-kind record for the same pair is removed first, so a track
        is never excluded for two contradictory reasons. Re-judging with the
        same kind refreshes created_at, which restarts its exclusion window.
        """
        try:
            await self._session.execute(
                delete(Interaction).where(
                    Interaction.actor_id == actor_id,
                    Interaction.track_id == track_id,
                    Interaction.kind == kind.opposite,
                ),
                execution_options={"synchronize_session": False},
            )
        except SQLAlchemyError as exc:
            logger.error(
                "Failed to remove existing %s (actor=%s, track=%s): %s",
                kind.opposite.value, actor_id, track_id, exc,
            )
            raise PoolStoreError(f"Failed to remove existing {kind.opposite.value}") from exc

        insert = dialect_insert(self._session)
        now = utcnow()
        stmt = insert(Interaction.__table__).values(
            id=uuid.uuid4(),
            actor_id=actor_id,
            track_id=track_id,
            kind=kind,
            created_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["actor_id", "track_id", "kind"],
            set_={"created_at": now},
        )
        try:
            await self._session.execute(stmt)
        except SQLAlchemyError as exc:
            logger.error("Failed to save %s (actor=%s, track=%s): %s", kind.value, actor_id, track_id, exc)
            raise PoolStoreError(f"Failed to save {kind.value}") from exc

        logger.info("Recorded %s: actor=%s track=%s", kind.value, actor_id, track_id)
