"""Initial schema.

Revision ID: 001
Revises:
Create Date: 2025-01-01 00:00:00.000000
"""

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

revision = "001"
down_revision = None
branch_labels = None
depends_on = None

judgment_kind = sa.Enum("like", "dislike", name="judgment_kind_enum")


def upgrade() -> None:
    # Track pool
    op.create_table(
        "track_pool",
        sa.Column("track_id", sa.String(64), primary_key=True),
        sa.Column("track_name", sa.String(500), nullable=False),
        sa.Column("artist_name", sa.String(300), nullable=False, index=True),
        sa.Column("collection_name", sa.String(500), nullable=True),
        sa.Column("preview_url", sa.Text, nullable=False),
        sa.Column("artwork_url", sa.Text, nullable=True),
        sa.Column("track_view_url", sa.Text, nullable=True),
        sa.Column("genre", sa.String(100), nullable=True),
        sa.Column("release_date", sa.String(40), nullable=True),
        sa.Column(
            "metadata",
            sa.JSON().with_variant(postgresql.JSONB(), "postgresql"),
            nullable=True,
        ),
        sa.Column("fetched_at", sa.DateTime, nullable=False, server_default=sa.func.now(), index=True),
    )
    if op.get_context().dialect.name == "postgresql":
        # metadata is an object or null, never an array or a scalar
        op.create_check_constraint(
            "ck_track_pool_metadata_object",
            "track_pool",
            "metadata IS NULL OR jsonb_typeof(metadata) = 'object'",
        )

    # Likes / dislikes
    op.create_table(
        "interactions",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("actor_id", sa.String(64), nullable=False, index=True),
        sa.Column("track_id", sa.String(64), nullable=False),
        sa.Column("kind", judgment_kind, nullable=False),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now(), index=True),
        sa.UniqueConstraint("actor_id", "track_id", "kind", name="uq_interactions_actor_track_kind"),
    )
    op.create_index(
        "ix_interactions_actor_kind_created",
        "interactions",
        ["actor_id", "kind", "created_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_interactions_actor_kind_created", table_name="interactions")
    op.drop_table("interactions")
    op.drop_table("track_pool")
    judgment_kind.drop(op.get_bind(), checkfirst=True)
