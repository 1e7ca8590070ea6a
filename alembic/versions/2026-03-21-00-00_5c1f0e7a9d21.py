"""Initial anime, mapping and job tables

Revision ID: 5c1f0e7a9d21
Revises:
Create Date: 2026-03-21 00:00:00.000000

"""

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "5c1f0e7a9d21"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "animes",
        sa.Column("anilist_id", sa.Integer, primary_key=True, autoincrement=False),
        sa.Column("year", sa.Integer, nullable=False, server_default="0"),
        sa.Column("titles", sa.JSON, nullable=False),
        sa.Column("media_type", sa.String(16), nullable=True),
        sa.Column("season", sa.String(16), nullable=True),
        sa.Column("start_date", sa.String(10), nullable=True),
        sa.Column("episode_count", sa.Integer, nullable=True),
        sa.Column("episode_number", sa.Integer, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_animes_year", "animes", ["year"], unique=False)

    op.create_table(
        "mappings",
        sa.Column(
            "anilist_id",
            sa.Integer,
            sa.ForeignKey("animes.anilist_id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("platform", sa.String(16), primary_key=True),
        sa.Column("platform_id", sa.String, nullable=True),
        sa.Column("season_number", sa.Integer, nullable=True),
        sa.Column("review_status", sa.String(16), nullable=False),
        sa.Column("score", sa.Float, nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_mappings_review_status", "mappings", ["review_status"], unique=False
    )

    op.create_table(
        "jobs",
        sa.Column("platform", sa.String(16), primary_key=True),
        sa.Column("year", sa.Integer, primary_key=True, autoincrement=False),
        sa.Column("provider", sa.String(16), nullable=False),
        sa.Column("model", sa.String, nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("anilist_ids", sa.JSON, nullable=False),
        sa.Column("num_animes_to_match", sa.Integer, nullable=False),
        sa.Column("num_processed", sa.Integer, nullable=False),
        sa.Column("num_matched", sa.Integer, nullable=False),
        sa.Column("num_failed", sa.Integer, nullable=False),
        sa.Column("current_index", sa.Integer, nullable=False),
        sa.Column("error", sa.String, nullable=True),
        sa.Column("job_start_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("jobs")
    op.drop_index("ix_mappings_review_status", table_name="mappings")
    op.drop_table("mappings")
    op.drop_index("ix_animes_year", table_name="animes")
    op.drop_table("animes")
