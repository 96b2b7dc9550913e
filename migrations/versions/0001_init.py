"""community ratings and weekly events

Revision ID: 0001_init
Revises:
Create Date: 2026-10-19

"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "community_ratings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("tmdb_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=512), nullable=True),
        sa.Column("overall", sa.Float(), nullable=False),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()")
        ),
        sa.UniqueConstraint(
            "user_id", "tmdb_id", name="uq_community_rating_user_movie"
        ),
    )
    op.create_index(
        "ix_community_ratings_user_id", "community_ratings", ["user_id"]
    )
    op.create_index(
        "ix_community_ratings_tmdb_id", "community_ratings", ["tmdb_id"]
    )

    op.create_table(
        "weekly_events",
        sa.Column("event_id", sa.String(length=16), primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("start_vote_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_vote_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("theme", sa.Text(), nullable=False),
        sa.Column("intro", sa.Text(), nullable=False),
        sa.Column("candidates", sa.JSON(), nullable=False),
    )
    op.create_index(
        "ix_weekly_events_start_vote_date", "weekly_events", ["start_vote_date"]
    )


def downgrade():
    op.drop_index("ix_weekly_events_start_vote_date", table_name="weekly_events")
    op.drop_table("weekly_events")
    op.drop_index("ix_community_ratings_tmdb_id", table_name="community_ratings")
    op.drop_index("ix_community_ratings_user_id", table_name="community_ratings")
    op.drop_table("community_ratings")
