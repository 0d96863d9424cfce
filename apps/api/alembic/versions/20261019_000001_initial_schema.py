"""create creator score schema

Revision ID: 20261019_000001
Revises:
Create Date: 2026-10-19 00:00:01.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261019_000001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "creators",
        sa.Column("fid", sa.Integer(), autoincrement=False, nullable=False),
        sa.Column("username", sa.String(), nullable=False),
        sa.Column("follower_count", sa.Integer(), nullable=False),
        sa.Column("following_count", sa.Integer(), nullable=False),
        sa.Column("power_badge", sa.Boolean(), nullable=False),
        sa.Column("neynar_score", sa.Float(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=True),
        sa.PrimaryKeyConstraint("fid"),
    )
    op.create_index(op.f("ix_creators_username"), "creators", ["username"], unique=False)
    op.create_index(op.f("ix_creators_follower_count"), "creators", ["follower_count"], unique=False)
    op.create_index(op.f("ix_creators_neynar_score"), "creators", ["neynar_score"], unique=False)

    op.create_table(
        "creator_scores",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("creator_fid", sa.Integer(), nullable=False),
        sa.Column("overall_score", sa.Integer(), nullable=False),
        sa.Column("percentile_rank", sa.Integer(), nullable=False),
        sa.Column("tier", sa.Integer(), nullable=False),
        sa.Column("engagement", sa.Float(), nullable=False),
        sa.Column("consistency", sa.Float(), nullable=False),
        sa.Column("growth", sa.Float(), nullable=False),
        sa.Column("quality", sa.Float(), nullable=False),
        sa.Column("network", sa.Float(), nullable=False),
        sa.Column("score_date", sa.Date(), nullable=False),
        sa.Column("valid_until", sa.DateTime(timezone=True), nullable=False),
        sa.Column("shareable_id", sa.String(), nullable=False),
        sa.Column("is_provisional", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("creator_fid", "score_date", name="uq_creator_scores_creator_day"),
    )
    op.create_index(op.f("ix_creator_scores_creator_fid"), "creator_scores", ["creator_fid"], unique=False)
    op.create_index(op.f("ix_creator_scores_score_date"), "creator_scores", ["score_date"], unique=False)
    op.create_index(op.f("ix_creator_scores_shareable_id"), "creator_scores", ["shareable_id"], unique=True)
    op.create_index("ix_creator_scores_day_overall", "creator_scores", ["score_date", "overall_score"], unique=False)
    op.create_index("ix_creator_scores_tier_overall", "creator_scores", ["tier", "overall_score"], unique=False)

    op.create_table(
        "loan_waitlist",
        sa.Column("fid", sa.Integer(), autoincrement=False, nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("joined_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=True),
        sa.PrimaryKeyConstraint("fid"),
    )
    op.create_index(op.f("ix_loan_waitlist_joined_at"), "loan_waitlist", ["joined_at"], unique=False)


def downgrade() -> None:
    op.drop_index(op.f("ix_loan_waitlist_joined_at"), table_name="loan_waitlist")
    op.drop_table("loan_waitlist")

    op.drop_index("ix_creator_scores_tier_overall", table_name="creator_scores")
    op.drop_index("ix_creator_scores_day_overall", table_name="creator_scores")
    op.drop_index(op.f("ix_creator_scores_shareable_id"), table_name="creator_scores")
    op.drop_index(op.f("ix_creator_scores_score_date"), table_name="creator_scores")
    op.drop_index(op.f("ix_creator_scores_creator_fid"), table_name="creator_scores")
    op.drop_table("creator_scores")

    op.drop_index(op.f("ix_creators_neynar_score"), table_name="creators")
    op.drop_index(op.f("ix_creators_follower_count"), table_name="creators")
    op.drop_index(op.f("ix_creators_username"), table_name="creators")
    op.drop_table("creators")
