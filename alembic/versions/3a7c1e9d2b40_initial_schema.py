"""Initial schema

Revision ID: 3a7c1e9d2b40
Revises:
Create Date: 2026-10-18 09:12:44.518203

"""

from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3a7c1e9d2b40"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "profiles",
        sa.Column("id", sa.String(50), primary_key=True),
        sa.Column("first_name", sa.String(100), nullable=False, server_default=sa.text("''")),
        sa.Column("bio", sa.Text(), nullable=True),
        sa.Column("photo_path", sa.String(500), nullable=True),
        sa.Column("gender", sa.String(20), nullable=False),
        sa.Column("looking_for", sa.String(20), nullable=False),
        sa.Column("age", sa.Integer(), nullable=True),
        sa.Column("min_age", sa.Integer(), nullable=True),
        sa.Column("max_age", sa.Integer(), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("city", sa.String(100), nullable=True),
        sa.Column("max_distance_km", sa.Float(), nullable=True),
        sa.Column("smoker", sa.Boolean(), nullable=True),
        sa.Column("serious_relationship", sa.Boolean(), nullable=True),
        sa.Column("morning_person", sa.Boolean(), nullable=True),
        sa.Column("prefers_city", sa.Boolean(), nullable=True),
        sa.Column("in_conversation", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("reserved_at", sa.DateTime(), nullable=True),
        sa.Column("is_blocked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("credits", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("credits >= 0", name="ck_profiles_credits_non_negative"),
    )

    op.create_table(
        "blocks",
        sa.Column("blocker_id", sa.String(50), sa.ForeignKey("profiles.id"), primary_key=True),
        sa.Column("blocked_id", sa.String(50), sa.ForeignKey("profiles.id"), primary_key=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")),
    )

    op.create_table(
        "matches",
        sa.Column("id", sa.String(50), primary_key=True),
        sa.Column("user1_id", sa.String(50), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("user2_id", sa.String(50), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("compatibility_score", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("distance_km", sa.Float(), nullable=True),
        sa.Column("tier", sa.String(20), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")),
        sa.Column("ended_at", sa.DateTime(), nullable=True),
    )

    op.create_table(
        "conversations",
        sa.Column("id", sa.String(50), primary_key=True),
        sa.Column("match_id", sa.String(50), sa.ForeignKey("matches.id"), nullable=False),
        sa.Column("user1_id", sa.String(50), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("user2_id", sa.String(50), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("messages_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("reveal_progress", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_activity", sa.DateTime(), nullable=False, server_default=sa.text("now()")),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")),
        sa.Column("ended_at", sa.DateTime(), nullable=True),
        sa.Column("ended_by", sa.String(50), nullable=True),
        sa.CheckConstraint("reveal_progress BETWEEN 0 AND 100", name="ck_conversations_reveal_progress"),
    )

    op.create_table(
        "messages",
        sa.Column("id", sa.String(50), primary_key=True),
        sa.Column("conversation_id", sa.String(50), sa.ForeignKey("conversations.id"), nullable=False),
        sa.Column("sender_id", sa.String(50), nullable=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("is_system", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")),
    )

    op.create_table(
        "credit_transactions",
        sa.Column("id", sa.String(50), primary_key=True),
        sa.Column("user_id", sa.String(50), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("description", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("match_id", sa.String(50), sa.ForeignKey("matches.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")),
    )

    op.create_table(
        "subscriptions",
        sa.Column("id", sa.String(50), primary_key=True),
        sa.Column("user_id", sa.String(50), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("plan_type", sa.String(20), nullable=False, server_default=sa.text("'monthly'")),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'active'")),
        sa.Column("current_period_end", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")),
    )

    # Create indexes
    op.create_index("ix_profiles_in_conversation", "profiles", ["in_conversation"])
    op.create_index("ix_blocks_blocked_id", "blocks", ["blocked_id"])
    op.create_index("ix_matches_user1_id", "matches", ["user1_id"])
    op.create_index("ix_matches_user2_id", "matches", ["user2_id"])
    op.create_index("ix_matches_is_active", "matches", ["is_active"])
    op.create_index("ix_conversations_match_id", "conversations", ["match_id"])
    op.create_index("ix_messages_conversation_id", "messages", ["conversation_id"])
    op.create_index("ix_messages_created_at", "messages", ["created_at"])
    op.create_index("ix_credit_transactions_user_id", "credit_transactions", ["user_id"])
    op.create_index("ix_subscriptions_user_id", "subscriptions", ["user_id"])
    # At most one open pending transaction per user
    op.create_index(
        "uq_credit_transactions_pending_user",
        "credit_transactions",
        ["user_id"],
        unique=True,
        postgresql_where=sa.text("status = 'pending'"),
    )
    op.create_index(
        "uq_conversations_active_match",
        "conversations",
        ["match_id"],
        unique=True,
        postgresql_where=sa.text("is_active"),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index("uq_conversations_active_match", table_name="conversations")
    op.drop_index("uq_credit_transactions_pending_user", table_name="credit_transactions")
    op.drop_index("ix_subscriptions_user_id", table_name="subscriptions")
    op.drop_index("ix_credit_transactions_user_id", table_name="credit_transactions")
    op.drop_index("ix_messages_created_at", table_name="messages")
    op.drop_index("ix_messages_conversation_id", table_name="messages")
    op.drop_index("ix_conversations_match_id", table_name="conversations")
    op.drop_index("ix_matches_is_active", table_name="matches")
    op.drop_index("ix_matches_user2_id", table_name="matches")
    op.drop_index("ix_matches_user1_id", table_name="matches")
    op.drop_index("ix_blocks_blocked_id", table_name="blocks")
    op.drop_index("ix_profiles_in_conversation", table_name="profiles")

    op.drop_table("subscriptions")
    op.drop_table("credit_transactions")
    op.drop_table("messages")
    op.drop_table("conversations")
    op.drop_table("matches")
    op.drop_table("blocks")
    op.drop_table("profiles")
