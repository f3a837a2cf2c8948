"""Create facebook_connections, facebook_action_logs and facebook_created_ads.

Revision ID: 001
Revises:
Create Date: 2025-09-30

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    conn = op.get_bind()
    existing = set(sa.inspect(conn).get_table_names())

    if "facebook_connections" not in existing:
        op.create_table(
            "facebook_connections",
            sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
            sa.Column("owner_id", sa.String(255), nullable=False),
            sa.Column("fb_user_id", sa.String(255), nullable=False),
            sa.Column("access_token", sa.Text(), nullable=False),
            sa.Column("token_type", sa.String(50), nullable=True, server_default="bearer"),
            sa.Column("expires_at", sa.Float(), nullable=True),
            sa.Column("scopes", postgresql.JSON(astext_type=sa.Text()), nullable=True),
            sa.Column("ad_accounts", postgresql.JSON(astext_type=sa.Text()), nullable=True),
            sa.Column("connected_at", sa.DateTime(), nullable=True, server_default=sa.text("now()")),
            sa.Column("last_synced_at", sa.DateTime(), nullable=True, server_default=sa.text("now()")),
            sa.Column("is_active", sa.Boolean(), nullable=True, server_default=sa.true()),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("owner_id", name="uq_facebook_connection_owner"),
        )
        op.create_index("ix_facebook_connections_fb_user_id", "facebook_connections", ["fb_user_id"])
        op.create_index("ix_facebook_connections_is_active", "facebook_connections", ["is_active"])

    if "facebook_action_logs" not in existing:
        op.create_table(
            "facebook_action_logs",
            sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
            sa.Column("actor_id", sa.String(255), nullable=False),
            sa.Column("action", sa.String(100), nullable=False),
            sa.Column("target_type", sa.String(50), nullable=False),
            sa.Column("target_id", sa.String(255), nullable=False),
            sa.Column("target_name", sa.String(512), nullable=True),
            sa.Column("ad_account_id", sa.String(255), nullable=False),
            sa.Column("result", sa.String(20), nullable=False),
            sa.Column("error_message", sa.Text(), nullable=True),
            sa.Column("details", postgresql.JSON(astext_type=sa.Text()), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=True, server_default=sa.text("now()")),
            sa.Column("sequence", sa.BigInteger(), nullable=False, server_default="0"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_facebook_action_logs_actor_id", "facebook_action_logs", ["actor_id"])
        op.create_index("ix_facebook_action_logs_ad_account_id", "facebook_action_logs", ["ad_account_id"])
        op.create_index("ix_facebook_action_logs_action", "facebook_action_logs", ["action"])
        op.create_index("ix_facebook_action_logs_created_at", "facebook_action_logs", ["created_at"])

    if "facebook_created_ads" not in existing:
        op.create_table(
            "facebook_created_ads",
            sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
            sa.Column("owner_id", sa.String(255), nullable=False),
            sa.Column("ad_account_id", sa.String(255), nullable=False),
            sa.Column("campaign_id", sa.String(255), nullable=False),
            sa.Column("ad_set_id", sa.String(255), nullable=False),
            sa.Column("image_hash", sa.String(255), nullable=False),
            sa.Column("creative_id", sa.String(255), nullable=False),
            sa.Column("ad_id", sa.String(255), nullable=False),
            sa.Column("campaign_name", sa.String(512), nullable=False),
            sa.Column("ad_name", sa.String(512), nullable=True),
            sa.Column("objective", sa.String(100), nullable=False),
            sa.Column("status", sa.String(20), nullable=True, server_default="PAUSED"),
            sa.Column("daily_budget", sa.BigInteger(), nullable=True),
            sa.Column("lifetime_budget", sa.BigInteger(), nullable=True),
            sa.Column("start_time", sa.String(64), nullable=True),
            sa.Column("end_time", sa.String(64), nullable=True),
            sa.Column("targeting", postgresql.JSON(astext_type=sa.Text()), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=True, server_default=sa.text("now()")),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_facebook_created_ads_owner_id", "facebook_created_ads", ["owner_id"])
        op.create_index("ix_facebook_created_ads_ad_account_id", "facebook_created_ads", ["ad_account_id"])
        op.create_index("ix_facebook_created_ads_created_at", "facebook_created_ads", ["created_at"])


def downgrade() -> None:
    op.drop_index("ix_facebook_created_ads_created_at", table_name="facebook_created_ads")
    op.drop_index("ix_facebook_created_ads_ad_account_id", table_name="facebook_created_ads")
    op.drop_index("ix_facebook_created_ads_owner_id", table_name="facebook_created_ads")
    op.drop_table("facebook_created_ads")

    op.drop_index("ix_facebook_action_logs_created_at", table_name="facebook_action_logs")
    op.drop_index("ix_facebook_action_logs_action", table_name="facebook_action_logs")
    op.drop_index("ix_facebook_action_logs_ad_account_id", table_name="facebook_action_logs")
    op.drop_index("ix_facebook_action_logs_actor_id", table_name="facebook_action_logs")
    op.drop_table("facebook_action_logs")

    op.drop_index("ix_facebook_connections_is_active", table_name="facebook_connections")
    op.drop_index("ix_facebook_connections_fb_user_id", table_name="facebook_connections")
    op.drop_table("facebook_connections")
