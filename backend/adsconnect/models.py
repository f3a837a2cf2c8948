"""
Facebook Ads Connector — Database Models
One connection per local account, an append-only action log, and the
record of every ad created through the connector.
"""

import uuid
import enum
from datetime import datetime, timezone
from sqlalchemy import (
    String, Text, Float, BigInteger, Boolean, DateTime,
    JSON, Index, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID
from adsconnect.database import Base


def _utcnow() -> datetime:
    """Naive UTC now — matches DB columns (TIMESTAMP WITHOUT TIME ZONE)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ══════════════════════════════════════════════════════════════════════
#  ENUMS
# ══════════════════════════════════════════════════════════════════════

class ActionResult(str, enum.Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class ActionKind(str, enum.Enum):
    PAUSE_AD = "pause_ad"
    RESUME_AD = "resume_ad"
    CREATE_CAMPAIGN = "create_campaign"
    CREATE_AD_SET = "create_adset"
    CREATE_CREATIVE = "create_creative"
    CREATE_AD = "create_ad"


class AdStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"


# ══════════════════════════════════════════════════════════════════════
#  CONNECTIONS — One Facebook login per local account
# ══════════════════════════════════════════════════════════════════════

class FacebookConnection(Base):
    """Facebook credential and cached ad accounts for a local account."""
    __tablename__ = "facebook_connections"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[str] = mapped_column(String(255), nullable=False)  # identity-provider subject
    fb_user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    access_token: Mapped[str] = mapped_column(Text, nullable=False)  # Fernet ciphertext
    token_type: Mapped[str] = mapped_column(String(50), default="bearer")
    # Epoch milliseconds. Legacy rows may hold NaN/NULL; see is_valid_expiry.
    expires_at: Mapped[float] = mapped_column(Float, nullable=True)
    scopes: Mapped[list] = mapped_column(JSON, default=list)
    ad_accounts: Mapped[list] = mapped_column(JSON, default=list)  # [{id, account_id, name, currency, timezone}]
    connected_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    last_synced_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    __table_args__ = (
        UniqueConstraint("owner_id", name="uq_facebook_connection_owner"),
        Index("ix_facebook_connections_fb_user_id", "fb_user_id"),
        Index("ix_facebook_connections_is_active", "is_active"),
    )


# ══════════════════════════════════════════════════════════════════════
#  ACTION LOG — Append-only audit trail of mutating Graph calls
# ══════════════════════════════════════════════════════════════════════

class FacebookActionLog(Base):
    """Every mutating action taken against the Graph API, success or failure."""
    __tablename__ = "facebook_action_logs"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    actor_id: Mapped[str] = mapped_column(String(255), nullable=False)
    action: Mapped[str] = mapped_column(String(100), nullable=False)  # pause_ad, create_campaign, ...
    target_type: Mapped[str] = mapped_column(String(50), nullable=False)  # ad, adset, campaign, creative
    target_id: Mapped[str] = mapped_column(String(255), nullable=False)
    target_name: Mapped[str] = mapped_column(String(512), nullable=True)
    ad_account_id: Mapped[str] = mapped_column(String(255), nullable=False)
    result: Mapped[str] = mapped_column(String(20), nullable=False)
    error_message: Mapped[str] = mapped_column(Text, nullable=True)
    details: Mapped[dict] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    # Wall clock in ns at insert; orders entries written within the same timestamp tick
    sequence: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    __table_args__ = (
        Index("ix_facebook_action_logs_actor_id", "actor_id"),
        Index("ix_facebook_action_logs_ad_account_id", "ad_account_id"),
        Index("ix_facebook_action_logs_action", "action"),
        Index("ix_facebook_action_logs_created_at", "created_at"),
    )


# ══════════════════════════════════════════════════════════════════════
#  CREATED ADS — Result of a completed ad-creation run
# ══════════════════════════════════════════════════════════════════════

class CreatedAd(Base):
    """Remote ids and parameters of an ad created end-to-end by the connector."""
    __tablename__ = "facebook_created_ads"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[str] = mapped_column(String(255), nullable=False)
    ad_account_id: Mapped[str] = mapped_column(String(255), nullable=False)
    campaign_id: Mapped[str] = mapped_column(String(255), nullable=False)
    ad_set_id: Mapped[str] = mapped_column(String(255), nullable=False)
    image_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    creative_id: Mapped[str] = mapped_column(String(255), nullable=False)
    ad_id: Mapped[str] = mapped_column(String(255), nullable=False)
    campaign_name: Mapped[str] = mapped_column(String(512), nullable=False)
    ad_name: Mapped[str] = mapped_column(String(512), nullable=True)
    objective: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=AdStatus.PAUSED.value)
    daily_budget: Mapped[int] = mapped_column(BigInteger, nullable=True)  # minor units (cents)
    lifetime_budget: Mapped[int] = mapped_column(BigInteger, nullable=True)
    start_time: Mapped[str] = mapped_column(String(64), nullable=True)
    end_time: Mapped[str] = mapped_column(String(64), nullable=True)
    targeting: Mapped[dict] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)

    __table_args__ = (
        Index("ix_facebook_created_ads_owner_id", "owner_id"),
        Index("ix_facebook_created_ads_ad_account_id", "ad_account_id"),
        Index("ix_facebook_created_ads_created_at", "created_at"),
    )
