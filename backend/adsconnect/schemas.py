"""
Pydantic models shared by services and routers.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class AdAccount(BaseModel):
    id: str  # act_<account_id>
    account_id: str
    name: str
    currency: str
    timezone: Optional[str] = None


class ConnectionView(BaseModel):
    """A connection as callers outside the Graph services see it — no credential field at all."""
    id: uuid.UUID
    owner_id: str
    fb_user_id: str
    token_type: str
    expires_at: Optional[float]
    scopes: list[str] = Field(default_factory=list)
    ad_accounts: list[AdAccount] = Field(default_factory=list)
    connected_at: datetime
    last_synced_at: datetime
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class FacebookUser(BaseModel):
    id: str
    name: Optional[str] = None
    email: Optional[str] = None


class LongLivedToken(BaseModel):
    credential: str
    token_type: str = "bearer"
    expires_in_seconds: int


class ActionLogView(BaseModel):
    id: uuid.UUID
    actor_id: str
    action: str
    target_type: str
    target_id: str
    target_name: Optional[str] = None
    ad_account_id: str
    result: str
    error_message: Optional[str] = None
    details: Optional[dict] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CreatedAdView(BaseModel):
    id: uuid.UUID
    ad_account_id: str
    campaign_id: str
    ad_set_id: str
    image_hash: str
    creative_id: str
    ad_id: str
    campaign_name: str
    ad_name: Optional[str] = None
    objective: str
    status: str
    daily_budget: Optional[int] = None
    lifetime_budget: Optional[int] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    targeting: Optional[dict] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
