"""
Facebook Router — Connection status, ad accounts, insights, ad status changes,
end-to-end ad creation and the action log, all scoped to the caller's identity.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from adsconnect.auth import Identity, get_identity
from adsconnect.database import get_db
from adsconnect.errors import (
    ExpiredCredential, GraphError, NoActiveConnection, OrchestrationStepError, ValidationError,
)
from adsconnect.models import AdStatus
from adsconnect.schemas import ActionLogView, AdAccount, CreatedAdView
from adsconnect.services.action_log_service import ActionLogService
from adsconnect.services.ad_creation_service import AdCreationService, CompleteAdSpec
from adsconnect.services.connection_store import ConnectionStore
from adsconnect.services.graph_client import GraphClient, get_graph_client
from adsconnect.services.marketing_service import MarketingService

logger = logging.getLogger(__name__)

router = APIRouter()


# ── Schemas ──────────────────────────────────────────────────────────
class AdStatusUpdate(BaseModel):
    status: AdStatus
    ad_account_id: str
    ad_name: Optional[str] = None


# ── Helpers ───────────────────────────────────────────────────────────
def _to_http(e: Exception) -> HTTPException:
    """Map domain errors onto HTTP responses; the message text is shown to the user as-is."""
    if isinstance(e, ValidationError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, NoActiveConnection):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, ExpiredCredential) or (
        isinstance(e, OrchestrationStepError) and isinstance(e.cause, ExpiredCredential)
    ):
        return HTTPException(status_code=401, detail="EXPIRED_TOKEN")
    return HTTPException(status_code=502, detail=str(e))


_DOMAIN_ERRORS = (ValidationError, NoActiveConnection, GraphError, OrchestrationStepError)


# ── Connection ───────────────────────────────────────────────────────
@router.get("/connection")
async def get_connection(identity: Identity = Depends(get_identity), db: AsyncSession = Depends(get_db)):
    """The caller's connection without its access token, or null."""
    view = await ConnectionStore(db).get_safe_view(identity.subject)
    return view.model_dump(mode="json") if view else None


@router.get("/connection/status")
async def connection_status(identity: Identity = Depends(get_identity), db: AsyncSession = Depends(get_db)):
    active = await ConnectionStore(db).has_active_connection(identity.subject)
    return {"connected": active}


@router.post("/disconnect")
async def disconnect(identity: Identity = Depends(get_identity), db: AsyncSession = Depends(get_db)):
    await ConnectionStore(db).deactivate(identity.subject)
    logger.info(f"Owner {identity.subject} disconnected Facebook")
    return {"success": True}


# ── Ad accounts & pages ──────────────────────────────────────────────
@router.get("/ad-accounts", response_model=list[AdAccount])
async def list_ad_accounts(identity: Identity = Depends(get_identity), db: AsyncSession = Depends(get_db)):
    return await ConnectionStore(db).get_ad_accounts(identity.subject)


@router.post("/ad-accounts/sync", response_model=list[AdAccount])
async def sync_ad_accounts(
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
    graph: GraphClient = Depends(get_graph_client),
):
    try:
        return await MarketingService(db, graph).sync_ad_accounts(identity)
    except _DOMAIN_ERRORS as e:
        raise _to_http(e)


@router.get("/pages")
async def list_pages(
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
    graph: GraphClient = Depends(get_graph_client),
):
    try:
        return await MarketingService(db, graph).fetch_pages(identity)
    except _DOMAIN_ERRORS as e:
        raise _to_http(e)


# ── Reporting ────────────────────────────────────────────────────────
@router.get("/insights")
async def account_insights(
    ad_account_id: str = Query(...),
    date_preset: Optional[str] = Query(None, description="e.g. last_7d, last_30d"),
    start_date: Optional[str] = Query(None, description="YYYY-MM-DD"),
    end_date: Optional[str] = Query(None, description="YYYY-MM-DD"),
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
    graph: GraphClient = Depends(get_graph_client),
):
    try:
        return await MarketingService(db, graph).fetch_account_insights(
            identity, ad_account_id, date_preset, start_date, end_date
        )
    except _DOMAIN_ERRORS as e:
        raise _to_http(e)


@router.get("/campaigns")
async def list_campaigns(
    ad_account_id: str = Query(...),
    limit: int = Query(25, ge=1, le=500),
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
    graph: GraphClient = Depends(get_graph_client),
):
    try:
        return await MarketingService(db, graph).fetch_campaigns(identity, ad_account_id, limit)
    except _DOMAIN_ERRORS as e:
        raise _to_http(e)


@router.get("/campaign-insights")
async def campaign_insights(
    ad_account_id: str = Query(...),
    date_preset: Optional[str] = Query(None),
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
    graph: GraphClient = Depends(get_graph_client),
):
    try:
        return await MarketingService(db, graph).fetch_campaign_insights(identity, ad_account_id, date_preset)
    except _DOMAIN_ERRORS as e:
        raise _to_http(e)


# ── Ads ──────────────────────────────────────────────────────────────
@router.post("/ads/{ad_id}/status")
async def update_ad_status(
    ad_id: str,
    payload: AdStatusUpdate,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
    graph: GraphClient = Depends(get_graph_client),
):
    try:
        return await MarketingService(db, graph).update_ad_status(
            identity, ad_id, payload.status, payload.ad_account_id, payload.ad_name
        )
    except _DOMAIN_ERRORS as e:
        raise _to_http(e)


@router.post("/ads")
async def create_ad(
    payload: CompleteAdSpec,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
    graph: GraphClient = Depends(get_graph_client),
):
    """Create campaign → ad set → image → creative → ad in one call."""
    try:
        result = await AdCreationService(db, graph).create_complete_ad(identity, payload)
    except _DOMAIN_ERRORS as e:
        raise _to_http(e)
    return {
        "campaign_id": result.campaign_id,
        "ad_set_id": result.ad_set_id,
        "image_hash": result.image_hash,
        "creative_id": result.creative_id,
        "ad_id": result.ad_id,
    }


@router.get("/ads", response_model=list[CreatedAdView])
async def list_created_ads(
    limit: int = Query(50, ge=1, le=200),
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
    graph: GraphClient = Depends(get_graph_client),
):
    return await AdCreationService(db, graph).list_created_ads(identity.subject, limit)


# ── Action log ───────────────────────────────────────────────────────
@router.get("/action-logs", response_model=list[ActionLogView])
async def list_action_logs(
    limit: int = Query(100, ge=1, le=100),
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    return await ActionLogService(db).list_for_actor(identity.subject, limit)
