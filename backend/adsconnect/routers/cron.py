"""
Cron / Scheduled Jobs — Endpoint for an external daily scheduler.

The scheduler calls POST /api/cron/refresh-tokens once a day (03:00 UTC,
see REFRESH_SCHEDULE) with the shared CRON_SECRET:
  X-Cron-Secret: <CRON_SECRET>
  OR Authorization: Bearer <CRON_SECRET>

The run's counters go to the log; the response only says whether it ran.
"""

import logging
from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from adsconnect.config import get_settings
from adsconnect.database import get_db
from adsconnect.services.connection_store import ConnectionStore
from adsconnect.services.graph_client import GraphClient, get_graph_client
from adsconnect.services.oauth_service import OAuthService
from adsconnect.services.token_refresh_service import TokenRefreshService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cron", tags=["Cron"])


async def _require_cron_secret(
    x_cron_secret: str | None = Header(None, alias="X-Cron-Secret"),
    authorization: str | None = Header(None),
) -> None:
    """Verify the request came from the scheduler."""
    secret = get_settings().cron_secret
    if not secret:
        raise HTTPException(500, "CRON_SECRET not configured")
    token = x_cron_secret
    if not token and authorization and authorization.startswith("Bearer "):
        token = authorization[7:]
    if token != secret:
        raise HTTPException(401, "Invalid cron secret")


@router.post("/refresh-tokens")
async def cron_refresh_tokens(
    _: None = Depends(_require_cron_secret),
    db: AsyncSession = Depends(get_db),
    graph: GraphClient = Depends(get_graph_client),
):
    """Refresh Facebook tokens expiring within the threshold; deactivate the ones that can't be."""
    store = ConnectionStore(db)
    service = TokenRefreshService(store, OAuthService(graph, store), graph)
    try:
        await service.refresh_expiring_tokens()
    except Exception as e:
        logger.exception("Cron token refresh failed")
        raise HTTPException(500, str(e))
    return {"status": "ok"}
