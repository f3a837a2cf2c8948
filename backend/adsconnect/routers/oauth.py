"""
Facebook OAuth Router — Login URL and the redirect callback.

The callback never shows a raw error: every outcome is a redirect to the
frontend's ads page, with ?connected=true or ?error=<message>.
"""

import logging
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from adsconnect.auth import Identity, get_identity
from adsconnect.config import get_settings
from adsconnect.database import get_db
from adsconnect.errors import GraphError, ValidationError
from adsconnect.services.connection_store import ConnectionStore
from adsconnect.services.graph_client import GraphClient, get_graph_client
from adsconnect.services.oauth_service import OAuthService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth/facebook", tags=["Facebook OAuth"])

CALLBACK_PATH = "/api/auth/facebook/callback"
RESULT_PATH = "/ads/list"


def _redirect_uri(request: Request) -> str:
    """Must match exactly what the login dialog was opened with."""
    settings = get_settings()
    if settings.facebook_oauth_redirect_uri:
        return settings.facebook_oauth_redirect_uri
    return f"{request.url.scheme}://{request.url.netloc}{CALLBACK_PATH}"


def _result_redirect(query: str) -> RedirectResponse:
    base = get_settings().frontend_url.rstrip("/")
    return RedirectResponse(f"{base}{RESULT_PATH}?{query}", status_code=307)


def _error_redirect(message: str) -> RedirectResponse:
    return _result_redirect(f"error={quote(message)}")


@router.get("/login-url")
async def login_url(
    request: Request,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
    graph: GraphClient = Depends(get_graph_client),
):
    service = OAuthService(graph, ConnectionStore(db))
    url, state = service.build_authorize_url(identity, _redirect_uri(request))
    return {"url": url, "state": state}


@router.get("/callback")
async def oauth_callback(
    request: Request,
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    error_reason: Optional[str] = Query(None),
    error_description: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    graph: GraphClient = Depends(get_graph_client),
):
    """
    Facebook redirects here after the login dialog.
    The local account id comes from the state token, not the session:
    the OAuth round-trip can lose session context.
    """
    logger.info(f"Facebook OAuth callback received (code={'yes' if code else 'no'}, error={error})")

    if error:
        logger.error(f"Facebook OAuth error: {error} / {error_reason} / {error_description}")
        return _error_redirect(error_description or "Facebook authorization failed")

    service = OAuthService(graph, ConnectionStore(db))
    try:
        await service.complete_oauth_callback(code, state, _redirect_uri(request))
    except (ValidationError, GraphError) as e:
        logger.error(f"Facebook OAuth callback failed: {e}")
        await db.rollback()
        return _error_redirect(str(e) or "Failed to connect Facebook")

    return _result_redirect("connected=true")
