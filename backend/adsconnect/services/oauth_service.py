"""
OAuth Service — Facebook login: authorization code → long-lived token → stored connection.

The callback sequence is:
1. Validate the authorization code and the state token (<account_id>_<epoch_ms>)
2. Exchange the code for a short-lived token
3. Exchange that for a long-lived (~60 day) token
4. Fetch the Facebook user and their ad accounts
5. Upsert the connection — only after every remote step has succeeded
"""

import logging
import time
from typing import Optional
from urllib.parse import urlencode

from adsconnect.auth import Identity
from adsconnect.config import Settings, get_settings
from adsconnect.errors import RemoteApiError, ValidationError
from adsconnect.models import FacebookConnection
from adsconnect.schemas import AdAccount, FacebookUser, LongLivedToken
from adsconnect.services.connection_store import ConnectionStore
from adsconnect.services.graph_client import GraphClient
from adsconnect.utils import ms_to_iso, now_ms

logger = logging.getLogger(__name__)

TOKEN_ENDPOINT = "/oauth/access_token"
AD_ACCOUNT_FIELDS = "id,account_id,name,currency,timezone_name"

# Facebook omits expires_in on some long-lived exchanges; long-lived tokens last 60 days
DEFAULT_LONG_LIVED_SECONDS = 60 * 24 * 60 * 60


def build_state(subject: str, timestamp_ms: Optional[int] = None) -> str:
    """Anti-forgery state carrying the local account id: ``<subject>_<epoch_ms>``."""
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    return f"{subject}_{timestamp_ms}"


def parse_state(state: Optional[str]) -> str:
    """
    Recover the local account id from a state token.
    Account ids may contain underscores, so everything before the last
    underscore is the id (``user_33PP..._1759238776568`` → ``user_33PP...``).
    """
    if not state:
        raise ValidationError("Missing state parameter")
    parts = state.split("_")
    if len(parts) < 2:
        raise ValidationError("Invalid state parameter format")
    owner_id = "_".join(parts[:-1])
    if not owner_id:
        raise ValidationError("Invalid state parameter format")
    return owner_id


def parse_ad_account(raw: dict) -> AdAccount:
    return AdAccount(
        id=raw["id"],
        account_id=str(raw.get("account_id") or raw["id"].removeprefix("act_")),
        name=raw.get("name") or "",
        currency=raw.get("currency") or "",
        timezone=raw.get("timezone_name") or raw.get("timezone") or None,
    )


class OAuthService:
    def __init__(self, graph: GraphClient, store: ConnectionStore, settings: Optional[Settings] = None):
        self.graph = graph
        self.store = store
        self.settings = settings or get_settings()

    def build_authorize_url(self, identity: Identity, redirect_uri: str) -> tuple[str, str]:
        """Facebook login dialog URL for ``identity``; returns (url, state)."""
        state = build_state(identity.subject)
        params = {
            "client_id": self.settings.facebook_app_id,
            "redirect_uri": redirect_uri,
            "state": state,
            "scope": ",".join(self.settings.scope_list),
            "response_type": "code",
        }
        url = f"https://www.facebook.com/{self.settings.facebook_api_version}/dialog/oauth?{urlencode(params)}"
        return url, state

    async def exchange_code_for_token(self, code: str, redirect_uri: str) -> str:
        """Authorization code → short-lived access token."""
        logger.info(f"Exchanging authorization code for token (redirect_uri={redirect_uri})")
        data = await self.graph.get(
            TOKEN_ENDPOINT,
            params={
                "client_id": self.settings.facebook_app_id,
                "client_secret": self.settings.facebook_app_secret,
                "redirect_uri": redirect_uri,
                "code": code,
            },
        )
        token = data.get("access_token") if isinstance(data, dict) else None
        if not token:
            raise RemoteApiError(None, "Token exchange returned no access token")
        return token

    async def exchange_for_long_lived(self, credential: str) -> LongLivedToken:
        """
        Short- or long-lived token → fresh long-lived token.
        Also used by the refresh cron to extend an existing long-lived token.
        """
        data = await self.graph.get(
            TOKEN_ENDPOINT,
            params={
                "grant_type": "fb_exchange_token",
                "client_id": self.settings.facebook_app_id,
                "client_secret": self.settings.facebook_app_secret,
                "fb_exchange_token": credential,
            },
        )
        token = data.get("access_token") if isinstance(data, dict) else None
        if not token:
            raise RemoteApiError(None, "Long-lived token exchange returned no access token")
        return LongLivedToken(
            credential=token,
            token_type=data.get("token_type") or "bearer",
            expires_in_seconds=int(data.get("expires_in") or DEFAULT_LONG_LIVED_SECONDS),
        )

    async def fetch_remote_user(self, credential: str) -> FacebookUser:
        data = await self.graph.get("/me", credential, params={"fields": "id,name,email"})
        return FacebookUser.model_validate(data)

    async def fetch_ad_accounts(self, credential: str) -> list[AdAccount]:
        data = await self.graph.get("/me/adaccounts", credential, params={"fields": AD_ACCOUNT_FIELDS})
        return [parse_ad_account(raw) for raw in data.get("data") or []]

    async def complete_oauth_callback(
        self,
        code: Optional[str],
        state: Optional[str],
        redirect_uri: str,
    ) -> FacebookConnection:
        """Run the whole callback sequence; raises before any write if a step fails."""
        if not code:
            raise ValidationError("Missing authorization code")
        owner_id = parse_state(state)
        logger.info(f"Completing Facebook OAuth for owner {owner_id}")

        short_lived = await self.exchange_code_for_token(code, redirect_uri)
        long_lived = await self.exchange_for_long_lived(short_lived)
        fb_user = await self.fetch_remote_user(long_lived.credential)
        ad_accounts = await self.fetch_ad_accounts(long_lived.credential)

        expires_at = now_ms() + long_lived.expires_in_seconds * 1000

        connection = await self.store.upsert(
            owner_id=owner_id,
            fb_user_id=fb_user.id,
            credential=long_lived.credential,
            credential_type=long_lived.token_type,
            expires_at=expires_at,
            scopes=self.settings.scope_list,
            ad_accounts=ad_accounts,
        )
        logger.info(
            f"Facebook connection saved for owner {owner_id}: fb_user={fb_user.id}, "
            f"{len(ad_accounts)} ad account(s), expires {ms_to_iso(expires_at)}"
        )
        return connection
