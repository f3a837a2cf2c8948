"""
Marketing Service — Read and status operations on the owner's Facebook ad accounts.

Every call runs with the owner's stored credential. When Facebook rejects
the credential the connection is deactivated and ExpiredCredential is
re-raised so the caller can prompt for a reconnect.
"""

import json
import logging
from typing import Any, Awaitable, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from adsconnect.auth import Identity
from adsconnect.errors import ExpiredCredential, GraphError, ValidationError
from adsconnect.models import ActionKind, ActionResult, AdStatus
from adsconnect.schemas import AdAccount
from adsconnect.services.action_log_service import ActionLogService
from adsconnect.services.connection_store import ConnectionStore
from adsconnect.services.graph_client import GraphClient
from adsconnect.services.oauth_service import AD_ACCOUNT_FIELDS, parse_ad_account

logger = logging.getLogger(__name__)

ACCOUNT_INSIGHT_FIELDS = "impressions,clicks,spend,ctr,cpc,cpp,cpm"
CAMPAIGN_INSIGHT_FIELDS = "campaign_id,campaign_name,impressions,clicks,spend,ctr"
CAMPAIGN_FIELDS = "id,name,status,objective,daily_budget,lifetime_budget"
DEFAULT_DATE_PRESET = "last_7d"


class MarketingService:
    def __init__(
        self,
        db: AsyncSession,
        graph: GraphClient,
        store: Optional[ConnectionStore] = None,
        action_log: Optional[ActionLogService] = None,
    ):
        self.db = db
        self.graph = graph
        self.store = store or ConnectionStore(db)
        self.action_log = action_log or ActionLogService(db)

    async def _with_credential(self, identity: Identity, fn: Callable[[str], Awaitable[Any]]) -> Any:
        conn = await self.store.require_active(identity.subject)
        try:
            return await fn(conn.credential)
        except ExpiredCredential:
            logger.warning(f"Facebook rejected the token for owner {identity.subject}; disconnecting")
            await self.store.deactivate(identity.subject)
            await self.db.commit()
            raise

    async def sync_ad_accounts(self, identity: Identity) -> list[AdAccount]:
        """Fetch the latest ad accounts from Facebook and cache them on the connection."""
        async def _fetch(token: str) -> list[AdAccount]:
            data = await self.graph.get(
                "/me/adaccounts", token, params={"fields": f"{AD_ACCOUNT_FIELDS},account_status"}
            )
            return [parse_ad_account(raw) for raw in data.get("data") or []]

        accounts = await self._with_credential(identity, _fetch)
        await self.store.update_ad_accounts(identity.subject, accounts)
        logger.info(f"Synced {len(accounts)} ad account(s) for owner {identity.subject}")
        return accounts

    async def fetch_pages(self, identity: Identity) -> list[dict]:
        """Facebook Pages the owner manages (creatives are published as a Page)."""
        async def _fetch(token: str) -> list[dict]:
            data = await self.graph.get("/me/accounts", token, params={"fields": "id,name"})
            return [{"id": p["id"], "name": p.get("name", "")} for p in data.get("data") or []]

        return await self._with_credential(identity, _fetch)

    async def fetch_account_insights(
        self,
        identity: Identity,
        ad_account_id: str,
        date_preset: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> list[dict]:
        params = {"fields": ACCOUNT_INSIGHT_FIELDS, "level": "account"}
        if date_preset:
            params["date_preset"] = date_preset
        elif start_date and end_date:
            params["time_range"] = json.dumps({"since": start_date, "until": end_date})
        else:
            params["date_preset"] = DEFAULT_DATE_PRESET

        async def _fetch(token: str) -> list[dict]:
            data = await self.graph.get(f"/{ad_account_id}/insights", token, params=params)
            return data.get("data") or []

        return await self._with_credential(identity, _fetch)

    async def fetch_campaigns(self, identity: Identity, ad_account_id: str, limit: int = 25) -> list[dict]:
        async def _fetch(token: str) -> list[dict]:
            data = await self.graph.get(
                f"/{ad_account_id}/campaigns", token, params={"fields": CAMPAIGN_FIELDS, "limit": limit}
            )
            return data.get("data") or []

        return await self._with_credential(identity, _fetch)

    async def fetch_campaign_insights(
        self, identity: Identity, ad_account_id: str, date_preset: Optional[str] = None,
    ) -> list[dict]:
        params = {
            "fields": CAMPAIGN_INSIGHT_FIELDS,
            "level": "campaign",
            "date_preset": date_preset or DEFAULT_DATE_PRESET,
        }

        async def _fetch(token: str) -> list[dict]:
            data = await self.graph.get(f"/{ad_account_id}/insights", token, params=params)
            return data.get("data") or []

        return await self._with_credential(identity, _fetch)

    async def update_ad_status(
        self,
        identity: Identity,
        ad_id: str,
        status: AdStatus | str,
        ad_account_id: str,
        ad_name: Optional[str] = None,
    ) -> dict:
        """Pause or resume an ad, logging the change (or the failure) to the action log."""
        try:
            status = AdStatus(status)
        except ValueError:
            raise ValidationError(f"Unsupported ad status: {status!r}")
        action = ActionKind.PAUSE_AD if status is AdStatus.PAUSED else ActionKind.RESUME_AD
        conn = await self.store.require_active(identity.subject)

        try:
            current = await self.graph.get(f"/{ad_id}", conn.credential, params={"fields": "status"})
            await self.graph.post(f"/{ad_id}", conn.credential, {"status": status.value})
        except GraphError as e:
            await self.action_log.record(
                actor_id=identity.subject,
                action=action,
                target_type="ad",
                target_id=ad_id,
                target_name=ad_name,
                owner_account_id=ad_account_id,
                result=ActionResult.FAILURE,
                error_message=str(e),
            )
            if isinstance(e, ExpiredCredential):
                await self.store.deactivate(identity.subject)
            await self.db.commit()
            raise

        await self.action_log.record(
            actor_id=identity.subject,
            action=action,
            target_type="ad",
            target_id=ad_id,
            target_name=ad_name,
            owner_account_id=ad_account_id,
            result=ActionResult.SUCCESS,
            metadata={"previous_status": current.get("status"), "new_status": status.value},
        )
        return {"success": True}
