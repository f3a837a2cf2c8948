"""
Token Refresh Service — Daily extension of long-lived Facebook tokens.

Each active connection moves through:
  HEALTHY             expires in more than the threshold (7 days); left alone
  EXPIRING_SOON       within the threshold; picked for refresh
  REFRESHING          exchanging the current token for a new long-lived one
  REFRESHED           new token verified with GET /me and patched into the store
  FAILED_DEACTIVATED  exchange or verification failed, or the expiry is unusable;
                      the owner has to go through OAuth again

Each connection's outcome is committed before the next one is looked at.
Nothing is retried within a run. The per-connection state lives only for the
duration of the run; the store keeps just the new credential and expiry.
"""

import asyncio
import enum
import logging
import math
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from adsconnect.config import Settings, get_settings
from adsconnect.errors import GraphError, ValidationError
from adsconnect.services.connection_store import ConnectionStore, StoredConnection
from adsconnect.services.graph_client import GraphClient
from adsconnect.services.oauth_service import OAuthService
from adsconnect.utils import MS_PER_DAY, is_valid_expiry, ms_to_iso, now_ms

logger = logging.getLogger(__name__)

# Cron expression for the external scheduler (daily, 03:00 UTC)
REFRESH_SCHEDULE = "0 3 * * *"


class RefreshState(str, enum.Enum):
    HEALTHY = "healthy"
    EXPIRING_SOON = "expiring_soon"
    REFRESHING = "refreshing"
    REFRESHED = "refreshed"
    FAILED_DEACTIVATED = "failed_deactivated"


@dataclass
class RefreshOutcome:
    state: RefreshState
    new_expires_at: Optional[float] = None
    error: Optional[str] = None


@dataclass
class RefreshSummary:
    total: int = 0
    refreshed: int = 0
    failed: int = 0
    skipped: int = 0
    invalid: int = 0
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def as_dict(self) -> dict:
        return asdict(self)


def days_until_expiry(expires_at: float, now: float) -> int:
    return math.floor((expires_at - now) / MS_PER_DAY)


class TokenRefreshService:
    def __init__(
        self,
        store: ConnectionStore,
        oauth: OAuthService,
        graph: GraphClient,
        settings: Optional[Settings] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.store = store
        self.oauth = oauth
        self.graph = graph
        self.settings = settings or get_settings()
        self._sleep = sleep

    def classify(self, conn: StoredConnection, now: float) -> RefreshState:
        if days_until_expiry(conn.expires_at, now) > self.settings.token_refresh_threshold_days:
            return RefreshState.HEALTHY
        return RefreshState.EXPIRING_SOON

    async def verify_credential(self, credential: str) -> bool:
        """
        Probe the new token with GET /me.
        Any failure counts as invalid, including a transient network error.
        """
        try:
            await self.graph.get("/me", credential, params={"fields": "id"})
            return True
        except GraphError as e:
            logger.warning(f"Token verification failed: {e}")
            return False

    async def refresh_single(self, conn: StoredConnection) -> RefreshOutcome:
        logger.info(f"Refreshing token for owner {conn.owner_id}")
        try:
            token = await self.oauth.exchange_for_long_lived(conn.credential)
            new_expires_at = now_ms() + token.expires_in_seconds * 1000

            if not await self.verify_credential(token.credential):
                raise ValidationError("New token verification failed")

            await self.store.replace_credential(conn.id, token.credential, new_expires_at)
            await self.store.commit()
        except Exception as e:
            logger.error(f"Failed to refresh token for owner {conn.owner_id}: {e}")
            if not isinstance(e, (GraphError, ValidationError)):
                await self.store.rollback()
            await self.store.deactivate_by_id(conn.id)
            await self.store.commit()
            return RefreshOutcome(RefreshState.FAILED_DEACTIVATED, error=str(e))

        logger.info(f"Token refreshed for owner {conn.owner_id}. New expiry: {ms_to_iso(new_expires_at)}")
        return RefreshOutcome(RefreshState.REFRESHED, new_expires_at=new_expires_at)

    async def refresh_expiring_tokens(self) -> RefreshSummary:
        """Scan every active connection once; see the module docstring for the transitions."""
        logger.info("Starting Facebook token refresh run...")
        connections = await self.store.list_active()
        summary = RefreshSummary(total=len(connections))
        logger.info(f"Found {len(connections)} active connection(s) to check")

        attempted = 0
        for conn in connections:
            if not is_valid_expiry(conn.expires_at):
                summary.invalid += 1
                logger.error(
                    f"Invalid expiration date ({conn.expires_at!r}) for owner {conn.owner_id}. "
                    "Connection needs to be re-established."
                )
                await self.store.deactivate_by_id(conn.id)
                await self.store.commit()
                continue

            now = now_ms()
            if self.classify(conn, now) is RefreshState.HEALTHY:
                summary.skipped += 1
                logger.info(
                    f"Skipping owner {conn.owner_id} - token expires in {days_until_expiry(conn.expires_at, now)} days"
                )
                continue

            if conn.expires_at <= now:
                # An expired token cannot be exchanged
                summary.failed += 1
                logger.warning(f"Token for owner {conn.owner_id} already expired at {ms_to_iso(conn.expires_at)}")
                await self.store.deactivate_by_id(conn.id)
                await self.store.commit()
                continue

            if attempted:
                await self._sleep(self.settings.token_refresh_delay_seconds)
            attempted += 1

            outcome = await self.refresh_single(conn)
            if outcome.state is RefreshState.REFRESHED:
                summary.refreshed += 1
            else:
                summary.failed += 1

        logger.info(f"Token refresh run completed: {summary.as_dict()}")
        if summary.invalid:
            logger.warning(
                f"Found {summary.invalid} connection(s) with invalid expiration dates. "
                "These have been marked inactive and their owners need to reconnect."
            )
        return summary
