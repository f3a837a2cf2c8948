"""
Connection Store — The persisted Facebook connection for each local account.

Credentials are encrypted on the way in and only decrypted for the Graph
services through get_with_credential / list_active. Everything handed to
routers goes through ConnectionView, which has no credential field.

Concurrent writers are not version-checked: each transition is a single
UPDATE, so the last writer of a field wins.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Iterable, Optional, Union

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from adsconnect.crypto import decrypt_value, encrypt_value
from adsconnect.errors import NoActiveConnection, ValidationError
from adsconnect.models import FacebookConnection
from adsconnect.schemas import AdAccount, ConnectionView
from adsconnect.utils import is_valid_expiry, ms_to_iso, now_ms, utcnow

logger = logging.getLogger(__name__)


@dataclass
class StoredConnection:
    """A connection with its credential decrypted. Never leaves the service layer."""
    id: uuid.UUID
    owner_id: str
    fb_user_id: str
    credential: str
    expires_at: Optional[float]
    is_active: bool
    ad_accounts: list[dict] = field(default_factory=list)


def _normalize_accounts(ad_accounts: Iterable[Union[AdAccount, dict]]) -> list[dict]:
    return [
        (a if isinstance(a, AdAccount) else AdAccount.model_validate(a)).model_dump()
        for a in ad_accounts
    ]


def _to_stored(conn: FacebookConnection) -> StoredConnection:
    return StoredConnection(
        id=conn.id,
        owner_id=conn.owner_id,
        fb_user_id=conn.fb_user_id,
        credential=decrypt_value(conn.access_token),
        expires_at=conn.expires_at,
        is_active=conn.is_active,
        ad_accounts=list(conn.ad_accounts or []),
    )


class ConnectionStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def commit(self) -> None:
        await self.db.commit()

    async def rollback(self) -> None:
        await self.db.rollback()

    async def _get(self, owner_id: str) -> Optional[FacebookConnection]:
        result = await self.db.execute(
            select(FacebookConnection).where(FacebookConnection.owner_id == owner_id)
        )
        return result.scalar_one_or_none()

    async def upsert(
        self,
        owner_id: str,
        fb_user_id: str,
        credential: str,
        credential_type: str,
        expires_at: float,
        scopes: list[str],
        ad_accounts: Iterable[Union[AdAccount, dict]],
    ) -> FacebookConnection:
        """Create or fully replace the owner's connection; always active, always freshly synced."""
        if not is_valid_expiry(expires_at):
            raise ValidationError(f"Invalid token expiry: {expires_at!r}")

        now = utcnow()
        accounts = _normalize_accounts(ad_accounts)
        conn = await self._get(owner_id)

        if conn is None:
            conn = FacebookConnection(owner_id=owner_id, connected_at=now)
            self.db.add(conn)
            logger.info(f"Creating Facebook connection for owner {owner_id}")
        else:
            logger.info(f"Replacing Facebook connection for owner {owner_id}")

        conn.fb_user_id = fb_user_id
        conn.access_token = encrypt_value(credential)
        conn.token_type = credential_type
        conn.expires_at = expires_at
        conn.scopes = list(scopes)
        conn.ad_accounts = accounts
        conn.last_synced_at = now
        conn.is_active = True

        await self.db.flush()
        return conn

    async def get_safe_view(self, owner_id: str) -> Optional[ConnectionView]:
        conn = await self._get(owner_id)
        if conn is None:
            return None
        return ConnectionView.model_validate(conn)

    async def get_with_credential(self, owner_id: str) -> Optional[StoredConnection]:
        """
        Privileged accessor for the Graph services.
        Returns None for a missing or expired connection, whatever its active flag.
        A connection whose expiry cannot be read is deactivated on the spot.
        """
        conn = await self._get(owner_id)
        if conn is None:
            return None

        if not is_valid_expiry(conn.expires_at):
            logger.error(f"Invalid token expiry ({conn.expires_at!r}) for owner {owner_id}; deactivating")
            await self.deactivate(owner_id)
            # must outlive the rollback that follows NoActiveConnection
            await self.db.commit()
            return None

        if conn.expires_at <= now_ms():
            logger.info(f"Token expired for owner {owner_id} at {ms_to_iso(conn.expires_at)}")
            return None

        return _to_stored(conn)

    async def require_active(self, owner_id: str) -> StoredConnection:
        """get_with_credential, but raising NoActiveConnection unless the connection is usable."""
        stored = await self.get_with_credential(owner_id)
        if stored is None or not stored.is_active:
            raise NoActiveConnection()
        return stored

    async def deactivate(self, owner_id: str) -> None:
        """Mark the owner's connection inactive. Safe to call repeatedly or with no connection."""
        await self.db.execute(
            update(FacebookConnection)
            .where(FacebookConnection.owner_id == owner_id)
            .values(is_active=False)
        )
        await self.db.flush()

    async def deactivate_by_id(self, connection_id: uuid.UUID) -> None:
        await self.db.execute(
            update(FacebookConnection)
            .where(FacebookConnection.id == connection_id)
            .values(is_active=False)
        )
        await self.db.flush()

    async def update_ad_accounts(self, owner_id: str, ad_accounts: Iterable[Union[AdAccount, dict]]) -> None:
        result = await self.db.execute(
            update(FacebookConnection)
            .where(FacebookConnection.owner_id == owner_id)
            .values(ad_accounts=_normalize_accounts(ad_accounts), last_synced_at=utcnow())
        )
        if result.rowcount == 0:
            raise NoActiveConnection("No Facebook connection found")
        await self.db.flush()

    async def replace_credential(self, connection_id: uuid.UUID, credential: str, expires_at: float) -> None:
        """Patch a refreshed credential and its new expiry in one statement."""
        if not is_valid_expiry(expires_at):
            raise ValidationError(f"Invalid token expiry: {expires_at!r}")
        await self.db.execute(
            update(FacebookConnection)
            .where(FacebookConnection.id == connection_id)
            .values(
                access_token=encrypt_value(credential),
                expires_at=expires_at,
                last_synced_at=utcnow(),
            )
        )
        await self.db.flush()

    async def has_active_connection(self, owner_id: str) -> bool:
        conn = await self._get(owner_id)
        if conn is None or not conn.is_active:
            return False
        return is_valid_expiry(conn.expires_at) and conn.expires_at > now_ms()

    async def get_ad_accounts(self, owner_id: str) -> list[AdAccount]:
        conn = await self._get(owner_id)
        if conn is None or not conn.is_active:
            return []
        return [AdAccount.model_validate(a) for a in conn.ad_accounts or []]

    async def list_active(self) -> list[StoredConnection]:
        result = await self.db.execute(
            select(FacebookConnection)
            .where(FacebookConnection.is_active == True)  # noqa: E712
            .order_by(FacebookConnection.connected_at)
        )
        return [_to_stored(c) for c in result.scalars().all()]
