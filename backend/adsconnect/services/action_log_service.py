"""
Action Log Service — Append-only audit trail of mutating Graph actions.
"""

import logging
import time
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from adsconnect.config import get_settings
from adsconnect.models import ActionResult, FacebookActionLog
from adsconnect.utils import utcnow

logger = logging.getLogger(__name__)


class ActionLogService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(
        self,
        actor_id: str,
        action: str,
        target_type: str,
        target_id: str,
        owner_account_id: str,
        result: ActionResult | str,
        target_name: Optional[str] = None,
        error_message: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> FacebookActionLog:
        entry = FacebookActionLog(
            actor_id=actor_id,
            action=str(getattr(action, "value", action)),
            target_type=target_type,
            target_id=target_id or "",
            target_name=target_name,
            ad_account_id=owner_account_id,
            result=ActionResult(result).value,
            error_message=error_message,
            details=metadata,
            created_at=utcnow(),
            sequence=time.time_ns(),
        )
        self.db.add(entry)
        await self.db.flush()
        logger.info(f"Action log: {entry.action} {target_type}:{entry.target_id} -> {entry.result}")
        return entry

    async def list_for_actor(self, actor_id: str, limit: Optional[int] = None) -> list[FacebookActionLog]:
        """Most recent first, capped at the configured action_log_limit (100)."""
        cap = get_settings().action_log_limit
        limit = cap if limit is None else max(1, min(limit, cap))
        result = await self.db.execute(
            select(FacebookActionLog)
            .where(FacebookActionLog.actor_id == actor_id)
            .order_by(FacebookActionLog.sequence.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
