"""
Ad Creation Service — Creates a complete Facebook ad in one request.

Campaign → ad set → image upload → creative → ad, each step feeding its id
into the next. This is not a durable workflow: if any step fails, the
campaign and ad set created so far are deleted (best effort) and the
original error is raised, wrapped in OrchestrationStepError.

Budgets are minor currency units (cents) and are passed through untouched.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Union

import pydantic
from pydantic import BaseModel, Field, model_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from adsconnect.auth import Identity
from adsconnect.errors import (
    ExpiredCredential, GraphError, OrchestrationStepError, RemoteApiError, ValidationError,
)
from adsconnect.models import ActionKind, ActionResult, AdStatus, CreatedAd
from adsconnect.saga import CompensationStack
from adsconnect.services.action_log_service import ActionLogService
from adsconnect.services.connection_store import ConnectionStore
from adsconnect.services.graph_client import GraphClient

logger = logging.getLogger(__name__)


# ── Request model ─────────────────────────────────────────────────────

class Targeting(BaseModel):
    age_min: int = Field(18, ge=13, le=65)
    age_max: int = Field(65, ge=13, le=65)
    genders: list[int] = Field(default_factory=list)  # 1 = male, 2 = female; empty = all
    countries: list[str] = Field(min_length=1)

    @model_validator(mode="after")
    def _check_ages(self) -> "Targeting":
        if self.age_min > self.age_max:
            raise ValueError("age_min must not exceed age_max")
        if any(g not in (1, 2) for g in self.genders):
            raise ValueError("genders may only contain 1 (male) or 2 (female)")
        return self

    def to_graph(self) -> dict:
        spec = {
            "age_min": self.age_min,
            "age_max": self.age_max,
            "geo_locations": {"countries": self.countries},
        }
        # Both genders selected is the same as no restriction
        if self.genders and len(set(self.genders)) < 2:
            spec["genders"] = self.genders
        return spec


class CompleteAdSpec(BaseModel):
    ad_account_id: str = Field(min_length=1)

    # Campaign
    campaign_name: str = Field(min_length=1)
    objective: str = Field(min_length=1)
    special_ad_categories: list[str] = Field(default_factory=list)

    # Ad set
    ad_set_name: str = Field(min_length=1)
    daily_budget: Optional[int] = Field(None, gt=0)
    lifetime_budget: Optional[int] = Field(None, gt=0)
    billing_event: str = "IMPRESSIONS"
    optimization_goal: str = "LINK_CLICKS"
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    targeting: Targeting

    # Creative
    creative_name: Optional[str] = None
    page_id: str = Field(min_length=1)
    image_url: Optional[str] = None
    image_bytes: Optional[str] = None  # base64, no data: prefix
    link_url: str = Field(min_length=1)
    message: str = Field(min_length=1)
    headline: str = Field(min_length=1)
    description: Optional[str] = None
    call_to_action_type: str = "LEARN_MORE"

    # Ad
    ad_name: Optional[str] = None
    status: AdStatus = AdStatus.PAUSED

    @model_validator(mode="after")
    def _check_budget_and_image(self) -> "CompleteAdSpec":
        if (self.daily_budget is None) == (self.lifetime_budget is None):
            raise ValueError("Provide exactly one of daily_budget or lifetime_budget")
        if self.lifetime_budget is not None and not (self.start_time and self.end_time):
            raise ValueError("A lifetime budget requires start_time and end_time")
        if bool(self.image_url) == bool(self.image_bytes):
            raise ValueError("Provide exactly one of image_url or image_bytes")
        return self


@dataclass(frozen=True)
class AdCreationResult:
    campaign_id: str
    ad_set_id: str
    image_hash: str
    creative_id: str
    ad_id: str


# ── Image upload response ────────────────────────────────────────────

class ImageUploadShape(str, enum.Enum):
    IMAGE_MAP = "image_map"      # {"images": {"<name>": {"hash": ...}}}
    DIRECT_HASH = "direct_hash"  # {"hash": ...}


@dataclass(frozen=True)
class ImageUpload:
    shape: ImageUploadShape
    hash: str


def parse_image_upload(response: Any) -> ImageUpload:
    """Resolve the two response shapes /adimages is known to return into one value."""
    if isinstance(response, dict):
        images = response.get("images")
        if isinstance(images, dict) and images:
            first = next(iter(images.values()))
            if isinstance(first, dict) and first.get("hash"):
                return ImageUpload(ImageUploadShape.IMAGE_MAP, str(first["hash"]))
        if response.get("hash"):
            return ImageUpload(ImageUploadShape.DIRECT_HASH, str(response["hash"]))
    raise RemoteApiError(None, "Image upload response contained no image hash")


def _require_id(response: Any, what: str) -> str:
    remote_id = response.get("id") if isinstance(response, dict) else None
    if not remote_id:
        raise RemoteApiError(None, f"{what} created but no id returned")
    return str(remote_id)


# ── Orchestrator ─────────────────────────────────────────────────────

class AdCreationService:
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

    async def _logged_create(
        self,
        identity: Identity,
        spec: CompleteAdSpec,
        action: ActionKind,
        target_type: str,
        target_name: Optional[str],
        endpoint: str,
        token: str,
        payload: dict,
        metadata: dict,
        on_created: Optional[Callable[[str], None]] = None,
    ) -> str:
        """
        POST a create call and write an action log entry either way.
        ``on_created`` sees the new id before anything else can fail.
        """
        try:
            remote_id = _require_id(await self.graph.post(endpoint, token, payload), target_type)
        except GraphError as e:
            await self.action_log.record(
                actor_id=identity.subject,
                action=action,
                target_type=target_type,
                target_id="",
                target_name=target_name,
                owner_account_id=spec.ad_account_id,
                result=ActionResult.FAILURE,
                error_message=str(e),
                metadata=metadata,
            )
            await self.db.commit()
            raise

        if on_created is not None:
            on_created(remote_id)

        await self.action_log.record(
            actor_id=identity.subject,
            action=action,
            target_type=target_type,
            target_id=remote_id,
            target_name=target_name,
            owner_account_id=spec.ad_account_id,
            result=ActionResult.SUCCESS,
            metadata=metadata,
        )
        await self.db.commit()
        logger.info(f"Created {target_type} {remote_id} in {spec.ad_account_id}")
        return remote_id

    async def create_campaign(
        self, identity: Identity, spec: CompleteAdSpec, token: str,
        on_created: Optional[Callable[[str], None]] = None,
    ) -> str:
        payload = {
            "name": spec.campaign_name,
            "objective": spec.objective,
            "status": spec.status.value,
            "special_ad_categories": spec.special_ad_categories,
        }
        return await self._logged_create(
            identity, spec, ActionKind.CREATE_CAMPAIGN, "campaign", spec.campaign_name,
            f"/{spec.ad_account_id}/campaigns", token, payload,
            {"objective": spec.objective, "status": spec.status.value},
            on_created,
        )

    async def create_ad_set(
        self, identity: Identity, spec: CompleteAdSpec, token: str, campaign_id: str,
        on_created: Optional[Callable[[str], None]] = None,
    ) -> str:
        payload = {
            "name": spec.ad_set_name,
            "campaign_id": campaign_id,
            "billing_event": spec.billing_event,
            "optimization_goal": spec.optimization_goal,
            "bid_strategy": "LOWEST_COST_WITHOUT_CAP",
            "targeting": spec.targeting.to_graph(),
            "status": spec.status.value,
        }
        if spec.daily_budget is not None:
            payload["daily_budget"] = spec.daily_budget
        else:
            payload["lifetime_budget"] = spec.lifetime_budget
        if spec.start_time:
            payload["start_time"] = spec.start_time
        if spec.end_time:
            payload["end_time"] = spec.end_time

        return await self._logged_create(
            identity, spec, ActionKind.CREATE_AD_SET, "adset", spec.ad_set_name,
            f"/{spec.ad_account_id}/adsets", token, payload,
            {
                "campaign_id": campaign_id,
                "daily_budget": spec.daily_budget,
                "lifetime_budget": spec.lifetime_budget,
                "billing_event": spec.billing_event,
                "optimization_goal": spec.optimization_goal,
                "targeting": payload["targeting"],
            },
            on_created,
        )

    async def upload_image(self, spec: CompleteAdSpec, token: str) -> ImageUpload:
        body = {"url": spec.image_url} if spec.image_url else {"bytes": spec.image_bytes}
        response = await self.graph.post(f"/{spec.ad_account_id}/adimages", token, body)
        image = parse_image_upload(response)
        logger.info(f"Uploaded image {image.hash} ({image.shape.value}) to {spec.ad_account_id}")
        return image

    async def create_creative(self, identity: Identity, spec: CompleteAdSpec, token: str, image_hash: str) -> str:
        name = spec.creative_name or f"{spec.campaign_name} - Creative"
        link_data = {
            "image_hash": image_hash,
            "link": spec.link_url,
            "message": spec.message,
            "name": spec.headline,
            "call_to_action": {
                "type": spec.call_to_action_type,
                "value": {"link": spec.link_url},
            },
        }
        if spec.description:
            link_data["description"] = spec.description
        payload = {
            "name": name,
            "object_story_spec": {"page_id": spec.page_id, "link_data": link_data},
        }
        return await self._logged_create(
            identity, spec, ActionKind.CREATE_CREATIVE, "creative", name,
            f"/{spec.ad_account_id}/adcreatives", token, payload,
            {
                "page_id": spec.page_id,
                "image_hash": image_hash,
                "link": spec.link_url,
                "call_to_action": spec.call_to_action_type,
            },
        )

    async def create_ad(
        self, identity: Identity, spec: CompleteAdSpec, token: str, ad_set_id: str, creative_id: str,
    ) -> str:
        name = spec.ad_name or f"{spec.campaign_name} - Ad"
        payload = {
            "name": name,
            "adset_id": ad_set_id,
            "creative": {"creative_id": creative_id},
            "status": spec.status.value,
        }
        return await self._logged_create(
            identity, spec, ActionKind.CREATE_AD, "ad", name,
            f"/{spec.ad_account_id}/ads", token, payload,
            {"adset_id": ad_set_id, "creative_id": creative_id, "status": spec.status.value},
        )

    async def create_complete_ad(
        self, identity: Identity, spec: Union[CompleteAdSpec, dict],
    ) -> AdCreationResult:
        if not isinstance(spec, CompleteAdSpec):
            try:
                spec = CompleteAdSpec.model_validate(spec)
            except pydantic.ValidationError as e:
                raise ValidationError(str(e)) from e

        conn = await self.store.require_active(identity.subject)
        token = conn.credential
        compensations = CompensationStack()

        def _compensate(label: str) -> Callable[[str], None]:
            def _push(remote_id: str) -> None:
                compensations.push(f"{label} {remote_id}", lambda: self.graph.delete(f"/{remote_id}", token))
            return _push

        step = "campaign"

        try:
            campaign_id = await self.create_campaign(identity, spec, token, _compensate("campaign"))

            step = "ad set"
            ad_set_id = await self.create_ad_set(identity, spec, token, campaign_id, _compensate("ad set"))

            step = "image upload"
            image = await self.upload_image(spec, token)

            step = "creative"
            creative_id = await self.create_creative(identity, spec, token, image.hash)

            step = "ad"
            ad_id = await self.create_ad(identity, spec, token, ad_set_id, creative_id)
        except Exception as e:
            logger.error(f"Ad creation failed at {step} step: {e}")
            if not isinstance(e, GraphError):
                # a failed local write leaves the session unusable until rolled back
                await self.db.rollback()
            failed = await compensations.unwind()
            if failed:
                logger.error(f"Manual cleanup needed for: {', '.join(failed)}")
            if isinstance(e, ExpiredCredential):
                await self.store.deactivate(identity.subject)
            await self.db.commit()
            raise OrchestrationStepError(step, e) from e

        compensations.clear()
        self.db.add(CreatedAd(
            owner_id=identity.subject,
            ad_account_id=spec.ad_account_id,
            campaign_id=campaign_id,
            ad_set_id=ad_set_id,
            image_hash=image.hash,
            creative_id=creative_id,
            ad_id=ad_id,
            campaign_name=spec.campaign_name,
            ad_name=spec.ad_name or f"{spec.campaign_name} - Ad",
            objective=spec.objective,
            status=spec.status.value,
            daily_budget=spec.daily_budget,
            lifetime_budget=spec.lifetime_budget,
            start_time=spec.start_time,
            end_time=spec.end_time,
            targeting=spec.targeting.model_dump(),
        ))
        await self.db.flush()
        logger.info(f"Ad {ad_id} created end-to-end for owner {identity.subject}")

        return AdCreationResult(
            campaign_id=campaign_id,
            ad_set_id=ad_set_id,
            image_hash=image.hash,
            creative_id=creative_id,
            ad_id=ad_id,
        )

    async def list_created_ads(self, owner_id: str, limit: int = 50) -> list[CreatedAd]:
        result = await self.db.execute(
            select(CreatedAd)
            .where(CreatedAd.owner_id == owner_id)
            .order_by(CreatedAd.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
