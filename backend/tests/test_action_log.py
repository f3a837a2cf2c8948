"""
Tests for the action log service.
"""

import pytest

from adsconnect.models import ActionKind, ActionResult
from adsconnect.services.action_log_service import ActionLogService


@pytest.mark.anyio
async def test_record_and_list_newest_first(db):
    log = ActionLogService(db)
    await log.record("user_1", ActionKind.CREATE_CAMPAIGN, "campaign", "c1", "act_1", ActionResult.SUCCESS)
    await log.record("user_1", ActionKind.CREATE_AD_SET, "adset", "s1", "act_1", ActionResult.SUCCESS)
    await log.record(
        "user_1", ActionKind.CREATE_CREATIVE, "creative", "", "act_1", ActionResult.FAILURE,
        error_message="Facebook API Error: bad image (code: 100)",
    )
    await log.record("user_2", ActionKind.PAUSE_AD, "ad", "a9", "act_9", ActionResult.SUCCESS)

    entries = await log.list_for_actor("user_1")

    assert [e.action for e in entries] == ["create_creative", "create_adset", "create_campaign"]
    assert entries[0].result == "failure"
    assert entries[0].error_message.startswith("Facebook API Error")
    assert entries[0].target_id == ""


@pytest.mark.anyio
async def test_list_is_capped_at_configured_limit(db):
    log = ActionLogService(db)
    for i in range(105):
        await log.record("user_1", ActionKind.PAUSE_AD, "ad", f"ad_{i}", "act_1", ActionResult.SUCCESS)

    assert len(await log.list_for_actor("user_1")) == 100
    assert len(await log.list_for_actor("user_1", limit=500)) == 100
    recent = await log.list_for_actor("user_1", limit=5)
    assert [e.target_id for e in recent] == ["ad_104", "ad_103", "ad_102", "ad_101", "ad_100"]


@pytest.mark.anyio
async def test_metadata_is_kept(db):
    log = ActionLogService(db)
    await log.record(
        "user_1", ActionKind.RESUME_AD, "ad", "a1", "act_1", ActionResult.SUCCESS,
        target_name="Spring Ad", metadata={"previous_status": "PAUSED", "new_status": "ACTIVE"},
    )

    (entry,) = await log.list_for_actor("user_1")
    assert entry.target_name == "Spring Ad"
    assert entry.details == {"previous_status": "PAUSED", "new_status": "ACTIVE"}
