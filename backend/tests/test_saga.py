"""
Tests for the compensation stack.
"""

import pytest

from adsconnect.saga import CompensationStack


@pytest.mark.anyio
async def test_unwind_runs_newest_first():
    ran = []
    stack = CompensationStack()
    for label in ("campaign", "ad set", "creative"):
        async def undo(label=label):
            ran.append(label)
        stack.push(label, undo)

    failed = await stack.unwind()

    assert ran == ["creative", "ad set", "campaign"]
    assert failed == []
    assert len(stack) == 0


@pytest.mark.anyio
async def test_failed_compensation_does_not_stop_the_rest():
    ran = []
    stack = CompensationStack()

    async def undo_campaign():
        ran.append("campaign")

    async def undo_ad_set():
        raise RuntimeError("already deleted")

    stack.push("campaign", undo_campaign)
    stack.push("ad set", undo_ad_set)

    failed = await stack.unwind()

    assert failed == ["ad set"]
    assert ran == ["campaign"]


@pytest.mark.anyio
async def test_clear_discards_pending():
    ran = []
    stack = CompensationStack()

    async def undo():
        ran.append(1)

    stack.push("campaign", undo)
    assert stack.labels == ["campaign"]
    stack.clear()

    assert await stack.unwind() == []
    assert ran == []
