"""
Tests for expiry validation and time helpers.
"""

import pytest

from adsconnect.utils import MS_PER_DAY, is_valid_expiry, ms_to_iso


@pytest.mark.parametrize("value", [1, 1759238776568, 1759238776568.5])
def test_valid_expiry(value):
    assert is_valid_expiry(value)


@pytest.mark.parametrize("value", [None, float("nan"), float("inf"), float("-inf"), 0, -1, "1759238776568", True])
def test_invalid_expiry(value):
    assert not is_valid_expiry(value)


def test_ms_to_iso():
    assert ms_to_iso(MS_PER_DAY) == "1970-01-02T00:00:00+00:00"
