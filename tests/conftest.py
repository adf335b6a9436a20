"""Shared fixtures for AutoMatch tests."""
import pytest

from automatch.score.models import CDEProfile, DealProfile


@pytest.fixture
def make_deal():
    """Build a DealProfile: an $8M Illinois deal unless overridden."""
    def _make(**overrides):
        data = {"deal_id": "DEAL-1", "state": "IL", "allocation_request": 8_000_000}
        data.update(overrides)
        return DealProfile(**data)
    return _make


@pytest.fixture
def make_cde():
    """Build a CDEProfile: a national CDE with allocation left and no stated preferences."""
    def _make(**overrides):
        data = {"cde_id": "CDE-1", "service_area_type": "national", "amount_remaining": 10_000_000}
        data.update(overrides)
        return CDEProfile(**data)
    return _make
