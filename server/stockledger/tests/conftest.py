import pytest

from stockledger.config import settings


@pytest.fixture(autouse=True)
def default_inventory_policies(monkeypatch):
    monkeypatch.setattr(settings, "ALLOW_BACKORDERS", True)
    monkeypatch.setattr(settings, "ALLOW_NEGATIVE_ON_HAND", True)
    monkeypatch.setattr(settings, "COST_SHORTFALL_POLICY", "log")
    yield
