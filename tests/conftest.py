"""
Pytest configuration and fixtures for asset-entitlements tests.

Provides fixtures for:
- In-memory stores and a manager bound to them
- A fixed clock
- Factories for seeded license and access pass documents
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from asset_entitlements.config import Settings
from asset_entitlements.core.licensing import LicenseManager
from asset_entitlements.core.store import MemoryStore, reference

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=UTC)
TEST_SECRET = "test-secret"

# =============================================================================
# Clock & Settings
# =============================================================================


@pytest.fixture
def now() -> datetime:
    """Fixed current time."""
    return NOW


@pytest.fixture
def settings() -> Settings:
    """Settings with a test signing secret."""
    return Settings(token_secret=TEST_SECRET)


# =============================================================================
# Store Fixtures
# =============================================================================


@pytest.fixture
def store() -> MemoryStore:
    """Empty in-memory store."""
    return MemoryStore()


@pytest.fixture
def manager(store: MemoryStore, settings: Settings) -> LicenseManager:
    """LicenseManager bound to the memory store."""
    return LicenseManager(store, settings)


# =============================================================================
# Document Factories
# =============================================================================


@pytest.fixture
def make_license(store: MemoryStore) -> Callable[..., dict[str, Any]]:
    """
    Factory creating license documents in the store.

    Defaults to an active basic license for user-1/product-1 with 0/10
    downloads, issued 30 days before NOW and expiring 335 days after it.
    """
    counter = {"n": 0}

    def factory(**fields: Any) -> dict[str, Any]:
        counter["n"] += 1
        n = counter["n"]
        document: dict[str, Any] = {
            "_id": f"license-{n}",
            "_type": "license",
            "licenseKey": f"AAAA-BBBB-CCCC-{n:04d}",
            "user": reference(fields.pop("user_id", "user-1")),
            "product": reference(fields.pop("product_id", "product-1")),
            "order": reference(fields.pop("order_id", "order-1")),
            "licenseType": "basic",
            "status": "active",
            "downloadCount": 0,
            "downloadLimit": 10,
            "issuedAt": (NOW - timedelta(days=30)).isoformat(),
            "expiresAt": (NOW + timedelta(days=335)).isoformat(),
            "downloadHistory": [],
            "metadata": {"purchasePrice": 19.0, "currency": "USD"},
        }
        document.update(fields)
        return store.create(document)

    return factory


@pytest.fixture
def make_access_pass(store: MemoryStore) -> Callable[..., dict[str, Any]]:
    """
    Factory creating access pass documents in the store.

    Defaults to an active monthly pass for user-1 whose period ends 10 days
    after NOW.
    """
    counter = {"n": 0}

    def factory(**fields: Any) -> dict[str, Any]:
        counter["n"] += 1
        document: dict[str, Any] = {
            "_id": f"pass-{counter['n']}",
            "_type": "accessPass",
            "user": reference(fields.pop("user_id", "user-1")),
            "passType": "monthly",
            "status": "active",
            "stripeSubscriptionId": "sub_123",
            "stripeCustomerId": "cus_123",
            "currentPeriodStart": (NOW - timedelta(days=20)).isoformat(),
            "currentPeriodEnd": (NOW + timedelta(days=10)).isoformat(),
            "cancelAtPeriodEnd": False,
            "pricing": {"amount": 29.0, "currency": "USD", "interval": "month"},
            "usage": {"totalDownloads": 0, "downloadsThisPeriod": 0},
        }
        document.update(fields)
        return store.create(document)

    return factory
