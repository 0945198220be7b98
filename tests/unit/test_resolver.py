"""Tests for download entitlement resolution."""

from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any
from unittest.mock import patch

import pytest

from asset_entitlements.core.licensing import DownloadMethod, LicenseResolver
from asset_entitlements.core.licensing.validity import (
    REASON_EXPIRED,
    REASON_LIMIT_EXCEEDED,
    REASON_NO_ENTITLEMENT,
    REASON_NOT_FOUND,
)
from asset_entitlements.core.store import MemoryStore, StoreError

MakeDoc = Callable[..., dict[str, Any]]


@pytest.fixture
def resolver(store: MemoryStore) -> LicenseResolver:
    return LicenseResolver(store)


class TestValidateByLicenseId:
    """Resolution with an explicit license id."""

    def test_valid_license(self, resolver: LicenseResolver, make_license: MakeDoc, now: datetime) -> None:
        """Test an active, unexpired, under-quota license is allowed."""
        doc = make_license(downloadCount=3)
        result = resolver.validate_download_access("user-1", license_id=doc["_id"], now=now)

        assert result.can_download
        assert result.method == DownloadMethod.LICENSE
        assert result.license is not None
        assert result.license.id == doc["_id"]
        assert result.license.remaining_downloads == 7

    def test_other_users_license(self, resolver: LicenseResolver, make_license: MakeDoc, now: datetime) -> None:
        """Test licenses are scoped to their owner."""
        doc = make_license(user_id="user-2")
        result = resolver.validate_download_access("user-1", license_id=doc["_id"], now=now)

        assert not result.can_download
        assert result.method == DownloadMethod.NONE
        assert result.reason == REASON_NOT_FOUND

    def test_unknown_license(self, resolver: LicenseResolver, now: datetime) -> None:
        """Test an unknown license id."""
        result = resolver.validate_download_access("user-1", license_id="nope", now=now)
        assert result.reason == REASON_NOT_FOUND

    def test_quota_exhausted(self, resolver: LicenseResolver, make_license: MakeDoc, now: datetime) -> None:
        """Test downloadCount == downloadLimit is denied."""
        doc = make_license(downloadCount=10, downloadLimit=10)
        result = resolver.validate_download_access("user-1", license_id=doc["_id"], now=now)

        assert not result.can_download
        assert result.reason == REASON_LIMIT_EXCEEDED

    def test_zero_limit_is_a_limit(self, resolver: LicenseResolver, make_license: MakeDoc, now: datetime) -> None:
        """Test a limit of 0 denies rather than meaning unlimited."""
        doc = make_license(downloadLimit=0)
        result = resolver.validate_download_access("user-1", license_id=doc["_id"], now=now)
        assert result.reason == REASON_LIMIT_EXCEEDED

    def test_unlimited(self, resolver: LicenseResolver, make_license: MakeDoc, now: datetime) -> None:
        """Test licenses without a limit are never exhausted."""
        doc = make_license(downloadCount=500, downloadLimit=None, expiresAt=None)
        result = resolver.validate_download_access("user-1", license_id=doc["_id"], now=now)
        assert result.can_download

    def test_expired(self, resolver: LicenseResolver, make_license: MakeDoc, now: datetime) -> None:
        """Test a license past its expiry is denied even with quota left."""
        doc = make_license(expiresAt=(now - timedelta(seconds=1)).isoformat())
        result = resolver.validate_download_access("user-1", license_id=doc["_id"], now=now)

        assert not result.can_download
        assert result.reason == REASON_EXPIRED

    def test_status_checked_first(self, resolver: LicenseResolver, make_license: MakeDoc, now: datetime) -> None:
        """Test a revoked, expired and exhausted license reports its status."""
        doc = make_license(
            status="revoked",
            downloadCount=10,
            expiresAt=(now - timedelta(days=1)).isoformat(),
        )
        result = resolver.validate_download_access("user-1", license_id=doc["_id"], now=now)
        assert result.reason == "License is revoked"

    def test_license_id_wins_over_access_pass(
        self,
        resolver: LicenseResolver,
        make_license: MakeDoc,
        make_access_pass: MakeDoc,
        now: datetime,
    ) -> None:
        """Test an explicit license id is resolved before the access pass."""
        make_access_pass()
        doc = make_license(downloadCount=10)
        result = resolver.validate_download_access("user-1", license_id=doc["_id"], now=now)

        assert not result.can_download
        assert result.reason == REASON_LIMIT_EXCEEDED


class TestValidateByAccessPass:
    """Resolution through an access pass."""

    def test_pass_precedence_over_exhausted_license(
        self,
        resolver: LicenseResolver,
        make_license: MakeDoc,
        make_access_pass: MakeDoc,
        now: datetime,
    ) -> None:
        """Test a valid pass authorizes even when the product license is used up."""
        make_license(downloadCount=10)
        pass_doc = make_access_pass()

        result = resolver.validate_download_access("user-1", product_id="product-1", now=now)

        assert result.can_download
        assert result.method == DownloadMethod.ACCESS_PASS
        assert result.access_pass is not None
        assert result.access_pass.id == pass_doc["_id"]
        assert result.license is None

    def test_pass_without_product(
        self, resolver: LicenseResolver, make_access_pass: MakeDoc, now: datetime
    ) -> None:
        """Test a pass authorizes without a product id."""
        make_access_pass()
        result = resolver.validate_download_access("user-1", now=now)
        assert result.method == DownloadMethod.ACCESS_PASS

    def test_lifetime_pass(self, resolver: LicenseResolver, make_access_pass: MakeDoc, now: datetime) -> None:
        """Test lifetime passes have no period end and stay valid."""
        make_access_pass(passType="lifetime", currentPeriodEnd=None)
        result = resolver.validate_download_access("user-1", product_id="product-9", now=now)
        assert result.method == DownloadMethod.ACCESS_PASS

    def test_lapsed_period_falls_through(
        self,
        resolver: LicenseResolver,
        make_license: MakeDoc,
        make_access_pass: MakeDoc,
        now: datetime,
    ) -> None:
        """Test a pass past its period end is ignored."""
        make_access_pass(currentPeriodEnd=(now - timedelta(days=1)).isoformat())
        make_license()

        result = resolver.validate_download_access("user-1", product_id="product-1", now=now)
        assert result.method == DownloadMethod.LICENSE

    @pytest.mark.parametrize("status", ["cancelled", "past_due", "paused", "expired"])
    def test_inactive_pass_ignored(
        self, resolver: LicenseResolver, make_access_pass: MakeDoc, now: datetime, status: str
    ) -> None:
        """Test only active passes authorize."""
        make_access_pass(status=status)
        result = resolver.validate_download_access("user-1", product_id="product-1", now=now)

        assert not result.can_download
        assert result.reason == REASON_NO_ENTITLEMENT


class TestValidateByProduct:
    """Resolution through the user's license for a product."""

    def test_product_license(self, resolver: LicenseResolver, make_license: MakeDoc, now: datetime) -> None:
        """Test the user's active license for the product is used."""
        doc = make_license()
        result = resolver.validate_download_access("user-1", product_id="product-1", now=now)

        assert result.can_download
        assert result.method == DownloadMethod.LICENSE
        assert result.license is not None
        assert result.license.id == doc["_id"]

    def test_product_license_reports_specific_reason(
        self, resolver: LicenseResolver, make_license: MakeDoc, now: datetime
    ) -> None:
        """Test a failing product license reports why instead of falling through."""
        make_license(downloadCount=10)
        result = resolver.validate_download_access("user-1", product_id="product-1", now=now)
        assert result.reason == REASON_LIMIT_EXCEEDED

    def test_inactive_product_license_not_found(
        self, resolver: LicenseResolver, make_license: MakeDoc, now: datetime
    ) -> None:
        """Test only active licenses are looked up by product."""
        make_license(status="suspended")
        result = resolver.validate_download_access("user-1", product_id="product-1", now=now)
        assert result.reason == REASON_NO_ENTITLEMENT

    def test_nothing(self, resolver: LicenseResolver, now: datetime) -> None:
        """Test no license and no pass."""
        result = resolver.validate_download_access("user-1", product_id="product-1", now=now)

        assert not result.can_download
        assert result.method == DownloadMethod.NONE
        assert result.reason == REASON_NO_ENTITLEMENT

    def test_store_failure_denies(
        self, resolver: LicenseResolver, store: MemoryStore, make_license: MakeDoc, now: datetime
    ) -> None:
        """Test lookup failures deny access."""
        make_license()
        with patch.object(store, "find", side_effect=StoreError("unavailable")):
            result = resolver.validate_download_access("user-1", product_id="product-1", now=now)

        assert not result.can_download
        assert result.reason == REASON_NO_ENTITLEMENT


class TestCheckAccess:
    """Tests for LicenseResolver.check_access()."""

    def test_access_pass(self, resolver: LicenseResolver, make_access_pass: MakeDoc, now: datetime) -> None:
        """Test a valid pass grants access."""
        make_access_pass()
        result = resolver.check_access("user-1", "product-1", now=now)

        assert result.has_access
        assert result.method == DownloadMethod.ACCESS_PASS

    def test_license(self, resolver: LicenseResolver, make_license: MakeDoc, now: datetime) -> None:
        """Test a valid product license grants access."""
        make_license()
        result = resolver.check_access("user-1", "product-1", now=now)

        assert result.has_access
        assert result.method == DownloadMethod.LICENSE

    @pytest.mark.parametrize(
        "fields",
        [
            {"downloadCount": 10},
            {"status": "revoked"},
            {"expiresAt": "2025-01-01T00:00:00+00:00"},
        ],
    )
    def test_agrees_with_full_validation(
        self, resolver: LicenseResolver, make_license: MakeDoc, now: datetime, fields: dict[str, Any]
    ) -> None:
        """Test the quick check denies whatever full validation denies."""
        make_license(**fields)

        quick = resolver.check_access("user-1", "product-1", now=now)
        full = resolver.validate_download_access("user-1", product_id="product-1", now=now)

        assert not quick.has_access
        assert quick.method == DownloadMethod.NONE
        assert not full.can_download

    def test_unlimited_license(self, resolver: LicenseResolver, make_license: MakeDoc, now: datetime) -> None:
        """Test licenses without limit or expiry pass the quick check."""
        make_license(downloadLimit=None, expiresAt=None, downloadCount=99)
        assert resolver.check_access("user-1", "product-1", now=now).has_access

    def test_no_product(self, resolver: LicenseResolver, make_license: MakeDoc, now: datetime) -> None:
        """Test licenses are not considered without a product id."""
        make_license()
        assert not resolver.check_access("user-1", now=now).has_access

    def test_store_failure_denies(self, resolver: LicenseResolver, store: MemoryStore, now: datetime) -> None:
        """Test existence query failures deny access."""
        with patch.object(store, "count", side_effect=StoreError("unavailable")):
            assert not resolver.check_access("user-1", "product-1", now=now).has_access


class TestNaiveTime:
    """Naive times are read as UTC."""

    def test_validate_expired(self, resolver: LicenseResolver, make_license: MakeDoc, now: datetime) -> None:
        """Test expiry is compared against a naive time without raising."""
        doc = make_license(expiresAt=(now - timedelta(seconds=1)).isoformat())

        result = resolver.validate_download_access("user-1", license_id=doc["_id"], now=now.replace(tzinfo=None))

        assert not result.can_download
        assert result.reason == REASON_EXPIRED

    def test_validate_unexpired(self, resolver: LicenseResolver, make_license: MakeDoc, now: datetime) -> None:
        """Test a license expiring later the same day is still valid."""
        doc = make_license(expiresAt=(now + timedelta(seconds=1)).isoformat())

        result = resolver.validate_download_access("user-1", license_id=doc["_id"], now=now.replace(tzinfo=None))

        assert result.can_download

    def test_check_access_pass_period(
        self, resolver: LicenseResolver, make_access_pass: MakeDoc, now: datetime
    ) -> None:
        """Test the pass period end is compared against a naive time."""
        make_access_pass(currentPeriodEnd=(now + timedelta(seconds=1)).isoformat())

        assert resolver.check_access("user-1", now=now.replace(tzinfo=None)).has_access
        assert not resolver.check_access("user-1", now=(now + timedelta(seconds=2)).replace(tzinfo=None)).has_access

    def test_check_access_license_expiry(
        self, resolver: LicenseResolver, make_license: MakeDoc, now: datetime
    ) -> None:
        """Test license expiry in the quick check agrees with full validation for naive times."""
        make_license(expiresAt=(now - timedelta(seconds=1)).isoformat())

        assert not resolver.check_access("user-1", "product-1", now=now.replace(tzinfo=None)).has_access
