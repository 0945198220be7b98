"""
Download entitlement resolution.

Decides whether a user may download a product and by which mechanism:
a specific license, a subscription access pass, or the user's license for
the product. Store failures on these read paths are logged and treated as
"no entitlement found", so access is denied rather than granted.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from asset_entitlements.core.licensing.documents import (
    ACCESS_PASS_TYPE,
    LICENSE_TYPE,
    access_pass_from_document,
    license_from_document,
)
from asset_entitlements.core.licensing.models import (
    AccessCheck,
    AccessPass,
    DownloadMethod,
    DownloadValidation,
    License,
    LicenseStatus,
    as_utc,
)
from asset_entitlements.core.licensing.validity import (
    REASON_NO_ENTITLEMENT,
    REASON_NOT_FOUND,
    check_license,
    license_valid_query,
    pass_valid_query,
)
from asset_entitlements.core.store import StoreError

if TYPE_CHECKING:
    from asset_entitlements.core.store import EntitlementStore

logger = logging.getLogger(__name__)


class LicenseResolver:
    """Resolves download entitlements from a store."""

    def __init__(self, store: EntitlementStore):
        self.store = store

    def validate_download_access(
        self,
        user_id: str,
        product_id: str | None = None,
        license_id: str | None = None,
        now: datetime | None = None,
    ) -> DownloadValidation:
        """
        Check whether a download is authorized.

        Resolution order, first match wins:
        1. license_id given: that license, scoped to the user
        2. an active access pass with a valid period
        3. product_id given: the user's active license for the product
        4. otherwise denied

        A license that exists but fails the validity rule is reported with its
        specific reason instead of falling through.

        Args:
            user_id: Requesting user
            product_id: Product to download
            license_id: Specific license to download with
            now: Current time (defaults to current UTC time)

        Returns:
            DownloadValidation with the method and the license or pass used
        """
        now = as_utc(now)

        if license_id:
            license_obj = self._get_user_license(license_id, user_id)
            if license_obj is None:
                return DownloadValidation.denied(REASON_NOT_FOUND)
            return self._validate_license(license_obj, now)

        access_pass = self._get_valid_access_pass(user_id, now)
        if access_pass is not None:
            logger.debug("User %s authorized by access pass %s", user_id, access_pass.id)
            return DownloadValidation(
                can_download=True,
                method=DownloadMethod.ACCESS_PASS,
                access_pass=access_pass,
            )

        if product_id:
            license_obj = self._get_product_license(user_id, product_id)
            if license_obj is not None:
                return self._validate_license(license_obj, now)

        logger.debug("No entitlement for user %s, product %s", user_id, product_id)
        return DownloadValidation.denied(REASON_NO_ENTITLEMENT)

    def check_access(
        self,
        user_id: str,
        product_id: str | None = None,
        now: datetime | None = None,
    ) -> AccessCheck:
        """
        Quick access check for UI gating.

        Uses existence queries with the same validity predicates as
        validate_download_access, without fetching license or pass payloads.
        """
        now = as_utc(now)

        pass_query = {"_type": ACCESS_PASS_TYPE, "user._ref": user_id, **pass_valid_query(now)}
        if self._exists(pass_query):
            return AccessCheck(has_access=True, method=DownloadMethod.ACCESS_PASS)

        if product_id:
            license_query = {
                "_type": LICENSE_TYPE,
                "user._ref": user_id,
                "product._ref": product_id,
                **license_valid_query(now),
            }
            if self._exists(license_query):
                return AccessCheck(has_access=True, method=DownloadMethod.LICENSE)

        return AccessCheck(has_access=False, method=DownloadMethod.NONE)

    def _validate_license(self, license_obj: License, now: datetime) -> DownloadValidation:
        reason = check_license(license_obj, now)
        if reason is not None:
            logger.debug("License %s denied: %s", license_obj.id, reason)
            return DownloadValidation.denied(reason)

        return DownloadValidation(can_download=True, method=DownloadMethod.LICENSE, license=license_obj)

    def _get_user_license(self, license_id: str, user_id: str) -> License | None:
        document = self._find_one({"_type": LICENSE_TYPE, "_id": license_id, "user._ref": user_id})
        return license_from_document(document) if document else None

    def _get_product_license(self, user_id: str, product_id: str) -> License | None:
        document = self._find_one(
            {
                "_type": LICENSE_TYPE,
                "user._ref": user_id,
                "product._ref": product_id,
                "status": LicenseStatus.ACTIVE.value,
            },
            order_by="issuedAt",
            descending=True,
        )
        return license_from_document(document) if document else None

    def _get_valid_access_pass(self, user_id: str, now: datetime) -> AccessPass | None:
        document = self._find_one(
            {"_type": ACCESS_PASS_TYPE, "user._ref": user_id, **pass_valid_query(now)},
            order_by="currentPeriodStart",
            descending=True,
        )
        return access_pass_from_document(document) if document else None

    def _find_one(self, query: dict[str, Any], **kwargs: Any) -> dict[str, Any] | None:
        try:
            return self.store.find_one(query, **kwargs)
        except StoreError:
            logger.exception("Entitlement lookup failed; treating as no entitlement")
            return None

    def _exists(self, query: dict[str, Any]) -> bool:
        try:
            return self.store.exists(query)
        except StoreError:
            logger.exception("Entitlement existence check failed; treating as no access")
            return False
