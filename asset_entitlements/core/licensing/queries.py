"""
License listings and download statistics.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from asset_entitlements.core.licensing.access_pass import VISIBLE_STATUSES
from asset_entitlements.core.licensing.documents import (
    ACCESS_PASS_TYPE,
    LICENSE_TYPE,
    license_from_document,
)
from asset_entitlements.core.licensing.models import (
    DownloadMethod,
    DownloadStats,
    LicenseListing,
    LicenseStats,
    LicenseStatus,
    LicenseType,
    RecentDownload,
    as_utc,
)
from asset_entitlements.core.licensing.validity import pass_valid_query

if TYPE_CHECKING:
    from asset_entitlements.core.store import EntitlementStore

logger = logging.getLogger(__name__)

RECENT_DOWNLOADS_LIMIT = 10

# Filter value meaning "do not filter"
ALL = "all"


def _filter_value(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, LicenseStatus | LicenseType):
        return value.value
    if value == ALL:
        return None
    return value


class LicenseQueries:
    """Read-only views over a user's licenses."""

    def __init__(self, store: EntitlementStore):
        self.store = store

    def get_user_licenses(
        self,
        user_id: str,
        *,
        order_id: str | None = None,
        product_id: str | None = None,
        status: LicenseStatus | str | None = None,
        license_type: LicenseType | str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> LicenseListing:
        """
        List a user's licenses, newest first.

        Args:
            user_id: Owning user
            order_id: Only licenses from this order
            product_id: Only licenses for this product
            status: Only licenses with this status ("all" for any)
            license_type: Only licenses of this tier ("all" for any)
            limit: Page size (None for all)
            offset: Licenses to skip

        Returns:
            LicenseListing; total_licenses counts every match, active and
            download totals cover the returned page
        """
        query: dict[str, Any] = {"_type": LICENSE_TYPE, "user._ref": user_id}
        if order_id:
            query["order._ref"] = order_id
        if product_id:
            query["product._ref"] = product_id

        status_value = _filter_value(status)
        if status_value is not None:
            query["status"] = LicenseStatus(status_value).value

        type_value = _filter_value(license_type)
        if type_value is not None:
            query["licenseType"] = LicenseType(type_value).value

        documents = self.store.find(query, order_by="issuedAt", descending=True, offset=offset, limit=limit)
        total = self.store.count(query)
        licenses = [license_from_document(doc) for doc in documents]

        stats = LicenseStats(
            total_licenses=total,
            active_licenses=sum(1 for lic in licenses if lic.status == LicenseStatus.ACTIVE),
            total_downloads=sum(lic.download_count for lic in licenses),
        )
        return LicenseListing(licenses=licenses, total_count=total, stats=stats)

    def get_user_download_stats(self, user_id: str, now: datetime | None = None) -> DownloadStats:
        """
        Summarize a user's downloads.

        Totals cover every license plus the user's access pass usage;
        recent downloads are the latest download of each licensed product.
        """
        now = as_utc(now)

        listing = self.get_user_licenses(user_id)
        pass_document = self.store.find_one(
            {"_type": ACCESS_PASS_TYPE, "user._ref": user_id, "status": {"$in": VISIBLE_STATUSES}},
            order_by="currentPeriodStart",
            descending=True,
        )
        pass_downloads = 0
        if pass_document is not None:
            pass_downloads = (pass_document.get("usage") or {}).get("totalDownloads") or 0

        has_active_pass = self.store.exists(
            {"_type": ACCESS_PASS_TYPE, "user._ref": user_id, **pass_valid_query(now)}
        )

        downloaded = [lic for lic in listing.licenses if lic.last_download_at is not None]
        downloaded.sort(key=lambda lic: lic.last_download_at, reverse=True)  # type: ignore[arg-type,return-value]
        recent = [
            RecentDownload(
                license_id=lic.id,
                product_id=lic.product_id,
                downloaded_at=lic.last_download_at,  # type: ignore[arg-type]
                method=DownloadMethod.LICENSE,
            )
            for lic in downloaded[:RECENT_DOWNLOADS_LIMIT]
        ]

        return DownloadStats(
            total_downloads=listing.stats.total_downloads + pass_downloads,
            total_licenses=listing.total_count,
            active_access_pass=has_active_pass,
            recent_downloads=recent,
        )
