"""
Download recording.

Updates consumption state after an authorized download. License downloads
are recorded with one conditional patch: the increment only lands while the
license is still active, unexpired and under its limit, so two concurrent downloads of
the last unit cannot both be counted.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from asset_entitlements.core.licensing.documents import ACCESS_PASS_TYPE, LICENSE_TYPE, license_from_document, to_iso
from asset_entitlements.core.licensing.models import DownloadMethod, LicenseStatus, RecordResult, as_utc
from asset_entitlements.core.licensing.validity import (
    REASON_LIMIT_EXCEEDED,
    REASON_NOT_FOUND,
    check_license,
    license_under_quota_query,
    license_unexpired_query,
    pass_valid_query,
)
from asset_entitlements.core.store import DocumentNotFoundError, PreconditionFailedError, StoreError

if TYPE_CHECKING:
    from asset_entitlements.core.store import EntitlementStore

logger = logging.getLogger(__name__)

ERROR_NO_ACTIVE_PASS = "No active access pass"
ERROR_LICENSE_ID_REQUIRED = "license_id is required for license downloads"


class DownloadRecorder:
    """Records downloads against licenses and access passes."""

    def __init__(self, store: EntitlementStore):
        self.store = store

    def record_download(
        self,
        *,
        user_id: str,
        product_id: str,
        method: DownloadMethod | str,
        license_id: str | None = None,
        access_pass_id: str | None = None,
        file_size: int | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        now: datetime | None = None,
    ) -> RecordResult:
        """
        Record a successful download.

        Store failures are logged and returned as an unsuccessful result,
        never raised; the caller decides whether to retry.

        Args:
            user_id: Downloading user
            product_id: Downloaded product
            method: license or access_pass, as returned by the resolver
            license_id: License used (required for license downloads)
            access_pass_id: Pass the resolver authorized; the newest valid pass
                is used when omitted
            file_size: Delivered size in bytes
            ip_address: Client address
            user_agent: Client user agent
            now: Download time (defaults to current UTC time)

        Returns:
            RecordResult

        Raises:
            ValueError: If method is none or unknown
        """
        method = DownloadMethod(method)
        if method == DownloadMethod.NONE:
            raise ValueError("Invalid download method")

        now = as_utc(now)

        if method == DownloadMethod.LICENSE:
            if not license_id:
                return RecordResult(success=False, method=method, error=ERROR_LICENSE_ID_REQUIRED)
            return self._record_license_download(
                license_id=license_id,
                user_id=user_id,
                product_id=product_id,
                file_size=file_size,
                ip_address=ip_address,
                user_agent=user_agent,
                now=now,
            )

        return self._record_pass_download(
            user_id=user_id, product_id=product_id, access_pass_id=access_pass_id, now=now
        )

    def _record_license_download(
        self,
        *,
        license_id: str,
        user_id: str,
        product_id: str,
        file_size: int | None,
        ip_address: str | None,
        user_agent: str | None,
        now: datetime,
    ) -> RecordResult:
        entry = {
            "downloadedAt": to_iso(now),
            "ipAddress": ip_address or "unknown",
            "userAgent": user_agent or "unknown",
            "fileSize": file_size or 0,
        }

        try:
            (
                self.store.patch(license_id)
                .when({"_type": LICENSE_TYPE, "user._ref": user_id, "status": LicenseStatus.ACTIVE.value})
                .when(license_unexpired_query(now))
                .when(license_under_quota_query())
                .inc({"downloadCount": 1})
                .set_if_missing({"downloadHistory": []})
                .append("downloadHistory", [entry])
                .set({"lastDownloadAt": to_iso(now)})
                .commit()
            )
        except PreconditionFailedError:
            reason = self._denial_reason(license_id, user_id, now)
            logger.warning("Download of product %s not counted on license %s: %s", product_id, license_id, reason)
            return RecordResult(success=False, method=DownloadMethod.LICENSE, error=reason)
        except DocumentNotFoundError:
            logger.warning("Download of product %s not counted: license %s not found", product_id, license_id)
            return RecordResult(success=False, method=DownloadMethod.LICENSE, error=REASON_NOT_FOUND)
        except StoreError as e:
            logger.exception("Failed to record download for license %s", license_id)
            return RecordResult(success=False, method=DownloadMethod.LICENSE, error=str(e))

        logger.debug("Recorded license download: license=%s product=%s", license_id, product_id)
        return RecordResult(success=True, method=DownloadMethod.LICENSE)

    def _denial_reason(self, license_id: str, user_id: str, now: datetime) -> str:
        """Explain a rejected conditional increment from the license as stored now."""
        try:
            document = self.store.get(license_id)
        except StoreError:
            return REASON_LIMIT_EXCEEDED
        if document is None or document.get("_type") != LICENSE_TYPE:
            return REASON_NOT_FOUND
        license_obj = license_from_document(document)
        if license_obj.user_id != user_id:
            return REASON_NOT_FOUND
        # A concurrent download that took the last unit leaves nothing to report
        return check_license(license_obj, now) or REASON_LIMIT_EXCEEDED

    def _record_pass_download(
        self, *, user_id: str, product_id: str, access_pass_id: str | None, now: datetime
    ) -> RecordResult:
        valid = {"_type": ACCESS_PASS_TYPE, "user._ref": user_id, **pass_valid_query(now)}

        try:
            if access_pass_id is None:
                document = self.store.find_one(valid, order_by="currentPeriodStart", descending=True)
                if document is None:
                    logger.warning(
                        "Download of product %s by user %s not counted: no active access pass", product_id, user_id
                    )
                    return RecordResult(success=False, method=DownloadMethod.ACCESS_PASS, error=ERROR_NO_ACTIVE_PASS)
                access_pass_id = document["_id"]

            (
                self.store.patch(access_pass_id)
                .when(valid)
                .inc({"usage.totalDownloads": 1, "usage.downloadsThisPeriod": 1})
                .set({"usage.lastDownloadAt": to_iso(now)})
                .commit()
            )
        except (PreconditionFailedError, DocumentNotFoundError):
            # Lapsed, cancelled or removed between resolution and recording
            logger.warning(
                "Download of product %s not counted: access pass %s is no longer valid", product_id, access_pass_id
            )
            return RecordResult(success=False, method=DownloadMethod.ACCESS_PASS, error=ERROR_NO_ACTIVE_PASS)
        except StoreError as e:
            logger.exception("Failed to record access pass download for user %s", user_id)
            return RecordResult(success=False, method=DownloadMethod.ACCESS_PASS, error=str(e))

        logger.debug("Recorded access pass download: pass=%s product=%s", access_pass_id, product_id)
        return RecordResult(success=True, method=DownloadMethod.ACCESS_PASS)
