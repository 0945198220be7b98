"""
License and access pass validity rules.

Shared by the resolver (fetch-then-validate), the quick access check
(existence queries) and the recorder (conditional increment), so all three
apply the same policy.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from asset_entitlements.core.licensing.models import License, LicenseStatus, PassStatus, PassType

REASON_NOT_FOUND = "License not found"
REASON_EXPIRED = "License has expired"
REASON_LIMIT_EXCEEDED = "Download limit exceeded"
REASON_NO_ENTITLEMENT = "No valid license or access pass found"


def check_license(license_obj: License, now: datetime) -> str | None:
    """
    Apply the license validity rule.

    Fails closed in this order: status, expiry, quota.

    Args:
        license_obj: License to check
        now: Current time

    Returns:
        None if the license authorizes a download, else the denial reason
    """
    if license_obj.status != LicenseStatus.ACTIVE:
        return f"License is {license_obj.status.value}"

    if license_obj.is_expired(now):
        return REASON_EXPIRED

    if license_obj.download_limit is not None and license_obj.download_count >= license_obj.download_limit:
        return REASON_LIMIT_EXCEEDED

    return None


# Query fragments expressing the same predicates for existence checks


def license_unexpired_query(now: datetime) -> dict[str, Any]:
    return {"$or": [{"expiresAt": {"$exists": False}}, {"expiresAt": {"$gt": now}}]}


def license_under_quota_query() -> dict[str, Any]:
    return {
        "$or": [
            {"downloadLimit": {"$exists": False}},
            {"$expr": {"$lt": ["$downloadCount", "$downloadLimit"]}},
        ]
    }


def license_valid_query(now: datetime) -> dict[str, Any]:
    """Status active, not expired and under quota."""
    return {
        "status": LicenseStatus.ACTIVE.value,
        "$and": [license_unexpired_query(now), license_under_quota_query()],
    }


def pass_valid_query(now: datetime) -> dict[str, Any]:
    """Status active with a lifetime type or a period ending after now."""
    return {
        "status": PassStatus.ACTIVE.value,
        "$or": [
            {"passType": PassType.LIFETIME.value},
            {"currentPeriodEnd": {"$gt": now}},
        ],
    }
