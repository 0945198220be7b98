"""
Conversion between store documents and licensing models.

Store documents use the CMS shape: camelCase fields, "_id"/"_type",
references as {"_type": "reference", "_ref": id} and ISO-8601 datetimes.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from asset_entitlements.core.licensing.models import (
    AccessPass,
    AccessPassUsage,
    DownloadHistoryEntry,
    License,
    LicenseMetadata,
    LicenseStatus,
    LicenseType,
    PassStatus,
    PassType,
    Pricing,
    RenewalEntry,
)
from asset_entitlements.core.store import reference

LICENSE_TYPE = "license"
ACCESS_PASS_TYPE = "accessPass"


def to_iso(value: datetime | None) -> str | None:
    """Format a datetime for storage (UTC, ISO-8601)."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat()


def from_iso(value: Any) -> datetime | None:
    """Parse a stored datetime, assuming UTC for naive values."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _ref(value: Any) -> str:
    if isinstance(value, dict):
        return str(value.get("_ref", ""))
    return str(value or "")


# =============================================================================
# License
# =============================================================================


def history_entry_to_dict(entry: DownloadHistoryEntry) -> dict[str, Any]:
    return {
        "downloadedAt": to_iso(entry.downloaded_at),
        "ipAddress": entry.ip_address,
        "userAgent": entry.user_agent,
        "fileSize": entry.file_size,
    }


def license_to_document(license_obj: License) -> dict[str, Any]:
    """Convert a license to a store document."""
    return {
        "_id": license_obj.id,
        "_type": LICENSE_TYPE,
        "licenseKey": license_obj.license_key,
        "user": reference(license_obj.user_id),
        "product": reference(license_obj.product_id),
        "order": reference(license_obj.order_id),
        "licenseType": license_obj.license_type.value,
        "status": license_obj.status.value,
        "downloadCount": license_obj.download_count,
        "downloadLimit": license_obj.download_limit,
        "issuedAt": to_iso(license_obj.issued_at),
        "expiresAt": to_iso(license_obj.expires_at),
        "lastDownloadAt": to_iso(license_obj.last_download_at),
        "downloadHistory": [history_entry_to_dict(e) for e in license_obj.download_history],
        "metadata": {
            "purchasePrice": license_obj.metadata.purchase_price,
            "currency": license_obj.metadata.currency,
            "stripePaymentIntentId": license_obj.metadata.stripe_payment_intent_id,
        },
    }


def license_from_document(data: dict[str, Any]) -> License:
    """Convert a store document to a license."""
    history = [
        DownloadHistoryEntry(
            downloaded_at=from_iso(entry.get("downloadedAt")) or datetime.now(UTC),
            ip_address=entry.get("ipAddress") or "unknown",
            user_agent=entry.get("userAgent") or "unknown",
            file_size=entry.get("fileSize") or 0,
        )
        for entry in data.get("downloadHistory") or []
    ]
    metadata = data.get("metadata") or {}

    return License(
        id=data["_id"],
        license_key=data["licenseKey"],
        user_id=_ref(data.get("user")),
        product_id=_ref(data.get("product")),
        order_id=_ref(data.get("order")),
        license_type=LicenseType(data.get("licenseType", "basic")),
        status=LicenseStatus(data.get("status", "active")),
        download_count=data.get("downloadCount") or 0,
        download_limit=data.get("downloadLimit"),
        issued_at=from_iso(data.get("issuedAt")) or datetime.now(UTC),
        expires_at=from_iso(data.get("expiresAt")),
        last_download_at=from_iso(data.get("lastDownloadAt")),
        download_history=history,
        metadata=LicenseMetadata(
            purchase_price=metadata.get("purchasePrice") or 0,
            currency=metadata.get("currency") or "USD",
            stripe_payment_intent_id=metadata.get("stripePaymentIntentId"),
        ),
    )


# =============================================================================
# Access Pass
# =============================================================================


def access_pass_to_document(access_pass: AccessPass) -> dict[str, Any]:
    """Convert an access pass to a store document."""
    return {
        "_id": access_pass.id,
        "_type": ACCESS_PASS_TYPE,
        "user": reference(access_pass.user_id),
        "passType": access_pass.pass_type.value,
        "status": access_pass.status.value,
        "stripeSubscriptionId": access_pass.stripe_subscription_id,
        "stripeCustomerId": access_pass.stripe_customer_id,
        "currentPeriodStart": to_iso(access_pass.current_period_start),
        "currentPeriodEnd": to_iso(access_pass.current_period_end),
        "cancelAtPeriodEnd": access_pass.cancel_at_period_end,
        "cancelledAt": to_iso(access_pass.cancelled_at),
        "pricing": {
            "amount": access_pass.pricing.amount,
            "currency": access_pass.pricing.currency,
            "interval": access_pass.pricing.interval,
        },
        "usage": {
            "totalDownloads": access_pass.usage.total_downloads,
            "downloadsThisPeriod": access_pass.usage.downloads_this_period,
            "lastDownloadAt": to_iso(access_pass.usage.last_download_at),
        },
        "renewalHistory": [
            {
                "renewedAt": to_iso(r.renewed_at),
                "amount": r.amount,
                "stripeInvoiceId": r.stripe_invoice_id,
                "periodStart": to_iso(r.period_start),
                "periodEnd": to_iso(r.period_end),
            }
            for r in access_pass.renewal_history
        ],
    }


def access_pass_from_document(data: dict[str, Any]) -> AccessPass:
    """Convert a store document to an access pass."""
    pricing = data.get("pricing") or {}
    usage = data.get("usage") or {}
    renewals = [
        RenewalEntry(
            renewed_at=from_iso(r.get("renewedAt")) or datetime.now(UTC),
            amount=r.get("amount") or 0,
            stripe_invoice_id=r.get("stripeInvoiceId"),
            period_start=from_iso(r.get("periodStart")),
            period_end=from_iso(r.get("periodEnd")),
        )
        for r in data.get("renewalHistory") or []
    ]

    return AccessPass(
        id=data["_id"],
        user_id=_ref(data.get("user")),
        pass_type=PassType(data["passType"]),
        status=PassStatus(data.get("status", "active")),
        stripe_subscription_id=data.get("stripeSubscriptionId"),
        stripe_customer_id=data.get("stripeCustomerId"),
        current_period_start=from_iso(data.get("currentPeriodStart")) or datetime.now(UTC),
        current_period_end=from_iso(data.get("currentPeriodEnd")),
        cancel_at_period_end=bool(data.get("cancelAtPeriodEnd", False)),
        cancelled_at=from_iso(data.get("cancelledAt")),
        pricing=Pricing(
            amount=pricing.get("amount") or 0,
            currency=pricing.get("currency") or "USD",
            interval=pricing.get("interval"),
        ),
        usage=AccessPassUsage(
            total_downloads=usage.get("totalDownloads") or 0,
            downloads_this_period=usage.get("downloadsThisPeriod") or 0,
            last_download_at=from_iso(usage.get("lastDownloadAt")),
        ),
        renewal_history=renewals,
    )
