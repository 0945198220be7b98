"""
Licensing models.

Core models for licenses, access passes and entitlement decisions.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field


def _utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(UTC)


def as_utc(now: datetime | None = None) -> datetime:
    """Get an aware UTC time; None means now, naive values are taken as UTC."""
    if now is None:
        return _utc_now()
    if now.tzinfo is None:
        return now.replace(tzinfo=UTC)
    return now.astimezone(UTC)


# =============================================================================
# Enums
# =============================================================================


class LicenseType(Enum):
    """License tiers."""

    BASIC = "basic"
    EXTENDED = "extended"
    ACCESS_PASS = "access_pass"  # Routed to AccessPass creation, never a License


class LicenseStatus(Enum):
    """License lifecycle status."""

    ACTIVE = "active"
    SUSPENDED = "suspended"
    EXPIRED = "expired"
    REVOKED = "revoked"


class PassType(Enum):
    """Access pass billing types."""

    MONTHLY = "monthly"
    YEARLY = "yearly"
    LIFETIME = "lifetime"


class PassStatus(Enum):
    """Access pass subscription status."""

    ACTIVE = "active"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    PAST_DUE = "past_due"
    PAUSED = "paused"


class DownloadMethod(Enum):
    """Mechanism that authorized a download."""

    LICENSE = "license"
    ACCESS_PASS = "access_pass"
    NONE = "none"


class AccessPassAction(Enum):
    """Actions accepted by manage_access_pass."""

    GET = "get"
    CREATE = "create"
    UPDATE = "update"
    CANCEL = "cancel"


# =============================================================================
# License
# =============================================================================


class DownloadHistoryEntry(BaseModel, frozen=True):
    """One recorded download of a licensed product."""

    downloaded_at: datetime
    ip_address: str = Field(default="unknown")
    user_agent: str = Field(default="unknown")
    file_size: int = Field(default=0, ge=0)


class LicenseMetadata(BaseModel, frozen=True):
    """Purchase details carried on a license."""

    purchase_price: float = Field(default=0, ge=0)
    currency: str = Field(default="USD")
    stripe_payment_intent_id: str | None = Field(default=None)


class License(BaseModel):
    """One grant of download rights for one product to one user."""

    id: str = Field(description="Store document id")
    license_key: str = Field(pattern=r"^[A-Z0-9]{4}-[A-Z0-9]{4}-[A-Z0-9]{4}-[A-Z0-9]{4}$")
    user_id: str
    product_id: str
    order_id: str
    license_type: LicenseType = Field(default=LicenseType.BASIC)
    status: LicenseStatus = Field(default=LicenseStatus.ACTIVE)
    download_count: int = Field(default=0, ge=0)
    download_limit: int | None = Field(default=None, ge=0, description="None = unlimited")
    issued_at: datetime = Field(default_factory=_utc_now)
    expires_at: datetime | None = Field(default=None, description="None = perpetual")
    last_download_at: datetime | None = Field(default=None)
    download_history: list[DownloadHistoryEntry] = Field(default_factory=list)
    metadata: LicenseMetadata = Field(default_factory=LicenseMetadata)

    model_config = {"frozen": True}

    def is_expired(self, now: datetime | None = None) -> bool:
        """Check expiry against the current time (never stored as a status)."""
        if self.expires_at is None:
            return False
        return self.expires_at < as_utc(now)

    @property
    def remaining_downloads(self) -> int | None:
        """Downloads left under the limit, or None if unlimited."""
        if self.download_limit is None:
            return None
        return max(0, self.download_limit - self.download_count)


# =============================================================================
# Access Pass
# =============================================================================


class Pricing(BaseModel, frozen=True):
    """Access pass price."""

    amount: float = Field(default=0, ge=0)
    currency: str = Field(default="USD")
    interval: str | None = Field(default=None, description="month, year, one_time")


class AccessPassUsage(BaseModel, frozen=True):
    """Download counters for an access pass."""

    total_downloads: int = Field(default=0, ge=0)
    downloads_this_period: int = Field(default=0, ge=0)
    last_download_at: datetime | None = Field(default=None)


class RenewalEntry(BaseModel, frozen=True):
    """One paid subscription renewal."""

    renewed_at: datetime
    amount: float = Field(default=0, ge=0)
    stripe_invoice_id: str | None = Field(default=None)
    period_start: datetime | None = Field(default=None)
    period_end: datetime | None = Field(default=None)


class AccessPass(BaseModel):
    """Subscription granting unlimited downloads for a period (or forever)."""

    id: str = Field(description="Store document id")
    user_id: str
    pass_type: PassType
    status: PassStatus = Field(default=PassStatus.ACTIVE)
    stripe_subscription_id: str | None = Field(default=None)
    stripe_customer_id: str | None = Field(default=None)
    current_period_start: datetime = Field(default_factory=_utc_now)
    current_period_end: datetime | None = Field(default=None, description="None = lifetime")
    cancel_at_period_end: bool = Field(default=False)
    cancelled_at: datetime | None = Field(default=None)
    pricing: Pricing = Field(default_factory=Pricing)
    usage: AccessPassUsage = Field(default_factory=AccessPassUsage)
    renewal_history: list[RenewalEntry] = Field(default_factory=list)

    model_config = {"frozen": True}

    def is_currently_valid(self, now: datetime | None = None) -> bool:
        """Lifetime passes are always valid; others until their period end."""
        if self.pass_type == PassType.LIFETIME:
            return True
        if self.current_period_end is None:
            return False
        return self.current_period_end > as_utc(now)


# =============================================================================
# Decisions and results
# =============================================================================


class DownloadValidation(BaseModel, frozen=True):
    """Outcome of resolving a download request."""

    can_download: bool
    method: DownloadMethod = Field(default=DownloadMethod.NONE)
    reason: str | None = Field(default=None)
    license: License | None = Field(default=None)
    access_pass: AccessPass | None = Field(default=None)

    @classmethod
    def denied(cls, reason: str) -> DownloadValidation:
        return cls(can_download=False, method=DownloadMethod.NONE, reason=reason)


class AccessCheck(BaseModel, frozen=True):
    """Reduced outcome for UI gating."""

    has_access: bool
    method: DownloadMethod = Field(default=DownloadMethod.NONE)
    expires_at: datetime | None = Field(default=None)


class RecordResult(BaseModel, frozen=True):
    """Outcome of recording a download."""

    success: bool
    method: DownloadMethod
    error: str | None = Field(default=None)


class LicenseStats(BaseModel, frozen=True):
    """Aggregate numbers for a license listing."""

    total_licenses: int = 0
    active_licenses: int = 0
    total_downloads: int = 0


class LicenseListing(BaseModel, frozen=True):
    """A page of user licenses."""

    licenses: list[License] = Field(default_factory=list)
    total_count: int = 0
    stats: LicenseStats = Field(default_factory=LicenseStats)


class RecentDownload(BaseModel, frozen=True):
    """Most recent download of one licensed product."""

    license_id: str
    product_id: str
    downloaded_at: datetime
    method: DownloadMethod = Field(default=DownloadMethod.LICENSE)


class DownloadStats(BaseModel, frozen=True):
    """Download statistics for a user."""

    total_downloads: int = 0
    total_licenses: int = 0
    active_access_pass: bool = False
    recent_downloads: list[RecentDownload] = Field(default_factory=list)


class OrderItem(BaseModel, frozen=True):
    """One purchased line of an order."""

    product_id: str
    quantity: int = Field(default=1, ge=1)
    price: float = Field(default=0, ge=0)
    license_type: LicenseType = Field(default=LicenseType.BASIC)


class SubscriptionSnapshot(BaseModel, frozen=True):
    """Subscription state reported by the payment provider."""

    subscription_id: str
    status: PassStatus
    current_period_start: datetime
    current_period_end: datetime
    cancel_at_period_end: bool = False


class InvoiceSnapshot(BaseModel, frozen=True):
    """Invoice reported by the payment provider for a renewal."""

    invoice_id: str
    paid: bool = True
    amount_paid: float = Field(default=0, ge=0)
