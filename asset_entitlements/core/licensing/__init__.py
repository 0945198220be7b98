"""
Licensing module for asset-entitlements.

Provides license issuance, download resolution and recording, and access
pass management.
"""

from asset_entitlements.core.licensing.access_pass import AccessPassManager
from asset_entitlements.core.licensing.issuer import LicenseIssuer
from asset_entitlements.core.licensing.keys import (
    generate_license_key,
    generate_unique_license_key,
    is_valid_license_key,
)
from asset_entitlements.core.licensing.manager import LicenseManager
from asset_entitlements.core.licensing.models import (
    AccessCheck,
    AccessPass,
    AccessPassAction,
    DownloadMethod,
    DownloadStats,
    DownloadValidation,
    InvoiceSnapshot,
    License,
    LicenseListing,
    LicenseStats,
    LicenseStatus,
    LicenseType,
    OrderItem,
    PassStatus,
    PassType,
    Pricing,
    RecentDownload,
    RecordResult,
    SubscriptionSnapshot,
)
from asset_entitlements.core.licensing.policy import (
    DEFAULT_TIER_POLICIES,
    TierPolicy,
    get_tier_policy,
)
from asset_entitlements.core.licensing.queries import LicenseQueries
from asset_entitlements.core.licensing.recorder import DownloadRecorder
from asset_entitlements.core.licensing.resolver import LicenseResolver
from asset_entitlements.core.licensing.validity import check_license


__all__ = [
    # Models
    "License",
    "LicenseType",
    "LicenseStatus",
    "AccessPass",
    "PassType",
    "PassStatus",
    "Pricing",
    "OrderItem",
    "SubscriptionSnapshot",
    "InvoiceSnapshot",
    # Results
    "DownloadMethod",
    "DownloadValidation",
    "AccessCheck",
    "RecordResult",
    "LicenseListing",
    "LicenseStats",
    "DownloadStats",
    "RecentDownload",
    "AccessPassAction",
    # Keys
    "generate_license_key",
    "generate_unique_license_key",
    "is_valid_license_key",
    # Policy
    "TierPolicy",
    "DEFAULT_TIER_POLICIES",
    "get_tier_policy",
    "check_license",
    # Components
    "LicenseIssuer",
    "LicenseResolver",
    "DownloadRecorder",
    "LicenseQueries",
    "AccessPassManager",
    "LicenseManager",
]
