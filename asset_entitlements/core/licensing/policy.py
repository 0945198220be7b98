"""
Tier policy applied at license issuance.

basic:     10 downloads, expires 365 days after issuance
extended:  unlimited downloads, perpetual
access_pass is not a license tier; issuance routes it to AccessPass creation.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from pydantic import BaseModel, Field

from asset_entitlements.core.licensing.models import LicenseType


class TierPolicy(BaseModel, frozen=True):
    """Quota and lifetime assigned to a license tier."""

    download_limit: int | None = Field(default=None, ge=1, description="None = unlimited")
    validity_days: int | None = Field(default=None, ge=1, description="None = perpetual")

    def expires_at(self, issued_at: datetime) -> datetime | None:
        """Get the expiry for a license issued at issued_at."""
        if self.validity_days is None:
            return None
        return issued_at + timedelta(days=self.validity_days)


DEFAULT_TIER_POLICIES: dict[LicenseType, TierPolicy] = {
    LicenseType.BASIC: TierPolicy(download_limit=10, validity_days=365),
    LicenseType.EXTENDED: TierPolicy(download_limit=None, validity_days=None),
}


def get_tier_policy(
    license_type: LicenseType,
    policies: dict[LicenseType, TierPolicy] | None = None,
) -> TierPolicy:
    """
    Get the policy for a license tier.

    Args:
        license_type: Tier to look up
        policies: Policy table (defaults to DEFAULT_TIER_POLICIES)

    Returns:
        TierPolicy for the tier

    Raises:
        ValueError: For access_pass, which is not a license tier
    """
    if license_type == LicenseType.ACCESS_PASS:
        raise ValueError("access_pass is not a license tier; create an access pass instead")

    table = policies if policies is not None else DEFAULT_TIER_POLICIES
    return table.get(license_type, DEFAULT_TIER_POLICIES[license_type])


def parse_tier_policies(data: dict[str, Any]) -> dict[LicenseType, TierPolicy]:
    """
    Parse a policy table from config data.

    Format:
    ```yaml
    policy:
      basic:
        download_limit: 10
        validity_days: 365
      extended:
        download_limit: null
        validity_days: null
    ```

    Unlisted tiers keep their defaults.

    Raises:
        ValueError: On unknown tiers or invalid values
    """
    policies = dict(DEFAULT_TIER_POLICIES)

    for tier_name, tier_data in (data or {}).items():
        license_type = LicenseType(tier_name)
        if license_type == LicenseType.ACCESS_PASS:
            raise ValueError("access_pass cannot have a license tier policy")

        base = policies[license_type]
        values = tier_data or {}
        policies[license_type] = TierPolicy(
            download_limit=values.get("download_limit", base.download_limit),
            validity_days=values.get("validity_days", base.validity_days),
        )

    return policies
