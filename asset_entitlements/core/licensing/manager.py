"""
License manager.

Single entry point over issuance, resolution, recording, listings and
access pass management, bound to one store and one set of settings.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from asset_entitlements.core.licensing.access_pass import AccessPassManager
from asset_entitlements.core.licensing.issuer import LicenseIssuer
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
    LicenseType,
    OrderItem,
    PassType,
    Pricing,
    RecordResult,
    SubscriptionSnapshot,
    as_utc,
)
from asset_entitlements.core.licensing.queries import LicenseQueries
from asset_entitlements.core.licensing.recorder import DownloadRecorder
from asset_entitlements.core.licensing.resolver import LicenseResolver

if TYPE_CHECKING:
    from asset_entitlements.config import Settings
    from asset_entitlements.core.store import EntitlementStore

logger = logging.getLogger(__name__)


class LicenseManager:
    """Facade over the licensing components."""

    def __init__(self, store: EntitlementStore, settings: Settings | None = None):
        """
        Initialize manager.

        Args:
            store: Entitlement store
            settings: Settings for tier policy and key generation (defaults if None)
        """
        if settings is None:
            from asset_entitlements.config import Settings

            settings = Settings()

        self.store = store
        self.settings = settings
        self.issuer = LicenseIssuer(store, policies=settings.policy, key_max_attempts=settings.key_max_attempts)
        self.resolver = LicenseResolver(store)
        self.recorder = DownloadRecorder(store)
        self.queries = LicenseQueries(store)
        self.access_passes = AccessPassManager(store)

    # -------------------------------------------------------------------------
    # Issuance
    # -------------------------------------------------------------------------

    def generate_license(
        self,
        *,
        user_id: str,
        order_id: str,
        license_type: LicenseType = LicenseType.BASIC,
        pass_type: PassType = PassType.LIFETIME,
        pricing: Pricing | None = None,
        **kwargs: Any,
    ) -> License | list[License] | AccessPass:
        """
        Issue a license, or an access pass when license_type is access_pass.

        Remaining keyword arguments go to LicenseIssuer.generate_license.
        For access passes only pass_type, pricing and now are used.
        """
        license_type = LicenseType(license_type)
        if license_type == LicenseType.ACCESS_PASS:
            now = as_utc(kwargs.get("now"))
            logger.info("Order %s grants an access pass; creating pass instead of license", order_id)
            return self.access_passes.create(
                user_id=user_id,
                pass_type=pass_type,
                pricing=pricing,
                current_period_start=now,
            )

        return self.issuer.generate_license(
            user_id=user_id,
            order_id=order_id,
            license_type=license_type,
            **kwargs,
        )

    def generate_order_licenses(
        self,
        *,
        user_id: str,
        order_id: str,
        items: list[OrderItem],
        currency: str = "USD",
        stripe_payment_intent_id: str | None = None,
        now: datetime | None = None,
    ) -> list[License]:
        return self.issuer.generate_order_licenses(
            user_id=user_id,
            order_id=order_id,
            items=items,
            currency=currency,
            stripe_payment_intent_id=stripe_payment_intent_id,
            now=now,
        )

    # -------------------------------------------------------------------------
    # Resolution and recording
    # -------------------------------------------------------------------------

    def validate_download_access(
        self,
        user_id: str,
        product_id: str | None = None,
        license_id: str | None = None,
        now: datetime | None = None,
    ) -> DownloadValidation:
        return self.resolver.validate_download_access(user_id, product_id, license_id, now)

    def check_access(self, user_id: str, product_id: str | None = None, now: datetime | None = None) -> AccessCheck:
        return self.resolver.check_access(user_id, product_id, now)

    def record_download(self, **kwargs: Any) -> RecordResult:
        """See DownloadRecorder.record_download."""
        return self.recorder.record_download(**kwargs)

    def download(
        self,
        user_id: str,
        product_id: str | None = None,
        license_id: str | None = None,
        *,
        file_size: int | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        now: datetime | None = None,
    ) -> tuple[DownloadValidation, RecordResult | None]:
        """
        Resolve a download and record it if authorized.

        Returns:
            (validation, record); record is None when the download was denied.
            A failed record means the download must not be served.
        """
        now = as_utc(now)

        validation = self.validate_download_access(user_id, product_id, license_id, now)
        if not validation.can_download:
            return validation, None

        access_pass_id = None
        if validation.method == DownloadMethod.LICENSE and validation.license is not None:
            license_id = validation.license.id
            product_id = validation.license.product_id
        elif validation.access_pass is not None:
            access_pass_id = validation.access_pass.id

        record = self.recorder.record_download(
            user_id=user_id,
            product_id=product_id or "",
            method=validation.method,
            license_id=license_id,
            access_pass_id=access_pass_id,
            file_size=file_size,
            ip_address=ip_address,
            user_agent=user_agent,
            now=now,
        )
        return validation, record

    # -------------------------------------------------------------------------
    # Listings
    # -------------------------------------------------------------------------

    def get_user_licenses(self, user_id: str, **filters: Any) -> LicenseListing:
        """See LicenseQueries.get_user_licenses."""
        return self.queries.get_user_licenses(user_id, **filters)

    def get_user_download_stats(self, user_id: str, now: datetime | None = None) -> DownloadStats:
        return self.queries.get_user_download_stats(user_id, now)

    # -------------------------------------------------------------------------
    # Access passes
    # -------------------------------------------------------------------------

    def manage_access_pass(self, action: AccessPassAction | str, **params: Any) -> AccessPass | bool | None:
        return self.access_passes.manage(action, **params)

    def sync_subscription(
        self,
        user_id: str,
        snapshot: SubscriptionSnapshot,
        invoice: InvoiceSnapshot | None = None,
        now: datetime | None = None,
    ) -> AccessPass | None:
        return self.access_passes.sync_subscription(user_id, snapshot, invoice, now)

    def end_subscription(self, user_id: str, subscription_id: str, now: datetime | None = None) -> bool:
        return self.access_passes.end_subscription(user_id, subscription_id, now)
