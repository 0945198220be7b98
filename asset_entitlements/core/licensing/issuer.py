"""
License issuance.

Creates license records on order completion, applying the tier policy
(download limit and expiry) when the caller does not set them explicitly.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from asset_entitlements.core.errors import LicenseIssueError
from asset_entitlements.core.licensing.documents import (
    LICENSE_TYPE,
    license_from_document,
    to_iso,
)
from asset_entitlements.core.licensing.keys import generate_unique_license_key
from asset_entitlements.core.licensing.models import (
    License,
    LicenseStatus,
    LicenseType,
    OrderItem,
    as_utc,
)
from asset_entitlements.core.licensing.policy import TierPolicy, get_tier_policy
from asset_entitlements.core.store import StoreError, reference

if TYPE_CHECKING:
    from asset_entitlements.core.store import EntitlementStore

logger = logging.getLogger(__name__)

_UNSET = object()


class LicenseIssuer:
    """Issues licenses into a store."""

    def __init__(
        self,
        store: EntitlementStore,
        policies: dict[LicenseType, TierPolicy] | None = None,
        key_max_attempts: int = 5,
    ):
        """
        Initialize issuer.

        Args:
            store: Store to create licenses in
            policies: Tier policy table (defaults to DEFAULT_TIER_POLICIES)
            key_max_attempts: Attempts to find an unused license key
        """
        self.store = store
        self.policies = policies
        self.key_max_attempts = key_max_attempts

    def generate_license(
        self,
        *,
        user_id: str,
        order_id: str,
        license_type: LicenseType = LicenseType.BASIC,
        product_id: str | None = None,
        product_ids: list[str] | None = None,
        purchase_price: float = 0,
        currency: str = "USD",
        stripe_payment_intent_id: str | None = None,
        download_limit: int | None | object = _UNSET,
        expires_at: datetime | None | object = _UNSET,
        now: datetime | None = None,
    ) -> License | list[License]:
        """
        Issue a license for one product, or one per product for a bulk order.

        Args:
            user_id: Owning user
            order_id: Originating order
            license_type: basic or extended
            product_id: Single product to license
            product_ids: Products to license (bulk form, returns a list)
            purchase_price: Price paid
            currency: ISO currency code
            stripe_payment_intent_id: Payment reference
            download_limit: Override the tier's limit (None = unlimited)
            expires_at: Override the tier's expiry (None = perpetual)
            now: Issuance time (defaults to current UTC time)

        Returns:
            The License, or a list of Licenses when product_ids is given

        Raises:
            LicenseIssueError: If no product is given, the type is access_pass,
                or the store fails
        """
        if product_ids:
            return [
                self._create_license(
                    user_id=user_id,
                    product_id=pid,
                    order_id=order_id,
                    license_type=license_type,
                    purchase_price=purchase_price,
                    currency=currency,
                    stripe_payment_intent_id=stripe_payment_intent_id,
                    download_limit=download_limit,
                    expires_at=expires_at,
                    now=now,
                )
                for pid in product_ids
            ]

        if product_id:
            return self._create_license(
                user_id=user_id,
                product_id=product_id,
                order_id=order_id,
                license_type=license_type,
                purchase_price=purchase_price,
                currency=currency,
                stripe_payment_intent_id=stripe_payment_intent_id,
                download_limit=download_limit,
                expires_at=expires_at,
                now=now,
            )

        raise LicenseIssueError("Either product_id or product_ids must be provided")

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
        """
        Issue licenses for every item of a completed order.

        One license is created per unit of quantity, each with its tier's policy.

        Raises:
            LicenseIssueError: If any license cannot be created
        """
        licenses: list[License] = []

        for item in items:
            for _ in range(item.quantity):
                licenses.append(
                    self._create_license(
                        user_id=user_id,
                        product_id=item.product_id,
                        order_id=order_id,
                        license_type=item.license_type,
                        purchase_price=item.price,
                        currency=currency,
                        stripe_payment_intent_id=stripe_payment_intent_id,
                        download_limit=_UNSET,
                        expires_at=_UNSET,
                        now=now,
                    )
                )

        logger.info("Issued %d license(s) for order %s", len(licenses), order_id)
        return licenses

    def _create_license(
        self,
        *,
        user_id: str,
        product_id: str,
        order_id: str,
        license_type: LicenseType,
        purchase_price: float,
        currency: str,
        stripe_payment_intent_id: str | None,
        download_limit: int | None | object,
        expires_at: datetime | None | object,
        now: datetime | None,
    ) -> License:
        """Create one license document and return it as a model."""
        try:
            policy = get_tier_policy(license_type, self.policies)
        except ValueError as e:
            raise LicenseIssueError(str(e)) from e

        issued_at = as_utc(now)
        limit = policy.download_limit if download_limit is _UNSET else download_limit
        expiry = policy.expires_at(issued_at) if expires_at is _UNSET else expires_at

        try:
            license_key = generate_unique_license_key(self.store, self.key_max_attempts)
            created = self.store.create(
                {
                    "_type": LICENSE_TYPE,
                    "licenseKey": license_key,
                    "user": reference(user_id),
                    "product": reference(product_id),
                    "order": reference(order_id),
                    "licenseType": license_type.value,
                    "status": LicenseStatus.ACTIVE.value,
                    "downloadCount": 0,
                    "downloadLimit": limit,
                    "issuedAt": to_iso(issued_at),
                    "expiresAt": to_iso(expiry),  # type: ignore[arg-type]
                    "downloadHistory": [],
                    "metadata": {
                        "purchasePrice": purchase_price,
                        "currency": currency,
                        "stripePaymentIntentId": stripe_payment_intent_id,
                    },
                }
            )
        except StoreError as e:
            logger.exception("Failed to issue license for product %s (order %s)", product_id, order_id)
            raise LicenseIssueError(f"Failed to issue license for product {product_id}: {e}") from e

        license_obj = license_from_document(created)
        logger.info(
            "Issued %s license %s for user %s, product %s",
            license_type.value,
            license_obj.license_key,
            user_id,
            product_id,
        )
        return license_obj
