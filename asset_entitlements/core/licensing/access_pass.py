"""
Access pass management.

Creates, reads, updates and cancels subscription access passes, and keeps
them in sync with the payment provider's subscription lifecycle.
At most one active pass per user is assumed; it is enforced by query
filtering, not by a uniqueness constraint.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from asset_entitlements.core.errors import AccessPassError
from asset_entitlements.core.licensing.documents import (
    ACCESS_PASS_TYPE,
    access_pass_from_document,
    to_iso,
)
from asset_entitlements.core.licensing.models import (
    AccessPass,
    AccessPassAction,
    InvoiceSnapshot,
    PassStatus,
    PassType,
    Pricing,
    SubscriptionSnapshot,
    as_utc,
)
from asset_entitlements.core.licensing.validity import pass_valid_query
from asset_entitlements.core.store import StoreError, reference

if TYPE_CHECKING:
    from asset_entitlements.core.store import EntitlementStore

logger = logging.getLogger(__name__)

# Statuses under which a pass is still shown to its owner
VISIBLE_STATUSES = [PassStatus.ACTIVE.value, PassStatus.PAST_DUE.value, PassStatus.CANCELLED.value]

# Model field name -> document path, for update()
_UPDATABLE_FIELDS = {
    "status": "status",
    "pass_type": "passType",
    "current_period_start": "currentPeriodStart",
    "current_period_end": "currentPeriodEnd",
    "cancel_at_period_end": "cancelAtPeriodEnd",
    "stripe_subscription_id": "stripeSubscriptionId",
    "stripe_customer_id": "stripeCustomerId",
}


def _to_document_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return to_iso(value)
    if isinstance(value, PassStatus | PassType):
        return value.value
    return value


class AccessPassManager:
    """Access pass operations against a store."""

    def __init__(self, store: EntitlementStore):
        self.store = store

    def get(self, user_id: str) -> AccessPass | None:
        """Get the user's pass if it is active, past due or cancelled."""
        document = self.store.find_one(
            {"_type": ACCESS_PASS_TYPE, "user._ref": user_id, "status": {"$in": VISIBLE_STATUSES}},
            order_by="currentPeriodStart",
            descending=True,
        )
        return access_pass_from_document(document) if document else None

    def get_active(self, user_id: str, now: datetime | None = None) -> AccessPass | None:
        """Get the user's newest pass that authorizes downloads at now."""
        document = self.store.find_one(
            {"_type": ACCESS_PASS_TYPE, "user._ref": user_id, **pass_valid_query(as_utc(now))},
            order_by="currentPeriodStart",
            descending=True,
        )
        return access_pass_from_document(document) if document else None

    def create(
        self,
        *,
        user_id: str,
        pass_type: PassType,
        stripe_customer_id: str | None = None,
        pricing: Pricing | None = None,
        current_period_start: datetime | None = None,
        current_period_end: datetime | None = None,
        stripe_subscription_id: str | None = None,
        status: PassStatus = PassStatus.ACTIVE,
    ) -> AccessPass:
        """
        Create an access pass with zeroed usage counters.

        Lifetime passes never carry a period end.

        Raises:
            AccessPassError: If a non-lifetime pass has no period end, or the store fails
        """
        if pass_type == PassType.LIFETIME:
            current_period_end = None
        elif current_period_end is None:
            raise AccessPassError(f"A {pass_type.value} access pass requires a period end")

        pricing = pricing or Pricing()
        try:
            created = self.store.create(
                {
                    "_type": ACCESS_PASS_TYPE,
                    "user": reference(user_id),
                    "passType": pass_type.value,
                    "status": status.value,
                    "stripeSubscriptionId": stripe_subscription_id,
                    "stripeCustomerId": stripe_customer_id,
                    "currentPeriodStart": to_iso(current_period_start or datetime.now(UTC)),
                    "currentPeriodEnd": to_iso(current_period_end),
                    "cancelAtPeriodEnd": False,
                    "pricing": {
                        "amount": pricing.amount,
                        "currency": pricing.currency,
                        "interval": pricing.interval,
                    },
                    "usage": {"totalDownloads": 0, "downloadsThisPeriod": 0},
                }
            )
        except StoreError as e:
            logger.exception("Failed to create access pass for user %s", user_id)
            raise AccessPassError(f"Failed to create access pass: {e}") from e

        logger.info("Created %s access pass %s for user %s", pass_type.value, created["_id"], user_id)
        return access_pass_from_document(created)

    def update(self, user_id: str, updates: dict[str, Any]) -> bool:
        """
        Update the user's pass.

        Args:
            user_id: Owning user
            updates: Model field names (status, current_period_end, ...) to new values

        Returns:
            True if a pass was updated, False if the user has none

        Raises:
            ValueError: On fields that cannot be updated
        """
        unknown = set(updates) - set(_UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update access pass fields: {', '.join(sorted(unknown))}")

        document = self.store.find_one(
            {"_type": ACCESS_PASS_TYPE, "user._ref": user_id},
            order_by="currentPeriodStart",
            descending=True,
        )
        if document is None:
            return False

        fields = {_UPDATABLE_FIELDS[name]: _to_document_value(value) for name, value in updates.items()}
        self.store.patch(document["_id"]).set(fields).commit()
        logger.info("Updated access pass %s for user %s: %s", document["_id"], user_id, sorted(fields))
        return True

    def cancel(self, user_id: str, now: datetime | None = None) -> bool:
        """Cancel the user's pass. Returns False if the user has none."""
        document = self.store.find_one(
            {"_type": ACCESS_PASS_TYPE, "user._ref": user_id},
            order_by="currentPeriodStart",
            descending=True,
        )
        if document is None:
            return False

        self.store.patch(document["_id"]).set(
            {
                "status": PassStatus.CANCELLED.value,
                "cancelAtPeriodEnd": True,
                "cancelledAt": to_iso(now or datetime.now(UTC)),
            }
        ).commit()
        logger.info("Cancelled access pass %s for user %s", document["_id"], user_id)
        return True

    def sync_subscription(
        self,
        user_id: str,
        snapshot: SubscriptionSnapshot,
        invoice: InvoiceSnapshot | None = None,
        now: datetime | None = None,
    ) -> AccessPass | None:
        """
        Apply a subscription update or renewal from the payment provider.

        Usage counters are left untouched; downloadsThisPeriod is never reset here.

        Returns:
            The updated pass, or None if no pass is bound to the subscription
        """
        document = self._find_by_subscription(user_id, snapshot.subscription_id)
        if document is None:
            logger.warning(
                "No access pass for user %s bound to subscription %s", user_id, snapshot.subscription_id
            )
            return None

        patch = self.store.patch(document["_id"]).set(
            {
                "status": snapshot.status.value,
                "currentPeriodStart": to_iso(snapshot.current_period_start),
                "currentPeriodEnd": to_iso(snapshot.current_period_end),
                "cancelAtPeriodEnd": snapshot.cancel_at_period_end,
            }
        )
        if invoice is not None and invoice.paid:
            patch = patch.set_if_missing({"renewalHistory": []}).append(
                "renewalHistory",
                [
                    {
                        "renewedAt": to_iso(now or datetime.now(UTC)),
                        "amount": invoice.amount_paid,
                        "stripeInvoiceId": invoice.invoice_id,
                        "periodStart": to_iso(snapshot.current_period_start),
                        "periodEnd": to_iso(snapshot.current_period_end),
                    }
                ],
            )

        updated = patch.commit()
        logger.info("Synced access pass %s with subscription %s", document["_id"], snapshot.subscription_id)
        return access_pass_from_document(updated)

    def end_subscription(self, user_id: str, subscription_id: str, now: datetime | None = None) -> bool:
        """Mark the pass bound to a deleted subscription as cancelled."""
        document = self._find_by_subscription(user_id, subscription_id)
        if document is None:
            return False

        self.store.patch(document["_id"]).set(
            {
                "status": PassStatus.CANCELLED.value,
                "cancelledAt": to_iso(now or datetime.now(UTC)),
            }
        ).commit()
        logger.info("Subscription %s ended; access pass %s cancelled", subscription_id, document["_id"])
        return True

    def manage(self, action: AccessPassAction | str, **params: Any) -> AccessPass | bool | None:
        """
        Dispatch an access pass action.

        get/create take the keyword arguments of get()/create();
        update takes user_id and updates; cancel takes user_id.

        Raises:
            ValueError: For unknown actions
        """
        action = AccessPassAction(action)

        if action == AccessPassAction.GET:
            return self.get(params["user_id"])
        elif action == AccessPassAction.CREATE:
            return self.create(**params)
        elif action == AccessPassAction.UPDATE:
            return self.update(params["user_id"], params.get("updates", {}))
        elif action == AccessPassAction.CANCEL:
            return self.cancel(params["user_id"], now=params.get("now"))

        raise ValueError(f"Invalid access pass action: {action}")

    def _find_by_subscription(self, user_id: str, subscription_id: str) -> dict[str, Any] | None:
        return self.store.find_one(
            {
                "_type": ACCESS_PASS_TYPE,
                "user._ref": user_id,
                "stripeSubscriptionId": subscription_id,
            }
        )
