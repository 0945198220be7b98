"""
License key generation.

Keys are four groups of four characters from A-Z0-9 (XXXX-XXXX-XXXX-XXXX),
drawn with the secrets module so every character is equally likely.
"""

from __future__ import annotations

import logging
import re
import secrets
import string
from typing import TYPE_CHECKING

from asset_entitlements.core.errors import LicenseKeyCollisionError
from asset_entitlements.core.licensing.documents import LICENSE_TYPE

if TYPE_CHECKING:
    from asset_entitlements.core.store import EntitlementStore

logger = logging.getLogger(__name__)

KEY_ALPHABET = string.ascii_uppercase + string.digits
KEY_GROUPS = 4
KEY_GROUP_LENGTH = 4
LICENSE_KEY_PATTERN = re.compile(r"^[A-Z0-9]{4}-[A-Z0-9]{4}-[A-Z0-9]{4}-[A-Z0-9]{4}$")


def generate_license_key() -> str:
    """Generate a random license key."""
    groups = (
        "".join(secrets.choice(KEY_ALPHABET) for _ in range(KEY_GROUP_LENGTH))
        for _ in range(KEY_GROUPS)
    )
    return "-".join(groups)


def is_valid_license_key(key: str) -> bool:
    """Check that a key has the XXXX-XXXX-XXXX-XXXX shape."""
    return bool(LICENSE_KEY_PATTERN.match(key))


def generate_unique_license_key(store: EntitlementStore, max_attempts: int = 5) -> str:
    """
    Generate a license key not yet used by any license in the store.

    Args:
        store: Store to check for existing keys
        max_attempts: Keys to try before giving up

    Returns:
        Unused license key

    Raises:
        LicenseKeyCollisionError: If every attempt collided
        StoreError: If the uniqueness query fails
    """
    for attempt in range(1, max_attempts + 1):
        key = generate_license_key()
        if not store.exists({"_type": LICENSE_TYPE, "licenseKey": key}):
            return key
        logger.warning("License key collision on attempt %d", attempt)

    raise LicenseKeyCollisionError(max_attempts)
