"""
Exception hierarchy for asset-entitlements.

Policy outcomes (license not found, expired, quota exceeded) are reported
as result objects, not exceptions. Exceptions are reserved for failures the
caller has to act on: bad input, store failures on write paths, and
configuration problems.
"""

from __future__ import annotations


class EntitlementError(Exception):
    """Base class for all entitlement errors."""

    pass


class LicenseIssueError(EntitlementError):
    """Raised when a license cannot be issued."""

    pass


class LicenseKeyCollisionError(LicenseIssueError):
    """Raised when no unused license key could be generated."""

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(f"Could not generate a unique license key after {attempts} attempts")


class AccessPassError(EntitlementError):
    """Raised when an access pass operation fails."""

    pass


class ConfigError(EntitlementError):
    """Raised when configuration cannot be loaded or is invalid."""

    pass
