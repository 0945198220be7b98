"""
asset-entitlements: licensing and download entitlements for a digital asset marketplace.

Decides whether a user may download a product, tracks consumption against
license quotas, and reconciles per-product licenses with subscription
access passes.

Usage:
    from asset_entitlements.core.licensing import LicenseManager
    from asset_entitlements.core.store import MemoryStore

    manager = LicenseManager(MemoryStore())
    result = manager.validate_download_access("user-1", product_id="product-1")
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
