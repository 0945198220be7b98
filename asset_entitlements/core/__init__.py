"""
asset-entitlements core library.

This package contains the core functionality:
- store: document store abstraction and local implementations
- licensing: license issuance, download resolution and recording
- tokens: signed, time-boxed download links
"""

__all__: list[str] = []
