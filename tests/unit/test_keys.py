"""Tests for license key generation."""

from unittest.mock import patch

import pytest

from asset_entitlements.core.errors import LicenseKeyCollisionError
from asset_entitlements.core.licensing.keys import (
    KEY_ALPHABET,
    generate_license_key,
    generate_unique_license_key,
    is_valid_license_key,
)
from asset_entitlements.core.store import MemoryStore


class TestGenerateLicenseKey:
    """Tests for generate_license_key()."""

    def test_format(self) -> None:
        """Test every generated key has the XXXX-XXXX-XXXX-XXXX shape."""
        for _ in range(200):
            key = generate_license_key()
            assert is_valid_license_key(key)
            assert len(key) == 19

    def test_alphabet(self) -> None:
        """Test keys only use A-Z and 0-9."""
        key = generate_license_key().replace("-", "")
        assert all(ch in KEY_ALPHABET for ch in key)

    def test_is_valid_rejects_bad_shapes(self) -> None:
        """Test lowercase, short and unseparated keys are rejected."""
        assert not is_valid_license_key("abcd-EFGH-1234-5678")
        assert not is_valid_license_key("ABCD-EFGH-1234")
        assert not is_valid_license_key("ABCDEFGH12345678")


class TestGenerateUniqueLicenseKey:
    """Tests for generate_unique_license_key()."""

    def test_retries_on_collision(self) -> None:
        """Test a used key is skipped."""
        store = MemoryStore([{"_type": "license", "licenseKey": "AAAA-AAAA-AAAA-AAAA"}])
        keys = iter(["AAAA-AAAA-AAAA-AAAA", "BBBB-BBBB-BBBB-BBBB"])

        with patch(
            "asset_entitlements.core.licensing.keys.generate_license_key",
            side_effect=lambda: next(keys),
        ):
            assert generate_unique_license_key(store) == "BBBB-BBBB-BBBB-BBBB"

    def test_gives_up_after_max_attempts(self) -> None:
        """Test LicenseKeyCollisionError when every attempt collides."""
        store = MemoryStore([{"_type": "license", "licenseKey": "AAAA-AAAA-AAAA-AAAA"}])

        with (
            patch(
                "asset_entitlements.core.licensing.keys.generate_license_key",
                return_value="AAAA-AAAA-AAAA-AAAA",
            ),
            pytest.raises(LicenseKeyCollisionError) as exc_info,
        ):
            generate_unique_license_key(store, max_attempts=3)

        assert exc_info.value.attempts == 3
