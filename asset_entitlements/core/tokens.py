"""
Signed download tokens.

A token is the unpadded base64url encoding of

    {user_id}:{product_id}:{license_id}:{timestamp_ms}:{hex_hmac}

where the HMAC-SHA256 covers everything before the signature. Verifying a
token only proves that the download was authorized when the token was
issued; redeem_download_token() additionally re-checks the license's live
state before a download is served.
"""

from __future__ import annotations

import base64
import binascii
import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, hmac
from pydantic import BaseModel, Field

from asset_entitlements.core.licensing.models import DownloadValidation, as_utc
from asset_entitlements.core.licensing.resolver import LicenseResolver

if TYPE_CHECKING:
    from asset_entitlements.core.store import EntitlementStore

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_TTL = timedelta(hours=24)
SECURE_DOWNLOAD_PATH = "/api/download/secure/"

REASON_INVALID_TOKEN = "Invalid download token"
REASON_EXPIRED_TOKEN = "Download token has expired"
REASON_TOKEN_MISMATCH = "Download token does not match license"


class TokenVerification(BaseModel, frozen=True):
    """Result of verifying a download token."""

    valid: bool
    user_id: str | None = Field(default=None)
    product_id: str | None = Field(default=None)
    license_id: str | None = Field(default=None)
    expired: bool = Field(default=False)


class SecureDownloadUrl(BaseModel, frozen=True):
    """A signed download link."""

    url: str
    token: str
    expires_in: int = Field(description="Token lifetime in milliseconds")


def _sign(payload: str, secret: str) -> hmac.HMAC:
    mac = hmac.HMAC(secret.encode("utf-8"), hashes.SHA256())
    mac.update(payload.encode("utf-8"))
    return mac


def _to_millis(value: datetime) -> int:
    return int(as_utc(value).timestamp() * 1000)


def generate_download_token(
    user_id: str,
    product_id: str,
    license_id: str,
    *,
    secret: str,
    now: datetime | None = None,
) -> str:
    """
    Generate a signed download token.

    Args:
        user_id: Downloading user
        product_id: Product the token grants
        license_id: License backing the download
        secret: HMAC key
        now: Issuance time (defaults to current UTC time)

    Returns:
        base64url token without padding

    Raises:
        ValueError: If an id is empty or contains ':'
    """
    for name, value in (("user_id", user_id), ("product_id", product_id), ("license_id", license_id)):
        if not value:
            raise ValueError(f"{name} must not be empty")
        if ":" in value:
            raise ValueError(f"{name} must not contain ':'")

    timestamp = _to_millis(as_utc(now))
    payload = f"{user_id}:{product_id}:{license_id}:{timestamp}"
    signature = _sign(payload, secret).finalize().hex()

    raw = f"{payload}:{signature}".encode()
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def verify_download_token(
    token: str,
    *,
    secret: str,
    now: datetime | None = None,
    ttl: timedelta = DEFAULT_TOKEN_TTL,
) -> TokenVerification:
    """
    Verify a download token's signature and age.

    Malformed and tampered tokens are indistinguishable to the caller; both
    return valid=False without ids. A correctly signed token older than ttl
    returns valid=False, expired=True and its ids.
    """
    try:
        padded = token + "=" * (-len(token) % 4)
        decoded = base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8")
    except (binascii.Error, UnicodeError, ValueError):
        return TokenVerification(valid=False)

    parts = decoded.split(":")
    if len(parts) != 5:
        return TokenVerification(valid=False)

    user_id, product_id, license_id, timestamp, signature = parts
    payload = f"{user_id}:{product_id}:{license_id}:{timestamp}"

    try:
        issued_ms = int(timestamp)
        _sign(payload, secret).verify(bytes.fromhex(signature))
    except (ValueError, InvalidSignature):
        logger.debug("Rejected download token with bad timestamp or signature")
        return TokenVerification(valid=False)

    age_ms = _to_millis(as_utc(now)) - issued_ms
    expired = age_ms > ttl.total_seconds() * 1000

    return TokenVerification(
        valid=not expired,
        user_id=user_id,
        product_id=product_id,
        license_id=license_id,
        expired=expired,
    )


def generate_secure_download_url(
    user_id: str,
    product_id: str,
    license_id: str,
    *,
    secret: str,
    base_url: str,
    ttl: timedelta = DEFAULT_TOKEN_TTL,
    now: datetime | None = None,
) -> SecureDownloadUrl:
    """Generate a signed download link under base_url."""
    token = generate_download_token(user_id, product_id, license_id, secret=secret, now=now)
    url = f"{base_url.rstrip('/')}{SECURE_DOWNLOAD_PATH}{token}"
    return SecureDownloadUrl(url=url, token=token, expires_in=int(ttl.total_seconds() * 1000))


def redeem_download_token(
    store: EntitlementStore,
    token: str,
    *,
    secret: str,
    now: datetime | None = None,
    ttl: timedelta = DEFAULT_TOKEN_TTL,
) -> DownloadValidation:
    """
    Verify a token and re-validate the license it names against live state.

    A token issued before the license was revoked, expired or used up is
    denied here even though verify_download_token() accepts it.
    """
    now = as_utc(now)

    verification = verify_download_token(token, secret=secret, now=now, ttl=ttl)
    if verification.expired:
        return DownloadValidation.denied(REASON_EXPIRED_TOKEN)
    if not verification.valid:
        return DownloadValidation.denied(REASON_INVALID_TOKEN)

    validation = LicenseResolver(store).validate_download_access(
        verification.user_id,  # type: ignore[arg-type]
        product_id=verification.product_id,
        license_id=verification.license_id,
        now=now,
    )
    if validation.license is not None and validation.license.product_id != verification.product_id:
        logger.warning(
            "Token for product %s names license %s of product %s",
            verification.product_id,
            verification.license_id,
            validation.license.product_id,
        )
        return DownloadValidation.denied(REASON_TOKEN_MISMATCH)

    return validation
