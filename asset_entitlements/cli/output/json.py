"""
JSON output adapter.

Renders entitlement results as JSON for machine processing.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, TextIO

from asset_entitlements.cli.output.base import OutputAdapter, OutputFormat

if TYPE_CHECKING:
    from asset_entitlements.core.licensing.models import (
        AccessCheck,
        AccessPass,
        DownloadStats,
        DownloadValidation,
        License,
        LicenseListing,
        RecordResult,
    )
    from asset_entitlements.core.tokens import SecureDownloadUrl, TokenVerification


class JsonOutput(OutputAdapter):
    """JSON output adapter."""

    format = OutputFormat.JSON

    def __init__(self, stream: TextIO | None = None, color: bool = False, indent: int = 2):
        super().__init__(stream=stream, color=False)  # Never colorize JSON
        self.indent = indent

    def _dumps(self, data: Any) -> str:
        return json.dumps(data, indent=self.indent, default=str)

    def render_validation(self, validation: DownloadValidation) -> str:
        return self._dumps(self._validation_to_dict(validation))

    def render_access_check(self, check: AccessCheck) -> str:
        return self._dumps(check.model_dump(mode="json"))

    def render_download(self, validation: DownloadValidation, record: RecordResult | None) -> str:
        output: dict[str, Any] = {
            "validation": self._validation_to_dict(validation),
            "record": record.model_dump(mode="json") if record is not None else None,
        }
        return self._dumps(output)

    def render_licenses(self, licenses: list[License]) -> str:
        return self._dumps({"licenses": [self._license_to_dict(lic) for lic in licenses]})

    def render_listing(self, listing: LicenseListing) -> str:
        output = {
            "licenses": [self._license_to_dict(lic) for lic in listing.licenses],
            "total_count": listing.total_count,
            "stats": listing.stats.model_dump(mode="json"),
        }
        return self._dumps(output)

    def render_stats(self, stats: DownloadStats) -> str:
        return self._dumps(stats.model_dump(mode="json"))

    def render_access_pass(self, access_pass: AccessPass | None) -> str:
        if access_pass is None:
            return self._dumps({"access_pass": None})
        return self._dumps({"access_pass": access_pass.model_dump(mode="json")})

    def render_token(self, verification: TokenVerification) -> str:
        return self._dumps(verification.model_dump(mode="json"))

    def render_secure_url(self, secure_url: SecureDownloadUrl) -> str:
        return self._dumps(secure_url.model_dump(mode="json"))

    def _license_to_dict(self, license_obj: License) -> dict[str, Any]:
        """Convert license to dictionary, without the download history."""
        data = license_obj.model_dump(mode="json", exclude={"download_history"})
        data["remaining_downloads"] = license_obj.remaining_downloads
        return data

    def _validation_to_dict(self, validation: DownloadValidation) -> dict[str, Any]:
        return {
            "can_download": validation.can_download,
            "method": validation.method.value,
            "reason": validation.reason,
            "license": self._license_to_dict(validation.license) if validation.license else None,
            "access_pass": validation.access_pass.model_dump(mode="json") if validation.access_pass else None,
        }
