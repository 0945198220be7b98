"""
Terminal output adapter.

Renders entitlement results as human-readable text with ANSI colors.
"""

from __future__ import annotations

import sys
from datetime import datetime
from typing import TYPE_CHECKING, TextIO

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


def _supports_unicode() -> bool:
    """Check if terminal supports Unicode."""
    try:
        "✓".encode(sys.stdout.encoding or "utf-8")
        return True
    except (UnicodeEncodeError, LookupError):
        return False


STATUS_COLORS = {
    "active": "green",
    "past_due": "yellow",
    "paused": "yellow",
    "suspended": "yellow",
    "cancelled": "red",
    "expired": "red",
    "revoked": "red",
}

SUCCESS_SYMBOL_UNICODE = "✓"
SUCCESS_SYMBOL_ASCII = "OK"
FAILURE_SYMBOL_UNICODE = "✖"
FAILURE_SYMBOL_ASCII = "X"


def _format_date(value: datetime | None, empty: str = "never") -> str:
    if value is None:
        return empty
    return value.strftime("%Y-%m-%d %H:%M UTC")


class TerminalOutput(OutputAdapter):
    """Terminal output with ANSI colors."""

    format = OutputFormat.TERMINAL

    def __init__(self, stream: TextIO | None = None, color: bool = True):
        super().__init__(stream=stream, color=color)
        self._use_color = color and self._is_tty()
        self._use_unicode = _supports_unicode()
        self._success_symbol = SUCCESS_SYMBOL_UNICODE if self._use_unicode else SUCCESS_SYMBOL_ASCII
        self._failure_symbol = FAILURE_SYMBOL_UNICODE if self._use_unicode else FAILURE_SYMBOL_ASCII

    def _is_tty(self) -> bool:
        """Check if output is a TTY."""
        return hasattr(self.stream, "isatty") and self.stream.isatty()

    def render_validation(self, validation: DownloadValidation) -> str:
        if not validation.can_download:
            return self._style(f"{self._failure_symbol} Denied: {validation.reason}", "red")

        lines = [self._style(f"{self._success_symbol} Allowed via {validation.method.value}", "green")]
        if validation.license is not None:
            lines.append(self._format_license(validation.license))
        if validation.access_pass is not None:
            lines.append(self._format_access_pass(validation.access_pass))
        return "\n".join(lines)

    def render_access_check(self, check: AccessCheck) -> str:
        if check.has_access:
            return self._style(f"{self._success_symbol} Access via {check.method.value}", "green")
        return self._style(f"{self._failure_symbol} No access", "red")

    def render_download(self, validation: DownloadValidation, record: RecordResult | None) -> str:
        if record is None:
            return self.render_validation(validation)

        if not record.success:
            return self._style(f"{self._failure_symbol} Download not recorded: {record.error}", "red")

        lines = [self._style(f"{self._success_symbol} Download recorded via {record.method.value}", "green")]
        if validation.license is not None:
            remaining = validation.license.remaining_downloads
            if remaining is not None:
                # remaining_downloads was computed before this download
                lines.append(f"  Remaining downloads: {max(0, remaining - 1)}")
        return "\n".join(lines)

    def render_licenses(self, licenses: list[License]) -> str:
        if not licenses:
            return "No licenses issued."

        lines = [self._style(f"Issued {len(licenses)} license(s)", "bold")]
        lines.extend(self._format_license(lic) for lic in licenses)
        return "\n".join(lines)

    def render_listing(self, listing: LicenseListing) -> str:
        if not listing.licenses:
            return "No licenses found."

        lines = [self._format_license(lic) for lic in listing.licenses]
        lines.append("")
        lines.append(
            f"Total: {listing.stats.total_licenses} license(s), "
            f"{listing.stats.active_licenses} active on this page, "
            f"{listing.stats.total_downloads} download(s)"
        )
        return "\n".join(lines)

    def render_stats(self, stats: DownloadStats) -> str:
        pass_label = self._style("yes", "green") if stats.active_access_pass else "no"
        lines = [
            f"Total downloads: {stats.total_downloads}",
            f"Licenses: {stats.total_licenses}",
            f"Active access pass: {pass_label}",
        ]
        if stats.recent_downloads:
            lines.append("")
            lines.append(self._style("Recent downloads:", "bold"))
            for recent in stats.recent_downloads:
                lines.append(f"  {_format_date(recent.downloaded_at)}  {recent.product_id}")
        return "\n".join(lines)

    def render_access_pass(self, access_pass: AccessPass | None) -> str:
        if access_pass is None:
            return "No access pass."
        return self._format_access_pass(access_pass)

    def render_token(self, verification: TokenVerification) -> str:
        if verification.valid:
            header = self._style(f"{self._success_symbol} Token valid", "green")
        elif verification.expired:
            header = self._style(f"{self._failure_symbol} Token expired", "yellow")
        else:
            return self._style(f"{self._failure_symbol} Token invalid", "red")

        return "\n".join(
            [
                header,
                f"  User:    {verification.user_id}",
                f"  Product: {verification.product_id}",
                f"  License: {verification.license_id}",
            ]
        )

    def render_secure_url(self, secure_url: SecureDownloadUrl) -> str:
        hours = secure_url.expires_in // (60 * 60 * 1000)
        return "\n".join(
            [
                secure_url.url,
                self._style(f"Expires in {hours}h", "dim"),
            ]
        )

    def _format_license(self, license_obj: License) -> str:
        status = license_obj.status.value
        styled_status = self._style(f"[{status}]", STATUS_COLORS.get(status, "white"))

        if license_obj.download_limit is None:
            usage = f"{license_obj.download_count} download(s), unlimited"
        else:
            usage = f"{license_obj.download_count}/{license_obj.download_limit} download(s)"

        return (
            f"  {self._style(license_obj.license_key, 'bold')} {styled_status} "
            f"{license_obj.license_type.value} product={license_obj.product_id} "
            f"{usage}, expires {_format_date(license_obj.expires_at)} "
            f"{self._style(license_obj.id, 'dim')}"
        )

    def _format_access_pass(self, access_pass: AccessPass) -> str:
        status = access_pass.status.value
        styled_status = self._style(f"[{status}]", STATUS_COLORS.get(status, "white"))

        lines = [
            f"  {self._style('Access pass', 'bold')} {styled_status} {access_pass.pass_type.value} "
            f"{self._style(access_pass.id, 'dim')}",
            f"    Period: {_format_date(access_pass.current_period_start)} - "
            f"{_format_date(access_pass.current_period_end, empty='lifetime')}",
            f"    Downloads: {access_pass.usage.total_downloads} total, "
            f"{access_pass.usage.downloads_this_period} this period",
        ]
        if access_pass.cancel_at_period_end:
            lines.append(self._style("    Cancels at period end", "yellow"))
        return "\n".join(lines)

    def _style(self, text: str, style: str) -> str:
        """Apply style to text if colors are enabled."""
        if not self._use_color:
            return text

        # ANSI color codes
        codes = {
            "bold": "\033[1m",
            "dim": "\033[2m",
            "red": "\033[31m",
            "green": "\033[32m",
            "yellow": "\033[33m",
            "white": "\033[37m",
        }
        reset = "\033[0m"

        code = codes.get(style, "")
        if code:
            return f"{code}{text}{reset}"
        return text
