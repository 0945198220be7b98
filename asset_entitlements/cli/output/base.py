"""
Output adapter base classes.

Defines the interface for output adapters.
"""

from __future__ import annotations

import sys
from abc import ABC, abstractmethod
from enum import Enum
from typing import TYPE_CHECKING, TextIO

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


class OutputFormat(Enum):
    """Supported output formats."""

    TERMINAL = "terminal"
    JSON = "json"


class OutputAdapter(ABC):
    """Base class for output adapters."""

    format: OutputFormat

    def __init__(self, stream: TextIO | None = None, color: bool = True):
        self.stream = stream or sys.stdout
        self.color = color

    @abstractmethod
    def render_validation(self, validation: DownloadValidation) -> str:
        """Render a download decision."""
        pass

    @abstractmethod
    def render_access_check(self, check: AccessCheck) -> str:
        """Render a quick access check."""
        pass

    @abstractmethod
    def render_download(self, validation: DownloadValidation, record: RecordResult | None) -> str:
        """Render a resolved and recorded download."""
        pass

    @abstractmethod
    def render_licenses(self, licenses: list[License]) -> str:
        """Render newly issued licenses."""
        pass

    @abstractmethod
    def render_listing(self, listing: LicenseListing) -> str:
        """Render a page of licenses with stats."""
        pass

    @abstractmethod
    def render_stats(self, stats: DownloadStats) -> str:
        """Render download statistics."""
        pass

    @abstractmethod
    def render_access_pass(self, access_pass: AccessPass | None) -> str:
        """Render an access pass, or its absence."""
        pass

    @abstractmethod
    def render_token(self, verification: TokenVerification) -> str:
        """Render a token verification."""
        pass

    @abstractmethod
    def render_secure_url(self, secure_url: SecureDownloadUrl) -> str:
        """Render a signed download link."""
        pass

    def write(self, content: str) -> None:
        """Write content to stream."""
        self.stream.write(content)
        if not content.endswith("\n"):
            self.stream.write("\n")
        self.stream.flush()


def get_output_adapter(
    format: OutputFormat | str,
    stream: TextIO | None = None,
    color: bool = True,
) -> OutputAdapter:
    """Get an output adapter by format."""
    if isinstance(format, str):
        format = OutputFormat(format)

    if format == OutputFormat.TERMINAL:
        from asset_entitlements.cli.output.terminal import TerminalOutput

        return TerminalOutput(stream=stream, color=color)
    elif format == OutputFormat.JSON:
        from asset_entitlements.cli.output.json import JsonOutput

        return JsonOutput(stream=stream, color=color)
    else:
        raise ValueError(f"Unknown output format: {format}")
