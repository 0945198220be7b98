"""
CLI for asset-entitlements.

Command-line interface for issuing licenses, checking and recording
downloads, and managing access passes against a local store.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from asset_entitlements.cli.context import CliContext, ExitCode

if TYPE_CHECKING:
    from typer import Typer

    app: Typer


def __getattr__(name: str) -> Any:
    if name == "app":
        from asset_entitlements.cli.main import app as _app

        return _app
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "CliContext",
    "ExitCode",
    "app",
]
