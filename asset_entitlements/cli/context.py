"""
CLI context and configuration.

Manages CLI state, exit codes, and shared context.
"""

from __future__ import annotations

from enum import IntEnum
from pathlib import Path

from pydantic import BaseModel, Field


class ExitCode(IntEnum):
    """CLI exit codes following Unix conventions."""

    SUCCESS = 0  # Allowed / done
    DENIED = 1  # Download denied, token invalid, nothing found
    FATAL = 2  # Store or issuance failure
    USAGE = 64  # Command line usage error
    CONFIG = 78  # Configuration error


class CliContext(BaseModel):
    """Shared context for CLI commands."""

    store_path: Path | None = Field(default=None, description="Overrides the configured store file")
    config_file: Path | None = Field(default=None)
    verbose: bool = Field(default=False)

    model_config = {"frozen": False}


def get_exit_code(allowed: bool) -> ExitCode:
    """Map an allow/deny outcome to an exit code."""
    return ExitCode.SUCCESS if allowed else ExitCode.DENIED
