"""
Output adapters for CLI.

Provides different output formats: terminal, JSON.
"""

from asset_entitlements.cli.output.base import OutputAdapter, OutputFormat, get_output_adapter
from asset_entitlements.cli.output.json import JsonOutput
from asset_entitlements.cli.output.terminal import TerminalOutput

__all__ = [
    "JsonOutput",
    "OutputAdapter",
    "OutputFormat",
    "TerminalOutput",
    "get_output_adapter",
]
