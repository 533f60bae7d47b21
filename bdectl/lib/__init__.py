"""Shared utility library for bdectl scripts."""

from bdectl.lib.process import CommandError, check_tool, run_powershell

__all__ = [
    "CommandError",
    "check_tool",
    "run_powershell",
]
