"""Process utilities for scripts."""

import subprocess
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from bdectl.core.context import Context

POWERSHELL = "powershell"


class CommandError(Exception):
    """Error running a command."""

    pass


def _default_context(context: "Context | None") -> "Context":
    if context is None:
        from bdectl.core.context import Context
        context = Context()
    return context


def powershell_command(script: str) -> list[str]:
    """Build the argument vector that runs a PowerShell snippet."""
    return [
        POWERSHELL,
        "-NoProfile",
        "-NonInteractive",
        "-ExecutionPolicy",
        "Bypass",
        "-Command",
        script,
    ]


def run_powershell(
    script: str,
    context: "Context | None" = None,
    timeout: int | None = 60,
) -> subprocess.CompletedProcess:
    """
    Run a PowerShell snippet.

    Args:
        script: PowerShell source passed to -Command
        context: Execution context (for testing)
        timeout: Timeout in seconds

    Returns:
        CompletedProcess; the caller decides what a non-zero exit means

    Raises:
        CommandError: If PowerShell cannot be started or times out
    """
    context = _default_context(context)

    try:
        return context.run(powershell_command(script), timeout=timeout)
    except (OSError, subprocess.SubprocessError) as e:
        raise CommandError(f"PowerShell failed: {e}") from e


def check_tool(
    name: str,
    context: "Context | None" = None,
    required: bool = False,
) -> bool:
    """
    Check if a tool exists in PATH.

    Args:
        name: Tool name to check
        context: Execution context (for testing)
        required: Raise if tool is missing

    Returns:
        True if tool exists

    Raises:
        CommandError: If required=True and tool is missing
    """
    context = _default_context(context)

    exists = context.check_tool(name)

    if required and not exists:
        raise CommandError(f"Required tool not found: {name}")

    return exists
