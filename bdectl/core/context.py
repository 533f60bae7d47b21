"""Execution context for testability."""

import codecs
import ctypes
import os
import shutil
import subprocess
import time


class Context:
    """
    Wraps external calls for testability.

    In production: executes real commands
    In tests: can be replaced with MockContext
    """

    def check_tool(self, name: str) -> bool:
        """Check if a tool exists in PATH."""
        return shutil.which(name) is not None

    def console_encoding(self) -> str:
        """
        Encoding console tools write their output in.

        manage-bde and powershell.exe write redirected output in the OEM
        code page (cp437, cp850, cp932, ...), not UTF-8. Elsewhere, or when
        the code page has no Python codec, UTF-8 is used.
        """
        try:
            code_page = ctypes.windll.kernel32.GetOEMCP()
        except (AttributeError, OSError):
            return "utf-8"
        encoding = f"cp{code_page}"
        try:
            codecs.lookup(encoding)
        except LookupError:
            return "utf-8"
        return encoding

    def run(
        self,
        cmd: list[str],
        check: bool = False,
        timeout: int | None = 60,
        encoding: str | None = None,
        **kwargs,
    ) -> subprocess.CompletedProcess:
        """
        Run a command and return result.

        Args:
            cmd: Command and arguments as list
            check: Raise on non-zero exit code
            timeout: Timeout in seconds
            encoding: Output encoding (default: console_encoding())
            **kwargs: Additional subprocess.run arguments

        Returns:
            CompletedProcess with stdout, stderr, returncode
        """
        return subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            check=check,
            timeout=timeout,
            encoding=encoding or self.console_encoding(),
            errors="replace",
            **kwargs,
        )

    def get_env(self, key: str, default: str | None = None) -> str | None:
        """Get environment variable."""
        return os.environ.get(key, default)

    def is_admin(self) -> bool:
        """Check if the process runs elevated (Administrator or root)."""
        try:
            return os.geteuid() == 0
        except AttributeError:
            pass
        try:
            return ctypes.windll.shell32.IsUserAnAdmin() != 0
        except (AttributeError, OSError):
            return False

    def sleep(self, seconds: float) -> None:
        """Block for the given number of seconds."""
        time.sleep(seconds)

    def monotonic(self) -> float:
        """Monotonic clock reading in seconds."""
        return time.monotonic()
