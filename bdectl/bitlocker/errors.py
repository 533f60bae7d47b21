"""BitLocker error taxonomy."""


class BitLockerError(Exception):
    """Fatal failure; the run stops with exit code 1."""

    pass


class ToolError(BitLockerError):
    """External tool exited non-zero without a restart signature."""

    def __init__(self, cmd: list[str], returncode: int | None, output: str):
        self.cmd = cmd
        self.returncode = returncode
        self.output = output
        detail = output.strip().splitlines()[-1] if output.strip() else "no output"
        super().__init__(f"{cmd[0]} exited with {returncode}: {detail}")


class UnparseableOutputError(BitLockerError):
    """Structured query returned something that is not the expected JSON."""

    def __init__(self, what: str, output: str):
        self.output = output
        super().__init__(f"Could not parse {what} output: {output.strip()[:200]!r}")


class TpmNotReadyError(BitLockerError):
    """TPM is absent or could not be made ready."""

    pass


class ProtectorMissingError(BitLockerError):
    """A protector was added but is not present afterwards."""

    pass


class DecryptionTimeoutError(BitLockerError):
    """Volume did not reach FullyDecrypted before the deadline."""

    pass


class CancelledError(BitLockerError):
    """A wait was cancelled by the caller."""

    pass


class EscrowError(Exception):
    """Recovery password could not be escrowed. Not fatal."""

    pass


class RestartRequired(Exception):
    """
    The operation needs a reboot before it can complete.

    Not an error: the run ends with exit code 0 and asks for a re-run
    after restarting.
    """

    def __init__(self, reason: str, output: str = ""):
        self.reason = reason
        self.output = output
        super().__init__(reason)
