"""BitLocker state queries, mutations and the enablement procedure."""

from bdectl.bitlocker.errors import (
    BitLockerError,
    EscrowError,
    RestartRequired,
    ToolError,
    UnparseableOutputError,
)
from bdectl.bitlocker.models import (
    EncryptionState,
    KeyProtector,
    ProtectionStatus,
    ProtectorType,
    TpmState,
    VolumeState,
    VolumeStatus,
)
from bdectl.bitlocker.procedure import EnableResult, Enablement, needs_turn_on, preflight
from bdectl.bitlocker.query import get_tpm_state, get_volume_state

__all__ = [
    "BitLockerError",
    "EnableResult",
    "Enablement",
    "EncryptionState",
    "EscrowError",
    "KeyProtector",
    "ProtectionStatus",
    "ProtectorType",
    "RestartRequired",
    "TpmState",
    "ToolError",
    "UnparseableOutputError",
    "VolumeState",
    "VolumeStatus",
    "get_tpm_state",
    "get_volume_state",
    "needs_turn_on",
    "preflight",
]
