"""Volume encryption state as reported by the BitLocker query API."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ProtectionStatus(Enum):
    OFF = "Off"
    ON = "On"
    UNKNOWN = "Unknown"


class VolumeStatus(Enum):
    FULLY_DECRYPTED = "FullyDecrypted"
    FULLY_ENCRYPTED = "FullyEncrypted"
    ENCRYPTION_IN_PROGRESS = "EncryptionInProgress"
    DECRYPTION_IN_PROGRESS = "DecryptionInProgress"
    ENCRYPTION_SUSPENDED = "EncryptionSuspended"
    DECRYPTION_SUSPENDED = "DecryptionSuspended"
    UNKNOWN = "Unknown"


class ProtectorType(Enum):
    TPM = "Tpm"
    RECOVERY_PASSWORD = "RecoveryPassword"
    EXTERNAL_KEY = "ExternalKey"
    TPM_PIN = "TpmPin"
    TPM_STARTUP_KEY = "TpmStartupKey"
    TPM_PIN_STARTUP_KEY = "TpmPinStartupKey"
    PUBLIC_KEY = "PublicKey"
    PASSWORD = "Password"
    TPM_NETWORK_KEY = "TpmNetworkKey"
    AD_ACCOUNT_OR_GROUP = "AdAccountOrGroup"
    UNKNOWN = "Unknown"


class EncryptionState(Enum):
    """Collapsed protection state the enablement decisions are made on."""

    ON = "On"
    OFF = "Off"
    ENCRYPTING = "Encrypting"
    SUSPENDED = "Suspended"


# Integer values PowerShell emits when an enum is serialized without a cast
_PROTECTION_BY_NUMBER = {0: ProtectionStatus.OFF, 1: ProtectionStatus.ON, 2: ProtectionStatus.UNKNOWN}

_VOLUME_BY_NUMBER = {
    0: VolumeStatus.FULLY_DECRYPTED,
    1: VolumeStatus.FULLY_ENCRYPTED,
    2: VolumeStatus.ENCRYPTION_IN_PROGRESS,
    3: VolumeStatus.DECRYPTION_IN_PROGRESS,
    4: VolumeStatus.ENCRYPTION_SUSPENDED,
    5: VolumeStatus.DECRYPTION_SUSPENDED,
}

_PROTECTOR_BY_NUMBER = {
    0: ProtectorType.UNKNOWN,
    1: ProtectorType.TPM,
    2: ProtectorType.EXTERNAL_KEY,
    3: ProtectorType.RECOVERY_PASSWORD,
    4: ProtectorType.TPM_PIN,
    5: ProtectorType.TPM_STARTUP_KEY,
    6: ProtectorType.TPM_PIN_STARTUP_KEY,
    7: ProtectorType.PUBLIC_KEY,
    8: ProtectorType.PASSWORD,
    9: ProtectorType.TPM_NETWORK_KEY,
    10: ProtectorType.AD_ACCOUNT_OR_GROUP,
}

_ALIASES = {
    "numericalpassword": ProtectorType.RECOVERY_PASSWORD,
    "encryptionpaused": VolumeStatus.ENCRYPTION_SUSPENDED,
    "decryptionpaused": VolumeStatus.DECRYPTION_SUSPENDED,
}


def _parse_enum(enum_cls: type[Enum], by_number: dict[int, Enum], raw: Any) -> Any:
    """Map a name or integer from PowerShell JSON onto an enum, else UNKNOWN."""
    if isinstance(raw, bool):
        return enum_cls.UNKNOWN
    if isinstance(raw, int):
        return by_number.get(raw, enum_cls.UNKNOWN)
    if isinstance(raw, str):
        text = raw.strip()
        if text.isdigit():
            return by_number.get(int(text), enum_cls.UNKNOWN)
        for member in enum_cls:
            if member.value.lower() == text.lower():
                return member
        alias = _ALIASES.get(text.lower())
        if isinstance(alias, enum_cls):
            return alias
    return enum_cls.UNKNOWN


def parse_protection_status(raw: Any) -> ProtectionStatus:
    return _parse_enum(ProtectionStatus, _PROTECTION_BY_NUMBER, raw)


def parse_volume_status(raw: Any) -> VolumeStatus:
    return _parse_enum(VolumeStatus, _VOLUME_BY_NUMBER, raw)


def parse_protector_type(raw: Any) -> ProtectorType:
    return _parse_enum(ProtectorType, _PROTECTOR_BY_NUMBER, raw)


@dataclass(frozen=True)
class KeyProtector:
    protector_id: str
    protector_type: ProtectorType

    def to_dict(self) -> dict[str, str]:
        return {"id": self.protector_id, "type": self.protector_type.value}


@dataclass(frozen=True)
class VolumeState:
    """
    Snapshot of one volume's encryption state.

    A snapshot is only valid until the next call that can change the
    volume; callers re-query instead of updating it.
    """

    mount_point: str
    protection_status: ProtectionStatus
    volume_status: VolumeStatus
    encryption_percentage: float
    key_protectors: tuple[KeyProtector, ...] = field(default_factory=tuple)

    @property
    def state(self) -> EncryptionState:
        if self.protection_status is ProtectionStatus.ON:
            return EncryptionState.ON
        if self.volume_status in (
            VolumeStatus.ENCRYPTION_IN_PROGRESS,
            VolumeStatus.ENCRYPTION_SUSPENDED,
        ):
            return EncryptionState.ENCRYPTING
        if self.fully_converted and self.key_protectors:
            return EncryptionState.SUSPENDED
        return EncryptionState.OFF

    @property
    def fully_converted(self) -> bool:
        return self.encryption_percentage >= 100

    @property
    def fully_decrypted(self) -> bool:
        return self.volume_status is VolumeStatus.FULLY_DECRYPTED

    def protectors_of(self, protector_type: ProtectorType) -> list[KeyProtector]:
        return [p for p in self.key_protectors if p.protector_type is protector_type]

    def has_protector(self, protector_type: ProtectorType) -> bool:
        return bool(self.protectors_of(protector_type))

    @property
    def compliant(self) -> bool:
        """Protection On with exactly one TPM and a recovery password protector."""
        return (
            self.state is EncryptionState.ON
            and len(self.protectors_of(ProtectorType.TPM)) == 1
            and self.has_protector(ProtectorType.RECOVERY_PASSWORD)
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "mount_point": self.mount_point,
            "state": self.state.value,
            "protection_status": self.protection_status.value,
            "volume_status": self.volume_status.value,
            "encryption_percentage": self.encryption_percentage,
            "key_protectors": [p.to_dict() for p in self.key_protectors],
        }


@dataclass(frozen=True)
class TpmState:
    present: bool
    ready: bool

    def to_dict(self) -> dict[str, bool]:
        return {"present": self.present, "ready": self.ready}
