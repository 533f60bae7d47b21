"""
Boot-volume enablement procedure.

Each step takes the latest VolumeState and returns one queried after its
own changes, so no decision is made on a snapshot taken before a
mutating call.
"""

import threading
from dataclasses import dataclass, field

from bdectl.bitlocker import tool
from bdectl.bitlocker.errors import (
    BitLockerError,
    EscrowError,
    ProtectorMissingError,
    RestartRequired,
    TpmNotReadyError,
)
from bdectl.bitlocker.models import (
    EncryptionState,
    ProtectionStatus,
    ProtectorType,
    TpmState,
    VolumeState,
)
from bdectl.bitlocker.query import get_tpm_state, get_volume_state
from bdectl.bitlocker.wait import wait_for_decryption
from bdectl.core.config import Settings
from bdectl.core.context import Context
from bdectl.core.logging import ScriptLogger
from bdectl.core.output import Output
from bdectl.lib.process import POWERSHELL, CommandError, check_tool

REQUIRED_TOOLS = (tool.MANAGE_BDE, POWERSHELL)

PROTECTOR_LABELS = {
    ProtectorType.TPM: "TPM",
    ProtectorType.RECOVERY_PASSWORD: "recovery password",
}


@dataclass
class EnableResult:
    """Outcome of a completed enablement run."""

    state: VolumeState
    tpm: TpmState
    escrowed: list[str] = field(default_factory=list)
    escrow_failed: bool = False


def needs_turn_on(state: VolumeState) -> bool:
    """False when already on/encrypting, or off but fully converted."""
    if state.state in (EncryptionState.ON, EncryptionState.ENCRYPTING):
        return False
    if state.state in (EncryptionState.OFF, EncryptionState.SUSPENDED) and state.fully_converted:
        return False
    return True


def preflight(context: Context) -> None:
    """
    Check tools and privilege before touching anything.

    Raises:
        BitLockerError: A required tool is missing or the process is not elevated
    """
    for name in REQUIRED_TOOLS:
        try:
            check_tool(name, context, required=True)
        except CommandError as e:
            raise BitLockerError(str(e)) from e
    if not context.is_admin():
        raise BitLockerError("Administrator privileges are required")


class Enablement:
    """Runs the enablement steps against one volume."""

    def __init__(
        self,
        mount_point: str,
        context: Context,
        settings: Settings,
        logger: ScriptLogger,
        output: Output,
        cancel: threading.Event | None = None,
    ):
        self.mount_point = mount_point
        self.context = context
        self.settings = settings
        self.logger = logger
        self.output = output
        self.cancel = cancel

    def query(self) -> VolumeState:
        state = get_volume_state(self.mount_point, self.context, timeout=self.settings.command_timeout)
        self.logger.debug("Volume state", **state.to_dict())
        return state

    def _did(self, message: str, **extra) -> None:
        self.output.action(message)
        self.logger.action(message, **extra)

    def run(self, force: bool = False) -> EnableResult:
        """
        Bring the volume to protection On with TPM and recovery password
        protectors, then escrow the recovery password.

        Raises:
            RestartRequired: A reboot is needed before the run can finish
            BitLockerError: A step failed
        """
        self.logger.info("Enablement started", mount_point=self.mount_point, force=force)

        tpm = self.ensure_tpm_ready()
        state = self.query()

        if force:
            state = self.reset(state)

        state = self.ensure_turned_on(state)
        state = self.ensure_protector(state, ProtectorType.TPM)
        state = self.ensure_protector(state, ProtectorType.RECOVERY_PASSWORD)
        state = self.ensure_protection_on(state)

        result = EnableResult(state=state, tpm=tpm)
        self.escrow(state, result)

        self.logger.info("Enablement finished", **state.to_dict())
        return result

    def ensure_tpm_ready(self) -> TpmState:
        tpm = get_tpm_state(self.context, timeout=self.settings.command_timeout)
        self.logger.debug("TPM state", **tpm.to_dict())

        if not tpm.present:
            raise TpmNotReadyError("No TPM present")
        if tpm.ready:
            return tpm

        flags = tool.initialize_tpm(self.context, self.settings)
        self._did("Initialized TPM", **flags)
        if flags.get("RestartRequired") or flags.get("ShutdownRequired"):
            raise RestartRequired("TPM initialization requires a restart")

        tpm = get_tpm_state(self.context, timeout=self.settings.command_timeout)
        if not tpm.ready:
            raise TpmNotReadyError("TPM still not ready after initialization")
        return tpm

    def reset(self, state: VolumeState) -> VolumeState:
        """Delete every protector and decrypt, for a clean-slate run."""
        for protector in state.key_protectors:
            tool.delete_protector(self.mount_point, protector.protector_id, self.context, self.settings)
            self._did(
                f"Deleted {protector.protector_type.value} protector {protector.protector_id}",
                protector=protector.to_dict(),
            )

        state = self.query()
        if state.fully_decrypted:
            self.logger.info("Volume already fully decrypted")
            return state

        tool.turn_off(self.mount_point, self.context, self.settings)
        self._did("Started decryption")

        state = wait_for_decryption(
            self.mount_point,
            self.context,
            self.settings,
            cancel=self.cancel,
            on_poll=lambda s: self.logger.info(
                "Waiting for decryption",
                volume_status=s.volume_status.value,
                encryption_percentage=s.encryption_percentage,
            ),
        )
        self.logger.info("Volume fully decrypted")
        return state

    def ensure_turned_on(self, state: VolumeState) -> VolumeState:
        if not needs_turn_on(state):
            self.logger.info(
                "Turn-on not needed",
                state=state.state.value,
                encryption_percentage=state.encryption_percentage,
            )
            return state

        tool.turn_on(self.mount_point, self.context, self.settings)
        self._did("Turned on BitLocker")
        return self.query()

    def ensure_protector(self, state: VolumeState, protector_type: ProtectorType) -> VolumeState:
        label = PROTECTOR_LABELS[protector_type]
        existing = state.protectors_of(protector_type)

        if len(existing) > 1:
            message = f"{len(existing)} {label} protectors present; use --force to reset"
            self.output.warning(message)
            self.logger.warning(message, protectors=[p.to_dict() for p in existing])
        if existing:
            return state

        tool.add_protector(self.mount_point, protector_type, self.context, self.settings)
        state = self.query()
        if not state.has_protector(protector_type):
            raise ProtectorMissingError(f"{label} protector missing after adding it")
        self._did(f"Added {label} protector")
        return state

    def ensure_protection_on(self, state: VolumeState) -> VolumeState:
        if state.protection_status is ProtectionStatus.ON:
            return state

        tool.resume_protection(self.mount_point, self.context, self.settings)
        self._did("Resumed protection")

        state = self.query()
        if state.state not in (EncryptionState.ON, EncryptionState.ENCRYPTING):
            raise BitLockerError(f"Protection is {state.state.value} after resume")
        return state

    def escrow(self, state: VolumeState, result: EnableResult) -> None:
        """Back up recovery passwords. Failures are reported, never raised."""
        target = self.settings.escrow_target
        if target == "none":
            self.logger.info("Escrow disabled")
            return

        recovery = state.protectors_of(ProtectorType.RECOVERY_PASSWORD)
        if state.state not in (EncryptionState.ON, EncryptionState.ENCRYPTING):
            self._escrow_skipped(result, f"protection is {state.state.value}")
            return
        if not recovery:
            self._escrow_skipped(result, "no recovery password protector")
            return

        for protector in recovery:
            try:
                tool.escrow_protector(
                    self.mount_point, protector.protector_id, target, self.context, self.settings
                )
            except EscrowError as e:
                result.escrow_failed = True
                self.output.warning(str(e))
                self.logger.warning("Escrow failed", protector_id=protector.protector_id, error=str(e))
                continue
            result.escrowed.append(protector.protector_id)
            self._did(f"Escrowed recovery password {protector.protector_id} to {target}")

    def _escrow_skipped(self, result: EnableResult, reason: str) -> None:
        result.escrow_failed = True
        message = f"Recovery password not escrowed: {reason}"
        self.output.warning(message)
        self.logger.warning(message)
