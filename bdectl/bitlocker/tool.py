"""
Mutating calls against manage-bde and the BitLocker PowerShell module.

manage-bde only reports through human-readable text, so the one thing
read from it is whether the output carries a restart signature. All
state checks go through bdectl.bitlocker.query instead.
"""

import re
import subprocess
from typing import Any

from bdectl.bitlocker.errors import EscrowError, RestartRequired, ToolError
from bdectl.bitlocker.models import ProtectorType
from bdectl.bitlocker.query import normalize_mount_point, run_query
from bdectl.core.config import Settings
from bdectl.core.context import Context
from bdectl.lib.process import CommandError, run_powershell

MANAGE_BDE = "manage-bde"

# manage-bde -protectors -add switch for each protector type it can create
ADD_PROTECTOR_FLAGS = {
    ProtectorType.TPM: "-TPM",
    ProtectorType.RECOVERY_PASSWORD: "-RecoveryPassword",
}

TPM_INITIALIZE = (
    "Initialize-Tpm -AllowClear -AllowPhysicalPresence -ErrorAction Stop | "
    "Select-Object TpmReady, RestartRequired, ShutdownRequired, ClearRequired | "
    "ConvertTo-Json -Compress"
)

PROTECTOR_ID_PATTERN = re.compile(r"^\{[0-9A-Fa-f-]{36}\}$")

AAD_BACKUP = (
    "BackupToAAD-BitLockerKeyProtector -MountPoint '{mount_point}' "
    "-KeyProtectorId '{protector_id}' -ErrorAction Stop | Out-Null"
)


def find_restart_signature(output: str, signatures: tuple[str, ...]) -> str | None:
    """Return the first restart signature found in output (case-insensitive)."""
    lowered = output.lower()
    for signature in signatures:
        if signature.lower() in lowered:
            return signature
    return None


def invoke(cmd: list[str], context: Context, settings: Settings) -> str:
    """
    Run a mutating command.

    Returns:
        Combined stdout and stderr

    Raises:
        RestartRequired: Non-zero exit whose output has a restart signature
        ToolError: Any other non-zero exit, or the command could not run
    """
    try:
        result = context.run(cmd, timeout=settings.command_timeout)
    except (OSError, subprocess.SubprocessError) as e:
        raise ToolError(cmd, None, str(e)) from e

    output = "\n".join(part for part in (result.stdout, result.stderr) if part)

    if result.returncode != 0:
        signature = find_restart_signature(output, settings.restart_signatures)
        if signature:
            raise RestartRequired(f"{cmd[0]} reported '{signature}'", output)
        raise ToolError(cmd, result.returncode, output)

    return output


def initialize_tpm(context: Context, settings: Settings) -> dict[str, Any]:
    """Run Initialize-Tpm and return its result flags."""
    data = run_query(TPM_INITIALIZE, "Initialize-Tpm", context, settings.command_timeout)
    return data if isinstance(data, dict) else {}


def turn_on(mount_point: str, context: Context, settings: Settings) -> str:
    """
    Start encrypting the volume.

    Raises:
        RestartRequired: The output asks for a reboot (hardware test
            pending), whatever the exit code
    """
    cmd = [MANAGE_BDE, "-on", normalize_mount_point(mount_point)]
    if settings.used_space_only:
        cmd.append("-UsedSpaceOnly")
    if settings.encryption_method:
        cmd.extend(["-EncryptionMethod", settings.encryption_method])

    output = invoke(cmd, context, settings)

    signature = find_restart_signature(output, settings.restart_signatures)
    if signature:
        raise RestartRequired(f"manage-bde -on reported '{signature}'", output)
    return output


def turn_off(mount_point: str, context: Context, settings: Settings) -> str:
    """Start decrypting the volume."""
    return invoke([MANAGE_BDE, "-off", normalize_mount_point(mount_point)], context, settings)


def add_protector(
    mount_point: str,
    protector_type: ProtectorType,
    context: Context,
    settings: Settings,
) -> str:
    """Add a TPM or recovery password protector."""
    flag = ADD_PROTECTOR_FLAGS.get(protector_type)
    if flag is None:
        raise ValueError(f"Cannot add protector of type {protector_type.value}")
    cmd = [MANAGE_BDE, "-protectors", "-add", normalize_mount_point(mount_point), flag]
    return invoke(cmd, context, settings)


def delete_protector(mount_point: str, protector_id: str, context: Context, settings: Settings) -> str:
    cmd = [MANAGE_BDE, "-protectors", "-delete", normalize_mount_point(mount_point), "-id", protector_id]
    return invoke(cmd, context, settings)


def resume_protection(mount_point: str, context: Context, settings: Settings) -> str:
    """Re-enable suspended or disabled protectors."""
    cmd = [MANAGE_BDE, "-protectors", "-enable", normalize_mount_point(mount_point)]
    return invoke(cmd, context, settings)


def escrow_protector(
    mount_point: str,
    protector_id: str,
    target: str,
    context: Context,
    settings: Settings,
) -> None:
    """
    Back up a recovery password protector to the directory service.

    Args:
        target: "ad" for Active Directory, "aad" for Entra ID

    Raises:
        EscrowError: Backup failed for any reason
    """
    mount_point = normalize_mount_point(mount_point)

    if target == "ad":
        cmd = [MANAGE_BDE, "-protectors", "-adbackup", mount_point, "-id", protector_id]
        try:
            invoke(cmd, context, settings)
        except (ToolError, RestartRequired) as e:
            raise EscrowError(f"Active Directory backup failed: {e}") from e
        return

    if target == "aad":
        if not PROTECTOR_ID_PATTERN.match(protector_id):
            raise EscrowError(f"Refusing to escrow malformed protector id: {protector_id!r}")
        script = AAD_BACKUP.format(mount_point=mount_point, protector_id=protector_id)
        try:
            result = run_powershell(script, context=context, timeout=settings.command_timeout)
        except CommandError as e:
            raise EscrowError(f"Entra ID backup failed: {e}") from e
        if result.returncode != 0:
            detail = (result.stderr or result.stdout).strip() or f"exit code {result.returncode}"
            raise EscrowError(f"Entra ID backup failed: {detail}")
        return

    raise EscrowError(f"Unknown escrow target: {target}")
