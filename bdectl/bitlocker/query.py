"""
Structured state queries.

Decisions are made only on what these return. Each query runs a
PowerShell snippet that selects the needed fields and emits compact
JSON, so no human-readable tool output is parsed here.
"""

import json
import re
from typing import Any

from bdectl.bitlocker.errors import BitLockerError, ToolError, UnparseableOutputError
from bdectl.bitlocker.models import (
    KeyProtector,
    TpmState,
    VolumeState,
    parse_protection_status,
    parse_protector_type,
    parse_volume_status,
)
from bdectl.core.context import Context
from bdectl.lib.process import CommandError, powershell_command, run_powershell

MOUNT_POINT_PATTERN = re.compile(r"^[A-Za-z]:$")

VOLUME_QUERY = (
    "$v = Get-BitLockerVolume -MountPoint '{mount_point}' -ErrorAction Stop; "
    "[pscustomobject]@{{"
    "MountPoint = $v.MountPoint; "
    "ProtectionStatus = [string]$v.ProtectionStatus; "
    "VolumeStatus = [string]$v.VolumeStatus; "
    "EncryptionPercentage = $v.EncryptionPercentage; "
    "KeyProtector = @($v.KeyProtector | ForEach-Object {{ [pscustomobject]@{{"
    "KeyProtectorId = $_.KeyProtectorId; "
    "KeyProtectorType = [string]$_.KeyProtectorType }} }})"
    "}} | ConvertTo-Json -Depth 4 -Compress"
)

TPM_QUERY = "Get-Tpm -ErrorAction Stop | Select-Object TpmPresent, TpmReady | ConvertTo-Json -Compress"


def normalize_mount_point(mount_point: str) -> str:
    """Return mount point as 'X:'; reject anything else."""
    mount_point = mount_point.strip().rstrip("\\")
    if not MOUNT_POINT_PATTERN.match(mount_point):
        raise BitLockerError(f"Invalid mount point: {mount_point!r} (expected a drive letter like C:)")
    return mount_point.upper()


def run_query(script: str, what: str, context: Context, timeout: int | None = 60) -> Any:
    """
    Run a PowerShell query and decode its JSON output.

    Raises:
        ToolError: PowerShell exited non-zero or could not be started
        UnparseableOutputError: Output was not JSON
    """
    try:
        result = run_powershell(script, context=context, timeout=timeout)
    except CommandError as e:
        raise ToolError(powershell_command(script), None, str(e)) from e

    if result.returncode != 0:
        raise ToolError(powershell_command(script), result.returncode, result.stderr or result.stdout)

    text = result.stdout.strip()
    if not text:
        raise UnparseableOutputError(what, result.stdout)
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise UnparseableOutputError(what, result.stdout) from e


def parse_volume(data: Any, mount_point: str) -> VolumeState:
    """Build VolumeState from decoded Get-BitLockerVolume JSON."""
    if isinstance(data, list) and len(data) == 1:
        data = data[0]
    if not isinstance(data, dict):
        raise UnparseableOutputError("Get-BitLockerVolume", json.dumps(data))

    try:
        percentage = float(data.get("EncryptionPercentage") or 0)
    except (TypeError, ValueError) as e:
        raise UnparseableOutputError("Get-BitLockerVolume", json.dumps(data)) from e

    raw_protectors = data.get("KeyProtector") or []
    if isinstance(raw_protectors, dict):
        raw_protectors = [raw_protectors]

    protectors = []
    for item in raw_protectors:
        if not isinstance(item, dict) or not item.get("KeyProtectorId"):
            raise UnparseableOutputError("Get-BitLockerVolume", json.dumps(data))
        protectors.append(
            KeyProtector(
                protector_id=str(item["KeyProtectorId"]),
                protector_type=parse_protector_type(item.get("KeyProtectorType")),
            )
        )

    return VolumeState(
        mount_point=str(data.get("MountPoint") or mount_point),
        protection_status=parse_protection_status(data.get("ProtectionStatus")),
        volume_status=parse_volume_status(data.get("VolumeStatus")),
        encryption_percentage=percentage,
        key_protectors=tuple(protectors),
    )


def get_volume_state(mount_point: str, context: Context, timeout: int | None = 60) -> VolumeState:
    """Query current encryption state of a volume."""
    mount_point = normalize_mount_point(mount_point)
    data = run_query(VOLUME_QUERY.format(mount_point=mount_point), "Get-BitLockerVolume", context, timeout)
    return parse_volume(data, mount_point)


def parse_tpm(data: Any) -> TpmState:
    """Build TpmState from decoded Get-Tpm JSON."""
    if not isinstance(data, dict) or "TpmPresent" not in data:
        raise UnparseableOutputError("Get-Tpm", json.dumps(data))
    return TpmState(
        present=bool(data.get("TpmPresent")),
        ready=bool(data.get("TpmReady")),
    )


def get_tpm_state(context: Context, timeout: int | None = 60) -> TpmState:
    """Query TPM presence and readiness."""
    return parse_tpm(run_query(TPM_QUERY, "Get-Tpm", context, timeout))
