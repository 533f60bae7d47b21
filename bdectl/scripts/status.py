#!/usr/bin/env python3
# bdectl:
#   category: windows/security
#   tags: [bitlocker, encryption, tpm, audit]
#   requires: [powershell]
#   privilege: admin
#   brief: Report boot volume BitLocker state and whether it is compliant

"""
Report BitLocker state of the boot volume.

Compliant means protection is on with exactly one TPM protector and a
recovery password protector.

Returns:
    0 - Compliant
    1 - Not compliant
    2 - State could not be queried
"""

import argparse
import sys
from pathlib import Path

from bdectl.bitlocker.errors import BitLockerError
from bdectl.bitlocker.models import EncryptionState, ProtectorType, VolumeState
from bdectl.bitlocker.query import get_tpm_state, get_volume_state
from bdectl.core.config import load_settings
from bdectl.core.context import Context
from bdectl.core.output import Output

TITLE = "BitLocker status"


def find_issues(state: VolumeState) -> list[str]:
    """List what keeps a volume from being compliant."""
    issues = []
    if state.state is not EncryptionState.ON:
        issues.append(f"Protection is {state.state.value}")
    tpm_count = len(state.protectors_of(ProtectorType.TPM))
    if tpm_count == 0:
        issues.append("No TPM protector")
    elif tpm_count > 1:
        issues.append(f"{tpm_count} TPM protectors")
    if not state.has_protector(ProtectorType.RECOVERY_PASSWORD):
        issues.append("No recovery password protector")
    return issues


def run(args: list[str], output: Output, context: Context) -> int:
    parser = argparse.ArgumentParser(prog="bdectl status", description=TITLE)
    parser.add_argument("--mount-point", help="Volume to inspect (default: %%SystemDrive%%)")
    parser.add_argument("--config", type=Path, help="YAML config file")
    parser.add_argument("--format", choices=["plain", "json"], default="plain")
    opts = parser.parse_args(args)

    try:
        settings = load_settings(opts.config)
    except ValueError as e:
        output.error(str(e))
        output.render(opts.format, TITLE)
        return 2

    mount_point = opts.mount_point or settings.mount_point or context.get_env("SystemDrive") or "C:"

    try:
        tpm = get_tpm_state(context, timeout=settings.command_timeout)
        state = get_volume_state(mount_point, context, timeout=settings.command_timeout)
    except BitLockerError as e:
        output.error(str(e))
        output.emit({"status": "failed", "mount_point": mount_point})
        output.render(opts.format, TITLE)
        return 2

    issues = find_issues(state)
    for issue in issues:
        output.warning(issue)

    output.emit({
        "status": "noncompliant" if issues else "compliant",
        "compliant": not issues,
        "volume": state.to_dict(),
        "tpm": tpm.to_dict(),
    })
    output.set_summary(f"{state.mount_point} {state.state.value}, {len(issues)} issue(s)")
    output.render(opts.format, TITLE)

    return 1 if issues else 0


if __name__ == "__main__":
    sys.exit(run(sys.argv[1:], Output(), Context()))
