#!/usr/bin/env python3
# bdectl:
#   category: windows/security
#   tags: [bitlocker, encryption, tpm, escrow]
#   requires: [manage-bde, powershell]
#   privilege: admin
#   brief: Enable BitLocker on the boot volume and escrow its recovery password

"""
Enable BitLocker on the boot volume.

Makes sure the TPM is ready, encryption is on, a TPM protector and a
recovery password protector exist, protection is on, and the recovery
password is backed up to Active Directory or Entra ID. Every step checks
the current state first, so the script can be re-run safely.

With --force, all existing protectors are deleted and the volume is
fully decrypted first, then enabled from scratch.

Returns:
    0 - Enabled, or a restart is needed before the run can finish
    1 - A step failed
    2 - Usage or configuration error
"""

import argparse
import sys
from pathlib import Path

from bdectl.bitlocker.errors import BitLockerError, RestartRequired
from bdectl.bitlocker.procedure import Enablement, preflight
from bdectl.core.config import ESCROW_TARGETS, load_settings
from bdectl.core.context import Context
from bdectl.core.logging import ScriptLogger, get_log_path
from bdectl.core.output import Output

TITLE = "Enable BitLocker on the boot volume"
SCRIPT_NAME = "enable"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="bdectl enable", description=TITLE)
    parser.add_argument(
        "-f", "--force",
        action="store_true",
        help="Delete all protectors and decrypt before enabling",
    )
    parser.add_argument("--mount-point", help="Volume to encrypt (default: %%SystemDrive%%)")
    parser.add_argument("--escrow", choices=ESCROW_TARGETS, help="Where to back up the recovery password")
    parser.add_argument("--decrypt-timeout", type=float, help="Seconds to wait for decryption in --force mode")
    parser.add_argument("--config", type=Path, help="YAML config file")
    parser.add_argument("--log-dir", help="Base directory for the run log")
    parser.add_argument("--format", choices=["plain", "json"], default="plain")
    return parser


def resolve_mount_point(option: str | None, configured: str | None, context: Context) -> str:
    return option or configured or context.get_env("SystemDrive") or "C:"


def run(args: list[str], output: Output, context: Context) -> int:
    """
    Main entry point.

    Args:
        args: Command-line arguments
        output: Output helper
        context: Execution context

    Returns:
        0 = enabled or restart pending, 1 = failed, 2 = configuration error
    """
    opts = build_parser().parse_args(args)

    try:
        settings = load_settings(opts.config).with_overrides(
            escrow_target=opts.escrow,
            decrypt_timeout=opts.decrypt_timeout,
            log_dir=opts.log_dir,
        )
    except ValueError as e:
        output.error(str(e))
        output.emit({"status": "failed"})
        output.render(opts.format, TITLE)
        return 2

    mount_point = resolve_mount_point(opts.mount_point, settings.mount_point, context)
    base_path = Path(settings.log_dir) if settings.log_dir else None
    log_path = get_log_path(SCRIPT_NAME, base_path)

    output.emit({"mount_point": mount_point, "force": opts.force, "log": str(log_path)})

    with ScriptLogger(SCRIPT_NAME, log_path, mount_point=mount_point, force=opts.force) as logger:
        try:
            preflight(context)
            result = Enablement(mount_point, context, settings, logger, output).run(force=opts.force)
        except RestartRequired as e:
            logger.warning("Restart required", reason=e.reason, output=e.output)
            output.emit({"status": "restart_pending", "reason": e.reason})
            output.set_summary("Restart the computer, then run bdectl enable again to finish.")
            output.render(opts.format, TITLE)
            return 0
        except BitLockerError as e:
            logger.error(str(e), error=type(e).__name__)
            output.error(str(e))
            output.emit({"status": "failed"})
            output.render(opts.format, TITLE)
            return 1
        except KeyboardInterrupt:
            logger.error("Interrupted")
            output.error("Interrupted")
            output.emit({"status": "failed"})
            output.render(opts.format, TITLE)
            return 1

    output.emit({
        "status": "ok",
        "volume": result.state.to_dict(),
        "tpm": result.tpm.to_dict(),
        "escrowed": result.escrowed,
    })
    if result.escrow_failed:
        output.set_summary("BitLocker enabled; recovery password escrow incomplete")
    else:
        output.set_summary("BitLocker enabled")
    output.render(opts.format, TITLE)
    return 0


if __name__ == "__main__":
    sys.exit(run(sys.argv[1:], Output(), Context()))
