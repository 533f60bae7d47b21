"""Command-line interface for bdectl."""

import argparse
import json
import sys
from datetime import date
from pathlib import Path

from bdectl import __version__
from bdectl.core import Context, Output, discover_scripts, load_settings, query_logs
from bdectl.core.logging import LOG_LEVELS, default_log_base
from bdectl.lib.process import check_tool
from bdectl.scripts import enable, status

# Subcommands whose arguments are parsed by the script itself
SCRIPT_COMMANDS = {
    "enable": enable,
    "status": status,
}


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="bdectl",
        description="Enable and audit BitLocker on the boot volume",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"bdectl {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    for name, module in SCRIPT_COMMANDS.items():
        # Arguments are handed to the script unparsed, see main()
        subparsers.add_parser(name, help=module.TITLE, add_help=False)

    doctor_parser = subparsers.add_parser("doctor", help="Check tool availability and privilege")
    doctor_parser.add_argument("--format", choices=["plain", "json"], default="plain")

    logs_parser = subparsers.add_parser("logs", help="Show the enable run log")
    logs_parser.add_argument("--date", type=date.fromisoformat, help="Log date (YYYY-MM-DD, default: today)")
    logs_parser.add_argument("--level", choices=list(LOG_LEVELS), default="info", help="Minimum level")
    logs_parser.add_argument("--limit", type=int, help="Maximum entries to show")
    logs_parser.add_argument("--actions", action="store_true", help="Only show changes made to the system")
    logs_parser.add_argument("--config", type=Path, help="YAML config file")
    logs_parser.add_argument("--format", choices=["plain", "json"], default="plain")

    return parser


def cmd_doctor(args: argparse.Namespace, context: Context) -> int:
    """Check tools required by the bundled scripts and process privilege."""
    scripts = discover_scripts()

    all_tools: set[str] = set()
    for script in scripts:
        all_tools.update(script.requires or [])

    tool_status = {tool: check_tool(tool, context) for tool in sorted(all_tools)}
    missing_tools = [t for t, available in tool_status.items() if not available]
    elevated = context.is_admin()
    admin_scripts = [s.name for s in scripts if s.privilege == "admin"]

    if args.format == "json":
        print(json.dumps({
            "scripts": [s.name for s in scripts],
            "tools": tool_status,
            "missing_tools": missing_tools,
            "elevated": elevated,
            "admin_scripts": admin_scripts,
        }, indent=2))
    else:
        print("=== bdectl doctor ===\n")
        print(f"Scripts: {', '.join(s.name for s in scripts) or 'none'}")
        print()

        if all_tools:
            print("Required tools:")
            for tool in sorted(all_tools):
                mark = "ok" if tool_status[tool] else "MISSING"
                print(f"  {tool}: {mark}")
            print()

        if elevated:
            print("Running elevated")
        elif admin_scripts:
            print(f"Not elevated; {', '.join(admin_scripts)} need Administrator")

        if missing_tools:
            print(f"{len(missing_tools)} missing tool(s): {', '.join(missing_tools)}")
        else:
            print("All required tools available")

    return 1 if missing_tools else 0


def cmd_logs(args: argparse.Namespace) -> int:
    """Print entries from the enable run log."""
    try:
        settings = load_settings(args.config)
    except ValueError as e:
        print(str(e), file=sys.stderr)
        return 2

    base_path = Path(settings.log_dir) if settings.log_dir else default_log_base()
    entries = query_logs(
        base_path,
        enable.SCRIPT_NAME,
        log_date=args.date,
        min_level=args.level,
        limit=args.limit,
        actions_only=args.actions,
    )

    if args.format == "json":
        print(json.dumps(entries, indent=2))
        return 0

    if not entries:
        print("No log entries.")
        return 0

    for entry in entries:
        marker = "*" if entry.get("kind") == "action" else " "
        print(
            f"{entry.get('timestamp', '?')} {entry.get('level', '?').upper():7} "
            f"{entry.get('mount_point', '-'):3} {marker} {entry.get('message', '')}"
        )
    return 0


def main(argv: list[str] | None = None, context: Context | None = None) -> int:
    """Main entry point."""
    if argv is None:
        argv = sys.argv[1:]
    context = context or Context()

    if argv and argv[0] in SCRIPT_COMMANDS:
        return SCRIPT_COMMANDS[argv[0]].run(argv[1:], Output(), context)

    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    if args.command == "doctor":
        return cmd_doctor(args, context)
    return cmd_logs(args)


if __name__ == "__main__":
    sys.exit(main())
