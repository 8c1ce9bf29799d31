"""CLI interface for the rig architect.

Entry point: rig-architect [--town PATH] <subcommand> [args...]
"""

import argparse
import asyncio
import json
import logging
import os
import shutil
import sys
from pathlib import Path

from .errors import (
    AlreadyRunningError,
    ArchitectError,
    RigNotFoundError,
    WorkspaceNotFoundError,
    is_informational,
)
from .logging_config import get_logger, setup_process_logging

logger = get_logger(__name__)


def _town_root(args) -> Path:
    """Town root from --town, else discovered from the working directory."""
    from .workspace import TOWN_MARKER, find_town_root_or_error, is_town_root

    if args.town:
        town = Path(args.town).expanduser().resolve()
        if not is_town_root(town):
            raise WorkspaceNotFoundError(f"{town} is not a town root (missing {TOWN_MARKER})")
        return town
    return find_town_root_or_error()


def _manager(town_root: Path, rig_name: str):
    from .manager import ArchitectManager
    from .rig import load_rig

    return ArchitectManager(load_rig(town_root, rig_name))


def _print_warnings(report) -> None:
    for warning in report.warnings:
        print(f"  ⚠ {warning}")


def _print_informational(err: ArchitectError) -> None:
    """Already running / not running: reported, not failed on."""
    message = str(err)
    print(f"⚠ {message[:1].upper()}{message[1:]}")


# --- Subcommands ---


def cmd_start(args):
    """Start the architect for a rig."""
    from .lock import SessionLock
    from .rig import check_rig_available

    town = _town_root(args)
    check_rig_available(town, args.rig)
    mgr = _manager(town, args.rig)

    print(f"Starting architect for {args.rig}...")
    try:
        with SessionLock(town, mgr.session_name):
            report = asyncio.run(mgr.start(args.agent, args.env))
    except ArchitectError as e:
        if not is_informational(e):
            raise
        _print_informational(e)
        print("  Use 'rig-architect attach' to connect")
        return

    _print_warnings(report)
    print(f"✓ Architect started for {args.rig}")
    print("  Use 'rig-architect attach' to connect")
    print("  Use 'rig-architect status' to check progress")


def cmd_stop(args):
    """Stop the architect for a rig."""
    from .lock import SessionLock
    from .session import untrack_session_pid

    town = _town_root(args)
    mgr = _manager(town, args.rig)

    # The PID file goes only once the session is known to be gone
    try:
        with SessionLock(town, mgr.session_name):
            asyncio.run(mgr.stop())
    except ArchitectError as e:
        if not is_informational(e):
            raise
        untrack_session_pid(mgr.town_root(), mgr.session_name)
        _print_informational(e)
        return

    untrack_session_pid(mgr.town_root(), mgr.session_name)
    print(f"✓ Architect stopped for {args.rig}")


def cmd_status(args):
    """Show running state and session info."""
    from .session import tracked_pid

    town = _town_root(args)
    mgr = _manager(town, args.rig)

    async def _query():
        running = await mgr.is_running()
        try:
            info = await mgr.status()
        except ArchitectError:
            info = None
        return running, info

    running, info = asyncio.run(_query())
    pid = tracked_pid(mgr.town_root(), mgr.session_name) if running else None

    if args.json:
        output = {"running": running, "rig_name": args.rig}
        if info is not None:
            output["session"] = info.name
        if pid is not None:
            output["pid"] = pid
        print(json.dumps(output, indent=2))
        return

    print(f"Architect: {args.rig}\n")
    if running:
        print("  State: ● running")
        if info is not None:
            print(f"  Session: {info.name}")
            if info.created:
                print(f"  Created: {info.created.isoformat(timespec='seconds')}")
            print(f"  Attached: {'yes' if info.attached else 'no'}")
        if pid is not None:
            print(f"  PID: {pid}")
    else:
        print("  State: ○ stopped")


def cmd_attach(args):
    """Attach the terminal to the architect session, starting it first if needed."""
    from .lock import SessionLock
    from .rig import infer_rig_from_cwd

    town = _town_root(args)
    rig_name = args.rig
    if not rig_name:
        try:
            rig_name = infer_rig_from_cwd(town)
        except RigNotFoundError as e:
            raise RigNotFoundError(f"could not determine rig: {e}\nUsage: rig-architect attach <rig>") from e

    mgr = _manager(town, rig_name)
    try:
        with SessionLock(town, mgr.session_name):
            report = asyncio.run(mgr.start())
        _print_warnings(report)
        print(f"Started architect session for {rig_name}")
    except AlreadyRunningError:
        pass

    if shutil.which("tmux") is None:
        raise ArchitectError("tmux not found in PATH")
    argv = mgr.tmux.attach_command(mgr.session_name)
    os.execvp(argv[0], argv)


def cmd_restart(args):
    """Stop (if running) and start a fresh architect session."""
    from .lock import SessionLock
    from .rig import check_rig_available

    town = _town_root(args)
    check_rig_available(town, args.rig)
    mgr = _manager(town, args.rig)

    print(f"Restarting architect for {args.rig}...")

    async def _restart():
        try:
            await mgr.stop()
        except ArchitectError as e:
            logger.debug("restart: stop skipped: %s", e)
        return await mgr.start(args.agent, args.env)

    with SessionLock(town, mgr.session_name):
        report = asyncio.run(_restart())

    _print_warnings(report)
    print(f"✓ Architect restarted for {args.rig}")
    print("  Use 'rig-architect attach' to connect")


def _add_start_flags(p: argparse.ArgumentParser) -> None:
    p.add_argument("--agent", help="Agent alias to run the architect with (overrides town default)")
    p.add_argument(
        "--env",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Environment variable override (can be repeated)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rig-architect",
        description="Manage the Architect - the independent quality authority for a rig",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--town", "-t", help="Town root (default: discovered from the working directory)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    start_parser = subparsers.add_parser("start", aliases=["spawn"], help="Start the architect")
    start_parser.add_argument("rig", help="Rig name")
    _add_start_flags(start_parser)
    start_parser.set_defaults(func=cmd_start)

    stop_parser = subparsers.add_parser("stop", help="Stop the architect")
    stop_parser.add_argument("rig", help="Rig name")
    stop_parser.set_defaults(func=cmd_stop)

    status_parser = subparsers.add_parser("status", help="Show architect status")
    status_parser.add_argument("rig", help="Rig name")
    status_parser.add_argument("--json", action="store_true", help="Output as JSON")
    status_parser.set_defaults(func=cmd_status)

    attach_parser = subparsers.add_parser("attach", aliases=["at"], help="Attach to architect session")
    attach_parser.add_argument("rig", nargs="?", default=None, help="Rig name (default: inferred from cwd)")
    attach_parser.set_defaults(func=cmd_attach)

    restart_parser = subparsers.add_parser("restart", help="Restart the architect")
    restart_parser.add_argument("rig", help="Rig name")
    _add_start_flags(restart_parser)
    restart_parser.set_defaults(func=cmd_restart)

    return parser


def main(argv: list[str] | None = None):
    parser = build_parser()
    args = parser.parse_args(argv)

    level = logging.DEBUG if args.verbose else logging.WARNING
    try:
        town = _town_root(args)
    except ArchitectError:
        town = None
    setup_process_logging("architect", level=level, log_dir=town / "logs" if town is not None else None)

    try:
        args.func(args)
    except ArchitectError as e:
        if is_informational(e):
            _print_informational(e)
            return
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
