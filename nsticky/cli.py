#!/usr/bin/env python3
"""
nsticky CLI

Command-line client that sends one request to the nsticky daemon and prints
its response.
"""

import argparse
import asyncio
import os
import sys
from pathlib import Path
from typing import List, Optional

from .config import DEFAULT_CLI_SOCKET
from .models import Command, Request, Target


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="nsticky",
        description="Manage sticky windows via CLI"
    )
    parser.add_argument(
        "--socket",
        type=Path,
        default=None,
        help=f"Daemon socket (default: $NSTICKY_SOCKET or {DEFAULT_CLI_SOCKET})"
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    add_parser = subparsers.add_parser("add", help="Add a window to the sticky list")
    add_parser.add_argument("window_id", type=int, help="Window ID to add to sticky list")

    remove_parser = subparsers.add_parser("remove", help="Remove a window from the sticky list")
    remove_parser.add_argument("window_id", type=int, help="Window ID to remove from sticky list")

    subparsers.add_parser("list", help="List sticky windows")
    subparsers.add_parser(
        "toggle-active",
        aliases=["toggle_active"],
        help="Toggle sticky state of the focused window"
    )

    stage_parser = subparsers.add_parser("stage", help="Park sticky windows on the stage workspace")
    stage_target = stage_parser.add_mutually_exclusive_group(required=True)
    stage_target.add_argument("window_id", type=int, nargs="?", help="Window ID to stage")
    stage_target.add_argument("--all", action="store_true", help="Stage all sticky windows")
    stage_target.add_argument("--list", action="store_true", help="List staged windows")
    stage_target.add_argument("--active", action="store_true", help="Stage or unstage the focused window")

    unstage_parser = subparsers.add_parser("unstage", help="Bring staged windows back to the current workspace")
    unstage_target = unstage_parser.add_mutually_exclusive_group(required=True)
    unstage_target.add_argument("window_id", type=int, nargs="?", help="Window ID to unstage")
    unstage_target.add_argument("--all", action="store_true", help="Unstage all staged windows")
    unstage_target.add_argument("--active", action="store_true", help="Unstage the focused window")

    return parser


def build_request(args: argparse.Namespace) -> Request:
    """Translate parsed arguments into a protocol request."""
    if args.command in ("add", "remove"):
        return Request(command=Command(args.command), window_id=args.window_id)
    if args.command == "list":
        return Request(command=Command.LIST)
    if args.command in ("toggle-active", "toggle_active"):
        return Request(command=Command.TOGGLE_ACTIVE)

    command = Command(args.command)
    if args.all:
        return Request(command=command, target=Target.ALL)
    if getattr(args, "list", False):
        return Request(command=command, target=Target.LIST)
    if args.active:
        return Request(command=command, target=Target.ACTIVE)
    return Request(command=command, target=Target.WINDOW, window_id=args.window_id)


async def send_request(line: str, socket_path: Path) -> str:
    """
    Send one request line to the daemon and return its response line.

    Raises:
        ConnectionError: If the daemon is not reachable
    """
    try:
        reader, writer = await asyncio.open_unix_connection(str(socket_path))
    except OSError as e:
        raise ConnectionError(f"Daemon not running (cannot connect to {socket_path}: {e})")

    try:
        writer.write((line + "\n").encode())
        await writer.drain()
        data = await reader.readline()
    finally:
        writer.close()
        await writer.wait_closed()

    return data.decode("utf-8", errors="replace")


def resolve_socket(args: argparse.Namespace) -> Path:
    if args.socket is not None:
        return args.socket
    env_socket = os.environ.get("NSTICKY_SOCKET")
    return Path(env_socket) if env_socket else DEFAULT_CLI_SOCKET


def run(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    try:
        request = build_request(args)
    except ValueError as e:
        parser.error(str(e))

    try:
        response = asyncio.run(send_request(request.to_line(), resolve_socket(args)))
    except ConnectionError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted")
        return 130

    print(response, end="")
    return 1 if response.startswith("Error:") else 0


def main():
    """Main entry point."""
    sys.exit(run())


if __name__ == "__main__":
    main()
