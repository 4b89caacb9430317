#!/usr/bin/env python3
"""Main entry point for fanout."""

from __future__ import annotations

import argparse
import asyncio
import getpass
import logging
import os
import sys
from pathlib import Path
from typing import Sequence

from .config import ConnectionParams, Inventory, load_inventory, select_credential
from .dashboard import Dashboard
from .executor import Executor, HostResult

PASSWORD_ENV = "FANOUT_SSH_PASSWORD"

BANNER = "\033[1;34m"
ERROR = "\033[0;31m"
RESET = "\033[0m"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fanout",
        description="Run a fixed set of status commands on many SSH hosts in parallel",
        epilog=(
            "WARNING: host keys are not verified; any key presented by a "
            "target is accepted."
        ),
    )
    parser.add_argument(
        "--inventory",
        type=Path,
        default=Path("inventory.json"),
        help="Path to inventory file (YAML or JSON, default: inventory.json)",
    )
    parser.add_argument("--user", help="SSH username")
    parser.add_argument("--key", type=Path, help="Path to the SSH private key")
    parser.add_argument(
        "--password-prompt",
        action="store_true",
        help=f"Prompt for an SSH password (or set {PASSWORD_ENV})",
    )
    parser.add_argument("--port", type=int, help="SSH port (default: 22)")
    parser.add_argument(
        "--timeout", type=float, help="Connection timeout in seconds (default: 5)"
    )
    parser.add_argument(
        "--log-dir", type=Path, help="Write per-host results under this directory"
    )
    parser.add_argument(
        "--dashboard",
        action="store_true",
        help="Run with the TUI dashboard",
    )
    parser.add_argument(
        "--no-color", action="store_true", help="Disable ANSI colors in output"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging"
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point."""
    args = _build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    # asyncssh is chatty at INFO; only surface its problems
    if not args.verbose:
        logging.getLogger("asyncssh").setLevel(logging.WARNING)

    # Load inventory
    try:
        inventory = load_inventory(args.inventory)
    except FileNotFoundError as e:
        print(f"Error reading inventory: {e}", file=sys.stderr)
        return 1
    except (OSError, ValueError) as e:
        print(f"Error parsing inventory: {e}", file=sys.stderr)
        return 1

    user = args.user or inventory.defaults.user
    if not user:
        print("Error: SSH user must be specified with --user", file=sys.stderr)
        return 1

    password = os.environ.get(PASSWORD_ENV)
    if args.password_prompt:
        password = getpass.getpass(f"SSH password for {user}: ")

    params = ConnectionParams(
        hosts=inventory.hosts,
        username=user,
        credential=select_credential(args.key or inventory.defaults.ssh_key, password),
        port=args.port if args.port is not None else inventory.defaults.port,
        timeout=(
            args.timeout if args.timeout is not None else inventory.defaults.timeout
        ),
    )
    log_dir = args.log_dir or inventory.log_dir

    if args.dashboard:
        return _run_dashboard(params, inventory, log_dir)

    return _run_headless(params, inventory, log_dir, color=not args.no_color)


def _run_dashboard(
    params: ConnectionParams, inventory: Inventory, log_dir: Path | None
) -> int:
    app = Dashboard(
        params,
        inventory.commands,
        log_dir=log_dir,
        inventory_path=inventory.source_path,
    )
    app.run()

    if len(app.results) != len(params.hosts):
        print(
            f"\nInterrupted: {len(app.results)}/{len(params.hosts)} hosts finished",
            file=sys.stderr,
        )
        return 1

    failed_hosts = [result.hostname for result in app.results if not result.ok]
    if failed_hosts:
        print(f"\nFailed hosts: {', '.join(failed_hosts)}", file=sys.stderr)
        return 1
    return 0


def _run_headless(
    params: ConnectionParams,
    inventory: Inventory,
    log_dir: Path | None,
    color: bool = True,
) -> int:
    """Run executor without TUI dashboard and print every host's result."""
    executor = Executor(
        params,
        inventory.commands,
        log_dir=log_dir,
        inventory_path=inventory.source_path,
    )
    results = asyncio.run(executor.run_all())

    for result in results:
        print(format_result(result, color=color))

    failed_hosts = [result.hostname for result in results if not result.ok]
    if failed_hosts:
        print(f"\nFailed hosts: {', '.join(failed_hosts)}", file=sys.stderr)
        return 1
    return 0


def format_result(result: HostResult, color: bool = True) -> str:
    """Render one host's result as a banner followed by its output or error."""
    banner, error, reset = (BANNER, ERROR, RESET) if color else ("", "", "")

    lines = [f"\n{banner}========== Host: {result.hostname} =========={reset}"]
    if result.error is not None:
        lines.append(f"{error}Error:{reset} {result.error}")
    else:
        lines.append(result.output)
    return "\n".join(lines)


if __name__ == "__main__":
    sys.exit(main())
