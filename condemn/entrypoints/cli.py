from __future__ import annotations

import argparse

from condemn.entrypoints import commands
from condemn.entrypoints.runtime_builder import build_runtime, log_startup
from condemn.entrypoints.service_loop import run_loop


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="condemn",
        description="Dead man's switch service",
    )
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Serve the HTTP API and run the expiry scanner")
    subparsers.add_parser("list", help="Print the configured store's switches as JSON")
    subparsers.add_parser("scan-once", help="Claim expired switches once and exit")

    duration_parser = subparsers.add_parser(
        "parse-duration",
        help="Print a duration string in seconds",
    )
    duration_parser.add_argument("text", help='Duration such as "1h30m" or "2 days"')
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    command = args.command or "run"

    if command == "parse-duration":
        return commands.print_duration(args.text)
    if command == "list":
        return commands.list_switches(build_runtime_fn=build_runtime)
    if command == "scan-once":
        return commands.scan_once(build_runtime_fn=build_runtime)

    return commands.run_service(
        build_runtime_fn=build_runtime,
        log_startup_fn=log_startup,
        run_loop_fn=run_loop,
    )


if __name__ == "__main__":
    raise SystemExit(main())
