"""InfraLayer command line entry point."""

from __future__ import annotations

import argparse
import sys
from typing import Sequence

from infralayer import __version__
from infralayer.config import get_settings
from infralayer.logging import configure_logging


_MEMORY_PROVIDER_NOTE = (
    "The default 'memory' provider keeps objects only while one command runs, so "
    "destroy and refresh in a later run see an empty cloud. Set INFRALAYER_PROVIDER "
    "to a registered provider that persists objects."
)


def _add_common(parser: argparse.ArgumentParser, parallel: bool = False) -> None:
    parser.add_argument("--state", help="State file path (default: INFRALAYER_STATE_PATH)")
    parser.add_argument("--output", choices=["text", "json"], default="text", help="Output format")
    if parallel:
        parser.add_argument(
            "--parallelism",
            type=int,
            help="Maximum concurrent provider operations (default: INFRALAYER_MAX_PARALLELISM)",
        )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="infralayer", description="InfraLayer CLI", epilog=_MEMORY_PROVIDER_NOTE
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command")

    plan_parser = subparsers.add_parser(
        "plan", help="Preview changes (dry-run)", epilog=_MEMORY_PROVIDER_NOTE
    )
    plan_parser.add_argument("declaration", help="Path to declaration YAML file")
    plan_parser.add_argument(
        "-v", "--verbose", action="store_true", help="Also list unchanged resources"
    )
    _add_common(plan_parser)

    apply_parser = subparsers.add_parser(
        "apply", help="Plan and apply a declaration", epilog=_MEMORY_PROVIDER_NOTE
    )
    apply_parser.add_argument("declaration", help="Path to declaration YAML file")
    _add_common(apply_parser, parallel=True)

    destroy_parser = subparsers.add_parser(
        "destroy", help="Delete every managed resource", epilog=_MEMORY_PROVIDER_NOTE
    )
    _add_common(destroy_parser, parallel=True)

    refresh_parser = subparsers.add_parser(
        "refresh", help="Re-read resources into state", epilog=_MEMORY_PROVIDER_NOTE
    )
    _add_common(refresh_parser)

    state_parser = subparsers.add_parser("state", help="Show recorded state")
    _add_common(state_parser)

    return parser


def main(argv: Sequence[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    settings = get_settings()
    configure_logging(settings.log_level, settings.log_format)

    if args.command == "plan":
        from infralayer.cli.plan import plan_command

        sys.exit(
            plan_command(
                declaration=args.declaration,
                state_path=args.state,
                output_format=args.output,
                verbose=args.verbose,
            )
        )

    if args.command == "apply":
        from infralayer.cli.apply import apply_command

        sys.exit(
            apply_command(
                declaration=args.declaration,
                state_path=args.state,
                parallelism=args.parallelism,
                output_format=args.output,
            )
        )

    if args.command == "destroy":
        from infralayer.cli.apply import destroy_command

        sys.exit(
            destroy_command(
                state_path=args.state, parallelism=args.parallelism, output_format=args.output
            )
        )

    if args.command == "refresh":
        from infralayer.cli.state import refresh_command

        sys.exit(refresh_command(state_path=args.state, output_format=args.output))

    if args.command == "state":
        from infralayer.cli.state import state_command

        sys.exit(state_command(state_path=args.state, output_format=args.output))


if __name__ == "__main__":
    main()
