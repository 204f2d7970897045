"""
Main CLI for the perennial tool.

Runs the build server and the maintenance release helpers.
"""

from __future__ import annotations

import argparse
import logging
import sys

from perennial import __version__
from perennial.core.utils import log


# =============================================================================
# Argument Parsing
# =============================================================================


def create_parser() -> argparse.ArgumentParser:
    """Create the main argument parser with all subcommands."""

    parser = argparse.ArgumentParser(
        prog="perennial",
        description="PhET release branch build and deploy tooling",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  build-server          Run the build and deploy server
  maintenance-branches  List release branches eligible for maintenance
  status                Advisory diagnostics for a release branch
  check                 Load a release branch sim in a browser
  redeploy              Ask the build server to redeploy a branch to production
  divergence            Show where a release branch split from main

Examples:
  perennial build-server --verbose
  perennial maintenance-branches --json
  perennial status molarity 1.4
  perennial check molarity 1.4 --built
  perennial redeploy molarity 1.4 --locales en,es
        """,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    parser.add_argument(
        "--no-color",
        action="store_true",
        help="Disable colored output",
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Show debug output, including subprocess commands",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        title="commands",
        metavar="<command>",
    )

    # --- build-server ---
    server_parser = subparsers.add_parser(
        "build-server",
        help="Run the build and deploy server",
        description="Listen for build requests and run them one at a time.",
    )
    server_parser.add_argument(
        "--config",
        help="Path to build-local.json (default: ~/.phet/build-local.json)",
    )

    # --- maintenance-branches ---
    branches_parser = subparsers.add_parser(
        "maintenance-branches",
        help="List release branches eligible for maintenance",
    )
    branches_parser.add_argument(
        "--json",
        action="store_true",
        help="Print serialized branches as JSON",
    )

    # --- commands taking REPO BRANCH ---
    def add_branch_arguments(sub: argparse.ArgumentParser) -> None:
        sub.add_argument("repo", help="Simulation repository, e.g. molarity")
        sub.add_argument("branch", help="Release branch, e.g. 1.4")

    status_parser = subparsers.add_parser("status", help="Advisory diagnostics for a release branch")
    add_branch_arguments(status_parser)

    check_parser = subparsers.add_parser("check", help="Load a release branch sim in a browser")
    add_branch_arguments(check_parser)
    check_parser.add_argument(
        "--built",
        action="store_true",
        help="Check the built phet sim instead of the unbuilt one",
    )

    redeploy_parser = subparsers.add_parser(
        "redeploy", help="Ask the build server to redeploy a branch to production"
    )
    add_branch_arguments(redeploy_parser)
    redeploy_parser.add_argument(
        "--locales",
        default="*",
        help="Comma separated locales to rebuild (default: all)",
    )

    divergence_parser = subparsers.add_parser("divergence", help="Show where a release branch split from main")
    add_branch_arguments(divergence_parser)

    return parser


# =============================================================================
# Main Entry Point
# =============================================================================


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.no_color:
        log.set_color(False)
    if args.verbose:
        log.set_verbose(True)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        return 0

    try:
        if args.command == "build-server":
            from perennial.build_server.server import cmd_build_server
            return cmd_build_server(args)

        elif args.command == "maintenance-branches":
            from perennial.maintenance_cmd import cmd_maintenance_branches
            return cmd_maintenance_branches(args)

        elif args.command == "status":
            from perennial.maintenance_cmd import cmd_status
            return cmd_status(args)

        elif args.command == "check":
            from perennial.maintenance_cmd import cmd_check
            return cmd_check(args)

        elif args.command == "redeploy":
            from perennial.maintenance_cmd import cmd_redeploy
            return cmd_redeploy(args)

        elif args.command == "divergence":
            from perennial.maintenance_cmd import cmd_divergence
            return cmd_divergence(args)

        else:
            log.error(f"Unknown command: {args.command}")
            return 1

    except KeyboardInterrupt:
        log.warning("\nInterrupted")
        return 130
    except Exception as e:
        log.error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
