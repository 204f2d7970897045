"""
Maintenance release commands for the perennial CLI.

Each handler takes parsed arguments and returns an exit code.
"""

from __future__ import annotations

import argparse
import json

from perennial.common.release_branch import ReleaseBranch
from perennial.core.utils import log


def _release_branch(args: argparse.Namespace) -> ReleaseBranch:
    """Find REPO BRANCH among the maintenance branches, else assume an unreleased phet branch."""
    for branch in ReleaseBranch.get_all_maintenance_branches():
        if branch.repo == args.repo and branch.branch == args.branch:
            return branch
    log.warning(f"{args.repo} {args.branch} is not a known maintenance branch, assuming unreleased phet")
    return ReleaseBranch(args.repo, args.branch, ("phet",), False)


def cmd_maintenance_branches(args: argparse.Namespace) -> int:
    """List every release branch that is a candidate for maintenance."""
    branches = ReleaseBranch.get_all_maintenance_branches()

    if args.json:
        print(json.dumps([branch.serialize() for branch in branches], indent=2))
        return 0

    log.header(f"Maintenance branches ({len(branches)})")
    for branch in branches:
        released = "released" if branch.is_released else "unreleased"
        log.table_row(f"{branch.repo} {branch.branch}", f"{','.join(branch.brands)} ({released})", col1_width=40)
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    branch = _release_branch(args)
    log.header(f"Status: {branch}")
    messages = branch.get_status()
    if not messages:
        log.success("No issues found")
    for message in messages:
        if message.startswith("[ERROR]"):
            log.error(message[len("[ERROR] "):])
        elif message.startswith("[WARNING]"):
            log.warning(message[len("[WARNING] "):])
        else:
            log.info(message)
    return 1 if any(m.startswith("[ERROR]") for m in messages) else 0


def cmd_check(args: argparse.Namespace) -> int:
    """Smoke test the unbuilt sim, or the built one with --built."""
    branch = _release_branch(args)
    log.header(f"Checking {'built' if args.built else 'unbuilt'} {branch}")
    failure = branch.check_built() if args.built else branch.check_unbuilt()
    if failure:
        log.error(failure)
        return 1
    log.success("Sim loaded without errors")
    return 0


def cmd_redeploy(args: argparse.Namespace) -> int:
    branch = _release_branch(args)
    log.header(f"Redeploying {branch} to production")
    branch.redeploy_production(locales=args.locales)
    log.success("Build request sent")
    return 0


def cmd_divergence(args: argparse.Namespace) -> int:
    """Show where the release branch split from main."""
    branch = ReleaseBranch(args.repo, args.branch, ("phet",), True)
    sha = branch.get_diverging_sha()
    timestamp = branch.get_diverging_timestamp()
    log.table_row("Diverging commit", sha)
    log.table_row("Timestamp (ms)", str(timestamp))
    return 0
