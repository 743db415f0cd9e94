"""Command line entry point: ``archrun run <component-name>``."""

from __future__ import annotations

import argparse
import dataclasses
import json
import sys
from pathlib import Path
from typing import Callable, List, Optional

from .committers import make_committer
from .config import COMMITTERS, Settings
from .delivery import DeliveryRunner
from .errors import AmbiguousMatch, ArchRunError, NotFound
from .models import DeliveryStep, MatchCandidate
from .workspace import Workspace
from .arch_logging import setup_logging


EXIT_OK = 0
EXIT_HALTED = 1
EXIT_NEEDS_INPUT = 2


def prompt_confirmer(
    read: Callable[[str], str] = input,
    write: Callable[[str], None] = print,
) -> Callable[[str, List[MatchCandidate]], Optional[str]]:
    """Confirmer asking on the terminal; an empty answer declines."""

    def confirm(requested: str, candidates: List[MatchCandidate]) -> Optional[str]:
        write(f"'{requested}' is not an exact component name. Candidates:")
        for number, candidate in enumerate(candidates, start=1):
            write(f"  {number}. {candidate.name} (score {candidate.score:.2f}, matched '{candidate.matched_on}')")
        answer = read("Pick a number or a name (empty to cancel): ").strip()
        if not answer:
            return None
        if answer.isdigit() and 1 <= int(answer) <= len(candidates):
            return candidates[int(answer) - 1].name
        return answer

    return confirm


def unit_limit(max_units: Optional[int]) -> Optional[Callable[[DeliveryStep], bool]]:
    if max_units is None:
        return None
    delivered = []

    def should_continue(step: DeliveryStep) -> bool:
        if len(delivered) >= max_units:
            return False
        delivered.append(step.unit.unit_id)
        return True

    return should_continue


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="archrun",
        description="Deliver a component from the architecture document as ordered commits",
    )
    parser.add_argument("--root", type=Path, default=None, help="Workspace root (default: ARCHRUN_PROJECT_ROOT or cwd)")

    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Resolve, plan and deliver a component")
    run_parser.add_argument("component", help="Component name as written in the design artifact")
    run_parser.add_argument("--confirm", default=None, help="Accept this candidate without prompting")
    run_parser.add_argument("--committer", choices=COMMITTERS, default=None, help="Override ARCHRUN_COMMITTER")
    run_parser.add_argument("--max-units", type=int, default=None, help="Stop after this many units")
    run_parser.add_argument("--no-tests", action="store_true", help="Skip the tests tier")
    run_parser.add_argument("--non-interactive", action="store_true", help="Never prompt; halt on suggestions")

    plan_parser = subparsers.add_parser("plan", help="Show the sequenced commits without delivering")
    plan_parser.add_argument("component")
    plan_parser.add_argument("--confirm", default=None)

    status_parser = subparsers.add_parser("status", help="Show the lifecycle state of a component")
    status_parser.add_argument("component")

    locate_parser = subparsers.add_parser("locate", help="Locate the design, status and readme artifacts")
    locate_parser.add_argument("--honor-ignore", action="store_true", help="Skip files excluded by .gitignore")

    subparsers.add_parser("list", help="List catalog components")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the archrun command."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = Settings.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_HALTED
    if getattr(args, "no_tests", False):
        settings = dataclasses.replace(settings, include_tests=False)
    setup_logging(settings.log_level, settings.log_file)

    root = args.root or settings.project_root or Path.cwd()
    try:
        committer = None
        if getattr(args, "committer", None):
            committer = make_committer(args.committer, root)
        workspace = Workspace(root, settings=settings, committer=committer)

        if args.command == "run":
            confirmer = None if args.non_interactive else prompt_confirmer()
            if args.confirm:
                # An explicit pick replaces the prompt.
                def confirmer(requested, candidates):
                    return args.confirm
            report = DeliveryRunner(workspace).deliver(
                args.component,
                confirmer=confirmer,
                should_continue=unit_limit(args.max_units),
            )
            for item in report["delivered"]:
                print(item["commit"])
            if report["cancelled"]:
                print(f"Stopped with {len(report['remaining'])} units remaining; run again to resume.")
            print(f"{report['component']}: {report['state']}")

        elif args.command == "plan":
            _, plan = workspace.preview(args.component, confirm=args.confirm)
            for step in plan.steps:
                print(f"{step.index + 1:>3}. {step.commit.header}")

        elif args.command == "status":
            print(json.dumps(workspace.component_status(args.component), indent=2))

        elif args.command == "locate":
            locations = workspace.locate_documents(include_ignored=not args.honor_ignore)
            print(json.dumps(locations.to_dict(), indent=2))

        elif args.command == "list":
            for component in workspace.list_components():
                print(f"{component['name']}: {component['state']}")

    except (NotFound, AmbiguousMatch) as e:
        print(str(e), file=sys.stderr)
        return EXIT_NEEDS_INPUT
    except (ArchRunError, ValueError, RuntimeError) as e:
        print(f"Halted: {e}", file=sys.stderr)
        return EXIT_HALTED

    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
