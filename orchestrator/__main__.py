"""
Command-line entry point.

Usage:
    python -m orchestrator run "add a /health endpoint" --workspace ./project
    python -m orchestrator run "..." --max-attempts 5 --entry "python main.py"
    python -m orchestrator show --workspace ./project

Exit codes for `run`: 0 completed, 1 abandoned, 2 clarification needed.
"""

import argparse
import asyncio
import logging
import shlex
import sys
from pathlib import Path

from blueprint.store import BlueprintStore
from framework.streaming import stream_events_for_ui
from orchestrator.config import load_config
from orchestrator.models import COMPLETED
from orchestrator.session import build_session

logger = logging.getLogger(__name__)


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="orchestrator",
        description="Plan, apply, verify and repair changes to a local project.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Carry out one change request")
    run.add_argument("request", help="What to change, in plain language")
    run.add_argument("--workspace", default=".", help="Project directory (default: .)")
    run.add_argument("--config", default=None, help="YAML config overlay")
    run.add_argument("--max-attempts", type=int, default=None)
    run.add_argument("--entry", default=None, help="Command the runtime console runs")
    run.add_argument("--verbose", action="store_true", help="Include lifecycle events")

    show = sub.add_parser("show", help="Print the project blueprint")
    show.add_argument("--workspace", default=".")
    show.add_argument("--config", default=None)

    return parser.parse_args(argv)


async def _run(args: argparse.Namespace) -> int:
    config = load_config(
        args.config,
        max_attempts=args.max_attempts,
        entry_command=shlex.split(args.entry) if args.entry else None,
    )
    session = build_session(args.workspace, config=config)

    async def print_timeline() -> None:
        async with session.channel.subscribe() as queue:

            async def drain():
                while True:
                    item = await queue.get()
                    if item is None:
                        return
                    yield item

            async for line in stream_events_for_ui(drain(), include_internal=args.verbose):
                print(line, flush=True)

    printer = asyncio.create_task(print_timeline())
    await asyncio.sleep(0)  # let the printer subscribe before events flow
    try:
        state = await session.run(args.request)
    finally:
        await session.channel.close()
        await printer

    if state.get("clarification"):
        print(f"\nNeed more detail: {state['clarification']}")
        return 2
    if state["lifecycle"] == COMPLETED:
        print(f"\nCompleted after {state['attempts_made']} remediation attempts.")
        return 0
    print(f"\nAbandoned after {state['attempts_made']} attempts.")
    return 1


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    args = _parse_args(argv)

    if args.command == "show":
        config = load_config(args.config)
        store = BlueprintStore(Path(args.workspace) / config.blueprint_path)
        print(store.render_markdown(), end="")
        return 0

    return asyncio.run(_run(args))


if __name__ == "__main__":
    sys.exit(main())
