"""
Help desk orchestrator entry point.

Reads channel events as JSON lines from stdin and writes the rendered
replies to stdout, or starts the offline console demo.

Usage:
    Event stream:  python main.py serve < events.jsonl
    Console mode:  python main.py console [--scenario printer]

Each input line is ``{"channel": "web", "event": {...}}``.
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Optional

from helpdesk.app import Orchestrator
from helpdesk.config import load_config
from helpdesk.logging_context import configure_logging

logger = logging.getLogger(__name__)


async def _serve(orchestrator: Orchestrator) -> None:
    """Process one JSON event per stdin line until EOF."""
    loop = asyncio.get_running_loop()
    async with orchestrator:
        while True:
            line = await loop.run_in_executor(None, sys.stdin.readline)
            if not line:
                break
            line = line.strip()
            if not line:
                continue
            try:
                item = json.loads(line)
                channel, event = item["channel"], item.get("event")
            except (json.JSONDecodeError, KeyError, TypeError) as exc:
                logger.warning("Skipping unreadable input line: %s", exc)
                continue
            reply = await orchestrator.handle(event, channel)
            print(json.dumps(reply), flush=True)


def _run_serve_mode() -> None:
    config = load_config()
    configure_logging(config.log_level)
    asyncio.run(_serve(Orchestrator(config)))


def _run_console_mode(scenario: Optional[str]) -> None:
    """Start the offline console demo."""
    from console_demo import main as console_main

    console_main(["--scenario", scenario] if scenario else [])


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Help desk conversation orchestrator")
    sub = parser.add_subparsers(dest="mode")
    sub.add_parser("serve", help="Read JSON-line channel events from stdin")
    console = sub.add_parser("console", help="Run the offline console demo")
    console.add_argument("--scenario", default=None)
    args = parser.parse_args(argv)

    if args.mode == "console":
        _run_console_mode(args.scenario)
    else:
        _run_serve_mode()


if __name__ == "__main__":
    main()
