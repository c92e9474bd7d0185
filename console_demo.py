"""
Offline console demo - runs help desk conversations without any external services.

This drives the real orchestrator (gateway, router, dialog manager,
breaker registry, handoff controller) with the in-memory connectors. No
NLU service, no ticketing backend, no network calls.

Usage:
    python console_demo.py
    python console_demo.py --scenario printer
    python console_demo.py --scenario outage
"""

import argparse
import asyncio
from typing import Optional

from helpdesk.app import Orchestrator
from helpdesk.config import AppConfig, load_config
from helpdesk.connectors import InMemoryTicketSystem
from helpdesk.logging_context import configure_logging
from helpdesk.schemas.connector_schema import TicketReceipt, TicketRequest
from helpdesk.schemas.envelope_schema import Channel

BLUE = "\033[94m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
RED = "\033[91m"
DIM = "\033[2m"
RESET = "\033[0m"
BOLD = "\033[1m"


class FlakyTicketSystem(InMemoryTicketSystem):
    """Ticket backend that refuses requests until ``restore()`` is called."""

    def __init__(self) -> None:
        super().__init__()
        self.available = False

    def restore(self) -> None:
        self.available = True

    async def create_ticket(self, request: TicketRequest) -> TicketReceipt:
        if not self.available:
            raise ConnectionError("ticketing backend unreachable")
        return await super().create_ticket(request)


class ConsoleSession:
    """Plays a conversation through the orchestrator in the terminal."""

    # Pre-scripted scenarios for --scenario flag
    SCENARIOS: dict[str, list[str]] = {
        "password": [
            "hello, good morning",
            "I forgot my password and I'm locked out",
            "it's for my email",
            "thanks, that's all",
        ],
        "printer": [
            "the printer is broken",
            "yes",
            "floor 3",
            "cheers, thank you",
        ],
        "handoff": [
            "talk to agent",
            "hello again",
        ],
        "outage": [
            "printer jam on floor 2, printing nothing",
            "printer on level 4 has no toner for printing",
            "printer in room 12 is printing blank pages",
        ],
    }

    MAX_INPUT_LENGTH = 500

    def __init__(self, config: AppConfig, user_id: str = "console-user") -> None:
        self.config = config
        self.user_id = user_id
        self.tickets: Optional[FlakyTicketSystem] = None

    def _build(self, scenario: Optional[str]) -> Orchestrator:
        if scenario == "outage":
            self.tickets = FlakyTicketSystem()
            return Orchestrator(self.config, tickets=self.tickets)
        return Orchestrator(self.config)

    def bot_say(self, text: str) -> None:
        print(f"{GREEN}{BOLD}[{self.config.bot_name}]{RESET} {GREEN}{text}{RESET}")

    def system_log(self, text: str) -> None:
        print(f"{DIM}  >> {text}{RESET}")

    async def send(self, orchestrator: Orchestrator, text: str) -> None:
        reply = await orchestrator.handle({"userId": self.user_id, "text": text}, Channel.API)
        if reply.get("type") == "error":
            print(f"{YELLOW}{BOLD}[{self.config.bot_name}]{RESET} {YELLOW}{reply['text']}{RESET}")
            return
        self.bot_say(reply["text"])
        self.system_log(f"State: {reply.get('state')}")

    async def run_scenario(self, scenario: str) -> None:
        """Auto-play a pre-scripted scenario for demo purposes."""
        steps = self.SCENARIOS.get(scenario)
        if not steps:
            print(f"{RED}Unknown scenario: {scenario}{RESET}")
            return

        print()
        print(f"{BOLD}{'=' * 60}{RESET}")
        print(f"{BOLD}  HELP DESK ORCHESTRATOR - Scenario: {scenario}{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")

        async with self._build(scenario) as orchestrator:
            for step in steps:
                print(f"\n{BLUE}[User] {RESET}{step}")
                await self.send(orchestrator, step)

            if scenario == "outage" and self.tickets is not None:
                for event in orchestrator.breaker_events:
                    self.system_log(
                        f"Breaker '{event.dependency}': {event.from_state.value} -> {event.to_state.value}"
                    )
                self.system_log(f"Tickets waiting in outbox: {len(orchestrator.outbox.pending)}")
                self.tickets.restore()
                receipts = await orchestrator.flush_tickets()
                created = [r.ticket_id for r in receipts if r.ticket_id]
                self.system_log(f"Ticket backend restored; flushed: {created or 'none (breaker still open)'}")

            print(f"\n{BOLD}{'=' * 60}{RESET}")
            print(f"{BOLD}  Scenario '{scenario}' complete.{RESET}")
            print(f"{DIM}  Human queue entries: {len(orchestrator.human_queue)}{RESET}")
            print(f"{DIM}  Breakers: {orchestrator.health()['breakers']}{RESET}")
            print(f"{BOLD}{'=' * 60}{RESET}")

    async def run(self) -> None:
        print()
        print(f"{BOLD}{'=' * 60}{RESET}")
        print(f"{BOLD}  HELP DESK ORCHESTRATOR - Console Demo{RESET}")
        print(f"{BOLD}  Type 'quit' to exit{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")

        async with self._build(None) as orchestrator:
            while True:
                user_input = input(f"\n{BLUE}[User] {RESET}").strip()
                if not user_input:
                    continue
                if user_input.lower() in ("quit", "exit", "q"):
                    print(f"\n{DIM}Session ended.{RESET}")
                    return
                if len(user_input) > self.MAX_INPUT_LENGTH:
                    self.bot_say("That was quite long. Could you keep it brief for me?")
                    continue
                await self.send(orchestrator, user_input)


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Offline console demo")
    parser.add_argument(
        "--scenario",
        choices=sorted(ConsoleSession.SCENARIOS),
        default=None,
        help="Auto-play a pre-scripted scenario instead of interactive mode",
    )
    parser.add_argument("--log-level", default="WARNING", help="Logging level for the demo")
    args = parser.parse_args(argv)

    configure_logging(args.log_level)
    session = ConsoleSession(load_config())
    if args.scenario:
        asyncio.run(session.run_scenario(args.scenario))
    else:
        asyncio.run(session.run())


if __name__ == "__main__":
    main()
