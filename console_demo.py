"""
Offline console demo: runs full booking conversations without any API keys.

Events go through the real router, state machine, guardrails and rate-card
pricing. Sessions live in memory and free text is read by the keyword
extractor, so there are no network calls.

Input forms:
    plain text                 -> text message
    <id>:<value>               -> menu selection (e.g. vehicleType:SUV, action:confirm)
    loc:<name>|<lat>|<lng>     -> shared location
    a bare number              -> Nth option of the last menu (interactive mode)

Usage:
    python console_demo.py
    python console_demo.py --scenario transfer
    python console_demo.py --scenario hourly
    python console_demo.py --scenario edit
"""

import argparse
import asyncio
import itertools
import sys
from typing import Optional

from chauffeur_bot.app import build_router
from chauffeur_bot.config import settings
from chauffeur_bot.conversation.router import ConversationRouter
from chauffeur_bot.conversation.state_machine import phase_of
from chauffeur_bot.gateway import ConsoleGateway
from chauffeur_bot.inference import KeywordFieldExtractor
from chauffeur_bot.schemas.booking_schema import FieldName, Location
from chauffeur_bot.schemas.message_schema import EventKind, InboundEvent
from chauffeur_bot.storage import InMemoryBookingStore

BLUE = "\033[94m"
GREEN = "\033[92m"
RED = "\033[91m"
DIM = "\033[2m"
RESET = "\033[0m"
BOLD = "\033[1m"

SELECTION_PREFIXES = frozenset({"action", "edit"} | {name.value for name in FieldName})


class ConsoleSession:
    """Plays a booking conversation for one customer in the terminal."""

    SCENARIOS: dict[str, list[str]] = {
        "transfer": [
            "book",
            "bookingType:Transfer",
            "vehicleType:Sedan",
            "Sarah Khan",
            "loc:Dubai Mall|25.1972|55.2796",
            "loc:DXB Terminal 3|25.2487|55.3523",
            "luggageInfo:2",
            "3 passengers",
            "specialRequests:Water Bottle",
            "action:confirm",
        ],
        "hourly": [
            "I need a chauffeur for 4 hours in an SUV, my name is Omar Ali",
            "Atlantis The Palm",
            "2 bags",
            "skip",
            "none",
            "confirm",
        ],
        "edit": [
            "book",
            "bookingType:Transfer",
            "vehicleType:Sedan",
            "Lena Fischer",
            "Burj Al Arab",
            "Dubai Marina",
            "skip",
            "2",
            "none",
            "action:edit",
            "edit:vehicleType",
            "vehicleType:Luxury",
            "action:confirm",
        ],
    }

    def __init__(self, customer_key: str = "+971501234567") -> None:
        self.customer_key = customer_key
        self.gateway = ConsoleGateway(output=self.bot_say)
        self.router: Optional[ConversationRouter] = None
        self._event_ids = itertools.count(1)

    def bot_say(self, text: str) -> None:
        print(f"{GREEN}{text}{RESET}")

    def system_log(self, text: str) -> None:
        print(f"{DIM}  >> {text}{RESET}")

    async def _ensure_router(self) -> ConversationRouter:
        if self.router is None:
            self.router = await build_router(
                gateway=self.gateway,
                booking_store=InMemoryBookingStore(),
                inference=KeywordFieldExtractor(),
            )
        return self.router

    def _to_event(self, raw: str, interactive: bool = False) -> InboundEvent:
        event_id = f"console-{next(self._event_ids)}"
        base = {"event_id": event_id, "customer_key": self.customer_key}

        if raw.startswith("loc:"):
            name, _, coords = raw[4:].partition("|")
            lat, _, lng = coords.partition("|")
            location = Location(
                name=name.strip(),
                latitude=float(lat) if lat else None,
                longitude=float(lng) if lng else None,
            )
            return InboundEvent(kind=EventKind.LOCATION_SHARE, location=location, **base)

        if interactive and raw.isdigit():
            options = self.gateway.last_options()
            index = int(raw) - 1
            if 0 <= index < len(options):
                return InboundEvent(kind=EventKind.LIST_SELECTION, selection_id=options[index], **base)

        prefix, sep, _ = raw.partition(":")
        if sep and prefix in SELECTION_PREFIXES:
            return InboundEvent(kind=EventKind.LIST_SELECTION, selection_id=raw, **base)
        return InboundEvent(kind=EventKind.TEXT, text=raw, **base)

    async def process_input(self, raw: str, interactive: bool = False) -> None:
        router = await self._ensure_router()
        await router.dispatch(self._to_event(raw, interactive))
        session = await router.machine.get_active_session(self.customer_key)
        if session is None:
            self.system_log("No active session")
        else:
            self.system_log(f"{session.booking_id}: {phase_of(session).value}")

    def _banner(self, title: str) -> None:
        print()
        print(f"{BOLD}{'=' * 60}{RESET}")
        print(f"{BOLD}  CHAUFFEUR BOOKING ASSISTANT - {title}{RESET}")
        print(f"{BOLD}  Business: {settings.business.name}{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")

    async def run_scenario(self, scenario: str) -> None:
        """Auto-play a pre-scripted scenario for demo purposes."""
        steps = self.SCENARIOS.get(scenario)
        if not steps:
            print(f"{RED}Unknown scenario: {scenario}{RESET}")
            return

        self._banner(f"Scenario: {scenario}")
        for step in steps:
            print(f"\n{BLUE}[Customer] {RESET}{step}")
            await self.process_input(step)
        await self.router.machine.store.flush()
        print(f"\n{BOLD}  Scenario '{scenario}' complete.{RESET}")

    async def run(self) -> None:
        self._banner("Console Demo")
        print(f"{DIM}  Type 'book' to start, a number to pick a menu option, 'quit' to exit{RESET}")
        while True:
            raw = (await asyncio.to_thread(input, f"\n{BLUE}[Customer] {RESET}")).strip()
            if not raw:
                continue
            if raw.lower() in ("quit", "exit", "q"):
                print(f"\n{DIM}Session ended.{RESET}")
                return
            await self.process_input(raw, interactive=True)


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Chauffeur booking console demo")
    parser.add_argument("--scenario", choices=sorted(ConsoleSession.SCENARIOS))
    parser.add_argument("--customer", default="+971501234567")
    args = parser.parse_args(argv)

    session = ConsoleSession(customer_key=args.customer)
    if args.scenario:
        asyncio.run(session.run_scenario(args.scenario))
    else:
        try:
            asyncio.run(session.run())
        except (KeyboardInterrupt, EOFError):
            print(f"\n{DIM}Session ended.{RESET}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
