"""
Booking assistant entry point.

The messaging transport runs as a separate process that delivers inbound
events; this entry point wires the assistant with the configured booking
store, pricing and language inference and feeds it events.

Usage:
    Console mode: python main.py console
    Replay mode:  python main.py replay events.jsonl

Replay reads one ``InboundEvent`` JSON object per line, dispatches each
through the router and prints the replies, using the configured store so
sessions survive between runs.
"""

import argparse
import asyncio
import contextlib
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from chauffeur_bot.app import build_router
from chauffeur_bot.config import settings
from chauffeur_bot.gateway import ConsoleGateway
from chauffeur_bot.schemas.message_schema import InboundEvent

logger = logging.getLogger(__name__)


async def replay(path: Path) -> int:
    """Dispatch every event in a JSON-lines file. Returns the number handled."""
    router = await build_router(gateway=ConsoleGateway())
    sweeper = asyncio.create_task(router.machine.run_sweeper())
    handled = 0
    try:
        for line_no, line in enumerate(path.read_text(encoding="utf-8").splitlines(), start=1):
            if not line.strip():
                continue
            try:
                event = InboundEvent.model_validate_json(line)
            except ValidationError as e:
                logger.error(f"Skipping malformed event on line {line_no}: {e}")
                continue
            await router.dispatch(event)
            handled += 1
    finally:
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper
        await router.machine.store.flush()
    logger.info("Replayed %d event(s) from %s", handled, path)
    return handled


def _run_console_mode() -> None:
    """Start the offline console demo (no API keys required)."""
    from console_demo import ConsoleSession

    asyncio.run(ConsoleSession().run())


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=f"{settings.business.name} booking assistant")
    sub = parser.add_subparsers(dest="mode", required=True)
    sub.add_parser("console", help="interactive offline demo")
    replay_parser = sub.add_parser("replay", help="dispatch events from a JSON-lines file")
    replay_parser.add_argument("events", type=Path)
    args = parser.parse_args(argv)

    if args.mode == "console":
        _run_console_mode()
        return 0
    asyncio.run(replay(args.events))
    return 0


if __name__ == "__main__":
    sys.exit(main())
