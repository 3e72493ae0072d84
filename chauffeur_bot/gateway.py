"""
Messaging gateway contract and a console implementation.

The production transport (WhatsApp) lives outside this package; it turns
platform messages into ``InboundEvent`` objects and renders each
``OutboundPrompt`` it is asked to send. ``ConsoleGateway`` renders prompts
as plain text for the demo and records them for inspection.
"""

import logging
from typing import Callable, Protocol

from chauffeur_bot.schemas.message_schema import OutboundPrompt, PromptKind

logger = logging.getLogger(__name__)


class MessagingGateway(Protocol):
    async def send(self, customer_key: str, prompt: OutboundPrompt) -> None:
        ...


def render_text(prompt: OutboundPrompt) -> str:
    """Plain-text rendering of a prompt, with numbered options for menus."""
    parts: list[str] = []
    if prompt.header:
        parts.append(f"== {prompt.header} ==")
    parts.append(prompt.body)
    if prompt.kind != PromptKind.TEXT and prompt.options:
        parts.append("")
        for index, option in enumerate(prompt.options, start=1):
            line = f"  {index}. {option.title}"
            if option.description:
                line += f" ({option.description})"
            parts.append(line)
    if prompt.footer:
        parts.append(f"-- {prompt.footer}")
    return "\n".join(parts)


class ConsoleGateway:
    """Writes rendered prompts to an output function and keeps a transcript."""

    def __init__(self, output: Callable[[str], None] = print) -> None:
        self._output = output
        self.sent: list[tuple[str, OutboundPrompt]] = []

    async def send(self, customer_key: str, prompt: OutboundPrompt) -> None:
        self.sent.append((customer_key, prompt))
        logger.debug("Sending %s prompt to %s", prompt.kind.value, customer_key)
        self._output(f"\nBOT -> {customer_key}\n{render_text(prompt)}")

    def last_options(self) -> list[str]:
        """Option ids of the most recent menu sent, for resolving numbered replies."""
        for _, prompt in reversed(self.sent):
            if prompt.options:
                return [option.id for option in prompt.options]
        return []
