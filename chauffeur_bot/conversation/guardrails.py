"""
Inbound event guardrails, run before any event reaches the state machine.

Three independent layers, each checking a different concern:
1. DuplicateEventGuardrail: drops redelivered events within the dedup window
2. RateLimitGuardrail: caps messages per customer per minute
3. InputLengthGuardrail: rejects oversized free text

These are composed into a GuardrailPipeline that the router consults first.
"""

import logging
import time
from collections import OrderedDict, deque
from dataclasses import dataclass
from typing import Callable, Optional

from chauffeur_bot.config import settings
from chauffeur_bot.schemas.message_schema import InboundEvent
from chauffeur_bot.utils import normalize_phone

logger = logging.getLogger(__name__)

RATE_WINDOW_SEC = 60.0


@dataclass
class GuardrailResult:
    """Outcome of a single guardrail check."""
    passed: bool
    violation_type: Optional[str] = None
    message: Optional[str] = None
    severity: str = "warning"  # "warning" | "drop" | "block"


class DuplicateEventGuardrail:
    """Remembers event ids for the dedup window; a repeat is dropped silently."""

    def __init__(
        self,
        window_sec: float = settings.guardrails.dedup_window_sec,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.window_sec = window_sec
        self._clock = clock
        self._seen: OrderedDict[str, float] = OrderedDict()

    def _evict(self, now: float) -> None:
        while self._seen:
            event_id, seen_at = next(iter(self._seen.items()))
            if now - seen_at < self.window_sec:
                break
            del self._seen[event_id]

    def check_event(self, event: InboundEvent) -> GuardrailResult:
        now = self._clock()
        self._evict(now)
        if event.event_id in self._seen:
            logger.info("Duplicate event %s dropped", event.event_id)
            return GuardrailResult(
                passed=False,
                violation_type="duplicate_event",
                message=f"Event {event.event_id} already processed.",
                severity="drop",
            )
        self._seen[event.event_id] = now
        return GuardrailResult(passed=True)


class RateLimitGuardrail:
    """Sliding one-minute window of message timestamps per customer."""

    def __init__(
        self,
        max_per_minute: int = settings.guardrails.max_messages_per_minute,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_per_minute = max_per_minute
        self._clock = clock
        self._history: dict[str, deque] = {}
        self._last_prune = self._clock()

    def _prune(self, now: float) -> None:
        """Forget customers whose whole history has left the window."""
        idle = [key for key, history in self._history.items() if now - history[-1] >= RATE_WINDOW_SEC]
        for key in idle:
            del self._history[key]
        self._last_prune = now

    def check_rate(self, customer_key: str) -> GuardrailResult:
        now = self._clock()
        if now - self._last_prune >= RATE_WINDOW_SEC:
            self._prune(now)
        history = self._history.setdefault(customer_key, deque())
        while history and now - history[0] >= RATE_WINDOW_SEC:
            history.popleft()
        if len(history) >= self.max_per_minute:
            logger.warning("Rate limit hit for %s (%d/min)", customer_key, len(history))
            return GuardrailResult(
                passed=False,
                violation_type="rate_limited",
                message="You're sending messages too quickly. Please wait a moment and try again.",
                severity="block",
            )
        history.append(now)
        return GuardrailResult(passed=True)


class InputLengthGuardrail:
    def __init__(self, max_length: int = settings.guardrails.max_input_length) -> None:
        self.max_length = max_length

    def check_length(self, text: Optional[str]) -> GuardrailResult:
        if text is not None and len(text) > self.max_length:
            return GuardrailResult(
                passed=False,
                violation_type="input_too_long",
                message=f"That message is too long. Please keep it under {self.max_length} characters.",
                severity="block",
            )
        return GuardrailResult(passed=True)


class GuardrailPipeline:
    """Composes all inbound guardrails; the first failure wins."""

    def __init__(
        self,
        dedup: Optional[DuplicateEventGuardrail] = None,
        rate_limit: Optional[RateLimitGuardrail] = None,
        input_length: Optional[InputLengthGuardrail] = None,
    ) -> None:
        self.dedup = dedup or DuplicateEventGuardrail()
        self.rate_limit = rate_limit or RateLimitGuardrail()
        self.input_length = input_length or InputLengthGuardrail()

    def check_event(self, event: InboundEvent) -> list[GuardrailResult]:
        """Failed checks for the event, in evaluation order. Empty means proceed."""
        duplicate = self.dedup.check_event(event)
        if not duplicate.passed:
            return [duplicate]
        results = [
            self.rate_limit.check_rate(normalize_phone(event.customer_key)),
            self.input_length.check_length(event.text),
        ]
        return [r for r in results if not r.passed]
