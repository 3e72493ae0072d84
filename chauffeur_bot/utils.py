"""Shared utilities used across the booking assistant."""

import re
from typing import Optional

SKIP_COMMANDS = frozenset(
    {"none", "skip", "na", "n/a", "not applicable", "no", "nothing"}
)


def normalize_phone(value: str) -> str:
    """Normalize a phone number by stripping everything except digits and a leading +.

    WhatsApp JIDs (``971501234567@s.whatsapp.net``) always carry the full
    international number, so they map to the same key as ``+971501234567``.

    Examples:
        >>> normalize_phone("+971 50 123 4567")
        '+971501234567'
        >>> normalize_phone("971501234567@s.whatsapp.net")
        '+971501234567'
    """
    value, jid, _ = value.strip().partition("@")
    digits = re.sub(r"[^\d]", "", value)
    if jid or value.startswith("+"):
        return "+" + digits
    return digits


def is_skip_command(text: str) -> bool:
    """True if the text is one of the recognized skip synonyms."""
    return text.lower().strip() in SKIP_COMMANDS


def extract_int(text: str, strip_words: Optional[str] = None) -> Optional[int]:
    """Return the first integer in ``text`` after removing unit words.

    Examples:
        >>> extract_int("3 hours", r"hours?|hrs?|h")
        3
        >>> extract_int("a few") is None
        True
    """
    lower = text.lower().strip()
    if strip_words:
        lower = re.sub(rf"\b({strip_words})\b", "", lower).strip()
    match = re.search(r"(\d+)", lower)
    if not match:
        return None
    return int(match.group(1))
