from chauffeur_bot.conversation.guardrails import GuardrailPipeline
from chauffeur_bot.conversation.session_store import SessionStore
from chauffeur_bot.conversation.state_machine import (
    BookingStateMachine,
    BookingTrigger,
    ConfirmationResult,
    FieldUpdate,
    next_field,
    phase_of,
)

__all__ = [
    "BookingStateMachine",
    "BookingTrigger",
    "ConfirmationResult",
    "FieldUpdate",
    "next_field",
    "phase_of",
    "SessionStore",
    "GuardrailPipeline",
]
