"""Rendering of booking prompts, menus and summaries for the messaging gateway."""

from typing import Optional

from chauffeur_bot.config import settings
from chauffeur_bot.conversation.field_schema import (
    VEHICLE_TYPES,
    get_definition,
    required_fields,
    step_number,
    total_steps,
)
from chauffeur_bot.pricing.fallback import get_rate_card
from chauffeur_bot.schemas.booking_schema import (
    NOT_SPECIFIED,
    BookingSession,
    BookingType,
    FareBreakdown,
    FieldName,
    FieldValue,
    Location,
)
from chauffeur_bot.schemas.message_schema import OutboundPrompt, PromptKind, PromptOption

GENERIC_ERROR = (
    "Sorry, an error occurred while processing your request. "
    "Please try again or type 'book' to start a new booking."
)


def option_id(field: FieldName, value: str) -> str:
    return f"{field.value}:{value}"


def _vehicle_options() -> list[PromptOption]:
    options = []
    for canonical in VEHICLE_TYPES.values():
        card = get_rate_card(canonical)
        options.append(PromptOption(
            id=option_id(FieldName.VEHICLE_TYPE, canonical),
            title=canonical,
            description=(
                f"{card.currency} {card.base_rate:g} base + {card.currency} {card.per_km_rate:g}/km"
                f" or {card.currency} {card.per_hour_rate:g}/hour"
            ),
        ))
    return options


FIELD_OPTIONS: dict[FieldName, list[PromptOption]] = {
    FieldName.BOOKING_TYPE: [
        PromptOption(
            id=option_id(FieldName.BOOKING_TYPE, BookingType.HOURLY.value),
            title="Hourly Booking",
            description="Book for multiple hours with flexible timing",
        ),
        PromptOption(
            id=option_id(FieldName.BOOKING_TYPE, BookingType.TRANSFER.value),
            title="Transfer Booking",
            description="Point-to-point transfer service",
        ),
    ],
    FieldName.VEHICLE_TYPE: _vehicle_options(),
    FieldName.LUGGAGE_INFO: [
        PromptOption(id=option_id(FieldName.LUGGAGE_INFO, "0"), title="0 pieces", description="No luggage"),
        PromptOption(id=option_id(FieldName.LUGGAGE_INFO, "1"), title="1 piece", description="Small bag or backpack"),
        PromptOption(id=option_id(FieldName.LUGGAGE_INFO, "2"), title="2 pieces", description="Small suitcase + handbag"),
        PromptOption(id=option_id(FieldName.LUGGAGE_INFO, "3"), title="3 pieces", description="Medium suitcase + 2 small bags"),
        PromptOption(id=option_id(FieldName.LUGGAGE_INFO, "4"), title="4 pieces", description="Large suitcase + 3 small bags"),
        PromptOption(id=option_id(FieldName.LUGGAGE_INFO, "5"), title="5+ pieces", description="Multiple large suitcases"),
    ],
    FieldName.PASSENGER_COUNT: [
        PromptOption(id=option_id(FieldName.PASSENGER_COUNT, "1"), title="1 passenger"),
        PromptOption(id=option_id(FieldName.PASSENGER_COUNT, "2"), title="2 passengers"),
        PromptOption(id=option_id(FieldName.PASSENGER_COUNT, "3"), title="3 passengers"),
    ],
    FieldName.SPECIAL_REQUESTS: [
        PromptOption(id=option_id(FieldName.SPECIAL_REQUESTS, "Water Bottle"), title="Water Bottle",
                     description="Complimentary water bottles"),
        PromptOption(id=option_id(FieldName.SPECIAL_REQUESTS, "Baby Seat"), title="Baby Seat",
                     description="Child safety seat"),
        PromptOption(id=option_id(FieldName.SPECIAL_REQUESTS, "Wheelchair Access"), title="Wheelchair Access",
                     description="Wheelchair accessible vehicle"),
        PromptOption(id=option_id(FieldName.SPECIAL_REQUESTS, "none"), title="No Special Requests",
                     description="Continue without special requests"),
    ],
}

# WhatsApp renders at most three reply buttons; longer option sets become lists.
BUTTON_FIELDS = frozenset({FieldName.PASSENGER_COUNT})


def format_value(value: Optional[FieldValue]) -> str:
    if value is None:
        return NOT_SPECIFIED
    if isinstance(value, Location):
        return value.address or value.name
    return str(value)


def render_field_prompt(session: BookingSession, field: FieldName) -> OutboundPrompt:
    """Prompt for one field, with "Step N/M" progress unless the field is being edited."""
    defn = get_definition(field)
    editing = session.editing is not None and session.editing.field == field
    if editing:
        header = f"Edit {defn.display_name}"
    else:
        header = (
            f"Step {step_number(field, session.booking_type)}/{total_steps(session.booking_type)}: "
            f"{defn.display_name}"
        )
    options = FIELD_OPTIONS.get(field)
    if not options:
        return OutboundPrompt.text(f"*{header}*\n\n{defn.prompt}")
    if field in BUTTON_FIELDS:
        return OutboundPrompt(
            kind=PromptKind.BUTTONS,
            header=header,
            body=defn.prompt,
            footer="Tap an option or type a number",
            options=options,
        )
    return OutboundPrompt(
        kind=PromptKind.LIST,
        header=header,
        body=defn.prompt,
        footer="Select an option or type your answer",
        options=options,
        button_text="Choose",
    )


def render_validation_error(message: str) -> OutboundPrompt:
    return OutboundPrompt.text(f"{message} Please try again.")


def format_fare(pricing: FareBreakdown) -> str:
    cur = pricing.currency
    lines = ["*Pricing Details:*", f"• Base Rate: {cur} {pricing.base_rate:g}"]
    if pricing.booking_type == BookingType.HOURLY:
        lines.append(f"• Per Hour: {cur} {pricing.per_hour_rate:g}")
        lines.append(f"• Hours: {pricing.hours}")
        lines.append(f"• Hourly Cost: {cur} {pricing.variable_price:g}")
    else:
        lines.append(f"• Per KM: {cur} {pricing.per_km_rate:g}")
        distance = f"{pricing.distance_km:g} km"
        if pricing.distance_estimated:
            distance += " (estimated)"
        lines.append(f"• Distance: {distance}")
        lines.append(f"• Distance Cost: {cur} {pricing.variable_price:g}")
    lines.append(f"• Subtotal: {cur} {pricing.subtotal:g}")
    if pricing.surge_multiplier > 1.0:
        lines.append(f"• Surge Multiplier: {pricing.surge_multiplier:g}x")
        if pricing.applied_factors:
            lines.append(f"• Applied: {', '.join(pricing.applied_factors)}")
    lines.append(f"• *Final Price: {cur} {pricing.final_price:.2f}*")
    if pricing.is_estimated:
        lines.append("")
        lines.append("_Note: estimated pricing. The final fare will be confirmed by our team._")
    return "\n".join(lines)


def format_booking_details(session: BookingSession) -> str:
    lines = [f"*Booking ID:* {session.booking_id}"]
    for field in required_fields(session.booking_type):
        lines.append(f"*{get_definition(field).display_name}:* {format_value(session.get(field))}")
    if session.pricing is not None:
        lines.append("")
        lines.append(format_fare(session.pricing))
    else:
        lines.append("")
        lines.append("_Pricing will be calculated after vehicle selection._")
    return "\n".join(lines)


def render_summary(session: BookingSession) -> OutboundPrompt:
    return OutboundPrompt(
        kind=PromptKind.LIST,
        header="Booking Confirmation",
        body=(
            f"{format_booking_details(session)}\n\n"
            "Please review your booking details and choose an action:"
        ),
        options=[
            PromptOption(id="action:confirm", title="Confirm & Pay",
                         description="Confirm booking and proceed to payment"),
            PromptOption(id="action:edit", title="Edit Details", description="Modify booking details"),
            PromptOption(id="action:cancel", title="Cancel Booking", description="Cancel this booking"),
        ],
        button_text="Select Action",
    )


def render_edit_menu(session: BookingSession) -> OutboundPrompt:
    options = [
        PromptOption(
            id=f"edit:{field.value}",
            title=get_definition(field).display_name,
            description=format_value(session.get(field))[:72],
        )
        for field in required_fields(session.booking_type)
    ]
    options.append(PromptOption(id="action:back", title="Back to Summary"))
    return OutboundPrompt(
        kind=PromptKind.LIST,
        header="Edit Booking",
        body="Which detail would you like to change?",
        options=options,
        button_text="Select Field",
    )


def render_confirmed(
    confirmation_id: str, booking_id: str, pricing: FareBreakdown, payment_link: Optional[str] = None
) -> OutboundPrompt:
    lines = [
        "*Booking Confirmed Successfully!*",
        "",
        f"*Confirmation ID:* {confirmation_id}",
        f"*Booking ID:* {booking_id}",
        f"*Total:* {pricing.currency} {pricing.final_price:.2f}",
    ]
    if pricing.is_estimated:
        lines.append("_Estimated fare; our team will confirm the final amount._")
    if payment_link:
        lines.extend(["", "*Payment Link:*", payment_link, "Payment expires in 24 hours."])
    lines.extend([
        "",
        f"Contact us at {settings.business.support_line} if you need assistance.",
        f"Thank you for choosing {settings.business.name}!",
    ])
    return OutboundPrompt.text("\n".join(lines))


def render_cancelled(booking_id: str) -> OutboundPrompt:
    return OutboundPrompt.text(
        f"Booking {booking_id} has been cancelled. Type 'book' whenever you'd like to start again."
    )


def render_welcome() -> OutboundPrompt:
    return OutboundPrompt(
        kind=PromptKind.BUTTONS,
        header=f"Welcome to {settings.business.name}",
        body="I can book a chauffeur for a transfer or by the hour. Ready to start?",
        options=[PromptOption(id="action:start", title="Start Booking")],
    )


def render_resume(session: BookingSession) -> OutboundPrompt:
    return OutboundPrompt.text(
        f"You already have booking {session.booking_id} in progress. Let's continue where we left off."
    )


def render_status(session: BookingSession) -> OutboundPrompt:
    return OutboundPrompt.text(f"*Current Booking*\n\n{format_booking_details(session)}")


def render_details_still_needed() -> OutboundPrompt:
    return OutboundPrompt.text(
        "A few details are still missing. You can confirm or edit the booking from the summary "
        "once they are in."
    )


def render_no_session() -> OutboundPrompt:
    return OutboundPrompt.text("You don't have an active booking. Type 'book' to start one.")


def render_unsupported_media() -> OutboundPrompt:
    return OutboundPrompt.text(
        "Sorry, I can only read text, voice notes, images and shared locations. "
        "Please type your booking details."
    )


def render_untranscribed_audio() -> OutboundPrompt:
    return OutboundPrompt.text(
        "Sorry, I couldn't understand that voice message. Please type your answer instead."
    )


def render_unread_image() -> OutboundPrompt:
    return OutboundPrompt.text(
        "Sorry, I couldn't find any booking details in that image. Please type your answer instead."
    )


def render_location_received(location: Location) -> OutboundPrompt:
    return OutboundPrompt.text(
        f"Thanks, I received the location {format_value(location)}. "
        "Type 'book' to start a booking with it."
    )
