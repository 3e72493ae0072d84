"""Tests for prompt, menu and summary rendering."""

from chauffeur_bot.gateway import render_text
from chauffeur_bot.prompts.prompt_templates import (
    FIELD_OPTIONS,
    format_fare,
    format_value,
    render_confirmed,
    render_edit_menu,
    render_field_prompt,
    render_summary,
    render_validation_error,
)
from chauffeur_bot.pricing.fallback import compute_base_fare, fallback_fare, get_rate_card
from chauffeur_bot.schemas.booking_schema import (
    BookingSession,
    BookingType,
    EditState,
    FieldName,
    Location,
)
from chauffeur_bot.schemas.message_schema import OutboundPrompt, PromptKind, PromptOption
from tests.conftest import CUSTOMER


def transfer_session(**kwargs) -> BookingSession:
    return BookingSession(
        booking_id="BKTEST0001",
        customer_key=CUSTOMER,
        booking_type=BookingType.TRANSFER,
        fields={
            FieldName.BOOKING_TYPE: "Transfer",
            FieldName.VEHICLE_TYPE: "Sedan",
            FieldName.CUSTOMER_NAME: "Sarah Khan",
        },
        **kwargs,
    )


class TestFieldPrompts:
    def test_list_menu_with_step_header(self):
        prompt = render_field_prompt(transfer_session(), FieldName.VEHICLE_TYPE)
        assert prompt.kind == PromptKind.LIST
        assert prompt.header == "Step 2/8: Vehicle Type"
        assert [o.title for o in prompt.options] == ["Sedan", "SUV", "Luxury", "Van"]

    def test_vehicle_option_shows_rates(self):
        sedan = FIELD_OPTIONS[FieldName.VEHICLE_TYPE][0]
        assert sedan.id == "vehicleType:Sedan"
        assert sedan.description == "AED 120 base + AED 3/km or AED 25/hour"

    def test_passengers_use_buttons(self):
        prompt = render_field_prompt(transfer_session(), FieldName.PASSENGER_COUNT)
        assert prompt.kind == PromptKind.BUTTONS
        assert len(prompt.options) <= 3

    def test_text_prompt_for_free_form_field(self):
        prompt = render_field_prompt(transfer_session(), FieldName.PICKUP_LOCATION)
        assert prompt.kind == PromptKind.TEXT
        assert prompt.body.startswith("*Step 4/8: Pickup Location*")

    def test_edit_header(self):
        session = transfer_session(editing=EditState(field=FieldName.VEHICLE_TYPE))
        assert render_field_prompt(session, FieldName.VEHICLE_TYPE).header == "Edit Vehicle Type"

    def test_validation_error(self):
        prompt = render_validation_error("Please enter a valid number of passengers (1-20).")
        assert prompt.body == "Please enter a valid number of passengers (1-20). Please try again."


class TestFormatting:
    def test_format_value(self):
        assert format_value(None) == "Not specified"
        assert format_value(3) == "3"
        assert format_value(Location(name="Pin", address="Sheikh Zayed Rd")) == "Sheikh Zayed Rd"

    def test_transfer_fare(self):
        fare = compute_base_fare(get_rate_card("Sedan"), BookingType.TRANSFER, 25)
        text = format_fare(fare)
        assert "• Distance: 25 km" in text
        assert "*Final Price: AED 195.00*" in text
        assert "estimated" not in text

    def test_estimated_distance_disclosed(self):
        fare = compute_base_fare(get_rate_card("Sedan"), BookingType.TRANSFER, 25)
        text = format_fare(fare.model_copy(update={"distance_estimated": True}))
        assert "25 km (estimated)" in text
        assert "_Note: estimated pricing" in text

    def test_hourly_fallback_fare(self):
        text = format_fare(fallback_fare("SUV", BookingType.HOURLY, 3, 25, 2))
        assert "• Hours: 3" in text
        assert "• Hourly Cost: AED 105" in text
        assert "_Note: estimated pricing" in text

    def test_surge_lines(self):
        fare = compute_base_fare(get_rate_card("Sedan"), BookingType.TRANSFER, 10).model_copy(
            update={"surge_multiplier": 1.2, "applied_factors": ["Peak Hour"], "final_price": 180.0}
        )
        text = format_fare(fare)
        assert "• Surge Multiplier: 1.2x" in text
        assert "• Applied: Peak Hour" in text


class TestSummaryAndMenus:
    def test_summary_lists_required_fields(self):
        session = transfer_session(
            pricing=compute_base_fare(get_rate_card("Sedan"), BookingType.TRANSFER, 25)
        )
        prompt = render_summary(session)
        assert "*Booking ID:* BKTEST0001" in prompt.body
        assert "*Customer Name:* Sarah Khan" in prompt.body
        assert "*Drop Location:* Not specified" in prompt.body
        assert "*Number of Hours:*" not in prompt.body
        assert "Final Price" in prompt.body

    def test_summary_without_pricing(self):
        prompt = render_summary(transfer_session())
        assert "Pricing will be calculated after vehicle selection" in prompt.body

    def test_edit_menu(self):
        prompt = render_edit_menu(transfer_session())
        ids = [o.id for o in prompt.options]
        assert ids[0] == "edit:bookingType"
        assert "edit:dropLocation" in ids
        assert ids[-1] == "action:back"

    def test_confirmation_with_payment_link(self):
        pricing = fallback_fare("Van", BookingType.TRANSFER, None, 25, 2)
        prompt = render_confirmed("CNF-1A2B3C4D", "BKTEST0001", pricing, "https://pay.example.com/x")
        assert "*Confirmation ID:* CNF-1A2B3C4D" in prompt.body
        assert "*Total:* AED 345.00" in prompt.body
        assert "Estimated fare" in prompt.body
        assert "https://pay.example.com/x" in prompt.body


class TestRenderText:
    def test_numbered_options(self):
        prompt = OutboundPrompt(
            kind=PromptKind.LIST,
            header="Pick",
            body="Choose one",
            options=[PromptOption(id="a", title="Alpha", description="first"), PromptOption(id="b", title="Beta")],
        )
        assert render_text(prompt) == "== Pick ==\nChoose one\n\n  1. Alpha (first)\n  2. Beta"

    def test_plain_text(self):
        assert render_text(OutboundPrompt.text("Hello")) == "Hello"
