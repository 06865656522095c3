"""Tests for booking details carried in calendar event text."""

from __future__ import annotations

from castle_bookings.models.booking import PaymentMethod
from castle_bookings.services.event_description import (
    EventDetails,
    decode_event,
    encode_description,
    encode_summary,
    parse_money,
    parse_payment_method,
)


def test_encoded_event_decodes_to_the_same_details() -> None:
    details = EventDetails(
        booking_ref="TS240601042",
        customer_name="Jane Smith",
        customer_email="jane@example.com",
        customer_phone="07700 900123",
        location="1 High Street, Leeds",
        castle_name="Princess Palace",
        total_pence=12050,
        deposit_pence=3000,
        payment_method=PaymentMethod.BANK_TRANSFER,
        notes="Gate code 1234\nPark on the drive",
    )

    decoded = decode_event(encode_summary(details), encode_description(details))

    assert decoded == details


def test_legacy_description_is_understood() -> None:
    description = (
        "🏰 Bouncy Castle Booking\n"
        "\n"
        "Customer: Tom Jones\n"
        "Phone: 0113 496 0000\n"
        "Location: 5 Park Road\n"
        "Castle Type: Jungle Adventure (Large)\n"
        "Cost: £120\n"
        "Payment: Card (on delivery)\n"
    )

    decoded = decode_event("🏰 Tom Jones - Jungle Adventure", description)

    assert decoded.version == 1
    assert decoded.customer_name == "Tom Jones"
    assert decoded.castle_name == "Jungle Adventure"
    assert decoded.total_pence == 12000
    assert decoded.deposit_pence is None
    assert decoded.payment_method is PaymentMethod.CARD
    assert decoded.booking_ref is None


def test_summary_fills_missing_fields() -> None:
    decoded = decode_event("🏰 Ann Lee - Pirate Ship", "")
    assert decoded.customer_name == "Ann Lee"
    assert decoded.castle_name == "Pirate Ship"


def test_garbage_never_raises() -> None:
    decoded = decode_event("Team lunch", "Cost: free\nPayment:\nFormat: vX")
    assert decoded.customer_name is None
    assert decoded.total_pence is None
    assert decoded.payment_method is None
    assert decoded.version == 1


def test_parse_money_variants() -> None:
    assert parse_money("£12") == 1200
    assert parse_money("12.5") == 1250
    assert parse_money("£1,250.99") == 125099
    assert parse_money("tbc") is None
    assert parse_money(None) is None


def test_parse_payment_method_variants() -> None:
    assert parse_payment_method("Cash") is PaymentMethod.CASH
    assert parse_payment_method("Paid by Stripe") is PaymentMethod.ONLINE
    assert parse_payment_method("Bank transfer") is PaymentMethod.BANK_TRANSFER
    assert parse_payment_method("IOU") is PaymentMethod.OTHER


def test_multi_line_values_survive_round_trip() -> None:
    details = EventDetails(
        booking_ref="TS240601043",
        customer_name="Jane Smith\nc/o Tom Jones",
        customer_phone="07700 900123\n0113 496 0000",
        location="1 High Street\nNewark\nNG24 1AA",
        castle_name="Princess Palace",
        total_pence=12000,
        notes="Ring on arrival",
    )

    summary = encode_summary(details)
    description = encode_description(details)
    decoded = decode_event(summary, description)

    assert summary == "🏰 Jane Smith c/o Tom Jones - Princess Palace"
    assert "Location: 1 High Street\\nNewark\\nNG24 1AA\n" in description
    assert decoded.location == "1 High Street\nNewark\nNG24 1AA"
    assert decoded.customer_name == "Jane Smith\nc/o Tom Jones"
    assert decoded.customer_phone == "07700 900123\n0113 496 0000"
    assert decoded.total_pence == 12000
    assert decoded.notes == "Ring on arrival"


def test_backslashes_survive_round_trip() -> None:
    details = EventDetails(location="Unit 4\\5 Mill Lane\nnorth side")

    decoded = decode_event("", encode_description(details))

    assert decoded.location == "Unit 4\\5 Mill Lane\nnorth side"


def test_v2_values_are_read_literally() -> None:
    description = "Location: Unit 4\\new block\nFormat: v2\n"

    decoded = decode_event("", description)

    assert decoded.version == 2
    assert decoded.location == "Unit 4\\new block"
