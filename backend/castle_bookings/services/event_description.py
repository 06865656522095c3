"""Encode and decode booking metadata carried in calendar event text.

Events store booking details as ``Label: value`` lines in the description and
``🏰 <customer> - <castle>`` in the summary. Decoding is tolerant: any field
that is missing or unparseable comes back as ``None`` and never raises.

Format history:

* v1 (no version line): ``Castle Type:`` label, whole-pound ``Cost:``,
  ``Payment: Card (on delivery)`` / ``Cash``; no booking reference or deposit.
* v2: adds ``Booking Ref:``, ``Castle:``, ``Deposit:``, pence precision and a
  ``Format: v2`` line. ``Notes:`` is always last and may span lines.
* v3: single-line values escape ``\\`` and newlines as ``\\\\`` and ``\\n`` so a
  multi-line address or name survives the round trip. Earlier versions are read
  literally.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from castle_bookings.models.booking import Booking, PaymentMethod

FORMAT_VERSION = 3
_ESCAPED_FROM_VERSION = 3
DESCRIPTION_HEADER = "🏰 Bouncy Castle Booking"
SUMMARY_PREFIX = "🏰"

_FIELD_LABELS: tuple[tuple[str, str], ...] = (
    ("booking_ref", "Booking Ref"),
    ("customer_name", "Customer"),
    ("customer_email", "Email"),
    ("customer_phone", "Phone"),
    ("location", "Location"),
    ("castle_name", "Castle"),
)

_MONEY_PATTERN = re.compile(r"£?\s*(\d+(?:\.\d{1,2})?)")
_VERSION_PATTERN = re.compile(r"^Format:\s*v?(\d+)\s*$", re.MULTILINE)
_NOTES_PATTERN = re.compile(r"^Notes:[ \t]*(.*)\Z", re.MULTILINE | re.DOTALL)
_SUMMARY_PATTERN = re.compile(r"^🏰\s*(.+?)\s+-\s+(.+?)\s*$")
_ESCAPE_PATTERN = re.compile(r"\\(\\|n)")

_PAYMENT_LABELS = {
    PaymentMethod.CASH: "Cash",
    PaymentMethod.CARD: "Card",
    PaymentMethod.BANK_TRANSFER: "Bank transfer",
    PaymentMethod.ONLINE: "Online",
    PaymentMethod.OTHER: "Other",
}


@dataclass(slots=True)
class EventDetails:
    """Booking fields recoverable from an event's text."""

    customer_name: str | None = None
    booking_ref: str | None = None
    customer_email: str | None = None
    customer_phone: str | None = None
    location: str | None = None
    castle_name: str | None = None
    total_pence: int | None = None
    deposit_pence: int | None = None
    payment_method: PaymentMethod | None = None
    notes: str | None = None
    version: int = FORMAT_VERSION


def format_pence(pence: int) -> str:
    return f"£{pence // 100}.{pence % 100:02d}"


def parse_money(text: str | None) -> int | None:
    """Parse ``£12``, ``12.5`` or ``£12.50`` into pence."""
    if not text:
        return None
    match = _MONEY_PATTERN.search(text.replace(",", ""))
    if match is None:
        return None
    try:
        amount = Decimal(match.group(1))
    except InvalidOperation:
        return None
    return int((amount * 100).to_integral_value())


def parse_payment_method(text: str | None) -> PaymentMethod | None:
    if not text:
        return None
    lowered = text.strip().lower()
    if lowered.startswith("card"):
        return PaymentMethod.CARD
    if lowered.startswith("cash"):
        return PaymentMethod.CASH
    if "bank" in lowered or "transfer" in lowered:
        return PaymentMethod.BANK_TRANSFER
    if "online" in lowered or "stripe" in lowered:
        return PaymentMethod.ONLINE
    return PaymentMethod.OTHER


def details_for_booking(booking: Booking) -> EventDetails:
    return EventDetails(
        booking_ref=booking.booking_ref,
        customer_name=booking.customer_name,
        customer_email=booking.customer_email,
        customer_phone=booking.customer_phone,
        location=booking.customer_address,
        castle_name=booking.castle_name,
        total_pence=booking.total_price_pence,
        deposit_pence=booking.deposit_pence,
        payment_method=booking.payment_method,
        notes=booking.notes,
    )


def _escape(value: str) -> str:
    return value.replace("\r\n", "\n").replace("\\", "\\\\").replace("\n", "\\n")


def _unescape(value: str) -> str:
    return _ESCAPE_PATTERN.sub(lambda m: "\n" if m.group(1) == "n" else "\\", value)


def _one_line(value: str) -> str:
    return " ".join(value.split())


def encode_summary(details: EventDetails) -> str:
    castle = _one_line(details.castle_name or "") or "Bouncy Castle"
    customer = _one_line(details.customer_name or "") or "Customer"
    return f"{SUMMARY_PREFIX} {customer} - {castle}"


def encode_description(details: EventDetails) -> str:
    lines = [DESCRIPTION_HEADER, ""]
    for attr, label in _FIELD_LABELS:
        value = getattr(details, attr)
        if value:
            lines.append(f"{label}: {_escape(value)}")
    if details.total_pence is not None:
        lines.append(f"Cost: {format_pence(details.total_pence)}")
    if details.deposit_pence is not None:
        lines.append(f"Deposit: {format_pence(details.deposit_pence)}")
    if details.payment_method is not None:
        lines.append(f"Payment: {_PAYMENT_LABELS[details.payment_method]}")
    lines.append(f"Format: v{FORMAT_VERSION}")
    if details.notes:
        lines.extend(["", f"Notes: {details.notes.strip()}"])
    return "\n".join(lines) + "\n"


def _line_value(description: str, label: str) -> str | None:
    match = re.search(rf"^{re.escape(label)}:[ \t]*(.+?)[ \t]*$", description, re.MULTILINE)
    if match is None:
        return None
    return match.group(1) or None


def decode_event(summary: str | None, description: str | None) -> EventDetails:
    summary = summary or ""
    description = (description or "").replace("\r\n", "\n")

    # Notes run to the end of the text; keep them out of the per-line lookups.
    notes_match = _NOTES_PATTERN.search(description)
    head = description
    notes = None
    if notes_match is not None:
        head = description[: notes_match.start()]
        notes = notes_match.group(1).strip() or None

    version_match = _VERSION_PATTERN.search(head)
    details = EventDetails(
        version=int(version_match.group(1)) if version_match else 1,
        notes=notes,
    )
    escaped = details.version >= _ESCAPED_FROM_VERSION
    for attr, label in _FIELD_LABELS:
        value = _line_value(head, label)
        if value is not None and escaped:
            value = _unescape(value)
        setattr(details, attr, value)

    if details.castle_name is None:
        details.castle_name = _line_value(head, "Castle Type")
    if details.castle_name is not None:
        details.castle_name = details.castle_name.split("(", 1)[0].strip() or None

    summary_match = _SUMMARY_PATTERN.match(summary.strip())
    if summary_match is not None:
        if details.customer_name is None:
            details.customer_name = summary_match.group(1)
        if details.castle_name is None:
            details.castle_name = summary_match.group(2)

    details.total_pence = parse_money(_line_value(head, "Cost"))
    details.deposit_pence = parse_money(_line_value(head, "Deposit"))
    details.payment_method = parse_payment_method(_line_value(head, "Payment"))
    return details


__all__ = [
    "EventDetails",
    "FORMAT_VERSION",
    "decode_event",
    "details_for_booking",
    "encode_description",
    "encode_summary",
    "format_pence",
    "parse_money",
    "parse_payment_method",
]
