"""Deposit payments for bookings."""

from __future__ import annotations

import logging
from uuid import UUID

from castle_bookings.integrations.stripe_client import PaymentIntent, StripeClient
from castle_bookings.models.booking import BookingStatus, PaymentMethod
from castle_bookings.services.booking_store import SqlBookingStore
from castle_bookings.services.errors import BookingValidationError

logger = logging.getLogger(__name__)

_PAYABLE_STATUSES = {BookingStatus.PENDING, BookingStatus.CONFIRMED}
_REUSABLE_INTENT_STATUSES = {
    "requires_payment_method",
    "requires_confirmation",
    "requires_action",
    "processing",
    "succeeded",
}


async def create_deposit_intent(
    store: SqlBookingStore,
    *,
    booking_id: UUID,
    stripe: StripeClient,
    currency: str = "gbp",
) -> PaymentIntent:
    """Create, or return the existing, PaymentIntent for a booking's deposit."""

    booking = await store.require_booking(booking_id)
    if booking.status not in _PAYABLE_STATUSES:
        raise BookingValidationError(
            {"status": f"Cannot take a deposit for a {booking.status.value} booking"}
        )
    if booking.deposit_pence <= 0:
        raise BookingValidationError({"deposit": "Booking has no deposit to pay"})

    if booking.deposit_intent_id:
        existing = stripe.retrieve_payment_intent(booking.deposit_intent_id)
        if (
            existing.status in _REUSABLE_INTENT_STATUSES
            and existing.amount == booking.deposit_pence
        ):
            return existing

    intent = stripe.create_payment_intent(
        amount_pence=booking.deposit_pence,
        currency=currency,
        metadata={"booking_id": str(booking.id), "booking_ref": booking.booking_ref},
        customer_email=booking.customer_email,
        description=f"Deposit for {booking.castle_name} on {booking.event_date.isoformat()}",
        idempotency_seed=f"booking-{booking.id}-deposit-{booking.deposit_pence}",
    )
    if intent.client_secret is None:
        raise ValueError("Stripe did not return a client secret")

    booking.deposit_intent_id = intent.id
    booking.payment_method = PaymentMethod.ONLINE
    await store.save(booking)
    await store.record_audit(
        event_type="payment.deposit_intent_created",
        booking_id=booking.id,
        description=f"Deposit intent {intent.id} created",
        payload={"amount_pence": booking.deposit_pence, "currency": currency},
    )
    logger.info("Created deposit intent %s for booking %s", intent.id, booking.booking_ref)
    return intent
