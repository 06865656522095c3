"""Deposit payment API."""

from __future__ import annotations

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends

from castle_bookings.api import deps
from castle_bookings.api.errors import SERVICE_ERRORS, to_http_exception
from castle_bookings.core.settings import get_payment_settings
from castle_bookings.integrations.stripe_client import StripeClient
from castle_bookings.schemas.payment import DepositIntentRead
from castle_bookings.services import payments_service
from castle_bookings.services.booking_store import SqlBookingStore

router = APIRouter()


@router.post(
    "/{booking_id}/deposit-intent",
    response_model=DepositIntentRead,
    summary="Create a deposit payment intent",
)
async def create_deposit_intent(
    booking_id: uuid.UUID,
    store: Annotated[SqlBookingStore, Depends(deps.get_store)],
    stripe_client: Annotated[StripeClient, Depends(deps.get_stripe_client)],
    _: Annotated[str, Depends(deps.require_admin)],
) -> DepositIntentRead:
    payment_settings = get_payment_settings()
    try:
        intent = await payments_service.create_deposit_intent(
            store,
            booking_id=booking_id,
            stripe=stripe_client,
            currency=payment_settings.currency,
        )
    except SERVICE_ERRORS as exc:
        raise to_http_exception(exc) from exc
    return DepositIntentRead(
        payment_intent_id=intent.id,
        client_secret=intent.client_secret,
        status=intent.status,
        amount_pence=intent.amount,
        currency=intent.currency or payment_settings.currency,
        publishable_key=payment_settings.stripe_publishable_key,
    )
