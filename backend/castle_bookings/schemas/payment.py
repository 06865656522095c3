"""Schemas for deposit payments."""
from __future__ import annotations

from pydantic import BaseModel


class DepositIntentRead(BaseModel):
    payment_intent_id: str
    client_secret: str | None
    status: str
    amount_pence: int
    currency: str
    publishable_key: str | None = None
