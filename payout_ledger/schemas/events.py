from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from payout_ledger.core.enums import EventType
from payout_ledger.core.money import MAX_AMOUNT
from payout_ledger.schemas.common import response_meta


class EarningEventCreate(BaseModel):
    event_id: str = Field(..., min_length=1, max_length=100)
    event_type: EventType
    occurred_at: datetime
    provider_id: str = Field(..., min_length=1, max_length=64)
    currency: str = Field(default="USD", pattern=r"^[A-Z]{3}$")
    amount: Decimal = Field(..., gt=0, le=MAX_AMOUNT, decimal_places=2)
    fee: Decimal = Field(default=Decimal("0"), ge=0, le=MAX_AMOUNT, decimal_places=2)
    metadata: Optional[dict] = None


class EarningEventResponse(BaseModel):
    id: int
    event_id: str
    event_type: EventType
    occurred_at: datetime
    provider_id: str
    currency: str
    amount: Decimal
    fee: Decimal
    created_at: datetime
    idempotent: bool = False
    meta: dict = Field(default_factory=response_meta)

    model_config = ConfigDict(from_attributes=True)
