from datetime import date, datetime
from decimal import Decimal
from typing import ClassVar, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from payout_ledger.core.enums import PayoutMethod, PayoutStatus
from payout_ledger.schemas.common import response_meta


class BankTransferDetails(BaseModel):
    account_number: Optional[str] = None
    account_name: Optional[str] = None
    bank_name: Optional[str] = None
    bank_code: Optional[str] = None
    swift_code: Optional[str] = None

    model_config = ConfigDict(extra="forbid")

    REQUIRED_FIELDS: ClassVar[tuple[str, ...]] = ("account_number", "account_name", "bank_name")


class MobileMoneyDetails(BaseModel):
    phone_number: Optional[str] = None
    provider: Optional[str] = None
    account_name: Optional[str] = None

    model_config = ConfigDict(extra="forbid")

    REQUIRED_FIELDS: ClassVar[tuple[str, ...]] = ("phone_number", "provider", "account_name")


class PayoutRequestCreate(BaseModel):
    amount: Decimal
    method: PayoutMethod
    currency: Optional[str] = Field(default=None, pattern=r"^[A-Z]{3}$")
    bank_details: Optional[BankTransferDetails] = None
    mobile_money_details: Optional[MobileMoneyDetails] = None


class ApprovePayoutRequest(BaseModel):
    notes: Optional[str] = Field(default=None, max_length=2000)


class RejectPayoutRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=2000)


class ProcessPayoutRequest(BaseModel):
    reference_number: Optional[str] = Field(default=None, max_length=100)


class MarkPaidRequest(BaseModel):
    reference_number: Optional[str] = Field(default=None, max_length=100)


class MarkFailedRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=2000)


class ProviderPayoutFilters(BaseModel):
    """Filters available to a provider over their own payouts.

    Empty strings are treated as absent so a blank form field matches all.
    """

    status: Optional[PayoutStatus] = None
    method: Optional[PayoutMethod] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    model_config = ConfigDict(extra="forbid")

    @field_validator("*", mode="before")
    @classmethod
    def _blank_as_absent(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class AdminPayoutFilters(ProviderPayoutFilters):
    provider_id: Optional[str] = None


class PayoutResponse(BaseModel):
    id: int
    provider_id: str
    amount: Decimal
    currency: str
    method: PayoutMethod
    method_details: dict
    status: PayoutStatus
    notes: Optional[str] = None
    reference_number: Optional[str] = None
    processing_reference: Optional[str] = None
    failure_reason: Optional[str] = None
    rejection_reason: Optional[str] = None
    requested_at: datetime
    approved_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    updated_at: datetime
    meta: dict = Field(default_factory=response_meta)

    model_config = ConfigDict(from_attributes=True)
