from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from payout_ledger.core.enums import LedgerPeriod
from payout_ledger.schemas.common import response_meta


class EarningsSummary(BaseModel):
    provider_id: str
    currency: str
    total_revenue: Decimal
    total_commissions: Decimal
    total_refunds: Decimal
    total_earnings: Decimal
    total_payouts: Decimal
    pending_payouts: Decimal
    available_balance: Decimal
    last_payout_date: Optional[datetime] = None
    last_updated: Optional[datetime] = None
    meta: dict = Field(default_factory=response_meta)


class PayoutStatistics(BaseModel):
    currency: str
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    total_payouts: int
    total_amount: Decimal
    average_amount: Decimal
    payouts_by_status: dict[str, int]
    payouts_by_method: dict[str, int]
    amount_by_status: dict[str, Decimal]
    amount_by_method: dict[str, Decimal]


class LedgerSummary(BaseModel):
    currency: str
    period: LedgerPeriod
    total_revenue: Decimal
    total_commissions: Decimal
    total_refunds: Decimal
    total_earnings: Decimal
    total_payouts: Decimal
    pending_payouts: Decimal
    available_balance: Decimal
    last_updated: Optional[datetime] = None
    statistics: PayoutStatistics
    meta: dict = Field(default_factory=response_meta)


class LedgerFigures(BaseModel):
    total_earnings: Decimal
    pending_payouts: Decimal
    total_payouts: Decimal
    available_balance: Decimal


class ReconciliationReport(BaseModel):
    provider_id: str
    currency: str
    balanced: bool
    repaired: bool = False
    matches_events: bool = True
    cached: LedgerFigures
    recomputed: LedgerFigures
    drift: dict[str, Decimal]
    meta: dict = Field(default_factory=response_meta)
