from datetime import datetime
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from payout_ledger.core.enums import EventType
from payout_ledger.db.models import EarningEvent


class EventRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_event(
        self,
        event_id: str,
        event_type: EventType,
        occurred_at: datetime,
        provider_id: str,
        currency: str,
        amount_minor: int,
        fee_minor: int,
        metadata_: Optional[dict] = None,
    ) -> tuple[EarningEvent, bool]:
        """Store a booking event unless its event_id is already known.

        Returns the stored row and whether it was inserted by this call. A
        known event_id returns the original row untouched so the caller can
        compare payloads.
        """
        known = await self.get_by_event_id(event_id)
        if known is not None:
            return known, False

        event = EarningEvent(
            event_id=event_id,
            event_type=event_type,
            occurred_at=occurred_at,
            provider_id=provider_id,
            currency=currency,
            amount_minor=amount_minor,
            fee_minor=fee_minor,
            metadata_=metadata_,
        )
        self.session.add(event)
        await self.session.flush()
        return event, True

    async def get_by_event_id(self, event_id: str) -> Optional[EarningEvent]:
        result = await self.session.execute(
            select(EarningEvent).where(EarningEvent.event_id == event_id)
        )
        return result.scalar_one_or_none()

    async def get_provider_totals(
        self, provider_id: str, currency: str
    ) -> tuple[int, int, int]:
        """(revenue, commissions, refunds) in minor units straight from the events.

        Refund fees are not commission; only booking_paid fees count.
        """
        paid = EarningEvent.event_type == EventType.BOOKING_PAID
        refunded = EarningEvent.event_type == EventType.BOOKING_REFUNDED
        stmt = (
            select(
                func.coalesce(
                    func.sum(EarningEvent.amount_minor).filter(paid), 0
                ).label("revenue"),
                func.coalesce(func.sum(EarningEvent.fee_minor).filter(paid), 0).label(
                    "commissions"
                ),
                func.coalesce(
                    func.sum(EarningEvent.amount_minor).filter(refunded), 0
                ).label("refunds"),
            )
            .where(EarningEvent.provider_id == provider_id)
            .where(EarningEvent.currency == currency)
        )
        row = (await self.session.execute(stmt)).one()
        return int(row.revenue), int(row.commissions), int(row.refunds)
