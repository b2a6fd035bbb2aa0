import logging

from sqlalchemy.ext.asyncio import AsyncSession

from payout_ledger.core.enums import EventType
from payout_ledger.core.money import to_minor
from payout_ledger.db.models import EarningEvent
from payout_ledger.db.repositories import EventRepository
from payout_ledger.exceptions import DuplicateEventException
from payout_ledger.metrics import earning_events_total
from payout_ledger.schemas.events import EarningEventCreate
from payout_ledger.services.ledger_service import LedgerService

logger = logging.getLogger(__name__)


class EventProcessor:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.event_repo = EventRepository(session)
        self.ledger_service = LedgerService(session)

    def _matches(self, event: EarningEvent, event_data: EarningEventCreate) -> bool:
        return (
            event.event_type == event_data.event_type
            and event.provider_id == event_data.provider_id
            and event.currency == event_data.currency
            and event.amount_minor == to_minor(event_data.amount)
            and event.fee_minor == to_minor(event_data.fee)
        )

    async def process_event(
        self, event_data: EarningEventCreate
    ) -> tuple[EarningEvent, bool]:
        """Credit or debit provider earnings for one booking event.

        Replaying an event_id with the same payload is a no-op; replaying it
        with different figures is rejected.
        """
        async with self.session.begin():
            event, is_new = await self.event_repo.create_event(
                event_id=event_data.event_id,
                event_type=event_data.event_type,
                occurred_at=event_data.occurred_at,
                provider_id=event_data.provider_id,
                currency=event_data.currency,
                amount_minor=to_minor(event_data.amount),
                fee_minor=to_minor(event_data.fee),
                metadata_=event_data.metadata,
            )

            if not is_new:
                if not self._matches(event, event_data):
                    logger.warning(
                        "Event id reused with different content event_id=%s provider_id=%s",
                        event.event_id,
                        event_data.provider_id,
                        extra={
                            "event_id": event.event_id,
                            "provider_id": event_data.provider_id,
                        },
                    )
                    raise DuplicateEventException(event.event_id)

                logger.info(
                    "Idempotent event received event_id=%s provider_id=%s",
                    event.event_id,
                    event.provider_id,
                    extra={
                        "event_id": event.event_id,
                        "provider_id": event.provider_id,
                        "event_type": event.event_type.value,
                    },
                )
                return event, False

            logger.info(
                "Processing new event event_id=%s event_type=%s provider_id=%s",
                event.event_id,
                event.event_type.value,
                event.provider_id,
                extra={
                    "event_id": event.event_id,
                    "provider_id": event.provider_id,
                    "event_type": event.event_type.value,
                },
            )
            earning_events_total.labels(event_type=event.event_type.value).inc()

            if event.event_type == EventType.BOOKING_PAID:
                await self.ledger_service.record_booking_payment(
                    provider_id=event.provider_id,
                    event_id=event.event_id,
                    amount_minor=event.amount_minor,
                    fee_minor=event.fee_minor,
                    currency=event.currency,
                )
            elif event.event_type == EventType.BOOKING_REFUNDED:
                await self.ledger_service.record_refund(
                    provider_id=event.provider_id,
                    event_id=event.event_id,
                    amount_minor=event.amount_minor,
                    currency=event.currency,
                )

        return event, True
