from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import BigInteger, CheckConstraint, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from payout_ledger.core.datetime_utils import utc_now
from payout_ledger.core.enums import EventType
from payout_ledger.core.money import from_minor
from payout_ledger.db.base import Base, BigIntPK, EnumString, JSONType, UTCDateTime


class EarningEvent(Base):
    """Booking payment/refund event log. Idempotency guaranteed by unique event_id."""

    __tablename__ = "earning_events"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    event_id: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    event_type: Mapped[EventType] = mapped_column(
        EnumString(EventType), nullable=False
    )
    occurred_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    provider_id: Mapped[str] = mapped_column(String(64), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    amount_minor: Mapped[int] = mapped_column(BigInteger, nullable=False)
    fee_minor: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utc_now, nullable=False
    )
    metadata_: Mapped[Optional[dict]] = mapped_column(
        "metadata", JSONType, nullable=True
    )

    __table_args__ = (
        CheckConstraint("amount_minor > 0", name="positive_event_amount"),
        CheckConstraint("fee_minor >= 0", name="non_negative_event_fee"),
        CheckConstraint(
            "event_type IN ('booking_paid', 'booking_refunded')",
            name="valid_event_type",
        ),
        Index("idx_earning_events_provider_occurred", "provider_id", "occurred_at"),
    )

    @property
    def amount(self) -> Decimal:
        return from_minor(self.amount_minor)

    @property
    def fee(self) -> Decimal:
        return from_minor(self.fee_minor)
