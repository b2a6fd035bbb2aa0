from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, CheckConstraint, ForeignKey, Index, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from payout_ledger.core.datetime_utils import utc_now
from payout_ledger.core.enums import EntryType
from payout_ledger.db.base import Base, BigIntPK, EnumString, UTCDateTime


class LedgerEntry(Base):
    """Immutable journal entry. Sum per provider/currency equals available balance."""

    __tablename__ = "ledger_entries"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    provider_id: Mapped[str] = mapped_column(String(64), nullable=False)
    amount_minor: Mapped[int] = mapped_column(BigInteger, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    entry_type: Mapped[EntryType] = mapped_column(
        EnumString(EntryType), nullable=False
    )
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    related_event_id: Mapped[Optional[str]] = mapped_column(
        String(100),
        ForeignKey("earning_events.event_id", ondelete="RESTRICT"),
        nullable=True,
    )
    related_payout_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("payouts.id", ondelete="RESTRICT"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utc_now, nullable=False
    )

    __table_args__ = (
        CheckConstraint(
            "entry_type IN ('revenue', 'commission', 'refund', "
            "'payout_reserve', 'payout_release')",
            name="valid_entry_type",
        ),
        Index("idx_ledger_provider_currency", "provider_id", "currency"),
        Index(
            "idx_ledger_related_payout",
            "related_payout_id",
            postgresql_where=text("related_payout_id IS NOT NULL"),
        ),
    )
