from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import BigInteger, CheckConstraint, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from payout_ledger.core.datetime_utils import utc_now
from payout_ledger.core.enums import PayoutMethod, PayoutStatus
from payout_ledger.core.money import from_minor
from payout_ledger.db.base import Base, BigIntPK, EnumString, JSONType, UTCDateTime


class Payout(Base):
    """Provider withdrawal request.

    Lifecycle: PENDING -> APPROVED -> PROCESSING -> COMPLETED/FAILED, with
    PENDING -> REJECTED/CANCELLED as early exits. Rows are never deleted.
    """

    __tablename__ = "payouts"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    provider_id: Mapped[str] = mapped_column(String(64), nullable=False)
    amount_minor: Mapped[int] = mapped_column(BigInteger, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    method: Mapped[PayoutMethod] = mapped_column(
        EnumString(PayoutMethod), nullable=False
    )
    method_details: Mapped[dict] = mapped_column(JSONType, nullable=False)
    status: Mapped[PayoutStatus] = mapped_column(
        EnumString(PayoutStatus), default=PayoutStatus.PENDING, nullable=False
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reference_number: Mapped[Optional[str]] = mapped_column(
        String(100), nullable=True
    )
    processing_reference: Mapped[Optional[str]] = mapped_column(
        String(100), nullable=True
    )
    failure_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    requested_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utc_now, nullable=False
    )
    approved_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    approved_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    processed_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime, nullable=True
    )
    processed_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    failed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    rejected_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime, nullable=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utc_now, nullable=False
    )
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    __table_args__ = (
        CheckConstraint("amount_minor > 0", name="positive_payout_amount"),
        CheckConstraint(
            "status IN ('PENDING', 'APPROVED', 'PROCESSING', 'COMPLETED', "
            "'FAILED', 'REJECTED', 'CANCELLED')",
            name="valid_payout_status",
        ),
        CheckConstraint(
            "method IN ('BANK_TRANSFER', 'MOBILE_MONEY')",
            name="valid_payout_method",
        ),
        CheckConstraint(
            "(status = 'COMPLETED' AND paid_at IS NOT NULL) OR "
            "(status != 'COMPLETED' AND paid_at IS NULL)",
            name="paid_at_consistency",
        ),
        CheckConstraint(
            "(status = 'FAILED' AND failed_at IS NOT NULL) OR "
            "(status != 'FAILED' AND failed_at IS NULL)",
            name="failed_at_consistency",
        ),
        CheckConstraint(
            "(status IN ('PROCESSING', 'COMPLETED', 'FAILED') AND processed_at IS NOT NULL) OR "
            "(status NOT IN ('PROCESSING', 'COMPLETED', 'FAILED') AND processed_at IS NULL)",
            name="processed_at_consistency",
        ),
        Index("idx_payouts_provider_requested", "provider_id", "requested_at"),
        Index("idx_payouts_status_requested", "status", "requested_at"),
        Index(
            "idx_payouts_active",
            "provider_id",
            "currency",
            postgresql_where=text("status IN ('PENDING', 'APPROVED', 'PROCESSING')"),
        ),
    )

    @property
    def amount(self) -> Decimal:
        return from_minor(self.amount_minor)
