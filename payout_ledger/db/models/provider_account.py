from datetime import datetime

from sqlalchemy import BigInteger, CheckConstraint, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from payout_ledger.core.datetime_utils import utc_now
from payout_ledger.db.base import Base, BigIntPK, UTCDateTime


class ProviderAccount(Base):
    """Cached per-provider ledger summary, one row per currency.

    Adjusted in the same transaction as every earning event and payout
    transition. available = earnings - payouts - pending, never stored.
    """

    __tablename__ = "provider_accounts"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    provider_id: Mapped[str] = mapped_column(String(64), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    total_revenue_minor: Mapped[int] = mapped_column(
        BigInteger, default=0, nullable=False
    )
    total_commissions_minor: Mapped[int] = mapped_column(
        BigInteger, default=0, nullable=False
    )
    total_refunds_minor: Mapped[int] = mapped_column(
        BigInteger, default=0, nullable=False
    )
    pending_payouts_minor: Mapped[int] = mapped_column(
        BigInteger, default=0, nullable=False
    )
    total_payouts_minor: Mapped[int] = mapped_column(
        BigInteger, default=0, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utc_now, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("provider_id", "currency", name="uq_provider_account_currency"),
        CheckConstraint("pending_payouts_minor >= 0", name="non_negative_pending"),
        CheckConstraint("total_payouts_minor >= 0", name="non_negative_payouts"),
    )

    @property
    def total_earnings_minor(self) -> int:
        return (
            self.total_revenue_minor
            - self.total_commissions_minor
            - self.total_refunds_minor
        )

    @property
    def available_balance_minor(self) -> int:
        return (
            self.total_earnings_minor
            - self.total_payouts_minor
            - self.pending_payouts_minor
        )
