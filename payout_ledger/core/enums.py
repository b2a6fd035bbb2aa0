from datetime import timedelta
from enum import Enum
from typing import Optional


class EventType(str, Enum):
    BOOKING_PAID = "booking_paid"
    BOOKING_REFUNDED = "booking_refunded"


class EntryType(str, Enum):
    REVENUE = "revenue"
    COMMISSION = "commission"
    REFUND = "refund"
    PAYOUT_RESERVE = "payout_reserve"
    PAYOUT_RELEASE = "payout_release"


class PayoutStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def is_active(self) -> bool:
        return self not in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {
        PayoutStatus.COMPLETED,
        PayoutStatus.FAILED,
        PayoutStatus.REJECTED,
        PayoutStatus.CANCELLED,
    }
)


class PayoutMethod(str, Enum):
    BANK_TRANSFER = "BANK_TRANSFER"
    MOBILE_MONEY = "MOBILE_MONEY"


class PayoutAction(str, Enum):
    CANCEL = "cancel"
    APPROVE = "approve"
    REJECT = "reject"
    PROCESS = "process"
    MARK_PAID = "mark_paid"
    MARK_FAILED = "mark_failed"


class Role(str, Enum):
    PROVIDER = "PROVIDER"
    ADMIN = "ADMIN"


class LedgerPeriod(str, Enum):
    LAST_7_DAYS = "7d"
    LAST_30_DAYS = "30d"
    LAST_90_DAYS = "90d"
    ALL = "all"

    @property
    def window(self) -> Optional[timedelta]:
        """Lookback window, or None for the whole history."""
        return {
            LedgerPeriod.LAST_7_DAYS: timedelta(days=7),
            LedgerPeriod.LAST_30_DAYS: timedelta(days=30),
            LedgerPeriod.LAST_90_DAYS: timedelta(days=90),
        }.get(self)
