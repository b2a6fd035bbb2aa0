from payout_ledger.db.repositories.event_repository import EventRepository
from payout_ledger.db.repositories.ledger_repository import LedgerRepository
from payout_ledger.db.repositories.payout_repository import PayoutRepository

__all__ = [
    "EventRepository",
    "LedgerRepository",
    "PayoutRepository",
]
