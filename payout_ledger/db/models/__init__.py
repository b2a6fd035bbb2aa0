from payout_ledger.db.models.earning_event import EarningEvent
from payout_ledger.db.models.ledger_entry import LedgerEntry
from payout_ledger.db.models.payout import Payout
from payout_ledger.db.models.provider_account import ProviderAccount

__all__ = ["EarningEvent", "LedgerEntry", "Payout", "ProviderAccount"]
