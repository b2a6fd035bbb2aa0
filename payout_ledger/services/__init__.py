from payout_ledger.services.balance_calculator import BalanceCalculator
from payout_ledger.services.command_service import PayoutCommandService
from payout_ledger.services.event_processor import EventProcessor
from payout_ledger.services.export_service import PayoutExportService
from payout_ledger.services.ledger_service import LedgerService
from payout_ledger.services.payout_engine import PayoutEngine
from payout_ledger.services.query_service import PayoutQueryService
from payout_ledger.services.settlement_gateway import (
    HttpSettlementGateway,
    SettlementGateway,
    get_settlement_gateway,
)

__all__ = [
    "BalanceCalculator",
    "EventProcessor",
    "HttpSettlementGateway",
    "LedgerService",
    "PayoutCommandService",
    "PayoutEngine",
    "PayoutExportService",
    "PayoutQueryService",
    "SettlementGateway",
    "get_settlement_gateway",
]
