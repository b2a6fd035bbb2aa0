from payout_ledger.schemas.common import BaseResponse, ErrorDetail, ErrorResponse, Page
from payout_ledger.schemas.events import EarningEventCreate, EarningEventResponse
from payout_ledger.schemas.ledger import (
    EarningsSummary,
    LedgerFigures,
    LedgerSummary,
    PayoutStatistics,
    ReconciliationReport,
)
from payout_ledger.schemas.payouts import (
    AdminPayoutFilters,
    ApprovePayoutRequest,
    BankTransferDetails,
    MarkFailedRequest,
    MarkPaidRequest,
    MobileMoneyDetails,
    PayoutRequestCreate,
    PayoutResponse,
    ProcessPayoutRequest,
    ProviderPayoutFilters,
    RejectPayoutRequest,
)

__all__ = [
    "BaseResponse",
    "ErrorDetail",
    "ErrorResponse",
    "Page",
    "EarningEventCreate",
    "EarningEventResponse",
    "EarningsSummary",
    "LedgerFigures",
    "LedgerSummary",
    "PayoutStatistics",
    "ReconciliationReport",
    "AdminPayoutFilters",
    "ApprovePayoutRequest",
    "BankTransferDetails",
    "MarkFailedRequest",
    "MarkPaidRequest",
    "MobileMoneyDetails",
    "PayoutRequestCreate",
    "PayoutResponse",
    "ProcessPayoutRequest",
    "ProviderPayoutFilters",
    "RejectPayoutRequest",
]
