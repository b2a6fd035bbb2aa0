import csv
import io
import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from payout_ledger.core.datetime_utils import utc_now
from payout_ledger.core.enums import PayoutMethod
from payout_ledger.db.models import Payout
from payout_ledger.db.repositories import PayoutRepository
from payout_ledger.exceptions import ExportGenerationException
from payout_ledger.metrics import payout_exports_total
from payout_ledger.schemas.payouts import AdminPayoutFilters
from payout_ledger.services.query_service import validate_date_range

logger = logging.getLogger(__name__)

EXPORT_HEADERS = [
    "payout_id",
    "provider_id",
    "amount",
    "currency",
    "method",
    "destination",
    "status",
    "requested_at",
    "approved_at",
    "processed_at",
    "paid_at",
    "failed_at",
    "rejected_at",
    "cancelled_at",
    "reference_number",
    "rejection_reason",
    "failure_reason",
    "notes",
]


@dataclass
class ExportArtifact:
    filename: str
    content_type: str
    content: bytes


def _mask(value: str, visible: int = 4) -> str:
    if len(value) <= visible:
        return value
    return "*" * (len(value) - visible) + value[-visible:]


def describe_destination(payout: Payout) -> str:
    """Short destination label with the account identifier masked."""
    details = payout.method_details or {}
    if payout.method == PayoutMethod.BANK_TRANSFER:
        return f"{details.get('bank_name', '')} {_mask(details.get('account_number', ''))}".strip()
    return f"{details.get('provider', '')} {_mask(details.get('phone_number', ''))}".strip()


def _iso(value) -> str:
    return value.isoformat() if value else ""


def _row(payout: Payout) -> list[str]:
    return [
        str(payout.id),
        payout.provider_id,
        str(payout.amount),
        payout.currency,
        payout.method.value,
        describe_destination(payout),
        payout.status.value,
        _iso(payout.requested_at),
        _iso(payout.approved_at),
        _iso(payout.processed_at),
        _iso(payout.paid_at),
        _iso(payout.failed_at),
        _iso(payout.rejected_at),
        _iso(payout.cancelled_at),
        payout.reference_number or "",
        payout.rejection_reason or "",
        payout.failure_reason or "",
        payout.notes or "",
    ]


class PayoutExportService:
    def __init__(self, session: AsyncSession) -> None:
        self.payout_repo = PayoutRepository(session)

    async def export_payouts(self, filters: AdminPayoutFilters) -> ExportArtifact:
        """Render every payout matching ``filters`` as a CSV report."""
        validate_date_range(filters.start_date, filters.end_date)

        buffer = io.StringIO()
        writer = csv.writer(buffer)
        count = 0
        try:
            writer.writerow(EXPORT_HEADERS)
            async for payout in self.payout_repo.iter_payouts(filters):
                writer.writerow(_row(payout))
                count += 1
        except csv.Error as exc:
            logger.error(
                "Payout export failed after rows=%s error=%s",
                count,
                exc,
                extra={"rows": count},
            )
            raise ExportGenerationException(str(exc)) from exc

        payout_exports_total.inc()
        logger.info(
            "Payout export generated rows=%s", count, extra={"rows": count}
        )
        return ExportArtifact(
            filename=f"payouts-{utc_now():%Y%m%d%H%M%S}.csv",
            content_type="text/csv",
            content=buffer.getvalue().encode("utf-8"),
        )
