import logging
import math
from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from payout_ledger.core.config import settings
from payout_ledger.core.datetime_utils import end_of_day_exclusive, start_of_day, utc_now
from payout_ledger.core.enums import LedgerPeriod, PayoutMethod, PayoutStatus
from payout_ledger.core.money import from_minor
from payout_ledger.core.security import Actor
from payout_ledger.db.models import Payout
from payout_ledger.db.repositories import PayoutRepository
from payout_ledger.exceptions import PayoutNotFoundException, ValidationException
from payout_ledger.schemas.common import Page
from payout_ledger.schemas.ledger import EarningsSummary, LedgerSummary, PayoutStatistics
from payout_ledger.schemas.payouts import (
    AdminPayoutFilters,
    PayoutResponse,
    ProviderPayoutFilters,
)
from payout_ledger.services.balance_calculator import BalanceCalculator
from payout_ledger.services.ledger_service import LedgerService

logger = logging.getLogger(__name__)


def validate_page(page: int, size: int) -> None:
    if page < 0:
        raise ValidationException(
            message="Page must be zero or greater", details={"page": page}
        )
    if size < 1 or size > settings.max_page_size:
        raise ValidationException(
            message=f"Size must be between 1 and {settings.max_page_size}",
            details={"size": size},
        )


def validate_date_range(start_date: Optional[date], end_date: Optional[date]) -> None:
    if start_date and end_date and start_date > end_date:
        raise ValidationException(
            message="start_date must not be after end_date",
            details={"start_date": str(start_date), "end_date": str(end_date)},
        )


class PayoutQueryService:
    """Read side: payout listings, summaries and statistics. No writes."""

    def __init__(self, session: AsyncSession) -> None:
        self.payout_repo = PayoutRepository(session)
        self.ledger_service = LedgerService(session)
        self.balance_calculator = BalanceCalculator(session)

    async def list_provider_payouts(
        self,
        actor: Actor,
        filters: ProviderPayoutFilters,
        page: int = 0,
        size: int = settings.default_page_size,
    ) -> Page[PayoutResponse]:
        scoped = AdminPayoutFilters(
            **filters.model_dump(), provider_id=actor.actor_id
        )
        return await self._page(scoped, page, size)

    async def list_admin_payouts(
        self,
        filters: AdminPayoutFilters,
        page: int = 0,
        size: int = settings.default_page_size,
    ) -> Page[PayoutResponse]:
        return await self._page(filters, page, size)

    async def _page(
        self, filters: AdminPayoutFilters, page: int, size: int
    ) -> Page[PayoutResponse]:
        validate_page(page, size)
        validate_date_range(filters.start_date, filters.end_date)

        total = await self.payout_repo.count_payouts(filters)
        payouts = await self.payout_repo.list_payouts(
            filters, offset=page * size, limit=size
        )
        return Page[PayoutResponse](
            content=[PayoutResponse.model_validate(payout) for payout in payouts],
            page=page,
            size=size,
            total_elements=total,
            total_pages=math.ceil(total / size) if total else 0,
        )

    async def get_payout(self, actor: Actor, payout_id: int) -> Payout:
        payout = await self.payout_repo.get_by_id(payout_id)
        # Other providers' payouts are reported as missing.
        if payout is None or (
            not actor.is_admin and payout.provider_id != actor.actor_id
        ):
            raise PayoutNotFoundException(payout_id)
        return payout

    async def get_earnings_summary(
        self, actor: Actor, currency: Optional[str] = None
    ) -> EarningsSummary:
        currency = await self.ledger_service.resolve_currency(actor.actor_id, currency)
        return await self.balance_calculator.get_earnings_summary(
            actor.actor_id, currency
        )

    async def get_ledger_summary(
        self,
        period: LedgerPeriod = LedgerPeriod.LAST_30_DAYS,
        currency: Optional[str] = None,
    ) -> LedgerSummary:
        currency = currency or settings.default_currency
        totals = await self.balance_calculator.get_platform_totals(currency)

        start_date = None
        if period.window is not None:
            start_date = (utc_now() - period.window).date()
        statistics = await self.get_payout_statistics(
            currency=currency, start_date=start_date
        )
        return LedgerSummary(
            currency=currency, period=period, statistics=statistics, **totals
        )

    async def get_payout_statistics(
        self,
        currency: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> PayoutStatistics:
        validate_date_range(start_date, end_date)
        currency = currency or settings.default_currency

        rows = await self.payout_repo.get_statistics_rows(
            currency,
            since=start_of_day(start_date) if start_date else None,
            until=end_of_day_exclusive(end_date) if end_date else None,
        )

        count_by_status: dict[str, int] = {status.value: 0 for status in PayoutStatus}
        count_by_method: dict[str, int] = {method.value: 0 for method in PayoutMethod}
        amount_by_status: dict[str, int] = defaultdict(int)
        amount_by_method: dict[str, int] = defaultdict(int)
        for status, method, count, amount_minor in rows:
            count_by_status[status.value] += count
            count_by_method[method.value] += count
            amount_by_status[status.value] += amount_minor
            amount_by_method[method.value] += amount_minor

        total_payouts = sum(count_by_status.values())
        total_minor = sum(amount_by_status.values())
        average = (
            (from_minor(total_minor) / total_payouts).quantize(Decimal("0.01"))
            if total_payouts
            else from_minor(0)
        )

        return PayoutStatistics(
            currency=currency,
            start_date=start_date,
            end_date=end_date,
            total_payouts=total_payouts,
            total_amount=from_minor(total_minor),
            average_amount=average,
            payouts_by_status=count_by_status,
            payouts_by_method=count_by_method,
            amount_by_status={
                status.value: from_minor(amount_by_status[status.value])
                for status in PayoutStatus
            },
            amount_by_method={
                method.value: from_minor(amount_by_method[method.value])
                for method in PayoutMethod
            },
        )

    async def find_payouts_needing_attention(self) -> list[Payout]:
        """PENDING payouts waiting over a day and PROCESSING ones stuck for hours."""
        now = utc_now()
        payouts = await self.payout_repo.get_needing_attention(
            pending_cutoff=now - timedelta(hours=settings.pending_attention_hours),
            processing_cutoff=now - timedelta(hours=settings.processing_attention_hours),
        )
        if payouts:
            logger.info(
                "Payouts needing attention count=%s",
                len(payouts),
                extra={"count": len(payouts)},
            )
        return payouts