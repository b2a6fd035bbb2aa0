from datetime import datetime
from typing import Any, AsyncIterator, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from payout_ledger.core.datetime_utils import end_of_day_exclusive, start_of_day, utc_now
from payout_ledger.core.enums import PayoutMethod, PayoutStatus
from payout_ledger.db.models import Payout
from payout_ledger.schemas.payouts import AdminPayoutFilters


class PayoutRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_payout(
        self,
        provider_id: str,
        amount_minor: int,
        currency: str,
        method: PayoutMethod,
        method_details: dict,
        requested_at: Optional[datetime] = None,
    ) -> Payout:
        now = requested_at or utc_now()
        payout = Payout(
            provider_id=provider_id,
            amount_minor=amount_minor,
            currency=currency,
            method=method,
            method_details=method_details,
            status=PayoutStatus.PENDING,
            requested_at=now,
            updated_at=now,
            version=1,
        )
        self.session.add(payout)
        await self.session.flush()
        return payout

    async def get_by_id(self, id: int) -> Optional[Payout]:
        stmt = (
            select(Payout)
            .where(Payout.id == id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def apply_transition(
        self,
        payout: Payout,
        to_status: PayoutStatus,
        values: dict[str, Any],
    ) -> bool:
        """Compare-and-set the payout status.

        The UPDATE only matches while the row still has the status and version
        the caller read, so of two concurrent transitions at most one wins.
        Returns False when the row changed underneath.
        """
        stmt = (
            update(Payout)
            .where(Payout.id == payout.id)
            .where(Payout.status == payout.status)
            .where(Payout.version == payout.version)
            .values(
                status=to_status,
                version=Payout.version + 1,
                updated_at=utc_now(),
                **values,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount != 1:
            return False
        await self.session.refresh(payout)
        return True

    def _conditions(self, filters: AdminPayoutFilters) -> list:
        conditions = []
        if filters.provider_id:
            conditions.append(Payout.provider_id == filters.provider_id)
        if filters.status is not None:
            conditions.append(Payout.status == filters.status)
        if filters.method is not None:
            conditions.append(Payout.method == filters.method)
        if filters.start_date is not None:
            conditions.append(Payout.requested_at >= start_of_day(filters.start_date))
        if filters.end_date is not None:
            conditions.append(
                Payout.requested_at < end_of_day_exclusive(filters.end_date)
            )
        return conditions

    async def count_payouts(self, filters: AdminPayoutFilters) -> int:
        stmt = select(func.count(Payout.id)).where(*self._conditions(filters))
        result = await self.session.execute(stmt)
        return result.scalar() or 0

    async def list_payouts(
        self, filters: AdminPayoutFilters, offset: int, limit: int
    ) -> list[Payout]:
        stmt = (
            select(Payout)
            .where(*self._conditions(filters))
            .order_by(Payout.requested_at.desc(), Payout.id.desc())
            .offset(offset)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def iter_payouts(
        self, filters: AdminPayoutFilters, batch_size: int = 500
    ) -> AsyncIterator[Payout]:
        offset = 0
        while True:
            batch = await self.list_payouts(filters, offset=offset, limit=batch_size)
            for payout in batch:
                yield payout
            if len(batch) < batch_size:
                return
            offset += batch_size

    async def sum_amount_by_status(
        self, provider_id: str, currency: str, statuses: list[PayoutStatus]
    ) -> int:
        stmt = (
            select(func.coalesce(func.sum(Payout.amount_minor), 0))
            .where(Payout.provider_id == provider_id)
            .where(Payout.currency == currency)
            .where(Payout.status.in_(statuses))
        )
        result = await self.session.execute(stmt)
        return int(result.scalar() or 0)

    async def get_last_paid_at(
        self, provider_id: str, currency: str
    ) -> Optional[datetime]:
        stmt = (
            select(Payout.paid_at)
            .where(Payout.provider_id == provider_id)
            .where(Payout.currency == currency)
            .where(Payout.status == PayoutStatus.COMPLETED)
            .order_by(Payout.paid_at.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_statistics_rows(
        self,
        currency: str,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> list[tuple[PayoutStatus, PayoutMethod, int, int]]:
        """(status, method, count, amount_minor) groups for payouts requested in range."""
        stmt = (
            select(
                Payout.status,
                Payout.method,
                func.count(Payout.id).label("count"),
                func.coalesce(func.sum(Payout.amount_minor), 0).label("amount"),
            )
            .where(Payout.currency == currency)
            .group_by(Payout.status, Payout.method)
        )
        if since is not None:
            stmt = stmt.where(Payout.requested_at >= since)
        if until is not None:
            stmt = stmt.where(Payout.requested_at < until)

        result = await self.session.execute(stmt)
        return [
            (row.status, row.method, int(row.count), int(row.amount))
            for row in result.all()
        ]

    async def get_needing_attention(
        self, pending_cutoff: datetime, processing_cutoff: datetime
    ) -> list[Payout]:
        stmt = (
            select(Payout)
            .where(
                (
                    (Payout.status == PayoutStatus.PENDING)
                    & (Payout.requested_at < pending_cutoff)
                )
                | (
                    (Payout.status == PayoutStatus.PROCESSING)
                    & (Payout.processed_at < processing_cutoff)
                )
            )
            .order_by(Payout.requested_at.asc(), Payout.id.asc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
