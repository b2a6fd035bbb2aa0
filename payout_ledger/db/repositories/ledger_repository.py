import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from payout_ledger.core.datetime_utils import utc_now
from payout_ledger.core.enums import EntryType
from payout_ledger.db.models import LedgerEntry, ProviderAccount

logger = logging.getLogger(__name__)


class LedgerRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_entry(
        self,
        provider_id: str,
        amount_minor: int,
        currency: str,
        entry_type: EntryType,
        description: Optional[str] = None,
        related_event_id: Optional[str] = None,
        related_payout_id: Optional[int] = None,
    ) -> LedgerEntry:
        entry = LedgerEntry(
            provider_id=provider_id,
            amount_minor=amount_minor,
            currency=currency,
            entry_type=entry_type,
            description=description,
            related_event_id=related_event_id,
            related_payout_id=related_payout_id,
        )
        self.session.add(entry)
        await self.session.flush()
        return entry

    async def get_account(
        self, provider_id: str, currency: str
    ) -> Optional[ProviderAccount]:
        stmt = (
            select(ProviderAccount)
            .where(ProviderAccount.provider_id == provider_id)
            .where(ProviderAccount.currency == currency)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_accounts(self, provider_id: str) -> list[ProviderAccount]:
        stmt = (
            select(ProviderAccount)
            .where(ProviderAccount.provider_id == provider_id)
            .order_by(ProviderAccount.created_at.asc(), ProviderAccount.id.asc())
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_or_create_account(
        self, provider_id: str, currency: str
    ) -> tuple[ProviderAccount, bool]:
        account = await self.get_account(provider_id, currency)
        if account:
            return account, False

        account = ProviderAccount(
            provider_id=provider_id,
            currency=currency,
            total_revenue_minor=0,
            total_commissions_minor=0,
            total_refunds_minor=0,
            pending_payouts_minor=0,
            total_payouts_minor=0,
        )
        created = False
        try:
            async with self.session.begin_nested():
                self.session.add(account)
                await self.session.flush()
                created = True
        except IntegrityError:
            logger.info(
                "Provider account already exists (race condition handled) provider_id=%s currency=%s",
                provider_id,
                currency,
                extra={"provider_id": provider_id, "currency": currency},
            )

        if created:
            logger.info(
                "Created provider account provider_id=%s currency=%s",
                provider_id,
                currency,
                extra={"provider_id": provider_id, "currency": currency},
            )
            return account, True

        existing = await self.get_account(provider_id, currency)
        assert existing is not None
        return existing, False

    async def apply_earnings(
        self,
        provider_id: str,
        currency: str,
        revenue_minor: int = 0,
        commissions_minor: int = 0,
        refunds_minor: int = 0,
    ) -> None:
        stmt = (
            update(ProviderAccount)
            .where(ProviderAccount.provider_id == provider_id)
            .where(ProviderAccount.currency == currency)
            .values(
                total_revenue_minor=ProviderAccount.total_revenue_minor + revenue_minor,
                total_commissions_minor=ProviderAccount.total_commissions_minor
                + commissions_minor,
                total_refunds_minor=ProviderAccount.total_refunds_minor + refunds_minor,
                updated_at=utc_now(),
            )
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)

    async def reserve(self, provider_id: str, currency: str, amount_minor: int) -> bool:
        """Move amount from available into pending if the balance covers it.

        The balance check is part of the UPDATE, so concurrent requests
        cannot overdraw the account.
        """
        available = (
            ProviderAccount.total_revenue_minor
            - ProviderAccount.total_commissions_minor
            - ProviderAccount.total_refunds_minor
            - ProviderAccount.total_payouts_minor
            - ProviderAccount.pending_payouts_minor
        )
        stmt = (
            update(ProviderAccount)
            .where(ProviderAccount.provider_id == provider_id)
            .where(ProviderAccount.currency == currency)
            .where(available >= amount_minor)
            .values(
                pending_payouts_minor=ProviderAccount.pending_payouts_minor
                + amount_minor,
                updated_at=utc_now(),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def release(self, provider_id: str, currency: str, amount_minor: int) -> bool:
        """Return a reservation to the available balance."""
        stmt = (
            update(ProviderAccount)
            .where(ProviderAccount.provider_id == provider_id)
            .where(ProviderAccount.currency == currency)
            .where(ProviderAccount.pending_payouts_minor >= amount_minor)
            .values(
                pending_payouts_minor=ProviderAccount.pending_payouts_minor
                - amount_minor,
                updated_at=utc_now(),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def settle(self, provider_id: str, currency: str, amount_minor: int) -> bool:
        """Convert a reservation into a completed payout."""
        stmt = (
            update(ProviderAccount)
            .where(ProviderAccount.provider_id == provider_id)
            .where(ProviderAccount.currency == currency)
            .where(ProviderAccount.pending_payouts_minor >= amount_minor)
            .values(
                pending_payouts_minor=ProviderAccount.pending_payouts_minor
                - amount_minor,
                total_payouts_minor=ProviderAccount.total_payouts_minor + amount_minor,
                updated_at=utc_now(),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def overwrite_account(
        self,
        account: ProviderAccount,
        total_revenue_minor: int,
        total_commissions_minor: int,
        total_refunds_minor: int,
        pending_payouts_minor: int,
        total_payouts_minor: int,
    ) -> ProviderAccount:
        account.total_revenue_minor = total_revenue_minor
        account.total_commissions_minor = total_commissions_minor
        account.total_refunds_minor = total_refunds_minor
        account.pending_payouts_minor = pending_payouts_minor
        account.total_payouts_minor = total_payouts_minor
        account.updated_at = utc_now()
        await self.session.flush()
        return account

    async def get_journal_totals(
        self, provider_id: str, currency: str
    ) -> dict[EntryType, int]:
        stmt = (
            select(
                LedgerEntry.entry_type,
                func.coalesce(func.sum(LedgerEntry.amount_minor), 0).label("amount"),
            )
            .where(LedgerEntry.provider_id == provider_id)
            .where(LedgerEntry.currency == currency)
            .group_by(LedgerEntry.entry_type)
        )
        result = await self.session.execute(stmt)
        return {row.entry_type: int(row.amount) for row in result.all()}

    async def get_platform_totals(
        self, currency: str
    ) -> tuple[int, int, int, int, int, Optional[datetime]]:
        """
        Platform-wide sums in a single query.

        Returns: (revenue, commissions, refunds, pending, payouts, last_updated)
        """
        stmt = select(
            func.coalesce(func.sum(ProviderAccount.total_revenue_minor), 0).label(
                "revenue"
            ),
            func.coalesce(func.sum(ProviderAccount.total_commissions_minor), 0).label(
                "commissions"
            ),
            func.coalesce(func.sum(ProviderAccount.total_refunds_minor), 0).label(
                "refunds"
            ),
            func.coalesce(func.sum(ProviderAccount.pending_payouts_minor), 0).label(
                "pending"
            ),
            func.coalesce(func.sum(ProviderAccount.total_payouts_minor), 0).label(
                "payouts"
            ),
            func.max(ProviderAccount.updated_at).label("last_updated"),
        ).where(ProviderAccount.currency == currency)

        result = await self.session.execute(stmt)
        row = result.one()
        return (
            int(row.revenue),
            int(row.commissions),
            int(row.refunds),
            int(row.pending),
            int(row.payouts),
            row.last_updated,
        )
