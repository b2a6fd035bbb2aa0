import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from payout_ledger.core.config import settings
from payout_ledger.core.enums import EntryType, PayoutAction, PayoutStatus
from payout_ledger.core.money import from_minor
from payout_ledger.db.models import Payout
from payout_ledger.db.repositories import (
    EventRepository,
    LedgerRepository,
    PayoutRepository,
)
from payout_ledger.exceptions import (
    InsufficientBalanceException,
    LedgerInvariantException,
    NotFoundException,
    ValidationException,
)
from payout_ledger.metrics import ledger_entries_total, pending_payouts_total
from payout_ledger.schemas.ledger import LedgerFigures, ReconciliationReport

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = [PayoutStatus.PENDING, PayoutStatus.APPROVED, PayoutStatus.PROCESSING]


class LedgerService:
    """Keeps the journal and the cached provider summaries in step.

    Every method here runs inside the caller's transaction.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.ledger_repo = LedgerRepository(session)
        self.payout_repo = PayoutRepository(session)
        self.event_repo = EventRepository(session)

    async def resolve_currency(
        self, provider_id: str, currency: Optional[str] = None
    ) -> str:
        """Pick the currency a provider's payout is drawn from.

        An explicit currency wins. Otherwise the provider's only account is
        used; with several accounts the caller has to choose.
        """
        if currency:
            return currency

        accounts = await self.ledger_repo.list_accounts(provider_id)
        if not accounts:
            return settings.default_currency
        if len(accounts) > 1:
            raise ValidationException(
                message="Currency is required for providers earning in several currencies",
                details={
                    "field": "currency",
                    "currencies": [account.currency for account in accounts],
                },
            )
        return accounts[0].currency

    async def record_booking_payment(
        self,
        provider_id: str,
        event_id: str,
        amount_minor: int,
        fee_minor: int,
        currency: str,
    ) -> None:
        await self.ledger_repo.get_or_create_account(provider_id, currency)

        await self._entry(
            provider_id=provider_id,
            amount_minor=amount_minor,
            currency=currency,
            entry_type=EntryType.REVENUE,
            description=f"Booking revenue from event {event_id}",
            related_event_id=event_id,
        )
        if fee_minor > 0:
            await self._entry(
                provider_id=provider_id,
                amount_minor=-fee_minor,
                currency=currency,
                entry_type=EntryType.COMMISSION,
                description=f"Platform commission for event {event_id}",
                related_event_id=event_id,
            )

        await self.ledger_repo.apply_earnings(
            provider_id,
            currency,
            revenue_minor=amount_minor,
            commissions_minor=fee_minor,
        )

    async def record_refund(
        self,
        provider_id: str,
        event_id: str,
        amount_minor: int,
        currency: str,
    ) -> None:
        await self.ledger_repo.get_or_create_account(provider_id, currency)
        await self._entry(
            provider_id=provider_id,
            amount_minor=-amount_minor,
            currency=currency,
            entry_type=EntryType.REFUND,
            description=f"Refund from event {event_id}",
            related_event_id=event_id,
        )
        await self.ledger_repo.apply_earnings(
            provider_id, currency, refunds_minor=amount_minor
        )

    async def reserve(self, provider_id: str, currency: str, amount_minor: int) -> None:
        """Hold ``amount_minor`` against the available balance or raise."""
        reserved = await self.ledger_repo.reserve(provider_id, currency, amount_minor)
        if not reserved:
            account = await self.ledger_repo.get_account(provider_id, currency)
            available = account.available_balance_minor if account else 0
            raise InsufficientBalanceException(
                provider_id=provider_id,
                currency=currency,
                available=from_minor(max(available, 0)),
                requested=from_minor(amount_minor),
            )

    async def record_reservation(self, payout: Payout) -> None:
        await self._entry(
            provider_id=payout.provider_id,
            amount_minor=-payout.amount_minor,
            currency=payout.currency,
            entry_type=EntryType.PAYOUT_RESERVE,
            description=f"Reserve for payout {payout.id}",
            related_payout_id=payout.id,
        )
        await self.refresh_metrics(payout.currency)

    async def release_payout(self, payout: Payout, action: PayoutAction) -> None:
        released = await self.ledger_repo.release(
            payout.provider_id, payout.currency, payout.amount_minor
        )
        if not released:
            raise LedgerInvariantException(
                payout.provider_id, payout.currency, f"release:{action.value}"
            )

        await self._entry(
            provider_id=payout.provider_id,
            amount_minor=payout.amount_minor,
            currency=payout.currency,
            entry_type=EntryType.PAYOUT_RELEASE,
            description=f"Release for payout {payout.id} ({action.value})",
            related_payout_id=payout.id,
        )
        await self.refresh_metrics(payout.currency)

    async def settle_payout(self, payout: Payout) -> None:
        # Reserve entry already debited the journal; only the summary moves.
        settled = await self.ledger_repo.settle(
            payout.provider_id, payout.currency, payout.amount_minor
        )
        if not settled:
            raise LedgerInvariantException(
                payout.provider_id, payout.currency, "settle"
            )
        await self.refresh_metrics(payout.currency)

    async def refresh_metrics(self, currency: str) -> None:
        _, _, _, pending, _, _ = await self.ledger_repo.get_platform_totals(currency)
        pending_payouts_total.labels(currency=currency).set(pending)

    async def reconcile(
        self, provider_id: str, currency: str, repair: bool = False
    ) -> ReconciliationReport:
        """Recompute a provider summary from the journal and payout rows.

        With ``repair`` the cached summary is overwritten by the recomputed
        figures when they disagree.
        """
        account = await self.ledger_repo.get_account(provider_id, currency)
        if account is None:
            raise NotFoundException(
                message=f"Ledger account not found: {provider_id} {currency}",
                details={"provider_id": provider_id, "currency": currency},
            )

        journal = await self.ledger_repo.get_journal_totals(provider_id, currency)
        revenue = journal.get(EntryType.REVENUE, 0)
        commissions = -journal.get(EntryType.COMMISSION, 0)
        refunds = -journal.get(EntryType.REFUND, 0)
        journal_available = sum(journal.values())
        matches_events = (
            await self.event_repo.get_provider_totals(provider_id, currency)
        ) == (revenue, commissions, refunds)

        pending = await self.payout_repo.sum_amount_by_status(
            provider_id, currency, ACTIVE_STATUSES
        )
        paid = await self.payout_repo.sum_amount_by_status(
            provider_id, currency, [PayoutStatus.COMPLETED]
        )

        cached = _figures(
            account.total_earnings_minor,
            account.pending_payouts_minor,
            account.total_payouts_minor,
        )
        earnings = revenue - commissions - refunds
        recomputed = _figures(earnings, pending, paid)

        drift = {
            field: getattr(cached, field) - getattr(recomputed, field)
            for field in LedgerFigures.model_fields
        }
        if not matches_events:
            # Journal rows are append-only; this needs manual investigation.
            logger.error(
                "Journal disagrees with earning events provider_id=%s currency=%s",
                provider_id,
                currency,
                extra={"provider_id": provider_id, "currency": currency},
            )
        balanced = (
            matches_events
            and all(value == 0 for value in drift.values())
            and account.total_revenue_minor == revenue
            and account.total_commissions_minor == commissions
            and account.total_refunds_minor == refunds
            and journal_available == earnings - pending - paid
        )

        repaired = False
        if not balanced:
            logger.warning(
                "Ledger drift detected provider_id=%s currency=%s drift=%s",
                provider_id,
                currency,
                {key: str(value) for key, value in drift.items()},
                extra={"provider_id": provider_id, "currency": currency},
            )
            if repair:
                await self.ledger_repo.overwrite_account(
                    account,
                    total_revenue_minor=revenue,
                    total_commissions_minor=commissions,
                    total_refunds_minor=refunds,
                    pending_payouts_minor=pending,
                    total_payouts_minor=paid,
                )
                await self.refresh_metrics(currency)
                repaired = True
                logger.info(
                    "Ledger summary repaired provider_id=%s currency=%s",
                    provider_id,
                    currency,
                    extra={"provider_id": provider_id, "currency": currency},
                )

        return ReconciliationReport(
            provider_id=provider_id,
            currency=currency,
            balanced=balanced,
            repaired=repaired,
            matches_events=matches_events,
            cached=cached,
            recomputed=recomputed,
            drift=drift,
        )

    async def _entry(self, **kwargs) -> None:
        entry = await self.ledger_repo.create_entry(**kwargs)
        ledger_entries_total.labels(entry_type=entry.entry_type.value).inc()


def _figures(earnings: int, pending: int, paid: int) -> LedgerFigures:
    return LedgerFigures(
        total_earnings=from_minor(earnings),
        pending_payouts=from_minor(pending),
        total_payouts=from_minor(paid),
        available_balance=from_minor(earnings - pending - paid),
    )
